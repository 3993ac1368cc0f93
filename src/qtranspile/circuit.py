"""In-memory circuit representation shared by every pass.

A :class:`Circuit` is an ordered list of :class:`Operation` values over a fixed
number of qubits and classical bits. Two operations are ordered if and only if
they touch a common qubit or clbit; the list order is one valid linearisation
of that partial order. Circuits are append-only while being built and frozen
afterwards; passes always return new circuits.
"""
from __future__ import annotations

import ast
import operator
from collections import Counter
from dataclasses import dataclass, replace
from numbers import Integral
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Union

import numpy as np
import yaml
from qiskit.circuit import Parameter, ParameterExpression

from .exceptions import MalformedCircuitError
from .gates import BARRIER, DELAY, MEASURE, STANDARD_GATES

# Gate angles are floats or unbound qiskit expressions.
ParamValue = Union[float, ParameterExpression]


def is_bound(value: ParamValue) -> bool:
    return not isinstance(value, ParameterExpression) or not value.parameters


def bind_param(value: ParamValue, values: Mapping[Any, float]) -> ParamValue:
    """Substitute ``values`` (keyed by name or :class:`Parameter`) into ``value``.

    Symbols are matched by name, so expressions rebuilt from YAML bind the
    same way as the originals. Returns a plain float once no symbol remains.
    """
    if is_bound(value):
        return float(value)
    lookup = {getattr(k, "name", k): float(v) for k, v in values.items()}
    if isinstance(value, Parameter):
        return lookup.get(value.name, value)
    subs = {p: lookup[p.name] for p in value.parameters if p.name in lookup}
    if not subs:
        return value
    bound = value.bind(subs)
    return float(bound) if not bound.parameters else bound


_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
}
# Spellings found in printed expressions -> ParameterExpression / numpy method.
_FUNCTIONS = {
    "sin": "sin",
    "cos": "cos",
    "tan": "tan",
    "asin": "arcsin",
    "arcsin": "arcsin",
    "acos": "arccos",
    "arccos": "arccos",
    "atan": "arctan",
    "arctan": "arctan",
    "exp": "exp",
    "log": "log",
    "abs": "abs",
    "sign": "sign",
}


def parse_param(text: str, symbols: Dict[str, Parameter]) -> ParamValue:
    """Rebuild an angle from its printed form, e.g. ``"2*theta + 1"``.

    Names become :class:`Parameter` symbols shared through ``symbols`` so one
    circuit keeps a single symbol per name; ``pi`` is the constant.
    """
    try:
        tree = ast.parse(text.strip(), mode="eval")
    except SyntaxError as e:
        raise MalformedCircuitError(f"Cannot parse parameter expression {text!r}") from e
    value = _build_param(tree.body, symbols, text)
    return float(value) if is_bound(value) else value


def _build_param(node: ast.AST, symbols: Dict[str, Parameter], text: str) -> Any:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return float(node.value)
    if isinstance(node, ast.Name):
        if node.id == "pi":
            return np.pi
        return symbols.setdefault(node.id, Parameter(node.id))
    if isinstance(node, ast.Subscript) and isinstance(node.value, ast.Name):
        # vector elements print as ``name[i]``
        name = f"{node.value.id}[{ast.unparse(node.slice)}]"
        return symbols.setdefault(name, Parameter(name))
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.UAdd, ast.USub)):
        operand = _build_param(node.operand, symbols, text)
        return -operand if isinstance(node.op, ast.USub) else operand
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _build_param(node.left, symbols, text)
        right = _build_param(node.right, symbols, text)
        return _BINARY_OPS[type(node.op)](left, right)
    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id in _FUNCTIONS
        and len(node.args) == 1
        and not node.keywords
    ):
        arg = _build_param(node.args[0], symbols, text)
        method = _FUNCTIONS[node.func.id]
        if isinstance(arg, ParameterExpression):
            return getattr(arg, method)()
        return float(getattr(np, method)(arg))
    raise MalformedCircuitError(f"Unsupported parameter expression {text!r}")


@dataclass(frozen=True)
class Operation:
    """One instruction: gate name, qubit operands, angles and measured clbits."""
    name: str
    qubits: Tuple[int, ...]
    params: Tuple[ParamValue, ...] = ()
    clbits: Tuple[int, ...] = ()

    @property
    def num_qubits(self) -> int:
        return len(self.qubits)

    @property
    def kind(self) -> str:
        if self.name in (MEASURE, BARRIER, DELAY):
            return self.name
        if len(self.qubits) == 1:
            return "single"
        if len(self.qubits) == 2:
            return "two"
        return "multi"

    @property
    def is_gate(self) -> bool:
        return self.name not in (MEASURE, BARRIER, DELAY)

    @property
    def is_parameterized(self) -> bool:
        return not all(is_bound(p) for p in self.params)

    @property
    def duration(self) -> Optional[float]:
        """Duration in ``dt`` for delays, ``None`` otherwise."""
        if self.name == DELAY:
            return float(self.params[0])
        return None

    def wires(self) -> Tuple[Tuple[str, int], ...]:
        return tuple(("q", q) for q in self.qubits) + tuple(("c", c) for c in self.clbits)

    def remap(self, qubit_map: Sequence[int]) -> "Operation":
        return replace(self, qubits=tuple(qubit_map[q] for q in self.qubits))

    def bind(self, values: Mapping[Any, float]) -> "Operation":
        if not self.is_parameterized:
            return self
        params = tuple(bind_param(p, values) for p in self.params)
        return replace(self, params=params)


def _check_operation(op: Operation, index: int, num_qubits: int, num_clbits: int) -> None:
    for q in op.qubits:
        if not isinstance(q, Integral) or q < 0 or q >= num_qubits:
            raise MalformedCircuitError(
                f"Operation '{op.name}' references qubit {q} outside [0, {num_qubits})",
                op_index=index,
                qubit=q,
            )
    if len(set(op.qubits)) != len(op.qubits):
        raise MalformedCircuitError(f"Operation '{op.name}' repeats a qubit operand", op_index=index)
    for c in op.clbits:
        if not isinstance(c, Integral) or c < 0 or c >= num_clbits:
            raise MalformedCircuitError(
                f"Operation '{op.name}' references clbit {c} outside [0, {num_clbits})",
                op_index=index,
                clbit=c,
            )

    if op.name == MEASURE:
        if len(op.qubits) != 1 or len(op.clbits) != 1 or op.params:
            raise MalformedCircuitError("measure takes exactly one qubit and one clbit", op_index=index)
        return
    if op.clbits:
        raise MalformedCircuitError(f"Only measure may write clbits, got '{op.name}'", op_index=index)
    if op.name == BARRIER:
        if not op.qubits or op.params:
            raise MalformedCircuitError("barrier needs at least one qubit and no params", op_index=index)
        return
    if op.name == DELAY:
        if len(op.qubits) != 1 or len(op.params) != 1:
            raise MalformedCircuitError("delay takes one qubit and one duration", op_index=index)
        if float(op.params[0]) < 0:
            raise MalformedCircuitError("delay duration must be non-negative", op_index=index)
        return

    spec = STANDARD_GATES.get(op.name)
    if spec is None:
        raise MalformedCircuitError(f"Unknown gate '{op.name}'", op_index=index)
    if len(op.qubits) != spec.num_qubits:
        raise MalformedCircuitError(
            f"Gate '{op.name}' acts on {spec.num_qubits} qubit(s), got {len(op.qubits)}",
            op_index=index,
        )
    if len(op.params) != spec.num_params:
        raise MalformedCircuitError(
            f"Gate '{op.name}' takes {spec.num_params} parameter(s), got {len(op.params)}",
            op_index=index,
        )


class Circuit:
    """Quantum circuit over ``num_qubits`` qubits and ``num_clbits`` clbits."""

    def __init__(
        self,
        num_qubits: int,
        num_clbits: int = 0,
        operations: Iterable[Operation] = (),
        name: str = "circuit",
    ):
        if num_qubits < 0 or num_clbits < 0:
            raise MalformedCircuitError("Register sizes must be non-negative")
        self.num_qubits = int(num_qubits)
        self.num_clbits = int(num_clbits)
        self.name = name
        self._ops: List[Operation] = []
        self._frozen = False
        self._deps: Optional[Tuple[List[List[int]], List[List[int]]]] = None
        for op in operations:
            self._append(op)

    # ----------------------------------------------------------- construction
    @classmethod
    def from_operations(
        cls,
        num_qubits: int,
        num_clbits: int,
        operations: Iterable[Operation],
        name: str = "circuit",
    ) -> "Circuit":
        """Build and freeze in one step (what passes use)."""
        return cls(num_qubits, num_clbits, operations, name=name).freeze()

    def with_operations(
        self,
        operations: Iterable[Operation],
        num_qubits: Optional[int] = None,
        name: Optional[str] = None,
    ) -> "Circuit":
        return Circuit.from_operations(
            self.num_qubits if num_qubits is None else num_qubits,
            self.num_clbits,
            operations,
            name=self.name if name is None else name,
        )

    def freeze(self) -> "Circuit":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _append(self, op: Operation) -> None:
        if self._frozen:
            raise MalformedCircuitError(
                f"Circuit '{self.name}' is frozen; passes must build a new circuit",
                op_index=len(self._ops),
            )
        _check_operation(op, len(self._ops), self.num_qubits, self.num_clbits)
        self._ops.append(op)
        self._deps = None

    def append(
        self,
        name: str,
        qubits: Sequence[int],
        params: Sequence[ParamValue] = (),
        clbits: Sequence[int] = (),
    ) -> "Circuit":
        params = tuple(float(p) if is_bound(p) else p for p in params)
        self._append(Operation(name, tuple(int(q) for q in qubits), params, tuple(int(c) for c in clbits)))
        return self

    # Builder helpers ----------------------------------------------------------
    def id(self, q: int) -> "Circuit": return self.append("id", (q,))
    def x(self, q: int) -> "Circuit": return self.append("x", (q,))
    def y(self, q: int) -> "Circuit": return self.append("y", (q,))
    def z(self, q: int) -> "Circuit": return self.append("z", (q,))
    def h(self, q: int) -> "Circuit": return self.append("h", (q,))
    def s(self, q: int) -> "Circuit": return self.append("s", (q,))
    def sdg(self, q: int) -> "Circuit": return self.append("sdg", (q,))
    def t(self, q: int) -> "Circuit": return self.append("t", (q,))
    def tdg(self, q: int) -> "Circuit": return self.append("tdg", (q,))
    def sx(self, q: int) -> "Circuit": return self.append("sx", (q,))
    def sxdg(self, q: int) -> "Circuit": return self.append("sxdg", (q,))
    def rx(self, theta: ParamValue, q: int) -> "Circuit": return self.append("rx", (q,), (theta,))
    def ry(self, theta: ParamValue, q: int) -> "Circuit": return self.append("ry", (q,), (theta,))
    def rz(self, theta: ParamValue, q: int) -> "Circuit": return self.append("rz", (q,), (theta,))
    def p(self, lam: ParamValue, q: int) -> "Circuit": return self.append("p", (q,), (lam,))

    def u(self, theta: ParamValue, phi: ParamValue, lam: ParamValue, q: int) -> "Circuit":
        return self.append("u", (q,), (theta, phi, lam))

    def cx(self, c: int, t: int) -> "Circuit": return self.append("cx", (c, t))
    def cy(self, c: int, t: int) -> "Circuit": return self.append("cy", (c, t))
    def cz(self, c: int, t: int) -> "Circuit": return self.append("cz", (c, t))
    def swap(self, a: int, b: int) -> "Circuit": return self.append("swap", (a, b))
    def cp(self, lam: ParamValue, c: int, t: int) -> "Circuit": return self.append("cp", (c, t), (lam,))
    def rzz(self, theta: ParamValue, a: int, b: int) -> "Circuit": return self.append("rzz", (a, b), (theta,))
    def ccx(self, c0: int, c1: int, t: int) -> "Circuit": return self.append("ccx", (c0, c1, t))
    def cswap(self, c: int, a: int, b: int) -> "Circuit": return self.append("cswap", (c, a, b))

    def measure(self, qubit: Union[int, Sequence[int]], clbit: Union[int, Sequence[int]]) -> "Circuit":
        qubits = [qubit] if isinstance(qubit, Integral) else list(qubit)
        clbits = [clbit] if isinstance(clbit, Integral) else list(clbit)
        if len(qubits) != len(clbits):
            raise MalformedCircuitError("measure() needs as many clbits as qubits", op_index=len(self._ops))
        for q, c in zip(qubits, clbits):
            self.append(MEASURE, (q,), (), (c,))
        return self

    def measure_all(self) -> "Circuit":
        """Measure qubit ``i`` into clbit ``i`` for every qubit."""
        return self.measure(list(range(self.num_qubits)), list(range(self.num_qubits)))

    def barrier(self, *qubits: int) -> "Circuit":
        return self.append(BARRIER, qubits or tuple(range(self.num_qubits)))

    def delay(self, duration: float, q: int) -> "Circuit":
        return self.append(DELAY, (q,), (duration,))

    # ------------------------------------------------------------- container
    @property
    def operations(self) -> Tuple[Operation, ...]:
        return tuple(self._ops)

    def __len__(self) -> int:
        return len(self._ops)

    def __iter__(self) -> Iterator[Operation]:
        return iter(self._ops)

    def __getitem__(self, index: int) -> Operation:
        return self._ops[index]

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Circuit):
            return NotImplemented
        return (
            self.num_qubits == other.num_qubits
            and self.num_clbits == other.num_clbits
            and self._ops == other._ops
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Circuit(name={self.name!r}, qubits={self.num_qubits}, clbits={self.num_clbits}, ops={len(self._ops)})"

    # --------------------------------------------------------------- queries
    def size(self) -> int:
        """Number of operations excluding barriers."""
        return sum(1 for op in self._ops if op.name != BARRIER)

    def count_ops(self) -> Dict[str, int]:
        return dict(Counter(op.name for op in self._ops))

    def num_nonlocal_gates(self) -> int:
        return sum(1 for op in self._ops if op.is_gate and op.num_qubits >= 2)

    def has_measurements(self) -> bool:
        return any(op.name == MEASURE for op in self._ops)

    def active_qubits(self) -> List[int]:
        """Qubits touched by at least one non-barrier operation."""
        return sorted({q for op in self._ops if op.name != BARRIER for q in op.qubits})

    @property
    def parameters(self) -> FrozenSet[str]:
        names: Set[str] = set()
        for op in self._ops:
            for p in op.params:
                if not is_bound(p):
                    names |= {sym.name for sym in p.parameters}
        return frozenset(names)

    def shares_resource(self, i: int, j: int) -> bool:
        """True if operations ``i`` and ``j`` touch a common qubit or clbit."""
        return bool(set(self._ops[i].wires()) & set(self._ops[j].wires()))

    def _dependencies(self) -> Tuple[List[List[int]], List[List[int]]]:
        if self._deps is not None and self._frozen:
            return self._deps
        preds: List[List[int]] = [[] for _ in self._ops]
        succs: List[List[int]] = [[] for _ in self._ops]
        last: Dict[Tuple[str, int], int] = {}
        for idx, op in enumerate(self._ops):
            seen = set()
            for wire in op.wires():
                prev = last.get(wire)
                if prev is not None and prev not in seen:
                    seen.add(prev)
                    preds[idx].append(prev)
                    succs[prev].append(idx)
                last[wire] = idx
        self._deps = (preds, succs)
        return self._deps

    def predecessors(self, index: int) -> List[int]:
        """Immediate predecessors of ``index`` along its wires."""
        return list(self._dependencies()[0][index])

    def successors(self, index: int) -> List[int]:
        return list(self._dependencies()[1][index])

    def depth(self) -> int:
        """Longest dependency chain; barriers synchronise but add no depth."""
        wire_depth: Dict[Tuple[str, int], int] = {}
        best = 0
        for op in self._ops:
            wires = op.wires()
            level = max((wire_depth.get(w, 0) for w in wires), default=0)
            if op.name != BARRIER:
                level += 1
            for w in wires:
                wire_depth[w] = level
            best = max(best, level)
        return best

    def layers(self) -> List[List[int]]:
        """Operation indices grouped into ASAP layers."""
        wire_level: Dict[Tuple[str, int], int] = {}
        out: List[List[int]] = []
        for idx, op in enumerate(self._ops):
            wires = op.wires()
            level = max((wire_level.get(w, 0) for w in wires), default=0)
            for w in wires:
                wire_level[w] = level + 1
            while len(out) <= level:
                out.append([])
            out[level].append(idx)
        return out

    # --------------------------------------------------------------- rewrites
    def assign_parameters(self, values: Mapping[Any, float]) -> "Circuit":
        """Return a frozen copy with ``values`` substituted into every angle."""
        return self.with_operations(op.bind(values) for op in self._ops)

    def remove_final_measurements(self) -> Tuple["Circuit", List[Tuple[int, int]]]:
        """Strip measurements not followed by any other operation on their qubit.

        Returns the stripped circuit and the removed ``(qubit, clbit)`` pairs in
        program order.
        """
        busy: Set[int] = set()
        drop: Set[int] = set()
        for idx in range(len(self._ops) - 1, -1, -1):
            op = self._ops[idx]
            if op.name == BARRIER:
                continue
            if op.name == MEASURE and op.qubits[0] not in busy:
                drop.add(idx)
            busy.update(op.qubits)
        kept = [op for idx, op in enumerate(self._ops) if idx not in drop]
        removed = [(self._ops[idx].qubits[0], self._ops[idx].clbits[0]) for idx in sorted(drop)]
        return self.with_operations(kept), removed

    # --------------------------------------------------------- serialisation
    def to_dict(self) -> Dict[str, Any]:
        """Plain-data description (same schema as :meth:`to_yaml`)."""
        instrs: List[Dict[str, Any]] = []
        for op in self._ops:
            rec: Dict[str, Any] = {"name": op.name, "qubits": list(op.qubits)}
            if op.clbits:
                rec["clbits"] = list(op.clbits)
            if op.params:
                rec["params"] = [_param_to_serializable(p) for p in op.params]
            instrs.append(rec)
        return {
            "version": 1,
            "name": self.name,
            "qubits": self.num_qubits,
            "clbits": self.num_clbits,
            "instructions": instrs,
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Circuit":
        circ = cls(int(data["qubits"]), int(data.get("clbits", 0)), name=data.get("name", "circuit"))
        symbols: Dict[str, Parameter] = {}
        for rec in data.get("instructions", []):
            params = [parse_param(p, symbols) if isinstance(p, str) else p for p in rec.get("params", [])]
            circ.append(rec["name"], rec.get("qubits", []), params, rec.get("clbits", []))
        return circ.freeze()

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "Circuit":
        with open(Path(path), "r") as f:
            return cls.from_dict(yaml.safe_load(f))


def _param_to_serializable(p: ParamValue) -> Union[float, int, str]:
    """Numbers stay numbers; unbound expressions become their printed form.

    :func:`parse_param` reads that form back.
    """
    if not is_bound(p):
        return str(p)
    v = float(p)
    return int(v) if v.is_integer() else v
