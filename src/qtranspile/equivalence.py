"""Gate equivalence rules used by basis translation.

A rule rewrites one source gate into a short body of other gates acting on
the same operands. Parameter maps are plain arithmetic on the source angles so
they evaluate on floats and on unbound qiskit ``ParameterExpression`` values
alike.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, Iterator, List, Sequence, Tuple

from .circuit import Operation, ParamValue, is_bound
from .gates import STANDARD_GATES

PI = math.pi

ParamMap = Callable[[Sequence[ParamValue]], Tuple[ParamValue, ...]]


@dataclass(frozen=True)
class RuleOp:
    """One entry of a rule body: gate name, local operand indices, parameter map."""
    name: str
    qubits: Tuple[int, ...]
    params: ParamMap


def _no_params(_: Sequence[ParamValue]) -> Tuple[ParamValue, ...]:
    return ()


def _fixed(*values: float) -> ParamMap:
    return lambda _: tuple(values)


def _op(name: str, qubits: Sequence[int], params: ParamMap = _no_params) -> RuleOp:
    return RuleOp(name, tuple(qubits), params)


def _normalize(value: ParamValue) -> ParamValue:
    return float(value) if is_bound(value) else value


@dataclass(frozen=True)
class EquivalenceRule:
    """``source`` is equal, up to global phase, to ``body`` applied in order."""
    source: str
    body: Tuple[RuleOp, ...]

    @property
    def gates(self) -> FrozenSet[str]:
        return frozenset(r.name for r in self.body)

    def apply(self, op: Operation) -> List[Operation]:
        """Instantiate the body on the operands and angles of ``op``."""
        if op.name != self.source:
            raise ValueError(f"Rule for '{self.source}' cannot rewrite '{op.name}'")
        out = []
        for entry in self.body:
            params = tuple(_normalize(p) for p in entry.params(op.params))
            out.append(Operation(entry.name, tuple(op.qubits[i] for i in entry.qubits), params))
        return out

    def __repr__(self) -> str:
        return f"EquivalenceRule({self.source} -> {[r.name for r in self.body]})"


class EquivalenceLibrary:
    """Ordered collection of rules; registration order breaks cost ties."""

    def __init__(self, rules: Iterable[EquivalenceRule] = ()):
        self._rules: List[EquivalenceRule] = []
        for rule in rules:
            self.add(rule)

    def add(self, rule: EquivalenceRule) -> None:
        spec = STANDARD_GATES.get(rule.source)
        if spec is not None:
            for entry in rule.body:
                if any(not 0 <= q < spec.num_qubits for q in entry.qubits):
                    raise ValueError(f"{rule!r} uses an operand outside the source gate's arity")
        self._rules.append(rule)

    def add_rule(self, source: str, body: Iterable[RuleOp]) -> None:
        self.add(EquivalenceRule(source, tuple(body)))

    def rules_for(self, name: str) -> List[EquivalenceRule]:
        return [r for r in self._rules if r.source == name]

    def gates(self) -> FrozenSet[str]:
        names = set()
        for rule in self._rules:
            names.add(rule.source)
            names |= rule.gates
        return frozenset(names)

    def copy(self) -> "EquivalenceLibrary":
        return EquivalenceLibrary(self._rules)

    def __iter__(self) -> Iterator[EquivalenceRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)


def standard_library() -> EquivalenceLibrary:
    """Rules reaching {rz, sx, x}, {u}, {rz, rx}, {p, ...} and {cx}/{cz} bases."""
    lib = EquivalenceLibrary()
    add = lib.add_rule

    # Identity disappears.
    add("id", [])

    # --- single-qubit, towards {rz, sx, x} ---------------------------------
    add("h", [_op("rz", [0], _fixed(PI / 2)), _op("sx", [0]), _op("rz", [0], _fixed(PI / 2))])
    add("x", [_op("sx", [0]), _op("sx", [0])])
    add("y", [_op("z", [0]), _op("x", [0])])
    add("z", [_op("rz", [0], _fixed(PI))])
    add("s", [_op("rz", [0], _fixed(PI / 2))])
    add("sdg", [_op("rz", [0], _fixed(-PI / 2))])
    add("t", [_op("rz", [0], _fixed(PI / 4))])
    add("tdg", [_op("rz", [0], _fixed(-PI / 4))])
    add("p", [_op("rz", [0], lambda p: (p[0],))])
    add("sxdg", [_op("rz", [0], _fixed(PI)), _op("sx", [0]), _op("rz", [0], _fixed(PI))])
    add("rx", [_op("u", [0], lambda p: (p[0], -PI / 2, PI / 2))])
    add("ry", [_op("u", [0], lambda p: (p[0], 0.0, 0.0))])
    add(
        "u",
        [
            _op("rz", [0], lambda p: (p[2],)),
            _op("sx", [0]),
            _op("rz", [0], lambda p: (p[0] + PI,)),
            _op("sx", [0]),
            _op("rz", [0], lambda p: (p[1] + PI,)),
        ],
    )

    # --- single-qubit, towards {u} ------------------------------------------
    add("rz", [_op("u", [0], lambda p: (0.0, 0.0, p[0]))])
    add("sx", [_op("u", [0], _fixed(PI / 2, -PI / 2, PI / 2))])
    add("x", [_op("u", [0], _fixed(PI, 0.0, PI))])
    add("h", [_op("u", [0], _fixed(PI / 2, 0.0, PI))])

    # --- single-qubit, towards {rz, rx} and {p} -----------------------------
    add("sx", [_op("rx", [0], _fixed(PI / 2))])
    add("x", [_op("rx", [0], _fixed(PI))])
    add("ry", [_op("rz", [0], _fixed(-PI / 2)), _op("rx", [0], lambda p: (p[0],)), _op("rz", [0], _fixed(PI / 2))])
    add(
        "u",
        [
            _op("rz", [0], lambda p: (p[2],)),
            _op("ry", [0], lambda p: (p[0],)),
            _op("rz", [0], lambda p: (p[1],)),
        ],
    )
    add("rz", [_op("p", [0], lambda p: (p[0],))])

    # --- two-qubit ------------------------------------------------------------
    add("cz", [_op("h", [1]), _op("cx", [0, 1]), _op("h", [1])])
    add("cx", [_op("h", [1]), _op("cz", [0, 1]), _op("h", [1])])
    add("cy", [_op("sdg", [1]), _op("cx", [0, 1]), _op("s", [1])])
    add("swap", [_op("cx", [0, 1]), _op("cx", [1, 0]), _op("cx", [0, 1])])
    add(
        "cp",
        [
            _op("p", [0], lambda p: (p[0] / 2,)),
            _op("cx", [0, 1]),
            _op("p", [1], lambda p: (-p[0] / 2,)),
            _op("cx", [0, 1]),
            _op("p", [1], lambda p: (p[0] / 2,)),
        ],
    )
    add("rzz", [_op("cx", [0, 1]), _op("rz", [1], lambda p: (p[0],)), _op("cx", [0, 1])])

    # --- three-qubit ----------------------------------------------------------
    add(
        "ccx",
        [
            _op("h", [2]),
            _op("cx", [1, 2]),
            _op("tdg", [2]),
            _op("cx", [0, 2]),
            _op("t", [2]),
            _op("cx", [1, 2]),
            _op("tdg", [2]),
            _op("cx", [0, 2]),
            _op("t", [1]),
            _op("t", [2]),
            _op("h", [2]),
            _op("cx", [0, 1]),
            _op("t", [0]),
            _op("tdg", [1]),
            _op("cx", [0, 1]),
        ],
    )
    add("cswap", [_op("cx", [2, 1]), _op("ccx", [0, 1, 2]), _op("cx", [2, 1])])
    return lib


def rules_by_source(library: EquivalenceLibrary) -> Dict[str, List[EquivalenceRule]]:
    out: Dict[str, List[EquivalenceRule]] = {}
    for rule in library:
        out.setdefault(rule.source, []).append(rule)
    return out
