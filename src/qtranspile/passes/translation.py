"""Basis translation by search over the equivalence library."""
from __future__ import annotations

import logging
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from ..circuit import Circuit, Operation
from ..device import Device
from ..equivalence import EquivalenceLibrary, EquivalenceRule, standard_library
from ..exceptions import TranspilerError, UnsupportedGateError
from ..gates import DIRECTIVES, ROTATION_GATES, gate_matrix, identity_infidelity

logger = logging.getLogger(__name__)

Cost = Tuple[float, int]

_MAX_EXPANSION_DEPTH = 64


def _add(a: Cost, b: Cost) -> Cost:
    return (a[0] + b[0], a[1] + b[1])


def plan_translation(
    basis: Iterable[str],
    library: EquivalenceLibrary,
    native_cost: Callable[[str], Cost],
) -> Dict[str, Tuple[Cost, Optional[EquivalenceRule]]]:
    """Cheapest derivation of every reachable gate in terms of ``basis``.

    Bellman-Ford style relaxation: native gates cost ``native_cost(name)``, a
    rule costs the element-wise sum of its body. Rules are relaxed in
    registration order and only strict improvements are taken, so ties go to
    the earliest registered rule. Native gates map to ``None``.
    """
    basis = frozenset(basis)
    best: Dict[str, Tuple[Cost, Optional[EquivalenceRule]]] = {
        name: (native_cost(name), None) for name in basis
    }
    rules = list(library)
    changed = True
    while changed:
        changed = False
        for rule in rules:
            if rule.source in basis:
                continue
            total: Cost = (0.0, 0)
            for entry in rule.body:
                found = best.get(entry.name)
                if found is None:
                    break
                total = _add(total, found[0])
            else:
                current = best.get(rule.source)
                if current is None or total < current[0]:
                    best[rule.source] = (total, rule)
                    changed = True
    return best


def device_cost(device: Device) -> Callable[[str], Cost]:
    def cost(name: str) -> Cost:
        err = device.average_gate_error(name) if device.has_error_data else None
        return (float(err) if err is not None else 0.0, 1)
    return cost


class BasisTranslator:
    """Rewrites gates into a fixed native basis.

    The derivation plan is computed once per translator and reused for every
    circuit (and for pulse sequences inserted later in the pipeline).
    """

    def __init__(
        self,
        basis: Iterable[str],
        library: Optional[EquivalenceLibrary] = None,
        native_cost: Optional[Callable[[str], Cost]] = None,
    ):
        self.basis: FrozenSet[str] = frozenset(basis)
        self.library = library if library is not None else standard_library()
        self._plan = plan_translation(self.basis, self.library, native_cost or (lambda _: (0.0, 1)))

    @classmethod
    def for_device(cls, device: Device, library: Optional[EquivalenceLibrary] = None) -> "BasisTranslator":
        return cls(device.basis_gates, library, device_cost(device))

    def supports(self, name: str) -> bool:
        return name in DIRECTIVES or name in self._plan

    def cost(self, name: str) -> Optional[Cost]:
        found = self._plan.get(name)
        return found[0] if found else None

    def rule_for(self, name: str) -> Optional[EquivalenceRule]:
        found = self._plan.get(name)
        return found[1] if found else None

    def translate_operation(self, op: Operation, index: Optional[int] = None) -> List[Operation]:
        if op.name in DIRECTIVES or op.name in self.basis:
            return [op]
        if op.name not in self._plan:
            raise UnsupportedGateError(
                f"No equivalence path from '{op.name}' to basis {sorted(self.basis)}",
                op_index=index,
                qubit=op.qubits[0] if op.qubits else None,
                gate=op.name,
            )
        return self._expand(op, 0)

    def _expand(self, op: Operation, depth: int) -> List[Operation]:
        if op.name in self.basis:
            return [op]
        if depth > _MAX_EXPANSION_DEPTH:
            raise TranspilerError(f"Equivalence expansion of '{op.name}' does not terminate")
        rule = self._plan[op.name][1]
        out: List[Operation] = []
        for sub in rule.apply(op):
            out.extend(self._expand(sub, depth + 1))
        return out

    def run(self, circuit: Circuit) -> Circuit:
        ops: List[Operation] = []
        for idx, op in enumerate(circuit):
            ops.extend(self.translate_operation(op, idx))
        return circuit.with_operations(ops)


def translate(
    circuit: Circuit,
    device: Device,
    library: Optional[EquivalenceLibrary] = None,
    approximation_degree: float = 1.0,
) -> Circuit:
    """Rewrite every gate of ``circuit`` into ``device.basis_gates``.

    Raises:
        UnsupportedGateError: if some gate has no derivation; carries the
            operation index and gate name.
    """
    if approximation_degree < 1.0:
        circuit = drop_negligible_rotations(circuit, 1.0 - approximation_degree)
    out = BasisTranslator.for_device(device, library).run(circuit)
    logger.debug("translate: %d ops -> %d ops in basis %s", len(circuit), len(out), sorted(device.basis_gates))
    return out


def drop_negligible_rotations(circuit: Circuit, tolerance: float) -> Circuit:
    """Remove bound rotations whose process infidelity to identity is at most ``tolerance``."""
    kept = []
    dropped = 0
    for op in circuit:
        if op.name in ROTATION_GATES and not op.is_parameterized:
            if identity_infidelity(gate_matrix(op.name, op.params)) <= tolerance:
                dropped += 1
                continue
        kept.append(op)
    if dropped:
        logger.debug("approximation dropped %d rotation(s) (tolerance %.3g)", dropped, tolerance)
    return circuit.with_operations(kept)


def unroll_multi_qubit(circuit: Circuit, library: Optional[EquivalenceLibrary] = None) -> Circuit:
    """Lower every gate on three or more qubits into one- and two-qubit gates.

    Uses the first registered rule for the gate and recurses until no wide
    gate remains. Barriers are left alone.
    """
    library = library if library is not None else standard_library()
    if all(op.num_qubits <= 2 or not op.is_gate for op in circuit):
        return circuit

    def lower(op: Operation, index: int, depth: int) -> List[Operation]:
        if op.num_qubits <= 2 or not op.is_gate:
            return [op]
        rules = library.rules_for(op.name)
        if not rules or depth > _MAX_EXPANSION_DEPTH:
            raise UnsupportedGateError(
                f"No rule lowers {op.num_qubits}-qubit gate '{op.name}'",
                op_index=index,
                qubit=op.qubits[0],
                gate=op.name,
            )
        out: List[Operation] = []
        for sub in rules[0].apply(op):
            out.extend(lower(sub, index, depth + 1))
        return out

    ops: List[Operation] = []
    for idx, op in enumerate(circuit):
        ops.extend(lower(op, idx, 0))
    return circuit.with_operations(ops)
