"""Local peephole optimisation that preserves routing.

Two rewrites iterated to a fixed point:

* maximal runs of bound single-qubit gates on one wire are collapsed to their
  product and re-synthesised in the native basis (or dropped when the product
  is the identity up to global phase);
* adjacent identical self-inverse two-qubit gates cancel.

A run is only replaced when the new sequence is strictly shorter or the run
contains non-native gates, so running the pass twice changes nothing.
"""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..circuit import Circuit, Operation
from ..device import Device
from ..equivalence import EquivalenceLibrary
from ..exceptions import UnsupportedGateError
from ..gates import STANDARD_GATES, equal_up_to_phase, euler_angles, gate_matrix, identity_infidelity, wrap_angle
from .translation import BasisTranslator

logger = logging.getLogger(__name__)

IDENTITY_TOLERANCE = 1e-10
_ANGLE_TOL = 1e-9
_MAX_ROUNDS = 16
_SYMMETRIC = frozenset({"cz", "swap"})
_I2 = np.eye(2, dtype=complex)


def _near(a: float, b: float) -> bool:
    return abs(wrap_angle(a - b)) < _ANGLE_TOL


def _is_run_member(op: Operation) -> bool:
    return op.is_gate and op.num_qubits == 1 and not op.is_parameterized


def run_matrix(ops: Sequence[Operation]) -> np.ndarray:
    m = _I2
    for op in ops:
        m = gate_matrix(op.name, op.params) @ m
    return m


def _is_identity(matrix: np.ndarray, approximation_degree: float) -> bool:
    if equal_up_to_phase(matrix, _I2, atol=IDENTITY_TOLERANCE):
        return True
    return approximation_degree < 1.0 and identity_infidelity(matrix) <= 1.0 - approximation_degree


class OneQubitSynthesizer:
    """Turns a 2x2 unitary into the shortest native sequence it can find."""

    def __init__(self, translator: BasisTranslator):
        self.translator = translator

    def _candidates(self, theta: float, phi: float, lam: float) -> List[List[Tuple[str, Tuple[float, ...]]]]:
        out = []
        if _near(theta, 0.0):
            out.append([("rz", (phi + lam,))])
        elif _near(theta, math.pi / 2):
            out.append([("rz", (lam - math.pi / 2,)), ("sx", ()), ("rz", (phi + math.pi / 2,))])
        elif _near(theta, math.pi) and "x" in self.translator.basis:
            out.append([("rz", (lam - math.pi,)), ("x", ()), ("rz", (phi,))])
        out.append([("u", (theta, phi, lam))])
        return out

    def synthesize(self, matrix: np.ndarray, qubit: int) -> Optional[List[Operation]]:
        theta, phi, lam = euler_angles(matrix)
        best: Optional[List[Operation]] = None
        for cand in self._candidates(theta, phi, lam):
            try:
                ops: List[Operation] = []
                for name, params in cand:
                    ops.extend(self.translator.translate_operation(Operation(name, (qubit,), params)))
            except UnsupportedGateError:
                continue
            ops = _clean(ops)
            if best is None or len(ops) < len(best):
                best = ops
        return best


def _clean(ops: List[Operation]) -> List[Operation]:
    """Wrap angles and drop zero-angle phase rotations."""
    out = []
    for op in ops:
        if op.name in ("rz", "p"):
            angle = wrap_angle(float(op.params[0]))
            if abs(angle) < _ANGLE_TOL:
                continue
            op = Operation(op.name, op.qubits, (angle,))
        elif op.name == "u":
            op = Operation(op.name, op.qubits, tuple(wrap_angle(float(p)) for p in op.params))
        out.append(op)
    return out


def collapse_1q_runs(
    circuit: Circuit,
    synthesizer: OneQubitSynthesizer,
    approximation_degree: float = 1.0,
) -> Circuit:
    basis = synthesizer.translator.basis
    out: List[Operation] = []
    pending: Dict[int, List[Operation]] = defaultdict(list)

    def flush(q: int) -> None:
        run = pending.pop(q, None)
        if not run:
            return
        matrix = run_matrix(run)
        if _is_identity(matrix, approximation_degree):
            return
        has_foreign = any(op.name not in basis for op in run)
        new = synthesizer.synthesize(matrix, q)
        if new is not None and (len(new) < len(run) or has_foreign):
            out.extend(new)
        else:
            out.extend(run)

    for op in circuit:
        if _is_run_member(op):
            pending[op.qubits[0]].append(op)
            continue
        for q in op.qubits:
            flush(q)
        out.append(op)
    for q in sorted(pending):
        flush(q)
    return circuit.with_operations(out)


def _cancellable(op: Operation) -> bool:
    spec = STANDARD_GATES.get(op.name)
    return spec is not None and spec.num_qubits == 2 and spec.self_inverse


def _inverse_pair(a: Operation, b: Operation) -> bool:
    if a.name != b.name:
        return False
    if a.qubits == b.qubits:
        return True
    return a.name in _SYMMETRIC and sorted(a.qubits) == sorted(b.qubits)


def cancel_2q_pairs(circuit: Circuit) -> Circuit:
    out: List[Optional[Operation]] = []
    stacks: Dict[Tuple[str, int], List[int]] = defaultdict(list)
    for op in circuit:
        wires = op.wires()
        if _cancellable(op):
            tops = {stacks[w][-1] if stacks[w] else None for w in wires}
            if len(tops) == 1:
                k = tops.pop()
                if k is not None and _inverse_pair(out[k], op):
                    out[k] = None
                    for w in wires:
                        stacks[w].pop()
                    continue
        out.append(op)
        for w in wires:
            stacks[w].append(len(out) - 1)
    return circuit.with_operations(o for o in out if o is not None)


def optimize(
    circuit: Circuit,
    device: Device,
    approximation_degree: float = 1.0,
    library: Optional[EquivalenceLibrary] = None,
) -> Circuit:
    """Collapse 1q runs and cancel 2q pairs until nothing changes."""
    synthesizer = OneQubitSynthesizer(BasisTranslator.for_device(device, library))
    current = circuit
    for _ in range(_MAX_ROUNDS):
        nxt = cancel_2q_pairs(collapse_1q_runs(current, synthesizer, approximation_degree))
        if nxt == current:
            break
        current = nxt
    logger.debug("optimize: %d ops -> %d ops", len(circuit), len(current))
    return current
