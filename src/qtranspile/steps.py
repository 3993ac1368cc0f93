from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .circuit import Circuit, Operation
from .config import TranspileConfig
from .device import Device
from .equivalence import EquivalenceLibrary
from .exceptions import InsufficientQubitsError
from .gates import BARRIER
from .layout import Layout
from .passes import layout as layout_passes
from .passes import optimization, routing, scheduling, translation

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _prune_idle_qubits_simple(circuit: Circuit) -> Tuple[Circuit, List[int]]:
    """
    Return a copy of `circuit` with qubit wires removed if no operation other
    than a barrier touches them, plus the kept original indices in order.
    Barriers are narrowed to the kept wires (and dropped if none remain).
    """
    active = circuit.active_qubits()
    if len(active) == circuit.num_qubits:
        return circuit, list(range(circuit.num_qubits))

    index_map = {old: new for new, old in enumerate(active)}
    ops = []
    for op in circuit:
        if op.name == BARRIER:
            kept = tuple(index_map[q] for q in op.qubits if q in index_map)
            if kept:
                ops.append(Operation(BARRIER, kept))
            continue
        ops.append(replace(op, qubits=tuple(index_map[q] for q in op.qubits)))
    pruned = Circuit.from_operations(len(active), circuit.num_clbits, ops, name=circuit.name)
    return pruned, active


def _count_2q_and_swaps(circuit: Circuit) -> Tuple[int, int]:
    """Count two-qubit gates and SWAPs (SWAPs included in the 2Q total)."""
    twoq = sum(1 for op in circuit if op.is_gate and op.num_qubits == 2)
    swaps = sum(1 for op in circuit if op.name == "swap")
    return twoq, swaps


# -----------------------------------------------------------------------------
# Pure transpile steps (stateless, testable)
# -----------------------------------------------------------------------------

def validate(
    circuit: Circuit,
    device: Device,
    cfg: TranspileConfig,
    library: Optional[EquivalenceLibrary] = None,
) -> Tuple[Circuit, List[int]]:
    """
    Lower 3+ qubit gates and make sure the circuit fits the device.
    In lenient mode idle virtual qubits are pruned when the circuit is wider
    than the device. Returns the circuit and the kept virtual indices.
    """
    circuit = translation.unroll_multi_qubit(circuit, library)
    kept = list(range(circuit.num_qubits))
    if circuit.num_qubits > device.num_qubits:
        if not cfg.strict:
            pruned, kept = _prune_idle_qubits_simple(circuit)
            if pruned.num_qubits < circuit.num_qubits:
                logger.warning(
                    "pruned %d idle qubit(s) so '%s' fits on %d device qubits",
                    circuit.num_qubits - pruned.num_qubits, circuit.name, device.num_qubits,
                )
            circuit = pruned
        if circuit.num_qubits > device.num_qubits:
            raise InsufficientQubitsError(
                f"Circuit needs {circuit.num_qubits} qubits, device '{device.name}' has {device.num_qubits}",
                num_virtual=circuit.num_qubits,
                num_physical=device.num_qubits,
            )
    return circuit, kept


def initial_layout(
    circuit: Circuit,
    device: Device,
    cfg: TranspileConfig,
    seed: Optional[int],
    kept: Optional[List[int]] = None,
) -> Layout:
    """
    Choose the initial placement: explicit override first, then the level's method.
    `kept` lists the original index of each virtual qubit when validation pruned
    idle ones; explicit placements are given in original indices.
    """
    explicit = cfg.explicit_layout
    if explicit is not None:
        if kept is not None and kept != list(range(circuit.num_qubits)):
            mapping = dict(explicit) if isinstance(explicit, Mapping) else dict(enumerate(explicit))
            position = {old: new for new, old in enumerate(kept)}
            explicit = {position[v]: p for v, p in mapping.items() if v in position}
        return layout_passes.explicit_layout(explicit, circuit, device, strict=cfg.strict)
    return layout_passes.select_layout(
        circuit,
        device,
        cfg.layout_method.value,
        seed=seed,
        vf2_call_limit=cfg.vf2_call_limit,
        iterations=cfg.layout_iterations,
        lookahead_size=cfg.lookahead_size,
        iteration_factor=cfg.routing_iteration_factor,
    )


def route(circuit: Circuit, device: Device, layout: Layout, cfg: TranspileConfig, seed: Optional[int]) -> routing.RoutingResult:
    """
    Insert SWAPs to satisfy connectivity.
    """
    return routing.route(
        circuit,
        device,
        layout,
        cfg.routing_method.value,
        seed=seed,
        lookahead_size=cfg.lookahead_size,
        iteration_factor=cfg.routing_iteration_factor,
        trials=cfg.stochastic_trials,
    )


def unroll(
    circuit: Circuit,
    device: Device,
    cfg: TranspileConfig,
    library: Optional[EquivalenceLibrary] = None,
) -> Circuit:
    """
    Rewrite to the device basis through the equivalence library.
    """
    return translation.translate(circuit, device, library, cfg.approximation_degree)


def opt_local(
    circuit: Circuit,
    device: Device,
    cfg: TranspileConfig,
    library: Optional[EquivalenceLibrary] = None,
) -> Circuit:
    """
    Lightweight local cleanups that preserve routing.
    """
    return optimization.optimize(circuit, device, cfg.approximation_degree, library)


def schedule(circuit: Circuit, device: Device, cfg: TranspileConfig) -> Circuit:
    """
    Hardware-aware scheduling with DD on idle gaps.
    """
    return scheduling.insert_dd(circuit, device, cfg.dd_sequence.value, cfg.schedule_mode.value)


def score(
    circuit: Circuit,
    device: Device,
    swaps: Optional[int] = None,
    mode: str = "alap",
) -> Dict[str, Any]:
    """
    Compute core metrics with consistent counting rules.
    - depth: includes measurements; barriers add no depth.
    - size: operations excluding barriers.
    - twoq: two-qubit gates in the final circuit.
    - swaps: SWAPs inserted by routing (given explicitly since translation rewrites them).
    - n_qubits_reserved: physical wires of the routed circuit, even if idle.
    - n_qubits_active: physical qubits touched by at least one operation.
    - duration_dt / duration_ns: scheduled length from device durations.
    """
    twoq, swap_ops = _count_2q_and_swaps(circuit)
    duration_dt = scheduling.circuit_duration(circuit, device, mode)
    return {
        "n_qubits_reserved": circuit.num_qubits,
        "n_qubits_active": len(circuit.active_qubits()),
        "depth": int(circuit.depth()),
        "size": int(circuit.size()),
        "twoq": twoq,
        "swaps": swap_ops if swaps is None else int(swaps),
        "duration_dt": int(duration_dt),
        "duration_ns": float(duration_dt * device.dt * 1e9),
    }
