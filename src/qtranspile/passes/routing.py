"""SWAP insertion so every two-qubit gate acts on coupled physical qubits.

Two routers share the same contract: take a circuit over virtual qubits and an
initial layout, return a circuit over *all* device qubits (unused physical
qubits become ancillas) plus the final layout after the inserted swaps.

* :func:`stochastic_route` resolves each violating gate in program order with
  a handful of seeded random walks and keeps the cheapest one.
* :func:`sabre_route` is the front-layer / look-ahead heuristic with decay.

Both are bounded by :func:`iteration_cap` swaps and raise
:class:`~qtranspile.exceptions.RoutingTimeoutError` past it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple

import numpy as np

from ..circuit import Circuit, Operation
from ..device import Device
from ..exceptions import RoutingError, RoutingTimeoutError
from ..layout import Layout

logger = logging.getLogger(__name__)

DEFAULT_ITERATION_FACTOR = 10
LOOKAHEAD_WEIGHT = 0.5
DECAY_DELTA = 0.001
DECAY_RESET_INTERVAL = 5
STOCHASTIC_TRIALS = 8
STOCHASTIC_LOOKAHEAD = 4


@dataclass(frozen=True)
class RoutingResult:
    circuit: Circuit
    initial_layout: Layout
    final_layout: Layout
    swap_count: int


def iteration_cap(circuit: Circuit, device: Device, factor: int = DEFAULT_ITERATION_FACTOR) -> int:
    return int(factor) * (len(circuit) + 1) * max(1, device.diameter)


def first_violation(circuit: Circuit, device: Device) -> Optional[int]:
    """Index of the first two-qubit gate on uncoupled qubits, or ``None``."""
    for idx, op in enumerate(circuit):
        if op.is_gate and op.num_qubits == 2 and not device.are_connected(*op.qubits):
            return idx
    return None


class _MappingState:
    """Mutable virtual<->physical assignment over every device qubit."""

    def __init__(self, layout: Layout):
        self.v2p: List[int] = layout.full_mapping()
        self.p2v: List[int] = [0] * len(self.v2p)
        for v, p in enumerate(self.v2p):
            self.p2v[p] = v
        self.num_virtual = layout.num_virtual

    def copy(self) -> "_MappingState":
        clone = _MappingState.__new__(_MappingState)
        clone.v2p = list(self.v2p)
        clone.p2v = list(self.p2v)
        clone.num_virtual = self.num_virtual
        return clone

    def swap(self, p0: int, p1: int) -> None:
        v0, v1 = self.p2v[p0], self.p2v[p1]
        self.p2v[p0], self.p2v[p1] = v1, v0
        self.v2p[v0], self.v2p[v1] = p1, p0

    def physical(self, op: Operation) -> Operation:
        return op.remap(self.v2p)

    def layout(self, num_physical: int) -> Layout:
        return Layout(self.v2p[: self.num_virtual], num_physical)


def _check_routable(circuit: Circuit, device: Device, layout: Layout) -> None:
    if layout.num_virtual != circuit.num_qubits:
        raise RoutingError(
            f"Layout places {layout.num_virtual} qubits but the circuit has {circuit.num_qubits}",
        )
    dist = device.distance_matrix()
    for idx, op in enumerate(circuit):
        if not op.is_gate:
            continue
        if op.num_qubits > 2:
            raise RoutingError(
                f"Gate '{op.name}' on {op.num_qubits} qubits must be unrolled before routing",
                op_index=idx,
                qubit=op.qubits[0],
            )
        if op.num_qubits == 2:
            pa, pb = layout.physical(op.qubits[0]), layout.physical(op.qubits[1])
            if not np.isfinite(dist[pa, pb]):
                raise RoutingError(
                    f"Qubits {op.qubits[0]} and {op.qubits[1]} sit on disconnected parts of the device",
                    op_index=idx,
                    qubit=op.qubits[0],
                )


def _swap_op(p0: int, p1: int) -> Operation:
    return Operation("swap", (p0, p1))


# --------------------------------------------------------------------------
# Stochastic router
# --------------------------------------------------------------------------

def _edge_weight(device: Device, a: int, b: int) -> float:
    err = device.edge_errors.get((min(a, b), max(a, b)))
    if err is None:
        return 1.0
    return 1.0 / max(err, 1e-6)


def _random_walk(
    state: _MappingState, pa: int, pb: int, device: Device, rng: np.random.Generator
) -> List[Tuple[int, int]]:
    """Distance-reducing swaps until ``pa`` and ``pb`` are coupled."""
    swaps: List[Tuple[int, int]] = []
    while device.distance(pa, pb) > 1:
        d = device.distance(pa, pb)
        cands: List[Tuple[int, int]] = []
        for n in device.neighbors(pa):
            if device.distance(n, pb) < d:
                cands.append((pa, n))
        for n in device.neighbors(pb):
            if device.distance(n, pa) < d:
                cands.append((pb, n))
        weights = np.array([_edge_weight(device, a, b) for a, b in cands])
        pick = cands[int(rng.choice(len(cands), p=weights / weights.sum()))]
        state.swap(*pick)
        swaps.append((min(pick), max(pick)))
        if pick[0] == pa:
            pa = pick[1]
        else:
            pb = pick[1]
    return swaps


def _lookahead_cost(state: _MappingState, upcoming: Sequence[Operation], device: Device) -> float:
    total = 0.0
    for op in upcoming:
        d = device.distance(state.v2p[op.qubits[0]], state.v2p[op.qubits[1]])
        total += max(0.0, d - 1.0)
    return total


def stochastic_route(
    circuit: Circuit,
    device: Device,
    layout: Layout,
    seed: Optional[int] = None,
    trials: int = STOCHASTIC_TRIALS,
    iteration_factor: int = DEFAULT_ITERATION_FACTOR,
) -> RoutingResult:
    """Route gate by gate, keeping the best of ``trials`` seeded random walks."""
    _check_routable(circuit, device, layout)
    rng = np.random.default_rng(seed)
    cap = iteration_cap(circuit, device, iteration_factor)
    state = _MappingState(layout)
    ops = circuit.operations
    twoq_positions = [i for i, op in enumerate(ops) if op.is_gate and op.num_qubits == 2]
    out: List[Operation] = []
    swap_count = 0
    next_twoq = 0

    for idx, op in enumerate(ops):
        if op.is_gate and op.num_qubits == 2:
            next_twoq += 1
            pa, pb = state.v2p[op.qubits[0]], state.v2p[op.qubits[1]]
            if not device.are_connected(pa, pb):
                upcoming = [ops[i] for i in twoq_positions[next_twoq: next_twoq + STOCHASTIC_LOOKAHEAD]]
                best: Optional[Tuple[float, List[Tuple[int, int]], _MappingState]] = None
                for _ in range(max(1, trials)):
                    trial = state.copy()
                    swaps = _random_walk(trial, pa, pb, device, rng)
                    score = len(swaps) + _lookahead_cost(trial, upcoming, device)
                    if best is None or score < best[0]:
                        best = (score, swaps, trial)
                _, swaps, state = best
                for p0, p1 in swaps:
                    out.append(_swap_op(p0, p1))
                swap_count += len(swaps)
                if swap_count > cap:
                    raise RoutingTimeoutError(
                        f"Stochastic routing exceeded {cap} swaps", op_index=idx, cap=cap
                    )
        out.append(state.physical(op))

    logger.debug("stochastic_route: %d swap(s)", swap_count)
    routed = Circuit.from_operations(device.num_qubits, circuit.num_clbits, out, name=circuit.name)
    return RoutingResult(routed, layout, state.layout(device.num_qubits), swap_count)


# --------------------------------------------------------------------------
# SABRE router
# --------------------------------------------------------------------------

class _SabreState:
    def __init__(self, circuit: Circuit):
        ops = circuit.operations
        self.ops = ops
        self.pending = [len(circuit.predecessors(i)) for i in range(len(ops))]
        self.succs = [circuit.successors(i) for i in range(len(ops))]
        self.front: List[int] = [i for i, n in enumerate(self.pending) if n == 0]

    def complete(self, idx: int) -> None:
        self.front.remove(idx)
        for s in self.succs[idx]:
            self.pending[s] -= 1
            if self.pending[s] == 0:
                self.front.append(s)
        self.front.sort()

    def extended_set(self, size: int) -> List[int]:
        """Two-qubit gates reachable from the front layer, nearest first."""
        out: List[int] = []
        seen: Set[int] = set(self.front)
        queue = list(self.front)
        head = 0
        while head < len(queue) and len(out) < size:
            idx = queue[head]
            head += 1
            for s in self.succs[idx]:
                if s in seen:
                    continue
                seen.add(s)
                queue.append(s)
                op = self.ops[s]
                if op.is_gate and op.num_qubits == 2:
                    out.append(s)
                    if len(out) >= size:
                        break
        return out


def sabre_route(
    circuit: Circuit,
    device: Device,
    layout: Layout,
    lookahead_size: int = 20,
    iteration_factor: int = DEFAULT_ITERATION_FACTOR,
    distances: Optional[np.ndarray] = None,
) -> RoutingResult:
    """SABRE swap search with an extended look-ahead set and decay.

    Candidate swaps are the couplings touching a blocked front-layer gate;
    the cheapest by ``front + 0.5 * extended`` average distance (scaled by the
    decay of the two qubits) wins, ties to the lowest ``(p0, p1)``. When no
    gate becomes executable for too long the nearest blocked gate is forced
    along a shortest path.

    ``distances`` replaces the hop-count matrix in the swap score; layout
    search passes error-weighted distances here.
    """
    _check_routable(circuit, device, layout)
    cap = iteration_cap(circuit, device, iteration_factor)
    dist = device.distance_matrix() if distances is None else distances
    state = _MappingState(layout)
    dag = _SabreState(circuit)
    ops = dag.ops
    decay = np.ones(device.num_qubits)
    out: List[Operation] = []
    swap_count = 0
    swaps_since_reset = 0
    stall = 0
    max_stall = 10 * max(1, device.diameter)

    def executable(idx: int) -> bool:
        op = ops[idx]
        if not op.is_gate or op.num_qubits < 2:
            return True
        return device.are_connected(state.v2p[op.qubits[0]], state.v2p[op.qubits[1]])

    def gate_distance(idx: int) -> float:
        q0, q1 = ops[idx].qubits
        return float(dist[state.v2p[q0], state.v2p[q1]])

    def apply_swap(p0: int, p1: int) -> None:
        nonlocal swap_count, swaps_since_reset
        out.append(_swap_op(p0, p1))
        state.swap(p0, p1)
        swap_count += 1
        if swap_count > cap:
            blocked = dag.front[0] if dag.front else None
            raise RoutingTimeoutError(f"SABRE routing exceeded {cap} swaps", op_index=blocked, cap=cap)
        decay[p0] += DECAY_DELTA
        decay[p1] += DECAY_DELTA
        swaps_since_reset += 1
        if swaps_since_reset >= DECAY_RESET_INTERVAL:
            decay[:] = 1.0
            swaps_since_reset = 0

    while dag.front:
        progressed = True
        executed_any = False
        while progressed:
            progressed = False
            for idx in list(dag.front):
                if executable(idx):
                    out.append(state.physical(ops[idx]))
                    dag.complete(idx)
                    progressed = executed_any = True
        if not dag.front:
            break
        if executed_any:
            decay[:] = 1.0
            swaps_since_reset = 0
            stall = 0

        blocked = [i for i in dag.front if not executable(i)]
        if stall >= max_stall:
            # Release valve: walk the nearest blocked gate's first qubit along a shortest path.
            target = min(blocked, key=lambda i: (gate_distance(i), i))
            q0, q1 = ops[target].qubits
            path = device.shortest_path(state.v2p[q0], state.v2p[q1])
            for a, b in zip(path[:-2], path[1:-1]):
                apply_swap(min(a, b), max(a, b))
            stall = 0
            continue

        extended = dag.extended_set(lookahead_size)
        candidates = set()
        for idx in blocked:
            for v in ops[idx].qubits:
                p = state.v2p[v]
                for n in device.neighbors(p):
                    candidates.add((min(p, n), max(p, n)))

        best_swap: Optional[Tuple[int, int]] = None
        best_score = float("inf")
        for p0, p1 in sorted(candidates):
            state.swap(p0, p1)
            front_cost = sum(gate_distance(i) for i in blocked) / len(blocked)
            ext_cost = sum(gate_distance(i) for i in extended) / len(extended) if extended else 0.0
            state.swap(p0, p1)
            score = max(decay[p0], decay[p1]) * (front_cost + LOOKAHEAD_WEIGHT * ext_cost)
            if score < best_score - 1e-12:
                best_score = score
                best_swap = (p0, p1)
        apply_swap(*best_swap)
        stall += 1

    logger.debug("sabre_route: %d swap(s)", swap_count)
    routed = Circuit.from_operations(device.num_qubits, circuit.num_clbits, out, name=circuit.name)
    return RoutingResult(routed, layout, state.layout(device.num_qubits), swap_count)


def route(
    circuit: Circuit,
    device: Device,
    layout: Layout,
    method: str = "sabre",
    seed: Optional[int] = None,
    lookahead_size: int = 20,
    iteration_factor: int = DEFAULT_ITERATION_FACTOR,
    trials: int = STOCHASTIC_TRIALS,
) -> RoutingResult:
    """Dispatch on a routing method name and check the adjacency post-condition."""
    if method == "sabre":
        result = sabre_route(circuit, device, layout, lookahead_size, iteration_factor)
    elif method == "stochastic":
        result = stochastic_route(circuit, device, layout, seed, trials, iteration_factor)
    else:
        raise ValueError(f"Unknown routing method '{method}'")
    bad = first_violation(result.circuit, device)
    if bad is not None:
        raise RoutingError("Routed circuit still has an uncoupled two-qubit gate", op_index=bad)
    return result
