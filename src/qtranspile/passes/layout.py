"""Initial placement of virtual qubits onto device qubits."""
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import networkx as nx
import numpy as np
import rustworkx as rx

from ..circuit import Circuit, Operation
from ..device import Device
from ..exceptions import InsufficientQubitsError, InvalidLayoutError
from ..layout import Layout
from .routing import DEFAULT_ITERATION_FACTOR, sabre_route

logger = logging.getLogger(__name__)

LayoutSpec = Union[Mapping[int, int], Sequence[int]]


def _require_fit(circuit: Circuit, device: Device) -> None:
    if circuit.num_qubits > device.num_qubits:
        raise InsufficientQubitsError(
            f"Circuit needs {circuit.num_qubits} qubits, device '{device.name}' has {device.num_qubits}",
            num_virtual=circuit.num_qubits,
            num_physical=device.num_qubits,
        )


def trivial_layout(circuit: Circuit, device: Device) -> Layout:
    _require_fit(circuit, device)
    return Layout.trivial(circuit.num_qubits, device.num_qubits)


def interaction_graph(circuit: Circuit) -> nx.Graph:
    """Undirected graph of virtual qubits that share a two-qubit gate."""
    graph = nx.Graph()
    for op in circuit:
        if op.is_gate and op.num_qubits == 2:
            graph.add_edge(*op.qubits)
    return graph


def _complete(partial: Mapping[int, int], num_virtual: int, num_physical: int) -> Layout:
    """Fill unplaced virtual qubits with the lowest free physical indices."""
    used = set(partial.values())
    free = iter(p for p in range(num_physical) if p not in used)
    v2p = [partial[v] if v in partial else next(free) for v in range(num_virtual)]
    return Layout(v2p, num_physical)


def _rx_graph(num_nodes: int, edges) -> rx.PyGraph:
    graph = rx.PyGraph()
    graph.add_nodes_from(range(num_nodes))
    graph.add_edges_from_no_data(list(edges))
    return graph


def vf2_layout(circuit: Circuit, device: Device, call_limit: int = 10_000) -> Optional[Layout]:
    """Perfect layout (no swaps needed) by subgraph monomorphism, or ``None``.

    The rustworkx VF2 search visits at most ``call_limit`` states, so it
    terminates quickly even when no embedding exists. Among the mappings found
    it keeps the one with the lowest summed edge error, ties to the
    lexicographically smallest assignment.
    """
    _require_fit(circuit, device)
    inter = interaction_graph(circuit)
    if inter.number_of_nodes() == 0:
        return trivial_layout(circuit, device)
    if inter.number_of_edges() > len(device.edges):
        logger.info("vf2_layout: %s has more interactions than %s has couplers", circuit.name, device.name)
        return None

    virtuals = sorted(inter.nodes())
    index = {v: i for i, v in enumerate(virtuals)}
    inter_rx = _rx_graph(len(virtuals), ((index[a], index[b]) for a, b in inter.edges()))
    device_rx = _rx_graph(device.num_qubits, device.edges)
    mappings = rx.vf2_mapping(
        device_rx, inter_rx, subgraph=True, induced=False, id_order=True, call_limit=call_limit
    )

    best: Optional[Tuple[float, Tuple[int, ...], Dict[int, int]]] = None
    for mapping in mappings:
        v2p = {virtuals[i]: p for p, i in mapping.items()}
        cost = 0.0
        for a, b in inter.edges():
            pa, pb = v2p[a], v2p[b]
            cost += device.edge_errors.get((min(pa, pb), max(pa, pb)), 0.0)
        key = (cost, tuple(v2p[v] for v in virtuals))
        if best is None or key < best[:2]:
            best = (key[0], key[1], v2p)
    if best is None:
        logger.info("vf2_layout: no perfect layout for %s on %s within %d states", circuit.name, device.name, call_limit)
        return None
    return _complete(best[2], circuit.num_qubits, device.num_qubits)


def noise_weighted_distances(device: Device) -> np.ndarray:
    """All-pairs distances where a coupler costs ``1 + error / mean_error``.

    Couplers without calibration count at the mean. Hop structure dominates,
    so shorter paths still win; error breaks ties between equally long ones.
    """
    if not device.edge_errors:
        return device.distance_matrix()
    mean_err = float(np.mean(list(device.edge_errors.values())))
    graph = nx.Graph()
    graph.add_nodes_from(range(device.num_qubits))
    for a, b in device.edges:
        err = device.edge_errors.get((a, b), mean_err)
        graph.add_edge(a, b, weight=1.0 + (err / mean_err if mean_err > 0 else 0.0))
    dist = np.full((device.num_qubits, device.num_qubits), np.inf)
    for src, lengths in nx.all_pairs_dijkstra_path_length(graph, weight="weight"):
        for dst, d in lengths.items():
            dist[src, dst] = d
    return dist


def _two_qubit_skeleton(circuit: Circuit, reverse: bool = False) -> Circuit:
    ops: List[Operation] = [op for op in circuit if op.is_gate and op.num_qubits == 2]
    if reverse:
        ops.reverse()
    return Circuit.from_operations(circuit.num_qubits, 0, ops, name=circuit.name)


def sabre_layout(
    circuit: Circuit,
    device: Device,
    seed: Optional[int] = None,
    iterations: int = 5,
    lookahead_size: int = 20,
    iteration_factor: int = DEFAULT_ITERATION_FACTOR,
) -> Layout:
    """Forward/backward SABRE refinement.

    Starts from a seeded random placement (trivial when ``seed`` is ``None``),
    routes the two-qubit skeleton forward, then backward from the resulting
    final layout, and repeats until the forward swap count stops changing or
    ``iterations`` is reached. Returns the layout with the fewest forward
    swaps seen.

    With calibrated coupler errors the swap score uses
    :func:`noise_weighted_distances`, steering placements onto better couplers.
    """
    _require_fit(circuit, device)
    if seed is None:
        layout = Layout.trivial(circuit.num_qubits, device.num_qubits)
    else:
        rng = np.random.default_rng(seed)
        perm = rng.permutation(device.num_qubits)
        layout = Layout(perm[: circuit.num_qubits].tolist(), device.num_qubits)

    forward = _two_qubit_skeleton(circuit)
    if len(forward) == 0:
        return layout
    backward = _two_qubit_skeleton(circuit, reverse=True)
    distances = noise_weighted_distances(device) if device.edge_errors else None

    best: Tuple[int, Layout] = (1 << 30, layout)
    previous: Optional[int] = None
    for it in range(max(1, iterations)):
        fwd = sabre_route(forward, device, layout, lookahead_size, iteration_factor, distances)
        if fwd.swap_count < best[0]:
            best = (fwd.swap_count, layout)
        if fwd.swap_count == 0 or fwd.swap_count == previous:
            break
        previous = fwd.swap_count
        bwd = sabre_route(backward, device, fwd.final_layout, lookahead_size, iteration_factor, distances)
        layout = bwd.final_layout
    logger.debug("sabre_layout(seed=%s): %d swap(s) after %d iteration(s)", seed, best[0], it + 1)
    return best[1]


def explicit_layout(
    spec: LayoutSpec,
    circuit: Circuit,
    device: Device,
    strict: bool = False,
) -> Layout:
    """Validate a caller-supplied placement.

    Duplicates, out-of-range physical indices and unknown virtual qubits raise
    :class:`InvalidLayoutError`. A partial mapping is completed with the
    lowest free physical qubits unless ``strict``.
    """
    _require_fit(circuit, device)
    if isinstance(spec, Mapping):
        mapping = {int(v): int(p) for v, p in spec.items()}
    else:
        mapping = {v: int(p) for v, p in enumerate(spec)}

    seen: Dict[int, int] = {}
    for v, p in sorted(mapping.items()):
        if not 0 <= v < circuit.num_qubits:
            raise InvalidLayoutError(f"Layout names unknown virtual qubit {v}", qubit=v)
        if not 0 <= p < device.num_qubits:
            raise InvalidLayoutError(
                f"Virtual qubit {v} mapped to physical qubit {p} outside [0, {device.num_qubits})",
                qubit=v,
                physical=p,
            )
        if p in seen:
            raise InvalidLayoutError(
                f"Virtual qubits {seen[p]} and {v} both mapped to physical qubit {p}", qubit=v, physical=p
            )
        seen[p] = v

    missing = [v for v in range(circuit.num_qubits) if v not in mapping]
    if missing:
        if strict:
            raise InvalidLayoutError(f"Layout does not place virtual qubits {missing}", qubit=missing[0])
        logger.warning("explicit layout is partial; placing virtual qubits %s on the lowest free qubits", missing)
    return _complete(mapping, circuit.num_qubits, device.num_qubits)


def select_layout(
    circuit: Circuit,
    device: Device,
    method: str = "sabre",
    seed: Optional[int] = None,
    vf2_call_limit: int = 10_000,
    iterations: int = 5,
    lookahead_size: int = 20,
    iteration_factor: int = DEFAULT_ITERATION_FACTOR,
) -> Layout:
    """Dispatch on a layout method name; ``vf2`` falls back to ``sabre``."""
    if method == "trivial":
        return trivial_layout(circuit, device)
    if method == "vf2":
        found = vf2_layout(circuit, device, vf2_call_limit)
        if found is not None:
            return found
        method = "sabre"
    if method == "sabre":
        return sabre_layout(circuit, device, seed, iterations, lookahead_size, iteration_factor)
    raise ValueError(f"Unknown layout method '{method}'")
