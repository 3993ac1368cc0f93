"""Static description of a target device.

A :class:`Device` bundles the native gate set, the undirected connectivity
graph and optional calibration data (gate/edge error rates, gate durations).
It is immutable and safe to share across threads compiling different
circuits.
"""
from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import networkx as nx
import numpy as np
import yaml

from .exceptions import RoutingError
from .gates import BARRIER, DELAY

logger = logging.getLogger(__name__)

DEFAULT_BASIS: Tuple[str, ...] = ("rz", "sx", "x", "cx")
DEFAULT_DT = 2.2222222222222221e-10  # seconds

# Gate durations in microseconds, used when the caller does not provide them.
DEFAULT_GATE_TIMES_US: Dict[str, float] = {
    "id": 0.035,
    "sx": 0.035,
    "sxdg": 0.035,
    "x": 0.035,
    "y": 0.035,
    "h": 0.035,
    "u": 0.07,
    "rx": 0.07,
    "ry": 0.07,
    "s": 0.0,
    "sdg": 0.0,
    "t": 0.0,
    "tdg": 0.0,
    "z": 0.0,
    "rz": 0.0,
    "p": 0.0,
    "cx": 0.3,
    "cz": 0.3,
    "cy": 0.3,
    "cp": 0.3,
    "rzz": 0.3,
    "swap": 0.9,
    "measure": 1.0,
}

Edge = Tuple[int, int]


def _edge_key(a: int, b: int) -> Edge:
    return (a, b) if a <= b else (b, a)


def _parse_edge(edge: Union[str, Sequence[int]]) -> Edge:
    if isinstance(edge, str):
        # "0-1" or "0_1"
        parts = edge.replace("_", "-").split("-")
        return _edge_key(int(parts[0]), int(parts[1]))
    a, b = edge
    return _edge_key(int(a), int(b))


@dataclass(frozen=True)
class Device:
    """Native basis + connectivity + optional calibration.

    Attributes:
        num_qubits: Number of physical qubits.
        basis_gates: Native gate names.
        edges: Undirected couplings, normalised to ``(low, high)`` and sorted.
        gate_errors: Average error per gate name.
        edge_errors: Two-qubit gate error per coupling.
        gate_durations: Duration per gate name in units of ``dt``.
        dt: Sample time in seconds.
        pulse_alignment: Granularity (in ``dt``) that pulse start times must respect.
        name: Free-form device name.
    """
    num_qubits: int
    basis_gates: FrozenSet[str]
    edges: Tuple[Edge, ...]
    gate_errors: Mapping[str, float] = field(default_factory=dict, hash=False)
    edge_errors: Mapping[Edge, float] = field(default_factory=dict, hash=False)
    gate_durations: Mapping[str, int] = field(default_factory=dict, hash=False)
    dt: float = DEFAULT_DT
    pulse_alignment: int = 1
    name: str = "device"
    _graph: nx.Graph = field(init=False, repr=False, compare=False)
    _dist: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.num_qubits <= 0:
            raise ValueError(f"Device needs at least one qubit, got {self.num_qubits}")
        if self.pulse_alignment < 1:
            raise ValueError(f"pulse_alignment must be >= 1, got {self.pulse_alignment}")
        edges = sorted({_parse_edge(e) for e in self.edges})
        for a, b in edges:
            if a == b or not (0 <= a < self.num_qubits and 0 <= b < self.num_qubits):
                raise ValueError(f"Invalid coupling ({a}, {b}) for a {self.num_qubits}-qubit device")

        durations = {
            gate: int(round(us * 1e-6 / self.dt)) for gate, us in DEFAULT_GATE_TIMES_US.items()
        }
        durations.update({k: int(v) for k, v in self.gate_durations.items()})

        object.__setattr__(self, "basis_gates", frozenset(self.basis_gates))
        object.__setattr__(self, "edges", tuple(edges))
        object.__setattr__(self, "gate_errors", MappingProxyType(dict(self.gate_errors)))
        object.__setattr__(
            self,
            "edge_errors",
            MappingProxyType({_parse_edge(k): float(v) for k, v in self.edge_errors.items()}),
        )
        object.__setattr__(self, "gate_durations", MappingProxyType(durations))

        graph = nx.Graph()
        graph.add_nodes_from(range(self.num_qubits))
        graph.add_edges_from(edges)
        object.__setattr__(self, "_graph", nx.freeze(graph))

        dist = np.full((self.num_qubits, self.num_qubits), np.inf)
        for src, lengths in nx.all_pairs_shortest_path_length(graph):
            for dst, d in lengths.items():
                dist[src, dst] = d
        dist.setflags(write=False)
        object.__setattr__(self, "_dist", dist)

    # ------------------------------------------------------------- factories
    @classmethod
    def from_edges(
        cls,
        edges: Iterable[Union[str, Sequence[int]]],
        basis_gates: Iterable[str] = DEFAULT_BASIS,
        num_qubits: Optional[int] = None,
        **kwargs: Any,
    ) -> "Device":
        parsed = [_parse_edge(e) for e in edges]
        if num_qubits is None:
            num_qubits = 1 + max((max(e) for e in parsed), default=0)
        return cls(num_qubits=num_qubits, basis_gates=frozenset(basis_gates), edges=tuple(parsed), **kwargs)

    @classmethod
    def line(cls, num_qubits: int, basis_gates: Iterable[str] = DEFAULT_BASIS, **kwargs: Any) -> "Device":
        edges = [(i, i + 1) for i in range(num_qubits - 1)]
        kwargs.setdefault("name", f"line_{num_qubits}")
        return cls.from_edges(edges, basis_gates, num_qubits=num_qubits, **kwargs)

    @classmethod
    def ring(cls, num_qubits: int, basis_gates: Iterable[str] = DEFAULT_BASIS, **kwargs: Any) -> "Device":
        if num_qubits > 2:
            edges = [(i, (i + 1) % num_qubits) for i in range(num_qubits)]
        else:
            edges = [(i, i + 1) for i in range(num_qubits - 1)]
        kwargs.setdefault("name", f"ring_{num_qubits}")
        return cls.from_edges(edges, basis_gates, num_qubits=num_qubits, **kwargs)

    @classmethod
    def grid(cls, rows: int, cols: int, basis_gates: Iterable[str] = DEFAULT_BASIS, **kwargs: Any) -> "Device":
        edges = []
        for r in range(rows):
            for c in range(cols):
                q = r * cols + c
                if c + 1 < cols:
                    edges.append((q, q + 1))
                if r + 1 < rows:
                    edges.append((q, q + cols))
        kwargs.setdefault("name", f"grid_{rows}x{cols}")
        return cls.from_edges(edges, basis_gates, num_qubits=rows * cols, **kwargs)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Device":
        """Build from a calibration-style dictionary.

        Schema::

            name: my_device
            num_qubits: 5
            basis_gates: [rz, sx, x, cx]
            dt: 2.22e-10
            pulse_alignment: 16
            couplers:
              "0-1": {cx_error: 0.01}
              "1-2": {}
            gate_errors: {sx: 0.0002}
            gate_durations: {sx: 160, cx: 1600}
        """
        couplers = data.get("couplers", {})
        if isinstance(couplers, Mapping):
            edge_items = list(couplers.items())
        else:
            edge_items = [(e, {}) for e in couplers]

        edges: List[Edge] = []
        edge_errors: Dict[Edge, float] = {}
        for edge, props in edge_items:
            key = _parse_edge(edge)
            edges.append(key)
            props = props or {}
            err = props.get("cx_error", props.get("two_qubit_gate_error"))
            if err is not None:
                edge_errors[key] = float(err)

        num_qubits = data.get("num_qubits")
        if num_qubits is None:
            num_qubits = 1 + max((max(e) for e in edges), default=0)
            logger.debug("num_qubits not given; inferred %d from couplers", num_qubits)

        return cls(
            num_qubits=int(num_qubits),
            basis_gates=frozenset(data.get("basis_gates", DEFAULT_BASIS)),
            edges=tuple(edges),
            gate_errors={k: float(v) for k, v in data.get("gate_errors", {}).items()},
            edge_errors=edge_errors,
            gate_durations=data.get("gate_durations", {}),
            dt=float(data.get("dt", DEFAULT_DT)),
            pulse_alignment=int(data.get("pulse_alignment", 1)),
            name=data.get("name", "device"),
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "Device":
        with open(Path(path), "r") as f:
            return cls.from_dict(yaml.safe_load(f))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "num_qubits": self.num_qubits,
            "basis_gates": sorted(self.basis_gates),
            "dt": self.dt,
            "pulse_alignment": self.pulse_alignment,
            "couplers": {
                f"{a}-{b}": ({"cx_error": self.edge_errors[(a, b)]} if (a, b) in self.edge_errors else {})
                for a, b in self.edges
            },
            "gate_errors": dict(self.gate_errors),
            "gate_durations": dict(self.gate_durations),
        }

    # -------------------------------------------------------------- queries
    @property
    def graph(self) -> nx.Graph:
        """Frozen networkx view of the coupling graph."""
        return self._graph

    def is_native_gate(self, name: str) -> bool:
        return name in self.basis_gates

    def are_connected(self, a: int, b: int) -> bool:
        return self._graph.has_edge(a, b)

    def neighbors(self, q: int) -> List[int]:
        return sorted(self._graph.neighbors(q))

    def distance(self, a: int, b: int) -> float:
        return float(self._dist[a, b])

    def distance_matrix(self) -> np.ndarray:
        return self._dist

    @property
    def diameter(self) -> int:
        finite = self._dist[np.isfinite(self._dist)]
        return int(finite.max()) if finite.size else 0

    def is_connected(self) -> bool:
        return nx.is_connected(self._graph)

    def shortest_path(self, a: int, b: int) -> List[int]:
        """Shortest path ``[a, ..., b]``; BFS visits lower-index neighbours first."""
        if a == b:
            return [a]
        if not math.isfinite(self._dist[a, b]):
            raise RoutingError(f"No path between physical qubits {a} and {b}", qubit=a, target=b)
        parent: Dict[int, int] = {a: a}
        queue = deque([a])
        while queue:
            node = queue.popleft()
            if node == b:
                break
            for nxt in self.neighbors(node):
                if nxt not in parent:
                    parent[nxt] = node
                    queue.append(nxt)
        path = [b]
        while path[-1] != a:
            path.append(parent[path[-1]])
        return path[::-1]

    def duration(self, name: str, qubits: Sequence[int] = ()) -> int:
        """Duration in ``dt``; unknown gates and barriers take zero time."""
        if name == BARRIER:
            return 0
        if name == DELAY:
            raise ValueError("Delay durations live on the operation, not the device.")
        if name == "swap" and "swap" not in self.basis_gates and "cx" in self.gate_durations:
            return 3 * self.gate_durations["cx"]
        return int(self.gate_durations.get(name, 0))

    def gate_error(self, name: str, qubits: Sequence[int] = ()) -> Optional[float]:
        if len(qubits) == 2:
            err = self.edge_errors.get(_edge_key(qubits[0], qubits[1]))
            if err is not None:
                return err
        return self.gate_errors.get(name)

    @property
    def has_error_data(self) -> bool:
        return bool(self.gate_errors) or bool(self.edge_errors)

    def average_gate_error(self, name: str) -> Optional[float]:
        """Average error for ``name``, falling back to the mean edge error for 2q gates."""
        if name in self.gate_errors:
            return self.gate_errors[name]
        if self.edge_errors and name in self.basis_gates and name in {"cx", "cz", "cy", "cp", "rzz", "swap"}:
            return float(np.mean(list(self.edge_errors.values())))
        return None
