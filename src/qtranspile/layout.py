"""Virtual-to-physical qubit mapping."""
from __future__ import annotations

from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .exceptions import InsufficientQubitsError, InvalidLayoutError


class Layout:
    """Injective map from virtual qubits ``0..n-1`` to physical qubits ``0..N-1``.

    Instances are immutable; :meth:`swap_physical` returns a new layout.
    """

    __slots__ = ("_v2p", "_num_physical")

    def __init__(self, v2p: Sequence[int], num_physical: int):
        v2p = tuple(int(p) for p in v2p)
        if len(v2p) > num_physical:
            raise InsufficientQubitsError(
                f"{len(v2p)} virtual qubits do not fit on {num_physical} physical qubits",
                num_virtual=len(v2p),
                num_physical=num_physical,
            )
        seen: Dict[int, int] = {}
        for v, p in enumerate(v2p):
            if not 0 <= p < num_physical:
                raise InvalidLayoutError(
                    f"Virtual qubit {v} mapped to out-of-range physical qubit {p}",
                    qubit=v,
                    physical=p,
                )
            if p in seen:
                raise InvalidLayoutError(
                    f"Virtual qubits {seen[p]} and {v} both mapped to physical qubit {p}",
                    qubit=v,
                    physical=p,
                )
            seen[p] = v
        self._v2p = v2p
        self._num_physical = int(num_physical)

    # --------------------------------------------------------------- factories
    @classmethod
    def trivial(cls, num_virtual: int, num_physical: int) -> "Layout":
        return cls(range(num_virtual), num_physical)

    @classmethod
    def from_dict(cls, mapping: Mapping[int, int], num_virtual: int, num_physical: int) -> "Layout":
        """Build from an explicit ``{virtual: physical}`` mapping covering every virtual qubit."""
        missing = [v for v in range(num_virtual) if v not in mapping]
        if missing:
            raise InvalidLayoutError(f"Layout does not place virtual qubits {missing}", qubit=missing[0])
        extra = [v for v in mapping if not 0 <= int(v) < num_virtual]
        if extra:
            raise InvalidLayoutError(f"Layout names unknown virtual qubits {sorted(extra)}", qubit=extra[0])
        return cls([mapping[v] for v in range(num_virtual)], num_physical)

    # ------------------------------------------------------------------ queries
    @property
    def num_virtual(self) -> int:
        return len(self._v2p)

    @property
    def num_physical(self) -> int:
        return self._num_physical

    def physical(self, virtual: int) -> int:
        return self._v2p[virtual]

    def virtual(self, physical: int) -> Optional[int]:
        for v, p in enumerate(self._v2p):
            if p == physical:
                return v
        return None

    def physical_qubits(self) -> List[int]:
        return list(self._v2p)

    def to_dict(self) -> Dict[int, int]:
        return {v: p for v, p in enumerate(self._v2p)}

    def inverse(self) -> Dict[int, int]:
        return {p: v for v, p in enumerate(self._v2p)}

    def full_mapping(self) -> List[int]:
        """Extend to all physical qubits: unused ones become ancillas in ascending order.

        Returns a list ``v2p`` of length ``num_physical`` where entries beyond
        ``num_virtual`` are the ancilla placements.
        """
        used = set(self._v2p)
        free = [p for p in range(self._num_physical) if p not in used]
        return list(self._v2p) + free

    def swap_physical(self, p0: int, p1: int) -> "Layout":
        v2p = list(self._v2p)
        for v, p in enumerate(v2p):
            if p == p0:
                v2p[v] = p1
            elif p == p1:
                v2p[v] = p0
        return Layout(v2p, self._num_physical)

    def compose_permutation(self, p2p: Sequence[int]) -> "Layout":
        """Apply a physical permutation ``p -> p2p[p]`` after this layout."""
        return Layout([p2p[p] for p in self._v2p], self._num_physical)

    # ------------------------------------------------------------------ dunders
    def __iter__(self) -> Iterator[Tuple[int, int]]:
        return iter(enumerate(self._v2p))

    def __len__(self) -> int:
        return len(self._v2p)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Layout):
            return NotImplemented
        return self._v2p == other._v2p and self._num_physical == other._num_physical

    def __hash__(self) -> int:
        return hash((self._v2p, self._num_physical))

    def __repr__(self) -> str:
        return f"Layout({self.to_dict()}, num_physical={self._num_physical})"
