"""Standard gate library: arities, parameter counts and unitary matrices.

Matrices are written in operand order: the first operand is the most
significant bit of the local matrix index (``cx`` is the textbook
``[[1,0,0,0],[0,1,0,0],[0,0,0,1],[0,0,1,0]]`` with operand 0 as control).
Whole-circuit unitaries built by :func:`circuit_unitary` use the little-endian
convention for global indices (qubit 0 is the least significant bit), which
matches bitstrings printed with clbit 0 rightmost.
"""
from __future__ import annotations

import cmath
import math
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Sequence, Tuple

import numpy as np

_SQ2 = 1.0 / math.sqrt(2.0)

# Operation names that are not gates.
MEASURE = "measure"
BARRIER = "barrier"
DELAY = "delay"
DIRECTIVES: FrozenSet[str] = frozenset({MEASURE, BARRIER, DELAY})


@dataclass(frozen=True)
class GateSpec:
    """Static signature of a library gate."""
    name: str
    num_qubits: int
    num_params: int
    matrix_fn: Callable[..., np.ndarray]
    self_inverse: bool = False

    def matrix(self, params: Sequence[float] = ()) -> np.ndarray:
        return self.matrix_fn(*[float(p) for p in params])


def _const(mat) -> Callable[[], np.ndarray]:
    arr = np.array(mat, dtype=complex)
    arr.setflags(write=False)
    return lambda: arr


def _rx(theta: float) -> np.ndarray:
    c, s = math.cos(theta / 2), math.sin(theta / 2)
    return np.array([[c, -1j * s], [-1j * s, c]], dtype=complex)


def _ry(theta: float) -> np.ndarray:
    c, s = math.cos(theta / 2), math.sin(theta / 2)
    return np.array([[c, -s], [s, c]], dtype=complex)


def _rz(theta: float) -> np.ndarray:
    return np.array([[cmath.exp(-0.5j * theta), 0], [0, cmath.exp(0.5j * theta)]], dtype=complex)


def _p(lam: float) -> np.ndarray:
    return np.array([[1, 0], [0, cmath.exp(1j * lam)]], dtype=complex)


def _u(theta: float, phi: float, lam: float) -> np.ndarray:
    c, s = math.cos(theta / 2), math.sin(theta / 2)
    return np.array(
        [
            [c, -cmath.exp(1j * lam) * s],
            [cmath.exp(1j * phi) * s, cmath.exp(1j * (phi + lam)) * c],
        ],
        dtype=complex,
    )


def _cp(lam: float) -> np.ndarray:
    return np.diag([1, 1, 1, cmath.exp(1j * lam)]).astype(complex)


def _rzz(theta: float) -> np.ndarray:
    a, b = cmath.exp(-0.5j * theta), cmath.exp(0.5j * theta)
    return np.diag([a, b, b, a]).astype(complex)


def _controlled(base: np.ndarray) -> np.ndarray:
    dim = base.shape[0]
    out = np.eye(2 * dim, dtype=complex)
    out[dim:, dim:] = base
    return out


_X = [[0, 1], [1, 0]]
_Y = [[0, -1j], [1j, 0]]
_Z = [[1, 0], [0, -1]]
_SX = [[0.5 + 0.5j, 0.5 - 0.5j], [0.5 - 0.5j, 0.5 + 0.5j]]
_SXDG = [[0.5 - 0.5j, 0.5 + 0.5j], [0.5 + 0.5j, 0.5 - 0.5j]]
_SWAP = [[1, 0, 0, 0], [0, 0, 1, 0], [0, 1, 0, 0], [0, 0, 0, 1]]
_T = cmath.exp(0.25j * math.pi)


def _build_library() -> Dict[str, GateSpec]:
    specs = [
        GateSpec("id", 1, 0, _const(np.eye(2)), self_inverse=True),
        GateSpec("x", 1, 0, _const(_X), self_inverse=True),
        GateSpec("y", 1, 0, _const(_Y), self_inverse=True),
        GateSpec("z", 1, 0, _const(_Z), self_inverse=True),
        GateSpec("h", 1, 0, _const([[_SQ2, _SQ2], [_SQ2, -_SQ2]]), self_inverse=True),
        GateSpec("s", 1, 0, _const([[1, 0], [0, 1j]])),
        GateSpec("sdg", 1, 0, _const([[1, 0], [0, -1j]])),
        GateSpec("t", 1, 0, _const([[1, 0], [0, _T]])),
        GateSpec("tdg", 1, 0, _const([[1, 0], [0, _T.conjugate()]])),
        GateSpec("sx", 1, 0, _const(_SX)),
        GateSpec("sxdg", 1, 0, _const(_SXDG)),
        GateSpec("rx", 1, 1, _rx),
        GateSpec("ry", 1, 1, _ry),
        GateSpec("rz", 1, 1, _rz),
        GateSpec("p", 1, 1, _p),
        GateSpec("u", 1, 3, _u),
        GateSpec("cx", 2, 0, _const(_controlled(np.array(_X))), self_inverse=True),
        GateSpec("cy", 2, 0, _const(_controlled(np.array(_Y))), self_inverse=True),
        GateSpec("cz", 2, 0, _const(_controlled(np.array(_Z))), self_inverse=True),
        GateSpec("swap", 2, 0, _const(_SWAP), self_inverse=True),
        GateSpec("cp", 2, 1, _cp),
        GateSpec("rzz", 2, 1, _rzz),
        GateSpec("ccx", 3, 0, _const(_controlled(_controlled(np.array(_X)))), self_inverse=True),
        GateSpec("cswap", 3, 0, _const(_controlled(np.array(_SWAP))), self_inverse=True),
    ]
    return {spec.name: spec for spec in specs}


STANDARD_GATES: Dict[str, GateSpec] = _build_library()

# Rotations the approximation knob is allowed to drop.
ROTATION_GATES: FrozenSet[str] = frozenset({"rx", "ry", "rz", "p", "cp", "rzz"})


def gate_spec(name: str) -> Optional[GateSpec]:
    return STANDARD_GATES.get(name)


def gate_matrix(name: str, params: Sequence[float] = ()) -> np.ndarray:
    """Return the operand-order unitary of a library gate."""
    spec = STANDARD_GATES.get(name)
    if spec is None:
        raise KeyError(f"No matrix for gate '{name}'.")
    return spec.matrix(params)


def _apply(matrix: np.ndarray, state: np.ndarray, qubits: Sequence[int], num_qubits: int) -> np.ndarray:
    k = len(qubits)
    tensor = matrix.reshape((2,) * (2 * k))
    axes = [num_qubits - 1 - q for q in qubits]
    state = np.tensordot(tensor, state, axes=(list(range(k, 2 * k)), axes))
    return np.moveaxis(state, list(range(k)), axes)


def circuit_unitary(operations: Iterable, num_qubits: int) -> np.ndarray:
    """Dense unitary of a sequence of gate operations (little-endian indices).

    Directives (barrier, delay) are skipped; measurements are rejected.
    Intended for validating equivalences on a handful of qubits.
    """
    dim = 2 ** num_qubits
    state = np.eye(dim, dtype=complex).reshape((2,) * num_qubits + (dim,))
    for op in operations:
        if op.name in (BARRIER, DELAY):
            continue
        if op.name == MEASURE:
            raise ValueError("circuit_unitary() does not support measurements.")
        state = _apply(gate_matrix(op.name, op.params), state, op.qubits, num_qubits)
    return state.reshape(dim, dim)


def equal_up_to_phase(a: np.ndarray, b: np.ndarray, atol: float = 1e-9) -> bool:
    """True if ``a == exp(i*g) * b`` for some global phase ``g``."""
    if a.shape != b.shape:
        return False
    idx = np.unravel_index(np.argmax(np.abs(b)), b.shape)
    if abs(b[idx]) < atol:
        return bool(np.allclose(a, b, atol=atol))
    phase = a[idx] / b[idx]
    if not math.isclose(abs(phase), 1.0, abs_tol=max(atol, 1e-12) * 10):
        return False
    return bool(np.allclose(a, phase * b, atol=atol))


def identity_infidelity(matrix: np.ndarray) -> float:
    """Process infidelity of ``matrix`` against the identity, ``1 - |Tr U / d|^2``."""
    d = matrix.shape[0]
    return max(0.0, 1.0 - abs(np.trace(matrix) / d) ** 2)


def euler_angles(matrix: np.ndarray) -> Tuple[float, float, float]:
    """ZYZ Euler angles ``(theta, phi, lam)`` with ``matrix ~ u(theta, phi, lam)``."""
    det = np.linalg.det(matrix)
    su = matrix / cmath.sqrt(det)
    theta = 2.0 * math.atan2(abs(su[1, 0]), abs(su[0, 0]))
    plus = cmath.phase(su[1, 1])
    minus = cmath.phase(su[1, 0])
    return theta, plus + minus, plus - minus


def wrap_angle(angle: float) -> float:
    """Map ``angle`` into ``(-pi, pi]``."""
    wrapped = math.remainder(angle, 2.0 * math.pi)
    if wrapped <= -math.pi:
        wrapped += 2.0 * math.pi
    return wrapped
