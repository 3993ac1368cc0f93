"""Shared pytest fixtures for the qtranspile test suite.

Provides small synthetic devices (line, ring, grid, a noisy line with
calibration data) with fixed gate durations, plus a seeded random-circuit
factory used by the routing, translation and optimisation property tests.
"""

import math
import os
import sys

import numpy as np
import pytest

SRC_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if SRC_ROOT not in sys.path:
    sys.path.insert(0, SRC_ROOT)

qiskit = pytest.importorskip("qiskit")

from qtranspile import Circuit, Device

DURATIONS = {"rz": 0, "sx": 160, "x": 160, "cx": 800, "measure": 1600}


@pytest.fixture
def durations():
    return dict(DURATIONS)


@pytest.fixture
def line2():
    return Device.line(2, basis_gates=("rz", "sx", "cx"), gate_durations=DURATIONS)


@pytest.fixture
def line3():
    return Device.line(3, gate_durations=DURATIONS)


@pytest.fixture
def line5():
    return Device.line(5, gate_durations=DURATIONS)


@pytest.fixture
def ring6():
    return Device.ring(6, gate_durations=DURATIONS)


@pytest.fixture
def grid23():
    return Device.grid(2, 3, gate_durations=DURATIONS)


@pytest.fixture
def noisy_line4():
    return Device.line(
        4,
        gate_durations=DURATIONS,
        gate_errors={"sx": 1e-4, "x": 1e-4, "rz": 0.0},
        edge_errors={(0, 1): 0.05, (1, 2): 0.01, (2, 3): 0.02},
    )


@pytest.fixture
def bell():
    qc = Circuit(2, 2, name="bell")
    qc.h(0)
    qc.cx(0, 1)
    qc.measure([0, 1], [0, 1])
    return qc.freeze()


_ONE_Q = ("h", "x", "y", "z", "s", "sdg", "t", "tdg", "sx", "sxdg", "rx", "ry", "rz", "p", "u")
_TWO_Q = ("cx", "cz", "cy", "swap", "cp", "rzz")
_NUM_PARAMS = {"rx": 1, "ry": 1, "rz": 1, "p": 1, "u": 3, "cp": 1, "rzz": 1}


def make_random_circuit(num_qubits, num_ops, seed, one_q=_ONE_Q, two_q=_TWO_Q, twoq_fraction=0.4):
    rng = np.random.default_rng(seed)
    qc = Circuit(num_qubits, name=f"random_{seed}")
    for _ in range(num_ops):
        if num_qubits > 1 and rng.random() < twoq_fraction:
            name = two_q[int(rng.integers(len(two_q)))]
            a, b = rng.choice(num_qubits, size=2, replace=False)
            qubits = (int(a), int(b))
        else:
            name = one_q[int(rng.integers(len(one_q)))]
            qubits = (int(rng.integers(num_qubits)),)
        params = [float(rng.uniform(-math.pi, math.pi)) for _ in range(_NUM_PARAMS.get(name, 0))]
        qc.append(name, qubits, params)
    return qc.freeze()


@pytest.fixture
def random_circuit():
    return make_random_circuit
