"""Structure checks for the benchmark circuit subclasses.

Covered scenarios:
- ``test_bell_state_benchmark_structure`` validates qubit count and gate makeup of the Bell circuit.
- ``test_ghz3_benchmark_structure`` inspects GHZ-3 entanglement layout and two-qubit usage.
- ``test_parity_check_benchmark_structure`` confirms parity-check ancilla logic and measurement count.
- ``test_qft3_benchmark_structure`` checks the controlled-phase ladder and final swap.
- ``test_simple_1q_benchmark_structure`` confirms the single-qubit chain.
- ``test_benchmarks_compile_on_line`` pushes every template through the pipeline.
"""

import math

import pytest

from qtranspile import Device, transpile
from qtranspile.benchmarks import (
    BENCHMARKS,
    BellStateBenchmark,
    GHZ3Benchmark,
    ParityCheckBenchmark,
    QFT3Benchmark,
    Simple1QXZHBenchmark,
)
from qtranspile.passes import first_violation


def _count_twoq_ops(qc):
    ops = qc.count_ops()
    return sum(ops.get(name, 0) for name in ("cx", "cz", "cp", "swap", "rzz"))


def test_bell_state_benchmark_structure():
    qc = BellStateBenchmark().get_circuit()

    assert qc.num_qubits == 2
    assert qc.name == "bell_state"
    assert _count_twoq_ops(qc) == 1
    assert qc.count_ops().get("h", 0) == 1
    assert qc.count_ops().get("measure", 0) == 2


def test_ghz3_benchmark_structure():
    qc = GHZ3Benchmark().get_circuit()

    assert qc.num_qubits == 3
    assert qc.name == "ghz_3"
    assert _count_twoq_ops(qc) == 2
    assert qc.count_ops().get("h", 0) == 1
    assert [op.qubits for op in qc if op.name == "cx"] == [(0, 1), (0, 2)]


def test_parity_check_benchmark_structure():
    qc = ParityCheckBenchmark().get_circuit()

    assert qc.num_qubits == 4
    assert qc.num_clbits == 1
    assert [op.qubits for op in qc if op.name == "cx"] == [(0, 3), (1, 3), (2, 3)]
    measures = [op for op in qc if op.name == "measure"]
    assert len(measures) == 1
    assert measures[0].qubits == (3,)


def test_qft3_benchmark_structure():
    qc = QFT3Benchmark().get_circuit()

    assert qc.name == "qft_3"
    angles = [float(op.params[0]) for op in qc if op.name == "cp"]
    assert angles == pytest.approx([math.pi / 2, math.pi / 4, math.pi / 2])
    assert qc.count_ops()["h"] == 3
    assert qc.count_ops()["swap"] == 1


def test_simple_1q_benchmark_structure():
    qc = Simple1QXZHBenchmark().get_circuit()

    assert [op.name for op in qc] == ["h", "x", "z", "measure"]
    assert qc.num_nonlocal_gates() == 0


@pytest.mark.parametrize("key", sorted(BENCHMARKS))
def test_benchmarks_compile_on_line(key):
    device = Device.line(4)
    qc = BENCHMARKS[key]().get_circuit()
    result = transpile(qc, device, seeds=2)

    assert {op.name for op in result.circuit if op.is_gate} <= set(device.basis_gates)
    assert first_violation(result.circuit, device) is None
    assert result.circuit.count_ops().get("measure", 0) == qc.count_ops().get("measure", 0)


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__, "-vv", "-rA"]))
