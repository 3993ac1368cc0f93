"""Unit tests for :mod:`qtranspile.benchmarks.BenchmarkCircuit` helpers.

Test matrix:
- ``test_get_circuit_is_cached`` ensures subclass circuits are constructed once and cached.
- ``test_get_circuit_type_validation`` verifies invalid subclass returns raise ``TypeError``.
- ``test_compute_logical_metrics`` checks logical metric counting against circuit structure.
- ``test_to_qasm_contains_openqasm_header`` validates OpenQASM export path.
- ``test_to_yaml_round_trip`` confirms YAML serialization schema and content.
- ``test_benchmark_library_metrics`` exercises the public daughter classes and their metrics.
"""

import pytest
from qiskit.circuit import Parameter

yaml = pytest.importorskip("yaml")

from qtranspile import Circuit
from qtranspile.benchmarks import (
    BENCHMARKS,
    BellStateBenchmark,
    BenchmarkCircuit,
    GHZ3Benchmark,
    ParityCheckBenchmark,
    QFT3Benchmark,
    Simple1QXZHBenchmark,
)


class DummyBenchmark(BenchmarkCircuit):
    """Concrete BenchmarkCircuit for exercising the base-class helpers."""

    def __init__(self) -> None:
        super().__init__()
        self.build_calls = 0

    def build_circuit(self) -> Circuit:  # type: ignore[override]
        self.build_calls += 1
        qc = Circuit(2, 2, name="dummy")
        qc.h(0)
        qc.cx(0, 1)
        qc.swap(0, 1)
        qc.rzz(0.2, 0, 1)
        qc.measure([0, 1], [0, 1])
        return qc


class SymbolicBenchmark(BenchmarkCircuit):
    def build_circuit(self) -> Circuit:  # type: ignore[override]
        qc = Circuit(1, name="symbolic")
        qc.rz(Parameter("theta"), 0)
        return qc


class BadBenchmark(BenchmarkCircuit):
    def build_circuit(self):  # type: ignore[override]
        return "not a circuit"


@pytest.fixture
def dummy_benchmark() -> DummyBenchmark:
    return DummyBenchmark()


def test_get_circuit_is_cached(dummy_benchmark: DummyBenchmark) -> None:
    first = dummy_benchmark.get_circuit()
    second = dummy_benchmark.get_circuit()

    assert first is second
    assert first.frozen
    assert dummy_benchmark.build_calls == 1


def test_get_circuit_type_validation() -> None:
    bad = BadBenchmark()
    with pytest.raises(TypeError):
        bad.get_circuit()


def test_compute_logical_metrics(dummy_benchmark: DummyBenchmark) -> None:
    metrics = dummy_benchmark.compute_logical_metrics()
    qc = dummy_benchmark.get_circuit()

    assert metrics["n_qubits"] == qc.num_qubits
    assert metrics["depth"] == qc.depth() == 5
    assert metrics["twoq"] == 3  # cx + swap + rzz


def test_to_qasm_contains_openqasm_header(dummy_benchmark: DummyBenchmark) -> None:
    qasm = dummy_benchmark.to_qasm()

    assert "OPENQASM 2.0" in qasm
    assert "cx" in qasm
    assert "rzz(" in qasm


def test_to_qasm_wraps_export_failures() -> None:
    with pytest.raises(RuntimeError):
        SymbolicBenchmark().to_qasm()


def test_to_yaml_round_trip(dummy_benchmark: DummyBenchmark) -> None:
    yaml_str = dummy_benchmark.to_yaml()
    payload = yaml.safe_load(yaml_str)

    assert payload["version"] == 1
    assert payload["name"] == "dummy"
    assert payload["qubits"] == 2
    assert payload["clbits"] == 2
    assert any(step["name"] == "swap" for step in payload["instructions"])
    assert Circuit.from_dict(payload) == dummy_benchmark.get_circuit()


def test_to_yaml_keeps_symbols() -> None:
    payload = yaml.safe_load(SymbolicBenchmark().to_yaml())
    assert payload["instructions"][0]["params"] == ["theta"]


@pytest.mark.parametrize(
    "benchmark_cls, expected",
    [
        (BellStateBenchmark, {"name": "bell_state", "qubits": 2, "twoq": 1}),
        (GHZ3Benchmark, {"name": "ghz_3", "qubits": 3, "twoq": 2}),
        (ParityCheckBenchmark, {"name": "parity_check", "qubits": 4, "twoq": 3}),
        (QFT3Benchmark, {"name": "qft_3", "qubits": 3, "twoq": 4}),
        (Simple1QXZHBenchmark, {"name": "simple_1q_xzh", "qubits": 1, "twoq": 0}),
    ],
)
def test_benchmark_library_metrics(benchmark_cls, expected) -> None:
    bench = benchmark_cls()
    qc = bench.get_circuit()
    metrics = bench.compute_logical_metrics()

    assert qc.name == expected["name"]
    assert qc.num_qubits == expected["qubits"]
    assert metrics["n_qubits"] == expected["qubits"]
    assert metrics["twoq"] == expected["twoq"]


def test_registry_lists_every_benchmark() -> None:
    assert set(BENCHMARKS) == {"bell", "ghz3", "parity_check", "qft3", "simple_1q"}
    assert all(issubclass(cls, BenchmarkCircuit) for cls in BENCHMARKS.values())


if __name__ == "__main__":
    # Allow running this module directly for a quick, verbose smoke check.
    raise SystemExit(pytest.main([__file__, "-vv", "-rA"]))
