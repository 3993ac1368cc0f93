"""Simple single-qubit logical benchmark: only H, X, Z."""

from ...circuit import Circuit
from ..BenchmarkCircuit import BenchmarkCircuit


class Simple1QXZHBenchmark(BenchmarkCircuit):
    """
    A minimal 1-qubit circuit containing only single-qubit logical gates {H, X, Z}.

    The sequence H -> X -> Z collapses to a single native run, which makes it a
    quick check that local optimisation shortens 1q chains.
    """

    def build_circuit(self) -> Circuit:
        qc = Circuit(1, 1, name="simple_1q_xzh")
        qc.h(0)
        qc.x(0)
        qc.z(0)
        qc.measure(0, 0)
        return qc
