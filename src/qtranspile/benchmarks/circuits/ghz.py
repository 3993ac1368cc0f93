"""GHZ(3) logical benchmark circuit."""

from ...circuit import Circuit
from ..BenchmarkCircuit import BenchmarkCircuit


class GHZ3Benchmark(BenchmarkCircuit):
    """Prepare a 3-qubit GHZ state with two CX layers."""

    def build_circuit(self) -> Circuit:
        qc = Circuit(3, 3, name="ghz_3")
        qc.h(0)
        qc.cx(0, 1)
        qc.cx(0, 2)
        qc.measure_all()
        return qc
