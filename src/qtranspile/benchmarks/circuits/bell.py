"""Bell-state logical benchmark circuit."""

from ...circuit import Circuit
from ..BenchmarkCircuit import BenchmarkCircuit


class BellStateBenchmark(BenchmarkCircuit):
    """Prepare and measure a logical Bell state using two qubits and a single CX."""

    def build_circuit(self) -> Circuit:
        qc = Circuit(2, 2, name="bell_state")
        qc.h(0)
        qc.cx(0, 1)
        qc.measure([0, 1], [0, 1])
        return qc
