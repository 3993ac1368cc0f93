"""Three-qubit QFT logical benchmark circuit."""

import math

from ...circuit import Circuit
from ..BenchmarkCircuit import BenchmarkCircuit


class QFT3Benchmark(BenchmarkCircuit):
    """All-to-all controlled phases; forces routing on a line device."""

    def build_circuit(self) -> Circuit:
        qc = Circuit(3, 3, name="qft_3")
        qc.h(0)
        qc.cp(math.pi / 2, 1, 0)
        qc.cp(math.pi / 4, 2, 0)
        qc.h(1)
        qc.cp(math.pi / 2, 2, 1)
        qc.h(2)
        qc.swap(0, 2)
        qc.measure_all()
        return qc
