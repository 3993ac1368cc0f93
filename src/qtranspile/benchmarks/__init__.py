"""Benchmark circuit package exposing logical templates."""

from .BenchmarkCircuit import BenchmarkCircuit
from .circuits import (
    BellStateBenchmark,
    GHZ3Benchmark,
    ParityCheckBenchmark,
    QFT3Benchmark,
    Simple1QXZHBenchmark,
)

BENCHMARKS = {
    "bell": BellStateBenchmark,
    "ghz3": GHZ3Benchmark,
    "parity_check": ParityCheckBenchmark,
    "qft3": QFT3Benchmark,
    "simple_1q": Simple1QXZHBenchmark,
}

__all__ = [
    "BENCHMARKS",
    "BenchmarkCircuit",
    "BellStateBenchmark",
    "GHZ3Benchmark",
    "ParityCheckBenchmark",
    "QFT3Benchmark",
    "Simple1QXZHBenchmark",
]
