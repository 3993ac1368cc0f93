"""Logical benchmark circuit subclasses."""

from .bell import BellStateBenchmark
from .ghz import GHZ3Benchmark
from .parity_check import ParityCheckBenchmark
from .qft import QFT3Benchmark
from .simple import Simple1QXZHBenchmark

__all__ = [
    "BellStateBenchmark",
    "GHZ3Benchmark",
    "ParityCheckBenchmark",
    "QFT3Benchmark",
    "Simple1QXZHBenchmark",
]
