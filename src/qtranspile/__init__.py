"""Hardware-aware compilation of quantum circuits and sampling primitives."""

from .circuit import Circuit, Operation
from .config import (
    DDSequence,
    LayoutMethod,
    RoutingMethod,
    ScheduleMode,
    StagePolicy,
    Strictness,
    TranspileConfig,
)
from .device import Device
from .equivalence import EquivalenceLibrary, EquivalenceRule, RuleOp, standard_library
from .exceptions import (
    ConfigurationError,
    ExecutionCancelledError,
    ExecutionError,
    ExecutionTimeoutError,
    InsufficientQubitsError,
    InvalidLayoutError,
    MalformedCircuitError,
    NoMeasurementError,
    RoutingError,
    RoutingTimeoutError,
    TranspilerError,
    UnsupportedGateError,
)
from .layout import Layout
from .pipeline import PipelineStage, Transpiler, TranspileResult, transpile, transpile_batch
from .primitives import (
    BatchResult,
    Estimator,
    EstimatorResult,
    PrimitiveJob,
    Sampler,
    SamplerResult,
    StatevectorBackend,
)

__version__ = "0.1.0"

__all__ = [
    "BatchResult",
    "Circuit",
    "ConfigurationError",
    "DDSequence",
    "Device",
    "EquivalenceLibrary",
    "EquivalenceRule",
    "Estimator",
    "EstimatorResult",
    "ExecutionCancelledError",
    "ExecutionError",
    "ExecutionTimeoutError",
    "InsufficientQubitsError",
    "InvalidLayoutError",
    "Layout",
    "LayoutMethod",
    "MalformedCircuitError",
    "NoMeasurementError",
    "Operation",
    "PipelineStage",
    "PrimitiveJob",
    "RoutingError",
    "RoutingMethod",
    "RoutingTimeoutError",
    "RuleOp",
    "Sampler",
    "SamplerResult",
    "ScheduleMode",
    "StagePolicy",
    "StatevectorBackend",
    "Strictness",
    "TranspileConfig",
    "TranspileResult",
    "Transpiler",
    "TranspilerError",
    "UnsupportedGateError",
    "standard_library",
    "transpile",
    "transpile_batch",
]
