"""Error taxonomy for compilation and execution.

Compilation errors derive from :class:`TranspilerError` and carry enough
context (stage, operation index, qubit) to localise a failure. They are never
retried by the library: compilation is deterministic. Execution errors derive
from :class:`ExecutionError` and are the only class a caller may sensibly
retry.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class TranspilerError(Exception):
    """Base class for every compilation-stage failure.

    Attributes:
        stage: Name of the pipeline stage that raised (filled in by the
            orchestrator when the pass itself did not know it).
        op_index: Index of the offending operation in the stage's input circuit.
        qubit: Offending qubit index, when one is known.
        details: Free-form extra context.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        op_index: Optional[int] = None,
        qubit: Optional[int] = None,
        **details: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.op_index = op_index
        self.qubit = qubit
        self.details: Dict[str, Any] = details

    def context(self) -> Dict[str, Any]:
        ctx: Dict[str, Any] = {"stage": self.stage, "op_index": self.op_index, "qubit": self.qubit}
        ctx.update(self.details)
        return {k: v for k, v in ctx.items() if v is not None}

    def __str__(self) -> str:
        ctx = self.context()
        if not ctx:
            return self.message
        extra = ", ".join(f"{k}={v}" for k, v in ctx.items())
        return f"{self.message} ({extra})"


class MalformedCircuitError(TranspilerError):
    """An operation has the wrong arity or references an out-of-range bit."""


class InsufficientQubitsError(TranspilerError):
    """The device cannot host the circuit's virtual qubits."""


class InvalidLayoutError(InsufficientQubitsError):
    """An explicit layout is not a bijection onto distinct, in-range physical qubits."""


class RoutingError(TranspilerError):
    """Routing cannot satisfy the connectivity constraints."""


class RoutingTimeoutError(RoutingError):
    """The router exceeded its deterministic iteration cap."""


class UnsupportedGateError(TranspilerError):
    """No equivalence-rule path leads from a gate to the native basis."""


class ConfigurationError(TranspilerError, ValueError):
    """Invalid configuration detected at construction time."""


class ExecutionError(Exception):
    """Base class for primitive execution failures.

    Attributes:
        index: Position of the failing input in the submitted batch.
    """

    def __init__(self, message: str, *, index: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.index = index

    def __str__(self) -> str:
        if self.index is None:
            return self.message
        return f"{self.message} (index={self.index})"


class NoMeasurementError(ExecutionError):
    """A circuit submitted for sampling contains no measurement."""


class ExecutionTimeoutError(ExecutionError):
    """Waiting for backend results exceeded the configured timeout."""


class ExecutionCancelledError(ExecutionError):
    """The entry was abandoned because its job was cancelled."""
