"""Sampling and expectation-value primitives over a pluggable backend.

A backend is any callable ``(circuit, shots) -> {outcome: count}`` where
outcomes are bitstrings (clbit 0 rightmost) or integers. Both primitives
validate their inputs before anything is dispatched, run each input as an
independent task on a thread pool and report a result *or* an error per
input index. Nothing is retried here; callers decide what to resubmit.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from qiskit.primitives import StatevectorSampler

from .circuit import Circuit, Operation
from .device import Device
from .exceptions import (
    ExecutionCancelledError,
    ExecutionError,
    ExecutionTimeoutError,
    NoMeasurementError,
)
from .gates import BARRIER, DELAY, MEASURE
from .interop import to_qiskit
from .layout import Layout
from .passes.translation import BasisTranslator
from .pipeline import TranspileResult
from .steps import _prune_idle_qubits_simple

logger = logging.getLogger(__name__)

Backend = Callable[[Circuit, int], Mapping[Union[str, int], int]]
CircuitLike = Union[Circuit, TranspileResult]
ObservableLike = Any  # SparsePauliOp | Mapping[str, complex] | Sequence[Tuple[str, complex]]

DEFAULT_SHOTS = 1024


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SamplerResult:
    counts: Dict[str, int]
    probabilities: Dict[str, float]
    shots: int


@dataclass(frozen=True)
class EstimatorResult:
    value: float
    variance: float
    shots: int


Entry = Union[SamplerResult, EstimatorResult, ExecutionError]


@dataclass(frozen=True)
class BatchResult:
    """Per-index outcome of a job: a result object or the :class:`ExecutionError` it raised."""
    entries: Tuple[Entry, ...]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries)

    def __getitem__(self, index: int) -> Entry:
        return self.entries[index]

    def ok(self, index: int) -> bool:
        return not isinstance(self.entries[index], ExecutionError)

    @property
    def errors(self) -> Dict[int, ExecutionError]:
        return {i: e for i, e in enumerate(self.entries) if isinstance(e, ExecutionError)}

    @property
    def succeeded(self) -> bool:
        return not self.errors

    def results(self) -> List[Entry]:
        """All entries, raising the first error if any index failed."""
        for entry in self.entries:
            if isinstance(entry, ExecutionError):
                raise entry
        return list(self.entries)


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

class PrimitiveJob:
    """Handle on a batch of independent tasks running on a private thread pool."""

    def __init__(
        self,
        tasks: Sequence[Callable[[threading.Event], Any]],
        max_workers: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self._cancel = threading.Event()
        self._timeout = timeout
        pool = ThreadPoolExecutor(max_workers=max_workers or max(1, min(len(tasks), 8)))
        self._futures: List[Future] = [pool.submit(task, self._cancel) for task in tasks]
        pool.shutdown(wait=False)

    def __len__(self) -> int:
        return len(self._futures)

    def cancel(self) -> bool:
        """Stop pending entries; those already running finish but are reported cancelled if they check in."""
        self._cancel.set()
        cancelled = [f.cancel() for f in self._futures]
        return any(cancelled) or not self.done()

    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def done(self) -> bool:
        return all(f.done() for f in self._futures)

    def running(self) -> bool:
        return not self.done()

    def result(self, timeout: Optional[float] = None) -> BatchResult:
        """Wait for every entry.

        Raises:
            ExecutionTimeoutError: if entries are still outstanding after
                ``timeout`` seconds (or the job's default timeout).
        """
        timeout = self._timeout if timeout is None else timeout
        _, pending = wait(self._futures, timeout=timeout)
        if pending:
            raise ExecutionTimeoutError(
                f"{len(pending)} of {len(self._futures)} entries still running after {timeout}s"
            )
        entries: List[Entry] = []
        for index, fut in enumerate(self._futures):
            if fut.cancelled():
                entries.append(ExecutionCancelledError("Entry cancelled before dispatch", index=index))
                continue
            err = fut.exception()
            if err is None:
                entries.append(fut.result())
            elif isinstance(err, ExecutionError):
                entries.append(err)
            else:
                wrapped = ExecutionError(f"Backend failed: {err}", index=index)
                wrapped.__cause__ = err
                entries.append(wrapped)
        return BatchResult(tuple(entries))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _unwrap(item: CircuitLike) -> Tuple[Circuit, Optional[Layout], Tuple[int, ...]]:
    if isinstance(item, TranspileResult):
        return item.circuit, item.final_layout, item.virtual_qubits
    return item, None, ()


def _as_list(items: Union[CircuitLike, Sequence[CircuitLike]]) -> List[CircuitLike]:
    if isinstance(items, (Circuit, TranspileResult)):
        return [items]
    return list(items)


def _bind(circuit: Circuit, values: Optional[Mapping[Any, float]]) -> Circuit:
    if values:
        return circuit.assign_parameters(values)
    return circuit


def normalize_counts(raw: Mapping[Union[str, int], int], num_clbits: int) -> Dict[str, int]:
    """Bitstring keys padded to ``num_clbits`` (clbit 0 rightmost)."""
    out: Dict[str, int] = {}
    for key, count in raw.items():
        if isinstance(key, str):
            key = key.replace(" ", "")
            bits = format(int(key, 16), "b") if key.startswith("0x") else key
        else:
            bits = format(int(key), "b")
        bits = bits.zfill(num_clbits)
        out[bits] = out.get(bits, 0) + int(count)
    return out


def _check_cancel(cancel: threading.Event, index: int) -> None:
    if cancel.is_set():
        raise ExecutionCancelledError("Entry cancelled", index=index)


def _dispatch(backend: Backend, circuit: Circuit, shots: int, index: int) -> Mapping[Union[str, int], int]:
    try:
        return backend(circuit, shots)
    except ExecutionError:
        raise
    except Exception as e:
        raise ExecutionError(f"Backend failed: {e}", index=index) from e


# ---------------------------------------------------------------------------
# Sampler
# ---------------------------------------------------------------------------

class Sampler:
    """Quasi-distribution primitive: counts normalised by shots."""

    def __init__(
        self,
        backend: Backend,
        default_shots: int = DEFAULT_SHOTS,
        timeout: Optional[float] = None,
        max_workers: Optional[int] = None,
    ):
        self.backend = backend
        self.default_shots = int(default_shots)
        self.timeout = timeout
        self.max_workers = max_workers

    def run(
        self,
        circuits: Union[CircuitLike, Sequence[CircuitLike]],
        shots: Optional[int] = None,
        parameter_values: Optional[Sequence[Optional[Mapping[Any, float]]]] = None,
    ) -> PrimitiveJob:
        """
        Raises:
            NoMeasurementError: before dispatching anything, for the first
                circuit without a measurement.
        """
        items = _as_list(circuits)
        shots = self.default_shots if shots is None else int(shots)
        if shots < 1:
            raise ValueError(f"shots must be >= 1, got {shots}")
        if parameter_values is not None and len(parameter_values) != len(items):
            raise ValueError("parameter_values must have one entry per circuit")

        prepared: List[Circuit] = []
        for index, item in enumerate(items):
            circuit, _, _ = _unwrap(item)
            if not circuit.has_measurements():
                raise NoMeasurementError(f"Circuit '{circuit.name}' has no measurements", index=index)
            values = parameter_values[index] if parameter_values is not None else None
            prepared.append(_bind(circuit, values))

        def make_task(index: int, circuit: Circuit) -> Callable[[threading.Event], SamplerResult]:
            def task(cancel: threading.Event) -> SamplerResult:
                _check_cancel(cancel, index)
                counts = normalize_counts(_dispatch(self.backend, circuit, shots, index), circuit.num_clbits)
                probs = {k: v / shots for k, v in counts.items()}
                return SamplerResult(counts=counts, probabilities=probs, shots=shots)
            return task

        logger.debug("Sampler: dispatching %d circuit(s) x %d shots", len(prepared), shots)
        return PrimitiveJob([make_task(i, c) for i, c in enumerate(prepared)], self.max_workers, self.timeout)


# ---------------------------------------------------------------------------
# Estimator
# ---------------------------------------------------------------------------

def observable_terms(observable: ObservableLike) -> List[Tuple[str, float]]:
    """``[(label, coeff)]`` from a SparsePauliOp, a mapping or a sequence of pairs."""
    if hasattr(observable, "to_list"):
        pairs = observable.to_list()
    elif isinstance(observable, Mapping):
        pairs = list(observable.items())
    elif isinstance(observable, str):
        pairs = [(observable, 1.0)]
    else:
        pairs = list(observable)
    terms = []
    for label, coeff in pairs:
        label = str(label).upper()
        if set(label) - set("IXYZ"):
            raise ValueError(f"Invalid Pauli label '{label}'")
        c = complex(coeff)
        if abs(c.imag) > 1e-12:
            raise ValueError(f"Observable coefficient {coeff} for '{label}' is not real")
        terms.append((label, c.real))
    return terms


@dataclass(frozen=True)
class _Term:
    coeff: float
    circuit: Optional[Circuit] = None
    clbits: Tuple[int, ...] = field(default=())


class Estimator:
    """Expectation values of Pauli-sum observables, one measurement circuit per term."""

    def __init__(
        self,
        backend: Backend,
        default_shots: int = DEFAULT_SHOTS,
        device: Optional[Device] = None,
        timeout: Optional[float] = None,
        max_workers: Optional[int] = None,
    ):
        self.backend = backend
        self.default_shots = int(default_shots)
        self.device = device
        self.timeout = timeout
        self.max_workers = max_workers
        self._translator = BasisTranslator.for_device(device) if device is not None else None

    def _basis_change(self, pauli: str, qubit: int) -> List[Operation]:
        if pauli == "X":
            ops = [Operation("h", (qubit,))]
        elif pauli == "Y":
            ops = [Operation("sdg", (qubit,)), Operation("h", (qubit,))]
        else:
            return []
        if self._translator is None:
            return ops
        out: List[Operation] = []
        for op in ops:
            out.extend(self._translator.translate_operation(op))
        return out

    def _terms(
        self,
        circuit: Circuit,
        layout: Optional[Layout],
        virtual_qubits: Tuple[int, ...],
        observable: ObservableLike,
    ) -> List[_Term]:
        base, _ = circuit.remove_final_measurements()
        position = {v: i for i, v in enumerate(virtual_qubits)} if virtual_qubits else None
        terms: List[_Term] = []
        for label, coeff in observable_terms(observable):
            ops = list(base.operations)
            measured: List[Tuple[int, int]] = []
            for pos, pauli in enumerate(reversed(label)):
                if pauli == "I":
                    continue
                virtual = pos if position is None else position.get(pos)
                if virtual is None:
                    raise ValueError(f"Observable acts on qubit {pos}, which is not in the compiled circuit")
                physical = layout.physical(virtual) if layout is not None else virtual
                if physical >= base.num_qubits:
                    raise ValueError(f"Observable acts on qubit {pos} outside a {base.num_qubits}-qubit circuit")
                ops.extend(self._basis_change(pauli, physical))
                measured.append((physical, base.num_clbits + len(measured)))
            if not measured:
                terms.append(_Term(coeff))
                continue
            for q, c in measured:
                ops.append(Operation(MEASURE, (q,), (), (c,)))
            circ = Circuit.from_operations(
                base.num_qubits, base.num_clbits + len(measured), ops, name=f"{circuit.name}_{label}"
            )
            terms.append(_Term(coeff, circ, tuple(c for _, c in measured)))
        return terms

    def run(
        self,
        circuits: Union[CircuitLike, Sequence[CircuitLike]],
        observables: Union[ObservableLike, Sequence[ObservableLike]],
        parameter_values: Optional[Sequence[Optional[Mapping[Any, float]]]] = None,
        shots: Optional[int] = None,
    ) -> PrimitiveJob:
        single = isinstance(circuits, (Circuit, TranspileResult))
        items = _as_list(circuits)
        observables = [observables] if single else list(observables)
        if len(observables) != len(items):
            raise ValueError(f"Got {len(items)} circuit(s) but {len(observables)} observable(s)")
        if parameter_values is not None and len(parameter_values) != len(items):
            raise ValueError("parameter_values must have one entry per circuit")
        shots = self.default_shots if shots is None else int(shots)
        if shots < 1:
            raise ValueError(f"shots must be >= 1, got {shots}")

        plans: List[List[_Term]] = []
        for index, (item, obs) in enumerate(zip(items, observables)):
            circuit, layout, virtual_qubits = _unwrap(item)
            values = parameter_values[index] if parameter_values is not None else None
            plans.append(self._terms(_bind(circuit, values), layout, virtual_qubits, obs))

        def make_task(index: int, terms: List[_Term]) -> Callable[[threading.Event], EstimatorResult]:
            def task(cancel: threading.Event) -> EstimatorResult:
                value = 0.0
                variance = 0.0
                for term in terms:
                    if term.circuit is None:
                        value += term.coeff
                        continue
                    _check_cancel(cancel, index)
                    counts = normalize_counts(
                        _dispatch(self.backend, term.circuit, shots, index), term.circuit.num_clbits
                    )
                    width = term.circuit.num_clbits
                    expectation = 0.0
                    for bits, count in counts.items():
                        ones = sum(bits[width - 1 - c] == "1" for c in term.clbits)
                        expectation += (-1.0 if ones % 2 else 1.0) * count / shots
                    value += term.coeff * expectation
                    variance += term.coeff ** 2 * max(0.0, 1.0 - expectation ** 2) / shots
                return EstimatorResult(value=value, variance=variance, shots=shots)
            return task

        logger.debug("Estimator: dispatching %d circuit(s)", len(plans))
        return PrimitiveJob([make_task(i, t) for i, t in enumerate(plans)], self.max_workers, self.timeout)


# ---------------------------------------------------------------------------
# Reference backend
# ---------------------------------------------------------------------------

class StatevectorBackend:
    """Ideal sampling through Qiskit's ``StatevectorSampler``.

    Timing-only instructions are dropped and idle wires pruned first so
    routed circuits on large devices stay cheap to simulate.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed

    def __call__(self, circuit: Circuit, shots: int) -> Dict[str, int]:
        ops = [op for op in circuit if op.name not in (BARRIER, DELAY)]
        slim, _ = _prune_idle_qubits_simple(circuit.with_operations(ops))
        qc = to_qiskit(slim)
        pub = StatevectorSampler(seed=self.seed).run([qc], shots=shots).result()[0]
        return dict(pub.data.c.get_counts())
