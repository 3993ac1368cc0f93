"""Sampler and Estimator behaviour in :mod:`qtranspile.primitives`.

Test matrix:
- input validation happens before dispatch (missing measurements, shots, lengths);
- per-index results and errors, with the backend failure kept as ``__cause__``;
- ``ExecutionTimeoutError`` from ``result(timeout=...)`` on a blocked backend;
- cancellation leaves undispatched entries as ``ExecutionCancelledError``;
- count normalisation and observable parsing helpers;
- exact expectation values from :class:`StatevectorBackend`, including
  observables read through the layout of a compiled circuit.
"""

import math
import threading

import pytest

from qiskit.circuit import Parameter
from qiskit.quantum_info import SparsePauliOp

from qtranspile import (
    Circuit,
    Estimator,
    ExecutionCancelledError,
    ExecutionError,
    ExecutionTimeoutError,
    NoMeasurementError,
    Sampler,
    StatevectorBackend,
    transpile,
)
from qtranspile.primitives import normalize_counts, observable_terms


class RecordingBackend:
    """Returns a fixed outcome and remembers every circuit it saw."""

    def __init__(self, counts=None):
        self.counts = counts
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, circuit, shots):
        with self._lock:
            self.calls.append(circuit)
        if self.counts is not None:
            return dict(self.counts)
        return {"0" * circuit.num_clbits: shots}


class BlockingBackend:
    """Blocks every call until ``release`` is set."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()

    def __call__(self, circuit, shots):
        self.started.set()
        self.release.wait(timeout=10)
        return {"0" * circuit.num_clbits: shots}


def test_sampler_probabilities(bell):
    backend = RecordingBackend({"00": 300, "11": 700})
    result = Sampler(backend).run(bell, shots=1000).result()
    assert result.succeeded
    entry = result[0]
    assert entry.counts == {"00": 300, "11": 700}
    assert entry.probabilities == {"00": 0.3, "11": 0.7}
    assert entry.shots == 1000


def test_sampler_default_shots(bell):
    entry = Sampler(RecordingBackend(), default_shots=64).run([bell]).result()[0]
    assert entry.counts == {"00": 64}


def test_sampler_rejects_missing_measurements_before_dispatch(bell):
    backend = RecordingBackend()
    unmeasured = Circuit(2, name="unmeasured")
    unmeasured.h(0)
    with pytest.raises(NoMeasurementError) as excinfo:
        Sampler(backend).run([bell, unmeasured])
    assert excinfo.value.index == 1
    assert "index=1" in str(excinfo.value)
    assert backend.calls == []


def test_sampler_rejects_bad_arguments(bell):
    sampler = Sampler(RecordingBackend())
    with pytest.raises(ValueError):
        sampler.run(bell, shots=0)
    with pytest.raises(ValueError):
        sampler.run([bell, bell], parameter_values=[{}])


def test_sampler_binds_parameters():
    theta = Parameter("theta")
    qc = Circuit(1, 1, name="rot")
    qc.rx(theta, 0)
    qc.measure(0, 0)
    backend = RecordingBackend()
    Sampler(backend).run([qc, qc], parameter_values=[{"theta": 0.5}, {theta: 1.5}]).result()
    angles = sorted(c[0].params[0] for c in backend.calls)
    assert angles == [0.5, 1.5]


def test_per_index_errors(bell):
    def flaky(circuit, shots):
        if circuit.name == "bad":
            raise RuntimeError("device offline")
        return {"00": shots}

    bad = Circuit.from_operations(2, 2, bell.operations, name="bad")
    result = Sampler(flaky).run([bell, bad, bell], shots=10).result()

    assert result.ok(0) and result.ok(2)
    assert not result.ok(1)
    assert set(result.errors) == {1}
    err = result[1]
    assert isinstance(err, ExecutionError)
    assert err.index == 1
    assert isinstance(err.__cause__, RuntimeError)
    with pytest.raises(ExecutionError):
        result.results()


def test_result_timeout(bell):
    backend = BlockingBackend()
    job = Sampler(backend).run(bell)
    try:
        with pytest.raises(ExecutionTimeoutError):
            job.result(timeout=0.05)
        assert job.running()
    finally:
        backend.release.set()
    assert job.result(timeout=10).succeeded


def test_cancel_marks_pending_entries(bell):
    backend = BlockingBackend()
    job = Sampler(backend, max_workers=1).run([bell, bell])
    assert backend.started.wait(timeout=10)
    assert job.cancel()
    assert job.cancelled()
    backend.release.set()

    result = job.result(timeout=10)
    assert result.ok(0)
    assert isinstance(result[1], ExecutionCancelledError)
    assert result[1].index == 1


def test_normalize_counts():
    raw = {3: 10, "0x1": 5, "1 0": 2, "011": 1}
    assert normalize_counts(raw, 3) == {"011": 11, "001": 5, "010": 2}


def test_observable_terms():
    assert observable_terms("zx") == [("ZX", 1.0)]
    assert observable_terms({"XI": 2}) == [("XI", 2.0)]
    assert observable_terms([("ZZ", 0.5), ("II", -1)]) == [("ZZ", 0.5), ("II", -1.0)]
    assert observable_terms(SparsePauliOp(["XY"], coeffs=[0.25])) == [("XY", 0.25)]
    with pytest.raises(ValueError):
        observable_terms("ZQ")
    with pytest.raises(ValueError):
        observable_terms({"Z": 1j})


@pytest.mark.parametrize(
    "observable",
    ["ZZ", "XX", SparsePauliOp(["ZZ", "XX"], coeffs=[0.5, 0.5])],
    ids=["zz", "xx", "sum"],
)
def test_estimator_bell_correlations(bell, observable):
    value = Estimator(StatevectorBackend(seed=11), default_shots=256).run(bell, observable).result()[0]
    assert value.value == pytest.approx(1.0)
    assert value.variance == pytest.approx(0.0)


def test_estimator_identity_term_needs_no_circuit(bell):
    backend = RecordingBackend()
    value = Estimator(backend).run(bell, {"II": 0.75}).result()[0]
    assert value.value == 0.75
    assert backend.calls == []


def test_estimator_y_basis():
    qc = Circuit(1, name="plus_i")
    qc.h(0)
    qc.s(0)
    value = Estimator(StatevectorBackend(seed=3)).run(qc, "Y").result()[0]
    assert value.value == pytest.approx(1.0)


def test_estimator_reads_through_layout(line3):
    qc = Circuit(2, name="flip")
    qc.x(0)
    compiled = transpile(qc, line3, layout={0: 2, 1: 0}, optimization_level=0)
    job = Estimator(StatevectorBackend(seed=5), device=line3).run([compiled, compiled], ["IZ", "ZI"])
    iz, zi = job.result().results()
    assert iz.value == pytest.approx(-1.0)
    assert zi.value == pytest.approx(1.0)


def test_estimator_rejects_mismatched_inputs(bell):
    with pytest.raises(ValueError):
        Estimator(RecordingBackend()).run([bell, bell], ["ZZ"])
    with pytest.raises(ValueError):
        Estimator(RecordingBackend()).run(bell, "ZZZ")


def test_estimator_binds_parameters():
    theta = Parameter("theta")
    qc = Circuit(1, name="ry")
    qc.ry(theta, 0)
    job = Estimator(StatevectorBackend(seed=1)).run([qc], ["Z"], parameter_values=[{"theta": math.pi}])
    assert job.result()[0].value == pytest.approx(-1.0)


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__, "-vv", "-rA"]))
