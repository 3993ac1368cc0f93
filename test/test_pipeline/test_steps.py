"""Validation of granular transpilation steps in :mod:`qtranspile.steps`.

Coverage breakdown:
- ``test_count_2q_and_swaps`` validates the two-qubit and swap counting helper.
- ``test_prune_idle_qubits_*`` checks wire removal and barrier narrowing.
- ``test_validate_*`` covers lenient pruning, strict rejection and wide-gate lowering.
- ``test_initial_layout_*`` maps explicit placements through pruned indices.
- ``test_transpile_step_chain`` runs every step in order and checks the result.
- ``test_score_*`` inspects metric reporting.
"""

import logging

import pytest

from qtranspile import Circuit, InsufficientQubitsError, TranspileConfig, steps
from qtranspile.passes import first_violation


def _wide_sparse():
    qc = Circuit(4, name="sparse")
    qc.h(0)
    qc.barrier()
    qc.cx(0, 2)
    return qc.freeze()


def test_count_2q_and_swaps():
    qc = Circuit(3)
    qc.cx(0, 1)
    qc.swap(1, 2)
    qc.cx(2, 1)
    qc.h(0)
    assert steps._count_2q_and_swaps(qc) == (3, 1)


def test_prune_idle_qubits_narrows_barriers():
    pruned, kept = steps._prune_idle_qubits_simple(_wide_sparse())
    assert kept == [0, 2]
    assert pruned.num_qubits == 2
    assert [(op.name, op.qubits) for op in pruned] == [("h", (0,)), ("barrier", (0, 1)), ("cx", (0, 1))]


def test_prune_idle_qubits_noop_when_all_active(bell):
    pruned, kept = steps._prune_idle_qubits_simple(bell)
    assert pruned is bell
    assert kept == [0, 1]


def test_validate_lenient_prunes(line3, caplog):
    with caplog.at_level(logging.WARNING, logger="qtranspile.steps"):
        circuit, kept = steps.validate(_wide_sparse(), line3, TranspileConfig())
    assert circuit.num_qubits == 2
    assert kept == [0, 2]
    assert "pruned 2 idle qubit(s)" in caplog.text


def test_validate_strict_rejects(line3):
    with pytest.raises(InsufficientQubitsError) as excinfo:
        steps.validate(_wide_sparse(), line3, TranspileConfig(strictness="strict"))
    assert excinfo.value.details == {"num_virtual": 4, "num_physical": 3}


def test_validate_lowers_wide_gates(line3):
    qc = Circuit(3)
    qc.ccx(0, 1, 2)
    circuit, kept = steps.validate(qc, line3, TranspileConfig())
    assert "ccx" not in circuit.count_ops()
    assert all(op.num_qubits <= 2 for op in circuit)
    assert kept == [0, 1, 2]


def test_initial_layout_remaps_pruned_indices(line3):
    cfg = TranspileConfig(layout={0: 1, 2: 0})
    circuit, kept = steps.validate(_wide_sparse(), line3, cfg)
    layout = steps.initial_layout(circuit, line3, cfg, seed=None, kept=kept)
    assert layout.physical(0) == 1
    assert layout.physical(1) == 0


def test_initial_layout_uses_level_method(line3):
    qc = Circuit(2)
    qc.cx(0, 1)
    layout = steps.initial_layout(qc, line3, TranspileConfig(optimization_level=0), seed=None)
    assert layout.to_dict() == {0: 0, 1: 1}


def test_transpile_step_chain(line3):
    qc = Circuit(3)
    qc.h(0)
    qc.cx(0, 2)
    cfg = TranspileConfig()

    q0, _ = steps.validate(qc, line3, cfg)
    layout = steps.initial_layout(q0, line3, cfg.with_overrides(layout="trivial"), seed=7)
    routed = steps.route(q0, line3, layout, cfg, seed=7)
    q3 = steps.unroll(routed.circuit, line3, cfg)
    q4 = steps.opt_local(q3, line3, cfg)
    q5 = steps.schedule(q4, line3, cfg)

    assert routed.swap_count == 1
    assert first_violation(q5, line3) is None
    assert {op.name for op in q5 if op.is_gate} <= set(line3.basis_gates)

    metrics = steps.score(q5, line3, swaps=routed.swap_count)
    assert metrics["swaps"] == 1
    assert metrics["n_qubits_reserved"] == 3
    assert "duration_ns" in metrics


def test_score_reports_metrics(line3):
    qc = Circuit(3)
    qc.x(0)
    qc.cx(0, 1)
    qc.swap(1, 2)
    metrics = steps.score(qc, line3)

    assert metrics["twoq"] == 2
    assert metrics["swaps"] == 1
    assert metrics["size"] == 3
    assert metrics["depth"] == 3
    assert metrics["n_qubits_reserved"] == 3
    assert metrics["n_qubits_active"] == 3
    assert metrics["duration_dt"] == 160 + 800 + 2400
    assert metrics["duration_ns"] == pytest.approx(3360 * line3.dt * 1e9)


def test_score_explicit_swaps_override(line3):
    qc = Circuit(3)
    qc.cx(0, 1)
    assert steps.score(qc, line3, swaps=4)["swaps"] == 4


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__, "-vv", "-rA"]))
