"""Layout type and layout-selection strategies.

Coverage breakdown:
- ``test_layout_*`` validate the immutable :class:`Layout` mapping.
- ``test_trivial_layout_*`` covers identity placement and the size guard.
- ``test_vf2_*`` exercise perfect-layout search, error-aware ranking, the ``None`` signal
  and the state budget that stops a search with no embedding.
- ``test_sabre_*`` check determinism, the zero-swap shortcut and error-weighted swap scoring.
- ``test_explicit_layout_*`` cover override validation in lenient and strict modes.
"""

import time

import numpy as np
import pytest

from qtranspile import Circuit, Device, InsufficientQubitsError, InvalidLayoutError, Layout
from qtranspile.passes import layout as layout_pass
from qtranspile.passes import (
    explicit_layout,
    interaction_graph,
    noise_weighted_distances,
    route,
    sabre_layout,
    sabre_route,
    select_layout,
    trivial_layout,
    vf2_layout,
)


def _chain(n):
    qc = Circuit(n, name=f"chain_{n}")
    for q in range(n - 1):
        qc.cx(q, q + 1)
    return qc.freeze()


def _triangle():
    qc = Circuit(3, name="triangle")
    qc.cx(0, 1).cx(1, 2).cx(0, 2)
    return qc.freeze()


# --------------------------------------------------------------------- Layout

def test_layout_rejects_duplicates():
    with pytest.raises(InvalidLayoutError):
        Layout([1, 1], 3)


def test_layout_rejects_out_of_range():
    with pytest.raises(InvalidLayoutError):
        Layout([0, 3], 3)


def test_layout_too_many_virtual_qubits():
    with pytest.raises(InsufficientQubitsError):
        Layout([0, 1, 2], 2)


def test_layout_queries():
    layout = Layout([2, 0], 4)
    assert layout.physical(0) == 2
    assert layout.virtual(0) == 1
    assert layout.virtual(3) is None
    assert layout.to_dict() == {0: 2, 1: 0}
    assert layout.inverse() == {2: 0, 0: 1}
    assert layout.full_mapping() == [2, 0, 1, 3]
    assert layout.swap_physical(2, 3).physical_qubits() == [3, 0]
    assert layout.compose_permutation([1, 0, 3, 2]).physical_qubits() == [3, 1]
    assert Layout.from_dict({0: 2, 1: 0}, 2, 4) == layout
    assert list(layout) == [(0, 2), (1, 0)]


# --------------------------------------------------------------------- trivial

def test_trivial_layout(line3):
    assert trivial_layout(_chain(2), line3).physical_qubits() == [0, 1]


def test_trivial_layout_too_small(line3):
    with pytest.raises(InsufficientQubitsError):
        trivial_layout(_chain(4), line3)


# ------------------------------------------------------------------------ vf2

def test_interaction_graph():
    graph = interaction_graph(_triangle())
    assert sorted(tuple(sorted(e)) for e in graph.edges()) == [(0, 1), (0, 2), (1, 2)]


def test_vf2_finds_smallest_perfect_layout(line3):
    layout = vf2_layout(_chain(3), line3)
    assert layout is not None
    assert layout.physical_qubits() == [0, 1, 2]


def test_vf2_prefers_low_error_edges(noisy_line4):
    layout = vf2_layout(_chain(2), noisy_line4)
    assert layout.physical_qubits() == [1, 2]


def test_vf2_returns_none_when_no_embedding(line5):
    assert vf2_layout(_triangle(), line5) is None


def test_vf2_completes_idle_qubits(line5):
    qc = Circuit(3)
    qc.cx(0, 2)
    layout = vf2_layout(qc, line5)
    assert layout.num_virtual == 3
    assert line5.are_connected(layout.physical(0), layout.physical(2))
    assert len(set(layout.physical_qubits())) == 3


def test_vf2_perfect_layout_needs_no_swaps(grid23):
    qc = Circuit(4)
    qc.cx(0, 1).cx(1, 2).cx(2, 3).cx(3, 0)
    layout = vf2_layout(qc, grid23)
    assert layout is not None
    assert route(qc, grid23, layout).swap_count == 0


def _odd_ring(n):
    qc = Circuit(n, name=f"ring_{n}")
    for q in range(n):
        qc.cx(q, (q + 1) % n)
    return qc.freeze()


def test_vf2_call_limit_bounds_search_without_embedding():
    # an odd cycle never embeds in a bipartite grid; the budget must stop the search
    grid = Device.grid(7, 7)
    start = time.perf_counter()
    assert vf2_layout(_odd_ring(11), grid, call_limit=10) is None
    assert time.perf_counter() - start < 5.0


def test_vf2_skips_search_when_interactions_outnumber_couplers(line3):
    assert vf2_layout(_triangle(), line3) is None


def test_select_layout_vf2_budget_falls_back(caplog):
    grid = Device.grid(3, 3)
    with caplog.at_level("INFO", logger="qtranspile.passes.layout"):
        layout = select_layout(_odd_ring(5), grid, "vf2", seed=2, vf2_call_limit=50)
    assert layout.num_virtual == 5
    assert "no perfect layout" in caplog.text


# ---------------------------------------------------------------------- sabre

def test_sabre_layout_zero_swap_shortcut(line5):
    assert sabre_layout(_chain(4), line5, seed=None) == Layout.trivial(4, 5)


def test_noise_weighted_distances(noisy_line4, line3):
    dist = noise_weighted_distances(noisy_line4)
    # mean error 0.08 / 3; a coupler costs 1 + error / mean
    assert dist[0, 1] == pytest.approx(2.875)
    assert dist[1, 2] == pytest.approx(1.375)
    assert dist[0, 3] == pytest.approx(2.875 + 1.375 + 1.75)
    assert np.array_equal(noise_weighted_distances(line3), line3.distance_matrix())


def test_sabre_route_prefers_low_error_coupler(noisy_line4):
    qc = Circuit(2).cx(0, 1).freeze()
    start = Layout([1, 3], 4)
    plain = sabre_route(qc, noisy_line4, start)
    weighted = sabre_route(qc, noisy_line4, start, distances=noise_weighted_distances(noisy_line4))
    assert plain.circuit[0].qubits == (1, 2)
    # cx lands on (1, 2), the best coupler, instead of (2, 3)
    assert weighted.circuit[0].qubits == (2, 3)
    assert weighted.circuit[1].qubits == (1, 2)
    assert plain.swap_count == weighted.swap_count == 1


def test_sabre_layout_scores_with_coupler_errors(monkeypatch, noisy_line4, line5):
    seen = []
    real = layout_pass.sabre_route

    def recording(*args):
        seen.append(args[-1])
        return real(*args)

    monkeypatch.setattr(layout_pass, "sabre_route", recording)
    sabre_layout(_triangle(), noisy_line4, seed=1)
    expected = noise_weighted_distances(noisy_line4)
    assert seen and all(np.array_equal(d, expected) for d in seen)

    seen.clear()
    sabre_layout(_triangle(), line5, seed=1)
    assert seen and all(d is None for d in seen)


def test_sabre_layout_deterministic(ring6):
    qc = _triangle()
    a = sabre_layout(qc, ring6, seed=7)
    b = sabre_layout(qc, ring6, seed=7)
    assert a == b
    assert a.num_virtual == 3
    assert a.num_physical == 6


def test_select_layout_vf2_falls_back_to_sabre(line5):
    layout = select_layout(_triangle(), line5, "vf2", seed=3)
    assert isinstance(layout, Layout)
    assert layout.num_virtual == 3


def test_select_layout_unknown_method(line5):
    with pytest.raises(ValueError):
        select_layout(_chain(2), line5, "dense")


# ------------------------------------------------------------------- explicit

def test_explicit_layout_accepts_sequence(line3):
    assert explicit_layout([2, 1], _chain(2), line3).to_dict() == {0: 2, 1: 1}


def test_explicit_layout_duplicates(line3):
    with pytest.raises(InvalidLayoutError):
        explicit_layout({0: 1, 1: 1}, _chain(2), line3)


def test_explicit_layout_out_of_range(line3):
    with pytest.raises(InvalidLayoutError):
        explicit_layout({0: 0, 1: 9}, _chain(2), line3)


def test_explicit_layout_unknown_virtual(line3):
    with pytest.raises(InvalidLayoutError):
        explicit_layout({0: 0, 1: 1, 5: 2}, _chain(2), line3)


def test_explicit_layout_partial_lenient_and_strict(line3, caplog):
    qc = _chain(3)
    with caplog.at_level("WARNING", logger="qtranspile.passes.layout"):
        layout = explicit_layout({0: 2}, qc, line3)
    assert layout.physical_qubits() == [2, 0, 1]
    assert "partial" in caplog.text
    with pytest.raises(InvalidLayoutError):
        explicit_layout({0: 2}, qc, line3, strict=True)


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__, "-vv", "-rA"]))
