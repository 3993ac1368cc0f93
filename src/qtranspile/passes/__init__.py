from .layout import (
    explicit_layout,
    interaction_graph,
    noise_weighted_distances,
    sabre_layout,
    select_layout,
    trivial_layout,
    vf2_layout,
)
from .optimization import cancel_2q_pairs, collapse_1q_runs, optimize
from .routing import RoutingResult, first_violation, iteration_cap, route, sabre_route, stochastic_route
from .scheduling import DD_SEQUENCES, DynamicalDecoupling, Schedule, circuit_duration, idle_windows, insert_dd, schedule
from .translation import BasisTranslator, drop_negligible_rotations, plan_translation, translate, unroll_multi_qubit

__all__ = [
    "BasisTranslator",
    "DD_SEQUENCES",
    "DynamicalDecoupling",
    "RoutingResult",
    "Schedule",
    "cancel_2q_pairs",
    "circuit_duration",
    "collapse_1q_runs",
    "drop_negligible_rotations",
    "explicit_layout",
    "first_violation",
    "idle_windows",
    "insert_dd",
    "interaction_graph",
    "iteration_cap",
    "noise_weighted_distances",
    "optimize",
    "plan_translation",
    "route",
    "sabre_layout",
    "sabre_route",
    "schedule",
    "select_layout",
    "stochastic_route",
    "translate",
    "trivial_layout",
    "unroll_multi_qubit",
    "vf2_layout",
]
