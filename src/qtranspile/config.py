from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Union

import yaml

from .exceptions import ConfigurationError


class LayoutMethod(str, Enum):
    TRIVIAL = "trivial"
    VF2 = "vf2"
    SABRE = "sabre"


class RoutingMethod(str, Enum):
    STOCHASTIC = "stochastic"
    SABRE = "sabre"


class Strictness(str, Enum):
    LENIENT = "lenient"
    STRICT = "strict"


class DDSequence(str, Enum):
    XX = "XX"
    XYXY = "XYXY"


class ScheduleMode(str, Enum):
    ALAP = "alap"
    ASAP = "asap"


@dataclass(frozen=True)
class StagePolicy:
    """What an optimization level turns on."""
    name: str
    layout: LayoutMethod
    routing: RoutingMethod
    optimize: bool
    dynamical_decoupling: bool


_LIGHT = StagePolicy("light", LayoutMethod.TRIVIAL, RoutingMethod.STOCHASTIC, optimize=False, dynamical_decoupling=False)
_STANDARD = StagePolicy("standard", LayoutMethod.VF2, RoutingMethod.SABRE, optimize=True, dynamical_decoupling=True)

# Levels 2 and 3 are reserved for heavier search budgets and currently share level 1's policy.
LEVEL_POLICIES: Mapping[int, StagePolicy] = MappingProxyType({0: _LIGHT, 1: _STANDARD, 2: _STANDARD, 3: _STANDARD})


def _coerce(enum_cls, value, field_name: str):
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(f"{field_name}={value!r} is not one of: {allowed}", field=field_name) from None


@dataclass(frozen=True)
class TranspileConfig:
    """
    Container for all transpilation knobs. Pure data, validated on construction.
    """
    optimization_level: int = 1                   # 0..3, picks a StagePolicy
    skip_compilation: bool = False                # only check the qubit count, return the input
    layout: Union[None, str, LayoutMethod, Mapping[int, int], Sequence[int]] = None  # method name or explicit placement
    routing: Union[None, str, RoutingMethod] = None
    approximation_degree: float = 1.0             # 1.0 = exact; lower drops near-identity rotations
    strictness: Union[str, Strictness] = Strictness.LENIENT
    seeds: int = 4                                # how many seed tries for layout/routing search
    seed_offset: int = 0                          # offset to make runs reproducible yet distinct
    keep_top_k: int = 3                           # leaderboard length
    schedule_mode: Union[str, ScheduleMode] = ScheduleMode.ALAP
    dd_sequence: Union[str, DDSequence] = DDSequence.XX
    layout_iterations: int = 5                    # SABRE forward/backward rounds
    vf2_call_limit: int = 10_000                  # mappings examined by the VF2 search
    routing_iteration_factor: int = 10            # swap cap = factor * (ops + 1) * diameter
    lookahead_size: int = 20                      # SABRE extended-set size
    stochastic_trials: int = 8                    # random walks per blocked gate at level 0

    def __post_init__(self):
        if self.optimization_level not in LEVEL_POLICIES:
            raise ConfigurationError(
                f"optimization_level must be one of {sorted(LEVEL_POLICIES)}, got {self.optimization_level!r}",
                field="optimization_level",
            )
        if not 0.0 <= float(self.approximation_degree) <= 1.0:
            raise ConfigurationError(
                f"approximation_degree must lie in [0, 1], got {self.approximation_degree!r}",
                field="approximation_degree",
            )
        for name in ("seeds", "keep_top_k", "layout_iterations", "vf2_call_limit",
                     "routing_iteration_factor", "lookahead_size", "stochastic_trials"):
            if int(getattr(self, name)) < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {getattr(self, name)!r}", field=name)

        layout = self.layout
        if isinstance(layout, str):
            layout = _coerce(LayoutMethod, layout, "layout")
        elif isinstance(layout, Mapping):
            layout = MappingProxyType({int(k): int(v) for k, v in layout.items()})
        elif layout is not None and not isinstance(layout, LayoutMethod):
            layout = tuple(int(p) for p in layout)
        object.__setattr__(self, "layout", layout)
        object.__setattr__(self, "routing", _coerce(RoutingMethod, self.routing, "routing"))
        object.__setattr__(self, "strictness", _coerce(Strictness, self.strictness, "strictness"))
        object.__setattr__(self, "schedule_mode", _coerce(ScheduleMode, self.schedule_mode, "schedule_mode"))
        dd = self.dd_sequence.upper() if isinstance(self.dd_sequence, str) else self.dd_sequence
        object.__setattr__(self, "dd_sequence", _coerce(DDSequence, dd, "dd_sequence"))
        object.__setattr__(self, "approximation_degree", float(self.approximation_degree))

    # ------------------------------------------------------------- resolved
    @property
    def policy(self) -> StagePolicy:
        return LEVEL_POLICIES[self.optimization_level]

    @property
    def strict(self) -> bool:
        return self.strictness is Strictness.STRICT

    @property
    def explicit_layout(self) -> Optional[Union[Mapping[int, int], Sequence[int]]]:
        if self.layout is None or isinstance(self.layout, LayoutMethod):
            return None
        return self.layout

    @property
    def layout_method(self) -> Optional[LayoutMethod]:
        """Layout strategy in force, or ``None`` when an explicit placement is given."""
        if self.explicit_layout is not None:
            return None
        return self.layout or self.policy.layout

    @property
    def routing_method(self) -> RoutingMethod:
        return self.routing or self.policy.routing

    def seed_stream(self) -> Iterable[int]:
        start = int(self.seed_offset)
        for i in range(self.seeds):
            yield start + i

    def with_overrides(self, **overrides: Any) -> "TranspileConfig":
        return replace(self, **overrides)

    # ---------------------------------------------------------- loading
    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TranspileConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {unknown}", keys=unknown)
        return cls(**dict(data))

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "TranspileConfig":
        with open(Path(path), "r") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data.get("transpile", data))

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, Mapping):
                value = dict(value)
            elif isinstance(value, tuple):
                value = list(value)
            out[f.name] = value
        return out
