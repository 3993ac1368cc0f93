from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .circuit import Circuit
from .config import LayoutMethod, RoutingMethod, TranspileConfig
from .device import Device
from .equivalence import EquivalenceLibrary
from .exceptions import InsufficientQubitsError, TranspilerError
from .layout import Layout
from .passes import layout as layout_passes
from . import steps

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    VALIDATED = "Validated"
    LAYOUT_CHOSEN = "LayoutChosen"
    ROUTED = "Routed"
    TRANSLATED = "Translated"
    LOCALLY_OPTIMIZED = "LocallyOptimized"
    ERROR_SUPPRESSED = "ErrorSuppressed"
    FINALIZED = "Finalized"


Candidate = Tuple[Circuit, Dict[str, Any]]


@dataclass(frozen=True)
class TranspileResult:
    """Compiled circuit plus the layouts needed to interpret its results.

    ``virtual_qubits[i]`` is the caller's index of virtual qubit ``i`` (differs
    from ``i`` only when idle qubits were pruned in lenient mode).
    """
    circuit: Circuit
    initial_layout: Layout
    final_layout: Layout
    metrics: Dict[str, Any]
    stages: Tuple[PipelineStage, ...]
    leaderboard: Tuple[Candidate, ...] = ()
    virtual_qubits: Tuple[int, ...] = field(default=())


@contextmanager
def _stage(stage: PipelineStage) -> Iterator[None]:
    try:
        yield
    except TranspilerError as err:
        if err.stage is None:
            err.stage = stage.value
        raise


class Transpiler:
    """
    Thin façade that orchestrates the pure steps with multi-seed exploration.
    Produces:
      - best candidate circuit with its layouts,
      - its metrics,
      - a leaderboard of the top-k (circuit, metrics) pairs.
    """

    def __init__(
        self,
        device: Device,
        cfg: Optional[TranspileConfig] = None,
        library: Optional[EquivalenceLibrary] = None,
    ):
        self.device = device
        self.cfg = cfg if cfg is not None else TranspileConfig()
        self.library = library

    # --------------------------- Public entry points ---------------------------

    def run(self, circuit: Circuit) -> TranspileResult:
        if self.cfg.skip_compilation:
            return self._passthrough(circuit)

        cfg = self.cfg
        with _stage(PipelineStage.VALIDATED):
            q0, kept = steps.validate(circuit, self.device, cfg, self.library)
        logger.info(
            "%s: validated '%s' (%d qubits, %d ops) for %s at level %d",
            PipelineStage.VALIDATED.value, q0.name, q0.num_qubits, len(q0), self.device.name, cfg.optimization_level,
        )

        fixed_layout: Optional[Layout] = None
        seeded = cfg.routing_method is RoutingMethod.STOCHASTIC
        if cfg.explicit_layout is not None or cfg.layout_method is LayoutMethod.TRIVIAL:
            with _stage(PipelineStage.LAYOUT_CHOSEN):
                fixed_layout = steps.initial_layout(q0, self.device, cfg, None, kept)
        elif cfg.layout_method is LayoutMethod.VF2:
            with _stage(PipelineStage.LAYOUT_CHOSEN):
                fixed_layout = layout_passes.vf2_layout(q0, self.device, cfg.vf2_call_limit)
            if fixed_layout is None:
                logger.info("vf2 found no perfect layout; falling back to sabre")
                cfg = cfg.with_overrides(layout=LayoutMethod.SABRE)
                seeded = True
        else:
            seeded = True

        seeds: List[Optional[int]] = list(cfg.seed_stream()) if seeded else [cfg.seed_offset]
        runs = [self._run_seed(q0, cfg, seed, fixed_layout) for seed in seeds]

        candidates = [(r.circuit, r.metrics) for r in runs]
        best, best_metrics, leaderboard = self._select_best(candidates, cfg.keep_top_k)
        chosen = next(r for r in runs if r.circuit is best)
        logger.info(
            "%s: '%s' twoq=%d depth=%d swaps=%d (best of %d seed(s))",
            PipelineStage.FINALIZED.value, best.name, best_metrics["twoq"], best_metrics["depth"],
            best_metrics["swaps"], len(runs),
        )
        return TranspileResult(
            circuit=chosen.circuit,
            initial_layout=chosen.initial_layout,
            final_layout=chosen.final_layout,
            metrics=best_metrics,
            stages=chosen.stages,
            leaderboard=tuple(leaderboard),
            virtual_qubits=tuple(kept),
        )

    # --------------------------- Internal helpers -----------------------------

    def _passthrough(self, circuit: Circuit) -> TranspileResult:
        with _stage(PipelineStage.VALIDATED):
            if circuit.num_qubits > self.device.num_qubits:
                raise InsufficientQubitsError(
                    f"Circuit needs {circuit.num_qubits} qubits, device '{self.device.name}' has "
                    f"{self.device.num_qubits}",
                    num_virtual=circuit.num_qubits,
                    num_physical=self.device.num_qubits,
                )
        layout = Layout.trivial(circuit.num_qubits, self.device.num_qubits)
        metrics = steps.score(circuit, self.device, swaps=0, mode=self.cfg.schedule_mode.value)
        logger.info("skip_compilation: returning '%s' unchanged", circuit.name)
        return TranspileResult(
            circuit=circuit,
            initial_layout=layout,
            final_layout=layout,
            metrics=metrics,
            stages=(PipelineStage.VALIDATED, PipelineStage.FINALIZED),
            leaderboard=((circuit, metrics),),
            virtual_qubits=tuple(range(circuit.num_qubits)),
        )

    def _run_seed(
        self,
        q0: Circuit,
        cfg: TranspileConfig,
        seed: Optional[int],
        fixed_layout: Optional[Layout],
    ) -> TranspileResult:
        policy = cfg.policy
        stages = [PipelineStage.VALIDATED]

        with _stage(PipelineStage.LAYOUT_CHOSEN):
            layout = fixed_layout if fixed_layout is not None else steps.initial_layout(q0, self.device, cfg, seed)
        stages.append(PipelineStage.LAYOUT_CHOSEN)
        logger.debug("seed=%s layout=%s", seed, layout.to_dict())

        with _stage(PipelineStage.ROUTED):
            routed = steps.route(q0, self.device, layout, cfg, seed)
        stages.append(PipelineStage.ROUTED)

        with _stage(PipelineStage.TRANSLATED):
            q3 = steps.unroll(routed.circuit, self.device, cfg, self.library)
        stages.append(PipelineStage.TRANSLATED)

        with _stage(PipelineStage.LOCALLY_OPTIMIZED):
            q4 = steps.opt_local(q3, self.device, cfg, self.library) if policy.optimize else q3
        stages.append(PipelineStage.LOCALLY_OPTIMIZED)

        with _stage(PipelineStage.ERROR_SUPPRESSED):
            q5 = steps.schedule(q4, self.device, cfg) if policy.dynamical_decoupling else q4
        stages.append(PipelineStage.ERROR_SUPPRESSED)

        with _stage(PipelineStage.FINALIZED):
            metrics = steps.score(q5, self.device, swaps=routed.swap_count, mode=cfg.schedule_mode.value)
        metrics["seed"] = seed
        stages.append(PipelineStage.FINALIZED)
        return TranspileResult(
            circuit=q5.freeze(),
            initial_layout=routed.initial_layout,
            final_layout=routed.final_layout,
            metrics=metrics,
            stages=tuple(stages),
        )

    @staticmethod
    def _select_best(
        cands: List[Candidate], top_k: int
    ) -> Tuple[Circuit, Dict[str, Any], List[Candidate]]:
        """
        Order candidates by (twoq, depth, duration_dt) and return best + top-k leaderboard.
        """
        def key(item):
            _, m = item
            return (
                int(m.get("twoq", 1 << 30)),
                int(m.get("depth", 1 << 30)),
                float(m.get("duration_dt") if m.get("duration_dt") is not None else 1e99),
            )

        ordered = sorted(cands, key=key)
        best_qc, best_metrics = ordered[0]
        leaderboard = ordered[: max(1, int(top_k))]
        return best_qc, best_metrics, leaderboard


def transpile(
    circuit: Circuit,
    device: Device,
    cfg: Optional[TranspileConfig] = None,
    library: Optional[EquivalenceLibrary] = None,
    **overrides: Any,
) -> TranspileResult:
    """Compile one circuit; keyword ``overrides`` replace fields of ``cfg``."""
    cfg = cfg if cfg is not None else TranspileConfig()
    if overrides:
        cfg = cfg.with_overrides(**overrides)
    return Transpiler(device, cfg, library).run(circuit)


def transpile_batch(
    circuits: Sequence[Circuit],
    device: Device,
    cfg: Optional[TranspileConfig] = None,
    library: Optional[EquivalenceLibrary] = None,
    max_workers: Optional[int] = None,
) -> List[TranspileResult]:
    """Compile independent circuits in parallel; the device is shared read-only.

    The first failing index's error is raised unmodified.
    """
    transpiler = Transpiler(device, cfg, library)
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [pool.submit(transpiler.run, c) for c in circuits]
        return [f.result() for f in futures]
