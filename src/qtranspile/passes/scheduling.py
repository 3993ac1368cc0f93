"""Hardware-aware scheduling and dynamical-decoupling padding."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..circuit import Circuit, Operation
from ..device import Device
from ..exceptions import ConfigurationError
from ..gates import DELAY
from .translation import BasisTranslator

logger = logging.getLogger(__name__)

DD_SEQUENCES: Dict[str, Tuple[str, ...]] = {
    "XX": ("x", "x"),
    "XYXY": ("x", "y", "x", "y"),
}


@dataclass(frozen=True)
class Schedule:
    """Start time and duration (in ``dt``) of every operation."""
    starts: Tuple[int, ...]
    durations: Tuple[int, ...]
    total: int
    mode: str

    def end(self, index: int) -> int:
        return self.starts[index] + self.durations[index]


def op_duration(op: Operation, device: Device) -> int:
    if op.name == DELAY:
        return int(round(float(op.params[0])))
    return device.duration(op.name, op.qubits)


def _asap(ops: Sequence[Operation], durations: Sequence[int]) -> Tuple[List[int], int]:
    free: Dict[Tuple[str, int], int] = {}
    starts = []
    total = 0
    for op, dur in zip(ops, durations):
        wires = op.wires()
        start = max((free.get(w, 0) for w in wires), default=0)
        for w in wires:
            free[w] = start + dur
        starts.append(start)
        total = max(total, start + dur)
    return starts, total


def schedule(circuit: Circuit, device: Device, mode: str = "alap") -> Schedule:
    """ASAP or ALAP start times from device durations.

    Barriers take zero time but synchronise the wires they touch.
    """
    mode = mode.lower()
    if mode not in ("alap", "asap"):
        raise ConfigurationError("schedule(mode=...) must be 'alap' or 'asap'.", mode=mode)
    ops = circuit.operations
    durations = [op_duration(op, device) for op in ops]
    if mode == "asap":
        starts, total = _asap(ops, durations)
    else:
        rev_starts, total = _asap(ops[::-1], durations[::-1])
        n = len(ops)
        starts = [total - (rev_starts[n - 1 - i] + durations[i]) for i in range(n)]
    return Schedule(tuple(starts), tuple(durations), total, mode)


def idle_windows(circuit: Circuit, sched: Schedule) -> List[Tuple[int, int, int, int]]:
    """Gaps between consecutive operations on the same qubit.

    Returns ``(qubit, opener_index, start, length)`` for every gap of positive
    length, ordered by opener index then qubit.
    """
    last: Dict[int, int] = {}
    windows = []
    for idx, op in enumerate(circuit):
        for q in op.qubits:
            prev = last.get(q)
            if prev is not None:
                gap = sched.starts[idx] - sched.end(prev)
                if gap > 0:
                    windows.append((q, prev, sched.end(prev), gap))
            last[q] = idx
    windows.sort(key=lambda w: (w[1], w[0]))
    return windows


def _align_down(value: float, alignment: int) -> int:
    return int(value // alignment) * alignment


def _align_up(value: int, alignment: int) -> int:
    return -(-value // alignment) * alignment


def spaced_delays(free: int, num_pulses: int, alignment: int) -> List[int]:
    """Carr-Purcell spacing ``[1/2n, 1/n, ..., 1/n, 1/2n]`` of ``free`` time.

    Every delay but the last is a multiple of ``alignment``; the last one
    absorbs the rounding so the delays sum to ``free`` exactly.
    """
    fractions = [1.0 / (2 * num_pulses)] + [1.0 / num_pulses] * (num_pulses - 1)
    delays = [_align_down(free * f, alignment) for f in fractions]
    delays.append(free - sum(delays))
    return delays


class DynamicalDecoupling:
    """Pads idle windows with a decoupling sequence expressed in native gates."""

    def __init__(
        self,
        device: Device,
        sequence: str = "XX",
        mode: str = "alap",
        translator: Optional[BasisTranslator] = None,
    ):
        key = sequence.upper()
        if key not in DD_SEQUENCES:
            raise ConfigurationError(
                f"Unknown DD sequence '{sequence}' (use one of {sorted(DD_SEQUENCES)})", sequence=sequence
            )
        self.device = device
        self.sequence = key
        self.mode = mode
        self.translator = translator or BasisTranslator.for_device(device)

    def _pulse(self, name: str, qubit: int) -> List[Operation]:
        return self.translator.translate_operation(Operation(name, (qubit,)))

    def pad_window(self, qubit: int, length: int, start: int = 0) -> Optional[List[Operation]]:
        """Pulses and delays filling ``length`` dt exactly, or ``None`` if it does not fit.

        ``start`` is the absolute time the window opens. Every pulse op starts
        on a multiple of the device ``pulse_alignment``; pulses sit at their
        Carr-Purcell positions rounded down to that grid, pushed later only
        when the previous pulse has not finished yet.
        """
        alignment = self.device.pulse_alignment
        pulses = [self._pulse(name, qubit) for name in DD_SEQUENCES[self.sequence]]
        pulse_times = [sum(op_duration(op, self.device) for op in pulse) for pulse in pulses]
        free = length - sum(pulse_times)
        if free < 0:
            return None
        end = start + length
        out: List[Operation] = []
        cursor = target = start
        for gap, pulse, pulse_time in zip(spaced_delays(free, len(pulses), alignment), pulses, pulse_times):
            target += gap
            for pos, op in enumerate(pulse):
                at = _align_up(cursor, alignment)
                if pos == 0:
                    at = max(at, _align_down(target, alignment))
                if at > cursor:
                    out.append(Operation(DELAY, (qubit,), (float(at - cursor),)))
                out.append(op)
                cursor = at + op_duration(op, self.device)
            target += pulse_time
        if cursor > end:
            return None
        if end > cursor:
            out.append(Operation(DELAY, (qubit,), (float(end - cursor),)))
        return out

    def run(self, circuit: Circuit) -> Circuit:
        sched = schedule(circuit, self.device, self.mode)
        inserts: Dict[int, List[Operation]] = {}
        padded = skipped = 0
        for qubit, opener, start, length in idle_windows(circuit, sched):
            ops = self.pad_window(qubit, length, start)
            if ops is None:
                skipped += 1
                continue
            inserts.setdefault(opener, []).extend(ops)
            padded += 1
        out: List[Operation] = []
        for idx, op in enumerate(circuit):
            out.append(op)
            out.extend(inserts.get(idx, ()))
        logger.debug("dd(%s): padded %d window(s), skipped %d", self.sequence, padded, skipped)
        return circuit.with_operations(out)


def insert_dd(circuit: Circuit, device: Device, sequence: str = "XX", mode: str = "alap") -> Circuit:
    return DynamicalDecoupling(device, sequence, mode).run(circuit)


def circuit_duration(circuit: Circuit, device: Device, mode: str = "alap") -> int:
    return schedule(circuit, device, mode).total
