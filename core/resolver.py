"""
core.resolver

Per-tube slot allocation. A Slot is one physical copy of a tube; it can only
hold intervals that do not overlap. Intervals are swept in onset order and
placed first-fit on the lowest-numbered free slot, which uses exactly as many
slots as the maximum number of simultaneously sounding intervals.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from core.errors import Diagnostic, DiagnosticKind, NoteRef, Severity
from core.timeline import Interval, Timeline
from core.tubes import TubeIdentity

logger = logging.getLogger(__name__)


@dataclass
class Slot:
    tube: TubeIdentity
    number: int  # 1-based copy number
    intervals: List[Interval] = field(default_factory=list)

    @property
    def start(self) -> float:
        return self.intervals[0].onset

    @property
    def end(self) -> float:
        return max(iv.offset for iv in self.intervals)

    @property
    def last_offset(self) -> float:
        return self.intervals[-1].offset if self.intervals else float("-inf")

    @property
    def label(self) -> str:
        return f"{self.tube.label} #{self.number}"

    def sort_key(self) -> Tuple[float, TubeIdentity, int]:
        return (self.start, self.tube, self.number)

    def fits(self, iv: Interval) -> bool:
        return self.last_offset <= iv.onset


@dataclass
class TubeResolution:
    """Either a clean slot assignment or one carrying a conflict diagnostic."""

    tube: TubeIdentity
    slots: List[Slot]
    available: int
    conflict: Optional[Diagnostic] = None

    @property
    def ok(self) -> bool:
        return self.conflict is None

    @property
    def required(self) -> int:
        return len(self.slots)


def max_overlap_depth(intervals: Sequence[Interval]) -> int:
    """Largest number of intervals sounding at one instant (half-open)."""
    events: List[Tuple[float, int]] = []
    for iv in intervals:
        events.append((iv.onset, 1))
        events.append((iv.offset, -1))
    # ends sort before starts at the same time
    events.sort()
    depth = best = 0
    for _, d in events:
        depth += d
        best = max(best, depth)
    return best


def _note_ref(iv: Interval) -> NoteRef:
    n = iv.note
    return NoteRef(
        voice=n.voice,
        index=n.index,
        measure=n.measure,
        onset=n.onset,
        duration=n.duration,
        pitch=n.pitch.name,
    )


def _conflict(tube: TubeIdentity, slots: List[Slot], available: int) -> Diagnostic:
    # overflow intervals plus every in-cap interval they collide with
    overflow = [iv for s in slots[available:] for iv in s.intervals]
    in_cap = [iv for s in slots[:available] for iv in s.intervals]
    # keyed by identity: doubled notes can be equal by value
    offending = {id(iv): iv for iv in overflow}
    for iv in overflow:
        offending.update((id(o), o) for o in in_cap if o.overlaps(iv))
    ordered = sorted(offending.values(), key=Interval.sort_key)

    required = len(slots)
    first = ordered[0].note
    return Diagnostic(
        kind=DiagnosticKind.irresolvable_tube_conflict,
        severity=Severity.error,
        message=(
            f"{tube.label} needs {required} copies but only {available} available "
            f"({len(ordered)} overlapping notes, first at beat {first.onset:g}, {first.location()})"
        ),
        tube=tube.name,
        slot=available + 1,
        pitch=tube.name,
        onset=first.onset,
        required=required,
        available=available,
        notes=[_note_ref(iv) for iv in ordered],
    )


def resolve_tube(tube: TubeIdentity, intervals: Sequence[Interval], copies: int = 1) -> TubeResolution:
    slots: List[Slot] = []
    for iv in sorted(intervals, key=Interval.sort_key):
        for slot in slots:
            if slot.fits(iv):
                slot.intervals.append(iv)
                break
        else:
            slots.append(Slot(tube=tube, number=len(slots) + 1, intervals=[iv]))

    res = TubeResolution(tube=tube, slots=slots, available=copies)
    if len(slots) > copies:
        res.conflict = _conflict(tube, slots, copies)
        logger.warning("Tube conflict: %s", res.conflict.message)
    return res


def resolve_all(timeline: Timeline, copies: int = 1, workers: int = 1) -> List[TubeResolution]:
    """
    Resolve every tube of the timeline. Tubes share nothing, so with
    workers > 1 they run on a thread pool; results are always returned in
    tube order.
    """
    tubes = timeline.tubes
    if workers > 1 and len(tubes) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {t: pool.submit(resolve_tube, t, timeline.intervals[t], copies) for t in tubes}
            by_tube: Dict[TubeIdentity, TubeResolution] = {t: f.result() for t, f in futures.items()}
        results = [by_tube[t] for t in tubes]
    else:
        results = [resolve_tube(t, timeline.intervals[t], copies) for t in tubes]

    logger.info(
        "Resolved %d tubes into %d slots (%d conflicts)",
        len(results), sum(r.required for r in results), sum(1 for r in results if not r.ok),
    )
    return results
