"""
core.performers

Slots -> performers -> parts.

Slots are packed first-fit onto performers in order of their first onset.
Two packing rules:
  - "span": a performer takes a slot only after finishing everything else
    they hold (the slot's whole [start, end) span is free). One tube in hand
    at a time, no mid-piece juggling.
  - "note": a performer may interleave slots as long as no two held notes
    overlap. Fewer performers, more tube switches.
`switch_gap` (beats) is the time needed to put one tube down and pick up the
next; it applies only between different slots.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence

from core.resolver import Slot, TubeResolution
from core.score_models import Note
from core.timeline import Interval
from core.tubes import TubeIdentity

logger = logging.getLogger(__name__)

PackingMode = Literal["span", "note"]

_EPS = 1e-9


@dataclass(frozen=True)
class SlotBinding:
    slot: Slot
    start: float
    end: float


@dataclass
class PerformerAssignment:
    performer: int  # 1-based
    bindings: List[SlotBinding] = field(default_factory=list)

    @property
    def end(self) -> float:
        return max((b.end for b in self.bindings), default=float("-inf"))

    def held_intervals(self) -> List[Interval]:
        return sorted(
            (iv for b in self.bindings for iv in b.slot.intervals),
            key=Interval.sort_key,
        )


@dataclass(frozen=True)
class PartNote:
    note: Note
    tube: TubeIdentity
    slot_number: int
    conflict: bool = False

    @property
    def tube_label(self) -> str:
        if self.slot_number == 1:
            return self.tube.name
        return f"{self.tube.name} #{self.slot_number}"


@dataclass
class Part:
    performer: int
    notes: List[PartNote] = field(default_factory=list)
    tubes: List[str] = field(default_factory=list)
    switches: int = 0
    # shortest time between the last note on one tube and the first on the next
    tightest_switch: Optional[float] = None

    @property
    def part_id(self) -> str:
        return f"P{self.performer}"

    @property
    def has_conflicts(self) -> bool:
        return any(pn.conflict for pn in self.notes)


def _span_fits(p: PerformerAssignment, slot: Slot, gap: float) -> bool:
    return p.end + gap <= slot.start + _EPS


def _notes_fit(p: PerformerAssignment, slot: Slot, gap: float) -> bool:
    # both lists are onset-sorted and each is internally non-overlapping,
    # so a merge walk finds any collision
    held = p.held_intervals()
    new = slot.intervals
    i = j = 0
    while i < len(held) and j < len(new):
        a, b = held[i], new[j]
        if a.offset + gap <= b.onset + _EPS:
            i += 1
        elif b.offset + gap <= a.onset + _EPS:
            j += 1
        else:
            return False
    return True


def assign_performers(
    resolutions: Sequence[TubeResolution],
    packing: PackingMode = "span",
    switch_gap: float = 0.0,
) -> List[PerformerAssignment]:
    if packing not in ("span", "note"):
        raise ValueError(f"Unknown performer packing: {packing!r}")
    fits = _span_fits if packing == "span" else _notes_fit

    slots = sorted(
        (s for r in resolutions for s in r.slots if s.intervals),
        key=Slot.sort_key,
    )

    performers: List[PerformerAssignment] = []
    for slot in slots:
        for p in performers:
            if fits(p, slot, switch_gap):
                break
        else:
            p = PerformerAssignment(performer=len(performers) + 1)
            performers.append(p)
        p.bindings.append(SlotBinding(slot=slot, start=slot.start, end=slot.end))

    logger.info("Packed %d slots onto %d performers (%s packing)", len(slots), len(performers), packing)
    return performers


def build_part(assignment: PerformerAssignment, conflicted: Sequence[TubeIdentity] = ()) -> Part:
    bad = set(conflicted)
    rows: List[tuple] = []
    for b in assignment.bindings:
        for iv in b.slot.intervals:
            rows.append((iv, b.slot))
    rows.sort(key=lambda r: r[0].sort_key())

    part = Part(performer=assignment.performer)
    seen: List[str] = []
    prev: Optional[tuple] = None
    for iv, slot in rows:
        part.notes.append(
            PartNote(note=iv.note, tube=slot.tube, slot_number=slot.number, conflict=slot.tube in bad)
        )
        if slot.label not in seen:
            seen.append(slot.label)
        if prev is not None and prev[1] is not slot:
            part.switches += 1
            window = iv.onset - prev[0].offset
            if part.tightest_switch is None or window < part.tightest_switch:
                part.tightest_switch = window
        prev = (iv, slot)
    part.tubes = seen
    return part


def build_parts(
    assignments: Sequence[PerformerAssignment],
    conflicted: Sequence[TubeIdentity] = (),
) -> List[Part]:
    return [build_part(a, conflicted) for a in assignments]
