"""
core.timeline

Score -> per-tube intervals. Each accepted note becomes one Interval
[onset, offset) on the tube that sounds it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List

from core.errors import Diagnostic, DiagnosticKind, MalformedNote, Severity, UnsupportedPitch
from core.score_models import Note, ScoreDoc, Voice
from core.tubes import TubeIdentity, TubeInventory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Interval:
    tube: TubeIdentity
    onset: float
    offset: float
    note: Note

    def sort_key(self) -> tuple:
        # ties broken by voice id, then position in voice
        return (self.onset, self.note.voice, self.note.index)

    def overlaps(self, other: "Interval") -> bool:
        return self.onset < other.offset and other.onset < self.offset


@dataclass
class Timeline:
    intervals: Dict[TubeIdentity, List[Interval]] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    # notes that reached scheduling, in input order
    accepted: List[Note] = field(default_factory=list)

    @property
    def tubes(self) -> List[TubeIdentity]:
        return sorted(self.intervals)

    def interval_count(self) -> int:
        return sum(len(v) for v in self.intervals.values())


def _check_note(n: Note) -> None:
    pc = n.pitch.pitch_class
    if not 0 <= pc <= 11:
        raise MalformedNote(
            f"Pitch class {pc} out of range 0-11 ({n.location()})",
            voice=n.voice, index=n.index, measure=n.measure, onset=n.onset,
        )
    if not 0 <= n.pitch.midi <= 127:
        raise MalformedNote(
            f"Pitch {n.pitch.name} outside MIDI range ({n.location()})",
            voice=n.voice, index=n.index, measure=n.measure, onset=n.onset, pitch=n.pitch.name,
        )
    if not (math.isfinite(n.onset) and math.isfinite(n.duration)):
        raise MalformedNote(
            f"Non-finite time onset={n.onset!r} duration={n.duration!r} ({n.location()})",
            voice=n.voice, index=n.index, measure=n.measure, pitch=n.pitch.name,
        )
    if n.duration <= 0:
        raise MalformedNote(
            f"Non-positive duration {n.duration:g} ({n.location()})",
            voice=n.voice, index=n.index, measure=n.measure, onset=n.onset, pitch=n.pitch.name,
        )
    if n.onset < 0:
        raise MalformedNote(
            f"Negative onset {n.onset:g} ({n.location()})",
            voice=n.voice, index=n.index, measure=n.measure, onset=n.onset, pitch=n.pitch.name,
        )


def _tube_for(n: Note, inventory: TubeInventory, fold_octaves: bool) -> TubeIdentity:
    tube = inventory.map(n.pitch, fold_octaves=fold_octaves)
    if tube is None:
        raise UnsupportedPitch(
            f"No {inventory.name} tube for {n.pitch.name} ({n.location()})"
        )
    return tube


def _voice_intervals(
    voice: Voice,
    inventory: TubeInventory,
    fold_octaves: bool,
    diagnostics: List[Diagnostic],
) -> List[Interval]:
    """
    Build one voice's intervals. A MalformedNote propagates and discards the
    whole voice; unsupported pitches are recorded and skipped.
    """
    out: List[Interval] = []
    for n in voice.notes:
        _check_note(n)
        try:
            tube = _tube_for(n, inventory, fold_octaves)
        except UnsupportedPitch as e:
            diagnostics.append(
                Diagnostic(
                    kind=DiagnosticKind.unsupported_pitch,
                    severity=Severity.warning,
                    message=str(e),
                    voice=n.voice,
                    index=n.index,
                    measure=n.measure,
                    onset=n.onset,
                    pitch=n.pitch.name,
                )
            )
            continue
        out.append(Interval(tube=tube, onset=n.onset, offset=n.offset, note=n))
    return out


def build_timeline(
    score: ScoreDoc,
    inventory: TubeInventory,
    *,
    fold_octaves: bool = True,
) -> Timeline:
    tl = Timeline()

    for voice in score.voices:
        # unsupported-pitch diagnostics of an aborted voice are dropped with it
        voice_diags: List[Diagnostic] = []
        try:
            intervals = _voice_intervals(voice, inventory, fold_octaves, voice_diags)
        except MalformedNote as e:
            logger.error("Voice %s aborted: %s", voice.id, e)
            tl.diagnostics.append(e.to_diagnostic())
            continue

        for d in voice_diags:
            logger.warning("Unsupported pitch: %s", d.message)
        tl.diagnostics.extend(voice_diags)

        for iv in intervals:
            tl.intervals.setdefault(iv.tube, []).append(iv)
            tl.accepted.append(iv.note)

    for tube in tl.intervals:
        tl.intervals[tube].sort(key=Interval.sort_key)

    logger.info(
        "Timeline: %d notes on %d tubes (%d diagnostics)",
        tl.interval_count(), len(tl.intervals), len(tl.diagnostics),
    )
    return tl
