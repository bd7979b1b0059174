from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from music21 import duration, layout, metadata, meter, note, stream, tempo  # type: ignore

from core.errors import PartSerializationFailure
from core.performers import Part

logger = logging.getLogger(__name__)

# (width, height) in millimetres
PAGE_SIZES_MM = {
    "a3": (297.0, 420.0),
    "a4": (210.0, 297.0),
    "a5": (148.0, 210.0),
    "letter": (215.9, 279.4),
    "legal": (215.9, 355.6),
}

# MusicXML scaling: 40 tenths (one staff height) = 7 mm
_SCALING_MM = 7.0
_SCALING_TENTHS = 40
_MARGIN_MM = 15.0


def page_layout(page_size: str) -> Optional[layout.ScoreLayout]:
    """ScoreLayout for a named paper size, or None when the name is unknown."""
    dims = PAGE_SIZES_MM.get(page_size.strip().lower())
    if dims is None:
        return None

    def tenths(mm: float) -> int:
        return int(round(mm * _SCALING_TENTHS / _SCALING_MM))

    width, height = dims
    margin = tenths(_MARGIN_MM)
    page = layout.PageLayout(
        pageWidth=tenths(width),
        pageHeight=tenths(height),
        leftMargin=margin,
        rightMargin=margin,
        topMargin=margin,
        bottomMargin=margin,
    )
    return layout.ScoreLayout(
        scalingMillimeters=_SCALING_MM,
        scalingTenths=_SCALING_TENTHS,
        pageLayout=page,
    )


@runtime_checkable
class NotationWriter(Protocol):
    """Anything that can turn one performer's Part into a notation file."""

    suffix: str

    def write(self, part: Part, path: Path) -> Path:
        ...


class MusicXmlWriter:
    """
    music21-backed MusicXML writer: one complete single-part score per
    performer. A performer never holds two overlapping notes, so each part is
    a single voice; music21 fills the rests and splits notes across barlines.
    Each note is coloured with its tube colour and carries the tube name as a
    lyric.
    """

    suffix = ".musicxml"

    def __init__(
        self,
        *,
        title: str = "Boomwhackers",
        tempo_bpm: float = 120.0,
        time_signature: str = "4/4",
        part_label: str = "Performer",
        page_size: str = "A4",
    ) -> None:
        self.title = title
        self.tempo_bpm = tempo_bpm
        self.time_signature = time_signature
        self.part_label = part_label
        self.page_size = page_size
        self.layout = page_layout(page_size)
        if self.layout is None:
            logger.warning("Unknown page size %r; parts carry no page layout", page_size)

    def build_score(self, part: Part) -> stream.Score:
        sc = stream.Score()
        sc.metadata = metadata.Metadata()
        sc.metadata.title = self.title
        sc.metadata.movementName = f"{self.part_label} {part.performer}"
        if self.layout is not None:
            sc.insert(0, copy.deepcopy(self.layout))

        p = stream.Part()
        p.id = part.part_id
        p.partName = f"{self.part_label} {part.performer}"
        try:
            p.insert(0, meter.TimeSignature(self.time_signature))
        except Exception:
            p.insert(0, meter.TimeSignature("4/4"))
        p.insert(0, tempo.MetronomeMark(number=self.tempo_bpm))

        for pn in part.notes:
            ql = float(pn.note.duration)
            if duration.Duration(ql).type == "inexpressible":
                raise PartSerializationFailure(
                    part.performer,
                    f"duration {ql:g} beats cannot be notated ({pn.note.location()})",
                )
            n = note.Note(pn.note.pitch.midi)
            n.quarterLength = ql
            n.style.color = pn.tube.hex_colour
            n.addLyric(pn.tube_label)
            if pn.conflict:
                n.addLyric("!")
            p.insert(float(pn.note.onset), n)

        p.makeRests(refStreamOrTimeRange=[0.0, p.highestTime], fillGaps=True, inPlace=True)
        sc.insert(0, p)
        return sc

    def write(self, part: Part, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            sc = self.build_score(part)
            sc.write("musicxml", fp=str(path))
        except PartSerializationFailure:
            raise
        except Exception as e:
            raise PartSerializationFailure(part.performer, str(e) or type(e).__name__) from e
        return path.resolve()
