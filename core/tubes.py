"""
core.tubes

Pitch -> tube lookup. A tube identity is a pitch class in one octave; the
inventory decides which identities exist. Pure functions, no state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from core.score_models import NOTE_NAMES_SHARPS, Pitch

# Standard Boomwhacker colour chart, indexed by pitch class
TUBE_COLOURS: Tuple[Tuple[str, str], ...] = (
    ("red", "#E0211B"),
    ("red-orange", "#EE5A24"),
    ("orange", "#F7941D"),
    ("yellow-orange", "#FBB040"),
    ("yellow", "#FFE600"),
    ("light green", "#8DC63F"),
    ("teal", "#00A79D"),
    ("dark green", "#00843D"),
    ("blue", "#2E3192"),
    ("purple", "#662D91"),
    ("lilac", "#A864A8"),
    ("magenta", "#EC008C"),
)


@dataclass(frozen=True, order=True)
class TubeIdentity:
    # field order gives pitch order (octave first)
    octave: int
    pitch_class: int

    @property
    def name(self) -> str:
        return f"{NOTE_NAMES_SHARPS[self.pitch_class]}{self.octave}"

    @property
    def colour(self) -> str:
        return TUBE_COLOURS[self.pitch_class][0]

    @property
    def hex_colour(self) -> str:
        return TUBE_COLOURS[self.pitch_class][1]

    @property
    def range_tag(self) -> str:
        if self.octave <= 3:
            return "bass"
        if self.octave == 4:
            return "treble"
        return "high"

    @property
    def label(self) -> str:
        return f"{self.colour} {self.name}"

    def __str__(self) -> str:
        return self.name


def _tube(name: str) -> TubeIdentity:
    p = Pitch.from_name(name)
    return TubeIdentity(octave=p.octave, pitch_class=p.pitch_class)


def _chromatic(lo: str, hi: str) -> Tuple[TubeIdentity, ...]:
    a, b = Pitch.from_name(lo).midi, Pitch.from_name(hi).midi
    out = []
    for m in range(a, b + 1):
        p = Pitch.from_midi(m)
        out.append(TubeIdentity(octave=p.octave, pitch_class=p.pitch_class))
    return tuple(out)


class TubeInventory:
    """A finite set of tube identities and the pitch -> tube lookup over it."""

    def __init__(self, name: str, tubes: Iterable[TubeIdentity]):
        self.name = name
        self.tubes: Tuple[TubeIdentity, ...] = tuple(sorted(set(tubes)))
        self._by_pc: Dict[int, Tuple[TubeIdentity, ...]] = {}
        for t in self.tubes:
            self._by_pc[t.pitch_class] = self._by_pc.get(t.pitch_class, ()) + (t,)

    def __contains__(self, tube: object) -> bool:
        return tube in self.tubes

    def __len__(self) -> int:
        return len(self.tubes)

    def map(self, pitch: Pitch, *, fold_octaves: bool = True) -> Optional[TubeIdentity]:
        """
        Return the tube that sounds `pitch`, or None if the inventory has no
        tube for it. With fold_octaves, a pitch whose octave has no tube goes to
        the same pitch class in the nearest octave (ties -> lower octave).
        """
        candidates = self._by_pc.get(pitch.pitch_class, ())
        if not candidates:
            return None
        for t in candidates:
            if t.octave == pitch.octave:
                return t
        if not fold_octaves:
            return None
        return min(candidates, key=lambda t: (abs(t.octave - pitch.octave), t.octave))


INVENTORIES: Dict[str, TubeInventory] = {
    "diatonic": TubeInventory(
        "diatonic", [_tube(n) for n in ("C4", "D4", "E4", "F4", "G4", "A4", "B4", "C5")]
    ),
    "chromatic": TubeInventory("chromatic", _chromatic("C4", "C5")),
    "extended": TubeInventory("extended", _chromatic("C3", "C5")),
}


def get_inventory(name: str) -> TubeInventory:
    try:
        return INVENTORIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown tube inventory {name!r} (expected one of {', '.join(sorted(INVENTORIES))})"
        ) from None
