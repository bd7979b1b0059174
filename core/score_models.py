from __future__ import annotations

from typing import Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

NOTE_NAMES_SHARPS = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")
NOTE_NAMES_FLATS = ("C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B")

_STEP_SEMITONES = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}


class Pitch(BaseModel):
    """
    Pitch class (0 = C) + scientific octave (C4 = MIDI 60).
    Range is checked by the timeline builder, not here, so that bad input
    surfaces as a located MalformedNote instead of a schema error.
    """
    model_config = ConfigDict(frozen=True)

    pitch_class: int = Field(..., description="Semitones above C, 0-11")
    octave: int = Field(..., description="Scientific octave number")

    @classmethod
    def from_midi(cls, midi: int) -> "Pitch":
        return cls(pitch_class=midi % 12, octave=midi // 12 - 1)

    @classmethod
    def from_name(cls, name: str) -> "Pitch":
        """Parse names like 'C4', 'F#3', 'Bb5'."""
        s = name.strip()
        if len(s) < 2 or s[0].upper() not in _STEP_SEMITONES:
            raise ValueError(f"Invalid pitch name: {name!r}")
        step = s[0].upper()
        rest = s[1:]
        alter = 0
        while rest and rest[0] in "#b":
            alter += 1 if rest[0] == "#" else -1
            rest = rest[1:]
        try:
            octave = int(rest)
        except ValueError as e:
            raise ValueError(f"Invalid pitch name: {name!r}") from e
        return cls.from_midi((octave + 1) * 12 + _STEP_SEMITONES[step] + alter)

    @property
    def midi(self) -> int:
        return (self.octave + 1) * 12 + self.pitch_class

    @property
    def name(self) -> str:
        return f"{NOTE_NAMES_SHARPS[self.pitch_class % 12]}{self.octave}"

    @property
    def name_flats(self) -> str:
        return f"{NOTE_NAMES_FLATS[self.pitch_class % 12]}{self.octave}"


class Note(BaseModel):
    """
    One sounded note. Times are in quarter-note beats from score start.
    `index` is the note's position inside its voice and, with `measure`,
    locates it for diagnostics.
    """
    model_config = ConfigDict(frozen=True)

    voice: str = Field(..., min_length=1)
    index: int = Field(0, ge=0)
    pitch: Pitch
    onset: float
    duration: float
    measure: Optional[int] = None

    @property
    def offset(self) -> float:
        return self.onset + self.duration

    def sort_key(self) -> tuple:
        return (self.onset, self.voice, self.index)

    def location(self) -> str:
        where = f"voice {self.voice}, note {self.index + 1}"
        if self.measure is not None:
            where += f", measure {self.measure}"
        return where


class Voice(BaseModel):
    """
    Ordered notes of one voice. Every note must carry this voice's id;
    note indices are rewritten to list positions.
    """
    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    notes: List[Note] = Field(default_factory=list)

    @model_validator(mode="after")
    def number_notes(self) -> "Voice":
        for n in self.notes:
            if n.voice != self.id:
                raise ValueError(f"note of voice {n.voice!r} listed under voice {self.id!r}")
        self.notes = [
            n if n.index == i else n.model_copy(update={"index": i})
            for i, n in enumerate(self.notes)
        ]
        return self


class ScoreDoc(BaseModel):
    """
    In-memory score handed to the engine: ordered notes per voice.
    """
    version: int = Field(1, description="Schema version")
    title: Optional[str] = None
    tempo_bpm: float = Field(120.0, gt=0.0, description="Tempo in BPM")
    time_signature: str = Field("4/4", description="Time signature, e.g., 4/4")
    voices: List[Voice] = Field(default_factory=list)

    def iter_notes(self) -> Iterator[Note]:
        for v in self.voices:
            yield from v.notes

    def note_count(self) -> int:
        return sum(len(v.notes) for v in self.voices)
