from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =========================
# Diagnostics
# =========================
class DiagnosticKind(str, Enum):
    malformed_note = "malformed_note"
    unsupported_pitch = "unsupported_pitch"
    irresolvable_tube_conflict = "irresolvable_tube_conflict"
    part_serialization_failure = "part_serialization_failure"


class Severity(str, Enum):
    warning = "warning"
    error = "error"


class NoteRef(BaseModel):
    """Where a note sits in the input score."""
    model_config = ConfigDict(frozen=True)

    voice: str
    index: int
    measure: Optional[int] = None
    onset: float
    duration: float
    pitch: str


class Diagnostic(BaseModel):
    """
    One actionable report entry. Only the context fields relevant to `kind`
    are set.
    """
    model_config = ConfigDict(extra="forbid")

    kind: DiagnosticKind
    severity: Severity
    message: str = Field(..., min_length=1)

    voice: Optional[str] = None
    index: Optional[int] = None
    measure: Optional[int] = None
    onset: Optional[float] = None
    pitch: Optional[str] = None

    tube: Optional[str] = None
    slot: Optional[int] = None
    required: Optional[int] = None
    available: Optional[int] = None
    notes: List[NoteRef] = Field(default_factory=list)

    performer: Optional[int] = None
    path: Optional[str] = None


# -----------------------------
# Exceptions
# -----------------------------
class WhackpartsError(Exception):
    """Base exception for the arrangement engine."""


class MalformedNote(WhackpartsError):
    """Non-positive duration, negative onset or out-of-range pitch."""

    def __init__(self, message: str, *, voice: str, index: int, measure: Optional[int] = None,
                 onset: Optional[float] = None, pitch: Optional[str] = None):
        super().__init__(message)
        self.voice = voice
        self.index = index
        self.measure = measure
        self.onset = onset
        self.pitch = pitch

    def to_diagnostic(self) -> Diagnostic:
        return Diagnostic(
            kind=DiagnosticKind.malformed_note,
            severity=Severity.error,
            message=str(self),
            voice=self.voice,
            index=self.index,
            measure=self.measure,
            onset=self.onset,
            pitch=self.pitch,
        )


class UnsupportedPitch(WhackpartsError):
    """Pitch has no tube in the configured inventory."""


class PartSerializationFailure(WhackpartsError):
    """A performer's part could not be written as notation."""

    def __init__(self, performer: int, message: str):
        super().__init__(f"Performer {performer}: {message}")
        self.performer = performer


class ArrangementFailed(WhackpartsError):
    """
    Run aborted before emission. `diagnostics` holds the fatal entries,
    `warnings` the non-fatal ones found in the same pass.
    """

    def __init__(self, diagnostics: List[Diagnostic], warnings: Optional[List[Diagnostic]] = None):
        kinds = sorted({d.kind.value for d in diagnostics})
        super().__init__(f"Arrangement failed with {len(diagnostics)} error(s): {', '.join(kinds)}")
        self.diagnostics = diagnostics
        self.warnings = list(warnings or [])

    @property
    def all_diagnostics(self) -> List[Diagnostic]:
        return self.diagnostics + self.warnings


class IrresolvableTubeConflict(ArrangementFailed):
    """Every fatal diagnostic is a tube that needs more copies than are owned."""

    @property
    def tubes(self) -> List[str]:
        return [d.tube for d in self.diagnostics if d.tube is not None]


class ScoreLoadError(WhackpartsError):
    """Input score could not be read."""
