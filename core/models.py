from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from core.errors import Diagnostic
from core.score_models import ScoreDoc


# =========================
# Base Model Config (Frozen)
# =========================
class _ContractBaseModel(BaseModel):
    """
    Contract hardening:
    - forbid extra fields (Breaking Change)
    """
    model_config = ConfigDict(extra="forbid")


# =========================
# Schemas
# =========================
class ArrangeRequest(_ContractBaseModel):
    """Score plus optional per-request overrides of the server settings."""
    score: ScoreDoc
    tube_inventory: Optional[Literal["diatonic", "chromatic", "extended"]] = None
    fold_octaves: Optional[bool] = None
    copies_per_tube: Optional[int] = Field(default=None, ge=1)
    conflict_policy: Optional[Literal["fail", "flag"]] = None
    performer_packing: Optional[Literal["span", "note"]] = None
    switch_gap_beats: Optional[float] = Field(default=None, ge=0.0)

    def overrides(self) -> dict:
        return self.model_dump(exclude={"score"}, exclude_none=True)


class TubeOut(_ContractBaseModel):
    tube: str
    colour: str
    hex_colour: str
    range_tag: str


class TubeUsage(TubeOut):
    copies_required: int = Field(..., ge=1)
    copies_available: int = Field(..., ge=1)
    conflict: bool = False


class PartNoteOut(_ContractBaseModel):
    voice: str
    index: int
    pitch: str
    onset: float
    duration: float
    tube: str
    copy_number: int = Field(..., ge=1)
    conflict: bool = False


class PerformerOut(_ContractBaseModel):
    performer: int = Field(..., ge=1)
    tubes: List[str]
    switches: int = Field(..., ge=0)
    tightest_switch: Optional[float] = None
    notes: List[PartNoteOut]


class ArrangeResponse(_ContractBaseModel):
    ok: bool
    inventory: str
    tubes: List[TubeUsage]
    performers: List[PerformerOut]
    diagnostics: List[Diagnostic]
