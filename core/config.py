# core/config.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Project root: .../whackparts
BASE_DIR = Path(__file__).resolve().parents[1]

InventoryName = Literal["diatonic", "chromatic", "extended"]
ConflictPolicy = Literal["fail", "flag"]
PackingMode = Literal["span", "note"]


class Settings(BaseSettings):
    """
    whackparts settings.

    Reads from:
    - environment variables
    - .env in project root

    CLI flags and API request fields override these per call.
    """

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ---- Environment ----
    app_env: str = Field(default="development", validation_alias="APP_ENV")
    # comma-separated; only used outside development
    cors_allow_origins: str = Field(default="", validation_alias="CORS_ALLOW_ORIGINS")

    # ---- Paths ----
    output_dir: Path = Field(default=Path("outputs"), validation_alias="OUTPUT_DIR")

    # ---- Tube inventory ----
    tube_inventory: InventoryName = Field(default="diatonic", validation_alias="TUBE_INVENTORY")
    fold_octaves: bool = Field(default=True, validation_alias="FOLD_OCTAVES")

    # Physical copies owned per tube identity
    copies_per_tube: int = Field(
        default=1,
        validation_alias=AliasChoices("COPIES_PER_TUBE", "TUBE_COPIES"),
    )

    # ---- Scheduling policy ----
    conflict_policy: ConflictPolicy = Field(default="fail", validation_alias="CONFLICT_POLICY")
    performer_packing: PackingMode = Field(default="span", validation_alias="PERFORMER_PACKING")
    # beats a performer needs to put one tube down and pick up another
    switch_gap_beats: float = Field(default=0.0, validation_alias="SWITCH_GAP_BEATS")
    resolver_workers: int = Field(default=1, validation_alias="RESOLVER_WORKERS")

    # ---- Input ----
    # MIDI times snap to 1/midi_grid_div of a beat (4 = sixteenths); 0 keeps raw ticks
    midi_grid_div: int = Field(default=4, validation_alias="MIDI_GRID_DIV")

    # ---- Render configuration (copied into the manifest) ----
    page_size: str = Field(default="A4", validation_alias="PAGE_SIZE")
    score_title: Optional[str] = Field(default=None, validation_alias="SCORE_TITLE")
    part_label: str = Field(default="Performer", validation_alias="PART_LABEL")

    def model_post_init(self, __context) -> None:
        self.output_dir = self._abs_path(self.output_dir)

        # sanity clamps
        if self.copies_per_tube < 1:
            self.copies_per_tube = 1
        if self.switch_gap_beats < 0:
            self.switch_gap_beats = 0.0
        if self.resolver_workers < 1:
            self.resolver_workers = 1
        if self.midi_grid_div < 0:
            self.midi_grid_div = 0
        if not self.part_label.strip():
            self.part_label = "Performer"

    @property
    def is_development(self) -> bool:
        return self.app_env.strip().lower() in {"dev", "development", "local"}

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]

    @staticmethod
    def _abs_path(p: Path) -> Path:
        if p.is_absolute():
            return p
        return (BASE_DIR / p).resolve()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
