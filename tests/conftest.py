from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Tuple

import pytest

import core.config as config_module
from core.config import Settings
from core.score_models import Note, Pitch, ScoreDoc, Voice

# (voice, pitch name, onset, duration)
NoteSpec = Tuple[str, str, float, float]


def _make_note(voice: str, name: str, onset: float, duration: float, index: int = 0) -> Note:
    return Note(voice=voice, index=index, pitch=Pitch.from_name(name), onset=onset, duration=duration)


def _make_score(specs: Iterable[NoteSpec], **kwargs) -> ScoreDoc:
    by_voice: dict[str, list[Note]] = defaultdict(list)
    for voice, name, onset, duration in specs:
        by_voice[voice].append(_make_note(voice, name, onset, duration, index=len(by_voice[voice])))
    voices = [Voice(id=v, notes=notes) for v, notes in sorted(by_voice.items())]
    return ScoreDoc(voices=voices, **kwargs)


@pytest.fixture
def make_note():
    return _make_note


@pytest.fixture
def make_score():
    return _make_score


@pytest.fixture
def make_settings(tmp_path):
    """Settings isolated from the developer's .env / environment."""

    def _factory(**aliases) -> Settings:
        aliases.setdefault("OUTPUT_DIR", str(tmp_path / "outputs"))
        return Settings(_env_file=None, **aliases)

    return _factory


@pytest.fixture(autouse=True)
def reset_settings_cache(monkeypatch, tmp_path):
    # keep every test away from the real outputs/ dir and any exported config
    for name in ("TUBE_INVENTORY", "FOLD_OCTAVES", "COPIES_PER_TUBE", "TUBE_COPIES", "CONFLICT_POLICY",
                 "PERFORMER_PACKING", "SWITCH_GAP_BEATS", "RESOLVER_WORKERS", "SCORE_TITLE", "PAGE_SIZE",
                 "MIDI_GRID_DIV", "CORS_ALLOW_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path / "outputs"))
    monkeypatch.setenv("APP_ENV", "test")
    config_module.get_settings.cache_clear()
    yield
    config_module.get_settings.cache_clear()
