from __future__ import annotations

import math

import pytest

from core.errors import DiagnosticKind, Severity
from core.resolver import resolve_all
from core.score_models import Note, Pitch, ScoreDoc, Voice
from core.timeline import build_timeline
from core.tubes import get_inventory


def test_intervals_grouped_by_tube_and_sorted(make_score):
    score = make_score([
        ("2", "C4", 1.0, 1.0),
        ("1", "C4", 1.0, 0.5),
        ("1", "E4", 0.0, 1.0),
        ("1", "C4", 0.0, 0.5),
    ])
    tl = build_timeline(score, get_inventory("diatonic"))

    assert [t.name for t in tl.tubes] == ["C4", "E4"]
    c4 = tl.intervals[tl.tubes[0]]
    # onset first, then voice id
    assert [(iv.onset, iv.note.voice) for iv in c4] == [(0.0, "1"), (1.0, "1"), (1.0, "2")]
    assert all(iv.offset == iv.note.onset + iv.note.duration for iv in c4)
    assert tl.diagnostics == []
    assert len(tl.accepted) == 4


def test_zero_duration_aborts_voice(make_score):
    score = make_score([
        ("1", "C4", 0.0, 1.0),
        ("1", "D4", 1.0, 0.0),
        ("2", "E4", 0.0, 1.0),
    ])
    tl = build_timeline(score, get_inventory("diatonic"))

    assert len(tl.diagnostics) == 1
    d = tl.diagnostics[0]
    assert d.kind == DiagnosticKind.malformed_note
    assert d.severity == Severity.error
    assert d.voice == "1" and d.index == 1
    # the whole voice is dropped, the other voice survives
    assert [t.name for t in tl.tubes] == ["E4"]
    assert [n.voice for n in tl.accepted] == ["2"]


def test_negative_duration_and_onset_are_malformed(make_score):
    tl = build_timeline(make_score([("1", "C4", 0.0, -1.0)]), get_inventory("diatonic"))
    assert [d.kind for d in tl.diagnostics] == [DiagnosticKind.malformed_note]
    assert tl.intervals == {}

    tl = build_timeline(make_score([("1", "C4", -2.0, 1.0)]), get_inventory("diatonic"))
    assert [d.kind for d in tl.diagnostics] == [DiagnosticKind.malformed_note]


def test_out_of_range_pitch_is_malformed():
    bad = Note(voice="1", index=0, pitch=Pitch(pitch_class=14, octave=4), onset=0.0, duration=1.0)
    tl = build_timeline(ScoreDoc(voices=[Voice(id="1", notes=[bad])]), get_inventory("chromatic"))
    assert tl.diagnostics[0].kind == DiagnosticKind.malformed_note
    assert "out of range" in tl.diagnostics[0].message


def test_unsupported_pitch_reported_and_excluded(make_score):
    score = make_score([
        ("1", "C4", 0.0, 1.0),
        ("1", "F#4", 1.0, 1.0),
        ("1", "G4", 2.0, 1.0),
    ])
    tl = build_timeline(score, get_inventory("diatonic"))

    assert [d.kind for d in tl.diagnostics] == [DiagnosticKind.unsupported_pitch]
    d = tl.diagnostics[0]
    assert d.pitch == "F#4" and d.onset == 1.0 and d.voice == "1"
    assert d.severity == Severity.warning
    assert [n.pitch.name for n in tl.accepted] == ["C4", "G4"]


def test_no_folding_makes_far_octaves_unsupported(make_score):
    score = make_score([("1", "C6", 0.0, 1.0)])
    assert build_timeline(score, get_inventory("diatonic")).tubes[0].name == "C5"
    tl = build_timeline(score, get_inventory("diatonic"), fold_octaves=False)
    assert tl.tubes == []
    assert tl.diagnostics[0].kind == DiagnosticKind.unsupported_pitch


@pytest.mark.parametrize("onset,duration", [
    (0.0, math.nan),
    (0.0, math.inf),
    (math.nan, 1.0),
    (math.inf, 1.0),
])
def test_non_finite_times_are_malformed(make_score, onset, duration):
    tl = build_timeline(make_score([("1", "C4", onset, duration)]), get_inventory("diatonic"))
    assert [d.kind for d in tl.diagnostics] == [DiagnosticKind.malformed_note]
    assert "Non-finite" in tl.diagnostics[0].message
    assert tl.intervals == {} and tl.accepted == []


def test_json_notes_are_numbered_by_position():
    raw = {
        "voices": [{
            "id": "1",
            "notes": [
                {"voice": "1", "pitch": {"pitch_class": 0, "octave": 4}, "onset": 0.0, "duration": 1.0},
                {"voice": "1", "pitch": {"pitch_class": 0, "octave": 4}, "onset": 0.0, "duration": 1.0},
                {"voice": "1", "pitch": {"pitch_class": 0, "octave": 4}, "onset": 0.5, "duration": 1.0},
            ],
        }],
    }
    score = ScoreDoc.model_validate(raw)
    assert [n.index for n in score.iter_notes()] == [0, 1, 2]

    (res,) = resolve_all(build_timeline(score, get_inventory("diatonic")), copies=1)
    assert [(n.index, n.onset) for n in res.conflict.notes] == [(0, 0.0), (1, 0.0), (2, 0.5)]


def test_note_voice_must_match_its_voice():
    n = Note(voice="2", index=0, pitch=Pitch.from_name("C4"), onset=0.0, duration=1.0)
    with pytest.raises(ValueError):
        Voice(id="1", notes=[n])
