from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from core.config import get_settings
from core.errors import ScoreLoadError
from core.score_models import Note, Pitch, ScoreDoc, Voice

logger = logging.getLogger(__name__)

MUSICXML_SUFFIXES = (".musicxml", ".xml", ".mxl")
MIDI_SUFFIXES = (".mid", ".midi")

# (onset_beats, seq, duration_beats, midi, measure)
_Raw = Tuple[float, int, float, int, Optional[int]]


def _voices_from_raw(raw: Dict[str, List[_Raw]]) -> List[Voice]:
    voices: List[Voice] = []
    for vid in sorted(raw):
        rows = sorted(raw[vid], key=lambda r: (r[0], r[3], r[1]))
        notes = [
            Note(
                voice=vid,
                index=i,
                pitch=Pitch.from_midi(midi),
                onset=onset,
                duration=dur,
                measure=measure,
            )
            for i, (onset, _seq, dur, midi, measure) in enumerate(rows)
        ]
        voices.append(Voice(id=vid, notes=notes))
    return voices


def _quantize_beats(t: float, step: float) -> float:
    if step <= 1e-9:
        return t
    return round(t / step) * step


def midi_to_score(midi_path: Path, grid_div: int = 4) -> ScoreDoc:
    """
    MIDI -> ScoreDoc in beats (ticks / ticks_per_beat), one voice per
    (track, channel). Only the first tempo and time signature are kept.

    Onsets and note ends snap to a 1/grid_div beat grid so played-in timing
    stays notatable; a note that collapses keeps one grid step. grid_div=0
    keeps raw tick times.
    """
    import mido  # type: ignore

    step = 1.0 / grid_div if grid_div and grid_div > 0 else 0.0

    try:
        mid = mido.MidiFile(str(midi_path))
    except Exception as e:
        raise ScoreLoadError(f"Error reading MIDI {midi_path}: {e}") from e

    ppq = int(getattr(mid, "ticks_per_beat", 480) or 480)
    bpm: Optional[float] = None
    ts = "4/4"
    title: Optional[str] = None
    raw: Dict[str, List[_Raw]] = {}
    seq = 0

    for t_idx, tr in enumerate(mid.tracks):
        abs_tick = 0
        active: Dict[Tuple[int, int], Tuple[int, int]] = {}  # (ch, pitch) -> (start_tick, seq)

        def close(key: Tuple[int, int], end_tick: int) -> None:
            st_tick, s = active.pop(key)
            if end_tick <= st_tick:
                return
            ch, pitch = key
            vid = f"{t_idx + 1}.{ch + 1}"
            onset = _quantize_beats(st_tick / ppq, step)
            dur = _quantize_beats(end_tick / ppq, step) - onset
            if dur <= 1e-9:
                dur = step or (end_tick - st_tick) / ppq
            raw.setdefault(vid, []).append((onset, s, dur, pitch, None))

        for msg in tr:
            abs_tick += int(msg.time)
            if msg.type == "set_tempo" and bpm is None:
                bpm = float(mido.tempo2bpm(msg.tempo))
            elif msg.type == "time_signature" and ts == "4/4":
                ts = f"{int(msg.numerator)}/{int(msg.denominator)}"
            elif msg.type == "track_name" and title is None and t_idx == 0 and msg.name.strip():
                title = msg.name.strip()
            elif msg.type == "note_on" and int(msg.velocity) > 0:
                key = (int(msg.channel), int(msg.note))
                if key in active:
                    # re-strike before note_off: end the sounding note here
                    close(key, abs_tick)
                active[key] = (abs_tick, seq)
                seq += 1
            elif msg.type in ("note_off", "note_on"):
                key = (int(msg.channel), int(msg.note))
                if key in active:
                    close(key, abs_tick)

    return ScoreDoc(
        title=title,
        tempo_bpm=bpm or 120.0,
        time_signature=ts,
        voices=_voices_from_raw(raw),
    )


def musicxml_to_score(xml_path: Path) -> ScoreDoc:
    """
    MusicXML (.musicxml/.xml/.mxl) -> ScoreDoc via music21. Tied notes are
    merged, chords split into one note per pitch, grace notes skipped. Voice
    ids are "<part>.<voice>".
    """
    from music21 import chord, converter, meter, note, stream, tempo  # type: ignore

    try:
        s = converter.parse(str(xml_path))
    except Exception as e:
        raise ScoreLoadError(f"Error loading {xml_path}: {e}") from e

    flat = s.flatten()
    bpm = 120.0
    mm = flat.getElementsByClass(tempo.MetronomeMark).first()
    if mm is not None:
        try:
            bpm = float(mm.getQuarterBPM() or 120.0)
        except Exception:
            bpm = 120.0
    ts_obj = flat.getElementsByClass(meter.TimeSignature).first()
    ts = str(ts_obj.ratioString) if ts_obj is not None else "4/4"
    title = s.metadata.title if s.metadata is not None else None

    parts = list(getattr(s, "parts", [])) or [s]
    raw: Dict[str, List[_Raw]] = {}
    seq = 0
    for p_idx, part in enumerate(parts):
        merged = part.stripTies()
        for el in merged.recurse().notes:
            if el.duration.isGrace:
                continue
            site = el.activeSite
            v = str(site.id) if isinstance(site, stream.Voice) else "1"
            vid = f"{p_idx + 1}.{v}"
            onset = float(el.getOffsetInHierarchy(merged))
            dur = float(el.quarterLength)
            measure = el.measureNumber

            if isinstance(el, note.Note):
                midis = [int(el.pitch.midi)]
            elif isinstance(el, chord.Chord):
                midis = [int(pt.midi) for pt in el.pitches]
            else:
                continue
            for m in midis:
                raw.setdefault(vid, []).append((onset, seq, dur, m, measure))
                seq += 1

    return ScoreDoc(title=title, tempo_bpm=bpm, time_signature=ts, voices=_voices_from_raw(raw))


def load_score(path: str | Path, *, grid_div: Optional[int] = None) -> ScoreDoc:
    """
    Read .json, MIDI or MusicXML into a ScoreDoc. grid_div applies to MIDI only
    and defaults to the MIDI_GRID_DIV setting.
    """
    path = Path(path)
    if not path.exists() or not path.is_file():
        raise ScoreLoadError(f"score not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".json":
        try:
            score = ScoreDoc.model_validate_json(path.read_text(encoding="utf-8"))
        except (ValidationError, ValueError) as e:
            raise ScoreLoadError(f"Invalid score JSON {path}: {e}") from e
    elif suffix in MIDI_SUFFIXES:
        if grid_div is None:
            grid_div = get_settings().midi_grid_div
        score = midi_to_score(path, grid_div)
    elif suffix in MUSICXML_SUFFIXES:
        score = musicxml_to_score(path)
    else:
        raise ScoreLoadError(f"Unknown score file extension {suffix!r}")

    logger.info("Loaded %s: %d voices, %d notes", path.name, len(score.voices), score.note_count())
    return score
