from __future__ import annotations

from hypothesis import given, settings, strategies as st

from core.errors import DiagnosticKind
from core.resolver import max_overlap_depth, resolve_all, resolve_tube
from core.score_models import Note, Pitch
from core.timeline import Interval, build_timeline
from core.tubes import TubeIdentity, get_inventory

C4 = TubeIdentity(octave=4, pitch_class=0)


def _iv(onset: float, duration: float, voice: str = "1", index: int = 0) -> Interval:
    n = Note(voice=voice, index=index, pitch=Pitch.from_name("C4"), onset=onset, duration=duration)
    return Interval(tube=C4, onset=onset, offset=onset + duration, note=n)


def _brute_force_depth(intervals) -> int:
    # max clique of an interval graph: some interval's onset lies inside all of them
    best = 0
    for a in intervals:
        best = max(best, sum(1 for b in intervals if b.onset <= a.onset < b.offset))
    return best


def _assert_slots_disjoint(res) -> None:
    for slot in res.slots:
        ivs = slot.intervals
        for a, b in zip(ivs, ivs[1:]):
            assert a.offset <= b.onset, f"{slot.label} holds overlapping notes"


def test_overlap_needs_second_copy():
    ivs = [_iv(0, 2, index=0), _iv(1, 2, index=1)]

    res = resolve_tube(C4, ivs, copies=1)
    assert not res.ok
    assert res.required == 2 and res.available == 1
    d = res.conflict
    assert d.kind == DiagnosticKind.irresolvable_tube_conflict
    assert d.tube == "C4"
    assert d.required == 2 and d.available == 1
    assert [(n.onset, n.duration) for n in d.notes] == [(0, 2), (1, 2)]

    res2 = resolve_tube(C4, ivs, copies=2)
    assert res2.ok
    assert [s.number for s in res2.slots] == [1, 2]
    _assert_slots_disjoint(res2)


def test_touching_notes_share_a_slot():
    res = resolve_tube(C4, [_iv(0, 1, index=0), _iv(1, 1, index=1), _iv(2, 1, index=2)])
    assert res.ok
    assert len(res.slots) == 1
    assert [iv.onset for iv in res.slots[0].intervals] == [0, 1, 2]


def test_first_fit_uses_lowest_free_slot():
    a, b, c, d = _iv(0, 4, index=0), _iv(1, 1, index=1), _iv(3, 2, index=2), _iv(4, 2, index=3)
    res = resolve_tube(C4, [d, c, b, a], copies=3)
    placed = {iv.note.index: s.number for s in res.slots for iv in s.intervals}
    # a->1, b->2, c fits slot 2 (b ended at 2), d fits slot 1 (a ended at 4)
    assert placed == {0: 1, 1: 2, 2: 2, 3: 1}
    assert res.required == 2


def test_ties_broken_by_voice():
    res = resolve_tube(C4, [_iv(0, 1, voice="2"), _iv(0, 1, voice="1")], copies=2)
    assert [s.intervals[0].note.voice for s in res.slots] == ["1", "2"]


def test_conflict_lists_only_colliding_notes():
    ivs = [_iv(0, 1, index=0), _iv(4, 2, index=1), _iv(5, 2, index=2), _iv(10, 1, index=3)]
    res = resolve_tube(C4, ivs, copies=1)
    assert [n.index for n in res.conflict.notes] == [1, 2]
    assert res.conflict.onset == 4


def test_resolve_all_is_per_tube_and_parallel_safe(make_score):
    score = make_score([
        ("1", "C4", 0.0, 2.0),
        ("2", "C4", 1.0, 2.0),
        ("1", "E4", 2.0, 1.0),
        ("2", "G4", 0.0, 4.0),
        ("3", "G4", 3.0, 1.0),
        ("3", "D4", 0.0, 1.0),
    ])
    tl = build_timeline(score, get_inventory("diatonic"))

    serial = resolve_all(tl, copies=1, workers=1)
    threaded = resolve_all(tl, copies=1, workers=4)

    assert [r.tube.name for r in serial] == ["C4", "D4", "E4", "G4"]
    assert [(r.tube, r.required, r.ok) for r in serial] == [(r.tube, r.required, r.ok) for r in threaded]
    assert [r.ok for r in serial] == [False, True, True, False]
    for a, b in zip(serial, threaded):
        assert [[iv.note for iv in s.intervals] for s in a.slots] == [[iv.note for iv in s.intervals] for s in b.slots]


@settings(max_examples=200, deadline=None)
@given(st.lists(st.tuples(st.integers(0, 30), st.integers(1, 8)), min_size=1, max_size=40))
def test_slot_count_equals_overlap_depth(spans):
    ivs = [_iv(float(on), float(dur), index=i) for i, (on, dur) in enumerate(spans)]
    res = resolve_tube(C4, ivs, copies=len(ivs))

    assert res.ok
    assert res.required == _brute_force_depth(ivs)
    assert res.required == max_overlap_depth(ivs)
    _assert_slots_disjoint(res)
    assert sorted(iv.note.index for s in res.slots for iv in s.intervals) == list(range(len(ivs)))


def test_doubled_notes_both_listed_in_conflict():
    a, b = _iv(0, 1), _iv(0, 1)
    assert a == b
    res = resolve_tube(C4, [a, b, _iv(0.5, 1, index=1)], copies=1)
    assert res.required == 3
    assert len(res.conflict.notes) == 3
