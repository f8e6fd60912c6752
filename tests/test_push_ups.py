import pytest

from repcoach.common.events import PushUpRep
from repcoach.counter.exercises import PushUpCounter, _round_half_up

from conftest import pushup_frame


def feed(counter, frames):
    return [r for r in (counter.update(f) for f in frames) if r is not None]


def test_full_cycle_emits_extremes():
    c = PushUpCounter()
    assert c.phase == "up"
    reps = feed(c, [pushup_frame(a) for a in (170, 80, 50, 170)])
    assert len(reps) == 1
    rep = reps[0]
    assert isinstance(rep, PushUpRep)
    assert rep.repetition == 1
    assert rep.min_angle == pytest.approx(50)
    assert rep.max_angle == pytest.approx(170)
    assert rep.alignment == 180
    assert not rep.is_valid  # bottom angle must stay above 55


def test_valid_rep():
    c = PushUpCounter()
    reps = feed(c, [pushup_frame(a, alignment=175) for a in (170, 85, 60, 120, 165)])
    assert reps[0].is_valid
    assert reps[0].alignment == 175


def test_going_down_does_not_emit():
    c = PushUpCounter()
    assert feed(c, [pushup_frame(170), pushup_frame(80)]) == []
    assert c.phase == "down"


def test_alignment_is_mean_of_buffer():
    c = PushUpCounter()
    frames = [pushup_frame(170, 150), pushup_frame(80, 170), pushup_frame(60, 165), pushup_frame(170, 175)]
    rep = feed(c, frames)[0]
    assert rep.alignment == 165
    assert rep.is_valid


def test_sagging_hips_invalidate():
    c = PushUpCounter()
    rep = feed(c, [pushup_frame(a, alignment=150) for a in (170, 80, 60, 170)])[0]
    assert rep.alignment == 150
    assert not rep.is_valid


def test_repeated_top_frames_do_not_double_count():
    c = PushUpCounter()
    reps = feed(c, [pushup_frame(a) for a in (170, 80, 60, 170, 170, 175)])
    assert len(reps) == 1


def test_buffers_cleared_and_second_rep_uses_new_frames_only():
    c = PushUpCounter()
    feed(c, [pushup_frame(a) for a in (170, 80, 60, 170)])
    assert c.angles == [] and c.alignments == []
    reps = feed(c, [pushup_frame(a) for a in (150, 70, 165)])
    assert [r.repetition for r in reps] == [2]
    assert reps[0].min_angle == pytest.approx(70)
    assert reps[0].max_angle == pytest.approx(165)


def test_round_half_up():
    assert _round_half_up(160.5) == 161
    assert _round_half_up(2.5) == 3
    assert _round_half_up(160.49) == 160
