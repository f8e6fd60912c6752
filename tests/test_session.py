import time

import pytest

from repcoach.counter.pose_core import KEYPOINT_NAMES, FrameLayoutError
from repcoach.counter.session import RepSessionManager
from repcoach.data import db

from conftest import curl_frame, frame_message, jack_frame, pushup_frame


@pytest.fixture
def manager():
    m = RepSessionManager(trainer_mode=False)
    events = []
    m.set_event_sink(events.append)
    m.events = events
    yield m
    if m.active_pipeline is not None:
        m.stop()


def _types(events):
    return [e["type"] for e in events if e["type"] != "trace"]


def test_web_session_end_to_end(manager):
    sid, status = manager.start("bicep_curl", layout=list(KEYPOINT_NAMES))
    assert status == "started bicep_curl"
    for a in (170, 50, 170, 50):
        manager.push_frame(curl_frame(a))
    assert manager.wait_until_idle(timeout=5)

    assert _types(manager.events) == ["session_started", "ready", "rep", "rep"]
    reps = [e for e in manager.events if e["type"] == "rep"]
    assert [r["repetition"] for r in reps] == [1, 2]
    assert reps[0]["exercise"] == "bicep_curl"
    assert reps[0]["session_id"] == sid
    assert reps[0]["cues"] == ["Great rep!"]

    st = manager.status()
    assert st.state == "running" and st.count == 2 and st.valid == 2

    summary = manager.stop()
    assert (summary.session_id, summary.total_reps, summary.valid_reps) == (sid, 2, 2)
    assert manager.status().state == "stopped"
    assert manager.events[-1]["type"] == "session_stopped"

    stored = db.list_reps(sid)
    assert [r["rep_index"] for r in stored] == [1, 2]
    assert stored[0]["metrics"]["min_angle"] == pytest.approx(50)
    row = db.get_session(sid)
    assert row["total_reps"] == 2 and row["stopped_at"] is not None


def test_invalid_rep_carries_cues(manager):
    manager.start("push-ups")
    for a in (170, 80, 50, 170):
        manager.push_frame(pushup_frame(a))
    manager.wait_until_idle(timeout=5)
    rep = [e for e in manager.events if e["type"] == "rep"][0]
    assert rep["is_valid"] is False
    assert rep["cues"] == ["Don't collapse at the bottom"]
    assert manager.stop().valid_reps == 0


def test_push_message_drops_malformed_frames(manager):
    manager.start("jumping_jacks")
    assert manager.push_message({"type": "frame", "width": 640, "height": 480, "keypoints": [[0, 0, 1]] * 5}) is None
    manager.push_message(frame_message(jack_frame(arms_up=True, legs_open=True)))
    rep = manager.push_message(frame_message(jack_frame(arms_up=False, legs_open=False)))
    assert rep is not None and rep.repetition == 1
    assert manager.active_pipeline.dropped == 1


def test_unknown_exercise_and_layout_are_rejected_at_start(manager):
    with pytest.raises(ValueError):
        manager.start("squats")
    with pytest.raises(FrameLayoutError):
        manager.start("push_ups", layout=["nose", "left_eye"])
    with pytest.raises(ValueError):
        manager.start("push_ups", source="kinect")
    assert manager.active_pipeline is None


def test_starting_again_stops_previous_session(manager):
    first, _ = manager.start("bicep_curl")
    second, _ = manager.start("push_ups")
    assert first != second
    assert db.get_session(first)["stopped_at"] is not None
    assert manager.active_exercise == "push_ups"


def test_stop_discards_in_progress_rep(manager):
    sid, _ = manager.start("push_ups")
    for a in (170, 80, 60):
        manager.push_frame(pushup_frame(a))
    summary = manager.stop()
    assert summary.total_reps == 0
    assert db.list_reps(sid) == []
    assert manager.push_frame(pushup_frame(170)) is None


def test_paused_session_ignores_frames(manager):
    manager.start("push_ups")
    manager.pause()
    for a in (170, 80, 60, 170):
        assert manager.push_frame(pushup_frame(a)) is None
    manager.resume()
    for a in (170, 80, 60, 170):
        manager.push_frame(pushup_frame(a))
    assert manager.status().count == 1


def test_camera_source_runs_in_background(manager):
    frames = [pushup_frame(a) for a in (170, 80, 60, 170)]
    sid, _ = manager.start("push_ups", source="camera", frame_source=frames)
    manager.active_pipeline.join(timeout=5)
    summary = manager.stop()
    assert summary.total_reps == 1
    assert [r["rep_index"] for r in db.list_reps(sid)] == [1]


def test_slow_sink_does_not_leak_reps_into_next_session():
    m = RepSessionManager(drain_timeout=0.2)
    events = []

    def slow_sink(ev):
        if ev["type"] == "rep":
            time.sleep(0.3)
        events.append(ev)

    m.set_event_sink(slow_sink)
    first, _ = m.start("bicep_curl")
    for a in (170, 50, 170, 50, 170, 50):
        m.push_frame(curl_frame(a))

    summary = m.stop()
    assert (summary.total_reps, summary.valid_reps) == (3, 3)
    assert db.get_session(first)["valid_reps"] == 3

    second, _ = m.start("push_ups")
    time.sleep(1.0)
    st = m.status()
    assert (st.session_id, st.exercise, st.count, st.valid) == (second, "push_ups", 0, 0)

    kinds = _types(events)
    stopped_at = kinds.index("session_stopped")
    assert kinds[stopped_at + 1] == "session_started"
    assert "rep" not in kinds[stopped_at:]
    delivered = [e["repetition"] for e in events if e["type"] == "rep"]
    assert delivered == list(range(1, len(delivered) + 1))
    assert all(e["session_id"] == first for e in events if e["type"] == "rep")
    m.stop()


def test_stop_without_session(manager):
    summary = manager.stop()
    assert summary.total_reps == 0


def test_sink_errors_do_not_break_delivery(caplog):
    m = RepSessionManager()

    def bad_sink(ev):
        raise RuntimeError("socket gone")

    m.set_event_sink(bad_sink)
    sid, _ = m.start("push_ups")
    for a in (170, 80, 60, 170):
        m.push_frame(pushup_frame(a))
    m.stop()
    assert [r["rep_index"] for r in db.list_reps(sid)] == [1]
    assert "event sink failed" in caplog.text
