import math

import pytest

from repcoach.counter.pose_core import KP, NUM_KEYPOINTS, Frame, Keypoint
from repcoach.data import db

W, H = 640.0, 480.0


@pytest.fixture(autouse=True)
def tmp_db(tmp_path):
    db.configure(tmp_path / "repcoach-test.db")
    yield
    db.configure(tmp_path / "closed.db")


def make_frame(points, score=0.9, low=(), width=W, height=H, ts=None):
    """Frame with the given joints placed; unlisted joints sit at the origin."""
    kps = [Keypoint(0.0, 0.0, score) for _ in range(NUM_KEYPOINTS)]
    for name, (x, y) in points.items():
        kps[KP[name]] = Keypoint(float(x), float(y), score)
    for name in low:
        k = kps[KP[name]]
        kps[KP[name]] = Keypoint(k.x, k.y, 0.1)
    return Frame(tuple(kps), width, height, ts)


def frame_message(frame):
    return {
        "type": "frame",
        "width": frame.width,
        "height": frame.height,
        "keypoints": [{"x": k.x, "y": k.y, "score": k.score} for k in frame.keypoints],
    }


def _arm(elbow, angle, length=100.0):
    """Shoulder straight above the elbow, wrist opened by `angle` degrees."""
    ex, ey = elbow
    shoulder = (ex, ey - length)
    t = math.radians(angle)
    wrist = (ex + length * math.sin(t), ey - length * math.cos(t))
    return shoulder, wrist


def curl_frame(elbow_angle, back_tilt=0.0, elbow=(320.0, 240.0), **kw):
    """Left-side curl pose. back angle at the shoulder is 180 - back_tilt."""
    shoulder, wrist = _arm(elbow, elbow_angle)
    hip = (shoulder[0], shoulder[1] + 200.0)
    t = math.radians(back_tilt)
    ear = (shoulder[0] + 50.0 * math.sin(t), shoulder[1] - 50.0 * math.cos(t))
    return make_frame(
        {
            "left_shoulder": shoulder,
            "left_elbow": elbow,
            "left_wrist": wrist,
            "left_hip": hip,
            "left_ear": ear,
        },
        **kw,
    )


def jack_frame(arms_up=True, legs_open=True, **kw):
    wrist_y = 50.0 if arms_up else 350.0
    ankles = ((200.0, 450.0), (440.0, 450.0)) if legs_open else ((300.0, 450.0), (340.0, 450.0))
    return make_frame(
        {
            "left_eye": (300.0, 100.0),
            "right_eye": (340.0, 100.0),
            "left_wrist": (250.0, wrist_y),
            "right_wrist": (390.0, wrist_y),
            "left_hip": (290.0, 300.0),
            "right_hip": (350.0, 300.0),
            "left_ankle": ankles[0],
            "right_ankle": ankles[1],
        },
        **kw,
    )


def pushup_frame(elbow_angle, alignment=180.0, **kw):
    """Right-side push-up pose with the given elbow and ear-hip-ankle angles."""
    elbow = (320.0, 300.0)
    shoulder, wrist = _arm(elbow, elbow_angle)
    hip = (450.0, 200.0)
    ear = (hip[0] - 150.0, hip[1])
    a = math.radians(alignment)
    ankle = (hip[0] - 200.0 * math.cos(a), hip[1] + 200.0 * math.sin(a))
    return make_frame(
        {
            "right_shoulder": shoulder,
            "right_elbow": elbow,
            "right_wrist": wrist,
            "right_hip": hip,
            "right_ankle": ankle,
            "right_ear": ear,
        },
        **kw,
    )
