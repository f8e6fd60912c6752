from __future__ import annotations
import math
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence, Tuple

Point = Tuple[float, float]

# COCO / MoveNet 17-point body layout
KEYPOINT_NAMES: Tuple[str, ...] = (
    "nose",
    "left_eye",
    "right_eye",
    "left_ear",
    "right_ear",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
)
KP = {name: i for i, name in enumerate(KEYPOINT_NAMES)}
NUM_KEYPOINTS = len(KEYPOINT_NAMES)

CONFIDENCE_FLOOR = 0.3


class FrameLayoutError(ValueError):
    """Upstream producer does not deliver the 17-point layout."""


# Utility math

def angle_3pt(a: Point, b: Point, c: Point) -> float:
    """Return angle ABC in degrees with B as vertex."""
    ang = math.degrees(
        math.atan2(c[1] - b[1], c[0] - b[0]) - math.atan2(a[1] - b[1], a[0] - b[0])
    )
    ang = abs(ang)
    if ang > 180:
        ang = 360 - ang
    return ang


def all_finite(*values: float) -> bool:
    return all(math.isfinite(v) for v in values)


@dataclass(frozen=True)
class Keypoint:
    x: float
    y: float
    score: float = 0.0

    @property
    def xy(self) -> Point:
        return (self.x, self.y)


@dataclass(frozen=True)
class Frame:
    keypoints: Tuple[Keypoint, ...]
    width: float
    height: float
    ts: Optional[float] = field(default=None, compare=False)

    def __post_init__(self):
        if len(self.keypoints) != NUM_KEYPOINTS:
            raise FrameLayoutError(
                f"expected {NUM_KEYPOINTS} keypoints, got {len(self.keypoints)}"
            )

    @classmethod
    def from_points(
        cls,
        points: Iterable[Sequence[float]],
        width: float,
        height: float,
        ts: Optional[float] = None,
    ) -> "Frame":
        """Build a frame from (x, y, score) triples in layout order."""
        kps = tuple(Keypoint(float(p[0]), float(p[1]), float(p[2])) for p in points)
        return cls(kps, float(width), float(height), ts)

    def __getitem__(self, idx: int) -> Keypoint:
        return self.keypoints[idx]

    def xy(self, idx: int) -> Point:
        return self.keypoints[idx].xy


def validate_layout(names: Optional[Sequence[str]]) -> None:
    """Raise FrameLayoutError unless `names` is the 17-point layout (None means default)."""
    if names is None:
        return
    if tuple(names) != KEYPOINT_NAMES:
        raise FrameLayoutError(
            f"unsupported keypoint layout ({len(names)} joints); expected {list(KEYPOINT_NAMES)}"
        )


def frame_usable(frame: Frame, required: Iterable[int], floor: float = CONFIDENCE_FLOOR) -> bool:
    # NaN scores fail the comparison and are rejected too
    return all(frame.keypoints[i].score > floor for i in required)
