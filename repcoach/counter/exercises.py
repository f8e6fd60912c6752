from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Tuple, Type

import numpy as np

from repcoach.common.events import CurlRep, JumpingJackRep, PushUpRep, RepResult, normalize_exercise
from repcoach.counter.pose_core import KP, Frame, Point, all_finite, angle_3pt

DebugCb = Callable[[str], None]


class RepCounter(Protocol):
    """Consumes gated frames one at a time and returns a result when a rep completes."""

    exercise: str
    required: Tuple[int, ...]
    count: int
    phase: str

    def update(self, frame: Frame) -> Optional[RepResult]: ...

    def discard(self) -> None: ...


# Per-exercise thresholds (degrees unless noted)

@dataclass
class CurlConfig:
    up_angle: float = 60.0     # contracted: crossing below completes the rep
    down_angle: float = 150.0  # extended: crossing above re-arms
    max_elbow_movement: float = 0.02     # fraction of frame size per sample
    max_shoulder_movement: float = 0.03  # fraction of frame height per sample
    min_back_angle: float = 170.0
    min_hunching: float = 160.0


@dataclass
class JumpingJackConfig:
    leg_ratio: float = 1.4  # ankle gap vs hip width to count legs as open


@dataclass
class PushUpConfig:
    down_angle: float = 90.0
    up_angle: float = 160.0
    min_bottom_angle: float = 55.0
    min_top_angle: float = 155.0
    min_alignment: float = 160.0


def _max_step(path: List[Point], width: float, height: float) -> float:
    """Largest normalized displacement between consecutive positions."""
    if len(path) < 2:
        return 0.0
    d = np.diff(np.asarray(path, dtype=float), axis=0) / (width, height)
    return float(np.max(np.hypot(d[:, 0], d[:, 1])))


def _max_vertical_step(path: List[Point], height: float) -> float:
    if len(path) < 2:
        return 0.0
    ys = np.asarray(path, dtype=float)[:, 1]
    return float(np.max(np.abs(np.diff(ys)) / height))


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


class _PhaseMixin:
    phase: str
    _dbg: DebugCb

    def _enter_phase(self, new_phase: str):
        if new_phase != self.phase:
            self.phase = new_phase
            self._dbg(f"phase→{new_phase}")


class BicepCurlCounter(_PhaseMixin):
    """
    Left-arm curl counter. A rep is counted on the way up (elbow closing
    below `up_angle`) and re-armed once the arm is extended again.
    """

    exercise = "bicep_curl"
    required = (
        KP["left_shoulder"],
        KP["left_elbow"],
        KP["left_wrist"],
        KP["left_hip"],
        KP["left_ear"],
    )

    PHASE_DOWN = "down"
    PHASE_UP = "up"

    def __init__(self, cfg: Optional[CurlConfig] = None, debug_cb: Optional[DebugCb] = None):
        self.cfg = cfg or CurlConfig()
        self._dbg = debug_cb or (lambda *_: None)
        self.count = 0
        self.phase = self.PHASE_DOWN
        self.angles: List[float] = []
        self.elbow_path: List[Point] = []
        self.shoulder_path: List[Point] = []

    def update(self, frame: Frame) -> Optional[CurlRep]:
        shoulder = frame.xy(KP["left_shoulder"])
        elbow = frame.xy(KP["left_elbow"])
        wrist = frame.xy(KP["left_wrist"])
        hip = frame.xy(KP["left_hip"])
        ear = frame.xy(KP["left_ear"])

        elbow_ang = angle_3pt(shoulder, elbow, wrist)
        back_ang = angle_3pt(hip, shoulder, ear)
        hunch_ang = angle_3pt(ear, shoulder, hip)
        if not all_finite(elbow_ang, back_ang, hunch_ang, *shoulder, *elbow):
            return None
        if not (math.isfinite(frame.width) and frame.width > 0):
            return None
        if not (math.isfinite(frame.height) and frame.height > 0):
            return None

        self.angles.append(elbow_ang)
        self.elbow_path.append(elbow)
        self.shoulder_path.append(shoulder)

        if self.phase == self.PHASE_UP and elbow_ang > self.cfg.down_angle:
            self._enter_phase(self.PHASE_DOWN)
        if self.phase == self.PHASE_DOWN and elbow_ang < self.cfg.up_angle:
            self._enter_phase(self.PHASE_UP)
            return self._finish_rep(frame, back_ang, hunch_ang)
        return None

    def _finish_rep(self, frame: Frame, back_ang: float, hunch_ang: float) -> CurlRep:
        cfg = self.cfg
        self.count += 1
        min_a = min(self.angles)
        max_a = max(self.angles)
        elbow_mov = _max_step(self.elbow_path, frame.width, frame.height)
        shoulder_mov = _max_vertical_step(self.shoulder_path, frame.height)

        valid = (
            min_a < cfg.up_angle
            and max_a > cfg.down_angle
            and elbow_mov < cfg.max_elbow_movement
            and back_ang > cfg.min_back_angle
            and shoulder_mov < cfg.max_shoulder_movement
            and hunch_ang > cfg.min_hunching
        )
        rep = CurlRep(
            repetition=self.count,
            is_valid=valid,
            min_angle=min_a,
            max_angle=max_a,
            elbow_movement=elbow_mov,
            back_angle=back_ang,
            shoulder_movement=shoulder_mov,
            hunching=hunch_ang,
        )
        self.discard()
        return rep

    def discard(self) -> None:
        self.angles = []
        self.elbow_path = []
        self.shoulder_path = []


class JumpingJackCounter(_PhaseMixin):
    """
    Arms above the eyes and feet wider than the hips is the open posture.
    The rep is emitted when that posture is left. `valid` is reset when a new
    open phase starts and cleared on every frame that is not open.
    """

    exercise = "jumping_jacks"
    required = (
        KP["left_wrist"],
        KP["right_wrist"],
        KP["left_eye"],
        KP["right_eye"],
        KP["left_ankle"],
        KP["right_ankle"],
        KP["left_hip"],
        KP["right_hip"],
    )

    PHASE_CLOSED = "closed"
    PHASE_OPEN = "open"

    def __init__(self, cfg: Optional[JumpingJackConfig] = None, debug_cb: Optional[DebugCb] = None):
        self.cfg = cfg or JumpingJackConfig()
        self._dbg = debug_cb or (lambda *_: None)
        self.count = 0
        self.phase = self.PHASE_CLOSED
        self.valid = True

    def update(self, frame: Frame) -> Optional[JumpingJackRep]:
        lw = frame.xy(KP["left_wrist"])
        rw = frame.xy(KP["right_wrist"])
        le = frame.xy(KP["left_eye"])
        re_ = frame.xy(KP["right_eye"])
        la = frame.xy(KP["left_ankle"])
        ra = frame.xy(KP["right_ankle"])
        lh = frame.xy(KP["left_hip"])
        rh = frame.xy(KP["right_hip"])

        leg_distance = math.hypot(la[0] - ra[0], la[1] - ra[1])
        hip_width = math.hypot(lh[0] - rh[0], lh[1] - rh[1])
        mid_hip = ((lh[0] + rh[0]) / 2, (lh[1] + rh[1]) / 2)
        posture = angle_3pt(lh, mid_hip, le)
        if not all_finite(leg_distance, hip_width, posture, lw[1], rw[1], le[1], re_[1]):
            return None

        arms_raised = lw[1] < le[1] and rw[1] < re_[1]
        legs_opened = leg_distance > hip_width * self.cfg.leg_ratio

        if arms_raised and legs_opened:
            if self.phase == self.PHASE_CLOSED:
                self._enter_phase(self.PHASE_OPEN)
                self.valid = True
            return None

        rep = None
        if self.phase == self.PHASE_OPEN:
            self._enter_phase(self.PHASE_CLOSED)
            self.count += 1
            rep = JumpingJackRep(
                repetition=self.count,
                is_valid=self.valid,
                arms_raised=arms_raised,
                legs_opened=legs_opened,
                leg_distance=round(leg_distance, 3),
                hip_width=round(hip_width, 3),
                posture_angle=round(posture, 1),
                left_wrist_y=round(lw[1], 3),
                right_wrist_y=round(rw[1], 3),
                left_eye_y=round(le[1], 3),
                right_eye_y=round(re_[1], 3),
            )
        self.valid = False
        return rep

    def discard(self) -> None:
        # nothing buffered between frames
        return None


class PushUpCounter(_PhaseMixin):
    """Right-side push-up counter; the rep completes on the way back up."""

    exercise = "push_ups"
    required = (
        KP["right_shoulder"],
        KP["right_elbow"],
        KP["right_wrist"],
        KP["right_hip"],
        KP["right_ankle"],
        KP["right_ear"],
    )

    PHASE_UP = "up"
    PHASE_DOWN = "down"

    def __init__(self, cfg: Optional[PushUpConfig] = None, debug_cb: Optional[DebugCb] = None):
        self.cfg = cfg or PushUpConfig()
        self._dbg = debug_cb or (lambda *_: None)
        self.count = 0
        self.phase = self.PHASE_UP
        self.angles: List[float] = []
        self.alignments: List[float] = []

    def update(self, frame: Frame) -> Optional[PushUpRep]:
        shoulder = frame.xy(KP["right_shoulder"])
        elbow = frame.xy(KP["right_elbow"])
        wrist = frame.xy(KP["right_wrist"])
        hip = frame.xy(KP["right_hip"])
        ankle = frame.xy(KP["right_ankle"])
        ear = frame.xy(KP["right_ear"])

        elbow_ang = angle_3pt(shoulder, elbow, wrist)
        align_ang = angle_3pt(ear, hip, ankle)
        if not all_finite(elbow_ang, align_ang):
            return None

        self.angles.append(elbow_ang)
        self.alignments.append(align_ang)

        if self.phase == self.PHASE_UP and elbow_ang < self.cfg.down_angle:
            self._enter_phase(self.PHASE_DOWN)
        elif self.phase == self.PHASE_DOWN and elbow_ang > self.cfg.up_angle:
            self._enter_phase(self.PHASE_UP)
            return self._finish_rep()
        return None

    def _finish_rep(self) -> PushUpRep:
        cfg = self.cfg
        self.count += 1
        min_a = min(self.angles)
        max_a = max(self.angles)
        mean_align = float(np.mean(self.alignments))
        rep = PushUpRep(
            repetition=self.count,
            is_valid=(
                min_a > cfg.min_bottom_angle
                and max_a > cfg.min_top_angle
                and mean_align > cfg.min_alignment
            ),
            min_angle=min_a,
            max_angle=max_a,
            alignment=_round_half_up(mean_align),
        )
        self.discard()
        return rep

    def discard(self) -> None:
        self.angles = []
        self.alignments = []


COUNTERS: Dict[str, Type] = {
    "bicep_curl": BicepCurlCounter,
    "jumping_jacks": JumpingJackCounter,
    "push_ups": PushUpCounter,
}


def make_counter(exercise: str, cfg=None, debug_cb: Optional[DebugCb] = None) -> RepCounter:
    """Pick the state machine for an exercise; raises ValueError for unknown names."""
    return COUNTERS[normalize_exercise(exercise)](cfg, debug_cb=debug_cb)
