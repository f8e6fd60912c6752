from __future__ import annotations
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Literal, Tuple

Exercise = Literal["bicep_curl", "jumping_jacks", "push_ups"]
EXERCISES: Tuple[str, ...] = ("bicep_curl", "jumping_jacks", "push_ups")


def normalize_exercise(name: str) -> Exercise:
    """Accept 'push-ups', 'Push_Ups' etc.; raise ValueError for anything unknown."""
    key = str(name).strip().lower().replace("-", "_").replace(" ", "_")
    if key not in EXERCISES:
        raise ValueError(f"unknown exercise {name!r}; expected one of {', '.join(EXERCISES)}")
    return key  # type: ignore[return-value]


class EventType(str, Enum):
    SESSION_STARTED = "session_started"
    SESSION_STOPPED = "session_stopped"
    READY = "ready"
    REP = "rep"
    TRACE = "trace"


@dataclass(frozen=True)
class RepResult:
    repetition: int
    is_valid: bool

    exercise = ""

    def as_dict(self) -> dict:
        out = {"type": EventType.REP.value, "exercise": self.exercise}
        out.update(asdict(self))
        return out


@dataclass(frozen=True)
class CurlRep(RepResult):
    min_angle: float
    max_angle: float
    elbow_movement: float
    back_angle: float
    shoulder_movement: float
    hunching: float

    exercise = "bicep_curl"


@dataclass(frozen=True)
class JumpingJackRep(RepResult):
    arms_raised: bool
    legs_opened: bool
    leg_distance: float
    hip_width: float
    posture_angle: float
    left_wrist_y: float
    right_wrist_y: float
    left_eye_y: float
    right_eye_y: float

    exercise = "jumping_jacks"


@dataclass(frozen=True)
class PushUpRep(RepResult):
    min_angle: float
    max_angle: float
    alignment: int  # mean ear-hip-ankle angle, whole degrees

    exercise = "push_ups"


@dataclass(frozen=True)
class SessionStatus:
    session_id: str
    state: str
    exercise: str
    count: int
    valid: int


@dataclass(frozen=True)
class FinalSummary:
    session_id: str
    exercise: str
    total_reps: int
    valid_reps: int
