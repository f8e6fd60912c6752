from __future__ import annotations
from typing import List

from repcoach.common.events import CurlRep, JumpingJackRep, PushUpRep, RepResult
from repcoach.counter.exercises import CurlConfig, JumpingJackConfig, PushUpConfig

GOOD_REP = "Great rep!"


def _curl_cues(rep: CurlRep, cfg: CurlConfig) -> List[str]:
    cues = []
    if rep.min_angle >= cfg.up_angle:
        cues.append("Curl higher")
    if rep.max_angle <= cfg.down_angle:
        cues.append("Extend your arm fully")
    if rep.elbow_movement >= cfg.max_elbow_movement:
        cues.append("Keep your elbow still")
    if rep.back_angle <= cfg.min_back_angle:
        cues.append("Don't lean back")
    if rep.shoulder_movement >= cfg.max_shoulder_movement:
        cues.append("Keep your shoulder still")
    if rep.hunching <= cfg.min_hunching:
        cues.append("Keep your back straight")
    return cues


def _jack_cues(rep: JumpingJackRep, cfg: JumpingJackConfig) -> List[str]:
    # the open posture had lapsed before the arms/legs came back together
    return ["Hold arms overhead and feet wide through the whole jump"]


def _pushup_cues(rep: PushUpRep, cfg: PushUpConfig) -> List[str]:
    cues = []
    if rep.min_angle <= cfg.min_bottom_angle:
        cues.append("Don't collapse at the bottom")
    if rep.max_angle <= cfg.min_top_angle:
        cues.append("Lock out at the top")
    if rep.alignment <= cfg.min_alignment:
        cues.append("Keep your body in a straight line")
    return cues


def form_cues(rep: RepResult, cfg=None) -> List[str]:
    """Short coaching hints for a finished rep, one per failed check."""
    if rep.is_valid:
        return [GOOD_REP]
    if isinstance(rep, CurlRep):
        cues = _curl_cues(rep, cfg or CurlConfig())
    elif isinstance(rep, JumpingJackRep):
        cues = _jack_cues(rep, cfg or JumpingJackConfig())
    elif isinstance(rep, PushUpRep):
        cues = _pushup_cues(rep, cfg or PushUpConfig())
    else:
        cues = []
    return cues or ["Check your form"]
