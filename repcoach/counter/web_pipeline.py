# repcoach/counter/web_pipeline.py
from __future__ import annotations
import logging
from typing import Any, Callable, Mapping, Optional

from repcoach.counter.pipeline import FrameLoop
from repcoach.counter.pose_core import Frame, FrameLayoutError, NUM_KEYPOINTS
from repcoach.common.events import RepResult

logger = logging.getLogger(__name__)


def frame_from_message(msg: Mapping[str, Any]) -> Frame:
    """
    Parse one browser message:
    {"type": "frame", "width": W, "height": H, "ts": t,
     "keypoints": [{"x": .., "y": .., "score": ..}, ...]}
    Keypoints may also be sent as [x, y, score] triples.
    """
    kps = msg.get("keypoints")
    if not isinstance(kps, (list, tuple)) or len(kps) != NUM_KEYPOINTS:
        n = len(kps) if isinstance(kps, (list, tuple)) else 0
        raise FrameLayoutError(f"expected {NUM_KEYPOINTS} keypoints, got {n}")
    points = []
    for kp in kps:
        if isinstance(kp, Mapping):
            points.append((kp["x"], kp["y"], kp.get("score", 0.0)))
        else:
            points.append(tuple(kp))
    ts = msg.get("ts")
    return Frame.from_points(points, msg["width"], msg["height"], float(ts) if ts is not None else None)


class WebFramePipeline:
    """
    A passive 'pipeline' fed with keypoint frames from the browser.
    No camera, no threads. Just call push_frame(frame).
    """
    def __init__(
        self,
        loop: FrameLoop,
        debug_cb: Optional[Callable[[dict], None]] = None,
    ):
        self.loop = loop
        self.debug_cb = debug_cb
        self._running = True
        self.dropped = 0

    # keep for API parity with PosePipeline
    def start(self):
        self._running = True

    def stop(self):
        self._running = False
        self.loop.close()

    def pause(self):
        self._running = False

    def resume(self):
        if not self.loop.closed:
            self._running = True

    def push_frame(self, frame: Frame) -> Optional[RepResult]:
        """Feed one frame; returns the result if this frame completed a rep."""
        if not self._running:
            return None
        return self.loop.step(frame)

    def push_message(self, msg: Mapping[str, Any]) -> Optional[RepResult]:
        if not self._running:
            return None
        try:
            frame = frame_from_message(msg)
        except (FrameLayoutError, KeyError, TypeError, ValueError, IndexError) as e:
            # bad frames mid-session are dropped like low-confidence ones
            self.dropped += 1
            logger.debug("dropping malformed frame: %s", e)
            if self.debug_cb:
                self.debug_cb({"type": "trace", "msg": f"frame dropped: {e}"})
            return None
        return self.push_frame(frame)
