from __future__ import annotations
import logging
import threading
import time
from typing import Callable, Iterable, Optional

from repcoach.common.events import RepResult
from repcoach.counter.exercises import RepCounter
from repcoach.counter.pose_core import Frame, frame_usable, validate_layout

logger = logging.getLogger(__name__)


class FrameLoop:
    """
    Exercise-agnostic driver: gate each frame on the active counter's
    required joints, feed it to the counter, forward whatever it emits.
    """

    def __init__(
        self,
        counter: RepCounter,
        on_rep: Callable[[RepResult], None],
        on_ready: Optional[Callable[[], None]] = None,
        debug_cb: Optional[Callable[[str], None]] = None,
    ):
        self.counter = counter
        self.on_rep = on_rep
        self.on_ready = on_ready
        self._dbg = debug_cb or (lambda *_: None)
        self._ready_fired = False
        self._closed = False
        self.frames_seen = 0
        self.frames_used = 0
        self.valid = 0

    @property
    def exercise(self) -> str:
        return self.counter.exercise

    @property
    def count(self) -> int:
        return self.counter.count

    @property
    def closed(self) -> bool:
        return self._closed

    def step(self, frame: Frame) -> Optional[RepResult]:
        if self._closed:
            return None
        self.frames_seen += 1
        if not frame_usable(frame, self.counter.required):
            return None
        self.frames_used += 1

        if not self._ready_fired:
            self._ready_fired = True
            self._dbg("pose ready")
            if self.on_ready:
                self.on_ready()

        res = self.counter.update(frame)
        if res is not None:
            if res.is_valid:
                self.valid += 1
            self._dbg(f"rep {res.repetition} ({'valid' if res.is_valid else 'invalid'})")
            self.on_rep(res)
        return res

    def run(self, source: Iterable[Optional[Frame]]) -> int:
        """Pull frames until the source runs dry or the loop is closed. Returns reps emitted."""
        validate_layout(getattr(source, "layout", None))
        emitted = 0
        for frame in source:
            if self._closed:
                break
            if frame is None:
                continue
            if self.step(frame) is not None:
                emitted += 1
        return emitted

    def close(self):
        # drop the in-progress rep without reporting it
        self._closed = True
        self.counter.discard()


class PosePipeline(threading.Thread):
    """Runs a FrameLoop over a pull-based frame source (e.g. a camera) in the background."""

    def __init__(
            self,
            loop: FrameLoop,
            source: Iterable[Optional[Frame]],
            on_error: Optional[Callable[[str], None]] = None,
    ):
        super().__init__(daemon=True)
        validate_layout(getattr(source, "layout", None))
        self.loop = loop
        self.source = source
        self.on_error = on_error
        self._stop_evt = threading.Event()
        self._paused = threading.Event()

    def run(self):
        try:
            frames = iter(self.source)
            while not self._stop_evt.is_set():
                if self._paused.is_set():
                    time.sleep(0.05)
                    continue
                try:
                    frame = next(frames)
                except StopIteration:
                    break
                if frame is None or self._stop_evt.is_set():
                    continue
                self.loop.step(frame)
        except Exception as e:
            logger.exception("pose pipeline failed")
            if self.on_error:
                self.on_error(str(e))
        finally:
            self.loop.close()
            close = getattr(self.source, "close", None)
            if close is not None:
                close()

    def stop(self):
        # the loop itself is closed from run() so it is never touched mid-frame
        self._stop_evt.set()

    def pause(self):
        self._paused.set()

    def resume(self):
        self._paused.clear()
