from __future__ import annotations
import logging
import threading
import time
import uuid
from typing import Any, Callable, Iterable, Literal, Mapping, Optional, Sequence, Tuple, Union

from repcoach.audio.tts import RepAnnouncer
from repcoach.common.events import (
    EventType,
    FinalSummary,
    RepResult,
    SessionStatus,
    normalize_exercise,
)
from repcoach.counter.camera import CameraFrameSource
from repcoach.counter.dispatch import ResultDispatcher
from repcoach.counter.exercises import make_counter
from repcoach.counter.feedback import form_cues
from repcoach.counter.pipeline import FrameLoop, PosePipeline
from repcoach.counter.pose_core import Frame, validate_layout
from repcoach.counter.web_pipeline import WebFramePipeline
from repcoach.data import db

logger = logging.getLogger(__name__)

Source = Literal["web", "camera"]


class RepSessionManager:
    """
    Owns the one active exercise session: builds the counter and pipeline,
    persists reps, and forwards events to the sink. Analysis results reach
    `_deliver` through a dispatcher thread, never inline with frame handling.
    """

    def __init__(
        self,
        trainer_mode: bool = False,
        announcer: Optional[RepAnnouncer] = None,
        drain_timeout: float = 2.0,
    ):
        self.trainer_mode = trainer_mode
        self.tts = announcer or (RepAnnouncer() if trainer_mode else None)
        self.drain_timeout = drain_timeout
        # held while an event is delivered and while the active session changes
        self._deliver_lock = threading.RLock()
        self.active_id: Optional[str] = None
        self.active_exercise: Optional[str] = None
        self.active_source: Optional[str] = None
        self.active_pipeline: Optional[Union[WebFramePipeline, PosePipeline]] = None
        self._loop: Optional[FrameLoop] = None
        self._dispatcher: Optional[ResultDispatcher] = None
        self.count = 0
        self.valid = 0
        self._event_sink: Optional[Callable[[dict], None]] = None

    def set_event_sink(self, sink: Callable[[dict], None]):
        self._event_sink = sink

    def _emit(self, payload: dict):
        if self._event_sink is None:
            return
        try:
            self._event_sink(payload)
        except Exception:
            logger.exception("event sink failed for %s event", payload.get("type"))

    # Runs on the dispatcher thread
    def _deliver(self, session_id: str, exercise: str, event: Any):
        with self._deliver_lock:
            if session_id != self.active_id:
                logger.debug("dropping late %r from stopped session %s", event, session_id)
                return
            if isinstance(event, RepResult):
                self._on_rep(session_id, event)
            elif event is EventType.READY:
                self._emit({"type": EventType.READY.value, "session_id": session_id, "exercise": exercise})
            elif isinstance(event, Mapping):
                self._emit(dict(event))

    def _on_rep(self, session_id: str, rep: RepResult):
        cues = form_cues(rep)
        payload = rep.as_dict()
        db.insert_rep(session_id, rep.repetition, time.time(), rep.is_valid, payload, cues)

        if self.tts is not None:
            self.tts.announce_rep(rep.repetition, rep.is_valid)

        payload.update(session_id=session_id, cues=cues)
        self._emit(payload)

    def _on_error(self, msg: str):
        # Called from pipeline thread on error
        sid = self.active_id
        self._emit({"type": EventType.TRACE.value, "msg": f"pipeline error: {msg}"})
        if sid:
            self.stop(sid)

    def start(
        self,
        exercise: str,
        source: Source = "web",
        layout: Optional[Sequence[str]] = None,
        frame_source: Optional[Iterable[Optional[Frame]]] = None,
        camera_index: int = 0,
    ) -> Tuple[str, str]:
        """
        Begin a session. Raises ValueError for an unknown exercise or source and
        FrameLayoutError when the producer's declared layout is not 17-point.
        """
        exercise = normalize_exercise(exercise)
        validate_layout(layout)
        if source not in ("web", "camera"):
            raise ValueError(f"unknown frame source {source!r}")

        # stop existing session if any
        if self.active_pipeline is not None:
            self.stop(self.active_id)

        sid = str(uuid.uuid4())
        dispatcher = ResultDispatcher(lambda ev: self._deliver(sid, exercise, ev))

        def trace(msg: str):
            dispatcher.submit({"type": EventType.TRACE.value, "msg": msg})

        loop = FrameLoop(
            make_counter(exercise, debug_cb=trace),
            on_rep=dispatcher.submit,
            on_ready=lambda: dispatcher.submit(EventType.READY),
            debug_cb=trace,
        )

        if source == "web":
            pipe = WebFramePipeline(loop, debug_cb=dispatcher.submit)
        else:
            pipe = PosePipeline(
                loop,
                frame_source if frame_source is not None else CameraFrameSource(camera_index),
                on_error=self._on_error,
            )

        with self._deliver_lock:
            self.active_id = sid
            self.active_exercise = exercise
            self.active_source = source
            self.active_pipeline = pipe
            self._loop = loop
            self._dispatcher = dispatcher
            self.count = 0
            self.valid = 0

        db.insert_session(sid, exercise, source, time.time())

        logger.info("session %s started: %s (%s)", sid, exercise, source)
        self._emit({"type": EventType.SESSION_STARTED.value, "session_id": sid, "exercise": exercise, "source": source})
        pipe.start()
        if self.tts is not None:
            self.tts.say(f"starting {exercise.replace('_', ' ')}")
        return sid, f"started {exercise}"

    def push_frame(self, frame: Frame) -> Optional[RepResult]:
        if isinstance(self.active_pipeline, WebFramePipeline):
            return self.active_pipeline.push_frame(frame)
        return None

    def push_message(self, msg: Mapping[str, Any]) -> Optional[RepResult]:
        if isinstance(self.active_pipeline, WebFramePipeline):
            return self.active_pipeline.push_message(msg)
        return None

    def pause(self, session_id: Optional[str] = None) -> str:
        if self.active_pipeline is not None:
            self.active_pipeline.pause()
        return self.active_id or ""

    def resume(self, session_id: Optional[str] = None) -> str:
        if self.active_pipeline is not None:
            self.active_pipeline.resume()
        return self.active_id or ""

    def stop(self, session_id: Optional[str] = None) -> FinalSummary:
        sid = self.active_id or ""
        exercise = self.active_exercise or ""
        pipe = self.active_pipeline
        if pipe is None or (session_id and session_id != sid):
            return FinalSummary(session_id=session_id or sid, exercise=exercise, total_reps=0, valid_reps=0)

        self.active_pipeline = None
        pipe.stop()
        if isinstance(pipe, PosePipeline) and pipe is not threading.current_thread():
            pipe.join(timeout=1.0)
        loop = self._loop
        if loop is not None:
            self.count, self.valid = loop.count, loop.valid
        # reps emitted before the stop still reach the consumer, within the drain bound
        if self._dispatcher is not None:
            self._dispatcher.close(self.drain_timeout)

        # waits for an event already in the consumer; anything later is dropped by _deliver
        with self._deliver_lock:
            self._loop = None
            self._dispatcher = None
            self.active_id = None
            self.active_exercise = None
            self.active_source = None

        total, valid = self.count, self.valid
        summary = FinalSummary(session_id=sid, exercise=exercise, total_reps=total, valid_reps=valid)
        db.stop_session(sid, time.time(), total, valid)

        logger.info("session %s stopped: %d reps (%d valid)", sid, total, valid)
        self._emit({
            "type": EventType.SESSION_STOPPED.value,
            "session_id": sid,
            "exercise": exercise,
            "total_reps": total,
            "valid_reps": summary.valid_reps,
        })
        if self.tts is not None:
            self.tts.say("stopping counter")
        return summary

    def status(self, session_id: Optional[str] = None) -> SessionStatus:
        loop = self._loop
        count, valid = (loop.count, loop.valid) if loop is not None else (self.count, self.valid)
        return SessionStatus(
            session_id=self.active_id or "",
            state=("running" if self.active_pipeline else "stopped"),
            exercise=self.active_exercise or "",
            count=count,
            valid=valid,
        )

    def wait_until_idle(self, timeout: Optional[float] = 2.0) -> bool:
        """Block until queued events of the active session were delivered."""
        if self._dispatcher is None:
            return True
        return self._dispatcher.wait_until_idle(timeout)
