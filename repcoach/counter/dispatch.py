from __future__ import annotations
import logging
import queue
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class ResultDispatcher:
    """
    Hands emitted events to a (possibly slow) consumer on a worker thread so
    the frame loop never blocks on it. Events are delivered in submit order,
    each at most once; a consumer exception is logged and the event dropped.
    """

    def __init__(self, consumer: Callable[[Any], None], name: str = "rep-dispatch"):
        self.consumer = consumer
        self.q: "queue.Queue[Any]" = queue.Queue()
        self._stop = threading.Event()
        self._closed = False
        self.worker = threading.Thread(target=self._run, name=name, daemon=True)
        self.worker.start()

    def submit(self, event: Any) -> bool:
        if self._closed:
            return False
        self.q.put(event)
        return True

    def _run(self):
        while not self._stop.is_set() or not self.q.empty():
            try:
                event = self.q.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                self.consumer(event)
            except Exception:
                logger.exception("consumer failed on %r", event)
            finally:
                self.q.task_done()

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until everything submitted so far was handed to the consumer."""
        t0 = time.time()
        while self.q.unfinished_tasks:
            if timeout is not None and (time.time() - t0) >= timeout:
                return False
            time.sleep(0.01)
        return True

    def _drop_pending(self) -> int:
        dropped = 0
        while True:
            try:
                self.q.get_nowait()
            except queue.Empty:
                return dropped
            self.q.task_done()
            dropped += 1

    def close(self, timeout: Optional[float] = 2.0) -> bool:
        """
        Refuse new events and give the consumer up to `timeout` to take what
        is queued. Anything still queued after that is dropped, never delivered
        late. Returns True when everything was delivered.
        """
        self._closed = True
        drained = self.wait_until_idle(timeout)
        self._stop.set()
        if not drained:
            dropped = self._drop_pending()
            if dropped:
                logger.warning("%s: dropped %d undelivered events", self.worker.name, dropped)
        if threading.current_thread() is not self.worker:
            self.worker.join(timeout=timeout)
        return drained
