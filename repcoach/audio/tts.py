from __future__ import annotations
import logging
import platform
import queue
import subprocess
import threading

logger = logging.getLogger(__name__)


class RepAnnouncer:
    """
    Speaks short phrases (rep numbers, form cues) on the local machine.
    macOS uses `say`; everything else goes through pyttsx3. Phrases are queued
    and spoken one by one on a worker thread, so callers never wait on audio.
    """

    def __init__(self, prefer_mac_say: bool = True):
        self.prefer_mac_say = prefer_mac_say and platform.system() == "Darwin"
        self.q: "queue.Queue[str]" = queue.Queue()
        self._stop = threading.Event()
        self._pyttsx3 = None
        self.worker = threading.Thread(target=self._run, name="announcer", daemon=True)
        self.worker.start()

    def _ensure_pyttsx3(self):
        if self._pyttsx3 is None:
            import pyttsx3  # lazy import
            self._pyttsx3 = pyttsx3.init()

    def _speak(self, text: str):
        if self.prefer_mac_say:
            subprocess.run(["say", text], check=False)
        else:
            self._ensure_pyttsx3()
            self._pyttsx3.say(text)
            self._pyttsx3.runAndWait()

    def _run(self):
        while not self._stop.is_set():
            try:
                text = self.q.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                if text:
                    self._speak(text)
            except Exception:
                logger.warning("speech failed for %r", text, exc_info=True)
            finally:
                self.q.task_done()

    def say(self, text: str):
        if not text:
            return
        self.q.put(text)

    def announce_rep(self, repetition: int, is_valid: bool):
        self.say(str(repetition) if is_valid else f"{repetition}, check form")

    def shutdown(self):
        self._stop.set()
