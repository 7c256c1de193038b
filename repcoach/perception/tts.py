"""Offline speech output on a dedicated worker thread.

pyttsx3 must be initialised and driven from one thread, so every utterance
goes through a queue to the tts-worker thread. Interrupting (barge-in)
drops the queue and stops the current utterance at the next word boundary.
"""

import logging
import re
import threading
import time
from dataclasses import dataclass
from queue import Empty, Queue
from typing import Callable, Optional

from repcoach.config import TTS_BASE_WORDS_PER_MINUTE, TTS_RATE, TTS_VOLUME

logger = logging.getLogger("repcoach.tts")

_EMOJI_RE = re.compile(
    "["
    "\U0001F300-\U0001FAFF"  # pictographs, emoticons, transport, supplemental
    "⌀-⏿"  # technical (⏱ ⏭)
    "☀-➿"  # misc symbols and dingbats (✓ ⚡)
    "⬀-⯿"  # ⭐
    "️"  # variation selector
    "]"
)
_BOLD_RE = re.compile(r"\*\*(.*?)\*\*")
_ITALIC_RE = re.compile(r"\*(.*?)\*")
_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_SPACE_RE = re.compile(r"\s+")


def clean_text_for_speech(text: str) -> str:
    """Strip emoji and markdown so the synthesizer reads only words."""
    if not text:
        return ""
    text = _EMOJI_RE.sub("", text)
    text = _BOLD_RE.sub(r"\1", text)
    text = _ITALIC_RE.sub(r"\1", text)
    text = _LINK_RE.sub(r"\1", text)
    text = text.replace("×", " by ")
    return _SPACE_RE.sub(" ", text).strip()


@dataclass
class SpeakOptions:
    rate: float = TTS_RATE  # relative to TTS_BASE_WORDS_PER_MINUTE
    # pyttsx3 exposes no pitch property across its drivers
    volume: float = TTS_VOLUME


class Speaker:
    """Queued pyttsx3 speech.

    Public interface:
      - start() -> bool        (False when no speech engine is available)
      - speak(text, options)   (non-blocking, queued)
      - interrupt()            (barge-in, safe from any thread)
      - stop()
    """

    def __init__(self, words_per_minute: int = TTS_BASE_WORDS_PER_MINUTE):
        self._wpm = words_per_minute
        self._queue: Queue = Queue()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._ready = threading.Event()
        self._available = False

        self._interrupt_event = threading.Event()
        self._is_speaking = False
        self._is_speaking_lock = threading.Lock()
        self._engine = None

        # Called on the worker thread
        self.on_utterance_start: Optional[Callable[[str], None]] = None

    def start(self, timeout: float = 5.0) -> bool:
        """Start the worker and wait for the engine to initialise."""
        self._running = True
        self._thread = threading.Thread(target=self._worker, daemon=True, name="tts-worker")
        self._thread.start()
        self._ready.wait(timeout=timeout)
        if self._available:
            logger.info("TTS started (pyttsx3, %d wpm base)", self._wpm)
        return self._available

    def speak(self, text: str, options: Optional[SpeakOptions] = None) -> None:
        text = clean_text_for_speech(text)
        if not text:
            return
        self._queue.put((text, options or SpeakOptions()))

    @property
    def is_speaking(self) -> bool:
        with self._is_speaking_lock:
            return self._is_speaking

    def interrupt(self) -> None:
        """Stop current speech and drop everything queued."""
        self._interrupt_event.set()
        while True:
            try:
                self._queue.get_nowait()
            except Empty:
                break
        logger.info("TTS interrupted")

    def _on_word(self, name, location, length):
        # pyttsx3 callback on the worker thread; stop() is only safe from here
        if self._interrupt_event.is_set() and self._engine is not None:
            self._engine.stop()

    def _worker(self):
        try:
            import pyttsx3

            engine = pyttsx3.init()
            engine.connect("started-word", self._on_word)
        except Exception as e:
            logger.error("pyttsx3 initialization failed: %s", e)
            self._ready.set()
            return

        self._engine = engine
        self._available = True
        self._ready.set()

        while self._running:
            try:
                item = self._queue.get(timeout=0.5)
            except Empty:
                continue
            if item is None:
                break

            text, options = item
            self._interrupt_event.clear()
            with self._is_speaking_lock:
                self._is_speaking = True
            if self.on_utterance_start:
                try:
                    self.on_utterance_start(text)
                except Exception as e:
                    logger.warning("on_utterance_start callback failed: %s", e)

            started = time.monotonic()
            try:
                engine.setProperty("rate", int(self._wpm * options.rate))
                engine.setProperty("volume", max(0.0, min(1.0, options.volume)))
                engine.say(text)
                engine.runAndWait()
                logger.debug("Spoke in %.1fs: %.60s", time.monotonic() - started, text)
            except Exception as e:
                logger.error("TTS error: %s", e)
            finally:
                with self._is_speaking_lock:
                    self._is_speaking = False

        self._engine = None

    def stop(self):
        self._running = False
        self._queue.put(None)
        if self._thread is not None:
            self._thread.join(timeout=5)
        logger.info("TTS stopped")
