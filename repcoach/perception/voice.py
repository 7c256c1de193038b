"""Voice I/O driver: the only piece of the voice stack the coach talks to.

Speech and microphone work happens on background threads (tts-worker,
mic-processor, stt). Every callback is handed back to the asyncio loop with
call_soon_threadsafe, so subscribers run on the same thread as the engine.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from repcoach.config import MIN_TRANSCRIPT_LENGTH
from repcoach.errors import VoiceUnavailableError
from repcoach.perception.listener import MicListener
from repcoach.perception.stt import create_stt_provider
from repcoach.perception.tts import SpeakOptions, Speaker

logger = logging.getLogger("repcoach.voice")


@dataclass(frozen=True)
class Transcript:
    text: str
    is_final: bool = True


class VoiceDriver(Protocol):
    on_transcript: Optional[Callable[[Transcript], None]]
    on_listening_change: Optional[Callable[[bool], None]]
    on_error: Optional[Callable[[Exception], None]]
    on_spoken: Optional[Callable[[str], None]]

    def start_continuous_listening(self) -> bool:
        ...

    def stop_listening(self) -> None:
        ...

    def speak(self, text: str, options: Optional[SpeakOptions] = None) -> None:
        ...

    def stop_speaking(self) -> None:
        ...

    @property
    def is_speaking(self) -> bool:
        ...


class LocalVoiceDriver:
    """pyttsx3 out, sounddevice + Whisper in."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        speaker: Speaker,
        listener: Optional[MicListener],
        min_transcript_length: int = MIN_TRANSCRIPT_LENGTH,
    ):
        self._loop = loop
        self._speaker = speaker
        self._listener = listener
        self._min_length = min_transcript_length
        self._continuous = False

        self.on_transcript: Optional[Callable[[Transcript], None]] = None
        self.on_listening_change: Optional[Callable[[bool], None]] = None
        self.on_error: Optional[Callable[[Exception], None]] = None
        self.on_spoken: Optional[Callable[[str], None]] = None

        self._speaker.on_utterance_start = lambda text: self._post(self.on_spoken, text)
        if self._listener is not None:
            self._listener.on_transcript = self._handle_transcript

    @classmethod
    def create(cls, loop: asyncio.AbstractEventLoop) -> "LocalVoiceDriver":
        """Build the default stack. Raises VoiceUnavailableError when speech output is missing."""
        speaker = Speaker()
        if not speaker.start():
            raise VoiceUnavailableError("No speech synthesis engine available")
        try:
            listener = MicListener(create_stt_provider())
        except Exception as e:
            logger.error("Speech recognition unavailable, output only: %s", e)
            listener = None
        return cls(loop, speaker, listener)

    @property
    def can_listen(self) -> bool:
        return self._listener is not None

    @property
    def listening(self) -> bool:
        return self._listener is not None and self._listener.running

    @property
    def is_speaking(self) -> bool:
        return self._speaker.is_speaking

    def _post(self, callback: Optional[Callable], *args) -> None:
        if callback is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(callback, *args)

    # ── Listening ─────────────────────────────────────────────────────

    def start_continuous_listening(self) -> bool:
        if self._listener is None:
            self._post(self.on_error, VoiceUnavailableError("Speech recognition not available"))
            return False
        try:
            self._listener.start()
        except VoiceUnavailableError as e:
            # Includes MicrophonePermissionError: stays off until the user re-enables it
            self._continuous = False
            logger.error("%s", e)
            self._post(self.on_error, e)
            return False

        self._continuous = True
        self._post(self.on_listening_change, True)
        return True

    def stop_listening(self) -> None:
        was_listening = self._continuous
        self._continuous = False
        if self._listener is not None:
            self._listener.stop()
        if was_listening:
            self._post(self.on_listening_change, False)

    def _handle_transcript(self, text: str) -> None:
        """stt thread."""
        text = text.strip()
        if len(text) < self._min_length:
            logger.debug("Ignoring short transcript: %r", text)
            return
        if not self._continuous:
            return
        self._post(self.on_transcript, Transcript(text=text, is_final=True))

    # ── Speaking ──────────────────────────────────────────────────────

    def speak(self, text: str, options: Optional[SpeakOptions] = None) -> None:
        self._speaker.speak(text, options)

    def stop_speaking(self) -> None:
        self._speaker.interrupt()

    def shutdown(self) -> None:
        self.stop_listening()
        self._speaker.stop()
