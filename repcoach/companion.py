"""
RepCoach session orchestrator.

Wires the pieces of one workout together:

    mic -> VoiceDriver -> SelfHearingFilter -> WorkoutEngine.process_input
    WorkoutEngine --message--> VoiceDriver.speak (+ SelfHearingFilter.record_spoken)
    WorkoutEngine --set_completed--> RemoteSync (inside the engine)

Everything runs on the asyncio loop; the voice driver posts its callbacks
there. Without a voice driver the same session runs on typed input only.
"""

import asyncio
import logging
from typing import Callable, Optional

from repcoach.errors import MicrophonePermissionError, NoActiveSessionError
from repcoach.coach.engine import WorkoutEngine
from repcoach.coach.models import Routine
from repcoach.perception.tts import SpeakOptions
from repcoach.perception.voice import Transcript, VoiceDriver
from repcoach.utils.self_hearing import SelfHearingFilter

logger = logging.getLogger("repcoach.companion")

MIC_DENIED_MESSAGE = "Microphone access was denied. Allow it and say or type 'listen' to turn voice back on, or type your reps."


class WorkoutCompanion:
    def __init__(
        self,
        engine: WorkoutEngine,
        voice: Optional[VoiceDriver] = None,
        echo_filter: Optional[SelfHearingFilter] = None,
        confirm_end: Optional[Callable[[], bool]] = None,
        speak_options: Optional[SpeakOptions] = None,
    ):
        self.engine = engine
        self.voice = voice
        self.echo_filter = echo_filter or SelfHearingFilter()
        self._confirm_end = confirm_end
        self._speak_options = speak_options or SpeakOptions()
        self._end_task: Optional[asyncio.Task] = None
        self.last_error: Optional[Exception] = None

        engine.events.subscribe("message", self._on_message)
        engine.events.subscribe("workout_end_requested", self._on_end_requested)

        if voice is not None:
            voice.on_transcript = self.handle_transcript
            voice.on_spoken = self.echo_filter.record_spoken
            voice.on_error = self._on_voice_error
            voice.on_listening_change = self._on_listening_change

    async def run(self, routine: Routine) -> None:
        """Run one workout to completion."""
        if self.voice is not None:
            self.voice.start_continuous_listening()
        self.engine.start_workout(routine)
        await self.engine.finished.wait()
        await self.engine.sync.drain()

    # ── Input ─────────────────────────────────────────────────────────

    def handle_transcript(self, transcript: Transcript) -> None:
        """Spoken input: drop self-hearing echo, then hand to the engine."""
        if not transcript.is_final or not self.engine.active:
            return

        text = self.echo_filter.filter(transcript.text)
        if not text:
            logger.debug("Dropped as self-hearing: %r", transcript.text)
            return

        # Real user speech interrupts the coach
        if self.voice is not None and self.voice.is_speaking:
            self.voice.stop_speaking()
        self._submit(text)

    def handle_text(self, text: str) -> None:
        """Typed input. Never echo-filtered."""
        text = text.strip()
        if not text:
            return
        if text.lower() == "listen" and self.voice is not None:
            self.enable_listening()
            return
        if not self.engine.active:
            logger.info("No active workout, ignoring input: %r", text)
            return
        self._submit(text)

    def _submit(self, text: str) -> None:
        self.engine.events.emit("message", "user", text)
        try:
            self.engine.process_input(text)
        except NoActiveSessionError:
            logger.info("Session ended before input was handled: %r", text)

    # ── Output ────────────────────────────────────────────────────────

    def _on_message(self, role: str, text: str) -> None:
        if role != "ai" or self.voice is None:
            return
        self.echo_filter.record_spoken(text)
        self.voice.speak(text, self._speak_options)

    def _on_end_requested(self) -> None:
        if self._end_task is not None:
            return
        if self._confirm_end is not None and not self._confirm_end():
            logger.info("End of workout not confirmed, continuing")
            return
        self._end_task = asyncio.get_running_loop().create_task(self.engine.complete_workout(), name="end-workout")

    # ── Voice state ───────────────────────────────────────────────────

    def enable_listening(self) -> bool:
        if self.voice is None:
            return False
        self.last_error = None
        return self.voice.start_continuous_listening()

    def _on_listening_change(self, listening: bool) -> None:
        logger.info("Listening %s", "on" if listening else "off")

    def _on_voice_error(self, error: Exception) -> None:
        self.last_error = error
        if isinstance(error, MicrophonePermissionError):
            logger.error("Microphone permission denied: %s", error)
            self.engine.events.emit("message", "ai", MIC_DENIED_MESSAGE)
        else:
            logger.warning("Voice error, continuing with typed input: %s", error)
