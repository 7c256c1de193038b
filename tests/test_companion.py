"""Tests for companion.py: voice wiring, self-hearing filtering and barge-in."""

import asyncio
import random

from repcoach.companion import MIC_DENIED_MESSAGE, WorkoutCompanion
from repcoach.errors import MicrophonePermissionError, VoiceUnavailableError
from repcoach.coach.engine import WorkoutEngine
from repcoach.coach.events import EventHub
from repcoach.coach.state import AwaitingSetStart, WorkoutComplete
from repcoach.perception.voice import Transcript
from repcoach.phrases import PhraseBook

from conftest import rep_exercise, routine_of


def _run(coro):
    return asyncio.run(coro)


class FakeVoice:
    """Stands in for LocalVoiceDriver; records what the coach does with it."""

    def __init__(self, can_listen=True):
        self.on_transcript = None
        self.on_listening_change = None
        self.on_error = None
        self.on_spoken = None
        self.is_speaking = False
        self.spoken = []
        self.interruptions = 0
        self.listen_calls = 0
        self.stop_calls = 0
        self._can_listen = can_listen

    def start_continuous_listening(self):
        self.listen_calls += 1
        return self._can_listen

    def stop_listening(self):
        self.stop_calls += 1

    def speak(self, text, options=None):
        self.spoken.append(text)

    def stop_speaking(self):
        self.interruptions += 1
        self.is_speaking = False


def _companion(voice=None, confirm_end=None):
    engine = WorkoutEngine(
        events=EventHub(),
        phrases=PhraseBook(rng=random.Random(0)),
        voice=voice,
        announce_delay=0,
        transition_delay=0,
        tick_seconds=0,
    )
    companion = WorkoutCompanion(engine, voice=voice, confirm_end=confirm_end)
    messages = []
    engine.events.subscribe("message", lambda role, text: messages.append((role, text)))
    return companion, engine, messages


async def _started(engine, routine=None):
    engine.start_workout(routine or routine_of(rep_exercise(sets=1, reps=10)))
    await engine.wait_idle()


# ── Wiring ────────────────────────────────────────────────────────────


class TestWiring:
    def test_voice_callbacks_installed(self):
        voice = FakeVoice()
        companion, _, _ = _companion(voice)
        assert voice.on_transcript == companion.handle_transcript
        assert voice.on_spoken == companion.echo_filter.record_spoken

    def test_coach_messages_are_spoken_and_remembered(self):
        voice = FakeVoice()
        companion, engine, _ = _companion(voice)

        _run(_started(engine))
        assert any("Push Up" in text for text in voice.spoken)
        assert len(companion.echo_filter) == len(voice.spoken)

    def test_without_voice_nothing_spoken(self):
        companion, engine, messages = _companion()
        _run(_started(engine))
        assert messages
        assert len(companion.echo_filter) == 0


# ── Spoken input ──────────────────────────────────────────────────────


class TestSpokenInput:
    def test_pure_echo_dropped(self):
        voice = FakeVoice()
        companion, engine, messages = _companion(voice)

        async def scenario():
            await _started(engine)
            count = len(messages)
            companion.handle_transcript(Transcript("30 seconds rest"))
            return count

        count = _run(scenario())
        assert len(messages) == count
        assert engine.current_rep == 0
        assert isinstance(engine.state, AwaitingSetStart)

    def test_user_speech_interrupts_coach(self):
        voice = FakeVoice()
        companion, engine, messages = _companion(voice)

        async def scenario():
            await _started(engine)
            voice.is_speaking = True
            companion.handle_transcript(Transcript("five"))

        _run(scenario())
        assert voice.interruptions == 1
        assert engine.current_rep == 5
        assert ("user", "five") in messages

    def test_echo_does_not_interrupt(self):
        voice = FakeVoice()
        companion, engine, _ = _companion(voice)

        async def scenario():
            await _started(engine)
            voice.is_speaking = True
            companion.handle_transcript(Transcript("push up"))

        _run(scenario())
        assert voice.interruptions == 0

    def test_partial_transcripts_ignored(self):
        voice = FakeVoice()
        companion, engine, _ = _companion(voice)

        async def scenario():
            await _started(engine)
            companion.handle_transcript(Transcript("five", is_final=False))

        _run(scenario())
        assert engine.current_rep == 0

    def test_ignored_before_start(self):
        companion, engine, messages = _companion(FakeVoice())
        companion.handle_transcript(Transcript("five"))
        assert messages == []


# ── Typed input ───────────────────────────────────────────────────────


class TestTypedInput:
    def test_typed_text_is_not_echo_filtered(self):
        voice = FakeVoice()
        companion, engine, _ = _companion(voice)

        async def scenario():
            await _started(engine, routine_of(rep_exercise(sets=2, reps=10)))
            # "10" was just spoken in the announcement
            companion.handle_text("10")

        _run(scenario())
        assert engine.log.exercises[0].sets[0].reps == 10

    def test_blank_text_ignored(self):
        companion, engine, messages = _companion()

        async def scenario():
            await _started(engine)
            count = len(messages)
            companion.handle_text("   ")
            return count

        count = _run(scenario())
        assert count > 0
        assert len(messages) == count

    def test_text_after_workout_is_ignored(self):
        companion, engine, messages = _companion()

        async def scenario():
            await _started(engine, routine_of(rep_exercise(sets=1, reps=1)))
            companion.handle_text("1")
            await engine.wait_idle()
            count = len(messages)
            companion.handle_text("2")
            return count

        count = _run(scenario())
        assert count > 0
        assert len(messages) == count


# ── Ending the workout ────────────────────────────────────────────────


class TestEndWorkout:
    def test_end_confirmed(self):
        voice = FakeVoice()
        companion, engine, _ = _companion(voice, confirm_end=lambda: True)

        async def scenario():
            await _started(engine)
            companion.handle_text("end workout")
            await asyncio.wait_for(engine.finished.wait(), timeout=1)

        _run(scenario())
        assert isinstance(engine.state, WorkoutComplete)
        assert voice.stop_calls == 1
        assert voice.spoken[-1].startswith("🎉 **Workout Complete!**")

    def test_end_declined(self):
        companion, engine, _ = _companion(confirm_end=lambda: False)

        async def scenario():
            await _started(engine)
            companion.handle_text("stop workout")
            await asyncio.sleep(0)

        _run(scenario())
        assert isinstance(engine.state, AwaitingSetStart)
        assert not engine.finished.is_set()

    def test_repeated_end_requests_complete_once(self):
        companion, engine, messages = _companion()

        async def scenario():
            await _started(engine)
            companion.handle_text("end workout")
            companion.handle_text("finish workout")
            await asyncio.wait_for(engine.finished.wait(), timeout=1)

        _run(scenario())
        summaries = [text for role, text in messages if role == "ai" and "Workout Complete" in text]
        assert len(summaries) == 1


# ── Voice errors ──────────────────────────────────────────────────────


class TestVoiceErrors:
    def test_mic_denied_is_surfaced(self):
        voice = FakeVoice()
        companion, engine, messages = _companion(voice)

        voice.on_error(MicrophonePermissionError("denied"))
        assert ("ai", MIC_DENIED_MESSAGE) in messages
        assert voice.spoken[-1] == MIC_DENIED_MESSAGE
        assert isinstance(companion.last_error, MicrophonePermissionError)

    def test_listen_re_enables_voice(self):
        voice = FakeVoice()
        companion, _, _ = _companion(voice)

        voice.on_error(MicrophonePermissionError("denied"))
        companion.handle_text("listen")
        assert voice.listen_calls == 1
        assert companion.last_error is None

    def test_other_errors_stay_quiet(self):
        voice = FakeVoice()
        companion, _, messages = _companion(voice)

        voice.on_error(VoiceUnavailableError("no recognizer"))
        assert messages == []
        assert isinstance(companion.last_error, VoiceUnavailableError)


# ── Full run ──────────────────────────────────────────────────────────


class TestRun:
    def test_run_until_finished(self):
        voice = FakeVoice()
        companion, engine, _ = _companion(voice)
        routine = routine_of(rep_exercise(sets=1, reps=2))

        async def scenario():
            session = asyncio.create_task(companion.run(routine))
            await asyncio.sleep(0)
            await engine.wait_idle()
            companion.handle_text("1")
            companion.handle_text("2")
            await asyncio.wait_for(session, timeout=1)

        _run(scenario())
        assert voice.listen_calls == 1
        assert engine.finished.is_set()
        assert engine.summary().total_reps == 2
