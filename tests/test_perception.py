"""Tests for the voice stack that run without audio hardware."""

import asyncio
import threading
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from repcoach.errors import MicrophonePermissionError, VoiceUnavailableError
from repcoach.perception.listener import MicListener, SpeechSegmenter, rms
from repcoach.perception.stt import STTResult
from repcoach.perception.tts import SpeakOptions, Speaker, clean_text_for_speech
from repcoach.perception.voice import LocalVoiceDriver, Transcript

FRAME = 1280


def loud(n=1):
    return [np.full(FRAME, 0.1, dtype=np.float32) for _ in range(n)]


def quiet(n=1):
    return [np.zeros(FRAME, dtype=np.float32) for _ in range(n)]


def feed(segmenter, frames):
    """Feed frames, return the list of utterances produced."""
    out = []
    for frame in frames:
        utterance = segmenter.process(frame)
        if utterance is not None:
            out.append(utterance)
    return out


# ── Speech text cleanup ───────────────────────────────────────────────


class TestCleanTextForSpeech:
    def test_announcement(self):
        text = "🔥 Next exercise: **Squat** (3 sets × 10 reps, 60 seconds rest)."
        assert clean_text_for_speech(text) == "Next exercise: Squat (3 sets by 10 reps, 60 seconds rest)."

    def test_rep_progress_checkmark(self):
        assert clean_text_for_speech("10 left ✓ Keep pushing!") == "10 left Keep pushing!"

    def test_variation_selector_removed(self):
        assert clean_text_for_speech("⏭️ Skipping to next exercise...") == "Skipping to next exercise..."

    def test_italic_and_links(self):
        assert clean_text_for_speech("*slow* down, see [form guide](https://x.test)") == "slow down, see form guide"

    def test_empty(self):
        assert clean_text_for_speech("") == ""
        assert clean_text_for_speech("🎉⭐") == ""


# ── Utterance segmentation ────────────────────────────────────────────


class TestSpeechSegmenter:
    def _segmenter(self, **kwargs):
        params = dict(energy_threshold=0.02, silence_duration=0.5, max_segment=5.0, min_segment=0.3, sample_rate=16000)
        params.update(kwargs)
        return SpeechSegmenter(**params)

    def test_rms(self):
        assert rms(np.full(4, 0.5, dtype=np.float32)) == pytest.approx(0.5)
        assert rms(np.array([], dtype=np.float32)) == 0.0

    def test_silence_stays_idle(self):
        seg = self._segmenter()
        assert feed(seg, quiet(20)) == []
        assert seg.state == "idle"

    def test_speech_then_silence_yields_utterance(self):
        seg = self._segmenter()
        out = feed(seg, loud(10) + quiet(7))
        assert len(out) == 1
        assert len(out[0]) == 17 * FRAME
        assert seg.state == "idle"

    def test_not_finished_before_silence_duration(self):
        seg = self._segmenter()
        assert feed(seg, loud(10) + quiet(6)) == []
        assert seg.state == "accumulating"

    def test_speech_resumes_resets_silence(self):
        seg = self._segmenter()
        out = feed(seg, loud(5) + quiet(5) + loud(2) + quiet(6))
        assert out == []
        assert len(feed(seg, quiet(1))) == 1

    def test_max_segment_cuts_long_speech(self):
        seg = self._segmenter(max_segment=1.0)
        frames = loud(13)
        assert feed(seg, frames[:12]) == []
        assert len(feed(seg, frames[12:])) == 1

    def test_short_segment_dropped(self):
        seg = self._segmenter(min_segment=1.0)
        assert feed(seg, loud(2) + quiet(7)) == []
        assert seg.state == "idle"

    def test_click_dropped_by_density(self):
        seg = self._segmenter()
        assert feed(seg, loud(1) + quiet(7)) == []


# ── Microphone listener ───────────────────────────────────────────────


class TestMicListener:
    def _listener(self, text):
        stt = MagicMock()
        stt.transcribe.return_value = STTResult(text=text, language="en", duration_ms=10.0) if text is not None else None
        listener = MicListener(stt)
        listener.on_transcript = MagicMock()
        return listener

    def test_transcript_delivered(self):
        listener = self._listener(" five ")
        listener._transcribe(np.zeros(FRAME, dtype=np.float32))
        listener.on_transcript.assert_called_once_with("five")

    @pytest.mark.parametrize("text", ["Thank you.", "you", "Thanks for watching!"])
    def test_hallucinations_dropped(self, text):
        listener = self._listener(text)
        listener._transcribe(np.zeros(FRAME, dtype=np.float32))
        listener.on_transcript.assert_not_called()

    def test_failed_transcription_dropped(self):
        listener = self._listener(None)
        listener._transcribe(np.zeros(FRAME, dtype=np.float32))
        listener.on_transcript.assert_not_called()

    def test_permission_denied_on_open(self):
        sd = SimpleNamespace(InputStream=MagicMock(side_effect=Exception("Error opening InputStream: Permission denied")))
        listener = MicListener(MagicMock())
        with patch.dict("sys.modules", {"sounddevice": sd}):
            with pytest.raises(MicrophonePermissionError):
                listener.start()
        assert not listener.running

    def test_other_device_error(self):
        sd = SimpleNamespace(InputStream=MagicMock(side_effect=Exception("Invalid number of channels")))
        listener = MicListener(MagicMock())
        with patch.dict("sys.modules", {"sounddevice": sd}):
            with pytest.raises(VoiceUnavailableError) as exc:
                listener.start()
        assert not isinstance(exc.value, MicrophonePermissionError)

    def test_processing_loop_hands_utterance_to_stt(self):
        utterance = np.zeros(FRAME, dtype=np.float32)
        listener = MicListener(MagicMock(), segmenter=MagicMock())

        def process(frame):
            listener._running = False
            return utterance

        listener._segmenter.process.side_effect = process
        listener._buffer.append(loud()[0])
        listener._running = True
        with patch("repcoach.perception.listener.threading.Thread") as thread:
            listener._processing_loop()
        thread.assert_called_once()
        assert thread.call_args.kwargs["args"] == (utterance,)
        thread.return_value.start.assert_called_once()


# ── Speaker ───────────────────────────────────────────────────────────


class TestSpeaker:
    def test_speak_queues_cleaned_text(self):
        speaker = Speaker()
        speaker.speak("🔥 **Go!**", SpeakOptions(rate=1.2))
        text, options = speaker._queue.get_nowait()
        assert text == "Go!"
        assert options.rate == 1.2

    def test_emoji_only_not_queued(self):
        speaker = Speaker()
        speaker.speak("🎉")
        assert speaker._queue.empty()

    def test_interrupt_drops_queue(self):
        speaker = Speaker()
        speaker.speak("one")
        speaker.speak("two")
        speaker.interrupt()
        assert speaker._queue.empty()
        assert not speaker.is_speaking

    def test_worker_sets_rate_and_volume_only(self):
        spoken = threading.Event()
        engine = MagicMock()
        engine.runAndWait.side_effect = spoken.set
        pyttsx3 = SimpleNamespace(init=MagicMock(return_value=engine))
        speaker = Speaker(words_per_minute=100)
        speaker.on_utterance_start = MagicMock()

        with patch.dict("sys.modules", {"pyttsx3": pyttsx3}):
            assert speaker.start(timeout=1)
            speaker.speak("Rest", SpeakOptions(rate=1.5, volume=2.0))
            assert spoken.wait(timeout=2)
            speaker.stop()

        assert [c.args for c in engine.setProperty.call_args_list] == [("rate", 150), ("volume", 1.0)]
        engine.say.assert_called_once_with("Rest")
        speaker.on_utterance_start.assert_called_once_with("Rest")
        assert not speaker.is_speaking


# ── Voice driver ──────────────────────────────────────────────────────


class TestLocalVoiceDriver:
    def _driver(self, loop, listener=None):
        speaker = MagicMock()
        listener = listener if listener is not None else MagicMock()
        return LocalVoiceDriver(loop, speaker, listener, min_transcript_length=2), speaker, listener

    def test_transcripts_posted_to_loop(self):
        received = []

        async def scenario():
            driver, _, listener = self._driver(asyncio.get_running_loop())
            driver.on_transcript = received.append
            assert driver.start_continuous_listening() is True
            listener.on_transcript("  five ")
            listener.on_transcript("5")  # too short
            await asyncio.sleep(0)

        asyncio.run(scenario())
        assert received == [Transcript(text="five", is_final=True)]

    def test_transcripts_ignored_when_not_listening(self):
        received = []

        async def scenario():
            driver, _, listener = self._driver(asyncio.get_running_loop())
            driver.on_transcript = received.append
            listener.on_transcript("five")
            await asyncio.sleep(0)

        asyncio.run(scenario())
        assert received == []

    def test_permission_error_reported_and_listening_stays_off(self):
        errors, changes = [], []

        async def scenario():
            listener = MagicMock()
            listener.start.side_effect = MicrophonePermissionError("denied")
            driver, _, _ = self._driver(asyncio.get_running_loop(), listener)
            driver.on_error = errors.append
            driver.on_listening_change = changes.append
            assert driver.start_continuous_listening() is False
            listener.on_transcript("five")
            await asyncio.sleep(0)

        asyncio.run(scenario())
        assert len(errors) == 1
        assert isinstance(errors[0], MicrophonePermissionError)
        assert changes == []

    def test_no_recognizer(self):
        errors = []

        async def scenario():
            driver = LocalVoiceDriver(asyncio.get_running_loop(), MagicMock(), None)
            driver.on_error = errors.append
            assert not driver.can_listen
            assert driver.start_continuous_listening() is False
            await asyncio.sleep(0)

        asyncio.run(scenario())
        assert isinstance(errors[0], VoiceUnavailableError)

    def test_listening_change_events(self):
        changes = []

        async def scenario():
            driver, _, listener = self._driver(asyncio.get_running_loop())
            driver.on_listening_change = changes.append
            driver.start_continuous_listening()
            driver.stop_listening()
            driver.stop_listening()
            await asyncio.sleep(0)
            listener.stop.assert_called()

        asyncio.run(scenario())
        assert changes == [True, False]

    def test_spoken_text_reported(self):
        spoken = []

        async def scenario():
            driver, speaker, _ = self._driver(asyncio.get_running_loop())
            driver.on_spoken = spoken.append
            speaker.on_utterance_start("Rest for 30 seconds.")
            await asyncio.sleep(0)

        asyncio.run(scenario())
        assert spoken == ["Rest for 30 seconds."]

    def test_speak_and_barge_in_delegate(self):
        async def scenario():
            driver, speaker, _ = self._driver(asyncio.get_running_loop())
            driver.speak("Go!")
            driver.stop_speaking()
            speaker.speak.assert_called_once_with("Go!", None)
            speaker.interrupt.assert_called_once()

        asyncio.run(scenario())
