"""Continuous microphone capture with energy-based utterance segmentation.

The PortAudio callback only copies frames into a deque. A processing thread
runs them through SpeechSegmenter; finished utterances are transcribed on
a short-lived worker thread so capture never stalls behind STT.

The microphone stays open while the coach is speaking so the user can
interrupt; echo of the coach's own voice is removed later by the
self-hearing filter, not here.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable, Optional

import numpy as np

from repcoach.config import (
    AUDIO_INPUT_DEVICE,
    LISTEN_ENERGY_THRESHOLD,
    LISTEN_MAX_SEGMENT,
    LISTEN_MIN_SEGMENT,
    LISTEN_SILENCE_DURATION,
)
from repcoach.errors import MicrophonePermissionError, VoiceUnavailableError
from repcoach.perception.stt import DEFAULT_SAMPLE_RATE, STTProvider

logger = logging.getLogger("repcoach.listener")

CHUNK_SAMPLES = 1280  # 80ms at 16kHz

# Whisper invents these on near-silent audio
WHISPER_HALLUCINATIONS = {
    "thank you",
    "thanks for watching",
    "thank you for watching",
    "you",
    "bye",
    "the end",
}


def rms(frame: np.ndarray) -> float:
    return float(np.sqrt(np.mean(frame**2))) if len(frame) else 0.0


class SpeechSegmenter:
    """Splits a stream of float32 frames into utterances.

    idle -> accumulating on a frame above the energy threshold;
    accumulating -> idle after `silence_duration` of quiet frames or
    `max_segment` seconds, returning the utterance. Time is counted in
    samples, so the segmenter is deterministic.
    """

    def __init__(
        self,
        energy_threshold: float = LISTEN_ENERGY_THRESHOLD,
        silence_duration: float = LISTEN_SILENCE_DURATION,
        max_segment: float = LISTEN_MAX_SEGMENT,
        min_segment: float = LISTEN_MIN_SEGMENT,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        min_speech_ratio: float = 0.3,
    ):
        self.energy_threshold = energy_threshold
        self._silence_samples = int(silence_duration * sample_rate)
        self._max_samples = int(max_segment * sample_rate)
        self._min_samples = int(min_segment * sample_rate)
        self._min_speech_ratio = min_speech_ratio
        self._frames: list[np.ndarray] = []
        self._samples = 0
        self._quiet_samples = 0
        self.state = "idle"

    def reset(self) -> None:
        self._frames = []
        self._samples = 0
        self._quiet_samples = 0
        self.state = "idle"

    def process(self, frame: np.ndarray) -> Optional[np.ndarray]:
        """Feed one frame. Returns a finished utterance or None."""
        energy = rms(frame)

        if self.state == "idle":
            if energy >= self.energy_threshold:
                self.state = "accumulating"
                self._frames = [frame.copy()]
                self._samples = len(frame)
                self._quiet_samples = 0
                logger.debug("Speech onset (energy=%.4f)", energy)
            return None

        self._frames.append(frame.copy())
        self._samples += len(frame)
        if energy < self.energy_threshold:
            self._quiet_samples += len(frame)
        else:
            self._quiet_samples = 0

        if self._quiet_samples >= self._silence_samples or self._samples >= self._max_samples:
            return self._finish()
        return None

    def _finish(self) -> Optional[np.ndarray]:
        frames = self._frames
        self.reset()

        audio = np.concatenate(frames)
        if len(audio) < self._min_samples:
            logger.debug("Segment too short (%d samples), skipping", len(audio))
            return None

        # Single clicks and bumps pass onset but are mostly quiet frames
        loud = sum(1 for f in frames if rms(f) >= self.energy_threshold)
        if loud / len(frames) < self._min_speech_ratio and len(frames) > 3:
            logger.debug("Low speech density (%d/%d frames), skipping", loud, len(frames))
            return None
        return audio


def _is_permission_error(exc: Exception) -> bool:
    message = str(exc).lower()
    return isinstance(exc, PermissionError) or "permission" in message or "not authorized" in message or "denied" in message


class MicListener:
    """Microphone -> utterance -> STT -> on_transcript(text)."""

    def __init__(
        self,
        stt: STTProvider,
        segmenter: Optional[SpeechSegmenter] = None,
        device: Optional[int] = AUDIO_INPUT_DEVICE,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
    ):
        self._stt = stt
        self._segmenter = segmenter or SpeechSegmenter(sample_rate=sample_rate)
        self._device = device
        self._sample_rate = sample_rate
        self._stream = None
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._buffer: deque[np.ndarray] = deque(maxlen=int(sample_rate * 30 / CHUNK_SAMPLES))

        # Called on background threads
        self.on_transcript: Optional[Callable[[str], None]] = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Open the microphone. Raises MicrophonePermissionError or VoiceUnavailableError."""
        if self._running:
            return
        try:
            import sounddevice as sd
        except OSError as e:
            raise VoiceUnavailableError(f"PortAudio not available: {e}") from e

        try:
            self._stream = sd.InputStream(
                device=self._device,
                samplerate=self._sample_rate,
                channels=1,
                dtype="float32",
                blocksize=CHUNK_SAMPLES,
                callback=self._audio_callback,
            )
            self._stream.start()
        except Exception as e:
            self._stream = None
            if _is_permission_error(e):
                raise MicrophonePermissionError(f"Microphone access denied: {e}") from e
            raise VoiceUnavailableError(f"Failed to open audio stream: {e}") from e

        self._segmenter.reset()
        self._running = True
        self._thread = threading.Thread(target=self._processing_loop, daemon=True, name="mic-processor")
        self._thread.start()
        logger.info("Listening (%dHz mono, device=%s)", self._sample_rate, self._device)

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status):
        """PortAudio thread. Keep minimal."""
        if status:
            logger.debug("Audio status: %s", status)
        self._buffer.append(indata[:, 0].copy())

    def _processing_loop(self):
        while self._running:
            try:
                frame = self._buffer.popleft()
            except IndexError:
                time.sleep(0.02)
                continue

            utterance = self._segmenter.process(frame)
            if utterance is not None:
                threading.Thread(target=self._transcribe, args=(utterance,), daemon=True, name="stt").start()

    def _transcribe(self, audio: np.ndarray) -> None:
        result = self._stt.transcribe(audio, self._sample_rate)
        if result is None:
            return
        text = result.text.strip()
        if text.lower().strip(" .!?") in WHISPER_HALLUCINATIONS:
            logger.debug("Dropping likely hallucination: %r", text)
            return
        if text and self.on_transcript:
            self.on_transcript(text)

    def stop(self) -> None:
        self._running = False
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except Exception as e:
                logger.warning("Error closing audio stream: %s", e)
            self._stream = None
        if self._thread is not None:
            self._thread.join(timeout=2)
            self._thread = None
        self._buffer.clear()
        logger.info("Listener stopped")
