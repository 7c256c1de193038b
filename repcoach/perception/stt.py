"""Speech-to-text for short workout utterances.

Groq's hosted Whisper is the primary backend; a local faster-whisper model
takes over per request when the API fails or no key is configured. Rep
counts and one-word commands are short, so the prompt biases Whisper
towards numbers and the command vocabulary.
"""

import io
import logging
import struct
import time
from dataclasses import dataclass
from typing import Optional, Protocol

import numpy as np

from repcoach.config import (
    GROQ_API_KEY,
    GROQ_WHISPER_MODEL,
    STT_FALLBACK_ENABLED,
    STT_PROVIDER,
    WHISPER_MODEL,
    WHISPER_PROMPT,
)

logger = logging.getLogger("repcoach.stt")

DEFAULT_SAMPLE_RATE = 16000


@dataclass
class STTResult:
    text: str
    language: str
    duration_ms: float  # time spent transcribing


class STTProvider(Protocol):
    def transcribe(self, audio_data: np.ndarray, sample_rate: int = DEFAULT_SAMPLE_RATE) -> Optional[STTResult]:
        """Transcribe float32 mono audio. Returns None on failure."""
        ...


class LocalWhisperProvider:
    """faster-whisper on CPU. The model loads on first use."""

    def __init__(self, model_name: str = WHISPER_MODEL):
        self._model_name = model_name
        self._model = None

    def _ensure_model(self) -> bool:
        if self._model is not None:
            return True
        try:
            from faster_whisper import WhisperModel

            logger.info("Loading Whisper model (%s) via faster-whisper...", self._model_name)
            self._model = WhisperModel(self._model_name, device="cpu", compute_type="int8")
            return True
        except Exception as e:
            logger.error("Failed to load Whisper model: %s", e)
            return False

    def transcribe(self, audio_data: np.ndarray, sample_rate: int = DEFAULT_SAMPLE_RATE) -> Optional[STTResult]:
        if not self._ensure_model():
            return None

        start = time.monotonic()
        try:
            segments, info = self._model.transcribe(
                audio_data,
                beam_size=1,  # short utterances, latency matters more than accuracy
                language="en",
                vad_filter=True,
                initial_prompt=WHISPER_PROMPT,
            )
            text = " ".join(seg.text.strip() for seg in segments).strip()
            duration_ms = (time.monotonic() - start) * 1000
            logger.info("Transcription (local, %.0fms): %s", duration_ms, text)
            return STTResult(text=text, language=getattr(info, "language", "en") or "en", duration_ms=duration_ms)
        except Exception as e:
            logger.error("Local transcription failed: %s", e)
            return None


class GroqWhisperProvider:
    def __init__(self, api_key: str, model: str = GROQ_WHISPER_MODEL):
        from groq import Groq

        self._client = Groq(api_key=api_key)
        self._model = model
        logger.info("STT: Groq API (model: %s)", model)

    def transcribe(self, audio_data: np.ndarray, sample_rate: int = DEFAULT_SAMPLE_RATE) -> Optional[STTResult]:
        start = time.monotonic()
        try:
            response = self._client.audio.transcriptions.create(
                file=("utterance.wav", _audio_to_wav(audio_data, sample_rate)),
                model=self._model,
                language="en",
                response_format="json",
                prompt=WHISPER_PROMPT,
            )
            text = response.text.strip() if response.text else ""
            duration_ms = (time.monotonic() - start) * 1000
            logger.info("Transcription (groq, %.0fms): %s", duration_ms, text)
            return STTResult(text=text, language="en", duration_ms=duration_ms)
        except Exception as e:
            logger.error("Groq transcription failed: %s", e)
            return None


class FallbackSTTProvider:
    """Tries the primary provider, then the secondary, per request."""

    def __init__(self, primary: STTProvider, fallback: STTProvider):
        self._primary = primary
        self._fallback = fallback

    def transcribe(self, audio_data: np.ndarray, sample_rate: int = DEFAULT_SAMPLE_RATE) -> Optional[STTResult]:
        result = self._primary.transcribe(audio_data, sample_rate)
        if result is not None:
            return result
        logger.warning("Primary STT failed, falling back to secondary provider")
        return self._fallback.transcribe(audio_data, sample_rate)


def create_stt_provider() -> STTProvider:
    """Build the configured provider chain."""
    if STT_PROVIDER == "groq" and GROQ_API_KEY:
        try:
            primary = GroqWhisperProvider(api_key=GROQ_API_KEY)
            if STT_FALLBACK_ENABLED:
                return FallbackSTTProvider(primary, LocalWhisperProvider())
            return primary
        except Exception as e:
            logger.error("Failed to initialize Groq STT: %s. Falling back to local.", e)

    return LocalWhisperProvider()


def _audio_to_wav(audio: np.ndarray, sample_rate: int) -> bytes:
    """float32 mono samples -> 16-bit PCM WAV bytes."""
    pcm = (audio * 32767).clip(-32768, 32767).astype(np.int16)
    data_size = len(pcm) * 2
    buf = io.BytesIO()
    buf.write(b"RIFF")
    buf.write(struct.pack("<I", 36 + data_size))
    buf.write(b"WAVE")
    # fmt chunk: PCM, mono, 16-bit
    buf.write(b"fmt ")
    buf.write(struct.pack("<IHHIIHH", 16, 1, 1, sample_rate, sample_rate * 2, 2, 16))
    buf.write(b"data")
    buf.write(struct.pack("<I", data_size))
    buf.write(pcm.tobytes())
    return buf.getvalue()
