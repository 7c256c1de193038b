"""Self-hearing suppression for an always-open microphone.

While the coach speaks, the microphone keeps listening so the user can
answer or interrupt. The recognizer therefore also hears the coach ("rest
for thirty seconds") and would happily feed "thirty" or "rest" back in as a
command. We keep a short rolling buffer of what was just spoken and subtract
its words from every incoming transcript.

Matching is a plain word-set subtraction. A genuine user word that the coach
also just said is dropped too: a one-word answer like "ten" right after the
coach said "ten" is indistinguishable from echo and comes back empty.
"""

import logging
import re
import time
from collections import deque
from typing import Callable, NamedTuple

logger = logging.getLogger("repcoach.self_hearing")

DEFAULT_WINDOW_SECONDS = 3.0

_WORD_RE = re.compile(r"[a-z0-9']+")


def _words(text: str) -> list[str]:
    """Lowercase, punctuation-stripped words (apostrophes kept, "don't" stays whole)."""
    return [w.strip("'") for w in _WORD_RE.findall(text.lower()) if w.strip("'")]


class SpokenSentence(NamedTuple):
    normalized_text: str
    spoken_at: float


class SelfHearingFilter:
    """Strips words the coach itself spoke within the last few seconds.

    Usage:
        filt = SelfHearingFilter()
        filt.record_spoken("Rest for thirty seconds")   # whenever TTS speaks
        user_text = filt.filter(transcript)              # for every transcript
        if not user_text: ...                            # pure echo, ignore

    Only touched from the event loop thread, so the buffer is purged lazily
    on each access instead of by a background sweep.
    """

    def __init__(self, window_seconds: float = DEFAULT_WINDOW_SECONDS, clock: Callable[[], float] = time.monotonic):
        self._window = window_seconds
        self._clock = clock
        self._buffer: deque[SpokenSentence] = deque()

    def record_spoken(self, text: str) -> None:
        if not text or not text.strip():
            return
        self._buffer.append(SpokenSentence(text.lower(), self._clock()))

    def _purge(self) -> None:
        cutoff = self._clock() - self._window
        while self._buffer and self._buffer[0].spoken_at < cutoff:
            self._buffer.popleft()

    def __len__(self) -> int:
        self._purge()
        return len(self._buffer)

    def clear(self) -> None:
        self._buffer.clear()

    def filter(self, transcript: str) -> str:
        """Return the transcript minus any recently spoken words.

        Unchanged when nothing was spoken recently. Empty string means the
        whole transcript was echo; callers must treat it as no input.
        """
        self._purge()
        if not self._buffer:
            return transcript

        spoken_words: set[str] = set()
        for sentence in self._buffer:
            spoken_words.update(_words(sentence.normalized_text))

        heard = _words(transcript or "")
        kept = [w for w in heard if w not in spoken_words]

        if len(kept) != len(heard):
            logger.debug(
                "Self-hearing removed %d/%d words: '%s' -> '%s'",
                len(heard) - len(kept),
                len(heard),
                transcript,
                " ".join(kept),
            )
        return " ".join(kept)
