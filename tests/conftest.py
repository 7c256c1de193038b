"""Shared fixtures.

Voice hardware libraries (sounddevice, pyttsx3, faster_whisper, groq) are
imported lazily inside the classes that use them, so nothing here needs to
stub them out for headless runs.
"""

import random

import pytest

from repcoach.coach.models import Exercise, PlannedSet, Routine
from repcoach.phrases import PhraseBook
from repcoach.utils.json_store import JsonDocument


@pytest.fixture
def tmp_doc(tmp_path):
    """Factory for JsonDocuments inside the test's tmp dir."""

    def _make(name: str = "doc.json") -> JsonDocument:
        return JsonDocument(str(tmp_path / name))

    return _make


@pytest.fixture
def phrases():
    """Default phrases with a fixed random seed."""
    return PhraseBook(rng=random.Random(7))


def rep_exercise(title="Push Up", template_id="PU", sets=2, reps=10, rest=30, notes="") -> Exercise:
    return Exercise(
        title=title,
        exercise_template_id=template_id,
        sets=[PlannedSet(reps=reps) for _ in range(sets)],
        rest_seconds=rest,
        notes=notes,
    )


def timed_exercise(title="Plank", template_id="PL", sets=1, seconds=20, rest=30) -> Exercise:
    return Exercise(
        title=title,
        exercise_template_id=template_id,
        sets=[PlannedSet(duration_seconds=seconds) for _ in range(sets)],
        rest_seconds=rest,
    )


def routine_of(*exercises: Exercise, title="Test Day") -> Routine:
    return Routine(title=title, exercises=list(exercises), id="r-1")
