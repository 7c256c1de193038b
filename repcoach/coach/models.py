"""Routine (input) and workout log (output) data model.

A Routine is owned by the caller and never mutated by the coach. The
WorkoutLog is built up set by set during a session and serialised as a full
snapshot for the tracker on every sync.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from repcoach.config import (
    DEFAULT_DURATION_SECONDS,
    DEFAULT_REPS,
    DEFAULT_REST_SECONDS,
    DEFAULT_SETS,
)


def _non_negative_int(value: Any) -> Optional[int]:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number >= 0 else None


def _positive_int(value: Any) -> Optional[int]:
    return _non_negative_int(value) or None


def _optional_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


# ── Routine ───────────────────────────────────────────────────────────


@dataclass
class PlannedSet:
    reps: Optional[int] = None
    duration_seconds: Optional[int] = None
    weight_kg: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict) -> "PlannedSet":
        reps = _positive_int(data.get("reps"))
        if reps is None and isinstance(data.get("rep_range"), dict):
            # Hevy rep ranges: coach towards the top of the range
            reps = _positive_int(data["rep_range"].get("end")) or _positive_int(data["rep_range"].get("start"))
        return cls(
            reps=reps,
            duration_seconds=_positive_int(data.get("duration_seconds")),
            weight_kg=_optional_float(data.get("weight_kg")),
        )


@dataclass
class Exercise:
    title: str
    exercise_template_id: str = ""
    sets: list[PlannedSet] = field(default_factory=list)
    rest_seconds: int = DEFAULT_REST_SECONDS
    notes: str = ""
    weight_kg: Optional[float] = None

    @property
    def total_sets(self) -> int:
        return len(self.sets) or DEFAULT_SETS

    @property
    def first_set(self) -> PlannedSet:
        return self.sets[0] if self.sets else PlannedSet()

    @property
    def is_timed(self) -> bool:
        """Timed (hold) exercise when the first planned set carries a positive duration."""
        return bool(self.first_set.duration_seconds)

    @property
    def target_reps(self) -> int:
        return self.first_set.reps or DEFAULT_REPS

    @property
    def target_seconds(self) -> int:
        return self.first_set.duration_seconds or DEFAULT_DURATION_SECONDS

    @property
    def working_weight(self) -> Optional[float]:
        return self.first_set.weight_kg if self.first_set.weight_kg is not None else self.weight_kg

    @classmethod
    def from_dict(cls, data: dict) -> "Exercise":
        sets = [PlannedSet.from_dict(s) for s in data.get("sets") or [] if isinstance(s, dict)]
        rest = _non_negative_int(data.get("rest_seconds"))
        return cls(
            title=data.get("title") or data.get("exercise_title") or data.get("exercise_template_id") or "Exercise",
            exercise_template_id=str(data.get("exercise_template_id") or ""),
            sets=sets,
            rest_seconds=rest if rest is not None else DEFAULT_REST_SECONDS,
            notes=(data.get("notes") or "").strip(),
            weight_kg=_optional_float(data.get("weight_kg")),
        )


@dataclass
class Routine:
    title: str
    exercises: list[Exercise] = field(default_factory=list)
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Routine":
        """Build from tracker JSON: either {"routine": {...}} or the bare routine object."""
        if isinstance(data.get("routine"), dict):
            data = data["routine"]
        elif isinstance(data.get("routine"), list) and data["routine"]:
            data = data["routine"][0]
        return cls(
            title=data.get("title") or data.get("name") or "Workout",
            exercises=[Exercise.from_dict(e) for e in data.get("exercises") or []],
            id=str(data["id"]) if data.get("id") is not None else None,
        )


# ── Workout log ───────────────────────────────────────────────────────


@dataclass
class SetEntry:
    reps: Optional[int] = None
    weight_kg: Optional[float] = None
    duration_seconds: Optional[int] = None

    def to_payload(self) -> dict:
        return {
            "type": "normal",
            "weight_kg": self.weight_kg,
            "reps": self.reps,
            "duration_seconds": self.duration_seconds,
            "distance_meters": None,
            "rpe": None,
        }


@dataclass
class ExerciseEntry:
    exercise_template_id: str
    title: str
    notes: str = ""
    sets: list[SetEntry] = field(default_factory=list)

    def to_payload(self) -> dict:
        return {
            "exercise_template_id": self.exercise_template_id,
            "notes": self.notes,
            "sets": [s.to_payload() for s in self.sets],
        }


@dataclass
class WorkoutLog:
    title: str
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: Optional[datetime] = None
    exercises: list[ExerciseEntry] = field(default_factory=list)

    def entry_for(self, exercise: Exercise) -> ExerciseEntry:
        """Find or create the log entry for an exercise (matched by template id, then title)."""
        key = exercise.exercise_template_id or exercise.title
        for entry in self.exercises:
            if (entry.exercise_template_id or entry.title) == key:
                return entry
        entry = ExerciseEntry(exercise_template_id=exercise.exercise_template_id, title=exercise.title)
        self.exercises.append(entry)
        return entry

    @property
    def total_sets(self) -> int:
        return sum(len(e.sets) for e in self.exercises)

    @property
    def total_reps(self) -> int:
        return sum(s.reps or 0 for e in self.exercises for s in e.sets)

    def to_payload(self, now: Optional[datetime] = None) -> dict:
        """Full snapshot in the tracker's workout format."""
        end = self.end_time or now or datetime.now(timezone.utc)
        return {
            "title": self.title,
            "description": "Logged by RepCoach",
            "start_time": self.start_time.isoformat(),
            "end_time": end.isoformat(),
            "is_private": False,
            "exercises": [e.to_payload() for e in self.exercises],
        }


@dataclass
class WorkoutSummary:
    title: str
    duration_minutes: int
    exercise_count: int
    total_sets: int
    total_reps: int

    @classmethod
    def from_log(cls, log: WorkoutLog) -> "WorkoutSummary":
        duration = 0
        if log.end_time is not None:
            duration = round((log.end_time - log.start_time).total_seconds() / 60)
        return cls(
            title=log.title,
            duration_minutes=duration,
            exercise_count=len(log.exercises),
            total_sets=log.total_sets,
            total_reps=log.total_reps,
        )
