"""Tests for coach/models.py: routine parsing and the workout log payload."""

from datetime import datetime, timedelta, timezone

import pytest

from repcoach.coach.models import Exercise, Routine, SetEntry, WorkoutLog, WorkoutSummary

HEVY_ROUTINE = {
    "routine": {
        "id": "b459cba5",
        "title": "Upper Body",
        "exercises": [
            {
                "exercise_template_id": "D04AC939",
                "title": "Bench Press (Barbell)",
                "rest_seconds": 90,
                "notes": "Feet flat, shoulder blades pinched.",
                "sets": [
                    {"type": "normal", "weight_kg": 60, "reps": 8},
                    {"type": "normal", "weight_kg": 60, "reps": 8},
                ],
            },
            {
                "exercise_template_id": "C6C9B8A0",
                "title": "Plank",
                "rest_seconds": 45,
                "sets": [{"type": "normal", "duration_seconds": 45}],
            },
            {
                "exercise_template_id": "ABC",
                "title": "Curl",
                "sets": [{"rep_range": {"start": 8, "end": 12}}],
            },
        ],
    }
}


class TestRoutineParsing:
    def test_wrapped_routine(self):
        routine = Routine.from_dict(HEVY_ROUTINE)
        assert routine.id == "b459cba5"
        assert routine.title == "Upper Body"
        assert [e.title for e in routine.exercises] == ["Bench Press (Barbell)", "Plank", "Curl"]

    def test_bare_routine(self):
        routine = Routine.from_dict(HEVY_ROUTINE["routine"])
        assert len(routine.exercises) == 3

    def test_rep_exercise_targets(self):
        bench = Routine.from_dict(HEVY_ROUTINE).exercises[0]
        assert not bench.is_timed
        assert bench.total_sets == 2
        assert bench.target_reps == 8
        assert bench.rest_seconds == 90
        assert bench.working_weight == 60.0
        assert bench.notes.startswith("Feet flat")

    def test_timed_exercise(self):
        plank = Routine.from_dict(HEVY_ROUTINE).exercises[1]
        assert plank.is_timed
        assert plank.target_seconds == 45

    def test_rep_range_uses_top_of_range(self):
        curl = Routine.from_dict(HEVY_ROUTINE).exercises[2]
        assert curl.target_reps == 12

    def test_defaults_when_fields_missing(self):
        exercise = Exercise.from_dict({"exercise_template_id": "X"})
        assert exercise.title == "X"
        assert exercise.total_sets == 3
        assert exercise.target_reps == 10
        assert exercise.target_seconds == 60
        assert exercise.rest_seconds == 60
        assert not exercise.is_timed

    @pytest.mark.parametrize("rest, expected", [("abc", 60), ("", 60), (-5, 60), (0, 0), ("45", 45), (None, 60)])
    def test_rest_seconds_parsed_leniently(self, rest, expected):
        exercise = Exercise.from_dict({"title": "Row", "rest_seconds": rest})
        assert exercise.rest_seconds == expected

    def test_non_numeric_reps_fall_back_to_default(self):
        exercise = Exercise.from_dict({"title": "Row", "sets": [{"reps": "lots"}]})
        assert exercise.target_reps == 10


class TestWorkoutLog:
    def test_entry_for_reuses_existing(self):
        log = WorkoutLog(title="Day")
        exercise = Exercise(title="Squat", exercise_template_id="SQ")
        assert log.entry_for(exercise) is log.entry_for(exercise)
        assert len(log.exercises) == 1

    def test_payload_shape(self):
        start = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        log = WorkoutLog(title="Day", start_time=start)
        entry = log.entry_for(Exercise(title="Squat", exercise_template_id="SQ"))
        entry.sets.append(SetEntry(reps=5, weight_kg=100.0))
        entry.sets.append(SetEntry(duration_seconds=30))

        payload = log.to_payload(now=start + timedelta(minutes=30))
        assert payload["title"] == "Day"
        assert payload["start_time"] == "2024-05-01T10:00:00+00:00"
        assert payload["end_time"] == "2024-05-01T10:30:00+00:00"
        assert payload["is_private"] is False
        sets = payload["exercises"][0]["sets"]
        assert payload["exercises"][0]["exercise_template_id"] == "SQ"
        assert sets[0] == {
            "type": "normal",
            "weight_kg": 100.0,
            "reps": 5,
            "duration_seconds": None,
            "distance_meters": None,
            "rpe": None,
        }
        assert sets[1]["reps"] is None
        assert sets[1]["duration_seconds"] == 30

    def test_end_time_wins_over_now(self):
        start = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        log = WorkoutLog(title="Day", start_time=start, end_time=start + timedelta(minutes=45))
        assert log.to_payload(now=start)["end_time"] == "2024-05-01T10:45:00+00:00"

    def test_summary(self):
        start = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        log = WorkoutLog(title="Day", start_time=start, end_time=start + timedelta(minutes=42, seconds=20))
        entry = log.entry_for(Exercise(title="Squat", exercise_template_id="SQ"))
        entry.sets.extend([SetEntry(reps=5), SetEntry(reps=6)])
        log.entry_for(Exercise(title="Plank", exercise_template_id="PL")).sets.append(SetEntry(duration_seconds=30))

        summary = WorkoutSummary.from_log(log)
        assert summary.duration_minutes == 42
        assert summary.exercise_count == 2
        assert summary.total_sets == 3
        assert summary.total_reps == 11
