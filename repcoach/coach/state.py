"""Session phases as explicit values.

Each phase carries exactly the handle it needs. A work timer lives only in
TimerRunning and a rest timer only in Resting, so "both timers active" cannot
be expressed. Set and exercise completion are transitions (see the
set_completed / exercise_completed events), not places the session rests in.
"""

from dataclasses import dataclass
from typing import Optional, Union

from repcoach.coach.timers import Countdown, Delay


@dataclass(frozen=True)
class NotStarted:
    name = "not_started"


@dataclass(frozen=True)
class Announcing:
    """Waiting for the speech queue to settle before announcing an exercise."""

    exercise_index: int
    pending: Optional[Delay] = None
    name = "announcing"


@dataclass(frozen=True)
class AwaitingSetStart:
    name = "awaiting_set_start"


@dataclass(frozen=True)
class RepsInProgress:
    name = "reps_in_progress"


@dataclass(frozen=True)
class TimerRunning:
    timer: Countdown
    name = "timer_running"


@dataclass(frozen=True)
class Resting:
    """Rest countdown. before_next_exercise is True after the last set of an exercise."""

    timer: Countdown
    before_next_exercise: bool = False
    name = "resting"


@dataclass(frozen=True)
class WorkoutComplete:
    name = "workout_complete"


SessionState = Union[
    NotStarted,
    Announcing,
    AwaitingSetStart,
    RepsInProgress,
    TimerRunning,
    Resting,
    WorkoutComplete,
]


def cancel_handles(state: SessionState) -> None:
    """Cancel whatever timer or pending call the state holds."""
    if isinstance(state, (TimerRunning, Resting)):
        state.timer.cancel()
    elif isinstance(state, Announcing) and state.pending is not None:
        state.pending.cancel()


def active_handle(state: SessionState):
    """The live timer/delay for this state, or None."""
    if isinstance(state, (TimerRunning, Resting)):
        return state.timer
    if isinstance(state, Announcing):
        return state.pending
    return None
