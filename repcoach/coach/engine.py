"""
Workout session engine.

Walks one routine: announces each exercise, counts reps or runs the hold
timer, logs sets, runs rest periods and finishes the session. All input
arrives through process_input() as text (already transcribed, already
self-hearing filtered); all output leaves through the EventHub.

Everything here runs on the asyncio loop. Timers and deferred announcements
are tasks owned by the current state value (see state.py); switching state
cancels the previous handle.
"""

import asyncio
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Optional

from repcoach.config import (
    ANNOUNCE_DELAY,
    DEFAULT_DURATION_SECONDS,
    DEFAULT_REPS,
    EXERCISE_TRANSITION_DELAY,
    REST_ANNOUNCE_INTERVAL,
    TIMER_TICK_SECONDS,
    TRANSITION_REST_SECONDS,
)
from repcoach.errors import NoActiveSessionError, RepCoachError
from repcoach.coach.events import EventHub
from repcoach.coach.models import Exercise, Routine, SetEntry, WorkoutLog, WorkoutSummary
from repcoach.coach.normalizer import (
    Command,
    apply_command_aliases,
    extract_numbers,
    match_command,
    normalize,
)
from repcoach.coach.phonetics import PhoneticBook
from repcoach.coach.state import (
    Announcing,
    AwaitingSetStart,
    NotStarted,
    RepsInProgress,
    Resting,
    SessionState,
    TimerRunning,
    WorkoutComplete,
    active_handle,
    cancel_handles,
)
from repcoach.coach.sync import RemoteSync
from repcoach.coach.timers import Countdown, Delay
from repcoach.phrases import PhraseBook

logger = logging.getLogger("repcoach.engine")


class WorkoutEngine:
    def __init__(
        self,
        events: Optional[EventHub] = None,
        phrases: Optional[PhraseBook] = None,
        sync: Optional[RemoteSync] = None,
        phonetics: Optional[PhoneticBook] = None,
        voice=None,
        announce_delay: float = ANNOUNCE_DELAY,
        transition_delay: float = EXERCISE_TRANSITION_DELAY,
        tick_seconds: float = TIMER_TICK_SECONDS,
        rest_announce_interval: int = REST_ANNOUNCE_INTERVAL,
        transition_rest_seconds: Optional[int] = TRANSITION_REST_SECONDS,
    ):
        self.events = events or EventHub()
        self.phrases = phrases or PhraseBook()
        self.sync = sync or RemoteSync(None)
        self._phonetics = phonetics
        self._voice = voice
        self._announce_delay = announce_delay
        self._transition_delay = transition_delay
        self._tick = tick_seconds
        self._rest_interval = rest_announce_interval
        self._transition_rest = transition_rest_seconds

        self.routine: Optional[Routine] = None
        self.log: Optional[WorkoutLog] = None
        self.exercise_index = 0
        self.set_index = 0
        self.current_rep = 0
        self.is_countdown = False
        self.target_reps = DEFAULT_REPS
        self.target_seconds = DEFAULT_DURATION_SECONDS
        self.last_spoken_message: Optional[str] = None
        self.last_motivation_category: Optional[str] = None
        self.finished: Optional[asyncio.Event] = None

        self._state: SessionState = NotStarted()
        self._completion: Optional[asyncio.Task] = None

    # ── Inspection ────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def active(self) -> bool:
        return self.routine is not None and not isinstance(self._state, (NotStarted, WorkoutComplete))

    @property
    def current_exercise(self) -> Optional[Exercise]:
        if self.routine is None or self.exercise_index >= len(self.routine.exercises):
            return None
        return self.routine.exercises[self.exercise_index]

    @property
    def remaining_timer_seconds(self) -> Optional[int]:
        handle = active_handle(self._state)
        return handle.remaining if isinstance(handle, Countdown) else None

    def exercise_progress(self) -> str:
        total = len(self.routine.exercises) if self.routine else 0
        return f"Exercise {self.exercise_index + 1}/{total}"

    def summary(self) -> Optional[WorkoutSummary]:
        return WorkoutSummary.from_log(self.log) if self.log is not None else None

    # ── Output ────────────────────────────────────────────────────────

    def _say(self, text: str) -> None:
        self.last_spoken_message = text
        self.events.emit("message", "ai", text)

    def _set_state(self, new_state: SessionState) -> None:
        old_state = self._state
        if active_handle(old_state) is not active_handle(new_state):
            cancel_handles(old_state)
        self._state = new_state
        logger.debug("State: %s -> %s", old_state.name, new_state.name)
        self.events.emit("state_changed", new_state)

    # ── Session lifecycle ─────────────────────────────────────────────

    def start_workout(self, routine: Routine) -> None:
        """Begin a session. Must be called from a coroutine on the running loop."""
        if not isinstance(self._state, NotStarted):
            raise RepCoachError("This engine already ran a workout; create a new one")

        self.routine = routine
        self.log = WorkoutLog(title=routine.title)
        self.finished = asyncio.Event()
        logger.info("Workout started: %s (%d exercises)", routine.title, len(routine.exercises))

        self._say(self.phrases.render("workout_start", title=routine.title))
        self._enter_exercise(0, delay=self._announce_delay)

    def announce_exercise(self, exercise: Exercise) -> None:
        """Describe the exercise and set the per-exercise targets.

        Indices and the rep counter are reset at the exercise transition,
        not here.
        """
        self.is_countdown = exercise.is_timed
        if self.is_countdown:
            self.target_seconds = exercise.target_seconds
            message = self.phrases.render(
                "announce_timed",
                name=exercise.title,
                sets=exercise.total_sets,
                seconds=self.target_seconds,
                rest=exercise.rest_seconds,
            )
        else:
            self.target_reps = exercise.target_reps
            message = self.phrases.render(
                "announce_reps",
                name=exercise.title,
                sets=exercise.total_sets,
                reps=self.target_reps,
                rest=exercise.rest_seconds,
            )
        logger.info("%s: %s", self.exercise_progress(), exercise.title)
        self._say(message)

    def _enter_exercise(self, index: int, delay: Optional[float]) -> None:
        """Move to exercise `index`, announcing it now (delay=None) or after a pause."""
        if index >= len(self.routine.exercises):
            self._begin_completion()
            return

        self.exercise_index = index
        self.set_index = 0
        self.current_rep = 0

        if delay is None:
            self._set_state(Announcing(index))
            self._announce_current()
            return

        pending = Delay(delay, self._announce_current, name=f"announce-{index}")
        self._set_state(Announcing(index, pending))
        pending.start()

    def _announce_current(self) -> None:
        self.announce_exercise(self.current_exercise)
        self._set_state(AwaitingSetStart())

    async def complete_workout(self) -> None:
        """Finish the session (idempotent). Returns once the final sync is done."""
        if self.routine is None:
            raise NoActiveSessionError("No workout has been started")
        await self._begin_completion()

    def _begin_completion(self) -> asyncio.Task:
        if self._completion is not None:
            return self._completion

        self._set_state(WorkoutComplete())
        if self._voice is not None:
            try:
                self._voice.stop_listening()
            except Exception as e:
                logger.warning("Could not stop listening: %s", e)
        self.log.end_time = datetime.now(timezone.utc)
        self._completion = asyncio.get_running_loop().create_task(self._finalize(), name="complete-workout")
        return self._completion

    async def _finalize(self) -> None:
        await self.sync.finalize(self.log)

        summary = self.summary()
        self._say(
            self.phrases.render(
                "workout_complete",
                minutes=summary.duration_minutes,
                exercises=summary.exercise_count,
                sets=summary.total_sets,
            )
        )
        logger.info(
            "Workout complete: %d exercises, %d sets, %d reps in %d min",
            summary.exercise_count,
            summary.total_sets,
            summary.total_reps,
            summary.duration_minutes,
        )
        self.events.emit("workout_complete", self.log)
        self.finished.set()

    async def wait_idle(self) -> None:
        """Let running timers and delays play out until the session waits on the user."""
        while True:
            handle = active_handle(self._state)
            if handle is None or not handle.running:
                break
            await handle.wait()
        if self._completion is not None:
            await self._completion
        await self.sync.drain()

    # ── Input ─────────────────────────────────────────────────────────

    def process_input(self, raw_transcript: str) -> None:
        """Handle one user utterance. Never raises for unrecognised input."""
        if not self.active:
            raise NoActiveSessionError("No active workout session")

        text = (raw_transcript or "").strip().lower()
        if not text:
            return
        if self._phonetics is not None:
            text = apply_command_aliases(text, self._phonetics.command_map())

        command = match_command(text)
        logger.debug("Input %r -> %s", text, command.value if command else "numbers/fallback")

        if command is Command.END_WORKOUT:
            logger.info("User asked to end the workout")
            self.events.emit("workout_end_requested")
        elif command is Command.DONE:
            self._handle_done()
        elif command is Command.START:
            self._handle_start()
        elif command is Command.REPEAT:
            self._repeat()
        elif command is Command.SKIP:
            self.skip_exercise()
        elif command is Command.HELP:
            self._help()
        else:
            extra = self._phonetics.number_map() if self._phonetics is not None else None
            numbers = extract_numbers(normalize(text, extra))
            if numbers:
                self._handle_reps(numbers)
            else:
                self._repeat()

    def _settle(self, end_rest: bool = True) -> None:
        """Flush a pending announcement and (optionally) end a rest early."""
        state = self._state
        if isinstance(state, Announcing):
            self._announce_current()
        elif isinstance(state, Resting) and end_rest:
            logger.debug("Rest ended early with %ds left", state.timer.remaining)
            if state.before_next_exercise:
                self._enter_exercise(self.exercise_index + 1, delay=None)
            else:
                self._set_state(AwaitingSetStart())

    def _rep_exercise(self) -> Optional[Exercise]:
        """The exercise a rep report counts towards: the upcoming one during a between-exercise rest."""
        state = self._state
        index = self.exercise_index + 1 if isinstance(state, Resting) and state.before_next_exercise else self.exercise_index
        exercises = self.routine.exercises
        return exercises[index] if index < len(exercises) else None

    def _handle_start(self) -> None:
        self._settle()
        if not self.active:
            return

        if self.is_countdown:
            if isinstance(self._state, TimerRunning):
                self._say(self.phrases.render("timer_already_running", remaining=self._state.timer.remaining))
                return
            self._start_work_timer()
            return

        if isinstance(self._state, AwaitingSetStart):
            self._set_state(RepsInProgress())
        self._say(self.phrases.render("rep_prompt"))

    def _repeat(self) -> None:
        if self.last_spoken_message:
            self.events.emit("message", "ai", self.last_spoken_message)
        else:
            self._say(self.phrases.render("nothing_to_repeat"))

    def _help(self) -> None:
        exercise = self.current_exercise
        if exercise is None:
            return
        if exercise.notes:
            self._say(self.phrases.render("instructions", name=exercise.title, notes=exercise.notes))
        else:
            self._say(self.phrases.render("no_instructions", name=exercise.title))

    # ── Reps ──────────────────────────────────────────────────────────

    def _rep_category(self, rep: int) -> str:
        remaining = self.target_reps - rep
        if rep == 1:
            return "rep_start"
        if remaining == self.target_reps // 2:
            return "halfway_reps"
        if 0 < remaining <= 2:
            return "last_reps"
        return "rep_complete"

    def _rep_line(self, rep: int) -> str:
        category = self._rep_category(rep)
        self.last_motivation_category = category
        return self.phrases.render(
            "rep_progress", remaining=self.target_reps - rep, motivation=self.phrases.pick(category)
        )

    def _rep_accepted(self, number: int, target: int) -> bool:
        return (number == self.current_rep and number > 0) or self.current_rep < number <= target

    def _handle_reps(self, numbers: list[int]) -> None:
        exercise = self._rep_exercise()
        if (
            not isinstance(self._state, (Announcing, Resting, AwaitingSetStart, RepsInProgress))
            or exercise is None
            or exercise.is_timed
        ):
            logger.debug("Ignoring rep numbers %s in state %s", numbers, self._state.name)
            return

        numbers = list(dict.fromkeys(numbers))
        if not any(self._rep_accepted(n, exercise.target_reps) for n in numbers):
            # Out-of-range numbers leave rests, announcements and the set untouched
            logger.debug("Ignoring rep numbers %s (current %d, target %d)", numbers, self.current_rep, exercise.target_reps)
            return

        self._settle()
        if isinstance(self._state, AwaitingSetStart):
            self._set_state(RepsInProgress())

        lines = []
        for number in numbers:
            if number == self.current_rep and number > 0:
                lines.append(self._rep_line(number))
            elif self.current_rep < number <= self.target_reps:
                self.current_rep = number
                lines.append(self._rep_line(number))
            else:
                logger.debug("Ignoring rep %d (current %d, target %d)", number, self.current_rep, self.target_reps)

        if not lines:
            return
        self._say("\n".join(lines))

        if self.current_rep >= self.target_reps:
            self._complete_set(reps=self.current_rep)

    # ── Timers ────────────────────────────────────────────────────────

    def _start_work_timer(self) -> None:
        timer = Countdown(
            self.target_seconds,
            on_tick=self._on_work_tick,
            on_finish=self._on_work_finished,
            tick_seconds=self._tick,
            name=f"work-{self.exercise_index}-{self.set_index}",
        )
        self._set_state(TimerRunning(timer))
        self._say(self.phrases.render("timer_start", seconds=self.target_seconds))
        timer.start()

    def _on_work_tick(self, remaining: int) -> None:
        duration = self.target_seconds
        if remaining == duration // 2:
            self._say(self.phrases.pick("timer_halfway"))
        elif remaining == 30 and duration > 45:
            self._say(self.phrases.pick("timer_30sec"))
        elif remaining == 15:
            self._say(self.phrases.pick("timer_15sec"))

    def _on_work_finished(self) -> None:
        self._complete_set(duration_seconds=self.target_seconds)

    def _start_rest(self, seconds: int, before_next_exercise: bool) -> None:
        timer = Countdown(
            seconds,
            on_tick=self._on_rest_tick,
            on_finish=partial(self._on_rest_finished, before_next_exercise),
            tick_seconds=self._tick,
            name=f"rest-{self.exercise_index}-{self.set_index}",
        )
        self._set_state(Resting(timer, before_next_exercise))
        timer.start()

    def _on_rest_tick(self, remaining: int) -> None:
        if self._rest_interval and remaining % self._rest_interval == 0:
            self._say(self.phrases.render("rest_remaining", seconds=remaining))

    def _on_rest_finished(self, before_next_exercise: bool) -> None:
        if before_next_exercise:
            self._say(self.phrases.render("rest_over_exercise"))
            self._enter_exercise(self.exercise_index + 1, delay=None)
        else:
            self._say(self.phrases.render("rest_over_set", set_number=self.set_index + 1))
            self._set_state(AwaitingSetStart())

    # ── Sets and exercises ────────────────────────────────────────────

    def _complete_set(self, reps: Optional[int] = None, duration_seconds: Optional[int] = None) -> None:
        exercise = self.current_exercise
        entry = SetEntry(reps=reps, weight_kg=exercise.working_weight, duration_seconds=duration_seconds)
        self.log.entry_for(exercise).sets.append(entry)
        logger.info(
            "Logged %s set %d/%d: reps=%s duration=%s",
            exercise.title,
            self.set_index + 1,
            exercise.total_sets,
            reps,
            duration_seconds,
        )
        self.events.emit("set_completed", exercise, entry)
        self.sync.schedule(self.log)
        self._finish_set()

    def _finish_set(self) -> None:
        """Advance past the current set: rest before the next one, or close the exercise."""
        exercise = self.current_exercise
        self.set_index += 1
        self.current_rep = 0
        lines = [self.phrases.pick("set_complete")]

        if self.set_index < exercise.total_sets:
            lines.append(self.phrases.render("rest_start", seconds=exercise.rest_seconds))
            self._say("\n".join(lines))
            self._start_rest(exercise.rest_seconds, before_next_exercise=False)
            return

        lines.append(self.phrases.pick("exercise_complete"))
        is_last = self.exercise_index + 1 >= len(self.routine.exercises)
        if not is_last:
            rest = self._transition_rest if self._transition_rest is not None else exercise.rest_seconds
            lines.append(self.phrases.render("rest_start", seconds=rest))
        self._say("\n".join(lines))
        self.events.emit("exercise_completed", exercise)

        if is_last:
            self._begin_completion()
        else:
            self._start_rest(rest, before_next_exercise=True)

    def _handle_done(self) -> None:
        """'done': log whatever was performed of the current set, then move on."""
        self._settle()
        if not self.active:
            return

        state = self._state
        if isinstance(state, TimerRunning):
            elapsed = state.timer.elapsed
            if elapsed >= 1:
                self._complete_set(duration_seconds=elapsed)
                return
        elif self.current_rep > 0:
            self._complete_set(reps=self.current_rep)
            return
        self._finish_set()

    def skip_exercise(self) -> None:
        """Move to the next exercise without logging anything for this one."""
        if not self.active:
            raise NoActiveSessionError("No active workout session")

        state = self._state
        if isinstance(state, Resting) and state.before_next_exercise:
            # The current exercise is already done, skip the one coming up
            next_index = self.exercise_index + 2
        else:
            next_index = self.exercise_index + 1

        self._say(self.phrases.render("skip"))
        logger.info("Skipping to exercise index %d", next_index)
        self._enter_exercise(next_index, delay=self._transition_delay)
