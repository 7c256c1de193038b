"""Observer hub for session events.

The engine's only output channel. UI, speech and the sync layer subscribe
to the events they care about; any number of handlers per event.

Events and their arguments:
    message(role, text)              role is "ai" or "user"
    state_changed(state)
    set_completed(exercise, set_entry)
    exercise_completed(exercise)
    workout_end_requested()          user asked by voice to end the workout
    workout_complete(log)            exactly once per finished session
"""

import logging
from collections import defaultdict
from typing import Callable

logger = logging.getLogger("repcoach.events")

EVENTS = (
    "message",
    "state_changed",
    "set_completed",
    "exercise_completed",
    "workout_end_requested",
    "workout_complete",
)


class EventHub:
    def __init__(self):
        self._handlers: dict[str, list[Callable]] = defaultdict(list)

    def subscribe(self, event: str, handler: Callable) -> Callable[[], None]:
        """Register a handler. Returns a callable that unsubscribes it."""
        if event not in EVENTS:
            raise ValueError(f"Unknown event '{event}'")
        self._handlers[event].append(handler)

        def _unsubscribe():
            try:
                self._handlers[event].remove(handler)
            except ValueError:
                pass

        return _unsubscribe

    def emit(self, event: str, *args) -> None:
        """Call every handler in subscription order.

        A failing handler is logged and skipped so one broken subscriber
        (e.g. a TTS backend) cannot stall the session.
        """
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(*args)
            except Exception as e:
                logger.error("Handler for '%s' failed: %s", event, e, exc_info=True)

    def handler_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))
