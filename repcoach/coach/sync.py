"""Incremental mirroring of the workout log to the remote tracker.

Every sync sends the full current log. The first one that has something to
send creates the remote workout, every later one updates it by id. A crash
mid-workout therefore loses at most the set being performed.
"""

import asyncio
import logging
from typing import Optional

from repcoach.config import REMOTE_CREATE_POLL, REMOTE_CREATE_WAIT
from repcoach.coach.models import WorkoutLog
from repcoach.providers.base import WorkoutProvider

logger = logging.getLogger("repcoach.sync")


class RemoteSync:
    def __init__(
        self,
        provider: Optional[WorkoutProvider],
        create_wait_timeout: float = REMOTE_CREATE_WAIT,
        poll_interval: float = REMOTE_CREATE_POLL,
    ):
        self._provider = provider
        self._remote_id: Optional[str] = None
        self._creating = False
        self._create_wait = create_wait_timeout
        self._poll = poll_interval
        self._tasks: set[asyncio.Task] = set()

    @property
    def remote_id(self) -> Optional[str]:
        return self._remote_id

    @property
    def creating(self) -> bool:
        return self._creating

    async def sync(self, log: WorkoutLog) -> None:
        """Create or update the remote workout. Never raises."""
        await self._push(log.to_payload(), has_exercises=bool(log.exercises))

    async def _push(self, payload: dict, has_exercises: bool) -> None:
        if self._provider is None:
            return

        if self._remote_id is None:
            if not has_exercises or self._creating:
                return
            # Flag goes up before the first await; a second caller sees it
            self._creating = True
            try:
                workout_id = await self._provider.create_workout(payload)
                if workout_id and self._remote_id is None:
                    self._remote_id = workout_id
                    logger.info("Remote workout created: %s", workout_id)
                elif not workout_id:
                    logger.warning("Remote create returned no id, will retry on next sync")
            except Exception as e:
                logger.error("Remote create failed: %s", e)
            finally:
                self._creating = False
            return

        try:
            await self._provider.update_workout(self._remote_id, payload)
            logger.debug("Remote workout %s updated (%d exercises)", self._remote_id, len(payload["exercises"]))
        except Exception as e:
            logger.error("Remote update failed: %s", e)

    def schedule(self, log: WorkoutLog) -> Optional[asyncio.Task]:
        """Fire-and-forget sync of a snapshot taken now."""
        if self._provider is None:
            return None
        payload = log.to_payload()
        task = asyncio.get_running_loop().create_task(
            self._push(payload, has_exercises=bool(log.exercises)), name="remote-sync"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def finalize(self, log: WorkoutLog) -> None:
        """Final sync at workout end, after any in-flight create has settled."""
        waited = 0.0
        while self._creating and waited < self._create_wait:
            await asyncio.sleep(self._poll)
            waited += self._poll
        if self._creating:
            logger.warning("Remote create still in flight after %.1fs, final sync may be skipped", waited)
        await self.sync(log)

    async def drain(self) -> None:
        """Wait for scheduled background syncs (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
