"""Abstract interface every workout tracker provider implements."""

from abc import ABC, abstractmethod
from typing import Optional


class WorkoutProvider(ABC):
    """Remote tracker: routines in, workout snapshots out.

    create_workout/update_workout always receive the full current workout
    payload, never a delta, so providers may be called repeatedly with
    growing snapshots of the same session.
    """

    name: str = "unknown"

    @property
    @abstractmethod
    def connected(self) -> bool:
        ...

    @abstractmethod
    async def connect(self, api_key: str) -> bool:
        """Store the key and verify it. Returns False (and forgets the key) if rejected."""
        ...

    @abstractmethod
    def disconnect(self) -> None:
        ...

    @abstractmethod
    async def test_connection(self) -> bool:
        ...

    @abstractmethod
    async def get_routines(self, page: int = 1, page_size: int = 10) -> list[dict]:
        ...

    @abstractmethod
    async def get_routine(self, routine_id: str) -> dict:
        ...

    @abstractmethod
    async def create_workout(self, workout: dict) -> Optional[str]:
        """Create the remote record. Returns its id."""
        ...

    @abstractmethod
    async def update_workout(self, workout_id: str, workout: dict) -> None:
        ...

    async def aclose(self) -> None:
        """Release network resources."""
