"""Registry of workout providers with a persisted active selection."""

import logging
from typing import Optional

from repcoach.providers.base import WorkoutProvider
from repcoach.utils.json_store import JsonDocument

logger = logging.getLogger("repcoach.providers")

_ACTIVE_KEY = "active_provider"


class ProviderManager:
    def __init__(self, settings: Optional[JsonDocument] = None):
        self._providers: dict[str, WorkoutProvider] = {}
        self._active_name: Optional[str] = None
        self._settings = settings

    def register(self, provider: WorkoutProvider) -> None:
        self._providers[provider.name] = provider
        logger.debug("Provider registered: %s", provider.name)

    @property
    def names(self) -> list[str]:
        return list(self._providers)

    def get(self, name: str) -> Optional[WorkoutProvider]:
        return self._providers.get(name)

    def set_active(self, name: str) -> bool:
        if name not in self._providers:
            logger.error("Provider not found: %s", name)
            return False
        self._active_name = name
        if self._settings is not None:
            self._settings.set(_ACTIVE_KEY, name)
        logger.info("Active provider: %s", name)
        return True

    @property
    def active(self) -> Optional[WorkoutProvider]:
        return self._providers.get(self._active_name) if self._active_name else None

    def load_saved(self) -> Optional[WorkoutProvider]:
        """Restore the last active provider (or the first registered one)."""
        saved = self._settings.get(_ACTIVE_KEY) if self._settings is not None else None
        if saved in self._providers:
            self.set_active(saved)
        elif self._providers:
            self.set_active(next(iter(self._providers)))
        return self.active

    def clear_active(self) -> None:
        provider = self.active
        if provider is not None:
            provider.disconnect()
        self._active_name = None
        if self._settings is not None:
            self._settings.set(_ACTIVE_KEY, None)

    async def aclose(self) -> None:
        for provider in self._providers.values():
            try:
                await provider.aclose()
            except Exception as e:
                logger.warning("Closing provider %s failed: %s", provider.name, e)
