"""Hevy REST API provider (https://api.hevyapp.com/docs)."""

import logging
from typing import Optional

import httpx

from repcoach.config import HEVY_BASE_URL, HEVY_TIMEOUT
from repcoach.errors import InvalidApiKeyError, ProviderError, ProviderNotConfiguredError
from repcoach.providers.base import WorkoutProvider
from repcoach.utils.vault import CredentialVault

logger = logging.getLogger("repcoach.hevy")


class HevyProvider(WorkoutProvider):
    """Async Hevy client. Authenticates with the per-user `api-key` header."""

    name = "hevy"

    def __init__(
        self,
        vault: Optional[CredentialVault] = None,
        base_url: str = HEVY_BASE_URL,
        timeout: float = HEVY_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._vault = vault
        self._api_key: Optional[str] = None
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    # ── Credentials ───────────────────────────────────────────────────

    @property
    def connected(self) -> bool:
        return bool(self._api_key)

    def load_credentials(self) -> bool:
        """Load a saved key from the vault. Returns True if one was found."""
        if self._vault is None:
            return False
        self._api_key = self._vault.load_api_key(self.name)
        return self.connected

    def use_api_key(self, api_key: str) -> None:
        """Use a key for this process only (e.g. from the environment)."""
        self._api_key = api_key.strip() or None

    async def connect(self, api_key: str) -> bool:
        if not api_key or not api_key.strip():
            raise ValueError("API key is required")
        self._api_key = api_key.strip()
        if not await self.test_connection():
            logger.warning("Hevy rejected the API key")
            self._api_key = None
            return False
        if self._vault is not None:
            self._vault.save_api_key(self.name, self._api_key)
        logger.info("Connected to Hevy")
        return True

    def disconnect(self) -> None:
        self._api_key = None
        if self._vault is not None:
            self._vault.delete_api_key(self.name)
        logger.info("Disconnected from Hevy")

    # ── HTTP ──────────────────────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        if not self._api_key:
            raise ProviderNotConfiguredError("Hevy API key not set")

        try:
            resp = await self._client.request(method, path, headers={"api-key": self._api_key}, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"Hevy request failed: {e}") from e

        if resp.status_code == 401:
            raise InvalidApiKeyError("Invalid API key", status=401, body=resp.text)
        if resp.is_error:
            logger.error("Hevy API error %d on %s %s: %s", resp.status_code, method, path, resp.text[:500])
            raise ProviderError(f"API error: {resp.status_code}", status=resp.status_code, body=resp.text)

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(f"Hevy returned invalid JSON for {path}", status=resp.status_code, body=resp.text) from e

    async def test_connection(self) -> bool:
        try:
            await self._request("GET", "/workouts/count")
            return True
        except ProviderError as e:
            logger.info("Hevy connection test failed: %s", e)
            return False

    # ── Routines ──────────────────────────────────────────────────────

    async def get_routines(self, page: int = 1, page_size: int = 10) -> list[dict]:
        data = await self._request("GET", "/routines", params={"page": page, "pageSize": page_size})
        return data.get("routines", [])

    async def get_routine(self, routine_id: str) -> dict:
        return await self._request("GET", f"/routines/{routine_id}")

    # ── Workouts ──────────────────────────────────────────────────────

    async def create_workout(self, workout: dict) -> Optional[str]:
        data = await self._request("POST", "/workouts", json={"workout": workout})
        workout_id = _extract_workout_id(data)
        if workout_id is None:
            logger.warning("Hevy create response had no workout id: %s", str(data)[:200])
        return workout_id

    async def update_workout(self, workout_id: str, workout: dict) -> None:
        await self._request("PUT", f"/workouts/{workout_id}", json={"workout": workout})

    async def aclose(self) -> None:
        await self._client.aclose()


def _extract_workout_id(data) -> Optional[str]:
    """Hevy answers with {"workout": [{...}]} or {"workout": {...}} depending on version."""
    if isinstance(data, dict):
        if data.get("id") is not None:
            return str(data["id"])
        return _extract_workout_id(data.get("workout"))
    if isinstance(data, list) and data:
        return _extract_workout_id(data[0])
    return None
