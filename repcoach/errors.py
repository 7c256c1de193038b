"""Exception types shared across the coach, providers and voice layers."""

from typing import Optional


class RepCoachError(Exception):
    """Base class for all RepCoach errors."""


class NoActiveSessionError(RepCoachError):
    """An operation needs a running workout session and there is none."""


class ProviderError(RepCoachError):
    """The remote tracker rejected a request or could not be reached."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class InvalidApiKeyError(ProviderError):
    """The tracker answered 401 for the configured API key."""


class ProviderNotConfiguredError(ProviderError):
    """No API key is loaded for the provider."""


class VoiceUnavailableError(RepCoachError):
    """Speech recognition or synthesis is not available on this machine."""


class MicrophonePermissionError(VoiceUnavailableError):
    """Microphone access was denied. Needs user action, never swallowed."""
