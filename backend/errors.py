from __future__ import annotations


class InputValidationError(ValueError):
    """Request data is unusable (missing transcript, bad duration, bad audio)."""


class ProviderError(Exception):
    def __init__(self, message: str, provider: str = "unknown") -> None:
        super().__init__(message)
        self.provider = provider


class ProviderQuotaError(ProviderError):
    """Rate limit or quota exhausted. Triggers the fallback cascade."""


class ProviderTimeoutError(ProviderQuotaError):
    """Provider call exceeded the configured timeout."""


class ProviderTransientError(ProviderError):
    """Network failure, malformed response or any other provider error."""


class AnalysisFailedError(Exception):
    """The primary analysis failed in a way that must not fall back."""


class PersistenceError(Exception):
    """Storing or reading a speech session failed."""


class TranscriptionUnavailableError(Exception):
    """ffmpeg or the speech-to-text model is not available on this host."""


class RecordingNotFoundError(LookupError):
    """No active recording with that id."""


class RecordingForbiddenError(PermissionError):
    """The recording belongs to another user."""
