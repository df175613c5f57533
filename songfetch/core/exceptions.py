"""
Exception classes for songfetch.

This module defines all custom exceptions used throughout the application.
Each exception carries a human-readable message plus an optional ``details``
dictionary, and the provider exceptions additionally carry the failure kind
the download orchestrator uses to decide whether retrying makes sense.

Exception Hierarchy:
    SongfetchError (base)
        ConfigError - Configuration file or value issues
        SpotifyError - Spotify API issues
        KugouAuthError - Kugou session / QR login issues
        MetadataError - Tag writing and reference catalog issues
        ProviderError - A source failed to produce audio
            NotFoundError - No candidate located
            AccessRestrictedError - Candidate located but not retrievable
            TransientError - Network / transport / filesystem failure
"""

from typing import Any, Dict, Optional

from .models import DiscoveredMetadata, FailureKind, ProviderId


class SongfetchError(Exception):
    """
    Base exception for all songfetch errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (URLs, hashes,
                 status codes, the wrapped exception).
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(SongfetchError):
    """
    Raised when the configuration is unusable.

    Example:
        raise ConfigError(
            "Spotify client_id and client_secret are required",
            details={'section': 'spotify'}
        )
    """
    pass


class SpotifyError(SongfetchError):
    """
    Raised when there's an issue with the Spotify API.

    Attributes:
        is_auth_error: True for credential failures (stop the run).
        is_rate_limit: True when Spotify answered 429.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        is_auth_error: bool = False,
        is_rate_limit: bool = False
    ) -> None:
        super().__init__(message, details)
        self.is_auth_error = is_auth_error
        self.is_rate_limit = is_rate_limit


class KugouAuthError(SongfetchError):
    """Raised when the Kugou QR login cannot be completed."""
    pass


class MetadataError(SongfetchError):
    """
    Raised when tags cannot be written or a reference lookup fails.

    Never fatal for a track: the caller keeps the un-tagged audio file.
    """
    pass


class ProviderError(SongfetchError):
    """
    Raised by a source adapter when it cannot produce audio.

    The orchestrator catches these and turns them into fields of the
    DownloadResult; they never escape ``download_audio``.

    Attributes:
        failure: FailureKind used for retry decisions.
        provider: Source that raised, when known.
        discovered: Metadata of the candidate that was identified before the
                    failure happened (regional catalog only).
    """

    failure = FailureKind.TRANSIENT

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        provider: Optional[ProviderId] = None,
        discovered: Optional[DiscoveredMetadata] = None
    ) -> None:
        super().__init__(message, details)
        self.provider = provider
        self.discovered = discovered

    @property
    def retryable(self) -> bool:
        """Whether another attempt against the same provider may succeed."""
        return self.failure is not FailureKind.ACCESS_RESTRICTED


class NotFoundError(ProviderError):
    """No candidate was located by any query variant."""

    failure = FailureKind.NOT_FOUND


class AccessRestrictedError(ProviderError):
    """
    The candidate exists but upstream refuses to hand it out.

    Paid-only or region-locked tracks end up here. Retrying the same provider
    cannot change the outcome.
    """

    failure = FailureKind.ACCESS_RESTRICTED


class TransientError(ProviderError):
    """Network, timeout, transport or filesystem failure; retried in place."""

    failure = FailureKind.TRANSIENT
