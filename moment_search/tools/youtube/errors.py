"""Error types raised by the transcript search pipeline.

Lower layers (transcript strategies, per-chunk embedding calls) catch these
and continue when a fallback exists. Once no fallback remains they propagate
unwrapped to the caller.
"""

from __future__ import annotations


class MomentSearchError(Exception):
    """Base class for all pipeline errors."""


class NoTranscriptAvailable(MomentSearchError):
    """Raised when every transcript acquisition strategy failed."""

    def __init__(self, video_id: str) -> None:
        self.video_id = video_id
        super().__init__(f"No transcript available for video {video_id}")


class ProviderError(MomentSearchError):
    """Raised when an embedding or transcription HTTP call fails.

    Attributes:
        status: HTTP status code, or None when the request never completed.
        message: Provider error text or a description of the malformed body.
        provider: Name of the provider that failed.
    """

    def __init__(
        self,
        status: int | None,
        message: str,
        provider: str = "unknown",
    ) -> None:
        self.status = status
        self.message = message
        self.provider = provider
        super().__init__(f"{provider} error ({status}): {message}")


class NoEmbeddingsAvailable(MomentSearchError):
    """Raised when there are no chunk embeddings to search."""

    def __init__(self, video_id: str | None = None) -> None:
        self.video_id = video_id
        target = f" for video {video_id}" if video_id else ""
        super().__init__(f"No embeddings available{target}")


class CacheError(MomentSearchError):
    """Raised when the cache storage backend fails."""


class ConfigurationError(MomentSearchError):
    """Raised when no embedding provider credential is configured."""


class SearchCancelled(MomentSearchError):
    """Raised when a search session is superseded before it finishes."""
