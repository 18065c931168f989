"""Host page collaborator for transcript acquisition.

The video page is the brittle part of the pipeline: caption rows rendered in
the transcript panel, the script-embedded player response (caption tracks,
audio streams, duration) and the media element's source. Everything that
touches it sits behind the ``HostPage`` protocol so the rest of the pipeline
never depends on page structure.

Two implementations are provided:
- ``PageSnapshot``: data a browser client already scraped and sent along.
- ``WatchPage``: fetches the public watch page and decodes the embedded
  ``ytInitialPlayerResponse``. It has no rendered DOM, so no panel rows.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch"

_TIMESTAMP_RE = re.compile(r"(\d+):(\d{1,2})(?::(\d{1,2}))?")
_PLAYER_RESPONSE_RE = re.compile(r"ytInitialPlayerResponse\s*=\s*")

_AUDIO_QUALITY_RANK = {
    "AUDIO_QUALITY_ULTRALOW": 0,
    "AUDIO_QUALITY_LOW": 1,
    "AUDIO_QUALITY_MEDIUM": 2,
    "AUDIO_QUALITY_HIGH": 3,
}


class RenderedSegment(BaseModel):
    """A caption row as displayed in the transcript panel.

    Attributes:
        timestamp: Displayed label such as "1:05" or "1:02:03".
        text: Caption text.
        start_seconds: Start time from a data attribute, when the row has one.
    """

    timestamp: str | None = None
    text: str
    start_seconds: int | None = Field(default=None, ge=0)


@runtime_checkable
class HostPage(Protocol):
    """What transcript acquisition needs from the video page."""

    async def transcript_panel_segments(self) -> list[RenderedSegment]:
        """Return caption rows currently rendered in the transcript panel."""
        ...

    async def open_transcript_panel(self) -> bool:
        """Try to open the transcript panel. Returns False if it cannot."""
        ...

    async def player_response(self) -> dict[str, Any] | None:
        """Return the script-embedded player response, if present."""
        ...

    async def media_source_url(self) -> str | None:
        """Return the media element's source URL, if present."""
        ...

    async def video_duration(self) -> str | float | None:
        """Return the video duration as seconds or an MM:SS/HH:MM:SS label."""
        ...


class PageSnapshot(BaseModel):
    """Host page state captured by a browser client.

    The client cannot be driven from here, so the transcript panel can
    only be read, never opened.
    """

    video_id: str | None = None
    duration: str | float | None = None
    transcript_segments: list[RenderedSegment] = Field(default_factory=list)
    player_response_data: dict[str, Any] | None = Field(
        default=None, alias="player_response"
    )
    media_source: str | None = Field(default=None, alias="media_source_url")

    model_config = {"populate_by_name": True}

    async def transcript_panel_segments(self) -> list[RenderedSegment]:
        return list(self.transcript_segments)

    async def open_transcript_panel(self) -> bool:
        return False

    async def player_response(self) -> dict[str, Any] | None:
        return self.player_response_data

    async def media_source_url(self) -> str | None:
        return self.media_source

    async def video_duration(self) -> str | float | None:
        if self.duration is not None:
            return self.duration
        return player_duration(self.player_response_data)


class WatchPage:
    """Host page backed by the public YouTube watch page.

    The HTML is fetched once, lazily, and the embedded player response is
    decoded from it.

    Attributes:
        video_id: YouTube video ID.
        client: Shared HTTP client.
    """

    def __init__(self, video_id: str, client: httpx.AsyncClient) -> None:
        self.video_id = video_id
        self.client = client
        self._player_response: dict[str, Any] | None = None
        self._loaded = False

    async def _load(self) -> dict[str, Any] | None:
        if self._loaded:
            return self._player_response

        response = await self.client.get(
            WATCH_URL,
            params={"v": self.video_id},
            headers={"Accept-Language": "en-US,en;q=0.9"},
        )
        response.raise_for_status()
        self._player_response = extract_player_response(response.text)
        self._loaded = True
        if self._player_response is None:
            logger.debug(f"No player response found on watch page for {self.video_id}")
        return self._player_response

    async def transcript_panel_segments(self) -> list[RenderedSegment]:
        return []

    async def open_transcript_panel(self) -> bool:
        return False

    async def player_response(self) -> dict[str, Any] | None:
        return await self._load()

    async def media_source_url(self) -> str | None:
        return None

    async def video_duration(self) -> str | float | None:
        return player_duration(await self._load())


def parse_timestamp(label: str) -> int | None:
    """Parse a displayed caption timestamp into seconds.

    Two-part values are always read as MM:SS, whatever the magnitude of the
    first part ("56:30" is 3390 seconds, never 56 hours). Three-part values
    are HH:MM:SS. The first timestamp found in the label is used, so labels
    like "1:05 intro" also parse.

    Args:
        label: Displayed timestamp text.

    Returns:
        Seconds, or None if the label has no timestamp.
    """
    match = _TIMESTAMP_RE.search(label)
    if match is None:
        return None

    first, second, third = match.groups()
    if third is None:
        return int(first) * 60 + int(second)
    return int(first) * 3600 + int(second) * 60 + int(third)


def parse_duration(duration: str | float | int | None) -> int:
    """Convert a duration given as seconds or MM:SS/HH:MM:SS into seconds.

    Unknown or unparseable durations count as 0.
    """
    if duration is None:
        return 0
    if isinstance(duration, (int, float)):
        return max(0, int(duration))

    text = duration.strip()
    try:
        return max(0, int(float(text)))
    except ValueError:
        pass
    seconds = parse_timestamp(text)
    return seconds if seconds is not None else 0


def extract_player_response(html: str) -> dict[str, Any] | None:
    """Decode the ytInitialPlayerResponse object embedded in watch page HTML.

    Args:
        html: Watch page HTML.

    Returns:
        The decoded player response, or None if absent or malformed.
    """
    decoder = json.JSONDecoder()
    for match in _PLAYER_RESPONSE_RE.finditer(html):
        try:
            value, _ = decoder.raw_decode(html, match.end())
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    return None


def player_duration(player_response: dict[str, Any] | None) -> int | None:
    """Read videoDetails.lengthSeconds from a player response."""
    if not player_response:
        return None
    length = player_response.get("videoDetails", {}).get("lengthSeconds")
    try:
        return int(length) if length is not None else None
    except (TypeError, ValueError):
        return None


def caption_tracks(player_response: dict[str, Any] | None) -> list[dict[str, Any]]:
    """List caption tracks declared in a player response."""
    if not player_response:
        return []
    renderer = player_response.get("captions", {}).get(
        "playerCaptionsTracklistRenderer", {}
    )
    tracks = renderer.get("captionTracks", [])
    return [track for track in tracks if isinstance(track, dict)]


def select_audio_stream(player_response: dict[str, Any] | None) -> str | None:
    """Pick the highest quality audio-only stream URL from a player response.

    Candidates are adaptive formats whose mime type contains "audio" and
    that carry a direct URL. They are ranked by declared audio quality, then
    by bitrate.

    Args:
        player_response: Decoded player response.

    Returns:
        Stream URL, or None if there is no usable audio stream.
    """
    if not player_response:
        return None

    formats = player_response.get("streamingData", {}).get("adaptiveFormats", [])
    candidates = [
        fmt
        for fmt in formats
        if "audio" in str(fmt.get("mimeType", "")) and fmt.get("url")
    ]
    if not candidates:
        return None

    best = max(
        candidates,
        key=lambda fmt: (
            _AUDIO_QUALITY_RANK.get(str(fmt.get("audioQuality", "")), -1),
            int(fmt.get("bitrate") or 0),
        ),
    )
    logger.debug(
        f"Selected audio stream {best.get('mimeType')} ({best.get('audioQuality')})"
    )
    return str(best["url"])
