"""Transcript acquisition for YouTube videos.

A transcript is obtained by trying several strategies in priority order,
each normalizing its source into ``TranscriptSegment`` lists:

1. ``CaptionsApiStrategy``: the platform captions API (youtube-transcript-api).
2. ``TranscriptPanelStrategy``: caption rows rendered in the page's transcript
   panel, with the player response's caption track as a fallback.
3. ``AudioTranscriptionStrategy``: the best audio stream sent to Deepgram.

The first non-empty result wins; results are never merged. A failing strategy
is logged and skipped. Only when every strategy comes back empty does the
acquirer raise ``NoTranscriptAvailable``.

Example:
    >>> acquirer = TranscriptAcquirer.default(config, client)
    >>> transcript = await acquirer.acquire("dQw4w9WgXcQ", page=snapshot)
    >>> print(transcript.source, len(transcript.segments))
"""

from __future__ import annotations

import asyncio
import logging
import math
import xml.etree.ElementTree as ElementTree
from typing import TYPE_CHECKING, Protocol

import httpx
from youtube_transcript_api import YouTubeTranscriptApi

from moment_search.tools.youtube.deepgram import DeepgramTranscriber
from moment_search.tools.youtube.errors import NoTranscriptAvailable
from moment_search.tools.youtube.models import Transcript, TranscriptSegment
from moment_search.tools.youtube.page import (
    HostPage,
    RenderedSegment,
    caption_tracks,
    parse_timestamp,
    select_audio_stream,
)
from moment_search.tools.youtube.retry import linear_backoff, retry

if TYPE_CHECKING:
    from moment_search.tools.youtube.semantic.config import SemanticSearchConfig

logger = logging.getLogger(__name__)

VIDEO_ID_LENGTH = 11


class PanelNotReady(Exception):
    """The transcript panel has not rendered any rows yet."""


def validate_video_id(video_id: str) -> str:
    """Validate a YouTube video ID.

    Args:
        video_id: Candidate video ID.

    Returns:
        The stripped video ID.

    Raises:
        ValueError: If the ID is empty or not 11 characters long.
    """
    if not video_id or not video_id.strip():
        raise ValueError("video_id must be a non-empty string")
    video_id = video_id.strip()
    if len(video_id) != VIDEO_ID_LENGTH:
        raise ValueError(
            f"Invalid video ID format: {video_id!r} "
            f"(expected {VIDEO_ID_LENGTH} characters)"
        )
    return video_id


class TranscriptStrategy(Protocol):
    """One way of obtaining a transcript."""

    name: str

    async def fetch(
        self, video_id: str, page: HostPage | None
    ) -> list[TranscriptSegment]:
        """Return transcript segments, or an empty list if unavailable."""
        ...


class CaptionsApiStrategy:
    """Fetch captions through the platform's transcript API."""

    name = "captions_api"

    def __init__(self, languages: list[str] | None = None) -> None:
        self.languages = languages or ["en"]

    async def fetch(
        self, video_id: str, page: HostPage | None
    ) -> list[TranscriptSegment]:
        # The client library is synchronous; keep the event loop free while it runs.
        fetched = await asyncio.to_thread(
            YouTubeTranscriptApi().fetch, video_id, languages=self.languages
        )

        segments: list[TranscriptSegment] = []
        for entry in fetched.to_raw_data():
            text = str(entry.get("text", "")).strip()
            if not text:
                continue
            start = float(entry.get("start", 0.0))
            duration = float(entry.get("duration", 0.0))
            segments.append(
                TranscriptSegment(
                    start_time=math.floor(start),
                    end_time=math.floor(start + duration),
                    text=text,
                )
            )
        return segments


def rendered_to_segments(
    rendered: list[RenderedSegment],
    estimated_duration: int = 5,
) -> list[TranscriptSegment]:
    """Convert transcript panel rows into segments.

    Rows only carry a start time, so each segment is given a fixed
    estimated duration. Rows without a parseable time or text are skipped.
    """
    segments: list[TranscriptSegment] = []
    for row in rendered:
        text = row.text.strip()
        if not text:
            continue

        start = row.start_seconds
        if start is None and row.timestamp:
            start = parse_timestamp(row.timestamp)
        if start is None:
            continue

        segments.append(
            TranscriptSegment(
                start_time=start,
                end_time=start + estimated_duration,
                text=text,
            )
        )
    return segments


def parse_caption_track_xml(
    xml_text: str,
    default_duration: float = 5.0,
) -> list[TranscriptSegment]:
    """Parse a timedtext caption track (``<text start dur>`` elements)."""
    root = ElementTree.fromstring(xml_text)

    segments: list[TranscriptSegment] = []
    for element in root.iter("text"):
        text = "".join(element.itertext()).strip()
        if not text:
            continue
        start = float(element.get("start", "0"))
        duration = float(element.get("dur", default_duration))
        segments.append(
            TranscriptSegment(
                start_time=math.floor(start),
                end_time=math.floor(start + duration),
                text=text,
            )
        )
    return segments


class TranscriptPanelStrategy:
    """Read the transcript panel rendered on the host page.

    If the panel is closed, the page is asked to open it and then polled
    with a bounded linear backoff. If the panel never yields rows, the
    first caption track declared in the player response is fetched instead.
    """

    name = "transcript_panel"

    def __init__(
        self,
        config: SemanticSearchConfig,
        client: httpx.AsyncClient,
    ) -> None:
        self.config = config
        self.client = client

    async def fetch(
        self, video_id: str, page: HostPage | None
    ) -> list[TranscriptSegment]:
        if page is None:
            return []

        segments = await self._read_panel(page)
        if segments:
            return segments

        return await self._read_caption_track(page)

    async def _read_panel(self, page: HostPage) -> list[TranscriptSegment]:
        estimated = self.config.estimated_segment_seconds

        rendered = await page.transcript_panel_segments()
        if rendered:
            return rendered_to_segments(rendered, estimated)

        if not await page.open_transcript_panel():
            return []

        async def poll() -> list[RenderedSegment]:
            rows = await page.transcript_panel_segments()
            if not rows:
                raise PanelNotReady()
            return rows

        try:
            rendered = await retry(
                poll,
                max_attempts=self.config.panel_poll_attempts,
                backoff=linear_backoff(
                    self.config.panel_poll_base_delay,
                    self.config.panel_poll_step,
                ),
                retry_on=PanelNotReady,
            )
        except PanelNotReady:
            logger.info(
                f"Transcript panel did not load after "
                f"{self.config.panel_poll_attempts} attempts"
            )
            return []

        return rendered_to_segments(rendered, estimated)

    async def _read_caption_track(self, page: HostPage) -> list[TranscriptSegment]:
        tracks = caption_tracks(await page.player_response())
        if not tracks or not tracks[0].get("baseUrl"):
            return []

        response = await self.client.get(str(tracks[0]["baseUrl"]))
        response.raise_for_status()
        return parse_caption_track_xml(
            response.text, float(self.config.estimated_segment_seconds)
        )


class AudioTranscriptionStrategy:
    """Transcribe the video's audio stream with Deepgram."""

    name = "audio_transcription"

    def __init__(self, transcriber: DeepgramTranscriber) -> None:
        self.transcriber = transcriber

    async def fetch(
        self, video_id: str, page: HostPage | None
    ) -> list[TranscriptSegment]:
        if page is None or not self.transcriber.is_configured:
            return []

        audio_url = select_audio_stream(await page.player_response())
        if audio_url is None:
            audio_url = await page.media_source_url()
        if audio_url is None:
            logger.info(f"No audio stream URL found for {video_id}")
            return []

        duration = await page.video_duration()
        return await self.transcriber.transcribe(audio_url, duration)


class TranscriptAcquirer:
    """Obtains a transcript by trying strategies in priority order.

    Attributes:
        strategies: Strategies in the order they are tried.
    """

    def __init__(self, strategies: list[TranscriptStrategy]) -> None:
        self.strategies = strategies

    @classmethod
    def default(
        cls,
        config: SemanticSearchConfig,
        client: httpx.AsyncClient,
    ) -> TranscriptAcquirer:
        """Build the standard captions -> panel -> audio strategy chain."""
        return cls(
            [
                CaptionsApiStrategy(config.transcript_languages),
                TranscriptPanelStrategy(config, client),
                AudioTranscriptionStrategy(DeepgramTranscriber(config, client)),
            ]
        )

    async def acquire(
        self,
        video_id: str,
        page: HostPage | None = None,
    ) -> Transcript:
        """Acquire a transcript for a video.

        Args:
            video_id: YouTube video ID.
            page: Host page collaborator, if one is available.

        Returns:
            Transcript from the first strategy that produced segments.

        Raises:
            NoTranscriptAvailable: If every strategy failed or came back empty.
        """
        for strategy in self.strategies:
            try:
                segments = await strategy.fetch(video_id, page)
            except Exception as e:
                logger.warning(
                    f"Transcript strategy {strategy.name} failed for {video_id}: {e}"
                )
                continue

            if segments:
                logger.info(
                    f"Acquired transcript for {video_id} via {strategy.name}: "
                    f"{len(segments)} segments"
                )
                return Transcript(
                    video_id=video_id,
                    segments=sorted(segments, key=lambda s: s.start_time),
                    source=strategy.name,
                )
            logger.debug(f"Transcript strategy {strategy.name} found nothing")

        raise NoTranscriptAvailable(video_id)
