"""Audio transcription fallback via Deepgram.

Used when a video has neither captions nor a rendered transcript panel: the
audio stream URL is handed to Deepgram, and the word-level response is grouped
into segments whose size depends on the video's duration. Short videos get
small, precise segments; long videos get larger ones.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from moment_search.tools.youtube.errors import ProviderError
from moment_search.tools.youtube.models import TranscriptSegment
from moment_search.tools.youtube.page import parse_duration

if TYPE_CHECKING:
    from moment_search.tools.youtube.semantic.config import SemanticSearchConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkingParams:
    """Word grouping limits for one duration bucket.

    Attributes:
        segment_duration: Seconds after which a segment is closed.
        max_words: Word count at which a segment is closed.
        description: Bucket name.
    """

    segment_duration: int
    max_words: int
    description: str


def get_dynamic_chunking_params(
    duration: str | float | int | None,
) -> ChunkingParams:
    """Choose word grouping limits from the video duration.

    Bucket edges are exclusive on the upper side: exactly 10 minutes is
    "medium", exactly 60 minutes is "very_long".

    Args:
        duration: Seconds, or an MM:SS / HH:MM:SS label. None counts as 0.

    Returns:
        ChunkingParams for the matching bucket.
    """
    minutes = parse_duration(duration) / 60

    if minutes < 10:
        return ChunkingParams(segment_duration=5, max_words=8, description="short")
    if minutes < 30:
        return ChunkingParams(segment_duration=8, max_words=12, description="medium")
    if minutes < 60:
        return ChunkingParams(segment_duration=12, max_words=18, description="long")
    return ChunkingParams(segment_duration=15, max_words=25, description="very_long")


def _word_text(word: dict[str, Any]) -> str:
    return str(word.get("punctuated_word") or word.get("word") or "").strip()


def _group_words(
    words: list[dict[str, Any]],
    params: ChunkingParams,
) -> list[TranscriptSegment]:
    segments: list[TranscriptSegment] = []
    current_words: list[str] = []
    current_start = 0.0
    current_end = 0.0

    def close() -> None:
        segments.append(
            TranscriptSegment(
                start_time=math.floor(current_start),
                end_time=max(math.floor(current_end), math.floor(current_start)),
                text=" ".join(current_words),
            )
        )

    for word in words:
        text = _word_text(word)
        if not text:
            continue
        word_start = float(word["start"])
        word_end = float(word["end"])

        if current_words:
            elapsed = word_start - current_start
            if elapsed >= params.segment_duration or len(current_words) >= params.max_words:
                close()
                current_words = []

        if not current_words:
            current_start = word_start
        current_words.append(text)
        current_end = word_end

    if current_words:
        close()

    return segments


def parse_deepgram_response(
    data: dict[str, Any],
    duration: str | float | int | None = None,
) -> list[TranscriptSegment]:
    """Parse a Deepgram listen response into transcript segments.

    Word-level timings are preferred. Without them, paragraph sentences are
    used, and as a last resort the whole transcript becomes one segment at 0.

    Args:
        data: Decoded Deepgram JSON response.
        duration: Video duration used to pick grouping limits.

    Returns:
        Transcript segments, empty if the response has no text.
    """
    channels = data.get("results", {}).get("channels") or []
    if not channels:
        return []
    alternatives = channels[0].get("alternatives") or []
    if not alternatives:
        return []
    alternative = alternatives[0]

    words = alternative.get("words") or []
    if words:
        params = get_dynamic_chunking_params(duration)
        logger.debug(
            f"Grouping {len(words)} words with {params.description} params "
            f"({params.segment_duration}s / {params.max_words} words)"
        )
        segments = _group_words(words, params)
        if segments:
            return segments

    paragraphs = (alternative.get("paragraphs") or {}).get("paragraphs") or []
    segments = [
        TranscriptSegment(
            start_time=math.floor(sentence["start"]),
            end_time=max(math.floor(sentence["end"]), math.floor(sentence["start"])),
            text=str(sentence["text"]).strip(),
        )
        for paragraph in paragraphs
        for sentence in paragraph.get("sentences") or []
        if str(sentence.get("text", "")).strip()
    ]
    if segments:
        return segments

    text = str(alternative.get("transcript") or "").strip()
    if text:
        return [TranscriptSegment(start_time=0, end_time=0, text=text)]
    return []


class DeepgramTranscriber:
    """Client for Deepgram's pre-recorded audio endpoint.

    Attributes:
        config: Semantic search configuration with Deepgram settings.
        client: Shared HTTP client.
    """

    def __init__(self, config: SemanticSearchConfig, client: httpx.AsyncClient) -> None:
        self.config = config
        self.client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.config.deepgram_api_key)

    async def transcribe(
        self,
        audio_stream_url: str,
        duration: str | float | int | None = None,
    ) -> list[TranscriptSegment]:
        """Transcribe an audio stream URL.

        Args:
            audio_stream_url: Direct URL of the audio stream.
            duration: Video duration used to size segments.

        Returns:
            Transcript segments.

        Raises:
            ProviderError: If Deepgram is not configured or the call fails.
        """
        if not self.config.deepgram_api_key:
            raise ProviderError(None, "Deepgram API key not configured", "deepgram")

        params = {
            "model": self.config.deepgram_model,
            "language": self.config.deepgram_language,
            "smart_format": "true",
            "punctuate": "true",
            "paragraphs": "true",
            "utterances": "true",
            "timestamps": "true",
        }
        try:
            response = await self.client.post(
                self.config.deepgram_url,
                params=params,
                headers={"Authorization": f"Token {self.config.deepgram_api_key}"},
                json={"url": audio_stream_url},
                timeout=self.config.deepgram_timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise ProviderError(None, str(e), "deepgram") from e

        if not response.is_success:
            raise ProviderError(response.status_code, response.text, "deepgram")

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(
                response.status_code, "Malformed JSON response", "deepgram"
            ) from e

        return parse_deepgram_response(data, duration)
