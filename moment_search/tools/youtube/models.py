"""Data models shared by transcript acquisition, chunking and search."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class TranscriptSegment(BaseModel):
    """A time-stamped piece of transcript text, at second granularity."""

    start_time: int = Field(ge=0, description="Segment start in seconds.")
    end_time: int = Field(ge=0, description="Segment end in seconds.")
    text: str

    @model_validator(mode="after")
    def check_time_order(self) -> TranscriptSegment:
        """Ensure end_time is not before start_time."""
        if self.end_time < self.start_time:
            raise ValueError(
                f"end_time ({self.end_time}) must be >= start_time ({self.start_time})"
            )
        return self


class Transcript(BaseModel):
    """An ordered transcript for one video.

    Attributes:
        video_id: YouTube video ID.
        segments: Segments ordered by start_time.
        source: Name of the strategy that produced the transcript.
    """

    video_id: str
    segments: list[TranscriptSegment]
    source: str = "unknown"

    def __len__(self) -> int:
        return len(self.segments)


class Chunk(BaseModel):
    """A run of adjacent transcript segments, the unit of embedding."""

    text: str
    start_time: int
    end_time: int


class ChunkEmbedding(Chunk):
    """A chunk together with its embedding vector."""

    embedding: list[float]


class SearchResult(BaseModel):
    """A ranked match for one query."""

    start_time: int
    end_time: int
    text: str
    similarity: float


def create_timestamp_url(video_id: str, start_time: float) -> str:
    """Create a YouTube URL that seeks to start_time.

    Args:
        video_id: YouTube video ID.
        start_time: Start time in seconds.

    Returns:
        YouTube URL with timestamp parameter (e.g., https://www.youtube.com/watch?v=abc&t=123).
    """
    seconds = int(start_time)
    return f"https://www.youtube.com/watch?v={video_id}&t={seconds}"
