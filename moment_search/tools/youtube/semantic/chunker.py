"""Transcript-aware dynamic chunker for semantic search.

Provides a transcript-specific chunking strategy that:
- Sizes chunks from the transcript length (short transcripts get small,
  precise chunks; long ones get fewer, larger chunks)
- Coalesces adjacent segments into a character-bounded buffer
- Breaks at sentence boundaries where possible, carrying the unfinished
  sentence into the next chunk
- Keeps start_time and end_time of the segments each chunk came from

Example:
    >>> from moment_search.tools.youtube.semantic.chunker import TranscriptChunker
    >>> chunker = TranscriptChunker()
    >>> chunks = chunker.chunk_transcript(
    ...     [
    ...         TranscriptSegment(start_time=0, end_time=2, text="Hello world."),
    ...         TranscriptSegment(start_time=2, end_time=5, text="This is a test."),
    ...     ]
    ... )
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from moment_search.tools.youtube.models import Chunk

if TYPE_CHECKING:
    from moment_search.tools.youtube.models import TranscriptSegment

# Sentence terminators that are followed by whitespace or the end of the text.
_SENTENCE_END = re.compile(r"[.!?]+(?=\s|$)")

SENTENCE_FILL_RATIO = 0.8


def select_chunk_size(segment_count: int) -> int:
    """Choose the chunk character budget from the transcript length.

    Smaller chunks give more precise matches; larger chunks keep the number
    of embedding calls down on long transcripts.

    Args:
        segment_count: Number of transcript segments.

    Returns:
        350, 500, 750 or 1000 characters.
    """
    if segment_count < 50:
        return 350
    if segment_count < 200:
        return 500
    if segment_count < 500:
        return 750
    return 1000


@dataclass
class _Mark:
    """Where a segment's text starts in the buffer."""

    offset: int
    start_time: int
    end_time: int


class TranscriptChunker:
    """Coalesces transcript segments into sentence-aware chunks.

    The buffer tracks where each contributing segment starts, so a chunk
    cut mid-buffer still gets the times of the segments it actually holds.
    """

    def chunk_transcript(
        self,
        segments: list[TranscriptSegment],
        max_chars: int | None = None,
    ) -> list[Chunk]:
        """Chunk a transcript into time-ranged text chunks.

        Args:
            segments: Transcript segments ordered by start_time.
            max_chars: Character budget per chunk. Chosen with
                select_chunk_size when omitted.

        Returns:
            Chunks in transcript order.
        """
        if max_chars is None:
            max_chars = select_chunk_size(len(segments))

        chunks: list[Chunk] = []
        buffer = ""
        marks: list[_Mark] = []

        for segment in segments:
            text = segment.text.strip()
            if not text:
                continue

            if buffer and len(buffer) + 1 + len(text) > max_chars:
                buffer, marks = self._flush(buffer, marks, max_chars, chunks)

            if buffer:
                buffer += " "
            marks.append(_Mark(len(buffer), segment.start_time, segment.end_time))
            buffer += text

        if buffer:
            chunks.append(self._make_chunk(buffer, marks))

        return chunks

    def _flush(
        self,
        buffer: str,
        marks: list[_Mark],
        max_chars: int,
        chunks: list[Chunk],
    ) -> tuple[str, list[_Mark]]:
        """Emit a chunk from the buffer and return what carries over."""
        cut = self._sentence_cut(buffer, max_chars)
        if cut is None:
            chunks.append(self._make_chunk(buffer, marks))
            return "", []

        kept_marks = [mark for mark in marks if mark.offset < cut]
        chunks.append(self._make_chunk(buffer[:cut], kept_marks))

        carry_offset = len(buffer) - len(buffer[cut:].lstrip())
        carried = buffer[carry_offset:]
        if not carried:
            return "", []

        # The carried text starts inside the last segment that began at or
        # before the carry offset.
        first = [mark for mark in marks if mark.offset <= carry_offset][-1]
        carried_marks = [_Mark(0, first.start_time, first.end_time)]
        carried_marks.extend(
            _Mark(mark.offset - carry_offset, mark.start_time, mark.end_time)
            for mark in marks
            if mark.offset > carry_offset
        )
        return carried, carried_marks

    def _sentence_cut(self, buffer: str, max_chars: int) -> int | None:
        """Find where to cut the buffer at a sentence boundary.

        Returns None when the buffer holds a single sentence. Otherwise
        returns the end of the longest sentence prefix within the fill
        ratio, or the end of the first sentence if even that is too long.
        """
        ends = [match.end() for match in _SENTENCE_END.finditer(buffer)]
        inner_ends = [end for end in ends if end < len(buffer)]
        if not inner_ends:
            return None

        limit = max_chars * SENTENCE_FILL_RATIO
        fitting = [end for end in ends if len(buffer[:end]) <= limit]
        return fitting[-1] if fitting else inner_ends[0]

    def _make_chunk(self, text: str, marks: list[_Mark]) -> Chunk:
        start_time = marks[0].start_time
        end_time = max(start_time, marks[-1].end_time)
        return Chunk(text=text.strip(), start_time=start_time, end_time=end_time)
