"""Unit tests for semantic transcript chunker.

Tests size-adaptive chunking, sentence-boundary carry-over and timestamp
preservation.
"""

from __future__ import annotations

import pytest

from moment_search.tools.youtube.models import TranscriptSegment
from moment_search.tools.youtube.semantic.chunker import (
    TranscriptChunker,
    select_chunk_size,
)


def _segments(texts: list[str], step: int = 4) -> list[TranscriptSegment]:
    return [
        TranscriptSegment(start_time=i * step, end_time=(i + 1) * step, text=text)
        for i, text in enumerate(texts)
    ]


class TestSelectChunkSize:
    """Tests for transcript-length based chunk sizing."""

    @pytest.mark.parametrize(
        ("segment_count", "expected"),
        [
            (0, 350),
            (40, 350),
            (49, 350),
            (50, 500),
            (100, 500),
            (199, 500),
            (200, 750),
            (300, 750),
            (499, 750),
            (500, 1000),
            (600, 1000),
        ],
    )
    def test_bucket_edges(self, segment_count: int, expected: int) -> None:
        """Test each bucket and its lower edge."""
        assert select_chunk_size(segment_count) == expected


class TestBasicChunking:
    """Tests for basic chunking behavior."""

    def test_empty_transcript(self) -> None:
        """Test that no segments produce no chunks."""
        assert TranscriptChunker().chunk_transcript([]) == []

    def test_short_transcript_single_chunk(
        self, sample_segments: list[TranscriptSegment]
    ) -> None:
        """Test that a short transcript fits in one chunk spanning all segments."""
        chunks = TranscriptChunker().chunk_transcript(sample_segments)

        assert len(chunks) == 1
        assert chunks[0].start_time == 0
        assert chunks[0].end_time == 15
        assert chunks[0].text == " ".join(s.text for s in sample_segments)

    def test_blank_segments_skipped(self) -> None:
        """Test that whitespace-only segments contribute nothing."""
        segments = [
            TranscriptSegment(start_time=0, end_time=2, text="   "),
            TranscriptSegment(start_time=2, end_time=5, text="Hello there."),
        ]

        chunks = TranscriptChunker().chunk_transcript(segments)

        assert len(chunks) == 1
        assert chunks[0].text == "Hello there."
        assert chunks[0].start_time == 2
        assert chunks[0].end_time == 5

    def test_oversized_segment_kept_whole(self) -> None:
        """Test that a single segment longer than the budget is not split."""
        text = "word " * 100
        segments = [TranscriptSegment(start_time=0, end_time=30, text=text)]

        chunks = TranscriptChunker().chunk_transcript(segments, max_chars=50)

        assert len(chunks) == 1
        assert chunks[0].text == text.strip()


class TestCoverage:
    """Tests that chunking loses and reorders nothing."""

    def test_every_segment_text_covered_in_order(self) -> None:
        """Test that chunks concatenate back to the transcript text."""
        texts = [f"segment number {i} talks about topic {i % 7}" for i in range(100)]
        segments = _segments(texts)

        chunks = TranscriptChunker().chunk_transcript(segments)

        assert len(chunks) > 1
        assert " ".join(c.text for c in chunks) == " ".join(texts)

    def test_chunks_respect_budget(self) -> None:
        """Test that chunks built from short segments stay within max_chars."""
        segments = _segments([f"short piece {i}" for i in range(100)])

        chunks = TranscriptChunker().chunk_transcript(segments, max_chars=120)

        assert all(len(c.text) <= 120 for c in chunks)

    def test_start_times_monotonic(self) -> None:
        """Test that chunk start times never decrease."""
        texts = [f"Sentence {i} ends here. And {i} goes on" for i in range(80)]
        chunks = TranscriptChunker().chunk_transcript(_segments(texts))

        starts = [c.start_time for c in chunks]
        assert starts == sorted(starts)
        assert all(c.start_time <= c.end_time for c in chunks)

    def test_larger_transcripts_get_larger_chunks(self) -> None:
        """Test that the default budget grows with the transcript."""
        short = _segments([f"piece {i} of text" for i in range(40)])
        long = _segments([f"piece {i} of text" for i in range(600)])

        short_chunks = TranscriptChunker().chunk_transcript(short)
        long_chunks = TranscriptChunker().chunk_transcript(long)

        assert max(len(c.text) for c in short_chunks) <= 350
        assert max(len(c.text) for c in long_chunks) > 350


class TestSentenceBoundaries:
    """Tests for sentence-aware cutting."""

    def test_unfinished_sentence_carried_over(self) -> None:
        """Test that text after the last full sentence opens the next chunk."""
        segments = [
            TranscriptSegment(
                start_time=0, end_time=4, text="First sentence is here. Second one"
            ),
            TranscriptSegment(
                start_time=4, end_time=8, text="continues on and on for a while."
            ),
        ]

        chunks = TranscriptChunker().chunk_transcript(segments, max_chars=60)

        assert [c.text for c in chunks] == [
            "First sentence is here.",
            "Second one continues on and on for a while.",
        ]
        assert (chunks[0].start_time, chunks[0].end_time) == (0, 4)
        # The carried text began inside the first segment
        assert (chunks[1].start_time, chunks[1].end_time) == (0, 8)

    def test_no_terminator_flushes_whole_buffer(self) -> None:
        """Test that a buffer with no sentence end is emitted as is."""
        segments = _segments(["aaaa bbbb cccc", "dddd eeee"])

        chunks = TranscriptChunker().chunk_transcript(segments, max_chars=20)

        assert [c.text for c in chunks] == ["aaaa bbbb cccc", "dddd eeee"]
        assert (chunks[1].start_time, chunks[1].end_time) == (4, 8)

    def test_at_least_one_sentence_per_cut(self) -> None:
        """Test that a first sentence longer than the fill ratio still cuts."""
        segments = _segments(
            [
                "This opening sentence is quite long indeed. Then",
                "more words follow here",
            ]
        )

        chunks = TranscriptChunker().chunk_transcript(segments, max_chars=50)

        assert chunks[0].text == "This opening sentence is quite long indeed."
        assert chunks[1].text == "Then more words follow here"
