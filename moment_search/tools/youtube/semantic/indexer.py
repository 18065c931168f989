"""Batch embedding of transcript chunks.

Drives an embedding provider across every chunk of a transcript:
- Batch size scales with the number of chunks (sequential for short
  transcripts, up to 15 concurrent calls for very long ones)
- Calls within a batch run concurrently; batches run one after another
  with a short pause to stay under provider rate limits
- Each chunk carries its index through the batch, so results come back in
  transcript order regardless of completion order
- A chunk whose call fails is dropped, never retried or padded
- Progress is reported before each batch, and a cancellation event is
  honored between batches

Example:
    >>> indexer = TranscriptIndexer(provider, config)
    >>> embeddings = await indexer.embed_all(
    ...     chunks, progress=lambda p: print(p.describe())
    ... )
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from moment_search.tools.youtube.errors import ProviderError, SearchCancelled
from moment_search.tools.youtube.models import ChunkEmbedding

if TYPE_CHECKING:
    from moment_search.tools.youtube.models import Chunk
    from moment_search.tools.youtube.semantic.config import SemanticSearchConfig
    from moment_search.tools.youtube.semantic.embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)


def select_batch_size(chunk_count: int) -> int:
    """Choose how many embedding calls to run concurrently.

    Args:
        chunk_count: Number of chunks to embed.

    Returns:
        1 (sequential), 5, 10 or 15.
    """
    if chunk_count < 50:
        return 1
    if chunk_count < 200:
        return 5
    if chunk_count < 500:
        return 10
    return 15


@dataclass(frozen=True)
class BatchProgress:
    """Progress of a batch embedding run.

    Attributes:
        batch: 1-based number of the batch about to run.
        total_batches: Number of batches in the run.
        first_chunk: 1-based index of the batch's first chunk.
        last_chunk: 1-based index of the batch's last chunk.
        total_chunks: Number of chunks in the run.
    """

    batch: int
    total_batches: int
    first_chunk: int
    last_chunk: int
    total_chunks: int

    def describe(self) -> str:
        """Render as "batch N/M, chunks a–b/total"."""
        return (
            f"batch {self.batch}/{self.total_batches}, "
            f"chunks {self.first_chunk}–{self.last_chunk}/{self.total_chunks}"
        )

    def __str__(self) -> str:
        return self.describe()


ProgressCallback = Callable[[BatchProgress], None]


@dataclass
class IndexingResult:
    """Result of building the searchable index for one video.

    Attributes:
        video_id: YouTube video ID.
        provider: Embedding provider used.
        transcript_source: Strategy that produced the transcript, or "cache".
        segment_count: Number of transcript segments.
        chunk_count: Number of chunks created.
        embedded_count: Number of chunks successfully embedded.
        dropped_count: Number of chunks whose embedding call failed.
        from_cache: True if the embeddings were already cached.
        embeddings: The chunk embeddings, in transcript order.
    """

    video_id: str
    provider: str
    transcript_source: str = "cache"
    segment_count: int = 0
    chunk_count: int = 0
    embedded_count: int = 0
    dropped_count: int = 0
    from_cache: bool = False
    embeddings: list[ChunkEmbedding] = field(default_factory=list, repr=False)

    def to_dict(self) -> dict[str, str | int | bool]:
        """Convert to dictionary for API responses.

        Returns:
            Dictionary representation of the indexing result.
        """
        return {
            "video_id": self.video_id,
            "provider": self.provider,
            "transcript_source": self.transcript_source,
            "segment_count": self.segment_count,
            "chunk_count": self.chunk_count,
            "embedded_count": self.embedded_count,
            "dropped_count": self.dropped_count,
            "from_cache": self.from_cache,
        }


class TranscriptIndexer:
    """Embeds transcript chunks in rate-limited concurrent batches.

    Attributes:
        provider: Embedding provider used for every chunk.
        batch_delay: Seconds to pause between batches.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        config: SemanticSearchConfig | None = None,
        batch_delay: float | None = None,
    ) -> None:
        """Initialize the indexer.

        Args:
            provider: Embedding provider instance.
            config: Configuration supplying the default batch delay.
            batch_delay: Explicit batch delay, overriding config.
        """
        self.provider = provider
        if batch_delay is None:
            batch_delay = config.batch_delay_seconds if config is not None else 0.1
        self.batch_delay = batch_delay

    async def embed_all(
        self,
        chunks: list[Chunk],
        progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[ChunkEmbedding]:
        """Embed every chunk, preserving transcript order.

        Args:
            chunks: Chunks to embed.
            progress: Called with a BatchProgress before each batch.
            cancel_event: When set, the run stops at the next batch boundary.

        Returns:
            One ChunkEmbedding per successfully embedded chunk, in the order
            of the input chunks.

        Raises:
            SearchCancelled: If cancel_event is set between batches.
        """
        if not chunks:
            return []

        batch_size = select_batch_size(len(chunks))
        total_batches = (len(chunks) + batch_size - 1) // batch_size
        results: list[tuple[int, ChunkEmbedding]] = []

        for batch_number, batch_start in enumerate(
            range(0, len(chunks), batch_size), start=1
        ):
            if cancel_event is not None and cancel_event.is_set():
                raise SearchCancelled(
                    f"Embedding cancelled before batch {batch_number}/{total_batches}"
                )

            if batch_number > 1 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

            batch = list(
                enumerate(chunks[batch_start : batch_start + batch_size], start=batch_start)
            )
            status = BatchProgress(
                batch=batch_number,
                total_batches=total_batches,
                first_chunk=batch_start + 1,
                last_chunk=batch_start + len(batch),
                total_chunks=len(chunks),
            )
            logger.debug(f"Embedding with {self.provider.name}: {status}")
            if progress is not None:
                progress(status)

            outcomes = await asyncio.gather(
                *(self._embed_indexed(index, chunk) for index, chunk in batch)
            )
            results.extend(outcome for outcome in outcomes if outcome is not None)

        results.sort(key=lambda item: item[0])
        embeddings = [embedding for _, embedding in results]

        dropped = len(chunks) - len(embeddings)
        logger.info(
            f"Embedded {len(embeddings)}/{len(chunks)} chunks with "
            f"{self.provider.name} in {total_batches} batches"
            + (f" ({dropped} dropped)" if dropped else "")
        )
        return embeddings

    async def _embed_indexed(
        self, index: int, chunk: Chunk
    ) -> tuple[int, ChunkEmbedding] | None:
        try:
            vector = await self.provider.embed(chunk.text)
        except ProviderError as e:
            logger.warning(f"Dropping chunk {index + 1}: {e}")
            return None

        return index, ChunkEmbedding(
            text=chunk.text,
            start_time=chunk.start_time,
            end_time=chunk.end_time,
            embedding=vector,
        )
