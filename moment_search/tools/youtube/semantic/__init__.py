"""Semantic transcript search module.

Provides semantic search over a single YouTube video's transcript using
remote embedding providers and an in-process cosine similarity ranking.

This module enables:
- Size-adaptive chunking that preserves segment timestamps
- Rate-limited batch embedding with OpenAI, Gemini or Hugging Face
- Adaptive similarity thresholds for result filtering
- A durable per-video cache of transcripts and embeddings

Components:
    SemanticSearchConfig: Pydantic settings for providers, batching and cache.
    TranscriptChunker: Transcript-aware text splitter preserving timestamps.
    TranscriptIndexer: Batch embedding of transcript chunks.
    IndexingResult: Dataclass for indexing operation results.
    VideoCache: Transcript and embedding cache with TTL eviction.
    VideoSearchService: Session-scoped index building and search.

Example:
    >>> from moment_search.tools.youtube.semantic import search_video_moments
    >>> results = await search_video_moments("dQw4w9WgXcQ", "nix garbage collection")
"""

from moment_search.tools.youtube.semantic.chunker import (
    TranscriptChunker,
    select_chunk_size,
)
from moment_search.tools.youtube.semantic.config import (
    SemanticSearchConfig,
    get_semantic_config,
)
from moment_search.tools.youtube.semantic.embeddings import (
    EmbeddingProvider,
    ProviderId,
    create_provider,
    embed,
    resolve_provider_config,
)
from moment_search.tools.youtube.semantic.indexer import (
    BatchProgress,
    IndexingResult,
    TranscriptIndexer,
    select_batch_size,
)
from moment_search.tools.youtube.semantic.search import dynamic_threshold, rank_chunks
from moment_search.tools.youtube.semantic.store import VideoCache
from moment_search.tools.youtube.semantic.tools import (
    SearchSession,
    VideoSearchService,
    get_service,
    search_video_moments,
)

__all__ = [
    "BatchProgress",
    "EmbeddingProvider",
    "IndexingResult",
    "ProviderId",
    "SearchSession",
    "SemanticSearchConfig",
    "TranscriptChunker",
    "TranscriptIndexer",
    "VideoCache",
    "VideoSearchService",
    "create_provider",
    "dynamic_threshold",
    "embed",
    "get_semantic_config",
    "get_service",
    "rank_chunks",
    "resolve_provider_config",
    "search_video_moments",
    "select_batch_size",
    "select_chunk_size",
]
