"""Semantic search over a video's chunk embeddings.

The query is embedded with the same provider that produced the chunk
embeddings, every chunk is scored by cosine similarity, and the ranked list
is cut with a threshold that adapts to the query:

    threshold = max(min_similarity, best_similarity * relative_similarity)

With the defaults (0.3, 0.6) a precise query with a 0.9 best match keeps
only results above 0.54, while a vague query whose best match is 0.4 keeps
everything above 0.3. A fixed cutoff would either return nothing for vague
queries or too much for precise ones.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from moment_search.tools.youtube.errors import NoEmbeddingsAvailable
from moment_search.tools.youtube.models import SearchResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from moment_search.tools.youtube.models import ChunkEmbedding
    from moment_search.tools.youtube.semantic.embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)

MAX_RESULTS = 8
MIN_SIMILARITY = 0.3
RELATIVE_SIMILARITY = 0.6


def cosine_similarities(
    query_vector: Sequence[float],
    vectors: Sequence[Sequence[float]],
) -> np.ndarray:
    """Cosine similarity between a query vector and each row of vectors.

    Rows (or a query) with zero magnitude score 0.
    """
    matrix = np.asarray(vectors, dtype=np.float64)
    query = np.asarray(query_vector, dtype=np.float64)

    dots = matrix @ query
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    safe_norms = np.where(norms == 0, 1.0, norms)
    return np.where(norms == 0, 0.0, dots / safe_norms)


def dynamic_threshold(
    best_similarity: float,
    min_similarity: float = MIN_SIMILARITY,
    relative_similarity: float = RELATIVE_SIMILARITY,
) -> float:
    """Similarity cutoff scaled from the best match of a query."""
    return max(min_similarity, best_similarity * relative_similarity)


def rank_chunks(
    query_vector: Sequence[float],
    chunk_embeddings: Sequence[ChunkEmbedding],
    max_results: int = MAX_RESULTS,
    min_similarity: float = MIN_SIMILARITY,
    relative_similarity: float = RELATIVE_SIMILARITY,
) -> list[SearchResult]:
    """Score, sort and filter chunks against an already embedded query.

    Args:
        query_vector: Query embedding.
        chunk_embeddings: Chunks to rank.
        max_results: Maximum number of results.
        min_similarity: Lowest threshold ever applied.
        relative_similarity: Fraction of the best similarity used as cutoff.

    Returns:
        Results strictly above the dynamic threshold, best first.
    """
    if not chunk_embeddings:
        return []

    scores = cosine_similarities(
        query_vector, [item.embedding for item in chunk_embeddings]
    )
    # Stable sort keeps transcript order among equal scores.
    order = np.argsort(-scores, kind="stable")

    best = float(scores[order[0]])
    threshold = dynamic_threshold(best, min_similarity, relative_similarity)

    results: list[SearchResult] = []
    for index in order:
        similarity = float(scores[index])
        if similarity <= threshold:
            break
        item = chunk_embeddings[index]
        results.append(
            SearchResult(
                start_time=item.start_time,
                end_time=item.end_time,
                text=item.text,
                similarity=similarity,
            )
        )
        if len(results) >= max_results:
            break

    logger.debug(
        f"Ranked {len(chunk_embeddings)} chunks: best={best:.3f}, "
        f"threshold={threshold:.3f}, kept={len(results)}"
    )
    return results


async def search(
    query: str,
    chunk_embeddings: Sequence[ChunkEmbedding],
    provider: EmbeddingProvider,
    max_results: int = MAX_RESULTS,
    min_similarity: float = MIN_SIMILARITY,
    relative_similarity: float = RELATIVE_SIMILARITY,
) -> list[SearchResult]:
    """Find the chunks most relevant to a natural language query.

    Args:
        query: Search query.
        chunk_embeddings: Cached chunk embeddings of one video.
        provider: Provider that produced the chunk embeddings.
        max_results: Maximum number of results.
        min_similarity: Lowest threshold ever applied.
        relative_similarity: Fraction of the best similarity used as cutoff.

    Returns:
        Results ordered by descending similarity.

    Raises:
        NoEmbeddingsAvailable: If chunk_embeddings is empty.
        ProviderError: If embedding the query fails.
    """
    if not chunk_embeddings:
        raise NoEmbeddingsAvailable()

    query_vector = await provider.embed(query)
    return rank_chunks(
        query_vector,
        chunk_embeddings,
        max_results=max_results,
        min_similarity=min_similarity,
        relative_similarity=relative_similarity,
    )
