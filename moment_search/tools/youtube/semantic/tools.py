"""Search sessions and tool functions for semantic video moment search.

A search runs inside an explicit ``SearchSession`` (video, resolved
provider, host page, progress callback, cancellation event) instead of
ambient "current video" state, so sessions from different tabs never
collide. ``VideoSearchService`` owns the shared resources (HTTP client,
cache, per-video locks) and builds each video's index at most once at a
time.

Tools:
    search_video_moments: Search one video with a natural language query.
    index_video_transcript: Build (or reuse) a video's searchable index.
    get_video_transcript: Return a video's transcript segments.
    resolve_embedding_provider: Report which provider would be used.
    clear_video_cache: Drop cached data for one or all videos.
    sweep_video_cache: Evict expired cache entries.

Example:
    >>> results = await search_video_moments(
    ...     video_id="dQw4w9WgXcQ",
    ...     query="where do they talk about garbage collection",
    ... )
    >>> print(results["results"][0]["timestamp_url"])
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import httpx

from moment_search.tools.youtube.errors import (
    NoEmbeddingsAvailable,
    NoTranscriptAvailable,
)
from moment_search.tools.youtube.models import Transcript, create_timestamp_url
from moment_search.tools.youtube.page import PageSnapshot, WatchPage
from moment_search.tools.youtube.semantic.chunker import (
    TranscriptChunker,
    select_chunk_size,
)
from moment_search.tools.youtube.semantic.config import (
    SemanticSearchConfig,
    get_semantic_config,
)
from moment_search.tools.youtube.semantic.embeddings import (
    create_provider,
    resolve_provider_config,
)
from moment_search.tools.youtube.semantic.indexer import (
    IndexingResult,
    ProgressCallback,
    TranscriptIndexer,
)
from moment_search.tools.youtube.semantic.search import search as search_chunks
from moment_search.tools.youtube.semantic.store import KeyedLocks, VideoCache
from moment_search.tools.youtube.transcripts import (
    TranscriptAcquirer,
    validate_video_id,
)

if TYPE_CHECKING:
    from moment_search.tools.youtube.models import SearchResult
    from moment_search.tools.youtube.page import HostPage
    from moment_search.tools.youtube.semantic.embeddings import EmbeddingProvider
    from moment_search.tools.youtube.semantic.indexer import BatchProgress

logger = logging.getLogger(__name__)


@dataclass
class SearchSession:
    """Context for searches against one video.

    Attributes:
        video_id: YouTube video ID.
        provider: Embedding provider resolved when the session was opened.
        page: Host page collaborator for transcript acquisition.
        progress: Receives batch progress while embeddings are built.
        cancel_event: Set when the session is superseded.
    """

    video_id: str
    provider: EmbeddingProvider
    page: HostPage | None = None
    progress: ProgressCallback | None = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    def cancel(self) -> None:
        """Abandon in-flight work at the next batch boundary."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


class VideoSearchService:
    """Builds per-video indexes and answers queries against them.

    Attributes:
        config: Semantic search configuration.
        cache: Transcript and embedding cache.
        client: Shared HTTP client for providers and page fetches.
        acquirer: Transcript acquisition strategy chain.
        chunker: Transcript chunker.
    """

    def __init__(
        self,
        config: SemanticSearchConfig,
        cache: VideoCache,
        client: httpx.AsyncClient,
        acquirer: TranscriptAcquirer | None = None,
        chunker: TranscriptChunker | None = None,
    ) -> None:
        self.config = config
        self.cache = cache
        self.client = client
        self.acquirer = acquirer or TranscriptAcquirer.default(config, client)
        self.chunker = chunker or TranscriptChunker()
        self.locks = KeyedLocks()
        self._active: dict[str, SearchSession] = {}

    def open_session(
        self,
        video_id: str,
        page: HostPage | None = None,
        progress: ProgressCallback | None = None,
        surface_id: str | None = None,
    ) -> SearchSession:
        """Open a search session for a video.

        The provider is resolved here, before any transcript work starts, so
        a missing credential fails fast.

        Args:
            video_id: YouTube video ID.
            page: Host page collaborator. Defaults to the public watch page.
            progress: Batch progress callback.
            surface_id: Identifies the UI surface issuing searches. Opening a
                session cancels the surface's previous session.

        Returns:
            A new SearchSession.

        Raises:
            ValueError: If video_id is malformed.
            ConfigurationError: If no embedding provider is configured.
        """
        video_id = validate_video_id(video_id)
        provider = create_provider(
            resolve_provider_config(self.config), self.client, self.config
        )
        session = SearchSession(
            video_id=video_id,
            provider=provider,
            page=page if page is not None else WatchPage(video_id, self.client),
            progress=progress,
        )

        if surface_id is not None:
            previous = self._active.get(surface_id)
            if previous is not None and not previous.cancelled:
                logger.info(
                    f"Superseding session for {previous.video_id} on {surface_id}"
                )
                previous.cancel()
            self._active[surface_id] = session

        return session

    async def _load_transcript(
        self, video_id: str, page: HostPage | None
    ) -> Transcript:
        # Callers hold the video's lock.
        cached = await self.cache.get_transcript(video_id)
        if cached is not None:
            segments, _source = cached
            logger.debug(f"Transcript cache hit for {video_id}")
            return Transcript(video_id=video_id, segments=segments, source="cache")

        transcript = await self.acquirer.acquire(video_id, page)
        await self.cache.save_transcript(
            video_id, transcript.segments, transcript.source
        )
        return transcript

    async def get_transcript(
        self, video_id: str, page: HostPage | None = None
    ) -> Transcript:
        """Return the cached transcript, acquiring and caching it on a miss.

        Runs under the video's lock, so a transcript saved here never
        replaces the one an in-flight index build is embedding.

        Args:
            video_id: YouTube video ID.
            page: Host page collaborator. Defaults to the public watch page.

        Raises:
            ValueError: If video_id is malformed.
            NoTranscriptAvailable: If no transcript could be acquired.
        """
        video_id = validate_video_id(video_id)
        if page is None:
            page = WatchPage(video_id, self.client)
        async with self.locks(video_id):
            return await self._load_transcript(video_id, page)

    async def build_index(
        self,
        session: SearchSession,
        force_reindex: bool = False,
    ) -> IndexingResult:
        """Build or reuse the searchable index of the session's video.

        Runs under the video's lock: a concurrent build for the same video
        waits, then finds this build's result in the cache.

        Args:
            session: Search session.
            force_reindex: Re-acquire the transcript and re-embed it even if
                cached.

        Returns:
            IndexingResult holding the chunk embeddings.

        Raises:
            NoTranscriptAvailable: If no transcript could be acquired.
            NoEmbeddingsAvailable: If no chunk could be embedded.
            SearchCancelled: If the session was superseded mid-build.
            CacheError: If the cache backend fails.
        """
        video_id = session.video_id
        provider_name = session.provider.name

        async with self.locks(video_id):
            await self.cache.maybe_sweep()

            if force_reindex:
                await self.cache.clear(video_id)
            else:
                cached = await self.cache.get_embeddings(video_id, provider_name)
                if cached:
                    logger.debug(f"Embedding cache hit for {video_id}")
                    return IndexingResult(
                        video_id=video_id,
                        provider=provider_name,
                        chunk_count=len(cached),
                        embedded_count=len(cached),
                        from_cache=True,
                        embeddings=cached,
                    )

            transcript = await self._load_transcript(video_id, session.page)
            max_chars = select_chunk_size(len(transcript.segments))
            chunks = self.chunker.chunk_transcript(transcript.segments, max_chars)
            logger.info(
                f"Chunked {len(transcript.segments)} segments of {video_id} into "
                f"{len(chunks)} chunks of <= {max_chars} chars"
            )

            indexer = TranscriptIndexer(session.provider, self.config)
            embeddings = await indexer.embed_all(
                chunks, progress=session.progress, cancel_event=session.cancel_event
            )
            if not embeddings:
                raise NoEmbeddingsAvailable(video_id)

            await self.cache.save_embeddings(video_id, embeddings, provider_name)

        return IndexingResult(
            video_id=video_id,
            provider=provider_name,
            transcript_source=transcript.source,
            segment_count=len(transcript.segments),
            chunk_count=len(chunks),
            embedded_count=len(embeddings),
            dropped_count=len(chunks) - len(embeddings),
            embeddings=embeddings,
        )

    async def search(self, session: SearchSession, query: str) -> list[SearchResult]:
        """Search the session's video for a query.

        Raises:
            ValueError: If query is empty.
            NoTranscriptAvailable: If no transcript could be acquired.
            NoEmbeddingsAvailable: If the video has no usable embeddings.
            ProviderError: If embedding the query fails.
        """
        query = query.strip()
        if not query:
            raise ValueError("query must be a non-empty string")

        index = await self.build_index(session)
        results = await search_chunks(
            query,
            index.embeddings,
            session.provider,
            max_results=self.config.max_results,
            min_similarity=self.config.min_similarity,
            relative_similarity=self.config.relative_similarity,
        )
        logger.info(
            f"Search complete: {len(results)} results for query {query!r} "
            f"in {session.video_id}"
        )
        return results

    async def aclose(self) -> None:
        """Close the shared HTTP client."""
        await self.client.aclose()


@lru_cache
def get_service() -> VideoSearchService:
    """Get the process-wide VideoSearchService.

    Created on first use from the cached configuration. Call
    get_service.cache_clear() to rebuild it after a configuration change.
    """
    config = get_semantic_config()
    return VideoSearchService(
        config=config,
        cache=VideoCache.from_config(config),
        client=httpx.AsyncClient(
            timeout=config.http_timeout_seconds, follow_redirects=True
        ),
    )


async def close_service() -> None:
    """Close the process-wide service if it was created, then forget it."""
    if get_service.cache_info().currsize == 0:
        return
    await get_service().aclose()
    get_service.cache_clear()


def _log_progress(video_id: str) -> ProgressCallback:
    def report(progress: BatchProgress) -> None:
        logger.info(f"Embedding {video_id}: {progress.describe()}")

    return report


def _format_result(video_id: str, result: SearchResult) -> dict[str, Any]:
    return {
        "start_time": result.start_time,
        "end_time": result.end_time,
        "text": result.text,
        "similarity": round(result.similarity, 4),
        "timestamp_url": create_timestamp_url(video_id, result.start_time),
    }


async def search_video_moments(
    video_id: str,
    query: str,
    page: PageSnapshot | dict[str, Any] | None = None,
    surface_id: str = "default",
) -> dict[str, Any]:
    """Search a video's spoken content and return the matching moments.

    Builds the video's index on first use (transcript acquisition, chunking
    and batch embedding), then answers the query from the cache.

    Args:
        video_id: YouTube video ID (e.g., "dQw4w9WgXcQ").
        query: Natural language query.
        page: Optional snapshot of the host page scraped by a browser client.
        surface_id: UI surface issuing the search. A new search from the same
            surface cancels the previous one.

    Returns:
        Dictionary with search results:
            - video_id: The searched video
            - query: The original query
            - provider: Embedding provider used
            - results: Matches with start_time, end_time, text, similarity
              and timestamp_url
            - total_results: Number of results returned
            - error: Present when no transcript or embeddings were available
    """
    logger.info(f"search_video_moments called: video_id={video_id}, query={query!r}")

    service = get_service()
    session = service.open_session(
        video_id,
        page=_as_page(page),
        progress=_log_progress(video_id),
        surface_id=surface_id,
    )

    try:
        results = await service.search(session, query)
    except (NoTranscriptAvailable, NoEmbeddingsAvailable) as e:
        logger.warning(f"Search failed for {session.video_id}: {e}")
        return {
            "video_id": session.video_id,
            "query": query,
            "provider": session.provider.name,
            "results": [],
            "total_results": 0,
            "error": str(e),
        }

    formatted = [_format_result(session.video_id, result) for result in results]
    return {
        "video_id": session.video_id,
        "query": query,
        "provider": session.provider.name,
        "results": formatted,
        "total_results": len(formatted),
    }


async def index_video_transcript(
    video_id: str,
    page: PageSnapshot | dict[str, Any] | None = None,
    force_reindex: bool = False,
) -> dict[str, Any]:
    """Build a video's searchable index ahead of the first query.

    Args:
        video_id: YouTube video ID.
        page: Optional snapshot of the host page.
        force_reindex: Rebuild even if cached.

    Returns:
        IndexingResult as a dictionary.
    """
    logger.info(
        f"index_video_transcript called: video_id={video_id}, "
        f"force_reindex={force_reindex}"
    )
    service = get_service()
    session = service.open_session(
        video_id, page=_as_page(page), progress=_log_progress(video_id)
    )
    result = await service.build_index(session, force_reindex=force_reindex)
    return result.to_dict()


async def get_video_transcript(
    video_id: str,
    page: PageSnapshot | dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """Return a video's transcript segments, acquiring them if needed."""
    transcript = await get_service().get_transcript(video_id, page=_as_page(page))
    return [
        {
            **segment.model_dump(),
            "timestamp_url": create_timestamp_url(
                transcript.video_id, segment.start_time
            ),
        }
        for segment in transcript.segments
    ]


def resolve_embedding_provider() -> dict[str, Any]:
    """Report the embedding provider searches would use."""
    config = get_semantic_config()
    provider_config = resolve_provider_config(config)
    configured = [name for name, key in config.provider_keys.items() if key]
    return {
        "provider": provider_config.provider_id.value,
        "preferred": config.preferred_embedding_provider,
        "configured": configured,
    }


async def clear_video_cache(video_id: str | None = None) -> dict[str, Any]:
    """Drop cached transcripts and embeddings for one video, or all."""
    removed = await get_service().cache.clear(video_id)
    return {"video_id": video_id, "entries_removed": removed}


async def sweep_video_cache() -> dict[str, Any]:
    """Evict cache entries past the retention window."""
    service = get_service()
    removed = await service.cache.sweep()
    return {
        "entries_removed": removed,
        "ttl_seconds": service.cache.ttl_seconds,
    }


def _as_page(page: PageSnapshot | dict[str, Any] | None) -> PageSnapshot | None:
    if page is None or isinstance(page, PageSnapshot):
        return page
    return PageSnapshot.model_validate(page)
