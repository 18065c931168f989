#!/usr/bin/env python3
"""Video Moment Search MCP Server with RefCache Integration.

Finds the moments in a YouTube video where a topic is discussed, using
semantic search over the video's transcript.

Features:
- Transcript acquisition with fallbacks (captions API, transcript panel,
  audio transcription via Deepgram)
- Size-adaptive chunking with timestamp preservation
- Batch embedding with OpenAI, Gemini or Hugging Face
- Adaptive similarity threshold for result filtering
- Durable per-video cache with 7 day retention
- Reference-based caching of large transcripts with pagination

Usage:
    # Install dependencies
    uv sync

    # Run with stdio (for Claude Desktop / Zed)
    uv run moment-search

    # Run with SSE (for web clients / debugging)
    uv run moment-search --transport sse --port 8000

Claude Desktop Configuration:
    Add to your claude_desktop_config.json:
    {
        "mcpServers": {
            "moment-search": {
                "command": "uv",
                "args": ["run", "moment-search"],
                "env": {"MOMENT_SEARCH_OPENAI_API_KEY": "sk-..."}
            }
        }
    }
"""

from __future__ import annotations

import argparse
import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

# =============================================================================
# Check for FastMCP availability
# =============================================================================

try:
    from fastmcp import FastMCP
except ImportError:
    print(
        "Error: FastMCP is not installed. Install with:\n  uv sync\n",
        file=sys.stderr,
    )
    sys.exit(1)

# =============================================================================
# Import mcp-refcache components
# =============================================================================

from mcp_refcache import (
    CacheResponse,
    PreviewConfig,
    PreviewStrategy,
    RefCache,
)
from mcp_refcache.fastmcp import (
    cache_guide_prompt,
    cache_instructions,
    register_admin_tools,
    with_cache_docs,
)

from moment_search.tools.youtube.errors import (
    ConfigurationError,
    MomentSearchError,
)
from moment_search.tools.youtube.semantic import tools as semantic_tools

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

# =============================================================================
# Initialize FastMCP Server
# =============================================================================


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Close the shared HTTP client when the server stops."""
    try:
        yield
    finally:
        await semantic_tools.close_service()


mcp = FastMCP(
    name="Video Moment Search",
    lifespan=lifespan,
    instructions=f"""Find the moments in a YouTube video where a topic is discussed.

Available tools:
- search_video: Semantic search of a video's spoken content, with timestamped links
- index_video: Build a video's searchable index ahead of the first query
- get_video_transcript: Get a video's transcript segments (cached, paginated)
- resolve_embedding_provider: Show which embedding provider is active
- clear_video_cache: Drop cached transcripts and embeddings
- sweep_video_cache: Evict cache entries older than the retention window
- get_cached_result: Retrieve or paginate through cached results

{cache_instructions()}
""",
)

# =============================================================================
# Initialize RefCache
# =============================================================================

# Transcripts of long videos run to thousands of segments
cache = RefCache(
    name="moment-search",
    default_ttl=3600,  # 1 hour TTL
    preview_config=PreviewConfig(
        max_size=64,  # Max 64 tokens in previews
        default_strategy=PreviewStrategy.SAMPLE,  # Sample large collections
    ),
)

# =============================================================================
# Pydantic Models for Tool Inputs
# =============================================================================


class VideoSearchInput(BaseModel):
    """Input model for video searches."""

    video_id: str = Field(
        description="YouTube video ID (11 characters)",
        min_length=1,
    )
    query: str = Field(
        description="Natural language description of the moment to find",
        min_length=1,
        max_length=1000,
    )
    surface_id: str = Field(
        default="default",
        description="Client surface issuing the search; a new search cancels the previous one",
    )


class CacheQueryInput(BaseModel):
    """Input model for cache queries."""

    ref_id: str = Field(
        description="Reference ID to look up",
    )
    page: int | None = Field(
        default=None,
        ge=1,
        description="Page number for pagination (1-indexed)",
    )
    page_size: int | None = Field(
        default=None,
        ge=1,
        le=100,
        description="Number of items per page",
    )
    max_size: int | None = Field(
        default=None,
        ge=1,
        description="Maximum preview size (tokens/chars). Overrides defaults.",
    )


# =============================================================================
# Tool Implementations
# =============================================================================


@mcp.tool
async def search_video(
    video_id: str,
    query: str,
    page: dict[str, Any] | None = None,
    surface_id: str = "default",
) -> dict[str, Any]:
    """Find the moments in a video that match a natural language query.

    The first search of a video acquires its transcript and embeds it, which
    can take a while for long videos. Later searches reuse the cache.

    Args:
        video_id: YouTube video ID (e.g., "dQw4w9WgXcQ").
        query: What to look for (e.g., "where they explain the GC pauses").
        page: Optional snapshot of the watch page scraped by a browser client
            (transcript_segments, player_response, media_source_url, duration).
        surface_id: Client surface issuing the search.

    Returns:
        Matching moments, best first, each with start_time, end_time, text,
        similarity and a timestamp_url that opens the video at that moment.
    """
    validated = VideoSearchInput(video_id=video_id, query=query, surface_id=surface_id)
    try:
        return await semantic_tools.search_video_moments(
            video_id=validated.video_id,
            query=validated.query,
            page=page,
            surface_id=validated.surface_id,
        )
    except MomentSearchError as e:
        logger.warning(f"search_video failed for {validated.video_id}: {e}")
        return {
            "error": type(e).__name__,
            "message": str(e),
            "video_id": validated.video_id,
            "query": validated.query,
        }


@mcp.tool
async def index_video(
    video_id: str,
    page: dict[str, Any] | None = None,
    force_reindex: bool = False,
) -> dict[str, Any]:
    """Build a video's searchable index without running a query.

    Args:
        video_id: YouTube video ID.
        page: Optional snapshot of the watch page scraped by a browser client.
        force_reindex: Rebuild even if the video is cached.

    Returns:
        Indexing statistics: transcript source, segment, chunk and embedded
        counts, and whether the cache was used.
    """
    try:
        return await semantic_tools.index_video_transcript(
            video_id=video_id, page=page, force_reindex=force_reindex
        )
    except MomentSearchError as e:
        return {
            "error": type(e).__name__,
            "message": str(e),
            "video_id": video_id,
        }


@mcp.tool
@cache.cached(namespace="transcripts")
async def get_video_transcript(
    video_id: str,
    page: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """Get the full transcript of a video as timestamped segments.

    Args:
        video_id: YouTube video ID.
        page: Optional snapshot of the watch page scraped by a browser client.

    Returns:
        Segments with start_time, end_time, text and timestamp_url.

    **Caching:** Large transcripts are cached in the transcripts namespace.

    **Pagination:** Use `page` and `page_size` on get_cached_result to navigate.
    """
    return await semantic_tools.get_video_transcript(video_id=video_id, page=page)


@mcp.tool
def resolve_embedding_provider() -> dict[str, Any]:
    """Show which embedding provider searches will use.

    Returns:
        The active provider, the stored preference and every provider with
        a configured API key.
    """
    try:
        return semantic_tools.resolve_embedding_provider()
    except ConfigurationError as e:
        return {"error": "Not configured", "message": str(e)}


@mcp.tool
async def clear_video_cache(video_id: str | None = None) -> dict[str, Any]:
    """Drop cached transcripts and embeddings.

    Args:
        video_id: Video to clear. Clears every video when omitted.

    Returns:
        Number of cache entries removed.
    """
    return await semantic_tools.clear_video_cache(video_id)


@mcp.tool
async def sweep_video_cache() -> dict[str, Any]:
    """Evict cache entries older than the retention window.

    Returns:
        Number of cache entries removed and the retention window in seconds.
    """
    return await semantic_tools.sweep_video_cache()


@mcp.tool
@with_cache_docs(accepts_references=True, supports_pagination=True)
async def get_cached_result(
    ref_id: str,
    page: int | None = None,
    page_size: int | None = None,
    max_size: int | None = None,
) -> dict[str, Any]:
    """Retrieve a cached result, optionally with pagination.

    Use this to:
    - Get a preview of a cached transcript
    - Paginate through long transcripts
    - Access the full value of a cached result

    Args:
        ref_id: Reference ID to look up.
        page: Page number (1-indexed).
        page_size: Items per page.
        max_size: Maximum preview size (overrides defaults).

    Returns:
        The cached value or a preview with pagination info.

    **Caching:** Large results are returned as references with previews.

    **Pagination:** Use `page` and `page_size` to navigate results.

    **References:** This tool accepts `ref_id` from previous tool calls.
    """
    validated = CacheQueryInput(
        ref_id=ref_id, page=page, page_size=page_size, max_size=max_size
    )

    try:
        response: CacheResponse = cache.get(
            validated.ref_id,
            page=validated.page,
            page_size=validated.page_size,
            actor="agent",
        )

        result: dict[str, Any] = {
            "ref_id": validated.ref_id,
            "preview": response.preview,
            "preview_strategy": response.preview_strategy.value,
            "total_items": response.total_items,
        }

        if response.page is not None:
            result["page"] = response.page
            result["total_pages"] = response.total_pages

        if response.original_size:
            result["original_size"] = response.original_size
            result["preview_size"] = response.preview_size

        return result

    except (PermissionError, KeyError):
        return {
            "error": "Invalid or inaccessible reference",
            "message": "Reference not found, expired, or access denied",
            "ref_id": validated.ref_id,
        }


# =============================================================================
# Health Check
# =============================================================================


@mcp.tool
def health_check() -> dict[str, Any]:
    """Check server health status.

    Returns:
        Health status information.
    """
    try:
        provider: str | None = semantic_tools.resolve_embedding_provider()["provider"]
    except ConfigurationError:
        provider = None

    return {
        "status": "healthy" if provider else "degraded",
        "server": "moment-search",
        "cache": cache.name,
        "embedding_provider": provider,
    }


# =============================================================================
# Admin Tools (Permission-Gated)
# =============================================================================


async def is_admin(ctx: Any) -> bool:
    """Check if the current context has admin privileges.

    No client is trusted with admin access.
    """
    return False


# Register admin tools with the cache
_admin_tools = register_admin_tools(
    mcp,
    cache,
    admin_check=is_admin,
    prefix="admin_",
    include_dangerous=False,
)


# =============================================================================
# Prompts for Guidance
# =============================================================================


@mcp.prompt
def moment_search_guide() -> str:
    """Guide for finding moments in videos with this server."""
    return f"""# Video Moment Search Guide

## Quick Start

1. **Search a Video**
   Use `search_video` with a video ID and a description of the moment:
   - `search_video("dQw4w9WgXcQ", "where they talk about giving up")`
   - Returns up to 8 moments, best first, each with a `timestamp_url`

2. **Pre-index Long Videos**
   The first search of a long video embeds its whole transcript:
   - `index_video("dQw4w9WgXcQ")` builds the index ahead of time
   - `index_video("dQw4w9WgXcQ", force_reindex=True)` rebuilds it

3. **Read the Transcript**
   Use `get_video_transcript` for the raw segments:
   - Returns ref_id + preview for long transcripts
   - `get_cached_result(ref_id, page=2, page_size=50)` to paginate

## Results

Only moments well above the best match's similarity are kept, so a
precise query returns a few strong matches while a vague one returns
more. An empty result means nothing in the video was close enough.

## Configuration

Set one of `MOMENT_SEARCH_OPENAI_API_KEY`, `MOMENT_SEARCH_GEMINI_API_KEY` or
`MOMENT_SEARCH_HUGGINGFACE_API_KEY`. Set `MOMENT_SEARCH_DEEPGRAM_API_KEY`
to transcribe videos without captions.

---

{cache_guide_prompt()}
"""


# =============================================================================
# Main Entry Point
# =============================================================================


def main() -> None:
    """Run the MCP server."""
    parser = argparse.ArgumentParser(
        description="Video Moment Search MCP Server with RefCache",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse"],
        default="stdio",
        help="Transport mode (default: stdio for Claude Desktop)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for SSE transport (default: 8000)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host for SSE transport (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    args = parser.parse_args()

    # stdout carries the stdio transport, so logs go to stderr
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.transport == "stdio":
        mcp.run(transport="stdio")
    else:
        mcp.run(
            transport="sse",
            host=args.host,
            port=args.port,
        )


if __name__ == "__main__":
    main()
