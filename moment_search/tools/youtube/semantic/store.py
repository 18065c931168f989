"""Durable per-video cache for transcripts and chunk embeddings.

The cache sits on a small key-value contract (``get(keys)`` returns a
partial record, ``set(record)`` writes top-level keys), the same shape as
browser extension storage. Two top-level records are used:

    transcripts: {video_id: {"transcript": [...], "source": str, "timestamp": float}}
    embeddings:  {video_id: {"embeddings": [...], "provider": str, "timestamp": float}}

Entries older than the retention window (7 days by default) are evicted by
``VideoCache.sweep`` and read as misses before that. Saving a transcript
replaces the old one wholesale and drops the video's embeddings, so cached
embeddings always derive from the cached transcript.

Backend failures surface as ``CacheError`` and are never retried here.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import defaultdict
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from moment_search.tools.youtube.errors import CacheError
from moment_search.tools.youtube.models import ChunkEmbedding, TranscriptSegment

if TYPE_CHECKING:
    from moment_search.tools.youtube.semantic.config import SemanticSearchConfig

logger = logging.getLogger(__name__)

TRANSCRIPTS_KEY = "transcripts"
EMBEDDINGS_KEY = "embeddings"


class KeyValueStore(Protocol):
    """Asynchronous key-value storage backend."""

    async def get(self, keys: list[str]) -> dict[str, Any]:
        """Return the stored values for the keys that exist."""
        ...

    async def set(self, record: dict[str, Any]) -> None:
        """Write each top-level key of record."""
        ...


class MemoryStore:
    """In-memory backend, lost when the process exits."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    async def get(self, keys: list[str]) -> dict[str, Any]:
        return {key: _copy(self._data[key]) for key in keys if key in self._data}

    async def set(self, record: dict[str, Any]) -> None:
        for key, value in record.items():
            self._data[key] = _copy(value)


class JsonFileStore:
    """Backend persisting all records to a single JSON file.

    Attributes:
        path: Location of the JSON file. Parent directories are created on
            first write.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise CacheError(f"Failed to read cache file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise CacheError(f"Cache file {self.path} does not hold a JSON object")
        return data

    def _update(self, record: dict[str, Any]) -> None:
        data = self._read()
        data.update(record)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(data), encoding="utf-8")
            tmp_path.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            raise CacheError(f"Failed to write cache file {self.path}: {e}") from e

    async def get(self, keys: list[str]) -> dict[str, Any]:
        data = await asyncio.to_thread(self._read)
        return {key: data[key] for key in keys if key in data}

    async def set(self, record: dict[str, Any]) -> None:
        await asyncio.to_thread(self._update, record)


def _copy(value: Any) -> Any:
    # Round-trip through JSON so callers never share mutable state with the
    # store, matching what a persistent backend returns.
    return json.loads(json.dumps(value))


def create_store(config: SemanticSearchConfig) -> KeyValueStore:
    """Create the backend selected by config.persist_path."""
    if config.persist_path is None:
        return MemoryStore()
    return JsonFileStore(config.persist_path)


class KeyedLocks:
    """One asyncio.Lock per key.

    Holding a video's lock while building its index means concurrent
    callers for the same video wait for the first build, then find its
    result in the cache instead of building again.
    """

    def __init__(self) -> None:
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def __call__(self, key: str) -> asyncio.Lock:
        return self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class VideoCache:
    """Per-video transcript and embedding cache with TTL eviction.

    Attributes:
        store: Storage backend.
        ttl_seconds: Retention window for every entry.
        sweep_interval: Minimum seconds between sweeps in maybe_sweep.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: float = 7 * 24 * 60 * 60,
        sweep_interval: float = 3600,
        clock: Any = time.time,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._last_sweep: float | None = None
        # Read-modify-write of a top-level record must not interleave.
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: SemanticSearchConfig) -> VideoCache:
        return cls(
            create_store(config),
            ttl_seconds=config.cache_ttl_seconds,
            sweep_interval=config.sweep_interval_seconds,
        )

    async def _get_record(self, key: str) -> dict[str, Any]:
        try:
            result = await self.store.get([key])
        except CacheError:
            raise
        except Exception as e:
            raise CacheError(f"Failed to read {key}: {e}") from e
        return result.get(key) or {}

    async def _set_records(self, record: dict[str, Any]) -> None:
        try:
            await self.store.set(record)
        except CacheError:
            raise
        except Exception as e:
            raise CacheError(f"Failed to write {', '.join(record)}: {e}") from e

    def _is_expired(self, entry: dict[str, Any], now: float) -> bool:
        return now - float(entry.get("timestamp", 0)) > self.ttl_seconds

    async def get_transcript(
        self, video_id: str
    ) -> tuple[list[TranscriptSegment], str] | None:
        """Return the cached transcript segments and their source, if fresh."""
        entry = (await self._get_record(TRANSCRIPTS_KEY)).get(video_id)
        if entry is None or self._is_expired(entry, self._clock()):
            return None
        segments = [TranscriptSegment(**item) for item in entry["transcript"]]
        return segments, str(entry.get("source", "unknown"))

    async def save_transcript(
        self,
        video_id: str,
        segments: list[TranscriptSegment],
        source: str = "unknown",
    ) -> None:
        """Store a transcript, replacing any previous one for the video.

        Embeddings cached for the video are dropped, since they were built
        from the transcript being replaced.
        """
        async with self._write_lock:
            transcripts = await self._get_record(TRANSCRIPTS_KEY)
            embeddings = await self._get_record(EMBEDDINGS_KEY)
            transcripts[video_id] = {
                "transcript": [segment.model_dump() for segment in segments],
                "source": source,
                "timestamp": self._clock(),
            }
            record: dict[str, Any] = {TRANSCRIPTS_KEY: transcripts}
            if embeddings.pop(video_id, None) is not None:
                record[EMBEDDINGS_KEY] = embeddings
            await self._set_records(record)
        logger.debug(f"Cached transcript for {video_id}: {len(segments)} segments")

    async def get_embeddings(
        self,
        video_id: str,
        provider_id: str | None = None,
    ) -> list[ChunkEmbedding] | None:
        """Return cached chunk embeddings, if fresh.

        Args:
            video_id: YouTube video ID.
            provider_id: When given, embeddings produced by another provider
                are treated as a miss.
        """
        entry = (await self._get_record(EMBEDDINGS_KEY)).get(video_id)
        if entry is None or self._is_expired(entry, self._clock()):
            return None
        if provider_id is not None and entry.get("provider") != provider_id:
            logger.info(
                f"Cached embeddings for {video_id} come from "
                f"{entry.get('provider')}, not {provider_id}; ignoring them"
            )
            return None
        return [ChunkEmbedding(**item) for item in entry["embeddings"]]

    async def save_embeddings(
        self,
        video_id: str,
        embeddings: list[ChunkEmbedding],
        provider_id: str,
    ) -> None:
        """Store chunk embeddings for a video, replacing any previous set."""
        async with self._write_lock:
            all_embeddings = await self._get_record(EMBEDDINGS_KEY)
            all_embeddings[video_id] = {
                "embeddings": [item.model_dump() for item in embeddings],
                "provider": provider_id,
                "timestamp": self._clock(),
            }
            await self._set_records({EMBEDDINGS_KEY: all_embeddings})
        logger.debug(f"Cached {len(embeddings)} embeddings for {video_id}")

    async def clear(self, video_id: str | None = None) -> int:
        """Remove cached data for one video, or for all videos.

        Returns:
            Number of entries (transcripts plus embedding sets) removed.
        """
        async with self._write_lock:
            transcripts = await self._get_record(TRANSCRIPTS_KEY)
            embeddings = await self._get_record(EMBEDDINGS_KEY)
            if video_id is None:
                removed = len(transcripts) + len(embeddings)
                transcripts, embeddings = {}, {}
            else:
                removed = int(transcripts.pop(video_id, None) is not None)
                removed += int(embeddings.pop(video_id, None) is not None)
            await self._set_records(
                {TRANSCRIPTS_KEY: transcripts, EMBEDDINGS_KEY: embeddings}
            )
        return removed

    async def sweep(self, now: float | None = None) -> int:
        """Evict entries older than the retention window.

        Returns:
            Number of entries removed.
        """
        now = self._clock() if now is None else now
        async with self._write_lock:
            transcripts = await self._get_record(TRANSCRIPTS_KEY)
            embeddings = await self._get_record(EMBEDDINGS_KEY)
            fresh_transcripts = {
                key: entry
                for key, entry in transcripts.items()
                if not self._is_expired(entry, now)
            }
            fresh_embeddings = {
                key: entry
                for key, entry in embeddings.items()
                if not self._is_expired(entry, now)
            }
            removed = (len(transcripts) - len(fresh_transcripts)) + (
                len(embeddings) - len(fresh_embeddings)
            )
            if removed:
                await self._set_records(
                    {TRANSCRIPTS_KEY: fresh_transcripts, EMBEDDINGS_KEY: fresh_embeddings}
                )
        self._last_sweep = now
        if removed:
            logger.info(f"Evicted {removed} expired cache entries")
        return removed

    async def maybe_sweep(self) -> int:
        """Sweep if the last sweep is older than sweep_interval."""
        now = self._clock()
        if self._last_sweep is not None and now - self._last_sweep < self.sweep_interval:
            return 0
        return await self.sweep(now)

    async def video_ids(self) -> list[str]:
        """List video IDs with a cached transcript."""
        return sorted((await self._get_record(TRANSCRIPTS_KEY)).keys())
