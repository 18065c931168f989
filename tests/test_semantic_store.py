"""Unit tests for the per-video transcript and embedding cache."""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from moment_search.tools.youtube.errors import CacheError
from moment_search.tools.youtube.models import ChunkEmbedding, TranscriptSegment
from moment_search.tools.youtube.semantic.config import SemanticSearchConfig
from moment_search.tools.youtube.semantic.store import (
    EMBEDDINGS_KEY,
    TRANSCRIPTS_KEY,
    JsonFileStore,
    KeyedLocks,
    MemoryStore,
    VideoCache,
    create_store,
)

DAY = 24 * 60 * 60


class FakeClock:
    """Settable time source."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def video_cache(clock: FakeClock) -> VideoCache:
    return VideoCache(MemoryStore(), ttl_seconds=7 * DAY, clock=clock)


@pytest.fixture
def embeddings() -> list[ChunkEmbedding]:
    return [
        ChunkEmbedding(text="first", start_time=0, end_time=5, embedding=[0.1, 0.2]),
        ChunkEmbedding(text="second", start_time=5, end_time=9, embedding=[0.3, 0.4]),
    ]


class TestTranscripts:
    """Tests for transcript caching."""

    @pytest.mark.asyncio
    async def test_round_trip(
        self, video_cache: VideoCache, sample_segments: list[TranscriptSegment]
    ) -> None:
        """Test that a saved transcript reads back unchanged."""
        await video_cache.save_transcript("abc", sample_segments, "captions_api")

        cached = await video_cache.get_transcript("abc")

        assert cached is not None
        segments, source = cached
        assert segments == sample_segments
        assert source == "captions_api"

    @pytest.mark.asyncio
    async def test_miss(self, video_cache: VideoCache) -> None:
        """Test that an unknown video is a miss."""
        assert await video_cache.get_transcript("missing") is None

    @pytest.mark.asyncio
    async def test_overwrite_replaces_wholesale(
        self, video_cache: VideoCache, sample_segments: list[TranscriptSegment]
    ) -> None:
        """Test that saving again replaces the old transcript entirely."""
        await video_cache.save_transcript("abc", sample_segments)
        replacement = [TranscriptSegment(start_time=0, end_time=2, text="new")]

        await video_cache.save_transcript("abc", replacement)

        cached = await video_cache.get_transcript("abc")
        assert cached is not None
        assert cached[0] == replacement

    @pytest.mark.asyncio
    async def test_saving_transcript_drops_embeddings(
        self,
        video_cache: VideoCache,
        sample_segments: list[TranscriptSegment],
        embeddings: list[ChunkEmbedding],
    ) -> None:
        """Test that embeddings built from an old transcript are discarded."""
        await video_cache.save_transcript("abc", sample_segments)
        await video_cache.save_embeddings("abc", embeddings, "openai")

        await video_cache.save_transcript("abc", sample_segments[:1])

        assert await video_cache.get_embeddings("abc") is None

    @pytest.mark.asyncio
    async def test_other_videos_untouched(
        self, video_cache: VideoCache, sample_segments: list[TranscriptSegment]
    ) -> None:
        """Test that saving one video leaves others in place."""
        await video_cache.save_transcript("abc", sample_segments)
        await video_cache.save_transcript("def", sample_segments[:2])

        assert await video_cache.video_ids() == ["abc", "def"]


class TestEmbeddings:
    """Tests for embedding caching."""

    @pytest.mark.asyncio
    async def test_round_trip(
        self, video_cache: VideoCache, embeddings: list[ChunkEmbedding]
    ) -> None:
        """Test that saved embeddings read back in order."""
        await video_cache.save_embeddings("abc", embeddings, "openai")

        assert await video_cache.get_embeddings("abc", "openai") == embeddings

    @pytest.mark.asyncio
    async def test_provider_mismatch_is_miss(
        self, video_cache: VideoCache, embeddings: list[ChunkEmbedding]
    ) -> None:
        """Test that vectors from another provider are not reused."""
        await video_cache.save_embeddings("abc", embeddings, "openai")

        assert await video_cache.get_embeddings("abc", "gemini") is None
        assert await video_cache.get_embeddings("abc") == embeddings


class TestExpiry:
    """Tests for TTL eviction."""

    @pytest.mark.asyncio
    async def test_expired_entry_reads_as_miss(
        self,
        video_cache: VideoCache,
        clock: FakeClock,
        sample_segments: list[TranscriptSegment],
    ) -> None:
        """Test that an entry past the window is a miss before any sweep."""
        await video_cache.save_transcript("abc", sample_segments)

        clock.now += 8 * DAY

        assert await video_cache.get_transcript("abc") is None

    @pytest.mark.asyncio
    async def test_sweep_removes_only_expired(
        self,
        video_cache: VideoCache,
        clock: FakeClock,
        sample_segments: list[TranscriptSegment],
        embeddings: list[ChunkEmbedding],
    ) -> None:
        """Test that the sweep evicts old entries and keeps fresh ones."""
        await video_cache.save_transcript("old", sample_segments)
        await video_cache.save_embeddings("old", embeddings, "openai")
        clock.now += 6 * DAY
        await video_cache.save_transcript("new", sample_segments)
        clock.now += 2 * DAY

        removed = await video_cache.sweep()

        assert removed == 2
        assert await video_cache.video_ids() == ["new"]
        assert await video_cache.get_transcript("new") is not None

    @pytest.mark.asyncio
    async def test_maybe_sweep_runs_after_interval(
        self,
        clock: FakeClock,
        sample_segments: list[TranscriptSegment],
    ) -> None:
        """Test that a sweep runs again once the interval has passed."""
        video_cache = VideoCache(
            MemoryStore(), ttl_seconds=DAY, sweep_interval=3600, clock=clock
        )
        await video_cache.save_transcript("abc", sample_segments)
        await video_cache.maybe_sweep()

        clock.now += 2 * DAY
        first = await video_cache.maybe_sweep()
        await video_cache.save_transcript("def", sample_segments)
        clock.now += 2 * DAY
        assert first == 1

        assert await video_cache.maybe_sweep() == 1

    @pytest.mark.asyncio
    async def test_maybe_sweep_skips_within_interval(
        self, video_cache: VideoCache, clock: FakeClock
    ) -> None:
        """Test that a second call inside the interval does nothing."""
        store_get = AsyncMock(wraps=video_cache.store.get)
        video_cache.store.get = store_get

        await video_cache.maybe_sweep()
        calls_after_first = store_get.await_count
        clock.now += 60
        await video_cache.maybe_sweep()

        assert store_get.await_count == calls_after_first


class TestClear:
    """Tests for explicit cache clearing."""

    @pytest.mark.asyncio
    async def test_clear_one_video(
        self,
        video_cache: VideoCache,
        sample_segments: list[TranscriptSegment],
        embeddings: list[ChunkEmbedding],
    ) -> None:
        """Test clearing a single video's transcript and embeddings."""
        await video_cache.save_transcript("abc", sample_segments)
        await video_cache.save_embeddings("abc", embeddings, "openai")
        await video_cache.save_transcript("def", sample_segments)

        removed = await video_cache.clear("abc")

        assert removed == 2
        assert await video_cache.video_ids() == ["def"]

    @pytest.mark.asyncio
    async def test_clear_all(
        self, video_cache: VideoCache, sample_segments: list[TranscriptSegment]
    ) -> None:
        """Test clearing every video."""
        await video_cache.save_transcript("abc", sample_segments)
        await video_cache.save_transcript("def", sample_segments)

        assert await video_cache.clear() == 2
        assert await video_cache.video_ids() == []


class TestBackends:
    """Tests for storage backends and failure propagation."""

    @pytest.mark.asyncio
    async def test_memory_store_returns_copies(self) -> None:
        """Test that mutating a read value does not change the store."""
        store = MemoryStore()
        await store.set({TRANSCRIPTS_KEY: {"abc": {"transcript": []}}})

        value = await store.get([TRANSCRIPTS_KEY])
        value[TRANSCRIPTS_KEY]["abc"]["transcript"].append("mutated")

        assert await store.get([TRANSCRIPTS_KEY]) == {
            TRANSCRIPTS_KEY: {"abc": {"transcript": []}}
        }

    @pytest.mark.asyncio
    async def test_json_file_store_persists(
        self,
        tmp_path: Path,
        sample_segments: list[TranscriptSegment],
        embeddings: list[ChunkEmbedding],
    ) -> None:
        """Test that a new cache over the same file sees earlier writes."""
        path = tmp_path / "nested" / "cache.json"
        first = VideoCache(JsonFileStore(path))
        await first.save_transcript("abc", sample_segments, "transcript_panel")
        await first.save_embeddings("abc", embeddings, "gemini")

        second = VideoCache(JsonFileStore(path))

        cached = await second.get_transcript("abc")
        assert cached is not None
        assert cached == (sample_segments, "transcript_panel")
        assert await second.get_embeddings("abc", "gemini") == embeddings

    @pytest.mark.asyncio
    async def test_json_file_store_io_runs_off_event_loop(
        self, tmp_path: Path
    ) -> None:
        """Test that file reads and writes happen in a worker thread."""
        loop_thread = threading.get_ident()
        io_threads: list[int] = []

        class RecordingStore(JsonFileStore):
            def _read(self) -> dict:
                io_threads.append(threading.get_ident())
                return super()._read()

        store = RecordingStore(tmp_path / "cache.json")
        await store.set({TRANSCRIPTS_KEY: {"abc": {"transcript": []}}})
        assert await store.get([TRANSCRIPTS_KEY]) == {
            TRANSCRIPTS_KEY: {"abc": {"transcript": []}}
        }

        assert len(io_threads) == 2
        assert loop_thread not in io_threads

    @pytest.mark.asyncio
    async def test_json_file_store_corrupt_file(self, tmp_path: Path) -> None:
        """Test that an unreadable file raises CacheError."""
        path = tmp_path / "cache.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(CacheError):
            await VideoCache(JsonFileStore(path)).get_transcript("abc")

    @pytest.mark.asyncio
    async def test_backend_failure_wrapped(
        self, sample_segments: list[TranscriptSegment]
    ) -> None:
        """Test that arbitrary backend errors surface as CacheError."""
        store = MagicMock()
        store.get = AsyncMock(return_value={})
        store.set = AsyncMock(side_effect=RuntimeError("quota exceeded"))

        with pytest.raises(CacheError, match="quota exceeded"):
            await VideoCache(store).save_transcript("abc", sample_segments)

    def test_create_store_from_config(self, tmp_path: Path) -> None:
        """Test backend selection from persist_path."""
        memory = create_store(SemanticSearchConfig(persist_path=None))
        persistent = create_store(
            SemanticSearchConfig(persist_path=str(tmp_path / "cache.json"))
        )

        assert isinstance(memory, MemoryStore)
        assert isinstance(persistent, JsonFileStore)
        assert persistent.path == tmp_path / "cache.json"

    @pytest.mark.asyncio
    async def test_records_use_top_level_keys(
        self, video_cache: VideoCache, embeddings: list[ChunkEmbedding]
    ) -> None:
        """Test the stored record layout."""
        await video_cache.save_embeddings("abc", embeddings, "openai")

        raw = await video_cache.store.get([EMBEDDINGS_KEY])

        entry = raw[EMBEDDINGS_KEY]["abc"]
        assert entry["provider"] == "openai"
        assert entry["timestamp"] == 1_000_000.0
        assert len(entry["embeddings"]) == 2


class TestKeyedLocks:
    """Tests for per-key locking."""

    def test_same_key_same_lock(self) -> None:
        """Test that a key always maps to one lock."""
        locks = KeyedLocks()

        assert locks("abc") is locks("abc")
        assert locks("abc") is not locks("def")
        assert len(locks) == 2

    @pytest.mark.asyncio
    async def test_serializes_same_key(self) -> None:
        """Test that holders of one key never overlap."""
        locks = KeyedLocks()
        active = 0
        peak = 0

        async def worker() -> None:
            nonlocal active, peak
            async with locks("abc"):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0)
                active -= 1

        await asyncio.gather(*(worker() for _ in range(5)))

        assert peak == 1
