"""Pytest configuration and fixtures for moment-search tests."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from moment_search.tools.youtube.models import TranscriptSegment
from moment_search.tools.youtube.semantic.config import SemanticSearchConfig

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture(autouse=True)
def clear_semantic_caches() -> Generator[None, None, None]:
    """Reset the cached config and service singletons around each test.

    Otherwise a service built from one test's environment (or HTTP client)
    leaks into the next test.
    """
    from moment_search.tools.youtube.semantic.config import get_semantic_config
    from moment_search.tools.youtube.semantic.tools import get_service

    get_service.cache_clear()
    get_semantic_config.cache_clear()

    yield

    get_service.cache_clear()
    get_semantic_config.cache_clear()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer credentials out of the tests."""
    for name in (
        "MOMENT_SEARCH_OPENAI_API_KEY",
        "MOMENT_SEARCH_HUGGINGFACE_API_KEY",
        "MOMENT_SEARCH_GEMINI_API_KEY",
        "MOMENT_SEARCH_DEEPGRAM_API_KEY",
        "MOMENT_SEARCH_PREFERRED_EMBEDDING_PROVIDER",
        "MOMENT_SEARCH_PERSIST_PATH",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config() -> SemanticSearchConfig:
    """Configuration with an OpenAI key, in-memory cache and no delays."""
    return SemanticSearchConfig(
        openai_api_key="sk-test",
        persist_path=None,
        batch_delay_seconds=0,
        panel_poll_base_delay=0,
        panel_poll_step=0,
    )


@pytest.fixture
def sample_segments() -> list[TranscriptSegment]:
    """A short transcript about Nix."""
    return [
        TranscriptSegment(start_time=0, end_time=3, text="Welcome to this video."),
        TranscriptSegment(
            start_time=3, end_time=7, text="Today we talk about garbage collection."
        ),
        TranscriptSegment(
            start_time=7, end_time=11, text="The Nix store grows over time."
        ),
        TranscriptSegment(
            start_time=11, end_time=15, text="Run nix-collect-garbage to clean it."
        ),
    ]


def keyword_vector(text: str) -> list[float]:
    """Deterministic 3-d embedding: garbage, store, everything else."""
    lowered = text.lower()
    return [
        1.0 if "garbage" in lowered else 0.0,
        1.0 if "store" in lowered else 0.0,
        0.1,
    ]


@pytest.fixture
def embed_calls() -> list[str]:
    """Texts sent to the mocked embedding API, in request order."""
    return []


@pytest.fixture
def openai_client(embed_calls: list[str]) -> httpx.AsyncClient:
    """HTTP client answering every request like the OpenAI embeddings API."""

    def handler(request: httpx.Request) -> httpx.Response:
        body: dict[str, Any] = json.loads(request.content)
        embed_calls.append(body["input"])
        return httpx.Response(
            200, json={"data": [{"embedding": keyword_vector(body["input"])}]}
        )

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
