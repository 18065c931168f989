"""YouTube transcript acquisition.

Components:
    TranscriptAcquirer: Runs transcript strategies in order until one succeeds.
    CaptionsApiStrategy: Fetches published captions.
    TranscriptPanelStrategy: Reads the watch page's transcript panel.
    AudioTranscriptionStrategy: Transcribes the audio stream with Deepgram.
    PageSnapshot: Host page state supplied by a browser client.
    WatchPage: Host page backed by the public watch page HTML.
"""

from moment_search.tools.youtube.deepgram import (
    DeepgramTranscriber,
    get_dynamic_chunking_params,
)
from moment_search.tools.youtube.errors import (
    CacheError,
    ConfigurationError,
    MomentSearchError,
    NoEmbeddingsAvailable,
    NoTranscriptAvailable,
    ProviderError,
    SearchCancelled,
)
from moment_search.tools.youtube.models import (
    Chunk,
    ChunkEmbedding,
    SearchResult,
    Transcript,
    TranscriptSegment,
    create_timestamp_url,
)
from moment_search.tools.youtube.page import HostPage, PageSnapshot, WatchPage
from moment_search.tools.youtube.transcripts import (
    AudioTranscriptionStrategy,
    CaptionsApiStrategy,
    TranscriptAcquirer,
    TranscriptPanelStrategy,
    validate_video_id,
)

__all__ = [
    "AudioTranscriptionStrategy",
    "CacheError",
    "CaptionsApiStrategy",
    "Chunk",
    "ChunkEmbedding",
    "ConfigurationError",
    "DeepgramTranscriber",
    "HostPage",
    "MomentSearchError",
    "NoEmbeddingsAvailable",
    "NoTranscriptAvailable",
    "PageSnapshot",
    "ProviderError",
    "SearchCancelled",
    "SearchResult",
    "Transcript",
    "TranscriptAcquirer",
    "TranscriptPanelStrategy",
    "TranscriptSegment",
    "WatchPage",
    "create_timestamp_url",
    "get_dynamic_chunking_params",
    "validate_video_id",
]
