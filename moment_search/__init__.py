"""Video Moment Search - semantic search over YouTube transcripts as an MCP server."""

from importlib.metadata import version

# Package name must match [project].name in pyproject.toml
# This is the single source of truth for versioning
__version__ = version("video-moment-search")

__all__ = ["__version__"]
