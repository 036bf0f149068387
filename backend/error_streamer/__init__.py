"""Error log streamer backend."""

__version__ = "0.1.0"
