"""Building blocks for desktop applications: caches, an API client, auto-update and batch processing."""

__version__ = "0.1.0"

__all__ = ["api_client", "auto_update", "batch", "cache"]