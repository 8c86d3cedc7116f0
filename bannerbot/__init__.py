"""Scheduled banner rotation for Discord servers.

Images are picked from the media recently shared in a configured channel
and committed as the server banner on a per-server interval.
"""

__version__ = "0.5.0"

__all__: list[str] = ["__version__"]
