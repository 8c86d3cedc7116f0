"""Media discovery for banner candidates."""

from .media import ALLOWED_CONTENT_TYPES, MediaDiscovery, candidates_from_message, media_type_is_image

__all__ = [
    "ALLOWED_CONTENT_TYPES",
    "MediaDiscovery",
    "candidates_from_message",
    "media_type_is_image",
]
