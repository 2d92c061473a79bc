"""
Error taxonomy for the playback core and the streaming endpoint.
"""

from typing import Optional


class FlowMusicError(Exception):
    """Base class for all FlowMusic errors."""


class NotFound(FlowMusicError):
    """Unknown track id, or its audio resource is missing from storage."""

    def __init__(self, message: str, track_id: Optional[str] = None):
        super().__init__(message)
        self.track_id = track_id


class InvalidRange(FlowMusicError):
    """Malformed or unsatisfiable Range header."""

    def __init__(self, header: str, total_size: int):
        super().__init__(f"Invalid range {header!r} for resource of {total_size} bytes")
        self.header = header
        self.total_size = total_size


class EngineFailure(FlowMusicError):
    """The media engine refused to load or play a source."""


class EmptyQueue(FlowMusicError):
    """No navigable next/previous track."""
