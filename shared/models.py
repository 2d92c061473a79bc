"""
Data models for tracks, playback state and byte ranges.

This module defines the core data structures shared by the streaming
server and the playback session.
"""

from dataclasses import dataclass, asdict
from typing import Tuple, Dict, Optional, Any
from enum import Enum
from datetime import datetime

from werkzeug.datastructures import ContentRange


class RepeatMode(Enum):
    """Queue repeat behaviour."""
    NONE = "none"
    ALL = "all"
    ONE = "one"


class PlaybackStatus(Enum):
    """Lifecycle of a playback session."""
    EMPTY = "empty"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"


# Track fields <-> public JSON keys (matches the web client's naming)
_JSON_KEYS = {
    'id': 'id',
    'title': 'title',
    'artist': 'artist',
    'duration': 'duration',
    'audio_url': 'audioUrl',
    'cover_url': 'coverUrl',
    'plays': 'plays',
    'album': 'album',
    'genre': 'genre',
    'description': 'description',
    'uploader_id': 'uploaderId',
    'created_at': 'createdAt',
}


@dataclass(frozen=True)
class Track:
    """
    Represents a single track as seen by the playback core.

    Attributes:
        id: Unique identifier
        title: Song title
        artist: Artist name
        duration: Duration in seconds (0 means unknown until loaded)
        audio_url: Storage locator relative to the uploads root, or an
            absolute http(s) URL the engine can open directly
        cover_url: Optional cover locator
        plays: Play counter, never decreases
        album: Album name (optional)
        genre: Music genre (optional)
        description: Free text (optional)
        uploader_id: Id of the uploading user (optional)
        created_at: ISO timestamp of the upload (optional)
    """
    id: str
    title: str
    artist: str
    duration: float = 0
    audio_url: str = ""
    cover_url: str = ""
    plays: int = 0
    album: str = ""
    genre: str = ""
    description: str = ""
    uploader_id: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def has_direct_url(self) -> bool:
        """True when audio_url can be opened without going through the stream endpoint."""
        return self.audio_url.startswith(("http://", "https://"))

    def to_dict(self) -> Dict[str, Any]:
        """Convert track to the public JSON shape."""
        return {_JSON_KEYS[k]: v for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Track':
        """Create Track from either snake_case or public JSON keys, ignoring unknown keys."""
        reverse = {v: k for k, v in _JSON_KEYS.items()}
        filtered = {}
        for key, value in data.items():
            name = reverse.get(key, key)
            if name in _JSON_KEYS and value is not None:
                filtered[name] = value
        filtered['id'] = str(filtered['id'])
        return cls(**filtered)


@dataclass(frozen=True)
class PlaybackState:
    """Read-only snapshot of a playback session."""
    status: PlaybackStatus = PlaybackStatus.EMPTY
    current_track: Optional[Track] = None
    queue: Tuple[Track, ...] = ()
    position: float = 0.0
    duration: float = 0.0
    volume: float = 0.7
    is_playing: bool = False
    shuffle: bool = False
    repeat_mode: RepeatMode = RepeatMode.NONE
    generation: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "currentTrack": self.current_track.to_dict() if self.current_track else None,
            "queue": [t.to_dict() for t in self.queue],
            "position": self.position,
            "duration": self.duration,
            "volume": self.volume,
            "isPlaying": self.is_playing,
            "shuffle": self.shuffle,
            "repeat": self.repeat_mode.value,
        }


@dataclass(frozen=True)
class ByteRange:
    """A satisfiable, inclusive byte span of a resource."""
    start: int
    end: int
    total_size: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return ContentRange("bytes", self.start, self.end + 1, self.total_size).to_header()


def utc_timestamp() -> str:
    return datetime.utcnow().isoformat()
