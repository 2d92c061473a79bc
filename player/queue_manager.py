"""
Queue Manager for the playback session.
Owns the ordered track sequence and answers "what plays next/previous"
under shuffle and repeat.
"""

import random
from typing import Iterable, Optional, Sequence, Tuple

from shared.exceptions import EmptyQueue
from shared.models import Track, RepeatMode


def resolve_next_index(length: int, current_index: int, shuffle: bool,
                       repeat_mode: RepeatMode, rng: random.Random) -> Optional[int]:
    """
    Index of the track after ``current_index``, or None if there is none.

    Non-shuffle stops after the last element unless repeat is ALL. Shuffle
    draws a fresh uniform index every call, so a track can come back
    immediately and others can be skipped.
    """
    if length == 0:
        return None
    if length == 1:
        return 0 if repeat_mode is RepeatMode.ALL else None
    if shuffle:
        return rng.randrange(length)
    if current_index == length - 1 and repeat_mode is not RepeatMode.ALL:
        return None
    return (current_index + 1) % length


def resolve_previous_index(length: int, current_index: int, shuffle: bool,
                           repeat_mode: RepeatMode, rng: random.Random) -> Optional[int]:
    """Index of the track before ``current_index``; wraps to the last track."""
    if length == 0:
        return None
    if length == 1:
        return 0 if repeat_mode is RepeatMode.ALL else None
    if shuffle:
        return rng.randrange(length)
    if current_index < 0:
        return length - 1
    return (current_index - 1) % length


class QueueManager:
    """
    In-memory queue for one playback session.
    Replaced wholesale by play requests; never edited track by track.
    """

    def __init__(self, tracks: Iterable[Track] = (), rng: Optional[random.Random] = None):
        self._tracks: Tuple[Track, ...] = tuple(tracks)
        self._rng = rng or random.Random()

    @property
    def tracks(self) -> Tuple[Track, ...]:
        return self._tracks

    def replace(self, tracks: Sequence[Track]) -> None:
        self._tracks = tuple(tracks)

    def clear(self) -> None:
        self._tracks = ()

    def size(self) -> int:
        return len(self._tracks)

    def is_empty(self) -> bool:
        return not self._tracks

    def contains(self, track: Track) -> bool:
        return self.index_of(track) >= 0

    def index_of(self, track: Optional[Track]) -> int:
        """Position of the track (matched by id), or -1."""
        if track is None:
            return -1
        for i, queued in enumerate(self._tracks):
            if queued.id == track.id:
                return i
        return -1

    def get_next(self, current: Optional[Track], shuffle: bool,
                 repeat_mode: RepeatMode) -> Optional[Track]:
        index = resolve_next_index(len(self._tracks), self.index_of(current),
                                   shuffle, repeat_mode, self._rng)
        return None if index is None else self._tracks[index]

    def get_previous(self, current: Optional[Track], shuffle: bool,
                     repeat_mode: RepeatMode) -> Optional[Track]:
        index = resolve_previous_index(len(self._tracks), self.index_of(current),
                                       shuffle, repeat_mode, self._rng)
        return None if index is None else self._tracks[index]

    def require_next(self, current: Optional[Track], shuffle: bool,
                     repeat_mode: RepeatMode) -> Track:
        """Like get_next, but raises EmptyQueue when there is nothing to play."""
        track = self.get_next(current, shuffle, repeat_mode)
        if track is None:
            raise EmptyQueue("No next track in queue")
        return track

    def require_previous(self, current: Optional[Track], shuffle: bool,
                         repeat_mode: RepeatMode) -> Track:
        track = self.get_previous(current, shuffle, repeat_mode)
        if track is None:
            raise EmptyQueue("No previous track in queue")
        return track
