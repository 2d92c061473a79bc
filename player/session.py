"""
Playback session controller.

Owns "what is supposed to be playing": the current track, the queue,
transport intent and the last position/duration reported by the engine.
All transport commands run synchronously against in-memory state and then
command the engine. Engine events are the only interleaving points; each
carries the load generation it was issued for and stale ones are dropped.
"""

import random
import logging
from dataclasses import replace
from typing import Callable, List, Optional, Sequence

from shared.constants import DEFAULT_VOLUME, RESTART_THRESHOLD_SEC, REPEAT_CYCLE, STREAM_ROUTE_TEMPLATE
from shared.exceptions import EngineFailure
from shared.models import Track, PlaybackState, PlaybackStatus, RepeatMode
from player.engine import EngineListener, MediaEngine
from player.queue_manager import QueueManager

logger = logging.getLogger(__name__)


def default_stream_url(track: Track, base_url: str = "") -> str:
    """Direct http(s) locators are used as is, anything else goes through the stream endpoint."""
    if track.has_direct_url:
        return track.audio_url
    return base_url.rstrip("/") + STREAM_ROUTE_TEMPLATE.format(track_id=track.id)


class PlaybackSession(EngineListener):
    """
    One listener's transport state. Create one instance per session; the
    object is not shared between sessions and takes no locks.
    """

    def __init__(self, engine: MediaEngine, base_url: str = "",
                 url_resolver: Optional[Callable[[Track], str]] = None,
                 rng: Optional[random.Random] = None):
        self.engine = engine
        self.queue_manager = QueueManager(rng=rng)
        self._resolve_url = url_resolver or (lambda track: default_stream_url(track, base_url))
        self._state = PlaybackState(volume=DEFAULT_VOLUME)
        # True once the engine reported time or duration for the current generation
        self._confirmed = False
        self._on_change_callbacks: List[Callable[[PlaybackState], None]] = []
        engine.set_listener(self)
        engine.set_volume(DEFAULT_VOLUME)

    @property
    def state(self) -> PlaybackState:
        return self._state

    # Shortcuts for read access
    @property
    def current_track(self) -> Optional[Track]:
        return self._state.current_track

    @property
    def status(self) -> PlaybackStatus:
        return self._state.status

    @property
    def position(self) -> float:
        return self._state.position

    @property
    def is_playing(self) -> bool:
        return self._state.is_playing

    # Transport
    def play_track(self, track: Track, queue: Optional[Sequence[Track]] = None) -> None:
        """Start ``track``, optionally replacing the queue with ``queue``."""
        if queue:
            if not any(t.id == track.id for t in queue):
                raise ValueError(f"Track {track.id} is not part of the supplied queue")
            self.queue_manager.replace(queue)
        elif not self.queue_manager.contains(track):
            self.queue_manager.replace([track])
        self._start(track)

    def toggle_play(self) -> None:
        status = self._state.status
        if status is PlaybackStatus.EMPTY:
            return
        if status is PlaybackStatus.ENDED:
            self._restart_current()
        elif self._state.is_playing:
            self.pause()
        else:
            self._resume()

    def pause(self) -> None:
        if self._state.status in (PlaybackStatus.EMPTY, PlaybackStatus.ENDED, PlaybackStatus.PAUSED):
            return
        try:
            self.engine.pause()
        except EngineFailure as e:
            logger.warning("Engine refused pause: %s", e)
        self._update(status=PlaybackStatus.PAUSED, is_playing=False)

    def seek(self, seconds: float) -> None:
        if self._state.current_track is None:
            return
        position = max(0.0, float(seconds))
        duration = self._effective_duration()
        if duration > 0:
            position = min(position, duration)
        try:
            self.engine.set_current_time(position)
        except EngineFailure as e:
            logger.warning("Engine refused seek to %.2f: %s", position, e)
        # Optimistic: the transport follows the user before the engine reports back
        self._update(position=position)

    def set_volume(self, volume: float) -> None:
        volume = max(0.0, min(1.0, float(volume)))
        self.engine.set_volume(volume)
        self._update(volume=volume)

    def play_next(self) -> bool:
        """Play the next track in the queue. Returns False when there is none."""
        s = self._state
        track = self.queue_manager.get_next(s.current_track, s.shuffle, s.repeat_mode)
        if track is None:
            logger.debug("No next track (queue size %d)", self.queue_manager.size())
            return False
        self._start(track)
        return True

    def play_previous(self) -> bool:
        """Restart the current track past the threshold, otherwise go back one track."""
        s = self._state
        if s.current_track is not None and s.position > RESTART_THRESHOLD_SEC:
            self.seek(0)
            return True
        track = self.queue_manager.get_previous(s.current_track, s.shuffle, s.repeat_mode)
        if track is None:
            return False
        self._start(track)
        return True

    def toggle_shuffle(self) -> bool:
        self._update(shuffle=not self._state.shuffle)
        return self._state.shuffle

    def toggle_repeat(self) -> RepeatMode:
        current = REPEAT_CYCLE.index(self._state.repeat_mode.value)
        mode = RepeatMode(REPEAT_CYCLE[(current + 1) % len(REPEAT_CYCLE)])
        self._update(repeat_mode=mode)
        return mode

    def close(self) -> None:
        """End of the hosting session: stop audio and forget everything."""
        try:
            self.engine.stop()
        except EngineFailure as e:
            logger.warning("Engine refused stop: %s", e)
        self.queue_manager.clear()
        self._confirmed = False
        self._update_all(PlaybackState(
            volume=self._state.volume,
            generation=self._state.generation + 1,
        ))

    # Change notifications
    def add_change_callback(self, callback: Callable[[PlaybackState], None]) -> None:
        if callback not in self._on_change_callbacks:
            self._on_change_callbacks.append(callback)

    def remove_change_callback(self, callback: Callable[[PlaybackState], None]) -> None:
        if callback in self._on_change_callbacks:
            self._on_change_callbacks.remove(callback)

    # Engine events
    def on_time_update(self, generation: int, current_time: float) -> None:
        if not self._is_current(generation, "time_update"):
            return
        position = max(0.0, float(current_time))
        if self._state.duration > 0:
            position = min(position, self._state.duration)
        self._confirmed = True
        changes = {"position": position}
        if self._state.status is PlaybackStatus.LOADING and self._state.is_playing:
            changes["status"] = PlaybackStatus.PLAYING
        self._update(**changes)

    def on_duration_known(self, generation: int, duration: float) -> None:
        if not self._is_current(generation, "duration_known"):
            return
        self._confirmed = True
        changes = {"duration": max(0.0, float(duration))}
        if self._state.status is PlaybackStatus.LOADING and self._state.is_playing:
            changes["status"] = PlaybackStatus.PLAYING
        self._update(**changes)

    def on_ended(self, generation: int) -> None:
        if not self._is_current(generation, "ended"):
            return
        s = self._state
        if s.current_track is None:
            return
        if s.repeat_mode is RepeatMode.ONE:
            self._start(s.current_track)
            return
        track = self.queue_manager.get_next(s.current_track, s.shuffle, s.repeat_mode)
        if track is not None:
            self._start(track)
            return
        logger.info("Queue finished after %s", s.current_track.id)
        self._update(status=PlaybackStatus.ENDED, is_playing=False)

    def on_error(self, generation: int, message: str) -> None:
        if not self._is_current(generation, "error"):
            return
        logger.error("Engine error for %s: %s", self._state.current_track, message)
        self._confirmed = False
        self._update(status=PlaybackStatus.LOADING, is_playing=False)

    # Internal
    def _start(self, track: Track) -> None:
        generation = self._state.generation + 1
        self._confirmed = False
        self._update(
            status=PlaybackStatus.LOADING,
            current_track=track,
            queue=self.queue_manager.tracks,
            position=0.0,
            duration=float(track.duration or 0),
            is_playing=False,
            generation=generation,
        )
        url = self._resolve_url(track)
        logger.info("Loading %s - %s from %s (generation %d)", track.artist, track.title, url, generation)
        try:
            self.engine.load(url, generation)
            self.engine.play()
        except EngineFailure as e:
            # Stalled in LOADING; the UI decides how to report it
            logger.error("Engine failed to start %s: %s", track.id, e)
            return
        self._update(is_playing=True)

    def _resume(self) -> None:
        try:
            self.engine.play()
        except EngineFailure as e:
            logger.error("Engine failed to resume: %s", e)
            return
        status = self._state.status
        if status in (PlaybackStatus.PAUSED, PlaybackStatus.LOADING):
            status = PlaybackStatus.PLAYING if self._confirmed else PlaybackStatus.LOADING
        self._update(status=status, is_playing=True)

    def _restart_current(self) -> None:
        try:
            self.engine.set_current_time(0)
            self.engine.play()
        except EngineFailure as e:
            logger.error("Engine failed to restart: %s", e)
            return
        self._update(status=PlaybackStatus.PLAYING, position=0.0, is_playing=True)

    def _effective_duration(self) -> float:
        if self._state.duration > 0:
            return self._state.duration
        track = self._state.current_track
        return float(track.duration) if track and track.duration else 0.0

    def _is_current(self, generation: int, event: str) -> bool:
        if generation != self._state.generation:
            logger.debug("Dropping stale %s event (generation %d, current %d)",
                         event, generation, self._state.generation)
            return False
        return True

    def _update(self, **changes) -> None:
        self._update_all(replace(self._state, **changes))

    def _update_all(self, state: PlaybackState) -> None:
        self._state = state
        self._notify_change()

    def _notify_change(self) -> None:
        """Notify all registered callbacks that the state has changed."""
        for callback in self._on_change_callbacks:
            try:
                callback(self._state)
            except Exception:
                logger.exception("Error in playback change callback")
