"""
MediaEngine implementation using python-mpv.
Handles the low-level details of audio playback and turns mpv property
changes into generation-tagged engine events.

mpv loads files asynchronously: ``loadfile`` returns before the file is
opened, and property changes of the previous file may still be queued on
the event thread. Every load is therefore tied to the playlist entry mpv
created for it, and events are attributed to a generation only between
that entry's ``start-file`` and ``end-file``.
"""

import time
import logging
import threading
from typing import Any, Callable, Optional

import mpv

from shared.constants import TIME_UPDATE_INTERVAL_SEC
from shared.exceptions import EngineFailure
from player.engine import MediaEngine

logger = logging.getLogger(__name__)

Dispatch = Callable[..., Any]


def _call_directly(fn, *args):
    return fn(*args)


class MpvEngine(MediaEngine):
    """
    Wrapper around MPV for audio-only playback.

    mpv reports on its own event thread; ``dispatch`` lets the host hand
    each listener call over to whatever owns the session (a lock, a task
    queue...). By default listeners are called on the mpv thread.
    """

    def __init__(self, dispatch: Optional[Dispatch] = None, player: Optional[Any] = None):
        super().__init__()
        # vo='null' because we are audio-only; we always hand mpv direct URLs
        self.player = player or mpv.MPV(vo='null', ytdl=False)
        self._dispatch = dispatch or _call_directly
        self._lock = threading.Lock()

        # Entry created by the latest load() and the generation it belongs to
        self._load_entry = None
        self._load_generation = None
        # Entry mpv is currently playing, if it belongs to the latest load
        self._started_entry = None
        self._active_generation = None

        self._ended_generation = -1
        self._playing = False
        self._last_time_update = 0.0

        self.player.observe_property('time-pos', self._handle_time_update)
        self.player.observe_property('duration', self._handle_duration)
        self.player.observe_property('eof-reached', self._handle_eof)
        self.player.observe_property('idle-active', self._handle_idle)
        self.player.event_callback('start-file')(self._handle_start_file)
        self.player.event_callback('end-file')(self._handle_end_file)

    def _command(self, what: str, fn, *args):
        try:
            return fn(*args)
        except Exception as e:
            raise EngineFailure(f"mpv {what} failed: {e}") from e

    def _latest_entry_id(self):
        playlist = self.player.playlist or []
        return playlist[-1].get('id') if playlist else None

    # Commands
    def load(self, url: str, generation: int) -> None:
        with self._lock:
            # Anything still queued for the previous file is stale from here on
            self._active_generation = None
            self._load_entry = None
            self._load_generation = None
            self._playing = False
            self._last_time_update = 0.0
        logger.debug("mpv: loading %s (generation %d)", url, generation)
        self._command("load", self.player.play, url)
        entry = self._latest_entry_id()
        with self._lock:
            self._load_entry = entry
            self._load_generation = generation
            if self._started_entry is not None and self._started_entry == entry:
                # start-file raced ahead of us
                self._active_generation = generation
        # Hold until play() so the session decides when audio starts
        self.player.pause = True

    def play(self) -> None:
        self._command("play", setattr, self.player, 'pause', False)
        self._playing = True

    def pause(self) -> None:
        self._command("pause", setattr, self.player, 'pause', True)
        self._playing = False

    def set_current_time(self, seconds: float) -> None:
        self._command("seek", self.player.seek, seconds, 'absolute')

    def set_volume(self, volume: float) -> None:
        self.player.volume = max(0, min(100, round(volume * 100)))

    def stop(self) -> None:
        with self._lock:
            self._playing = False
            self._active_generation = None
        self._command("stop", self.player.stop)

    def terminate(self) -> None:
        self.player.terminate()

    # Event handlers (mpv thread)
    def _emit(self, method: str, generation: int, *args) -> None:
        listener = self._listener
        if listener is None:
            return
        try:
            self._dispatch(getattr(listener, method), generation, *args)
        except Exception:
            logger.exception("mpv: listener %s failed", method)

    def _handle_start_file(self, event):
        entry = event.data.playlist_entry_id
        with self._lock:
            self._started_entry = entry
            if self._load_entry is not None and entry == self._load_entry:
                self._active_generation = self._load_generation
            else:
                self._active_generation = None
            self._last_time_update = 0.0

    def _handle_end_file(self, event):
        data = event.data
        with self._lock:
            if data.playlist_entry_id != self._started_entry:
                return
            generation = self._active_generation
            self._started_entry = None
            self._active_generation = None
        if generation is None:
            return

        if data.reason == mpv.MpvEventEndFile.ERROR:
            logger.warning("mpv: failed to play generation %d (error %s)", generation, data.error)
            self._playing = False
            self._emit('on_error', generation, f"mpv could not play the file (error {data.error})")
        elif data.reason == mpv.MpvEventEndFile.EOF:
            self._trigger_ended(generation)

    def _handle_time_update(self, name, value):
        """Forward time position updates, throttled to the configured rate."""
        generation = self._active_generation
        if value is None or generation is None:
            return
        now = time.monotonic()
        if now - self._last_time_update >= TIME_UPDATE_INTERVAL_SEC:
            self._last_time_update = now
            self._emit('on_time_update', generation, float(value))

    def _handle_duration(self, name, value):
        generation = self._active_generation
        if value and generation is not None:
            self._emit('on_duration_known', generation, float(value))

    def _handle_eof(self, name, value):
        generation = self._active_generation
        if value and generation is not None:
            self._trigger_ended(generation)

    def _handle_idle(self, name, value):
        """mpv went idle while we were supposedly playing the active file: it finished."""
        generation = self._active_generation
        if value and self._playing and generation is not None:
            self._trigger_ended(generation)

    def _trigger_ended(self, generation: int):
        if self._ended_generation == generation:
            return
        self._ended_generation = generation
        self._playing = False
        self._emit('on_ended', generation)
