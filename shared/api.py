"""
API Server for FlowMusic.
Serves track audio with HTTP range support and exposes the server-side
playback session to remote controls (HTTP + Socket.IO).
"""

import threading
import logging
from functools import wraps
from typing import Optional

from flask import Flask, request, jsonify, send_file
from flask_socketio import SocketIO
from flask_cors import CORS
from werkzeug.datastructures import ContentRange
from werkzeug.exceptions import HTTPException

from shared import config
from shared.database import TrackCatalog
from shared.exceptions import NotFound, InvalidRange
from shared.models import PlaybackState
from shared.streaming import parse_range_header, guess_mimetype
from player.session import PlaybackSession

logger = logging.getLogger(__name__)

app = Flask(__name__)
# Range headers must be usable cross-origin by browser audio elements
CORS(app, origins=config.CORS_ORIGIN,
     allow_headers=['Range', 'Content-Type'],
     expose_headers=['Content-Range', 'Content-Length', 'Accept-Ranges'])
socketio = SocketIO(app, cors_allowed_origins=config.CORS_ORIGIN)

# Global instances
track_catalog: Optional[TrackCatalog] = None
playback_session: Optional[PlaybackSession] = None
_session_lock = threading.RLock()
# Set once engine construction failed; not retried
_engine_error: Optional[str] = None


def get_catalog() -> TrackCatalog:
    global track_catalog
    if track_catalog is None:
        logger.info("API: Initializing Track Catalog at %s", config.DB_PATH)
        track_catalog = TrackCatalog()
    return track_catalog


def _broadcast_state(state: PlaybackState) -> None:
    socketio.emit('playback_state', state.to_dict())


def attach_session(session: Optional[PlaybackSession]) -> None:
    """Install the server-side playback session and push its changes to Socket.IO clients."""
    global playback_session
    if playback_session is not None:
        playback_session.remove_change_callback(_broadcast_state)
    playback_session = session
    if session is not None:
        session.add_change_callback(_broadcast_state)


def _locked_dispatch(fn, *args):
    with _session_lock:
        return fn(*args)


def get_session() -> Optional[PlaybackSession]:
    global _engine_error
    if playback_session is None and _engine_error is None:
        with _session_lock:
            if playback_session is None and _engine_error is None:
                # mpv needs libmpv and an audio device; headless servers may have neither
                try:
                    from player.mpv_engine import MpvEngine
                    engine = MpvEngine(dispatch=_locked_dispatch)
                except Exception as e:
                    _engine_error = str(e)
                    logger.warning("API: Could not initialize playback engine, playback endpoints disabled: %s", e)
                    return None
                attach_session(PlaybackSession(engine, base_url=config.PUBLIC_URL))
    return playback_session


def with_session(view):
    """Run a playback view under the session lock, or answer 503 without audio output."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        session = get_session()
        if session is None:
            return jsonify({"error": "Playback engine unavailable"}), 503
        with _session_lock:
            return view(session, *args, **kwargs)
    return wrapper


# --- Errors ---

@app.errorhandler(NotFound)
def handle_not_found(e):
    return jsonify({"error": str(e)}), 404


@app.errorhandler(InvalidRange)
def handle_invalid_range(e):
    response = jsonify({"error": str(e)})
    response.status_code = 416
    response.headers['Content-Range'] = ContentRange("bytes", None, None, e.total_size).to_header()
    return response


@app.errorhandler(Exception)
def handle_unexpected(e):
    if isinstance(e, HTTPException):
        return e
    logger.exception("API: Unhandled error on %s", request.path)
    return jsonify({"error": "Internal server error"}), 500


@app.route('/api/health')
def health_check():
    return jsonify({"status": "ok", "message": f"{config.APP_NAME} API is running"})


# --- Tracks ---

@app.route('/api/tracks/<track_id>', methods=['GET'])
def get_track(track_id):
    track = get_catalog().get_track(track_id)
    if track is None:
        raise NotFound(f"Track {track_id} not found", track_id=track_id)
    return jsonify({"track": track.to_dict()})


@app.route('/api/tracks/<track_id>/stream', methods=['GET'])
def stream_track(track_id):
    """Serve the audio file of a track, honouring single byte ranges."""
    catalog = get_catalog()
    path = catalog.resolve_audio_locator(track_id)
    total_size = path.stat().st_size
    # Validated up front so rejections get the JSON 416 instead of send_file's own
    byte_range = parse_range_header(request.headers.get('Range'), total_size)
    if byte_range is None:
        logger.debug("Stream: %s full content (%d bytes)", track_id, total_size)
    else:
        logger.debug("Stream: %s %s", track_id, byte_range.content_range)

    response = send_file(path, mimetype=guess_mimetype(path), conditional=True)
    response.headers['Accept-Ranges'] = 'bytes'
    # Counted per request, partial fetches of one playback included
    catalog.increment_play_count(track_id)
    return response


# --- Playback Endpoints ---

def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _float_field(data: dict, name: str) -> Optional[float]:
    try:
        return float(data[name])
    except (KeyError, TypeError, ValueError):
        return None


@app.route('/api/playback/state', methods=['GET'])
@with_session
def get_playback_state(session):
    return jsonify(session.state.to_dict())


@app.route('/api/playback/play', methods=['POST'])
@with_session
def play_playback_track(session):
    data = _json_body()
    track_id = data.get('track_id')
    if track_id is None:
        return jsonify({"error": "track_id required"}), 400

    catalog = get_catalog()
    track = catalog.get_track(str(track_id))
    if track is None:
        raise NotFound(f"Track {track_id} not found", track_id=str(track_id))

    queue = []
    for queued_id in data.get('queue') or []:
        queued = catalog.get_track(str(queued_id))
        if queued is None:
            raise NotFound(f"Track {queued_id} not found", track_id=str(queued_id))
        queue.append(queued)

    try:
        session.play_track(track, queue or None)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(session.state.to_dict())


@app.route('/api/playback/toggle', methods=['POST'])
@with_session
def toggle_playback(session):
    session.toggle_play()
    return jsonify(session.state.to_dict())


@app.route('/api/playback/pause', methods=['POST'])
@with_session
def pause_playback(session):
    session.pause()
    return jsonify(session.state.to_dict())


@app.route('/api/playback/seek', methods=['POST'])
@with_session
def seek_playback(session):
    position = _float_field(_json_body(), 'position')
    if position is None:
        return jsonify({"error": "numeric position required"}), 400
    session.seek(position)
    return jsonify(session.state.to_dict())


@app.route('/api/playback/volume', methods=['POST'])
@with_session
def set_playback_volume(session):
    volume = _float_field(_json_body(), 'volume')
    if volume is None:
        return jsonify({"error": "numeric volume required"}), 400
    session.set_volume(volume)
    return jsonify(session.state.to_dict())


@app.route('/api/playback/next', methods=['POST'])
@with_session
def next_playback_track(session):
    moved = session.play_next()
    return jsonify({"moved": moved, "state": session.state.to_dict()})


@app.route('/api/playback/previous', methods=['POST'])
@with_session
def previous_playback_track(session):
    moved = session.play_previous()
    return jsonify({"moved": moved, "state": session.state.to_dict()})


@app.route('/api/playback/shuffle', methods=['POST'])
@with_session
def toggle_playback_shuffle(session):
    session.toggle_shuffle()
    return jsonify(session.state.to_dict())


@app.route('/api/playback/repeat', methods=['POST'])
@with_session
def toggle_playback_repeat(session):
    session.toggle_repeat()
    return jsonify(session.state.to_dict())


# --- Server Management ---

def start_api(host: str = config.HOST, port: int = config.PORT, debug: bool = False):
    logger.info("--- %s API Boot Sequence ---", config.APP_NAME)
    catalog = get_catalog()
    catalog.uploads_dir.mkdir(parents=True, exist_ok=True)
    logger.info("API: Catalog %s, uploads root %s", catalog.db_path, catalog.uploads_dir)
    logger.info("API: Starting SocketIO server on %s:%d...", host, port)
    socketio.run(app, host=host, port=port, debug=debug, allow_unsafe_werkzeug=True)


if __name__ == '__main__':
    start_api()
