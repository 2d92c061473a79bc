"""
SQLite Track Catalog for FlowMusic.
Holds track metadata, resolves audio locators to files under the uploads
root and keeps the play counters.
"""

import sqlite3
import uuid
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional, Union

from shared import config
from shared.exceptions import NotFound
from shared.models import Track, utc_timestamp

logger = logging.getLogger(__name__)

_TRACK_COLUMNS = (
    "id", "title", "artist", "album", "genre", "description", "duration",
    "audio_url", "cover_url", "plays", "uploader_id", "created_at",
)


class TrackCatalog:
    def __init__(self, db_path: Optional[Union[str, Path]] = None,
                 uploads_dir: Optional[Union[str, Path]] = None):
        self.db_path = Path(db_path) if db_path else config.DB_PATH
        self.uploads_dir = Path(uploads_dir) if uploads_dir else config.UPLOADS_DIR
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _get_connection(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA synchronous=NORMAL")
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self):
        """Initialize the database schema."""
        with self._get_connection() as conn:
            # WAL lets concurrent stream requests bump counters while others read
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tracks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    artist TEXT NOT NULL,
                    album TEXT DEFAULT '',
                    genre TEXT DEFAULT '',
                    description TEXT DEFAULT '',
                    duration REAL DEFAULT 0,
                    audio_url TEXT NOT NULL,
                    cover_url TEXT DEFAULT '',
                    plays INTEGER DEFAULT 0,
                    uploader_id TEXT,
                    created_at TEXT
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tracks_plays ON tracks(plays)")

    @staticmethod
    def generate_id() -> str:
        """Generate a unique track ID."""
        return str(uuid.uuid4())

    def add_track(self, track: Track) -> Track:
        """Insert or replace a track. Returns the stored row."""
        created_at = track.created_at or utc_timestamp()
        with self._get_connection() as conn:
            conn.execute(f"""
                INSERT OR REPLACE INTO tracks ({', '.join(_TRACK_COLUMNS)})
                VALUES ({', '.join('?' * len(_TRACK_COLUMNS))})
            """, (
                track.id, track.title, track.artist, track.album, track.genre,
                track.description, track.duration, track.audio_url, track.cover_url,
                track.plays, track.uploader_id, created_at,
            ))
        logger.debug("Catalog: stored track %s (%s - %s)", track.id, track.artist, track.title)
        return self.get_track(track.id)

    def get_track(self, track_id: str) -> Optional[Track]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM tracks WHERE id = ?", (str(track_id),)).fetchone()
            return self._row_to_track(row) if row else None

    def get_all_tracks(self) -> List[Track]:
        """Fetch all tracks, most played first (trending order)."""
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT * FROM tracks ORDER BY plays DESC, created_at DESC")
            return [self._row_to_track(row) for row in cursor.fetchall()]

    def get_play_count(self, track_id: str) -> int:
        with self._get_connection() as conn:
            row = conn.execute("SELECT plays FROM tracks WHERE id = ?", (str(track_id),)).fetchone()
        if row is None:
            raise NotFound(f"Track {track_id} not found", track_id=track_id)
        return row["plays"]

    def increment_play_count(self, track_id: str) -> None:
        """Atomically add one play. Safe under concurrent stream requests."""
        with self._get_connection() as conn:
            cursor = conn.execute("UPDATE tracks SET plays = plays + 1 WHERE id = ?", (str(track_id),))
        if cursor.rowcount == 0:
            raise NotFound(f"Track {track_id} not found", track_id=track_id)

    def resolve_audio_locator(self, track_id: str) -> Path:
        """
        Resolve the on-disk audio file of a track.

        Locators are relative to the uploads root; a leading "/uploads/"
        prefix is accepted. Raises NotFound if the track is unknown, its
        locator points outside the uploads root, or the file is missing.
        """
        track = self.get_track(track_id)
        if track is None:
            raise NotFound(f"Track {track_id} not found", track_id=track_id)
        if not track.audio_url or track.has_direct_url:
            raise NotFound(f"Track {track_id} has no stored audio", track_id=track_id)

        locator = track.audio_url.lstrip("/")
        if locator.startswith("uploads/"):
            locator = locator[len("uploads/"):]

        root = self.uploads_dir.expanduser().resolve()
        path = (root / locator).resolve()
        try:
            path.relative_to(root)
        except ValueError:
            logger.warning("SECURITY: locator for %s escapes uploads root: %s", track_id, track.audio_url)
            raise NotFound(f"Audio file for track {track_id} not found", track_id=track_id)

        if not path.is_file():
            logger.info("Catalog: audio file missing for %s at %s", track_id, path)
            raise NotFound(f"Audio file for track {track_id} not found", track_id=track_id)
        return path

    def _row_to_track(self, row: sqlite3.Row) -> Track:
        return Track.from_dict(dict(row))
