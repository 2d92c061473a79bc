"""
Shared constants used across the platform.
"""

# Audio formats
SUPPORTED_AUDIO_FORMATS = [".mp3", ".flac", ".ogg", ".m4a", ".wav"]

AUDIO_MIMETYPES = {
    'mp3': 'audio/mpeg',
    'm4a': 'audio/mp4',
    'flac': 'audio/flac',
    'ogg': 'audio/ogg',
    'wav': 'audio/wav',
}
DEFAULT_AUDIO_MIMETYPE = 'audio/mpeg'

# Streaming
STREAM_ROUTE_TEMPLATE = "/api/tracks/{track_id}/stream"

# Playback
DEFAULT_VOLUME = 0.7
RESTART_THRESHOLD_SEC = 3.0  # "previous" restarts the current track past this point
TIME_UPDATE_INTERVAL_SEC = 0.25  # engine time-update throttle (~4 per second)

# Repeat modes, in toggle order
REPEAT_CYCLE = ("none", "all", "one")

# Configuration paths
DEFAULT_DATA_DIR = "~/.local/share/flowmusic"
DEFAULT_UPLOADS_DIRNAME = "uploads"
DEFAULT_DB_FILENAME = "flowmusic.db"

# Network Settings
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 5000
