import os
from pathlib import Path

from dotenv import load_dotenv

from shared.constants import (
    DEFAULT_DATA_DIR,
    DEFAULT_UPLOADS_DIRNAME,
    DEFAULT_DB_FILENAME,
    DEFAULT_HOST,
    DEFAULT_PORT,
)

load_dotenv()

# App Configuration
APP_NAME = "FlowMusic"
VERSION = "1.0.0"

# Server
HOST = os.getenv("FLOWMUSIC_HOST", DEFAULT_HOST)
PORT = int(os.getenv("FLOWMUSIC_PORT", str(DEFAULT_PORT)))

# Base prepended to canonical stream URLs handed to the playback engine
PUBLIC_URL = os.getenv("FLOWMUSIC_PUBLIC_URL", f"http://localhost:{PORT}").rstrip("/")

CORS_ORIGIN = os.getenv("FLOWMUSIC_CORS_ORIGIN", "*")

# Paths
DATA_DIR = Path(os.getenv("FLOWMUSIC_DATA_DIR", DEFAULT_DATA_DIR)).expanduser()
UPLOADS_DIR = Path(os.getenv("FLOWMUSIC_UPLOADS_DIR", str(DATA_DIR / DEFAULT_UPLOADS_DIRNAME))).expanduser()
DB_PATH = Path(os.getenv("FLOWMUSIC_DB_PATH", str(DATA_DIR / DEFAULT_DB_FILENAME))).expanduser()

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
