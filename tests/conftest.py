import random

import pytest

from shared.database import TrackCatalog
from shared.models import Track
from player.session import PlaybackSession
from tests.fakes import FakeEngine


@pytest.fixture
def tracks():
    return [
        Track(id="1", title="A", artist="Artist", duration=180, audio_url="audio/a.mp3"),
        Track(id="2", title="B", artist="Artist", duration=200, audio_url="audio/b.mp3"),
        Track(id="3", title="C", artist="Artist", duration=220, audio_url="audio/c.mp3"),
    ]


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def session(engine):
    return PlaybackSession(engine, rng=random.Random(1234))


@pytest.fixture
def audio_bytes():
    return bytes(i % 256 for i in range(1000))


@pytest.fixture
def catalog(tmp_path, tracks, audio_bytes):
    uploads = tmp_path / "uploads"
    (uploads / "audio").mkdir(parents=True)
    for name in ("a", "b", "c"):
        (uploads / "audio" / f"{name}.mp3").write_bytes(audio_bytes)
    catalog = TrackCatalog(db_path=tmp_path / "flowmusic.db", uploads_dir=uploads)
    for track in tracks:
        catalog.add_track(track)
    return catalog
