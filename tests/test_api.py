import sys
import types

import pytest

from shared import api
from player.session import PlaybackSession
from tests.fakes import FakeEngine


@pytest.fixture
def client(catalog, monkeypatch):
    monkeypatch.setattr(api, "track_catalog", catalog)
    monkeypatch.setattr(api, "playback_session", None)
    api.app.config["TESTING"] = True
    return api.app.test_client()


@pytest.fixture
def remote(client, monkeypatch):
    session = PlaybackSession(FakeEngine())
    monkeypatch.setattr(api, "playback_session", session)
    return session


def test_health(client):
    assert client.get("/api/health").get_json()["status"] == "ok"


def test_get_track(client):
    data = client.get("/api/tracks/1").get_json()
    assert data["track"]["title"] == "A"
    assert client.get("/api/tracks/404").status_code == 404


def test_stream_full_content(client, catalog, audio_bytes):
    response = client.get("/api/tracks/1/stream")
    assert response.status_code == 200
    assert response.headers["Content-Length"] == "1000"
    assert response.headers["Accept-Ranges"] == "bytes"
    assert response.mimetype == "audio/mpeg"
    assert response.data == audio_bytes
    assert catalog.get_play_count("1") == 1


def test_stream_partial_content(client, audio_bytes):
    response = client.get("/api/tracks/1/stream", headers={"Range": "bytes=100-199"})
    assert response.status_code == 206
    assert response.headers["Content-Range"] == "bytes 100-199/1000"
    assert response.headers["Content-Length"] == "100"
    assert response.headers["Accept-Ranges"] == "bytes"
    assert response.data == audio_bytes[100:200]


def test_stream_open_ended_range(client, audio_bytes):
    response = client.get("/api/tracks/1/stream", headers={"Range": "bytes=950-"})
    assert response.status_code == 206
    assert response.headers["Content-Range"] == "bytes 950-999/1000"
    assert response.data == audio_bytes[950:]


@pytest.mark.parametrize("header", ["bytes=2000-2100", "bytes=300-200", "bytes=x-y"])
def test_stream_rejects_bad_ranges(client, catalog, header):
    response = client.get("/api/tracks/1/stream", headers={"Range": header})
    assert response.status_code == 416
    assert response.headers["Content-Range"] == "bytes */1000"
    assert "error" in response.get_json()
    assert catalog.get_play_count("1") == 0


def test_stream_unknown_track(client):
    response = client.get("/api/tracks/999/stream")
    assert response.status_code == 404
    assert "error" in response.get_json()


def test_stream_missing_file(client, catalog):
    catalog.resolve_audio_locator("2").unlink()
    assert client.get("/api/tracks/2/stream").status_code == 404
    assert catalog.get_play_count("2") == 0


def test_every_range_request_counts_a_play(client, catalog):
    for header in ("bytes=0-499", "bytes=500-999", "bytes=0-"):
        response = client.get("/api/tracks/3/stream", headers={"Range": header})
        assert response.status_code == 206
        response.close()
    assert catalog.get_play_count("3") == 3


def test_stream_exposes_range_headers_cross_origin(client):
    response = client.get("/api/tracks/1/stream", headers={"Origin": "http://app.example"})
    response.close()
    exposed = response.headers.get("Access-Control-Expose-Headers", "")
    assert "Content-Range" in exposed
    assert response.headers.get("Access-Control-Allow-Origin") in ("*", "http://app.example")


class StreamingEngine(FakeEngine):
    """Fetches the first range of every loaded source, like a browser audio element."""

    def __init__(self, client):
        super().__init__()
        self.client = client
        self.statuses = []

    def load(self, url, generation):
        super().load(url, generation)
        response = self.client.get(url, headers={"Range": "bytes=0-"})
        assert len(response.get_data()) == 1000
        self.statuses.append(response.status_code)


def test_queue_scenario_counts_one_play_per_track_start(client, catalog):
    engine = StreamingEngine(client)
    session = PlaybackSession(engine)
    queue = [catalog.get_track(i) for i in ("1", "2", "3")]

    session.play_track(queue[0], queue)
    assert session.play_next()
    assert session.play_next()
    assert session.current_track.id == "3"
    assert session.play_next() is False

    assert engine.statuses == [206, 206, 206]
    plays = sum(catalog.get_play_count(t.id) for t in queue)
    assert plays == len(engine.statuses) == 3


def test_playback_unavailable_without_engine(client, monkeypatch):
    monkeypatch.setattr(api, "get_session", lambda: None)
    assert client.get("/api/playback/state").status_code == 503


def test_playback_play_and_transport(client, remote):
    response = client.post("/api/playback/play", json={"track_id": "2", "queue": ["1", "2", "3"]})
    assert response.status_code == 200
    data = response.get_json()
    assert data["currentTrack"]["id"] == "2"
    assert data["status"] == "loading"

    assert client.post("/api/playback/toggle").get_json()["status"] == "paused"
    assert client.post("/api/playback/volume", json={"volume": 1.7}).get_json()["volume"] == 1.0
    assert client.post("/api/playback/seek", json={"position": -4}).get_json()["position"] == 0
    assert client.post("/api/playback/repeat").get_json()["repeat"] == "all"
    assert client.post("/api/playback/shuffle").get_json()["shuffle"] is True

    nxt = client.post("/api/playback/next").get_json()
    assert nxt["moved"] is True
    assert client.get("/api/playback/state").get_json()["currentTrack"]["id"] in {"1", "2", "3"}


def test_playback_previous_and_pause(client, remote):
    client.post("/api/playback/play", json={"track_id": "2", "queue": ["1", "2", "3"]})
    prev = client.post("/api/playback/previous").get_json()
    assert prev["moved"] is True
    assert prev["state"]["currentTrack"]["id"] == "1"
    assert client.post("/api/playback/pause").get_json()["isPlaying"] is False


def test_playback_play_validation(client, remote):
    assert client.post("/api/playback/play", json={}).status_code == 400
    assert client.post("/api/playback/play", json={"track_id": "999"}).status_code == 404
    assert client.post("/api/playback/play", json={"track_id": "1", "queue": ["2", "3"]}).status_code == 400
    assert client.post("/api/playback/play", json={"track_id": "1", "queue": ["1", "999"]}).status_code == 404
    assert client.post("/api/playback/seek", json={"position": "soon"}).status_code == 400
    assert client.post("/api/playback/volume", json={}).status_code == 400


def test_stream_clamps_end_past_resource(client, audio_bytes):
    response = client.get("/api/tracks/1/stream", headers={"Range": "bytes=990-5000"})
    assert response.status_code == 206
    assert response.headers["Content-Range"] == "bytes 990-999/1000"
    assert response.headers["Content-Length"] == "10"
    assert response.data == audio_bytes[990:]


@pytest.mark.parametrize("header", ["bytes=-500", "bytes=0-10,20-30"])
def test_stream_rejects_suffix_and_multi_ranges(client, catalog, header):
    response = client.get("/api/tracks/1/stream", headers={"Range": header})
    assert response.status_code == 416
    assert response.headers["Content-Range"] == "bytes */1000"
    assert catalog.get_play_count("1") == 0


def test_engine_construction_failure_is_not_retried(client, monkeypatch):
    attempts = []

    class BrokenEngine:
        def __init__(self, *args, **kwargs):
            attempts.append(kwargs)
            raise RuntimeError("no audio device")

    fake_module = types.ModuleType("player.mpv_engine")
    fake_module.MpvEngine = BrokenEngine
    monkeypatch.setitem(sys.modules, "player.mpv_engine", fake_module)
    monkeypatch.setattr(api, "_engine_error", None)

    for _ in range(3):
        assert client.get("/api/playback/state").status_code == 503
    assert len(attempts) == 1
    assert api._engine_error == "no audio device"
