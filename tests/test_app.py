import json
import os

import pytest

import app as app_module
from app import app
from storage import SqliteStore, StorageError


def _track(id, genre="Rock", **kw):
    return {
        "id":          id,
        "title":       f"Song {id}",
        "artist":      f"Artist {id % 5}",
        "genre":       genre,
        "file_path":   f"/music/{id}.mp3",
        "duration_ms": 200000,
        **kw,
    }


@pytest.fixture(autouse=True)
def isolated_paths(monkeypatch, tmp_path):
    paths = {
        "DB_PATH":    str(tmp_path / "library.db"),
        "EXPORT_DIR": str(tmp_path / "exports"),
        "RULES_FILE": str(tmp_path / "rules.json"),
    }
    for attr, value in paths.items():
        monkeypatch.setattr(app_module, attr, value)
    monkeypatch.setattr(app_module, "EXPORT_FORMAT", "m3u")

    store = SqliteStore(paths["DB_PATH"])
    store.import_tracks([_track(i) for i in range(1, 16)]
                        + [_track(i, genre="Jazz") for i in range(16, 21)]
                        + [_track(99, genre="ID", is_jingle=True)])
    store.close()
    yield paths


@pytest.fixture
def client():
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


def _post(client, url, payload):
    return client.post(url, data=json.dumps(payload), content_type="application/json")


# ---------------------------------------------------------------------------
# Health check and catalog
# ---------------------------------------------------------------------------

def test_status(client):
    resp = client.get("/api/status")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["service"] == "playlist-generator"
    assert data["status"] == "ok"


def test_algorithms(client):
    data = client.get("/api/algorithms").get_json()
    assert len(data) == 8
    assert data["clock_wheel"]["label"] == "Clock Wheel"


# ---------------------------------------------------------------------------
# Generate
# ---------------------------------------------------------------------------

def test_generate_creates_playlist_and_export(client, isolated_paths):
    resp = _post(client, "/api/playlists/generate",
                 {"name": "Morning Classics", "algorithm": "smart_rotation", "track_count": 6})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["ok"] is True
    assert body["track_count"] == 6
    assert body["pool_size"] == 20
    assert os.path.dirname(body["export_path"]) == isolated_paths["EXPORT_DIR"]
    assert body["export_path"].endswith(".m3u")

    playlist = client.get(f"/api/playlists/{body['playlist_id']}").get_json()
    assert playlist["name"] == "Morning Classics"
    assert playlist["type"] == "smart"
    assert [t["position"] for t in playlist["tracks"]] == [1, 2, 3, 4, 5, 6]


def test_generate_csv_format(client):
    resp = _post(client, "/api/playlists/generate",
                 {"name": "Sheet", "track_count": 3, "export_format": "csv"})
    assert resp.get_json()["export_path"].endswith(".csv")


def test_generate_unknown_export_format(client):
    resp = _post(client, "/api/playlists/generate",
                 {"name": "Sheet", "track_count": 3, "export_format": "xml"})
    assert resp.status_code == 400
    assert resp.get_json()["error_type"] == "input"


def test_generate_requires_name(client):
    resp = _post(client, "/api/playlists/generate", {"track_count": 5})
    assert resp.status_code == 400
    assert resp.get_json()["error_type"] == "input"


def test_generate_empty_pool(client):
    resp = _post(client, "/api/playlists/generate",
                 {"name": "Nothing", "filters": {"genre": "polka"}})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["error_type"] == "empty"
    assert body["error"] == "no tracks match filters"


def test_generate_uses_station_rules(client):
    client.put("/api/rules", data=json.dumps({"jingle_every_n": 2}),
               content_type="application/json")
    body = _post(client, "/api/playlists/generate",
                 {"name": "Branded", "track_count": 4, "write_export": False}).get_json()
    assert body["track_count"] == 5
    assert body["stats"]["jingles"] == 1


def test_request_rules_override_station_rules(client):
    client.put("/api/rules", data=json.dumps({"jingle_every_n": 2}),
               content_type="application/json")
    body = _post(client, "/api/playlists/generate",
                 {"name": "Plain", "track_count": 4, "write_export": False,
                  "rules": {"jingle_every_n": 0}}).get_json()
    assert body["track_count"] == 4


# ---------------------------------------------------------------------------
# Preview and estimate
# ---------------------------------------------------------------------------

def test_preview(client):
    resp = _post(client, "/api/playlists/preview",
                 {"algorithm": "genre_block", "track_count": 30, "limit": 4})
    assert resp.status_code == 200
    body = resp.get_json()
    assert len(body["tracks"]) == 4
    assert body["estimated_total"] == 30
    assert body["estimated_duration_sec"] == 6000


def test_preview_bad_limit(client):
    resp = _post(client, "/api/playlists/preview", {"limit": "lots"})
    assert resp.status_code == 400


def test_pool_estimate(client):
    resp = _post(client, "/api/pool/estimate", {"filters": {"genre": "jazz"}})
    assert resp.status_code == 200
    assert resp.get_json() == {"pool_size": 5}


def test_pool_estimate_accepts_bare_filters(client):
    assert _post(client, "/api/pool/estimate", {"include_jingles": True}).get_json() == {"pool_size": 21}


# ---------------------------------------------------------------------------
# Stored playlists
# ---------------------------------------------------------------------------

def test_get_playlist_not_found(client):
    resp = client.get("/api/playlists/12345")
    assert resp.status_code == 404


@pytest.mark.parametrize("method, url", [
    ("get",  "/api/playlists/1"),
    ("post", "/api/playlists/1/validate"),
])
def test_unopenable_database_returns_json_error(client, monkeypatch, method, url):
    def _unavailable():
        raise StorageError("unable to open database file")

    monkeypatch.setattr(app_module, "_open_store", _unavailable)
    resp = getattr(client, method)(url)
    assert resp.status_code == 500
    assert resp.get_json()["error"].startswith("database error:")
