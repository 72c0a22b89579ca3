import json
import logging

import config
import playlist_manager
from engine.models import algo_catalog
from engine.rules import merge_rules
from engine.validator import validate_playlist
from export_base import get_exporter
from flask import Flask, jsonify, request
from logger import setup_logging
from storage import SqliteStore, StorageError

logger = logging.getLogger(__name__)

app = Flask(__name__)

DB_PATH       = config.DB_PATH
EXPORT_DIR    = config.EXPORT_DIR
EXPORT_FORMAT = config.EXPORT_FORMAT
RULES_FILE    = config.RULES_FILE

_STATUS_CODES = {"input": 400, "empty": 400, "database": 500, "internal": 500}


# ---------------------------------------------------------------------------
# Low-level helpers
# ---------------------------------------------------------------------------

def _open_store() -> SqliteStore:
    return SqliteStore(DB_PATH)


def _with_station_rules(data: dict) -> dict:
    """Request payload with station rules as the base for per-request overrides."""
    overrides = data.get("rules") or {}
    if not isinstance(overrides, dict):
        return data
    return {**data, "rules": {**config.load_rules(RULES_FILE), **overrides}}


def _result_response(result: dict, success_code: int = 200):
    if result.get("ok"):
        return jsonify(result), success_code
    return jsonify(result), _STATUS_CODES.get(result.get("error_type"), 500)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.route("/api/status")
def status():
    return jsonify({
        "service": "playlist-generator",
        "status":  "ok",
    })


@app.route("/api/algorithms")
def list_algorithms():
    return jsonify(algo_catalog())


# ---------------------------------------------------------------------------
# Station rotation rules
# ---------------------------------------------------------------------------

@app.route("/api/rules", methods=["GET"])
def get_rules():
    return jsonify(config.load_rules(RULES_FILE))


@app.route("/api/rules", methods=["PUT"])
def update_rules():
    data = request.get_json(silent=True) or {}
    try:
        rules = merge_rules({**config.load_rules(RULES_FILE), **data})
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    config.save_rules(rules, RULES_FILE)
    return jsonify(rules)


# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------

@app.route("/api/playlists/generate", methods=["POST"])
def generate_playlist():
    data = _with_station_rules(request.get_json(silent=True) or {})
    try:
        exporter = get_exporter(data.get("export_format") or EXPORT_FORMAT, EXPORT_DIR)
    except ValueError as exc:
        return jsonify({"ok": False, "error": str(exc), "error_type": "input"}), 400

    try:
        store = _open_store()
    except StorageError as exc:
        return jsonify({"ok": False, "error": f"database error: {exc}", "error_type": "database"}), 500
    try:
        result = playlist_manager.generate(data, store, exporter=exporter)
    finally:
        store.close()
    return _result_response(result, 201)


@app.route("/api/playlists/preview", methods=["POST"])
def preview_playlist():
    data = _with_station_rules(request.get_json(silent=True) or {})
    try:
        limit = int(data.get("limit", 20))
    except (TypeError, ValueError):
        return jsonify({"ok": False, "error": "'limit' must be an integer", "error_type": "input"}), 400

    try:
        store = _open_store()
    except StorageError as exc:
        return jsonify({"ok": False, "error": f"database error: {exc}", "error_type": "database"}), 500
    try:
        result = playlist_manager.preview(data, store, limit=limit)
    finally:
        store.close()
    return _result_response(result)


@app.route("/api/pool/estimate", methods=["POST"])
def estimate_pool():
    data    = request.get_json(silent=True) or {}
    filters = data.get("filters", data)
    try:
        store = _open_store()
    except StorageError as exc:
        return jsonify({"error": f"database error: {exc}"}), 500
    try:
        pool_size = playlist_manager.estimate_pool_size(filters, store)
    finally:
        store.close()
    return jsonify({"pool_size": pool_size})


def _stored_rules(playlist: dict) -> dict:
    try:
        snapshot = json.loads(playlist.get("rule_json") or "{}")
    except ValueError:
        return {}
    if not isinstance(snapshot, dict):
        return {}
    return snapshot.get("rules") or {}


@app.route("/api/playlists/<int:playlist_id>", methods=["GET"])
def get_playlist(playlist_id):
    try:
        store = _open_store()
    except StorageError as exc:
        return jsonify({"error": f"database error: {exc}"}), 500
    try:
        playlist = store.get_playlist(playlist_id)
        if playlist is None:
            return jsonify({"error": "Playlist not found"}), 404
        tracks = store.get_playlist_tracks(playlist_id)
    except StorageError as exc:
        return jsonify({"error": f"database error: {exc}"}), 500
    finally:
        store.close()
    return jsonify({**playlist, "tracks": tracks})


@app.route("/api/playlists/<int:playlist_id>/validate", methods=["POST"])
def validate_playlist_route(playlist_id):
    """Validate a stored playlist against its generation rules (or overrides)."""
    try:
        store = _open_store()
    except StorageError as exc:
        return jsonify({"error": f"database error: {exc}"}), 500
    try:
        playlist = store.get_playlist(playlist_id)
        if playlist is None:
            return jsonify({"error": "Playlist not found"}), 404
        tracks = store.get_playlist_tracks(playlist_id)
    except StorageError as exc:
        return jsonify({"error": f"database error: {exc}"}), 500
    finally:
        store.close()

    data     = request.get_json(silent=True) or {}
    override = data.get("rules") or {}
    try:
        rules = merge_rules({**_stored_rules(playlist), **override})
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    return jsonify(validate_playlist(tracks, rules))


if __name__ == "__main__":
    setup_logging()
    app.run(debug=True)
