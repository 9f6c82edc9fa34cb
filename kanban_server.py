#!/usr/bin/env python3
"""
gitkanban Server
----------------
JSON API over boards stored as Markdown in a GitHub repository.

Usage:
    export GITHUB_PAT=...              # token with contents:write on the repo
    export GITKANBAN_API_SECRET=...    # shared secret for write endpoints
    python kanban_server.py --config config.yaml

API:
    GET  /health            → { status, repo, branch }
    GET  /boards            → { ok, boards: [{ id, title }] }
    GET  /board/<board_id>  → { ok, board, version }
    POST /boards            → body { id, title, columns? }
                              201 { ok, boardId, newVersion }
    POST /save              → body { board, boardId, expectedVersion, deletedCardIds }
                              { ok, newVersion } | 409 { ok: false, kind: "conflict", message }

Write endpoints need the X-API-Key header. X-Author names the person the
commit message credits; login and sessions live in front of this service.
"""

import hmac
import logging
import os
import sys
from functools import wraps
from typing import Optional

from flask import Flask, jsonify, request

from gitkanban.config import Config
from gitkanban.schema import Board, Column
from gitkanban.store import GitBoardStore, Result

logger = logging.getLogger(__name__)

app = Flask(__name__)

# ── Auth ─────────────────────────────────────────────────────────────────────

API_SECRET = os.environ.get("GITKANBAN_API_SECRET", "")


def require_api_key(f):
    """Decorator: reject requests without a valid X-API-Key header."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not API_SECRET:
            return jsonify({"ok": False, "kind": "not_configured",
                            "message": "API secret not set"}), 503
        provided = request.headers.get("X-API-Key", "").strip()
        if not hmac.compare_digest(provided, API_SECRET):
            code = 401 if not provided else 403
            return jsonify({"ok": False, "kind": "not_authenticated",
                            "message": "Unauthorized"}), code
        return f(*args, **kwargs)
    return decorated


# ── Store ────────────────────────────────────────────────────────────────────

_store: Optional[GitBoardStore] = None


def get_store() -> GitBoardStore:
    """Build the store on first use from GITKANBAN_CONFIG / config.yaml."""
    global _store
    if _store is None:
        _store = GitBoardStore(Config.load())
    return _store


def respond(result: Result, success_status: int = 200):
    status = success_status if result.ok else result.status
    return jsonify(result.to_dict()), status


def invalid_payload(message: str):
    return jsonify({"ok": False, "kind": "invalid_json", "message": message}), 400


def request_author() -> Optional[str]:
    author = request.headers.get("X-Author", "").strip()
    return author or None


# ── Routes ───────────────────────────────────────────────────────────────────

@app.route("/health")
def health():
    cfg = get_store().config
    return jsonify({
        "status": "ok",
        "repo": f"{cfg.repo_owner}/{cfg.repo_name}",
        "branch": cfg.branch,
    })


@app.route("/boards", methods=["GET"])
def api_list_boards():
    return respond(get_store().list_boards())


@app.route("/board/<board_id>", methods=["GET"])
def api_get_board(board_id):
    result = get_store().load_board(board_id)
    if not result.ok:
        return respond(result)
    return jsonify({"ok": True, "board": result.board.to_dict(), "version": result.new_version})


@app.route("/boards", methods=["POST"])
@require_api_key
def api_create_board():
    """Create a new, empty board."""
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        return invalid_payload("Request body must be a JSON object")

    try:
        columns = [Column.from_dict(c) for c in data.get("columns") or []]
    except (AttributeError, TypeError, ValueError) as e:
        return invalid_payload(f"Invalid columns: {e}")

    result = get_store().create_board(
        str(data.get("id", "")).strip(),
        str(data.get("title", "")).strip(),
        columns or None,
        author=request_author(),
    )
    return respond(result, success_status=201)


@app.route("/save", methods=["POST"])
@require_api_key
def api_save_board():
    """Save a full board on top of the version the client last read."""
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        return invalid_payload("Request body must be a JSON object")

    try:
        board = Board.from_dict(data["board"])
        deleted = [str(card_id) for card_id in data.get("deletedCardIds") or []]
    except (KeyError, AttributeError, TypeError, ValueError) as e:
        return invalid_payload(f"Invalid board payload: {e}")

    expected = data.get("expectedVersion") or data.get("headCommitSha") or ""
    result = get_store().save(
        board,
        str(data.get("boardId", "")),
        str(expected),
        deleted,
        author=request_author(),
    )
    return respond(result)


# ── Main ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="gitkanban Server")
    parser.add_argument("--host", default="127.0.0.1",
                        help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--config", help="Path to config.yaml (overrides GITKANBAN_CONFIG)")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    _store = GitBoardStore(Config.load(args.config))
    cfg = _store.config

    print(f"""
╔═══════════════════════════════════════╗
║  gitkanban Server                     ║
╠═══════════════════════════════════════╣
║  URL:    http://{args.host}:{args.port:<18}║
║  Repo:   {cfg.repo_owner + '/' + cfg.repo_name:<29}║
║  Branch: {cfg.branch:<29}║
╚═══════════════════════════════════════╝
""")

    if not API_SECRET:
        logger.warning("GITKANBAN_API_SECRET is not set; write endpoints will answer 503")

    app.run(host=args.host, port=args.port, debug=False, threaded=True)
