from __future__ import annotations

import concurrent.futures
import logging
from typing import Any, Callable, Dict

from flask import Flask, jsonify

log = logging.getLogger(__name__)

StatusProvider = Callable[[], Dict[str, Any]]


def create_app(status: StatusProvider) -> Flask:
    """
    Read-only HTTP view of a running chat server.

    ``status`` is called from Flask's worker threads, so it must be safe to
    call off the event loop (ChatServer.status_threadsafe is).
    """
    app = Flask(__name__)

    def _status():
        try:
            return status(), None
        except (concurrent.futures.TimeoutError, RuntimeError) as e:
            log.warning("status unavailable: %r", e)
            return None, (jsonify({"ok": False, "error": "chat server not responding"}), 503)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/api/online")
    def api_online():
        st, err = _status()
        if err:
            return err
        return jsonify({"ok": True, "count": st["count"], "capacity": st["capacity"], "users": st["users"]})

    @app.get("/api/history")
    def api_history():
        st, err = _status()
        if err:
            return err
        return jsonify({"ok": True, "items": st["history"]})

    return app
