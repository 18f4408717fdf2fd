"""
Development webhook receiver.

Stands in for the downstream notification service while running the
dispatcher locally: it accepts notification payloads, keeps the most recent
ones in memory and lists them.

Endpoints
---------
POST /api/notifications          receive one payload
GET  /api/notifications/recent   newest first, up to 200
GET  /health
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request

MAX_EVENTS = 500

load_dotenv(Path.cwd() / ".env")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def create_app(token: Optional[str] = None) -> Flask:
    """
    Build the receiver app.

    Parameters
    ----------
    token
        Expected Bearer token. If empty, requests are accepted without auth.
    """
    app = Flask(__name__)
    events: List[Dict[str, Any]] = []
    app.config["EVENTS"] = events

    def require_bearer(fn):
        """Require ``Authorization: Bearer <token>`` when a token is configured."""
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not token:
                return fn(*args, **kwargs)

            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer "):
                return jsonify({"error": "unauthorized"}), 401
            if auth.removeprefix("Bearer ").strip() != token:
                return jsonify({"error": "invalid token"}), 403
            return fn(*args, **kwargs)
        return wrapper

    @app.post("/api/notifications")
    @require_bearer
    def receive_notification():
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or "driver_id" not in data:
            return jsonify({"error": "expected a notification payload"}), 400

        events.append({"received_at": _now_iso(), "body": data})
        if len(events) > MAX_EVENTS:
            del events[:-MAX_EVENTS]

        app.logger.info("notification received for driver %s", data.get("driver_id"))
        return jsonify({"status": "ok"}), 200

    @app.get("/api/notifications/recent")
    @require_bearer
    def recent_notifications():
        recent = list(reversed(events[-200:]))
        return jsonify({"count": len(events), "events": recent}), 200

    @app.get("/health")
    def health():
        return jsonify({"status": "ok"}), 200

    return app


app = create_app(os.getenv("WEBHOOK_TOKEN", ""))


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("WEBHOOK_PORT", "8000")), debug=False)
