import time
from datetime import datetime, timezone

from flask import Blueprint, jsonify

bp = Blueprint("routes", __name__)

_STARTED_AT = time.monotonic()


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return jsonify(
        {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - _STARTED_AT, 3),
        }
    )


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO probes. No DB access, minimal overhead.
    """
    return "ok", 200
