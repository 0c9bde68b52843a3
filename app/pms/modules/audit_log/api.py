from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.pms.audit import list_logs, logs_for_record
from app.pms.db import db_session
from app.pms.rbac import require_permission
from app.pms.utils import clean_str, query_int

bp = Blueprint("audit_log", __name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 500


@bp.get("")
@require_permission("audit.view")
def audit_list():
    s = db_session()
    raw_user = clean_str(request.args.get("user_id"))
    logs, total = list_logs(
        s,
        entity=clean_str(request.args.get("entity")),
        record_id=clean_str(request.args.get("record_id")),
        user_id=query_int("user_id", 0) if raw_user else None,
        limit=query_int("limit", DEFAULT_LIMIT, minimum=1, maximum=MAX_LIMIT),
        offset=query_int("offset", 0),
    )
    return jsonify({"logs": logs, "total": total})


@bp.get("/<entity>/<record_id>")
@require_permission("audit.view")
def audit_for_record(entity: str, record_id: str):
    s = db_session()
    return jsonify({"logs": logs_for_record(s, entity, record_id)})
