from __future__ import annotations

from flask import Blueprint, jsonify
from sqlalchemy import func

from app.pms.db import db_session
from app.pms.modules.clients.models import Client
from app.pms.modules.devices.models import Device
from app.pms.modules.proposals.models import Proposal
from app.pms.rbac import require_permission

bp = Blueprint("dashboard", __name__)

RECENT_LIMIT = 5


@bp.get("/summary")
@require_permission("dashboard.view")
def summary():
    s = db_session()

    active_clients = s.query(func.count(Client.id)).filter(Client.is_active.is_(True)).scalar() or 0
    active_devices = s.query(func.count(Device.id)).filter(Device.is_active.is_(True)).scalar() or 0
    not_rejected = Proposal.status != "REJECTED"
    active_proposals = s.query(func.count(Proposal.id)).filter(not_rejected).scalar() or 0
    total_value = s.query(func.coalesce(func.sum(Proposal.total_amount), 0)).filter(not_rejected).scalar() or 0

    by_status = dict(s.query(Proposal.status, func.count(Proposal.id)).group_by(Proposal.status).all())

    recent_rows = (
        s.query(Proposal, Client.company_name)
        .outerjoin(Client, Client.id == Proposal.client_id)
        .order_by(Proposal.created_at.desc(), Proposal.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )
    recent = [
        {
            "id": p.id,
            "proposal_number": p.proposal_number,
            "proposal_title": p.proposal_title,
            "total_amount": p.total_amount,
            "status": p.status,
            "created_at": p.created_at.isoformat() if p.created_at else None,
            "client_id": p.client_id,
            "client_name": client_name,
        }
        for p, client_name in recent_rows
    ]

    return jsonify(
        {
            "active_clients": active_clients,
            "active_proposals": active_proposals,
            "active_devices": active_devices,
            "total_value": round(float(total_value), 2),
            "recent_proposals": recent,
            "proposals_by_status": by_status,
        }
    )
