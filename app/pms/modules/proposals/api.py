from __future__ import annotations

import io

from flask import Blueprint, current_app, g, jsonify, request, send_file

from app.pms.db import db_session
from app.pms.errors import BadRequest
from app.pms.models import User
from app.pms.modules.notifications.service import broadcast_action
from app.pms.modules.proposals.pdf import render_proposal_pdf
from app.pms.modules.proposals.service import (
    create_proposal,
    delete_proposal,
    get_proposal,
    list_proposals,
    mark_previewed,
    serialize_proposal,
    serialize_proposals,
    set_status,
    update_proposal,
)
from app.pms.rbac import require_permission
from app.pms.utils import clean_str, json_body

bp = Blueprint("proposals", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- List ----------
@bp.get("")
@require_permission("proposals.view")
def proposals_list():
    s = db_session()
    raw_client = clean_str(request.args.get("client_id"))
    client_id = None
    if raw_client:
        try:
            client_id = int(raw_client)
        except ValueError:
            raise BadRequest("client_id must be an integer") from None
    status = (clean_str(request.args.get("status")) or "").upper() or None
    return jsonify(serialize_proposals(list_proposals(s, client_id=client_id, status=status)))


# ---------- Detail ----------
@bp.get("/<int:proposal_id>")
@require_permission("proposals.view")
def proposal_detail(proposal_id: int):
    s = db_session()
    return jsonify(serialize_proposal(get_proposal(s, proposal_id)))


# ---------- Create ----------
@bp.post("")
@require_permission("proposals.create")
def proposal_create():
    s = db_session()
    u = _current_user()
    proposal = create_proposal(s, json_body(), u)
    s.commit()

    broadcast_action(
        s,
        u,
        title="Proposal created",
        verb="created proposal",
        subject=proposal.proposal_number,
        entity="Proposal",
        record_id=proposal.id,
    )
    return jsonify(serialize_proposal(proposal)), 201


# ---------- Revise (drafts only) ----------
@bp.put("/<int:proposal_id>")
@require_permission("proposals.edit")
def proposal_update(proposal_id: int):
    s = db_session()
    u = _current_user()
    proposal = update_proposal(s, get_proposal(s, proposal_id), json_body(), u)
    s.commit()

    broadcast_action(
        s,
        u,
        title="Proposal updated",
        verb="revised proposal",
        subject=f"{proposal.proposal_number} (v{proposal.version})",
        entity="Proposal",
        record_id=proposal.id,
    )
    return jsonify(serialize_proposal(proposal))


# ---------- Status ----------
@bp.patch("/<int:proposal_id>/status")
@require_permission("proposals.edit")
def proposal_status(proposal_id: int):
    s = db_session()
    u = _current_user()
    status = json_body().get("status")
    proposal = set_status(s, get_proposal(s, proposal_id), status, u)
    s.commit()

    broadcast_action(
        s,
        u,
        title="Proposal status updated",
        verb="set proposal",
        subject=f"{proposal.proposal_number} to {proposal.status}",
        entity="Proposal",
        record_id=proposal.id,
    )
    return jsonify(serialize_proposal(proposal))


@bp.patch("/<int:proposal_id>/previewed")
@require_permission("proposals.edit")
def proposal_previewed(proposal_id: int):
    s = db_session()
    proposal = mark_previewed(s, get_proposal(s, proposal_id), _current_user())
    s.commit()
    return jsonify(serialize_proposal(proposal))


# ---------- PDF ----------
@bp.get("/<int:proposal_id>/pdf")
@require_permission("proposals.view")
def proposal_pdf(proposal_id: int):
    s = db_session()
    proposal = get_proposal(s, proposal_id)
    pdf_bytes = render_proposal_pdf(
        proposal,
        company_name=current_app.config["COMPANY_NAME"],
        company_address=current_app.config["COMPANY_ADDRESS"],
        company_contact=current_app.config["COMPANY_CONTACT"],
    )
    mark_previewed(s, proposal, _current_user())
    s.commit()
    return send_file(
        io.BytesIO(pdf_bytes),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=f"{proposal.proposal_number}.pdf",
    )


# ---------- Delete ----------
@bp.delete("/<int:proposal_id>")
@require_permission("proposals.delete")
def proposal_delete(proposal_id: int):
    s = db_session()
    u = _current_user()
    proposal = get_proposal(s, proposal_id)
    number = proposal.proposal_number
    delete_proposal(s, proposal, u)
    s.commit()

    broadcast_action(
        s, u, title="Proposal deleted", verb="deleted proposal", subject=number, entity="Proposal", record_id=proposal_id
    )
    return jsonify({"message": "Proposal deleted successfully"})
