from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.pms.db import db_session
from app.pms.models import User
from app.pms.modules.clients.service import (
    create_client,
    delete_client,
    get_active_client,
    list_clients,
    update_client,
)
from app.pms.modules.notifications.service import broadcast_action
from app.pms.modules.proposals.service import list_proposals, serialize_proposals
from app.pms.rbac import require_permission
from app.pms.utils import clean_str, json_body

bp = Blueprint("clients", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("clients.view")
def clients_list():
    s = db_session()
    clients = list_clients(s, search=clean_str(request.args.get("q")))
    return jsonify([c.to_dict() for c in clients])


@bp.get("/<int:client_id>")
@require_permission("clients.view")
def client_detail(client_id: int):
    s = db_session()
    return jsonify(get_active_client(s, client_id).to_dict())


@bp.get("/<int:client_id>/proposals")
@require_permission("proposals.view")
def client_proposals(client_id: int):
    s = db_session()
    client = get_active_client(s, client_id)
    return jsonify(serialize_proposals(list_proposals(s, client_id=client.id)))


@bp.post("")
@require_permission("clients.create")
def client_create():
    s = db_session()
    u = _current_user()
    client = create_client(s, json_body(), u)
    s.commit()

    broadcast_action(
        s, u, title="Client added", verb="added client", subject=client.company_name, entity="Client", record_id=client.id
    )
    return jsonify(client.to_dict()), 201


@bp.put("/<int:client_id>")
@require_permission("clients.edit")
def client_update(client_id: int):
    s = db_session()
    u = _current_user()
    client = update_client(s, get_active_client(s, client_id), json_body(), u)
    s.commit()

    broadcast_action(
        s, u, title="Client updated", verb="updated client", subject=client.company_name, entity="Client", record_id=client.id
    )
    return jsonify(client.to_dict())


@bp.delete("/<int:client_id>")
@require_permission("clients.delete")
def client_delete(client_id: int):
    s = db_session()
    u = _current_user()
    client = delete_client(s, get_active_client(s, client_id), u)
    s.commit()

    broadcast_action(
        s, u, title="Client removed", verb="deleted client", subject=client.company_name, entity="Client", record_id=client.id
    )
    return jsonify(client.to_dict())
