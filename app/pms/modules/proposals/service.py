"""
Proposal builder.

Items may reference a catalog device; whatever snapshot fields the caller left
out are copied from that device when the proposal is saved, so later catalog
edits never change an existing proposal.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.pms.audit import record_change, record_update
from app.pms.constants import PROPOSAL_NUMBER_PREFIX, PROPOSAL_NUMBER_START, PROPOSAL_STATUSES
from app.pms.errors import Conflict, NotFound, ValidationError
from app.pms.utils import clean_str, is_number, parse_iso_datetime

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.pms.models import User
    from app.pms.modules.proposals.models import Proposal, ProposalItem

logger = logging.getLogger(__name__)

SEQUENCE_ROW_ID = 1


def _money(value: float) -> float:
    return round(float(value), 2)


# ---------- Pricing ----------
def compute_line_total(price: float, quantity: int, discount: float = 0.0) -> float:
    gross = price * quantity
    return _money(gross - gross * discount / 100)


def compute_totals(line_totals: list[float], tax_rate: float, *, tax_exempt: bool = False) -> dict[str, float]:
    subtotal = _money(sum(line_totals))
    tax_amount = 0.0 if tax_exempt else _money(subtotal * tax_rate / 100)
    return {
        "subtotal": subtotal,
        "tax_amount": tax_amount,
        "total_amount": _money(subtotal + tax_amount),
    }


# ---------- Numbering ----------
def next_proposal_number(s: "Session") -> str:
    """
    Allocate the next PROP-<n>. The counter row is updated in the caller's
    transaction, so a rolled-back proposal gives its number back.
    """
    from app.pms.modules.proposals.models import ProposalSequence

    seq = s.get(ProposalSequence, SEQUENCE_ROW_ID, with_for_update=True)
    if seq is None:
        seq = ProposalSequence(id=SEQUENCE_ROW_ID, value=PROPOSAL_NUMBER_START)
        s.add(seq)
    number = f"{PROPOSAL_NUMBER_PREFIX}{seq.value}"
    seq.value = seq.value + 1
    s.flush()
    return number


# ---------- Validation ----------
def _validate_item(index: int, raw: Any) -> list[str]:
    prefix = f"items[{index}]"
    if not isinstance(raw, dict):
        return [f"{prefix}: must be an object"]
    errors = []
    device_id = raw.get("device_id")
    if device_id is not None and (not isinstance(device_id, int) or isinstance(device_id, bool)):
        errors.append(f"{prefix}.device_id: must be an integer")
    quantity = raw.get("quantity", 1)
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        errors.append(f"{prefix}.quantity: must be an integer of at least 1")
    discount = raw.get("discount", 0)
    if not is_number(discount) or not 0 <= discount <= 100:
        errors.append(f"{prefix}.discount: must be between 0 and 100")
    for field in ("snapshot_price", "line_total"):
        value = raw.get(field)
        if value is not None and (not is_number(value) or value < 0):
            errors.append(f"{prefix}.{field}: must be a number greater than or equal to 0")
    for field in ("snapshot_name", "snapshot_make", "snapshot_model"):
        value = raw.get(field)
        if value is not None and not isinstance(value, str):
            errors.append(f"{prefix}.{field}: must be a string")
    specs = raw.get("snapshot_specs")
    if specs is not None and not isinstance(specs, dict):
        errors.append(f"{prefix}.snapshot_specs: must be a JSON object")
    if device_id is None and not clean_str(raw.get("snapshot_name")):
        errors.append(f"{prefix}.snapshot_name: is required when no device_id is given")
    return errors


def validate_proposal_payload(payload: dict) -> list[str]:
    errors = []
    client_id = payload.get("client_id")
    if not isinstance(client_id, int) or isinstance(client_id, bool):
        errors.append("client_id: is required")

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        errors.append("items: at least one item is required")
    else:
        for i, raw in enumerate(items):
            errors.extend(_validate_item(i, raw))

    tax_rate = payload.get("tax_rate", 0)
    if not is_number(tax_rate) or not 0 <= tax_rate <= 100:
        errors.append("tax_rate: must be between 0 and 100")

    for field in ("proposal_title", "notes", "terms_conditions"):
        value = payload.get(field)
        if value is not None and not isinstance(value, str):
            errors.append(f"{field}: must be a string")

    try:
        parse_iso_datetime(payload.get("valid_until"))
    except ValueError:
        errors.append("valid_until: must be an ISO date")
    return errors


# ---------- Building ----------
def _build_items(s: "Session", raw_items: list[dict]) -> list["ProposalItem"]:
    from app.pms.modules.devices.models import Device
    from app.pms.modules.proposals.models import ProposalItem

    items: list[ProposalItem] = []
    errors: list[str] = []
    for index, raw in enumerate(raw_items):
        device = None
        if raw.get("device_id") is not None:
            device = s.get(Device, raw["device_id"])
            if device is None or not device.is_active:
                errors.append(f"items[{index}].device_id: item not found")
                continue

        name = clean_str(raw.get("snapshot_name"))
        make = clean_str(raw.get("snapshot_make"))
        model = clean_str(raw.get("snapshot_model"))
        price = raw.get("snapshot_price")
        specs = raw.get("snapshot_specs")
        if device is not None:
            name = name or device.name
            make = make or device.make
            model = model or device.model
            price = device.unit_price if price is None else price
            specs = dict(device.specifications or {}) if specs is None else specs

        price = float(price or 0)
        quantity = int(raw.get("quantity", 1))
        discount = float(raw.get("discount", 0))
        line_total = raw.get("line_total")
        line_total = compute_line_total(price, quantity, discount) if line_total is None else _money(line_total)

        items.append(
            ProposalItem(
                position=index,
                device_id=device.id if device is not None else None,
                snapshot_name=name,
                snapshot_make=make,
                snapshot_model=model,
                snapshot_price=_money(price),
                snapshot_specs=specs,
                quantity=quantity,
                discount=discount,
                line_total=line_total,
            )
        )
    if errors:
        raise ValidationError(errors)
    return items


def _apply_header(proposal: "Proposal", payload: dict) -> None:
    proposal.proposal_title = clean_str(payload.get("proposal_title"))
    proposal.notes = payload.get("notes") or None
    proposal.terms_conditions = payload.get("terms_conditions") or None
    valid_until = parse_iso_datetime(payload.get("valid_until"))
    proposal.valid_until = valid_until.date() if valid_until else None


def _apply_pricing(proposal: "Proposal", items: list["ProposalItem"], tax_rate: float) -> None:
    tax_exempt = bool(proposal.client and proposal.client.tax_exempt)
    totals = compute_totals([i.line_total for i in items], tax_rate, tax_exempt=tax_exempt)
    proposal.tax_rate = 0.0 if tax_exempt else float(tax_rate)
    proposal.subtotal = totals["subtotal"]
    proposal.tax_amount = totals["tax_amount"]
    proposal.total_amount = totals["total_amount"]


def create_proposal(s: "Session", payload: dict, user: "User") -> "Proposal":
    from app.pms.modules.clients.service import get_active_client
    from app.pms.modules.proposals.models import Proposal

    errors = validate_proposal_payload(payload)
    if errors:
        raise ValidationError(errors)

    client = get_active_client(s, payload["client_id"])
    items = _build_items(s, payload["items"])

    now = datetime.utcnow()
    proposal = Proposal(
        proposal_number=next_proposal_number(s),
        client=client,
        created_by_user_id=user.id,
        status="DRAFT",
        version=1,
        is_previewed=False,
        created_at=now,
        updated_at=now,
    )
    _apply_header(proposal, payload)
    proposal.items = items
    _apply_pricing(proposal, items, payload.get("tax_rate", 0))
    s.add(proposal)
    s.flush()

    record_change(s, actor=user, entity="Proposal", record_id=proposal.id, action="CREATE", new_values=proposal.audit_values())
    logger.info("proposal created %s total=%s", proposal.proposal_number, proposal.total_amount)
    return proposal


def update_proposal(s: "Session", proposal: "Proposal", payload: dict, user: "User") -> "Proposal":
    """Revise a DRAFT: header and items are replaced, totals recomputed and the version bumped."""
    from app.pms.modules.clients.service import get_active_client

    if proposal.status != "DRAFT":
        raise Conflict("Only draft proposals can be edited")

    payload = {"client_id": proposal.client_id, **payload}
    errors = validate_proposal_payload(payload)
    if errors:
        raise ValidationError(errors)

    before = proposal.audit_values()
    proposal.client = get_active_client(s, payload["client_id"])
    items = _build_items(s, payload["items"])

    _apply_header(proposal, payload)
    proposal.items = items
    _apply_pricing(proposal, items, payload.get("tax_rate", 0))
    proposal.version = (proposal.version or 1) + 1
    proposal.updated_at = datetime.utcnow()
    s.flush()

    record_update(s, actor=user, entity="Proposal", record_id=proposal.id, before=before, after=proposal.audit_values())
    return proposal


def set_status(s: "Session", proposal: "Proposal", status: Any, user: "User") -> "Proposal":
    if status not in PROPOSAL_STATUSES:
        raise ValidationError([f"status: must be one of {', '.join(PROPOSAL_STATUSES)}"])
    before = proposal.audit_values()
    proposal.status = status
    proposal.updated_at = datetime.utcnow()
    record_update(s, actor=user, entity="Proposal", record_id=proposal.id, before=before, after=proposal.audit_values())
    return proposal


def mark_previewed(s: "Session", proposal: "Proposal", user: "User") -> "Proposal":
    if proposal.is_previewed:
        return proposal
    before = proposal.audit_values()
    proposal.is_previewed = True
    proposal.updated_at = datetime.utcnow()
    record_update(s, actor=user, entity="Proposal", record_id=proposal.id, before=before, after=proposal.audit_values())
    return proposal


def delete_proposal(s: "Session", proposal: "Proposal", user: "User") -> dict:
    snapshot = proposal.audit_values()
    proposal_id = proposal.id
    s.delete(proposal)
    record_change(s, actor=user, entity="Proposal", record_id=proposal_id, action="DELETE", old_values=snapshot)
    return snapshot


# ---------- Queries ----------
def get_proposal(s: "Session", proposal_id: int) -> "Proposal":
    from app.pms.modules.proposals.models import Proposal

    proposal = s.get(Proposal, proposal_id)
    if not proposal:
        raise NotFound("Proposal not found")
    return proposal


def list_proposals(s: "Session", *, client_id: int | None = None, status: str | None = None) -> list["Proposal"]:
    from app.pms.modules.proposals.models import Proposal

    q = s.query(Proposal)
    if client_id is not None:
        q = q.filter(Proposal.client_id == client_id)
    if status:
        q = q.filter(Proposal.status == status)
    return q.order_by(Proposal.created_at.desc(), Proposal.id.desc()).all()


def serialize_proposal(proposal: "Proposal") -> dict:
    data = proposal.to_dict()
    data["client"] = proposal.client.to_dict() if proposal.client else None
    return data


def serialize_proposals(proposals: list["Proposal"]) -> list[dict]:
    return [serialize_proposal(p) for p in proposals]
