from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.pms.audit import record_change, record_update
from app.pms.errors import NotFound, ValidationError
from app.pms.utils import clean_str, is_email

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.pms.models import User
    from app.pms.modules.clients.models import Client


DEFAULT_CURRENCY = "INR"
DEFAULT_PAYMENT_TERMS = "Net 30"

_OPTIONAL_TEXT = ("shipping_address", "tax_id", "contact_name", "contact_phone")


def validate_client_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    for field in ("company_name", "billing_address"):
        if field not in payload and partial:
            continue
        if not clean_str(payload.get(field)):
            errors.append(f"{field}: is required")

    email = clean_str(payload.get("contact_email"))
    if email and not is_email(email):
        errors.append("contact_email: must be a valid email address")

    if "tax_exempt" in payload and not isinstance(payload.get("tax_exempt"), bool):
        errors.append("tax_exempt: must be true or false")

    currency = payload.get("default_currency")
    if currency is not None and (not isinstance(currency, str) or not 1 <= len(currency.strip()) <= 8):
        errors.append("default_currency: must be a currency code")

    for field in _OPTIONAL_TEXT + ("payment_terms",):
        value = payload.get(field)
        if value is not None and not isinstance(value, str):
            errors.append(f"{field}: must be a string")
    return errors


def list_clients(s: "Session", *, search: str | None = None) -> list["Client"]:
    from app.pms.modules.clients.models import Client

    q = s.query(Client).filter(Client.is_active.is_(True))
    if search:
        like = f"%{search}%"
        q = q.filter((Client.company_name.ilike(like)) | (Client.contact_name.ilike(like)))
    return q.order_by(Client.created_at.desc(), Client.id.desc()).all()


def get_active_client(s: "Session", client_id: int) -> "Client":
    from app.pms.modules.clients.models import Client

    client = s.get(Client, client_id)
    if not client or not client.is_active:
        raise NotFound("Client not found")
    return client


def create_client(s: "Session", payload: dict, user: "User") -> "Client":
    from app.pms.modules.clients.models import Client

    errors = validate_client_payload(payload)
    if errors:
        raise ValidationError(errors)

    now = datetime.utcnow()
    billing = clean_str(payload.get("billing_address"))
    client = Client(
        company_name=clean_str(payload.get("company_name")),
        billing_address=billing,
        shipping_address=clean_str(payload.get("shipping_address")),
        location=billing,
        tax_id=clean_str(payload.get("tax_id")),
        tax_exempt=bool(payload.get("tax_exempt", False)),
        default_currency=(clean_str(payload.get("default_currency")) or DEFAULT_CURRENCY).upper(),
        payment_terms=clean_str(payload.get("payment_terms")) or DEFAULT_PAYMENT_TERMS,
        contact_name=clean_str(payload.get("contact_name")),
        contact_email=(clean_str(payload.get("contact_email")) or "").lower() or None,
        contact_phone=clean_str(payload.get("contact_phone")),
        is_active=True,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    s.add(client)
    s.flush()

    record_change(s, actor=user, entity="Client", record_id=client.id, action="CREATE", new_values=client.audit_values())
    return client


def update_client(s: "Session", client: "Client", payload: dict, user: "User") -> "Client":
    """Partial merge over the stored values. location always follows billing_address."""
    errors = validate_client_payload(payload, partial=True)
    if errors:
        raise ValidationError(errors)

    before = client.audit_values()

    if "company_name" in payload:
        client.company_name = clean_str(payload.get("company_name"))
    if "billing_address" in payload:
        client.billing_address = clean_str(payload.get("billing_address"))
    for field in _OPTIONAL_TEXT:
        if field in payload:
            setattr(client, field, clean_str(payload.get(field)))
    if "contact_email" in payload:
        client.contact_email = (clean_str(payload.get("contact_email")) or "").lower() or None
    if "tax_exempt" in payload:
        client.tax_exempt = bool(payload["tax_exempt"])
    if "default_currency" in payload:
        client.default_currency = (clean_str(payload.get("default_currency")) or DEFAULT_CURRENCY).upper()
    if "payment_terms" in payload:
        client.payment_terms = clean_str(payload.get("payment_terms")) or DEFAULT_PAYMENT_TERMS
    client.location = client.billing_address
    client.updated_at = datetime.utcnow()

    record_update(s, actor=user, entity="Client", record_id=client.id, before=before, after=client.audit_values())
    return client


def delete_client(s: "Session", client: "Client", user: "User") -> "Client":
    client.is_active = False
    client.updated_at = datetime.utcnow()
    record_change(s, actor=user, entity="Client", record_id=client.id, action="DELETE", old_values=client.audit_values())
    return client
