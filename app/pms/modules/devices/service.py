from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.pms.audit import record_change, record_update
from app.pms.errors import NotFound, ValidationError
from app.pms.utils import clean_str, is_number, parse_custom_fields

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.pms.models import User
    from app.pms.modules.devices.models import Device


REQUIRED_FIELDS = ("name", "make", "model", "category")


def validate_device_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate device creation/update payload. Returns list of errors."""
    errors = []
    for field in REQUIRED_FIELDS:
        if field not in payload and partial:
            continue
        if not clean_str(payload.get(field)):
            errors.append(f"{field}: is required")
    for field in ("unit_cost", "unit_price"):
        if field not in payload and partial:
            continue
        value = payload.get(field)
        if not is_number(value):
            errors.append(f"{field}: must be a number")
        elif value < 0:
            errors.append(f"{field}: must be greater than or equal to 0")
    for field in ("description", "unit"):
        if payload.get(field) is not None and not isinstance(payload.get(field), str):
            errors.append(f"{field}: must be a string")
    _specs, err = parse_custom_fields(payload.get("specifications"))
    if err:
        errors.append(f"specifications: {err}")
    return errors


def _merge_specs(unit: str, specs: dict | None) -> dict[str, Any]:
    merged: dict[str, Any] = {"unit": unit}
    merged.update(specs or {})
    return merged


def list_devices(s: "Session", *, search: str | None = None, category: str | None = None) -> list["Device"]:
    from app.pms.modules.devices.models import Device

    q = s.query(Device).filter(Device.is_active.is_(True))
    if search:
        like = f"%{search}%"
        q = q.filter((Device.name.ilike(like)) | (Device.make.ilike(like)) | (Device.model.ilike(like)))
    if category:
        q = q.filter(Device.category == category)
    return q.order_by(Device.created_at.desc(), Device.id.desc()).all()


def get_active_device(s: "Session", device_id: int) -> "Device":
    from app.pms.modules.devices.models import Device

    device = s.get(Device, device_id)
    if not device or not device.is_active:
        raise NotFound("Item not found")
    return device


def create_device(s: "Session", payload: dict, user: "User") -> "Device":
    """Create a new catalog device."""
    from app.pms.modules.devices.models import Device

    errors = validate_device_payload(payload)
    if errors:
        raise ValidationError(errors)

    now = datetime.utcnow()
    unit = clean_str(payload.get("unit")) or "Unit"
    device = Device(
        name=clean_str(payload.get("name")),
        description=payload.get("description") or "",
        unit=unit,
        category=clean_str(payload.get("category")),
        make=clean_str(payload.get("make")),
        model=clean_str(payload.get("model")),
        unit_cost=float(payload["unit_cost"]),
        unit_price=float(payload["unit_price"]),
        specifications=_merge_specs(unit, payload.get("specifications")),
        is_active=True,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
        updated_by_user_id=user.id,
    )
    s.add(device)
    s.flush()

    record_change(
        s,
        actor=user,
        entity="Device",
        record_id=device.id,
        action="CREATE",
        new_values=device.audit_values(),
    )
    return device


def update_device(s: "Session", device: "Device", payload: dict, user: "User") -> "Device":
    """
    Partial update: omitted fields keep their current value.
    The device name is fixed at creation.
    """
    errors = validate_device_payload(payload, partial=True)
    if errors:
        raise ValidationError(errors)

    before = device.audit_values()

    if "description" in payload:
        device.description = payload.get("description") or ""
    if "unit" in payload:
        device.unit = clean_str(payload.get("unit")) or "Unit"
    for field in ("category", "make", "model"):
        if field in payload:
            setattr(device, field, clean_str(payload.get(field)))
    if "unit_cost" in payload:
        device.unit_cost = float(payload["unit_cost"])
    if "unit_price" in payload:
        device.unit_price = float(payload["unit_price"])

    specs = payload["specifications"] if "specifications" in payload else device.specifications
    device.specifications = _merge_specs(device.unit, specs)

    device.updated_at = datetime.utcnow()
    device.updated_by_user_id = user.id

    record_update(s, actor=user, entity="Device", record_id=device.id, before=before, after=device.audit_values())
    return device


def delete_device(s: "Session", device: "Device", user: "User") -> "Device":
    """Soft-delete: the device disappears from the catalog but proposals keep their snapshots."""
    device.is_active = False
    device.updated_at = datetime.utcnow()
    device.updated_by_user_id = user.id

    record_change(
        s,
        actor=user,
        entity="Device",
        record_id=device.id,
        action="DELETE",
        old_values=device.audit_values(),
    )
    return device
