from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.pms.models import Base


class Device(Base):
    """Master catalog entry. Proposals snapshot these fields, so edits never rewrite history."""

    __tablename__ = "devices"
    __table_args__ = (
        Index("idx_devices_name", "name"),
        Index("idx_devices_category", "category"),
        Index("idx_devices_is_active", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Required
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(128), nullable=False)
    make: Mapped[str] = mapped_column(String(128), nullable=False)
    model: Mapped[str] = mapped_column(String(128), nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    unit: Mapped[str] = mapped_column(String(32), nullable=False, default="Unit")

    unit_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    unit_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Free-form spec sheet (always carries "unit")
    specifications: Mapped[dict | None] = mapped_column(JSON, nullable=True, default=dict)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "unit": self.unit,
            "category": self.category,
            "make": self.make,
            "model": self.model,
            "unit_cost": self.unit_cost,
            "unit_price": self.unit_price,
            "specifications": dict(self.specifications or {}),
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def audit_values(self) -> dict:
        return {
            "name": self.name,
            "category": self.category,
            "make": self.make,
            "model": self.model,
            "unit_cost": self.unit_cost,
            "unit_price": self.unit_price,
            "unit": self.unit,
            "description": self.description,
            "specifications": dict(self.specifications or {}),
        }
