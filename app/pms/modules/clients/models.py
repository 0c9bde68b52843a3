from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.pms.models import Base


class Client(Base):
    __tablename__ = "clients"
    __table_args__ = (
        Index("idx_clients_company_name", "company_name"),
        Index("idx_clients_is_active", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    billing_address: Mapped[str] = mapped_column(Text, nullable=False)
    shipping_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Mirrors billing_address; kept as its own column for list views.
    location: Mapped[str | None] = mapped_column(Text, nullable=True)

    tax_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tax_exempt: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    default_currency: Mapped[str] = mapped_column(String(8), nullable=False, default="INR")
    payment_terms: Mapped[str] = mapped_column(String(64), nullable=False, default="Net 30")

    contact_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_name": self.company_name,
            "billing_address": self.billing_address,
            "shipping_address": self.shipping_address,
            "location": self.location,
            "tax_id": self.tax_id,
            "tax_exempt": self.tax_exempt,
            "default_currency": self.default_currency,
            "payment_terms": self.payment_terms,
            "contact_name": self.contact_name,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def audit_values(self) -> dict:
        return {
            "company_name": self.company_name,
            "billing_address": self.billing_address,
            "shipping_address": self.shipping_address,
            "tax_id": self.tax_id,
            "tax_exempt": self.tax_exempt,
            "default_currency": self.default_currency,
            "payment_terms": self.payment_terms,
            "contact_name": self.contact_name,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
        }
