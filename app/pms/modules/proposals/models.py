from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.pms.models import Base, User
from app.pms.modules.clients.models import Client


class ProposalSequence(Base):
    """Single-row counter behind PROP-<n> numbers."""

    __tablename__ = "proposal_sequence"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)


class Proposal(Base):
    __tablename__ = "proposals"
    __table_args__ = (
        Index("idx_proposals_client_id", "client_id"),
        Index("idx_proposals_status", "status"),
        Index("idx_proposals_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    proposal_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    proposal_title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id"), nullable=False)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="DRAFT")

    subtotal: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tax_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tax_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    valid_until: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    terms_conditions: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("proposals.id", ondelete="SET NULL"), nullable=True)
    is_previewed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    client: Mapped["Client"] = relationship(lazy="selectin")
    created_by: Mapped[User | None] = relationship(User, lazy="selectin")
    items: Mapped[list["ProposalItem"]] = relationship(
        back_populates="proposal",
        cascade="all, delete-orphan",
        order_by="ProposalItem.position",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "proposal_number": self.proposal_number,
            "proposal_title": self.proposal_title,
            "client_id": self.client_id,
            "created_by_user_id": self.created_by_user_id,
            "created_by": self.created_by.display_name if self.created_by else None,
            "status": self.status,
            "subtotal": self.subtotal,
            "tax_rate": self.tax_rate,
            "tax_amount": self.tax_amount,
            "total_amount": self.total_amount,
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
            "notes": self.notes,
            "terms_conditions": self.terms_conditions,
            "version": self.version,
            "parent_id": self.parent_id,
            "is_previewed": self.is_previewed,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "items": [i.to_dict() for i in self.items],
        }

    def audit_values(self) -> dict:
        return {
            "proposal_number": self.proposal_number,
            "proposal_title": self.proposal_title,
            "client_id": self.client_id,
            "status": self.status,
            "tax_rate": self.tax_rate,
            "total_amount": self.total_amount,
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
            "notes": self.notes,
            "terms_conditions": self.terms_conditions,
            "version": self.version,
            "is_previewed": self.is_previewed,
            "item_count": len(self.items),
        }


class ProposalItem(Base):
    """A line item. snapshot_* fields are copied from the catalog when the proposal is built."""

    __tablename__ = "proposal_items"
    __table_args__ = (Index("idx_proposal_items_proposal_id", "proposal_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    proposal_id: Mapped[int] = mapped_column(ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    device_id: Mapped[int | None] = mapped_column(ForeignKey("devices.id", ondelete="SET NULL"), nullable=True)

    snapshot_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    snapshot_make: Mapped[str | None] = mapped_column(String(128), nullable=True)
    snapshot_model: Mapped[str | None] = mapped_column(String(128), nullable=True)
    snapshot_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    snapshot_specs: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    discount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    line_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    proposal: Mapped[Proposal] = relationship(back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "device_id": self.device_id,
            "snapshot_name": self.snapshot_name,
            "snapshot_make": self.snapshot_make,
            "snapshot_model": self.snapshot_model,
            "snapshot_price": self.snapshot_price,
            "snapshot_specs": self.snapshot_specs,
            "quantity": self.quantity,
            "discount": self.discount,
            "line_total": self.line_total,
        }
