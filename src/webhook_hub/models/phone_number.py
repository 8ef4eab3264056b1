# src/webhook_hub/models/phone_number.py
"""SQLAlchemy model for inbound phone numbers."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from webhook_hub.db.session import Base
from webhook_hub.db.time import utcnow


class PhoneNumber(Base):
    """Phone number whose id is the inbound identifier of webhook events."""

    __tablename__ = "phone_numbers"

    phone_number_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    app_id: Mapped[str] = mapped_column(String(50), ForeignKey("apps.id"), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    app: Mapped["App"] = relationship("App")
