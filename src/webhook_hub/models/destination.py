# src/webhook_hub/models/destination.py
"""SQLAlchemy models for downstream destinations and their mappings."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from webhook_hub.db.session import Base
from webhook_hub.db.time import utcnow


class Destination(Base):
    """Downstream service endpoint that receives forwarded webhooks."""

    __tablename__ = "destinations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class DestinationMapping(Base):
    """Prioritised, toggleable link between a phone number and a destination.

    A mapping only routes traffic when both the mapping row and the referenced
    destination are active.
    """

    __tablename__ = "destination_mappings"
    __table_args__ = (
        UniqueConstraint(
            "phone_number_id",
            "destination_id",
            name="uq_destination_mappings_phone_destination",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phone_number_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("phone_numbers.phone_number_id"),
        nullable=False,
        index=True,
    )
    destination_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("destinations.id"),
        nullable=False,
    )
    # Higher priority is enqueued first.
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    destination: Mapped[Destination] = relationship("Destination")
    phone_number: Mapped["PhoneNumber"] = relationship("PhoneNumber")
