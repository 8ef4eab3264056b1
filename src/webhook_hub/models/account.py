# src/webhook_hub/models/account.py
"""SQLAlchemy models for business accounts and the apps they own."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from webhook_hub.db.session import Base
from webhook_hub.db.time import utcnow


class BusinessAccount(Base):
    """Business account registered with the messaging platform."""

    __tablename__ = "business_accounts"

    business_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    timezone: Mapped[str] = mapped_column(String(50), nullable=False, default="UTC")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    apps: Mapped[list[App]] = relationship("App", back_populates="business_account")


class App(Base):
    """Platform app; its verify token authenticates the webhook handshake."""

    __tablename__ = "apps"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    business_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("business_accounts.business_id"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    verify_token: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    business_account: Mapped[BusinessAccount] = relationship(
        "BusinessAccount", back_populates="apps"
    )
