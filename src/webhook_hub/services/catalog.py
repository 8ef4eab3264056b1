"""Destination catalog access.

This module wraps the relational catalog (business accounts, apps, phone
numbers, destinations and their mappings) behind plain read/write calls. It
holds no routing logic of its own beyond the single join query used by the
resolver; caching and invalidation live in
:mod:`webhook_hub.services.resolver`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from webhook_hub.db.session import SessionLocal
from webhook_hub.models import (
    App,
    BusinessAccount,
    Destination,
    DestinationMapping,
    PhoneNumber,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


class CatalogError(RuntimeError):
    """Base exception raised for catalog read/write failures."""


class CatalogNotFoundError(CatalogError):
    """Raised when a referenced catalog record does not exist."""


class CatalogConflictError(CatalogError):
    """Raised when a write violates a uniqueness or integrity constraint."""


@dataclass(frozen=True)
class ResolvedDestination:
    """Flattened projection of mapping -> phone number -> app -> account + destination."""

    phone_number_id: str
    destination_id: int
    destination_name: str
    endpoint: str
    priority: int
    phone_number: str | None = None
    display_name: str | None = None
    app_id: str | None = None
    app_name: str | None = None
    business_id: str | None = None
    business_name: str | None = None


@dataclass(frozen=True)
class AppInfo:
    """Owning app of a verify token, as needed by the webhook handshake."""

    app_id: str
    app_name: str
    business_id: str
    business_name: str


class DestinationCatalog:
    """Read/write access to the destination catalog.

    Each call opens and closes its own session so the catalog can be shared
    between request handlers, background dispatch and tooling.
    """

    def __init__(self, session_factory: SessionFactory | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    # --- Routing reads ------------------------------------------------------------
    def find_active_destinations(self, phone_number_id: str) -> list[ResolvedDestination]:
        """Return the active destinations mapped to a phone number id.

        A destination is included only when both the mapping and the
        destination are active. Rows are ordered by mapping priority
        (descending) and destination name (ascending) for ties.

        Raises:
            SQLAlchemyError: If the catalog cannot be queried.
        """
        stmt = (
            select(DestinationMapping, Destination, PhoneNumber, App, BusinessAccount)
            .join(Destination, Destination.id == DestinationMapping.destination_id)
            .join(
                PhoneNumber,
                PhoneNumber.phone_number_id == DestinationMapping.phone_number_id,
            )
            .join(App, App.id == PhoneNumber.app_id, isouter=True)
            .join(
                BusinessAccount,
                BusinessAccount.business_id == App.business_id,
                isouter=True,
            )
            .where(
                DestinationMapping.phone_number_id == phone_number_id,
                DestinationMapping.is_active.is_(True),
                Destination.is_active.is_(True),
            )
            .order_by(DestinationMapping.priority.desc(), Destination.name.asc())
        )
        with self._session_factory() as db:
            rows = db.execute(stmt).all()
            return [
                ResolvedDestination(
                    phone_number_id=mapping.phone_number_id,
                    destination_id=destination.id,
                    destination_name=destination.name,
                    endpoint=destination.endpoint,
                    priority=mapping.priority,
                    phone_number=phone.phone_number,
                    display_name=phone.display_name,
                    app_id=app.id if app else None,
                    app_name=app.name if app else None,
                    business_id=account.business_id if account else None,
                    business_name=account.name if account else None,
                )
                for (mapping, destination, phone, app, account) in rows
            ]

    def find_app_by_verify_token(self, token: str) -> AppInfo | None:
        """Return the app owning a webhook verify token, if any."""
        with self._session_factory() as db:
            row = db.execute(
                select(App, BusinessAccount)
                .join(BusinessAccount, BusinessAccount.business_id == App.business_id)
                .where(App.verify_token == token)
            ).first()
            if row is None:
                return None
            app, account = row
            return AppInfo(
                app_id=app.id,
                app_name=app.name,
                business_id=account.business_id,
                business_name=account.name,
            )

    def ping(self) -> None:
        """Round-trip a trivial statement to prove the catalog is reachable."""
        with self._session_factory() as db:
            db.execute(text("SELECT 1"))

    # --- Business accounts --------------------------------------------------------
    def list_business_accounts(self) -> list[BusinessAccount]:
        with self._session_factory() as db:
            return list(
                db.scalars(select(BusinessAccount).order_by(BusinessAccount.name.asc()))
            )

    def create_business_account(
        self, *, business_id: str, name: str, timezone: str = "UTC"
    ) -> BusinessAccount:
        account = BusinessAccount(business_id=business_id, name=name, timezone=timezone)
        return self._insert(account, f"business account {business_id}")

    # --- Apps ---------------------------------------------------------------------
    def list_apps(self, business_id: str) -> list[App]:
        with self._session_factory() as db:
            return list(
                db.scalars(
                    select(App).where(App.business_id == business_id).order_by(App.name.asc())
                )
            )

    def create_app(self, *, app_id: str, business_id: str, name: str, verify_token: str) -> App:
        with self._session_factory() as db:
            if db.get(BusinessAccount, business_id) is None:
                raise CatalogNotFoundError(f"Business account {business_id} not found")
        app = App(id=app_id, business_id=business_id, name=name, verify_token=verify_token)
        return self._insert(app, f"app {app_id}")

    # --- Phone numbers ------------------------------------------------------------
    def list_phone_numbers(self, app_id: str) -> list[dict[str, Any]]:
        """Return the phone numbers of an app with their active destination counts."""
        active_count = (
            select(func.count(DestinationMapping.id))
            .where(
                DestinationMapping.phone_number_id == PhoneNumber.phone_number_id,
                DestinationMapping.is_active.is_(True),
            )
            .correlate(PhoneNumber)
            .scalar_subquery()
        )
        with self._session_factory() as db:
            rows = db.execute(
                select(PhoneNumber, active_count)
                .where(PhoneNumber.app_id == app_id)
                .order_by(PhoneNumber.display_name.asc())
            ).all()
            return [
                {
                    "phone_number_id": phone.phone_number_id,
                    "phone_number": phone.phone_number,
                    "display_name": phone.display_name,
                    "app_id": phone.app_id,
                    "destination_count": int(count or 0),
                }
                for (phone, count) in rows
            ]

    def create_phone_number(
        self,
        *,
        phone_number_id: str,
        app_id: str,
        phone_number: str | None = None,
        display_name: str | None = None,
    ) -> PhoneNumber:
        with self._session_factory() as db:
            if db.get(App, app_id) is None:
                raise CatalogNotFoundError(f"App {app_id} not found")
        phone = PhoneNumber(
            phone_number_id=phone_number_id,
            app_id=app_id,
            phone_number=phone_number,
            display_name=display_name,
        )
        return self._insert(phone, f"phone number {phone_number_id}")

    # --- Destinations -------------------------------------------------------------
    def list_destinations(self) -> list[Destination]:
        with self._session_factory() as db:
            return list(db.scalars(select(Destination).order_by(Destination.name.asc())))

    def get_destination(self, destination_id: int) -> Destination | None:
        with self._session_factory() as db:
            return db.get(Destination, destination_id)

    def create_destination(
        self,
        *,
        name: str,
        endpoint: str,
        description: str | None = None,
        is_active: bool = True,
    ) -> Destination:
        destination = Destination(
            name=name,
            endpoint=endpoint,
            description=description,
            is_active=is_active,
        )
        return self._insert(destination, f"destination {name}")

    def update_destination(
        self, destination_id: int, changes: dict[str, Any]
    ) -> tuple[Destination, list[str]]:
        """Apply attribute changes to a destination.

        Args:
            destination_id: Destination primary key.
            changes: Subset of ``name``, ``endpoint``, ``description``, ``is_active``.

        Returns:
            The updated destination and every phone number id mapped to it,
            whose routing may have changed.

        Raises:
            CatalogNotFoundError: If the destination does not exist.
        """
        allowed = {"name", "endpoint", "description", "is_active"}
        with self._session_factory() as db:
            destination = db.get(Destination, destination_id)
            if destination is None:
                raise CatalogNotFoundError(f"Destination {destination_id} not found")
            for key, value in changes.items():
                if key in allowed:
                    setattr(destination, key, value)
            identifiers = list(
                db.scalars(
                    select(DestinationMapping.phone_number_id).where(
                        DestinationMapping.destination_id == destination_id
                    )
                )
            )
            db.commit()
            db.refresh(destination)
            return destination, identifiers

    # --- Mappings -----------------------------------------------------------------
    def map_destination(
        self, *, phone_number_id: str, destination_id: int, priority: int = 0
    ) -> DestinationMapping:
        """Create a mapping, or update and reactivate the existing one.

        Raises:
            CatalogNotFoundError: If the phone number or destination is unknown.
        """
        with self._session_factory() as db:
            if db.get(PhoneNumber, phone_number_id) is None:
                raise CatalogNotFoundError(f"Phone number {phone_number_id} not found")
            if db.get(Destination, destination_id) is None:
                raise CatalogNotFoundError(f"Destination {destination_id} not found")

            mapping = db.scalars(
                select(DestinationMapping).where(
                    DestinationMapping.phone_number_id == phone_number_id,
                    DestinationMapping.destination_id == destination_id,
                )
            ).first()
            if mapping is None:
                mapping = DestinationMapping(
                    phone_number_id=phone_number_id,
                    destination_id=destination_id,
                    priority=priority,
                    is_active=True,
                )
                db.add(mapping)
            else:
                mapping.priority = priority
                mapping.is_active = True
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise CatalogConflictError(
                    f"Mapping {phone_number_id} -> {destination_id} conflicts: {exc.orig}"
                ) from exc
            db.refresh(mapping)
            return mapping

    def unmap_destination(
        self, phone_number_id: str, destination_id: int
    ) -> DestinationMapping | None:
        """Deactivate a mapping; returns None when no such mapping exists."""
        with self._session_factory() as db:
            mapping = db.scalars(
                select(DestinationMapping).where(
                    DestinationMapping.phone_number_id == phone_number_id,
                    DestinationMapping.destination_id == destination_id,
                )
            ).first()
            if mapping is None:
                return None
            mapping.is_active = False
            db.commit()
            db.refresh(mapping)
            return mapping

    def list_mappings(self, phone_number_id: str) -> list[dict[str, Any]]:
        """Return every mapping of a phone number, active or not."""
        with self._session_factory() as db:
            rows = db.execute(
                select(DestinationMapping, Destination)
                .join(Destination, Destination.id == DestinationMapping.destination_id)
                .where(DestinationMapping.phone_number_id == phone_number_id)
                .order_by(DestinationMapping.priority.desc(), Destination.name.asc())
            ).all()
            return [
                {
                    "id": mapping.id,
                    "phone_number_id": mapping.phone_number_id,
                    "destination_id": mapping.destination_id,
                    "priority": mapping.priority,
                    "is_active": mapping.is_active,
                    "destination_name": destination.name,
                    "endpoint": destination.endpoint,
                    "description": destination.description,
                }
                for (mapping, destination) in rows
            ]

    # --- Helpers ------------------------------------------------------------------
    def _insert(self, record: Any, label: str) -> Any:
        with self._session_factory() as db:
            db.add(record)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise CatalogConflictError(f"Could not create {label}: {exc.orig}") from exc
            except SQLAlchemyError:
                db.rollback()
                logger.error("Catalog write failed for %s", label, exc_info=True)
                raise
            db.refresh(record)
            return record


def get_catalog() -> DestinationCatalog:
    """Return a catalog bound to the application session factory."""
    return DestinationCatalog()
