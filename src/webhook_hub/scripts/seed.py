# src/webhook_hub/scripts/seed.py
"""Create the schema and load a small sample catalog for local development."""
from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from webhook_hub.core.logging import configure_logging
from webhook_hub.db.session import SessionLocal, create_tables
from webhook_hub.models import (
    App,
    BusinessAccount,
    Destination,
    DestinationMapping,
    PhoneNumber,
)

logger = logging.getLogger(__name__)

SAMPLE_BUSINESS_ID = "123456789"
SAMPLE_APP_ID = "promotion-app"
SAMPLE_VERIFY_TOKEN = "hafis"
SAMPLE_PHONE_NUMBER_ID = "542491768952983"

# (name, endpoint, description, priority)
SAMPLE_DESTINATIONS = [
    (
        "WA Promotion Service",
        "https://wapromoapi.finglider.com/whatsapp-webhook",
        "Promotion campaign handler",
        100,
    ),
    (
        "Appointment Service",
        "https://appointmentApi.finglider.com/webhook/whatsapp-webhook",
        "Appointment booking handler",
        50,
    ),
]


def seed_sample_data(session_factory: Callable[[], Session] = SessionLocal) -> bool:
    """Insert the sample catalog unless a business account already exists.

    Returns:
        True if data was inserted, False if the catalog was already populated.
    """
    with session_factory() as db:
        if db.scalars(select(BusinessAccount).limit(1)).first() is not None:
            logger.info("Catalog already populated; skipping sample data")
            return False

        db.add(BusinessAccount(business_id=SAMPLE_BUSINESS_ID, name="FinGlider Company"))
        db.add(
            App(
                id=SAMPLE_APP_ID,
                business_id=SAMPLE_BUSINESS_ID,
                name="Promotion App",
                verify_token=SAMPLE_VERIFY_TOKEN,
            )
        )
        db.add(
            PhoneNumber(
                phone_number_id=SAMPLE_PHONE_NUMBER_ID,
                app_id=SAMPLE_APP_ID,
                phone_number="+1234567890",
                display_name="Main Business Number",
            )
        )
        db.flush()

        for name, endpoint, description, priority in SAMPLE_DESTINATIONS:
            destination = Destination(name=name, endpoint=endpoint, description=description)
            db.add(destination)
            db.flush()
            db.add(
                DestinationMapping(
                    phone_number_id=SAMPLE_PHONE_NUMBER_ID,
                    destination_id=destination.id,
                    priority=priority,
                )
            )
        db.commit()

    logger.info(
        "Seeded sample catalog: phone number %s -> %d destination(s)",
        SAMPLE_PHONE_NUMBER_ID,
        len(SAMPLE_DESTINATIONS),
    )
    return True


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--schema-only",
        action="store_true",
        help="Create missing tables without inserting sample data.",
    )
    args = parser.parse_args(argv)

    configure_logging("INFO")
    create_tables()
    logger.info("Database tables are up to date")
    if not args.schema_only:
        seed_sample_data()
    return 0


if __name__ == "__main__":
    sys.exit(main())
