#!/usr/bin/env python3
"""Setup script for the booking lifecycle service: migrate and seed the catalog."""

import asyncio
import logging
from decimal import Decimal
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from portal.core.database import async_session_factory, close_db
from portal.models import Destination, Event

server_dir = Path(__file__).parent.parent / "server"

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_DESTINATIONS = [
    Destination(id="victoria-falls", name="Victoria Falls", location="Victoria Falls", price=Decimal("50.00"),
                payment_url="https://pay.example.com/victoria-falls"),
    Destination(id="great-zimbabwe", name="Great Zimbabwe", location="Masvingo", price=Decimal("25.00")),
    Destination(id="matobo-hills", name="Matobo Hills", location="Bulawayo", price=Decimal("30.00")),
]

SAMPLE_EVENTS = [
    Event(id="harare-jazz-night", title="Harare Jazz Night", location="Harare", price=Decimal("15.00"),
          payment_url="https://pay.example.com/harare-jazz-night"),
]


def migrate_database() -> None:
    """Run Alembic migrations up to head."""
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data() -> None:
    """Seed the read-only catalog tables if they are empty."""
    logger.info("Creating sample catalog data...")

    async with async_session_factory() as db:
        existing = await db.execute(select(func.count()).select_from(Destination))
        if existing.scalar_one() > 0:
            logger.info("Sample data already exists, skipping...")
            return

        db.add_all(SAMPLE_DESTINATIONS + SAMPLE_EVENTS)
        await db.commit()
        logger.info(
            "Sample data created",
            extra={"destinations": len(SAMPLE_DESTINATIONS), "events": len(SAMPLE_EVENTS)}
        )

    await close_db()


def main() -> None:
    """Main setup function."""
    logger.info("Starting booking lifecycle service setup...")

    migrate_database()
    asyncio.run(create_sample_data())

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn portal.main:app --reload")


if __name__ == "__main__":
    main()
