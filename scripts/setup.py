#!/usr/bin/env python3
"""Setup script for the helicopter booking API."""

import asyncio
import logging
import sys
from decimal import Decimal
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from sqlalchemy import func, select

from helitour.core.database import async_session_factory, init_db
from helitour.models import Addon, Experience

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_ADDONS = [
    {"name": "Photo package", "price": 7500, "category": "media",
     "description": "Aerial photos delivered after the flight"},
    {"name": "Champagne toast", "price": 4000, "category": "catering"},
    {"name": "Hotel transfer", "price": 3000, "category": "ground"},
]

SAMPLE_EXPERIENCES = [
    {"name": "Volcano sunrise", "location": "ANTIGUA", "base_price": 95000,
     "duration_hours": Decimal("1.5"), "max_passengers": 4,
     "description": "Sunrise flight over Fuego and Acatenango"},
    {"name": "Lake Atitlan panorama", "location": "ATITLAN", "base_price": 120000,
     "duration_hours": Decimal("2.0"), "max_passengers": 5},
]


async def setup_database():
    """Create the schema from the ORM models."""
    logger.info("Setting up database...")
    await init_db()
    logger.info("Database setup completed successfully!")


async def create_sample_data():
    """Seed the add-on and experience catalogs."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing = await db.scalar(select(func.count()).select_from(Addon))
            if existing:
                logger.info("Sample data already exists, skipping...")
                return

            db.add_all(Addon(**values) for values in SAMPLE_ADDONS)
            db.add_all(Experience(**values) for values in SAMPLE_EXPERIENCES)

            await db.commit()
            logger.info("Sample data created successfully!")

        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise


async def main():
    """Main setup function."""
    logger.info("Starting helicopter booking API setup...")

    await setup_database()
    await create_sample_data()

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn helitour.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
