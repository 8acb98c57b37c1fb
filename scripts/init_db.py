"""
Database initialization script.
Creates the data directories and the schema.
"""
import asyncio
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import config
from db import db, Role, UserRepository
from utils.logger import get_logger

logger = get_logger("init_db")


async def init_database():
    """Initialize database schema."""
    logger.info("Initializing database...")

    # Ensure data directory exists
    config.ensure_data_dir()

    await db.initialize()
    logger.info(f"Database created at: {config.DATABASE_PATH}")

    admins = await UserRepository.count_by_role(Role.ADMIN)
    if admins == 0:
        logger.info(
            "No admin yet: the first registered account becomes admin, "
            "or run scripts/create_admin.py"
        )
    else:
        logger.info(f"Admin users already exist: {admins}")

    logger.info("Database initialization complete!")


def main():
    """Run initialization."""
    asyncio.run(init_database())


if __name__ == "__main__":
    main()
