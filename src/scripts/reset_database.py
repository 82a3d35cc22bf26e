# scripts/reset_database.py
import asyncio
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db.database import create_tables, drop_tables, disconnect_db
from utils.logger import setup_logger
from core.config import settings

logger = setup_logger("DB_RESET")


async def reset_database():
    """Drop and recreate every table (DANGEROUS - use only in development)"""
    if settings.ENVIRONMENT == "production":
        logger.error("Cannot reset database in production!")
        return

    try:
        await drop_tables()
        await create_tables()
        logger.info("Database reset completed")
    finally:
        await disconnect_db()


if __name__ == "__main__":
    asyncio.run(reset_database())
