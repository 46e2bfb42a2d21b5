"""
Database initialization script
"""
import asyncio
import logging

from database import create_tables, engine
from logging_config import setup_logging

logger = logging.getLogger(__name__)

async def init_database():
    """Initialize the database and create all tables"""
    try:
        logger.info("Creating database tables...")
        await create_tables()
        logger.info("Database tables created successfully!")
    except Exception as e:
        logger.error("Error creating database tables: %s", e)
        raise
    finally:
        await engine.dispose()

if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
