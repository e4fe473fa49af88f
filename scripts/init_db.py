import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy.ext.asyncio import create_async_engine
from core.config import settings
from core.logging import setup_logging
# Importing the package registers every model on Base.metadata
from models import Base

setup_logging()
logger = logging.getLogger(__name__)


async def init_database():
    logger.info("Connecting to database...")
    engine = create_async_engine(settings.DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        logger.info("Creating tables...")
        await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Tables created successfully: {', '.join(sorted(Base.metadata.tables))}")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_database())
