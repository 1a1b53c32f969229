import logging
from chefdeck.core.database import engine
from chefdeck.db.base import Base
import chefdeck.models  # noqa: F401  (registers tables on Base.metadata)

logger = logging.getLogger(__name__)

async def create_tables(bind=None):
    """Create all database tables"""
    try:
        async with (bind or engine).begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("✅ Database tables created successfully")

    except Exception as e:
        logger.error(f"❌ Error creating tables: {str(e)}")
        raise
