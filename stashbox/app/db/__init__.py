import logging

from stashbox.app.db.session import engine
from stashbox.app.db.base import Base

logger = logging.getLogger(__name__)


async def init_models(drop_existing: bool = False):
    """Create every table registered on ``Base.metadata``."""
    # Models must be imported so their tables are registered
    from stashbox.app import models  # noqa: F401

    try:
        async with engine.begin() as conn:
            if drop_existing:
                await conn.run_sync(Base.metadata.drop_all)
            logger.info("Creating database tables")
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise
