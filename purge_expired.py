import asyncio
import logging

from stashbox.app.db.base import AsyncSessionLocal
from stashbox.app.services.secrets import purge_expired_secrets


async def purge():
    async with AsyncSessionLocal() as db:
        return await purge_expired_secrets(db)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    removed = asyncio.run(purge())
    print(f">>> Removed {removed} expired secret(s)")
