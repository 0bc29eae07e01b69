import asyncio
import logging
import sys

from stashbox.app.db import init_models

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    # --drop: recreate every table. DEV MODE ONLY
    asyncio.run(init_models(drop_existing="--drop" in sys.argv[1:]))
    print(">>> Tables Created Successfully!")
