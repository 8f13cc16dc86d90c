# seed.py
import asyncio

from jobshadow.config import settings
from jobshadow.observability import configure_logging
from jobshadow.seed_data import seed_reference_data
from jobshadow.storage.factory import build_storage


async def main():
    storage = build_storage(settings)
    await storage.connect()
    try:
        added = await seed_reference_data(storage)
    finally:
        await storage.close()
    return added


if __name__ == "__main__":
    configure_logging(level=settings.LOG_LEVEL, json=settings.LOG_JSON)
    added = asyncio.run(main())
    print(f"Seed data inserted: {added['organisations']} organisations, {added['learning_areas']} learning areas")
