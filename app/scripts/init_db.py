# app/scripts/init_db.py

import asyncio

from app.core.config import settings
from app.db.mongo import create_mongo_client, get_database, verify_mongodb_connection
from app.db.requests_store import RequestStore


async def init_db():
    client = create_mongo_client(settings)
    try:
        if not await verify_mongodb_connection(client):
            raise SystemExit(1)

        store = RequestStore(get_database(client, settings))
        await store.ensure_indexes()
        total = await store.count({})
        print(f"✅ Indexes ensured on '{settings.MONGODB_DB}.requests' ({total} requests stored).")
    finally:
        client.close()

if __name__ == "__main__":
    asyncio.run(init_db())
