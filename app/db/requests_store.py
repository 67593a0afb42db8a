# app/db/requests_store.py

from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from app.models.request import RequestRecord, RequestStatus

REQUESTS_COLLECTION = "requests"
COUNTERS_COLLECTION = "counters"

# Never return the Mongo ObjectId
FULL_PROJECTION = {"_id": 0}
# Listings leave the blobs in the database
SUMMARY_PROJECTION = {"_id": 0, "pdf_data": 0, "signature_data_url": 0}

NEWEST_FIRST = [("created_at", DESCENDING), ("id", DESCENDING)]


class RequestStore:
    """Repository over the `requests` collection.

    Ids are integers handed out by an atomic `$inc` on the `counters`
    collection, so they keep growing after deletes the way a serial column does.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.requests = db[REQUESTS_COLLECTION]
        self.counters = db[COUNTERS_COLLECTION]

    async def ensure_indexes(self) -> None:
        await self.requests.create_index([("id", ASCENDING)], unique=True, name="idx_requests_id")
        await self.requests.create_index([("status", ASCENDING)], name="idx_requests_status")
        await self.requests.create_index([("patient_cnp", ASCENDING)], name="idx_requests_patient_cnp")
        await self.requests.create_index([("type", ASCENDING)], name="idx_requests_type")
        await self.requests.create_index([("created_at", DESCENDING)], name="idx_requests_created_at")

    async def _next_id(self) -> int:
        counter = await self.counters.find_one_and_update(
            {"_id": REQUESTS_COLLECTION},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(counter["seq"])

    async def insert(self, fields: Dict[str, Any]) -> RequestRecord:
        doc = dict(fields)
        doc["id"] = await self._next_id()
        await self.requests.insert_one(doc)
        doc.pop("_id", None)
        return RequestRecord.model_validate(doc)

    async def get(self, request_id: int) -> Optional[RequestRecord]:
        doc = await self.requests.find_one({"id": request_id}, FULL_PROJECTION)
        return RequestRecord.model_validate(doc) if doc else None

    async def get_pdf(self, request_id: int) -> Optional[Dict[str, Any]]:
        return await self.requests.find_one({"id": request_id}, {"_id": 0, "id": 1, "pdf_data": 1})

    async def find(self, query: Dict[str, Any], limit: int = 0) -> List[RequestRecord]:
        cursor = self.requests.find(query, SUMMARY_PROJECTION, sort=NEWEST_FIRST, limit=limit)
        docs = await cursor.to_list(length=limit or None)
        return [RequestRecord.model_validate(doc) for doc in docs]

    async def count(self, query: Dict[str, Any]) -> int:
        return await self.requests.count_documents(query)

    async def transition(
        self,
        request_id: int,
        expected: RequestStatus,
        changes: Dict[str, Any],
    ) -> Optional[RequestRecord]:
        """Compare-and-set: apply `changes` only while the status is still `expected`.

        Returns None when the row is gone or has already moved on.
        """
        doc = await self.requests.find_one_and_update(
            {"id": request_id, "status": expected.value},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return None
        doc.pop("_id", None)
        return RequestRecord.model_validate(doc)

    async def delete(self, request_id: int) -> int:
        result = await self.requests.delete_one({"id": request_id})
        return result.deleted_count

    async def delete_all(self) -> int:
        result = await self.requests.delete_many({})
        return result.deleted_count
