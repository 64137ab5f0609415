"""
Daily record store adapter.

CRUD and live subscription against the record collection, keyed by
(userId, date).
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from common.utils.exceptions import (
    APIException,
    NotFoundException,
    ServiceUnavailableException,
    SubscriptionException,
    WriteException,
)
from dosetrack.adherence.models import DailyRecord, DailyRecordCreate

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[List[DailyRecord]], None]
ErrorCallback = Callable[[SubscriptionException], None]


class RecordStore:
    """
    Handles daily record storage, retrieval and live snapshots.
    Pure persistence - uniqueness per (userId, date) is not enforced here.
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "dailyRecords"):
        """
        Initialize RecordStore.

        Args:
            db: MongoDB database connection
            collection_name: Collection holding the daily records
        """
        self._db = db
        self._records_collection = db[collection_name]
        self._subscriptions: Set[asyncio.Task] = set()

    # ─────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────

    async def create(self, user_id: str, data: DailyRecordCreate) -> str:
        """
        Insert a new record.

        Args:
            user_id: Opaque identity-provider user ID
            data: Record fields

        Returns:
            The store-assigned record ID

        Raises:
            WriteException: Transport or permission failure
        """
        now = datetime.now(timezone.utc)

        record_data = {
            "userId": user_id,
            "date": data.date,
            "doseAmount": data.doseAmount,
            "timeOfDay": data.timeOfDay,
            "notes": data.notes.strip() if data.notes else None,
            "completed": data.completed,
            "createdAt": now,
            "updatedAt": now,
        }

        try:
            result = await self._records_collection.insert_one(record_data)
        except PyMongoError as e:
            logger.error(f"Failed to create record for user {user_id} on {data.date}: {e}")
            raise WriteException(
                message=f"Failed to save the record for {data.date}",
                details={"date": data.date},
            ) from e

        record_id = str(result.inserted_id)
        logger.info(f"Record {record_id} created for user {user_id} on {data.date}")
        return record_id

    async def update(self, record_id: str, updates: Dict[str, Any]) -> None:
        """
        Apply a partial update; the store stamps updatedAt.

        Raises:
            NotFoundException: Unknown record ID
            WriteException: Transport or permission failure
        """
        query = {"_id": self._object_id(record_id)}

        try:
            result = await self._records_collection.update_one(
                query,
                {
                    "$set": updates,
                    "$currentDate": {"updatedAt": True},
                },
            )
        except PyMongoError as e:
            logger.error(f"Failed to update record {record_id}: {e}")
            raise WriteException(
                message="Failed to update the record",
                details={"recordId": record_id},
            ) from e

        if result.matched_count == 0:
            raise self._not_found(record_id)

        logger.info(f"Record {record_id} updated: {sorted(updates)}")

    async def delete(self, record_id: str) -> None:
        """
        Delete a single record.

        Raises:
            NotFoundException: Unknown record ID
            WriteException: Transport or permission failure
        """
        query = {"_id": self._object_id(record_id)}

        try:
            result = await self._records_collection.delete_one(query)
        except PyMongoError as e:
            logger.error(f"Failed to delete record {record_id}: {e}")
            raise WriteException(
                message="Failed to delete the record",
                details={"recordId": record_id},
            ) from e

        if result.deleted_count == 0:
            raise self._not_found(record_id)

        logger.info(f"Record {record_id} deleted")

    async def delete_all(self, user_id: str) -> int:
        """
        Erase every record belonging to a user.

        Returns:
            Number of deleted records
        """
        try:
            result = await self._records_collection.delete_many({"userId": user_id})
        except PyMongoError as e:
            logger.error(f"Failed to erase records for user {user_id}: {e}")
            raise WriteException(message="Failed to erase records") from e

        logger.info(f"Erased {result.deleted_count} records for user {user_id}")
        return result.deleted_count

    # ─────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────

    async def get_by_date(self, user_id: str, date: str) -> Optional[DailyRecord]:
        """
        Point lookup of a user's record for one date.

        Returns:
            The record, or None if the date has no record
        """
        try:
            doc = await self._records_collection.find_one({"userId": user_id, "date": date})
        except PyMongoError as e:
            logger.error(f"Failed to read record for user {user_id} on {date}: {e}")
            raise ServiceUnavailableException(
                message="Record store unavailable",
                code="STORE_UNAVAILABLE",
            ) from e

        if doc is None:
            logger.debug(f"No record found for user {user_id} on {date}")
            return None

        return DailyRecord.from_document(doc)

    async def get_all(self, user_id: str) -> List[DailyRecord]:
        """
        Fetch a user's full record set.

        Returns:
            Records sorted by date descending
        """
        try:
            cursor = self._records_collection.find({"userId": user_id})
            cursor = cursor.sort("date", -1)
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error(f"Failed to read records for user {user_id}: {e}")
            raise ServiceUnavailableException(
                message="Record store unavailable",
                code="STORE_UNAVAILABLE",
            ) from e

        records = [DailyRecord.from_document(doc) for doc in docs]
        logger.debug(f"Retrieved {len(records)} records for user {user_id}")
        return records

    # ─────────────────────────────────────────────────────────────
    # Live subscription
    # ─────────────────────────────────────────────────────────────

    def subscribe(
        self,
        user_id: str,
        on_change: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Callable[[], None]:
        """
        Deliver the user's full record set now and after every change.

        Each callback carries the complete current snapshot, never a diff.
        Must be called from a running event loop.

        Args:
            user_id: User whose records to watch
            on_change: Receives each snapshot
            on_error: Receives a SubscriptionException if the stream breaks

        Returns:
            Idempotent unsubscribe function; must be called on user change
        """
        task = asyncio.get_running_loop().create_task(
            self._watch(user_id, on_change, on_error)
        )
        self._subscriptions.add(task)
        task.add_done_callback(self._subscriptions.discard)
        logger.info(f"Subscribed to records for user {user_id}")

        def unsubscribe() -> None:
            if not task.done():
                task.cancel()
                logger.info(f"Unsubscribed from records for user {user_id}")
            self._subscriptions.discard(task)

        return unsubscribe

    @property
    def active_subscriptions(self) -> int:
        """Number of live subscriptions not yet released."""
        return len(self._subscriptions)

    async def _watch(
        self,
        user_id: str,
        on_change: SnapshotCallback,
        on_error: Optional[ErrorCallback],
    ) -> None:
        """
        Follow the change stream and re-read the snapshot on each event.

        Delete events carry no document and so cannot be filtered by user
        in the pipeline; they trigger a re-read only when the deleted id was
        in this user's last snapshot.
        """
        pipeline = [
            {"$match": {"$or": [
                {"fullDocument.userId": user_id},
                {"operationType": "delete"},
            ]}}
        ]

        try:
            # Open the stream before the first read so no change falls between
            async with self._records_collection.watch(
                pipeline, full_document="updateLookup"
            ) as stream:
                snapshot = await self.get_all(user_id)
                known_ids = {r.id for r in snapshot}
                on_change(snapshot)

                async for change in stream:
                    if change.get("operationType") == "delete":
                        deleted_id = str(change.get("documentKey", {}).get("_id"))
                        if deleted_id not in known_ids:
                            continue

                    logger.debug(
                        f"Change event {change.get('operationType')} for user {user_id}"
                    )
                    snapshot = await self.get_all(user_id)
                    known_ids = {r.id for r in snapshot}
                    on_change(snapshot)
        except asyncio.CancelledError:
            logger.debug(f"Record watch for user {user_id} cancelled")
            raise
        except (PyMongoError, APIException) as e:
            logger.error(f"Record subscription for user {user_id} failed: {e}")
            if on_error:
                on_error(SubscriptionException(
                    message="Live updates stopped. Pull to refresh.",
                    details={"userId": user_id},
                ))

    # ─────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────

    def _object_id(self, record_id: str) -> ObjectId:
        try:
            return ObjectId(record_id)
        except (InvalidId, TypeError):
            raise self._not_found(record_id)

    def _not_found(self, record_id: str) -> NotFoundException:
        return NotFoundException(
            message=f"Record {record_id} not found",
            code="RECORD_NOT_FOUND",
            details={"recordId": record_id},
        )
