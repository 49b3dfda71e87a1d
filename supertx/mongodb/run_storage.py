"""MongoDB implementation of RunStorageBackend."""

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure

from supertx.execution.run import ExecutionRun

logger = logging.getLogger(__name__)


class MongoDBRunStorage:
    """MongoDB implementation of RunStorageBackend.

    Runs are stored as JSON-mode documents keyed by run ID, with the plan
    hash and timestamps lifted to the top level for indexing.

    Args:
        uri: MongoDB connection URI
        database: Database name
        runs_collection: Collection name for runs (default: "runs")

    Example:
        ```python
        storage = MongoDBRunStorage(uri="mongodb://localhost:27017", database="supertx")
        await storage.startup()

        await storage.save_run(run)
        runs = await storage.list_runs(plan_hash=run.plan_hash, limit=10)

        await storage.shutdown()
        ```
    """

    def __init__(
        self,
        uri: str,
        database: str,
        runs_collection: str = "runs",
    ) -> None:
        self.uri = uri
        self.database_name = database
        self.runs_collection_name = runs_collection
        self._client: AsyncIOMotorClient | None = None
        self._db: AsyncIOMotorDatabase | None = None

    async def startup(self) -> None:
        """Connect and create indexes on status, plan_hash and created_at.

        Raises:
            ConnectionError: If unable to connect to MongoDB
        """
        try:
            self._client = AsyncIOMotorClient(self.uri, tz_aware=True)
            self._db = self._client[self.database_name]

            await self._client.admin.command("ping")
            logger.info(f"Connected to MongoDB at {self.uri}")

            runs_collection = self._db[self.runs_collection_name]
            await runs_collection.create_index(
                [("plan_hash", ASCENDING)],
                background=True,
            )
            await runs_collection.create_index(
                [("status", ASCENDING)],
                background=True,
            )
            await runs_collection.create_index(
                [("created_at", DESCENDING)],
                background=True,
            )

            logger.info("Created indexes on runs collection")

        except ConnectionFailure as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise ConnectionError(f"Unable to connect to MongoDB at {self.uri}") from e
        except Exception as e:
            logger.error(f"Unexpected error during startup: {e}")
            raise

    async def shutdown(self) -> None:
        """Close the MongoDB connection. Safe to call multiple times."""
        if self._client:
            self._client.close()
            self._client = None
            self._db = None
            logger.info("Closed MongoDB connection")

    def _to_document(self, run: ExecutionRun) -> dict:
        # JSON mode keeps Decimal amounts exact as strings.
        doc = run.model_dump(mode="json")
        doc["_id"] = doc.pop("id")
        doc["plan_hash"] = run.plan_hash
        doc["created_at"] = run.created_at
        return doc

    def _from_document(self, doc: dict[str, Any]) -> ExecutionRun:
        doc["id"] = doc.pop("_id")
        doc.pop("plan_hash", None)
        # BSON datetimes carry no zone; they are always stored as UTC.
        created_at = doc.get("created_at")
        if isinstance(created_at, datetime) and created_at.tzinfo is None:
            doc["created_at"] = created_at.replace(tzinfo=timezone.utc)
        return ExecutionRun.model_validate(doc)

    async def save_run(self, run: ExecutionRun) -> ExecutionRun:
        """Insert or replace a run.

        Raises:
            RuntimeError: If storage is not started or the save fails
        """
        if self._db is None:
            raise RuntimeError("Storage not initialized. Call startup() first.")

        try:
            doc = self._to_document(run)
            collection = self._db[self.runs_collection_name]
            await collection.replace_one({"_id": doc["_id"]}, doc, upsert=True)
            logger.debug(f"Saved run: {run.id}")
            return run

        except Exception as e:
            logger.error(f"Failed to save run {run.id}: {e}")
            raise RuntimeError(f"Failed to save run: {e}") from e

    async def get_run(self, run_id: str) -> Optional[ExecutionRun]:
        """Retrieve a run by ID, or None."""
        if self._db is None:
            raise RuntimeError("Storage not initialized. Call startup() first.")

        try:
            collection = self._db[self.runs_collection_name]
            doc = await collection.find_one({"_id": run_id})
            if not doc:
                return None
            return self._from_document(doc)

        except Exception as e:
            logger.error(f"Failed to get run {run_id}: {e}")
            raise RuntimeError(f"Failed to get run: {e}") from e

    async def list_runs(
        self,
        plan_hash: Optional[str] = None,
        limit: int = 100,
    ) -> List[ExecutionRun]:
        """List runs, most recent first, optionally for one plan hash."""
        if self._db is None:
            raise RuntimeError("Storage not initialized. Call startup() first.")

        try:
            collection = self._db[self.runs_collection_name]

            query: dict = {}
            if plan_hash:
                query["plan_hash"] = plan_hash

            cursor = collection.find(query).sort("created_at", DESCENDING).limit(limit)
            docs = await cursor.to_list(length=limit)

            runs = [self._from_document(doc) for doc in docs]
            logger.debug(f"Listed {len(runs)} runs")
            return runs

        except Exception as e:
            logger.error(f"Failed to list runs: {e}")
            raise RuntimeError(f"Failed to list runs: {e}") from e
