"""
MongoDB connection management and the repository base class
"""

import logging
from typing import Optional, Dict, Any, List, Tuple
from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo import ASCENDING, IndexModel, ReturnDocument

from .config import get_database_config, DatabaseConfig

logger = logging.getLogger(__name__)


# Logical collection name -> indexes it carries
COLLECTION_INDEXES: Dict[str, List[IndexModel]] = {
    "patients": [
        IndexModel([("uuid", ASCENDING)], unique=True),
        IndexModel([("patient_id", ASCENDING)], unique=True, sparse=True),
        # Identifier values are unique within their type
        IndexModel(
            [("identifiers.identifier_type.uuid", ASCENDING), ("identifiers.identifier", ASCENDING)],
            unique=True,
            sparse=True
        ),
        IndexModel([("match_keys.family_name_soundex", ASCENDING), ("match_keys.given_name_soundex", ASCENDING)]),
        IndexModel([("match_keys.family_name", ASCENDING), ("match_keys.given_name", ASCENDING)]),
        IndexModel([("names.given_name", ASCENDING)]),
        IndexModel([("names.family_name", ASCENDING)]),
    ],
    "relationships": [
        IndexModel([("uuid", ASCENDING)], unique=True),
        IndexModel([("person_a", ASCENDING)]),
        IndexModel([("person_b", ASCENDING)]),
    ],
    "identifier_sources": [
        IndexModel([("source_id", ASCENDING)], unique=True),
    ],
    "counters": [],
}


class DatabaseManager:
    """
    Owns the motor client and maps logical collection names to the
    configured physical collections.
    """

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or get_database_config()
        self._client: Optional[AsyncIOMotorClient] = None
        self._database: Optional[AsyncIOMotorDatabase] = None
        self._collections: Dict[str, AsyncIOMotorCollection] = {}
        self._initialized = False

    def _physical_names(self) -> Dict[str, str]:
        return {
            "patients": self.config.patients_collection,
            "relationships": self.config.relationships_collection,
            "identifier_sources": self.config.identifier_sources_collection,
            "counters": self.config.counters_collection,
        }

    async def initialize(self) -> None:
        """Connect, then make sure every collection has its indexes"""
        if self._initialized:
            return

        logger.info(f"Connecting to registration database {self.config.name} at {self.config.uri}")

        try:
            self._client = AsyncIOMotorClient(
                self.config.uri,
                maxPoolSize=self.config.max_pool_size,
                minPoolSize=self.config.min_pool_size,
                maxIdleTimeMS=self.config.max_idle_time_ms,
                serverSelectionTimeoutMS=self.config.server_selection_timeout_ms
            )
            await self._client.admin.command('ping')

            self._database = self._client[self.config.name]
            self._collections = {
                logical: self._database[physical]
                for logical, physical in self._physical_names().items()
            }

            for logical, indexes in COLLECTION_INDEXES.items():
                if indexes:
                    await self._collections[logical].create_indexes(indexes)

            self._initialized = True
            logger.info(f"Registration database ready ({len(self._collections)} collections)")

        except Exception as e:
            logger.error(f"Failed to initialize registration database: {e}")
            raise

    async def cleanup(self) -> None:
        if self._client:
            self._client.close()
            self._client = None
            self._initialized = False
            logger.info("Registration database connection closed")

    @property
    def database(self) -> AsyncIOMotorDatabase:
        self._require_initialized()
        return self._database

    def get_collection(self, name: str) -> AsyncIOMotorCollection:
        """Collection for a logical name such as "patients" """
        self._require_initialized()
        if name not in self._collections:
            raise KeyError(f"Unknown collection: {name}")
        return self._collections[name]

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("DatabaseManager.initialize() has not been awaited")


class BaseRepository:
    """Common operations over one logical collection"""

    def __init__(self, db_manager: DatabaseManager, collection_name: str):
        self.db_manager = db_manager
        self.collection_name = collection_name

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self.db_manager.get_collection(self.collection_name)

    async def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return await self.collection.find_one(query, {"_id": 0})
        except Exception as e:
            logger.error(f"{self.collection_name}: find_one {query} failed: {e}")
            raise

    async def find_many(
        self,
        query: Dict[str, Any],
        limit: int,
        sort: Optional[List[Tuple[str, int]]] = None
    ) -> List[Dict[str, Any]]:
        try:
            cursor = self.collection.find(query, {"_id": 0}).limit(limit)
            if sort:
                cursor = cursor.sort(sort)
            return await cursor.to_list(length=limit)
        except Exception as e:
            logger.error(f"{self.collection_name}: find {query} failed: {e}")
            raise

    async def update_one(self, query: Dict[str, Any], update: Dict[str, Any], upsert: bool = False) -> bool:
        """Apply update, stamping updated_at; True if a document changed or was created"""
        update.setdefault("$set", {})["updated_at"] = datetime.now(timezone.utc)
        try:
            result = await self.collection.update_one(query, update, upsert=upsert)
        except Exception as e:
            logger.error(f"{self.collection_name}: update {query} failed: {e}")
            raise
        return result.modified_count > 0 or result.upserted_id is not None

    async def find_one_and_increment(
        self,
        query: Dict[str, Any],
        counter_field: str,
        upsert: bool = False
    ) -> Optional[Dict[str, Any]]:
        """Atomically add one to counter_field and return the updated document"""
        try:
            return await self.collection.find_one_and_update(
                query,
                {"$inc": {counter_field: 1}},
                projection={"_id": 0},
                upsert=upsert,
                return_document=ReturnDocument.AFTER
            )
        except Exception as e:
            logger.error(f"{self.collection_name}: increment of {counter_field} failed: {e}")
            raise

    async def distinct(self, key: str, query: Optional[Dict[str, Any]] = None) -> List[Any]:
        try:
            return await self.collection.distinct(key, query or {})
        except Exception as e:
            logger.error(f"{self.collection_name}: distinct {key} failed: {e}")
            raise
