import os
import logging
from enum import Enum
from functools import lru_cache
from typing import Dict, List, Optional

from dotenv import load_dotenv, find_dotenv
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, PyMongoError

from tarification.models.errors import StorageError
from tarification.models.models import (
    CollisionTariffRow,
    FixedTariffRow,
    InjuryTariffRow,
    RcTariffRow,
    TariffGrids,
)

load_dotenv(find_dotenv())

logger = logging.getLogger(__name__)


class STORAGE_COLLECTIONS(str, Enum):
    GUARANTEES = "guarantees"
    TARIFF_RULES = "tariff_rules"
    PACKAGES = "packages"
    TARIFF_RC = "tariff_rc"
    TARIFF_IC_IPT = "tariff_ic_ipt"
    TARIFF_COLLISION = "tariff_collision"
    TARIFF_FIXED = "tariff_fixed"


def _name(collection) -> str:
    return collection.value if isinstance(collection, STORAGE_COLLECTIONS) else collection


class StorageService:
    """
    Catalog store collaborator backed by MongoDB. Every pymongo failure is
    logged and re-raised as StorageError; nothing is retried here.
    """

    def __init__(self, db: Optional[Database] = None):
        self._client = None
        self._db = db
        if db is None:
            self.MONGO_HOST = os.environ.get("MONGO_HOST", "localhost")
            self.MONGO_PORT = int(os.environ.get("MONGO_PORT", 27017))
            self.MONGO_DB_NAME = os.environ.get("MONGO_DB_NAME", "tarification")
            self.MONGO_USER = os.environ.get("MONGO_USER", "")
            self.MONGO_PASSWORD = os.environ.get("MONGO_PASSWORD", "")
            self.connect()

    def connect(self):
        try:
            self._client = MongoClient(
                self.MONGO_HOST,
                self.MONGO_PORT,
                username=self.MONGO_USER or None,
                password=self.MONGO_PASSWORD or None,
            )
            # The ping command is cheap and does not require auth.
            self._client.admin.command('ping')
            self._db = self._client[self.MONGO_DB_NAME]
            logger.info(f"MongoDB connection established to {self.MONGO_DB_NAME}")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection error: {e}")
            raise StorageError(f"Cannot connect to MongoDB at {self.MONGO_HOST}:{self.MONGO_PORT}") from e

    def close(self):
        if self._client:
            self._client.close()
            logger.info("MongoDB connection closed.")

    def _collection(self, collection_name):
        if self._db is None:
            raise StorageError("MongoDB database not initialized. Call connect() first.")
        return self._db[_name(collection_name)]

    def find(self, query: dict, collection_name) -> List[Dict]:
        name = _name(collection_name)
        try:
            logger.debug(f"Finding documents in collection '{name}' with query: {query}")
            return list(self._collection(name).find(query))
        except PyMongoError as e:
            logger.error(f"Error finding documents in collection {name}: {e}", exc_info=True)
            raise StorageError(f"find failed on '{name}'") from e

    def find_one(self, query: dict, collection_name) -> Optional[Dict]:
        name = _name(collection_name)
        try:
            return self._collection(name).find_one(query)
        except PyMongoError as e:
            logger.error(f"Error reading document from collection {name}: {e}", exc_info=True)
            raise StorageError(f"find_one failed on '{name}'") from e

    def insert_one(self, document: dict, collection_name):
        name = _name(collection_name)
        try:
            collection = self._collection(name)
            if "_id" in document:
                # Upsert: insert when missing, replace otherwise.
                result = collection.replace_one({"_id": document["_id"]}, document, upsert=True)
                if result.upserted_id is not None:
                    logger.info(f"Document inserted (upserted) into collection {name} with ID: {result.upserted_id}")
                    return result.upserted_id
                logger.info(f"Document with ID {document['_id']} replaced in collection {name}.")
                return document["_id"]
            result = collection.insert_one(document)
            logger.info(f"Document inserted into collection {name} with ID: {result.inserted_id}")
            return result.inserted_id
        except PyMongoError as e:
            logger.error(f"Error inserting/upserting document in collection {name}: {e}", exc_info=True)
            raise StorageError(f"insert failed on '{name}'") from e

    def update_one(self, query: dict, update: dict, collection_name) -> int:
        name = _name(collection_name)
        try:
            result = self._collection(name).update_one(query, {"$set": update})
            logger.info(f"Documents matched in collection {name}: {result.matched_count}, modified: {result.modified_count}")
            return result.matched_count
        except PyMongoError as e:
            logger.error(f"Error updating document in collection {name}: {e}", exc_info=True)
            raise StorageError(f"update failed on '{name}'") from e

    def delete_one(self, query: dict, collection_name) -> int:
        name = _name(collection_name)
        try:
            result = self._collection(name).delete_one(query)
            logger.info(f"Documents deleted from collection {name}: {result.deleted_count}")
            return result.deleted_count
        except PyMongoError as e:
            logger.error(f"Error deleting document from collection {name}: {e}", exc_info=True)
            raise StorageError(f"delete failed on '{name}'") from e

    def replace_collection(self, documents: List[Dict], collection_name) -> int:
        """Replaces every document of a collection with `documents`."""
        name = _name(collection_name)
        try:
            collection = self._collection(name)
            collection.delete_many({})
            if documents:
                collection.insert_many(documents)
            logger.info(f"Collection {name} replaced with {len(documents)} documents")
            return len(documents)
        except PyMongoError as e:
            logger.error(f"Error replacing collection {name}: {e}", exc_info=True)
            raise StorageError(f"replace failed on '{name}'") from e

    def load_tariff_grids(self) -> TariffGrids:
        """Reads the four tariff grids, validating every row."""
        return TariffGrids(
            rc_rows=[RcTariffRow.model_validate(d) for d in self.find({}, STORAGE_COLLECTIONS.TARIFF_RC)],
            injury_rows=[InjuryTariffRow.model_validate(d) for d in self.find({}, STORAGE_COLLECTIONS.TARIFF_IC_IPT)],
            collision_rows=[CollisionTariffRow.model_validate(d) for d in self.find({}, STORAGE_COLLECTIONS.TARIFF_COLLISION)],
            fixed_rows=[FixedTariffRow.model_validate(d) for d in self.find({}, STORAGE_COLLECTIONS.TARIFF_FIXED)],
        )


@lru_cache(maxsize=1)
def get_storage_service() -> StorageService:
    """Process-wide store connected from the environment."""
    return StorageService()
