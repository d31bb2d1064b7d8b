"""MongoDB database adapter implementation."""

import asyncio
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from urllib.parse import quote

from bson import ObjectId
from bson.decimal128 import Decimal128
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from ...constants import (
    MONGO_EXECUTION_ERROR,
    MONGO_SAMPLE_SIZE,
    MONGO_TLS_MARKER,
    POOL_CONNECT_TIMEOUT,
    POOL_IDLE_TIMEOUT,
    POOL_MAX_CONNECTIONS,
    SOURCE_MONGO,
)
from ...errors import UnsupportedMode
from ...models import ConnectionCredential, ExecutionResult, UnifiedSchema, ValidationResult
from ..connection import PoolHandle
from ..logging import QueryTimer, log_query_execution, sanitize_dsn
from ..schema import normalize_document_schema
from ..validation import validate_pipeline
from .base import BaseAdapter

logger = logging.getLogger(__name__)

# Used when the connection string names no database
FALLBACK_DATABASE = "test"


def json_safe(value: Any) -> Any:
    """Convert BSON values in a document into JSON-serializable ones."""
    if isinstance(value, dict):
        return {key: json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(item) for item in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal128):
        return str(value.to_decimal())
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, bytes):
        return value.hex()
    return value


def client_kwargs(options: dict[str, Any]) -> dict[str, Any]:
    """Pool limits and timeouts shared by probe and pooled clients."""
    return {
        "maxPoolSize": POOL_MAX_CONNECTIONS,
        "minPoolSize": 0,
        "maxIdleTimeMS": int(POOL_IDLE_TIMEOUT * 1000),
        "serverSelectionTimeoutMS": int(POOL_CONNECT_TIMEOUT * 1000),
        "connectTimeoutMS": int(POOL_CONNECT_TIMEOUT * 1000),
        **options,
    }


class MongoPool(PoolHandle):
    """pymongo client (which pools internally) registered in the ConnectionRegistry."""

    def __init__(self, client: MongoClient, label: str):
        self.client = client
        self.label = label

    def database(self):
        return self.client.get_default_database(default=FALLBACK_DATABASE)

    def close(self) -> None:
        self.client.close()
        logger.info(f"Closed MongoDB client for {self.label}")


class MongoDBAdapter(BaseAdapter):
    """MongoDB adapter running aggregation pipelines only."""

    source = SOURCE_MONGO
    display_name = "MongoDB"
    driver_errors = (PyMongoError,)

    def build_connection_config(self, credential: ConnectionCredential) -> dict[str, Any]:
        """Build a MongoDB URI plus client options.

        Raises:
            UnsupportedMode: If the mode is not url or parameters
        """
        if credential.mode == "url":
            return {
                "uri": credential.connection_string,
                # TLS settings already in the URI (ssl=, mongodb+srv) are left to the driver
                "options": {"tls": True} if MONGO_TLS_MARKER in credential.connection_string else {},
            }

        if credential.mode == "parameters":
            auth = ""
            if credential.username and credential.password:
                auth = f"{quote(credential.username, safe='')}:{quote(credential.password, safe='')}@"
            uri = f"mongodb://{auth}{credential.host}:{credential.port}/{credential.database}"
            return {"uri": uri, "options": {"tls": True} if credential.ssl else {}}

        raise UnsupportedMode("Unsupported MongoDB connection mode")

    def validate_query(self, query: Any) -> ValidationResult:
        return validate_pipeline(query)

    def _describe(self, config: dict[str, Any]) -> str:
        return config["uri"]

    def _probe(self, config: dict[str, Any]) -> None:
        client = MongoClient(config["uri"], **client_kwargs(config.get("options", {})))
        try:
            client.get_default_database(default=FALLBACK_DATABASE).command("ping")
            logger.info("MongoDB connection successful")
        finally:
            client.close()

    def _open_pool(self, config: dict[str, Any]) -> PoolHandle:
        client = MongoClient(config["uri"], **client_kwargs(config.get("options", {})))
        return MongoPool(client, sanitize_dsn(config["uri"]))

    def _verify_pool(self, handle: PoolHandle) -> None:
        handle.database().command("ping")

    def _sample(self, handle: MongoPool) -> tuple[list[str], dict[str, list[dict[str, Any]]]]:
        db = handle.database()
        collections = db.list_collection_names()
        samples = {
            name: list(db[name].find({}).limit(MONGO_SAMPLE_SIZE))
            for name in collections
        }
        return collections, samples

    async def introspect_schema(self, database_id: str) -> UnifiedSchema:
        """Infer a schema from up to MONGO_SAMPLE_SIZE documents per collection.

        Raises:
            NoActiveConnection: If the database is not connected
        """
        handle = self._require_pool(database_id)
        collections, samples = await asyncio.to_thread(self._sample, handle)

        schema = normalize_document_schema(collections, samples)
        logger.info(f"Introspected {len(schema.tables)} collections for database {database_id}")
        return schema

    def _aggregate(self, handle: MongoPool, collection: str, pipeline: list) -> list[dict[str, Any]]:
        cursor = handle.database()[collection].aggregate(pipeline, allowDiskUse=True)
        return [json_safe(document) for document in cursor]

    async def execute_query(self, payload: Any, handle: PoolHandle) -> ExecutionResult:
        """Validate and run an aggregation pipeline.

        Args:
            payload: ``{"collection": <name>, "query": [<stage>, ...]}``
            handle: Registered MongoPool

        Returns:
            ExecutionResult with JSON-safe documents; runtime failures carry a
            fixed message
        """
        payload = payload if isinstance(payload, dict) else {}
        collection = payload.get("collection")
        pipeline = payload.get("query")
        label = getattr(handle, "label", self.source)

        with QueryTimer() as timer:
            if not collection:
                return ExecutionResult(False, error="Collection name is required", execution_time_ms=timer.duration_ms)

            validation = self.validate_query(pipeline)
            if not validation.is_valid:
                log_query_execution(
                    query=pipeline,
                    target=label,
                    success=False,
                    duration_ms=timer.duration_ms,
                    error=validation.error,
                    blocked=True,
                )
                return ExecutionResult(False, error=validation.error, execution_time_ms=timer.duration_ms)

            try:
                data = await asyncio.to_thread(self._aggregate, handle, collection, pipeline)
            except Exception as e:
                logger.error(f"Mongo execution error: {e}")
                log_query_execution(
                    query=pipeline,
                    target=label,
                    success=False,
                    duration_ms=timer.duration_ms,
                    error=str(e),
                )
                return ExecutionResult(False, error=MONGO_EXECUTION_ERROR, execution_time_ms=timer.duration_ms)

        log_query_execution(
            query=pipeline,
            target=label,
            success=True,
            row_count=len(data),
            duration_ms=timer.duration_ms,
        )
        return ExecutionResult(True, data=data, count=len(data), execution_time_ms=timer.duration_ms)
