"""Orchestration of saved connections, the active pool and questions.

DatabaseManager is the single entry point used by the MCP server. It owns no
connection state itself: live handles sit in the ConnectionRegistry, saved
connections in the catalog, schemas and pending credentials in the cache.
"""

import hashlib
import json
import logging
import time
from typing import Any, Optional

from .constants import (
    CREDENTIAL_CACHE_PREFIX,
    CREDENTIAL_CACHE_TTL,
    SCHEMA_CACHE_PREFIX,
    SCHEMA_CACHE_TTL,
    SOURCE_MONGO,
    SOURCE_POSTGRES,
)
from .database.adapters import BaseAdapter, create_adapters, get_adapter
from .database.connection import ConnectionRegistry, parse_dsn
from .database.formatting import build_schema_description
from .database.pruning import prune_schema
from .errors import (
    AlreadyConnected,
    DbCopilotError,
    ExecutionError,
    MissingConfig,
    NoActiveConnection,
    ValidationRejected,
)
from .models import (
    AskResponse,
    ConnectionCredential,
    DatabaseRecord,
    ExecutionResult,
    GeneratedQuery,
    UnifiedSchema,
)
from .providers import BaseProvider
from .storage import ConnectionCatalog, CredentialCipher, SchemaCache

logger = logging.getLogger(__name__)

# Generated query type expected for each source
QUERY_TYPES = {SOURCE_POSTGRES: "sql", SOURCE_MONGO: "mongo"}


def generate_database_id(credential: ConnectionCredential) -> str:
    """Derive a stable id from source, mode and credential fields.

    The same credential always maps to the same id, so re-testing a
    connection overwrites its pending stash instead of piling up entries.
    """
    canonical = json.dumps(
        {"source": credential.source, "mode": credential.mode, "credentials": credential.credentials_dict()},
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:32]


def extract_db_name(credential: ConnectionCredential) -> str:
    """Database name named by a credential.

    Raises:
        MissingConfig: If the connection string names no database
    """
    if credential.mode == "parameters":
        return credential.database

    try:
        database = parse_dsn(credential.connection_string)["database"]
    except ValueError as e:
        raise MissingConfig("Invalid connection string") from e

    if not database:
        raise MissingConfig("Database name not found in connection string")
    return database


def schema_key(database_id: str) -> str:
    return f"{SCHEMA_CACHE_PREFIX}{database_id}"


def credential_key(database_id: str) -> str:
    return f"{CREDENTIAL_CACHE_PREFIX}{database_id}"


class DatabaseManager:
    """Coordinates adapters, registry, catalog, cache and query generator."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        catalog: ConnectionCatalog,
        cache: SchemaCache,
        cipher: CredentialCipher,
        generator: Optional[BaseProvider] = None,
        adapters: Optional[dict[str, BaseAdapter]] = None,
    ):
        self.registry = registry
        self.catalog = catalog
        self.cache = cache
        self.cipher = cipher
        self.generator = generator
        self.adapters = adapters if adapters is not None else create_adapters(registry)

    def _record(self, database_id: str) -> DatabaseRecord:
        if not database_id:
            raise MissingConfig("Database ID is required")

        record = self.catalog.get(database_id)
        if record is None:
            raise MissingConfig("Database configuration not found")
        return record

    async def test_connection(self, credential_data: dict[str, Any]) -> dict[str, str]:
        """Test a credential and stash it for a later ``save_database``.

        Args:
            credential_data: ``{source, mode, dbCredentials}`` payload

        Returns:
            ``{"databaseId": <id>}``

        Raises:
            UnsupportedSource, UnsupportedMode, MissingConfig: Bad credential
            ConnectionError: If the database cannot be reached
        """
        credential = ConnectionCredential.from_dict(credential_data)
        adapter = get_adapter(credential.source, self.adapters)
        credential.validate()

        await adapter.test_connection(credential)

        database_id = generate_database_id(credential)
        await self.cache.set(credential_key(database_id), self.cipher.encrypt(credential.to_dict()), CREDENTIAL_CACHE_TTL)

        logger.info(f"Connection test passed for {credential.source} database {database_id}")
        return {"databaseId": database_id}

    async def save_database(
        self,
        database_id: str,
        db_name: Optional[str] = None,
        source: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> dict[str, Any]:
        """Persist a tested credential in the catalog.

        Args:
            database_id: Id returned by ``test_connection``
            db_name: Display name; derived from the credential when omitted
            source: Optional source, must match the tested credential
            mode: Optional mode, must match the tested credential

        Returns:
            The saved record (without credential)

        Raises:
            MissingConfig: If nothing was tested under this id (or the
                pending credential expired), or the name already exists
        """
        token = await self.cache.get(credential_key(database_id))
        if not token:
            raise MissingConfig("No configuration found for the provided database, please try again")

        credential = ConnectionCredential.from_dict(self.cipher.decrypt(token))
        if (source and source != credential.source) or (mode and mode != credential.mode):
            raise MissingConfig("Source or mode does not match the tested connection")

        db_name = db_name or extract_db_name(credential)
        if self.catalog.find(credential.source, db_name) is not None:
            raise MissingConfig("Database with the same name already exists")

        record = DatabaseRecord(
            id=database_id,
            source=credential.source,
            mode=credential.mode,
            db_name=db_name,
            encrypted_credential=token,
            created_at=time.time(),
        )
        self.catalog.add(record)
        await self.cache.delete(credential_key(database_id))

        return record.to_dict()

    async def connect_database(self, database_id: str) -> dict[str, str]:
        """Open the pool for a saved database and cache its schema.

        Any previously active connection is closed. On failure the new
        connection and its cached schema are rolled back before re-raising.

        Raises:
            MissingConfig: Unknown id
            DecryptionError: Stored credential cannot be decrypted
            AlreadyConnected: The database is already the active one
            ConnectionError: Connection failed
        """
        record = self._record(database_id)
        adapter: Optional[BaseAdapter] = None

        try:
            credential = ConnectionCredential.from_dict(self.cipher.decrypt(record.encrypted_credential))
            adapter = get_adapter(record.source, self.adapters)

            await adapter.connect(database_id, credential)
            schema = await adapter.introspect_schema(database_id)
            await self.cache.set(schema_key(database_id), schema.to_dict(), SCHEMA_CACHE_TTL)
        except AlreadyConnected:
            # The live connection belongs to an earlier, successful connect
            raise
        except BaseException:
            if adapter is not None:
                await adapter.disconnect(database_id)
            await self._clear_schema(database_id)
            raise

        logger.info(f"Connected database {record.db_name} ({record.source}) with {len(schema.tables)} tables")
        return {"databaseId": database_id, "dbName": record.db_name, "source": record.source}

    def list_databases(self) -> list[dict[str, Any]]:
        return [record.to_dict() for record in self.catalog.list_records()]

    async def delete_databases(self, database_ids: list[str]) -> int:
        """Delete saved databases and tear down anything cached or connected.

        Returns:
            Number of records deleted
        """
        records = [record for record in map(self.catalog.get, database_ids) if record is not None]
        if not records:
            return 0

        deleted = self.catalog.delete([record.id for record in records])

        for record in records:
            try:
                await self.cache.delete(schema_key(record.id))
                await get_adapter(record.source, self.adapters).disconnect(record.id)
            except Exception as e:
                logger.warning(f"Cleanup failed for {record.source}:{record.id}: {e}")

        return deleted

    def get_active_database(self) -> dict[str, Any]:
        """Describe the database behind the single active pool.

        Raises:
            NoActiveConnection: If nothing is connected
        """
        database_id = self.registry.get_active_pool()
        record = self.catalog.get(database_id)

        result: dict[str, Any] = {"databaseId": database_id}
        if record is not None:
            result.update({"dbName": record.db_name, "source": record.source, "mode": record.mode})
        return result

    async def disconnect_database(self, database_id: str) -> None:
        """Close the pool of a saved database and drop its cached schema.

        Raises:
            MissingConfig: Unknown id
        """
        record = self._record(database_id)

        try:
            await get_adapter(record.source, self.adapters).disconnect(database_id)
        except DbCopilotError as e:
            logger.warning(f"Error disconnecting from database {database_id}: {e}")

        await self._clear_schema(database_id)

    async def _clear_schema(self, database_id: str) -> None:
        try:
            await self.cache.delete(schema_key(database_id))
        except Exception as e:
            logger.warning(f"Error clearing cached schema for {database_id}: {e}")

    async def execute_query(self, database_id: str, generated: GeneratedQuery) -> ExecutionResult:
        """Run a generated query on the active pool of ``database_id``.

        Raises:
            MissingConfig: Unknown id
            NoActiveConnection: The database is not connected
            ExecutionError: The query targets a different engine
        """
        record = self._record(database_id)
        adapter = get_adapter(record.source, self.adapters)

        handle = self.registry.get_pool(database_id)
        if handle is None:
            raise NoActiveConnection("No active connection pool found for this database")

        expected = QUERY_TYPES.get(record.source)
        if generated.type != expected:
            raise ExecutionError(f"Cannot run a {generated.type} query against a {record.source} database")

        return await adapter.execute_query(generated.to_payload(), handle)

    def _check_query(self, source: str, generated: GeneratedQuery) -> None:
        validation = get_adapter(source, self.adapters).validate_query(generated.query)
        if not validation.is_valid:
            raise ValidationRejected(validation.error)

    async def ask(self, database_id: str, message: str) -> AskResponse:
        """Answer a natural-language question against a connected database.

        The cached schema is pruned to the relevant tables, a query is
        generated, validated and executed. A rejected query is not executed;
        its reason comes back in the execution result.

        Raises:
            NoActiveConnection: No cached schema (connect again)
            MissingConfig: No query generator configured
            GenerationError: The generator produced no usable query
        """
        if not message or not message.strip():
            raise MissingConfig("Message is required")
        if self.generator is None:
            raise MissingConfig(
                "Query generator is not configured\n"
                "  Hint: export DBCOPILOT_API_KEY or pass --api-key"
            )

        cached = await self.cache.get(schema_key(database_id))
        if not cached:
            raise NoActiveConnection("Error retrieving database schema, please reconnect the database.")
        # A schema can outlive its pool when another database was connected since
        if self.registry.get_pool(database_id) is None:
            raise NoActiveConnection("No active connection pool found for this database")

        schema = UnifiedSchema.from_dict(cached)
        pruned = prune_schema(schema, message)
        logger.info(f"Pruned schema from {len(schema.tables)} to {len(pruned.tables)} tables")

        generated = await self.generator.generate_query(message, pruned, build_schema_description(pruned))

        try:
            self._check_query(schema.source, generated)
        except ValidationRejected as e:
            logger.warning(f"Generated query rejected: {e}")
            result = ExecutionResult(False, error=str(e))
        else:
            result = await self.execute_query(database_id, generated)

        return AskResponse(
            query=generated.query,
            explanation=generated.explanation,
            type=generated.type,
            execution_result=result,
        )
