"""Abstract base class for database adapters."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from ...errors import AlreadyConnected, ConnectionError, MissingConfig, NoActiveConnection, UnsupportedMode
from ...models import ConnectionCredential, ExecutionResult, UnifiedSchema, ValidationResult
from ..connection import ConnectionRegistry, PoolHandle
from ..logging import QueryTimer, log_connection

logger = logging.getLogger(__name__)


class BaseAdapter(ABC):
    """Abstract base class for engine-specific adapters.

    Each engine (PostgreSQL, MongoDB) implements this contract so the
    manager can test, connect, introspect and query any of them the same
    way. Live handles are owned by the injected ConnectionRegistry, never by
    the adapter.

    Subclasses provide the blocking driver calls (``_probe``, ``_open_pool``,
    ``_verify_pool``); this class runs them in worker threads and handles
    registration, rollback and error translation.
    """

    source: str = "unknown"
    display_name: str = "database"
    # Driver exceptions translated into ConnectionError
    driver_errors: tuple[type[BaseException], ...] = ()

    def __init__(self, registry: ConnectionRegistry):
        """Initialize adapter.

        Args:
            registry: Registry holding the live connection handles
        """
        self.registry = registry

    @abstractmethod
    def build_connection_config(self, credential: ConnectionCredential) -> dict[str, Any]:
        """Turn a credential into the driver's native connection config.

        Pure: no I/O.

        Raises:
            UnsupportedMode: If the credential's source/mode is not handled
        """
        pass

    @abstractmethod
    def validate_query(self, query: Any) -> ValidationResult:
        """Check that a query is safe (read-only) for this engine."""
        pass

    @abstractmethod
    async def introspect_schema(self, database_id: str) -> UnifiedSchema:
        """Read the schema of a connected database.

        Raises:
            NoActiveConnection: If no handle is registered for the id
        """
        pass

    @abstractmethod
    async def execute_query(self, payload: Any, handle: PoolHandle) -> ExecutionResult:
        """Validate and run a read-only query. Never raises."""
        pass

    @abstractmethod
    def _probe(self, config: dict[str, Any]) -> None:
        """Open a short-lived connection, run a liveness probe, close it."""
        pass

    @abstractmethod
    def _open_pool(self, config: dict[str, Any]) -> PoolHandle:
        """Create the native pool or client for ``config``."""
        pass

    @abstractmethod
    def _verify_pool(self, handle: PoolHandle) -> None:
        """Run a liveness probe through a freshly created handle."""
        pass

    def _describe(self, config: dict[str, Any]) -> str:
        """Label for logs; sanitized before it is written."""
        return self.source

    def _check_credential(self, credential: Optional[ConnectionCredential]) -> ConnectionCredential:
        if credential is None:
            raise MissingConfig("Connection config is required to create a new pool")
        if credential.source != self.source:
            raise UnsupportedMode(f"Unsupported connection source for {self.display_name}: {credential.source}")
        return credential.validate()

    async def test_connection(self, credential: ConnectionCredential) -> None:
        """Check that the credential reaches a live database.

        The probe connection is always closed, even when the probe fails.

        Raises:
            ConnectionError: If the database cannot be reached (message never
                contains the credential)
        """
        config = self.build_connection_config(self._check_credential(credential))
        target = self._describe(config)

        with QueryTimer() as timer:
            try:
                await asyncio.to_thread(self._probe, config)
            except self.driver_errors as e:
                logger.error(f"{self.display_name} connection test failed: {e}")
                log_connection(target, False, str(e), timer.duration)
                raise ConnectionError(
                    f"Error connecting to {self.display_name} database. Please check your credentials."
                ) from e

        log_connection(target, True, duration=timer.duration)

    async def connect(self, database_id: str, credential: Optional[ConnectionCredential]) -> PoolHandle:
        """Create, verify and register the pool for ``database_id``.

        Any handle already registered (for any database) is torn down first,
        keeping the registry at one live connection. When anything fails after
        the native pool exists, the pool is closed before the error propagates.

        Args:
            database_id: Identifier of the saved connection
            credential: Decrypted credential

        Returns:
            The registered handle

        Raises:
            MissingConfig: If the id or credential is absent
            AlreadyConnected: If this id already has a registered handle
            ConnectionError: If the pool cannot be created or verified
        """
        if not database_id:
            raise MissingConfig("Database ID is required to create a pool")
        if database_id in self.registry:
            raise AlreadyConnected("The connection of this database already exists")

        config = self.build_connection_config(self._check_credential(credential))
        target = self._describe(config)

        with QueryTimer() as timer:
            try:
                handle = await asyncio.to_thread(self._open_pool, config)
            except self.driver_errors as e:
                logger.error(f"Failed to create {self.display_name} pool: {e}")
                log_connection(target, False, str(e), timer.duration)
                raise ConnectionError(f"{self.display_name} connection failed") from e

            try:
                await asyncio.to_thread(self._verify_pool, handle)
                await self.registry.replace_all(database_id, handle)
            except BaseException as e:
                await self._close_quietly(handle)
                log_connection(target, False, str(e), timer.duration)
                if isinstance(e, self.driver_errors):
                    raise ConnectionError(f"{self.display_name} connection failed") from e
                raise

        log_connection(target, True, duration=timer.duration)
        logger.info(f"Connected to {self.display_name} database {database_id}")
        return handle

    async def disconnect(self, database_id: str) -> None:
        """Close and unregister the handle for ``database_id``.

        Idempotent and never raises; close failures are logged by the registry.
        """
        await self.registry.remove_pool(database_id)

    def _require_pool(self, database_id: str) -> PoolHandle:
        handle = self.registry.get_pool(database_id)
        if handle is None:
            raise NoActiveConnection(f"No active {self.display_name} connection found for this database")
        return handle

    async def _close_quietly(self, handle: PoolHandle) -> None:
        try:
            await asyncio.to_thread(handle.close)
        except Exception as e:
            logger.warning(f"Error closing {self.display_name} pool after failed connect: {e}")
