"""Database adapters for the supported database sources."""

from ...errors import UnsupportedSource
from ..connection import ConnectionRegistry
from .base import BaseAdapter
from .mongodb import MongoDBAdapter
from .postgresql import PostgreSQLAdapter

__all__ = [
    "ADAPTERS",
    "BaseAdapter",
    "MongoDBAdapter",
    "PostgreSQLAdapter",
    "create_adapters",
    "get_adapter",
]

# Source tag -> adapter class
ADAPTERS: dict[str, type[BaseAdapter]] = {
    PostgreSQLAdapter.source: PostgreSQLAdapter,
    MongoDBAdapter.source: MongoDBAdapter,
}


def create_adapters(registry: ConnectionRegistry) -> dict[str, BaseAdapter]:
    """Instantiate every adapter against one shared connection registry.

    Args:
        registry: Registry that will own the live handles

    Returns:
        Mapping of source tag to adapter instance
    """
    return {source: adapter_cls(registry) for source, adapter_cls in ADAPTERS.items()}


def get_adapter(source: str, adapters: dict[str, BaseAdapter]) -> BaseAdapter:
    """Look up the adapter for a database source.

    Args:
        source: Source tag, e.g. "postgres" or "mongo"
        adapters: Mapping built by ``create_adapters``

    Returns:
        The adapter instance

    Raises:
        UnsupportedSource: If no adapter is registered for ``source``
    """
    adapter = adapters.get(source)
    if adapter is None:
        raise UnsupportedSource(
            f"Unsupported database source: {source}\n"
            f"  Supported sources: {', '.join(ADAPTERS)}"
        )
    return adapter
