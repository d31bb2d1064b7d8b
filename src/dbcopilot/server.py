"""dbcopilot MCP server - Ask questions of PostgreSQL and MongoDB databases."""

import json
import logging
import sys
from typing import Any, Optional

import mcp.server.stdio
import mcp.types as types
from mcp.server import Server
from mcp.server.lowlevel import NotificationOptions
from mcp.server.models import InitializationOptions

from .config import Settings
from .constants import EXIT_FAILURE, EXIT_SUCCESS, SERVER_NAME, SERVER_VERSION
from .database.connection import ConnectionRegistry
from .database.formatting import format_database_results
from .errors import DbCopilotError
from .manager import DatabaseManager
from .models import ExecutionResult
from .providers import OpenRouterProvider
from .storage import ConnectionCatalog, CredentialCipher, create_cache
from .tool_definitions import ToolDescriptions

# Set up dbcopilot logger with flushing
logger = logging.getLogger("dbcopilot")
logger.setLevel(logging.INFO)
handler = logging.StreamHandler(sys.stderr)
handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
logger.addHandler(handler)

USAGE = """Usage: dbcopilot [options] [--test]

Options (each also read from DBCOPILOT_<NAME> in the environment):
  --encryption-secret <secret>  - Secret for encrypting saved credentials (required)
  --storage-dir <path>          - Catalog directory (default: ~/.dbcopilot)
  --redis-url <url>             - Redis schema cache (default: in-memory)
  --api-key <key>               - API key of the query generator
  --model <name>                - Generator model (default: google/gemini-2.5-flash)
  --base-url <url>              - OpenAI-compatible API base URL (default: OpenRouter)
  --test                        - Check configuration and storage, then exit

Examples:
  DBCOPILOT_ENCRYPTION_SECRET=... dbcopilot --api-key sk-or-v1-...
  dbcopilot --encryption-secret ... --redis-url redis://localhost:6379/0 --test
"""

INTERNAL_ERROR = "Internal error. Check the server log for details."


class DbCopilotServer(Server):
    """Extended MCP Server that holds the database manager."""

    def __init__(self, name: str, manager: DatabaseManager):
        super().__init__(name)
        self.manager = manager


def build_manager(settings: Settings) -> DatabaseManager:
    """Wire registry, storage and generator from settings.

    Raises:
        MissingConfig: If no encryption secret is configured
    """
    registry = ConnectionRegistry()
    generator: Optional[OpenRouterProvider] = None
    if settings.api_key:
        generator = OpenRouterProvider(settings.api_key, model=settings.model, base_url=settings.base_url)
    else:
        logger.warning("API Key: Not set, the ask tool is disabled")

    return DatabaseManager(
        registry=registry,
        catalog=ConnectionCatalog(settings.storage_dir),
        cache=create_cache(settings.redis_url),
        cipher=CredentialCipher(settings.encryption_secret),
        generator=generator,
    )


def _database_id_schema() -> dict:
    return {
        "type": "object",
        "properties": {
            "databaseId": {"type": "string", "description": ToolDescriptions.get_database_id_description()},
        },
        "required": ["databaseId"],
    }


def build_tools() -> list[types.Tool]:
    """List the tools exposed by the server."""
    return [
        types.Tool(
            name="test_connection",
            description=ToolDescriptions.get_test_connection_description(),
            inputSchema=ToolDescriptions.get_credential_schema(),
        ),
        types.Tool(
            name="save_database",
            description=ToolDescriptions.get_save_database_description(),
            inputSchema={
                "type": "object",
                "properties": {
                    "databaseId": {"type": "string", "description": "Id returned by test_connection"},
                    "dbName": {"type": "string", "description": "Display name (default: database name)"},
                    "source": {"type": "string"},
                    "mode": {"type": "string"},
                },
                "required": ["databaseId"],
            },
        ),
        types.Tool(
            name="connect_database",
            description=ToolDescriptions.get_connect_database_description(),
            inputSchema=_database_id_schema(),
        ),
        types.Tool(
            name="list_databases",
            description="List saved databases (credentials are never returned)",
            inputSchema={"type": "object", "properties": {}},
        ),
        types.Tool(
            name="delete_databases",
            description="Delete saved databases, disconnecting them if connected",
            inputSchema={
                "type": "object",
                "properties": {
                    "databaseIds": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["databaseIds"],
            },
        ),
        types.Tool(
            name="get_active_database",
            description="Show the currently connected database",
            inputSchema={"type": "object", "properties": {}},
        ),
        types.Tool(
            name="disconnect_database",
            description="Disconnect a database and drop its cached schema",
            inputSchema=_database_id_schema(),
        ),
        types.Tool(
            name="ask",
            description=ToolDescriptions.get_ask_description(),
            inputSchema={
                "type": "object",
                "properties": {
                    "databaseId": {"type": "string", "description": ToolDescriptions.get_database_id_description()},
                    "message": {"type": "string", "description": "Your question about the data"},
                },
                "required": ["databaseId", "message"],
            },
        ),
    ]


def _require(arguments: dict, name: str) -> Any:
    value = arguments.get(name)
    if value is None or value == "" or value == []:
        raise DbCopilotError(f"Missing required parameter '{name}'")
    return value


async def dispatch(manager: DatabaseManager, name: str, arguments: Optional[dict]) -> dict:
    """Run one tool call and wrap the outcome in the response envelope.

    Returns:
        ``{"success": True, "data": ...}`` or ``{"success": False, "error": ...}``
    """
    arguments = arguments or {}

    try:
        if name == "test_connection":
            data = await manager.test_connection(arguments)
        elif name == "save_database":
            data = await manager.save_database(
                _require(arguments, "databaseId"),
                arguments.get("dbName"),
                arguments.get("source"),
                arguments.get("mode"),
            )
        elif name == "connect_database":
            data = await manager.connect_database(_require(arguments, "databaseId"))
        elif name == "list_databases":
            data = manager.list_databases()
        elif name == "delete_databases":
            data = {"deleted": await manager.delete_databases(_require(arguments, "databaseIds"))}
        elif name == "get_active_database":
            data = manager.get_active_database()
        elif name == "disconnect_database":
            await manager.disconnect_database(_require(arguments, "databaseId"))
            data = {"databaseId": arguments["databaseId"]}
        elif name == "ask":
            response = await manager.ask(_require(arguments, "databaseId"), _require(arguments, "message"))
            data = response.to_dict()
        else:
            return {"success": False, "error": f"Unknown tool '{name}'"}

    except DbCopilotError as e:
        logger.error(f"Error in {name}: {type(e).__name__}: {e}")
        return {"success": False, "error": str(e)}

    except Exception:
        logger.exception(f"Unexpected error in {name}")
        return {"success": False, "error": INTERNAL_ERROR}

    return {"success": True, "data": data}


def render_contents(manager: DatabaseManager, name: str, arguments: Optional[dict], envelope: dict) -> list[types.TextContent]:
    """Turn a response envelope into MCP text contents.

    Every tool returns the JSON envelope. A successful ``ask`` also returns
    the execution result as a plain text table.
    """
    contents = [types.TextContent(type="text", text=json.dumps(envelope, default=str))]

    if name == "ask" and envelope["success"]:
        data = envelope["data"]
        database_id = (arguments or {}).get("databaseId")
        record = manager.catalog.get(database_id)
        contents.append(types.TextContent(
            type="text",
            text=format_database_results(
                ExecutionResult.from_dict(data["executionResult"]),
                data["query"],
                record.db_name if record else database_id,
            ),
        ))

    return contents


async def shutdown(manager: DatabaseManager) -> None:
    """Close every pool, the cache and the query generator's HTTP client."""
    await manager.registry.clear_all_pools()
    await manager.cache.close()
    if manager.generator is not None:
        await manager.generator.close()


async def check_configuration(manager: DatabaseManager) -> bool:
    """Exercise cipher, catalog and cache once; report each step."""
    print()
    print("Checking dbcopilot configuration...")

    try:
        token = manager.cipher.encrypt({"check": True})
        manager.cipher.decrypt(token)
        print("Encryption: OK")

        print(f"Catalog: {manager.catalog.path} ({len(manager.catalog.list_records())} saved databases)")

        await manager.cache.set("dbcopilot:check", {"check": True}, 10)
        await manager.cache.get("dbcopilot:check")
        await manager.cache.delete("dbcopilot:check")
        print(f"Cache: {type(manager.cache).__name__} OK")

        print(f"Query generator: {'configured' if manager.generator else 'not configured'}")
    except Exception as e:
        print()
        print("[FAILED] Check FAILED")
        print(f"Error: {e}")
        return False

    print()
    print("[PASSED] Check PASSED")
    return True


async def main():
    """Parse command line arguments and run the server."""
    try:
        settings = Settings.from_env().apply_args(sys.argv[1:])
    except ValueError as e:
        sys.stderr.write(f"Error: {e}\n")
        sys.stderr.write(USAGE)
        sys.exit(EXIT_FAILURE)

    try:
        manager = build_manager(settings)
    except DbCopilotError as e:
        sys.stderr.write(f"Error: {e}\n")
        sys.stderr.write(USAGE)
        sys.exit(EXIT_FAILURE)

    if settings.test_mode:
        success = await check_configuration(manager)
        await shutdown(manager)
        sys.exit(EXIT_SUCCESS if success else EXIT_FAILURE)

    server = DbCopilotServer(SERVER_NAME, manager)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return build_tools()

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[types.TextContent]:
        """Handle tool calls."""
        envelope = await dispatch(server.manager, name, arguments)
        return render_contents(server.manager, name, arguments, envelope)

    # Show startup information
    logger.info("Starting dbcopilot MCP Server")
    logger.info(f"Storage: {settings.storage_dir}")
    logger.info(f"Schema cache: {'Redis' if settings.redis_url else 'in-memory'}")
    logger.info(f"Model: {settings.model}")

    try:
        async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
            init_options = InitializationOptions(
                server_name=SERVER_NAME,
                server_version=SERVER_VERSION,
                capabilities=server.get_capabilities(
                    notification_options=NotificationOptions(),
                    experimental_capabilities={},
                ),
                instructions=(
                    "Workflow: test_connection -> save_database -> connect_database -> ask. "
                    "Only one database is connected at a time."
                ),
            )
            await server.run(read_stream, write_stream, init_options)
    except Exception as e:
        logger.exception(f"MCP Server error: {type(e).__name__}: {e}")
        sys.exit(EXIT_FAILURE)
    finally:
        await shutdown(server.manager)


def run():
    """Entry point for the dbcopilot command."""
    import asyncio

    asyncio.run(main())


if __name__ == "__main__":
    run()
