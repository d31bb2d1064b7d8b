import json

import pytest

from dbcopilot.server import (
    INTERNAL_ERROR,
    build_manager,
    build_tools,
    check_configuration,
    dispatch,
    render_contents,
    shutdown,
)
from dbcopilot.config import Settings
from dbcopilot.errors import MissingConfig
from dbcopilot.storage import MemoryCache
from fakes import POSTGRES_URL_CREDENTIAL


def test_build_tools_lists_every_tool():
    names = [tool.name for tool in build_tools()]

    assert names == [
        "test_connection",
        "save_database",
        "connect_database",
        "list_databases",
        "delete_databases",
        "get_active_database",
        "disconnect_database",
        "ask",
    ]


@pytest.mark.asyncio
async def test_dispatch_full_workflow(manager):
    tested = await dispatch(manager, "test_connection", POSTGRES_URL_CREDENTIAL)
    database_id = tested["data"]["databaseId"]

    saved = await dispatch(manager, "save_database", {"databaseId": database_id})
    connected = await dispatch(manager, "connect_database", {"databaseId": database_id})
    answered = await dispatch(manager, "ask", {"databaseId": database_id, "message": "show all users"})

    assert saved["success"] and saved["data"]["dbName"] == "shop"
    assert connected == {"success": True, "data": {"databaseId": database_id, "dbName": "shop", "source": "postgres"}}
    assert answered["data"]["executionResult"]["success"]


@pytest.mark.asyncio
async def test_dispatch_unknown_tool(manager):
    assert await dispatch(manager, "drop_everything", {}) == {
        "success": False,
        "error": "Unknown tool 'drop_everything'",
    }


@pytest.mark.asyncio
async def test_dispatch_missing_parameter(manager):
    assert await dispatch(manager, "connect_database", {}) == {
        "success": False,
        "error": "Missing required parameter 'databaseId'",
    }


@pytest.mark.asyncio
async def test_dispatch_reports_domain_errors(manager):
    envelope = await dispatch(manager, "get_active_database", None)

    assert envelope == {"success": False, "error": "No active database connection pool found"}


@pytest.mark.asyncio
async def test_dispatch_hides_unexpected_errors(manager, monkeypatch):
    def broken():
        raise RuntimeError("catalog.json is corrupt at /home/user/.dbcopilot")

    monkeypatch.setattr(manager, "list_databases", broken)

    assert await dispatch(manager, "list_databases", {}) == {"success": False, "error": INTERNAL_ERROR}


@pytest.mark.asyncio
async def test_dispatch_list_and_delete(manager, saved_database_id):
    listed = await dispatch(manager, "list_databases", {})
    deleted = await dispatch(manager, "delete_databases", {"databaseIds": [saved_database_id]})

    assert [db["id"] for db in listed["data"]] == [saved_database_id]
    assert deleted == {"success": True, "data": {"deleted": 1}}


def test_build_manager_requires_encryption_secret(tmp_path):
    with pytest.raises(MissingConfig):
        build_manager(Settings(storage_dir=tmp_path))


def test_build_manager_without_api_key_disables_ask(tmp_path):
    manager = build_manager(Settings(encryption_secret="secret", storage_dir=tmp_path))

    assert manager.generator is None
    assert isinstance(manager.cache, MemoryCache)
    assert set(manager.adapters) == {"postgres", "mongo"}


@pytest.mark.asyncio
async def test_check_configuration_passes(manager, capsys):
    assert await check_configuration(manager)
    assert "[PASSED]" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_render_contents_adds_result_table_for_ask(manager, saved_database_id):
    await manager.connect_database(saved_database_id)
    arguments = {"databaseId": saved_database_id, "message": "show all users"}
    envelope = await dispatch(manager, "ask", arguments)

    contents = render_contents(manager, "ask", arguments, envelope)

    assert len(contents) == 2
    assert json.loads(contents[0].text) == envelope
    table = contents[1].text
    assert "DATABASE QUERY RESULTS" in table
    assert "Database: shop" in table
    assert "Query: SELECT * FROM users" in table
    assert "Execution time: 3 ms" in table
    assert "Total rows: 1" in table


@pytest.mark.asyncio
async def test_render_contents_returns_only_envelope_on_failure(manager):
    envelope = await dispatch(manager, "ask", {"databaseId": "missing", "message": "show all users"})

    contents = render_contents(manager, "ask", {"databaseId": "missing"}, envelope)

    assert [json.loads(c.text) for c in contents] == [envelope]


@pytest.mark.asyncio
async def test_shutdown_releases_pools_and_generator(manager, registry, generator, saved_database_id):
    await manager.connect_database(saved_database_id)

    await shutdown(manager)

    assert len(registry) == 0
    assert generator.closed
