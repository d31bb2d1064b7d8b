import pytest
import pytest_asyncio

from dbcopilot.database.connection import ConnectionRegistry
from dbcopilot.manager import DatabaseManager
from dbcopilot.models import GeneratedQuery
from dbcopilot.storage import ConnectionCatalog, CredentialCipher, MemoryCache
from fakes import POSTGRES_URL_CREDENTIAL, FakeAdapter, FakeGenerator


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def adapter(registry):
    return FakeAdapter(registry)


@pytest.fixture
def cipher():
    return CredentialCipher("test-secret")


@pytest.fixture
def catalog(tmp_path):
    return ConnectionCatalog(tmp_path / "storage")


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def generator():
    return FakeGenerator(GeneratedQuery(type="sql", query="SELECT * FROM users", explanation="All users"))


@pytest.fixture
def manager(registry, catalog, cache, cipher, generator, adapter):
    return DatabaseManager(
        registry=registry,
        catalog=catalog,
        cache=cache,
        cipher=cipher,
        generator=generator,
        adapters={"postgres": adapter},
    )


# Tested and saved Postgres connection, not yet connected
@pytest_asyncio.fixture
async def saved_database_id(manager):
    result = await manager.test_connection(POSTGRES_URL_CREDENTIAL)
    await manager.save_database(result["databaseId"])
    return result["databaseId"]
