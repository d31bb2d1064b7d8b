import base64
import stat

import pytest
import redis.asyncio as redis

from dbcopilot.errors import DecryptionError, MissingConfig
from dbcopilot.models import DatabaseRecord
from dbcopilot.storage import ConnectionCatalog, CredentialCipher, MemoryCache, RedisCache, create_cache

CREDENTIAL = {"source": "postgres", "mode": "url", "dbCredentials": {"connectionString": "postgresql://u:p@h/db"}}


def record(database_id: str, db_name: str = "shop", source: str = "postgres", created_at: float = 1.0) -> DatabaseRecord:
    return DatabaseRecord(
        id=database_id,
        source=source,
        mode="url",
        db_name=db_name,
        encrypted_credential="token",
        created_at=created_at,
    )


# Cipher

def test_cipher_round_trip(cipher):
    token = cipher.encrypt(CREDENTIAL)

    assert "postgresql://" not in token
    assert cipher.decrypt(token) == CREDENTIAL


def test_cipher_tokens_are_randomized(cipher):
    assert cipher.encrypt(CREDENTIAL) != cipher.encrypt(CREDENTIAL)


def test_cipher_rejects_tampered_token(cipher):
    raw = bytearray(base64.b64decode(cipher.encrypt(CREDENTIAL)))
    raw[-1] ^= 0x01

    with pytest.raises(DecryptionError):
        cipher.decrypt(base64.b64encode(bytes(raw)).decode("ascii"))


def test_cipher_rejects_other_secret(cipher):
    token = CredentialCipher("another-secret").encrypt(CREDENTIAL)

    with pytest.raises(DecryptionError):
        cipher.decrypt(token)


@pytest.mark.parametrize("token", ["not base64!", "", base64.b64encode(b"short").decode("ascii")])
def test_cipher_rejects_malformed_token(cipher, token):
    with pytest.raises(DecryptionError):
        cipher.decrypt(token)


def test_cipher_requires_secret():
    with pytest.raises(MissingConfig):
        CredentialCipher("")


# Catalog

def test_catalog_add_and_get(catalog):
    catalog.add(record("db-1"))

    stored = catalog.get("db-1")
    assert stored.db_name == "shop"
    assert stored.encrypted_credential == "token"
    assert catalog.get("missing") is None


def test_catalog_file_is_private(catalog):
    catalog.add(record("db-1"))

    assert stat.S_IMODE(catalog.path.stat().st_mode) == 0o600


def test_catalog_find_by_source_and_name(catalog):
    catalog.add(record("db-1", "shop", "postgres"))
    catalog.add(record("db-2", "shop", "mongo"))

    assert catalog.find("mongo", "shop").id == "db-2"
    assert catalog.find("postgres", "billing") is None


def test_catalog_lists_oldest_first(catalog):
    catalog.add(record("db-2", "billing", created_at=20.0))
    catalog.add(record("db-1", "shop", created_at=10.0))

    assert [r.id for r in catalog.list_records()] == ["db-1", "db-2"]


def test_catalog_delete_counts_removed_records(catalog):
    catalog.add(record("db-1"))
    catalog.add(record("db-2", "billing"))

    assert catalog.delete(["db-1", "missing"]) == 1
    assert [r.id for r in catalog.list_records()] == ["db-2"]


def test_catalog_annotations_use_builtin_list():
    """No method named list shadows the builtin inside the class body"""
    assert "list" not in vars(ConnectionCatalog)
    assert ConnectionCatalog.delete.__annotations__["database_ids"] == list[str]
    assert ConnectionCatalog.list_records.__annotations__["return"] == list[DatabaseRecord]


def test_catalog_persists_across_instances(tmp_path):
    ConnectionCatalog(tmp_path).add(record("db-1"))

    assert ConnectionCatalog(tmp_path).get("db-1").db_name == "shop"


# Cache

class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.mark.asyncio
async def test_memory_cache_expires_entries():
    clock = FakeClock()
    cache = MemoryCache(clock=clock)

    await cache.set("db_schema:1", {"source": "postgres"}, ttl=60)
    assert await cache.get("db_schema:1") == {"source": "postgres"}

    clock.now += 60
    assert await cache.get("db_schema:1") is None


@pytest.mark.asyncio
async def test_memory_cache_returns_copies(cache):
    value = {"tables": {}}
    await cache.set("key", value, ttl=60)

    value["tables"]["users"] = {}
    assert await cache.get("key") == {"tables": {}}


@pytest.mark.asyncio
async def test_memory_cache_delete_ignores_missing(cache):
    await cache.set("key", 1, ttl=60)

    await cache.delete("key")
    await cache.delete("key")

    assert await cache.get("key") is None


class FakeRedis:
    def __init__(self, fail: bool = False):
        self.store = {}
        self.expiries = {}
        self.fail = fail
        self.closed = False

    async def get(self, key):
        if self.fail:
            raise redis.ConnectionError("connection refused")
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.expiries[key] = ex

    async def delete(self, key):
        self.store.pop(key, None)

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_redis_cache_sets_expiry():
    client = FakeRedis()
    cache = RedisCache("redis://localhost:6379/0", client=client)

    await cache.set("db_credentials:1", {"mode": "url"}, ttl=600)

    assert client.expiries["db_credentials:1"] == 600
    assert await cache.get("db_credentials:1") == {"mode": "url"}
    assert await cache.get("missing") is None


@pytest.mark.asyncio
async def test_redis_cache_propagates_errors():
    cache = RedisCache("redis://localhost:6379/0", client=FakeRedis(fail=True))

    with pytest.raises(redis.RedisError):
        await cache.get("key")


@pytest.mark.asyncio
async def test_redis_cache_close():
    client = FakeRedis()
    await RedisCache("redis://localhost:6379/0", client=client).close()
    assert client.closed


def test_create_cache_defaults_to_memory():
    assert isinstance(create_cache(None), MemoryCache)
