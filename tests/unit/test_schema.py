from datetime import datetime

from bson import ObjectId
from bson.decimal128 import Decimal128

from dbcopilot.database.schema import (
    infer_foreign_keys,
    infer_type,
    normalize_document_schema,
    normalize_relational_schema,
)
from dbcopilot.models import ForeignKeyRef, UnifiedSchema

TABLES = [{"table_name": "users"}, {"table_name": "orders"}]

COLUMNS = [
    {"table_name": "orders", "column_name": "user_id", "data_type": "integer", "is_nullable": "YES", "ordinal_position": 2},
    {"table_name": "orders", "column_name": "id", "data_type": "integer", "is_nullable": "NO", "ordinal_position": 1},
    {"table_name": "users", "column_name": "id", "data_type": "integer", "is_nullable": "NO", "ordinal_position": 1},
    {"table_name": "users", "column_name": "email", "data_type": "text", "is_nullable": "NO", "ordinal_position": 2},
    {"table_name": "audit", "column_name": "id", "data_type": "integer", "is_nullable": "NO", "ordinal_position": 1},
]

PRIMARY_KEYS = [
    {"table_name": "users", "column_name": "id"},
    {"table_name": "orders", "column_name": "id"},
]

FOREIGN_KEYS = [
    {"source_table": "orders", "source_column": "user_id", "target_table": "users", "target_column": "id"},
    {"source_table": "orders", "source_column": "id", "target_table": "archived", "target_column": "id"},
]


def test_normalize_relational_schema_builds_tables():
    schema = normalize_relational_schema(TABLES, COLUMNS, PRIMARY_KEYS, FOREIGN_KEYS)

    assert schema.source == "postgres"
    assert list(schema.tables) == ["users", "orders"]

    users = schema.tables["users"]
    assert [c.name for c in users.columns] == ["id", "email"]
    assert users.primary_key == ["id"]
    assert users.columns[0].is_primary_key
    assert not users.columns[1].nullable


def test_normalize_relational_schema_orders_columns_and_links_foreign_keys():
    schema = normalize_relational_schema(TABLES, COLUMNS, PRIMARY_KEYS, FOREIGN_KEYS)
    orders = schema.tables["orders"]

    assert [c.name for c in orders.columns] == ["id", "user_id"]
    user_id = orders.columns[1]
    assert user_id.nullable
    assert user_id.foreign_keys == [ForeignKeyRef("users", "id")]


def test_normalize_relational_schema_keeps_foreign_keys_to_unlisted_tables():
    """Columns of unlisted tables are dropped, FKs pointing at them are kept"""
    schema = normalize_relational_schema(TABLES, COLUMNS, PRIMARY_KEYS, FOREIGN_KEYS)

    assert "audit" not in schema.tables
    assert schema.tables["orders"].columns[0].foreign_keys == [ForeignKeyRef("archived", "id")]


def test_normalize_relational_schema_empty():
    schema = normalize_relational_schema([], [], [], [])
    assert schema.tables == {}


def test_infer_type_tags():
    assert infer_type(None) == "unknown"
    assert infer_type(True) == "boolean"
    assert infer_type(3) == "number"
    assert infer_type(2.5) == "number"
    assert infer_type(Decimal128("1.10")) == "number"
    assert infer_type("x") == "string"
    assert infer_type(datetime(2024, 1, 1)) == "date"
    assert infer_type([1, 2]) == "array"
    assert infer_type({"a": 1}) == "object"
    assert infer_type(ObjectId()) == "object"


def test_infer_foreign_keys_from_field_names():
    assert infer_foreign_keys("userId") == [ForeignKeyRef("users", "_id")]
    assert infer_foreign_keys("order_id") == [ForeignKeyRef("orders", "_id")]
    assert infer_foreign_keys("_id") == []
    assert infer_foreign_keys("email") == []


def test_normalize_document_schema_unions_types_in_first_seen_order():
    samples = {
        "users": [
            {"_id": ObjectId(), "age": 31, "email": "a@example.com"},
            {"_id": ObjectId(), "age": "unknown", "email": "b@example.com"},
        ]
    }
    schema = normalize_document_schema(["users"], samples)
    columns = {c.name: c for c in schema.tables["users"].columns}

    assert schema.source == "mongo"
    assert columns["age"].type == "number | string"
    assert not columns["email"].nullable
    assert columns["_id"].is_primary_key
    assert schema.tables["users"].primary_key == ["_id"]


def test_normalize_document_schema_nullability():
    """Explicit null and absence both make a field nullable"""
    samples = {
        "orders": [
            {"_id": 1, "userId": 7, "note": None},
            {"_id": 2, "userId": 8, "coupon": "SPRING"},
        ]
    }
    schema = normalize_document_schema(["orders"], samples)
    columns = {c.name: c for c in schema.tables["orders"].columns}

    assert columns["note"].nullable
    assert columns["note"].type == "unknown"
    assert columns["coupon"].nullable
    assert not columns["userId"].nullable
    assert columns["userId"].foreign_keys == [ForeignKeyRef("users", "_id")]


def test_normalize_document_schema_empty_collection():
    schema = normalize_document_schema(["empty"], {"empty": []})

    assert schema.tables["empty"].columns == []
    assert schema.tables["empty"].primary_key == ["_id"]


def test_unified_schema_survives_cache_serialization():
    schema = normalize_relational_schema(TABLES, COLUMNS, PRIMARY_KEYS, FOREIGN_KEYS)
    assert UnifiedSchema.from_dict(schema.to_dict()) == schema
