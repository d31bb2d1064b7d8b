"""Normalization of raw introspection output into a UnifiedSchema.

Two variants produce the same shape:

- relational: rows read from the engine's metadata catalog
- document: collection names plus sampled documents
"""

import re
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional

from bson.decimal128 import Decimal128

from ..constants import SOURCE_MONGO, SOURCE_POSTGRES
from ..models import ColumnSchema, ForeignKeyRef, TableSchema, UnifiedSchema

# userId, user_id, userid -> base "user"
FOREIGN_KEY_FIELD = re.compile(r"^(.+?)(_?id)$")

Row = Mapping[str, Any]


def normalize_relational_schema(
    tables: Iterable[Row],
    columns: Iterable[Row],
    primary_keys: Iterable[Row],
    foreign_keys: Iterable[Row],
    source: str = SOURCE_POSTGRES,
) -> UnifiedSchema:
    """Build a UnifiedSchema from the four catalog row sets.

    Columns are appended in catalog ordinal order and annotated with their
    primary-key flag and foreign-key references by lookup. Columns of tables
    missing from ``tables`` are skipped. Foreign keys are kept even when their
    target table is not listed; the pruner ignores such targets.

    Args:
        tables: Rows with ``table_name``
        columns: Rows with ``table_name``, ``column_name``, ``data_type``,
            ``is_nullable`` and optionally ``ordinal_position``
        primary_keys: Rows with ``table_name``, ``column_name``
        foreign_keys: Rows with ``source_table``, ``source_column``,
            ``target_table``, ``target_column``
        source: Engine tag stored on the schema

    Returns:
        Normalized schema
    """
    schema = UnifiedSchema(source=source)

    for row in tables:
        schema.tables[row["table_name"]] = TableSchema()

    pk_map: dict[str, list[str]] = {}
    for row in primary_keys:
        names = pk_map.setdefault(row["table_name"], [])
        if row["column_name"] not in names:
            names.append(row["column_name"])

    fk_map: dict[str, list[ForeignKeyRef]] = {}
    for row in foreign_keys:
        key = f"{row['source_table']}.{row['source_column']}"
        fk_map.setdefault(key, []).append(ForeignKeyRef(row["target_table"], row["target_column"]))

    for row in sorted(columns, key=lambda r: r.get("ordinal_position") or 0):
        table = schema.tables.get(row["table_name"])
        if table is None:
            continue

        table.columns.append(ColumnSchema(
            name=row["column_name"],
            type=row["data_type"],
            nullable=row["is_nullable"] == "YES",
            is_primary_key=row["column_name"] in pk_map.get(row["table_name"], []),
            foreign_keys=list(fk_map.get(f"{row['table_name']}.{row['column_name']}", [])),
        ))

    for table_name, pk_columns in pk_map.items():
        if table_name in schema.tables:
            schema.tables[table_name].primary_key = pk_columns

    return schema


def infer_type(value: Any) -> str:
    """Infer the primitive type tag of one document value."""
    if value is None:
        return "unknown"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float, Decimal128)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (datetime, date)):
        return "date"
    if isinstance(value, (list, tuple)):
        return "array"
    return "object"


def infer_foreign_keys(field: str) -> list[ForeignKeyRef]:
    """Guess references from the field name alone.

    Approximate: ``userId`` and ``user_id`` are assumed to point at
    ``users._id``. Pluralisation is a plain ``s`` suffix and nothing checks
    that the target collection exists. ``_id`` never references anything.
    """
    lower = field.lower()
    if lower == "_id":
        return []

    match = FOREIGN_KEY_FIELD.match(lower)
    if not match:
        return []

    return [ForeignKeyRef(f"{match.group(1)}s", "_id")]


def normalize_document_schema(
    collections: Iterable[str],
    samples: Mapping[str, Optional[list[Any]]],
    source: str = SOURCE_MONGO,
) -> UnifiedSchema:
    """Infer a relational-style schema from sampled documents.

    For every top-level field the observed type tags are unioned (first-seen
    order, joined by ``" | "``). A field is nullable when any sample holds
    null for it or lacks it entirely. ``_id`` is always the primary key.

    Args:
        collections: Collection names
        samples: Sampled documents per collection name
        source: Engine tag stored on the schema

    Returns:
        Normalized schema
    """
    schema = UnifiedSchema(source=source)

    for collection in collections:
        docs = [doc for doc in samples.get(collection) or [] if isinstance(doc, Mapping)]

        # field -> (type tags, saw null, number of docs with a non-null value)
        field_types: dict[str, list[str]] = {}
        field_null: dict[str, bool] = {}
        field_present: dict[str, int] = {}

        for doc in docs:
            for key, value in doc.items():
                types = field_types.setdefault(key, [])
                field_null.setdefault(key, False)
                field_present.setdefault(key, 0)

                if value is None:
                    field_null[key] = True
                    continue

                field_present[key] += 1
                tag = infer_type(value)
                if tag not in types:
                    types.append(tag)

        columns = []
        for name, types in field_types.items():
            columns.append(ColumnSchema(
                name=name,
                type=" | ".join(types) if types else "unknown",
                nullable=field_null[name] or field_present[name] < len(docs),
                is_primary_key=name == "_id",
                foreign_keys=infer_foreign_keys(name),
            ))

        schema.tables[collection] = TableSchema(columns=columns, primary_key=["_id"])

    return schema
