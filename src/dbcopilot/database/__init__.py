"""Database mediation layer for dbcopilot.

Architecture:
- connection.py: DSN parsing and the single-active-connection registry
- schema.py: Normalization of introspection output into a unified schema
- pruning.py: Relevance scoring and schema pruning
- validation.py: Query validation and read-only enforcement
- formatting.py: Schema descriptions and result formatting
- adapters/: Engine-specific implementations (PostgreSQL, MongoDB)
"""

from dbcopilot.database.connection import ConnectionRegistry, PoolHandle, parse_dsn
from dbcopilot.database.formatting import build_schema_description, format_database_results
from dbcopilot.database.pruning import prune_schema, score_tables
from dbcopilot.database.schema import normalize_document_schema, normalize_relational_schema
from dbcopilot.database.validation import validate_pipeline, validate_sql

__all__ = [
    "ConnectionRegistry",
    "PoolHandle",
    "parse_dsn",
    "build_schema_description",
    "format_database_results",
    "prune_schema",
    "score_tables",
    "normalize_document_schema",
    "normalize_relational_schema",
    "validate_pipeline",
    "validate_sql",
]
