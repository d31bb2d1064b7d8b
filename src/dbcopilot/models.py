"""Data model shared by adapters, normalizers, pruner and manager.

Every record serialises to the camelCase JSON shape used for the schema
cache and for tool responses.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .constants import CREDENTIAL_MODE_ALIASES, CREDENTIAL_MODES
from .errors import MissingConfig, UnsupportedMode

PARAMETER_FIELDS = ("host", "port", "database", "username", "password")


@dataclass
class ConnectionCredential:
    """Credential for one database, either a connection string or parameters.

    ``mode`` decides which half is populated: ``"url"`` carries only
    ``connection_string``; ``"parameters"`` carries host, port, database and
    optional username, password and ssl flag.
    """

    source: str
    mode: str
    connection_string: Optional[str] = field(default=None, repr=False)
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    ssl: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConnectionCredential":
        """Build a credential from the request shape.

        Accepts ``{source, mode, dbCredentials: {...}}`` as well as the flat
        shape where the credential fields sit next to ``source`` and ``mode``.

        Args:
            data: Inbound credential payload

        Returns:
            Unvalidated credential; call ``validate()`` before use
        """
        if not data:
            raise MissingConfig("Connection credential is required")

        mode = data.get("mode")
        mode = CREDENTIAL_MODE_ALIASES.get(mode, mode)
        creds = data.get("dbCredentials") or {
            key: value for key, value in data.items() if key not in ("source", "mode")
        }

        port = creds.get("port")
        if port not in (None, ""):
            try:
                port = int(port)
            except (TypeError, ValueError) as e:
                raise MissingConfig(
                    f"Invalid port: {port!r}\n"
                    "  Hint: port must be a number, e.g. 5432 or 27017"
                ) from e
        else:
            port = None

        return cls(
            source=data.get("source"),
            mode=mode,
            connection_string=creds.get("connectionString"),
            host=creds.get("host"),
            port=port,
            database=creds.get("database"),
            username=creds.get("username"),
            password=creds.get("password"),
            ssl=bool(creds.get("ssl", creds.get("tls", False))),
        )

    def validate(self) -> "ConnectionCredential":
        """Check that exactly one of the two credential forms is present.

        Raises:
            UnsupportedMode: If the mode is unknown or the forms are mixed
            MissingConfig: If a required field is absent
        """
        if self.mode not in CREDENTIAL_MODES:
            raise UnsupportedMode(f"Unsupported connection mode: {self.mode}")

        has_parameters = any(getattr(self, name) for name in PARAMETER_FIELDS)

        if self.mode == "url":
            if not self.connection_string:
                raise MissingConfig("Connection string is required for url mode")
            if has_parameters:
                raise UnsupportedMode("url mode does not accept host/port parameters")
        else:
            if self.connection_string:
                raise UnsupportedMode("parameters mode does not accept a connection string")
            missing = [name for name in ("host", "port", "database") if not getattr(self, name)]
            if missing:
                raise MissingConfig(f"Missing connection parameters: {', '.join(missing)}")

        return self

    def credentials_dict(self) -> dict[str, Any]:
        """Return the ``dbCredentials`` part, the only part that gets encrypted."""
        if self.mode == "url":
            return {"connectionString": self.connection_string}

        creds = {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "username": self.username,
            "password": self.password,
            "ssl": self.ssl,
        }
        return {key: value for key, value in creds.items() if value is not None}

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "mode": self.mode, "dbCredentials": self.credentials_dict()}


@dataclass
class ForeignKeyRef:
    references_table: str
    references_column: str

    def to_dict(self) -> dict[str, str]:
        return {"referencesTable": self.references_table, "referencesColumn": self.references_column}

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> "ForeignKeyRef":
        return cls(data["referencesTable"], data["referencesColumn"])


@dataclass
class ColumnSchema:
    """One column (or document field) in the unified schema.

    ``type`` is free-form: a catalog type such as ``"integer"`` or a union of
    inferred document types such as ``"string | number"``.
    """

    name: str
    type: str
    nullable: bool
    is_primary_key: bool = False
    foreign_keys: list[ForeignKeyRef] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "nullable": self.nullable,
            "isPrimaryKey": self.is_primary_key,
            "foreignKeys": [fk.to_dict() for fk in self.foreign_keys],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ColumnSchema":
        return cls(
            name=data["name"],
            type=data["type"],
            nullable=data["nullable"],
            is_primary_key=data.get("isPrimaryKey", False),
            foreign_keys=[ForeignKeyRef.from_dict(fk) for fk in data.get("foreignKeys") or []],
        )


@dataclass
class TableSchema:
    columns: list[ColumnSchema] = field(default_factory=list)
    primary_key: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "columns": [column.to_dict() for column in self.columns],
            "primaryKey": list(self.primary_key),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableSchema":
        return cls(
            columns=[ColumnSchema.from_dict(column) for column in data.get("columns", [])],
            primary_key=list(data.get("primaryKey", [])),
        )


@dataclass
class UnifiedSchema:
    """Engine-agnostic description of tables, columns and keys.

    A pruned schema is the same type holding only the selected tables.
    """

    source: str
    tables: dict[str, TableSchema] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "tables": {name: table.to_dict() for name, table in self.tables.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UnifiedSchema":
        return cls(
            source=data["source"],
            tables={name: TableSchema.from_dict(table) for name, table in data.get("tables", {}).items()},
        )


@dataclass
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result = {"isValid": self.is_valid}
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class ExecutionResult:
    success: bool
    data: Optional[list[dict[str, Any]]] = None
    count: Optional[int] = None
    error: Optional[str] = None
    execution_time_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            result["data"] = self.data
        if self.count is not None:
            result["count"] = self.count
        if self.error is not None:
            result["error"] = self.error
        result["executionTimeMs"] = self.execution_time_ms
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExecutionResult":
        return cls(
            success=data["success"],
            data=data.get("data"),
            count=data.get("count"),
            error=data.get("error"),
            execution_time_ms=data.get("executionTimeMs", 0),
        )


@dataclass
class GeneratedQuery:
    """Candidate query returned by the query generator (untrusted)."""

    type: str
    query: Union[str, list[dict[str, Any]]]
    explanation: str = "No explanation provided"
    collection: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        """Payload accepted by an adapter's ``execute_query``."""
        payload: dict[str, Any] = {"query": self.query}
        if self.collection is not None:
            payload["collection"] = self.collection
        return payload


@dataclass
class DatabaseRecord:
    """Saved connection in the catalog. The credential stays encrypted."""

    id: str
    source: str
    mode: str
    db_name: str
    encrypted_credential: str = field(repr=False)
    created_at: Optional[float] = None

    def to_dict(self, include_credential: bool = False) -> dict[str, Any]:
        result = {
            "id": self.id,
            "source": self.source,
            "mode": self.mode,
            "dbName": self.db_name,
        }
        if self.created_at is not None:
            result["createdAt"] = self.created_at
        if include_credential:
            result["encryptedCredential"] = self.encrypted_credential
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DatabaseRecord":
        return cls(
            id=data["id"],
            source=data["source"],
            mode=data["mode"],
            db_name=data["dbName"],
            encrypted_credential=data["encryptedCredential"],
            created_at=data.get("createdAt"),
        )


@dataclass
class AskResponse:
    query: Union[str, list[dict[str, Any]]]
    explanation: str
    type: str
    execution_result: ExecutionResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "explanation": self.explanation,
            "type": self.type,
            "executionResult": self.execution_result.to_dict(),
        }
