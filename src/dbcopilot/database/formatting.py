"""Formatting of schemas and query results for LLM and tool consumption."""

from typing import Any

from ..models import ExecutionResult, UnifiedSchema
from .logging import query_text

RESULT_SEPARATOR = "=" * 80
ROW_SEPARATOR = "-" * 80


def build_schema_description(schema: UnifiedSchema) -> str:
    """Describe a (pruned) schema as plain text for the query generator.

    Each column line carries its type and PRIMARY KEY, NOT NULL and FK
    annotations, e.g. ``  - user_id (integer) [NOT NULL] [FK -> users.id]``.

    Args:
        schema: Schema to describe

    Returns:
        Human-readable table and column listing
    """
    lines = [f"Database Type: {schema.source}", "Entities:", ""]

    if not schema.tables:
        lines.append("(no entities matched the question)")

    for table_name, table in schema.tables.items():
        lines.append(f"Entity: {table_name}")
        lines.append("Fields:")

        for column in table.columns:
            desc = f"  - {column.name} ({column.type})"

            if column.is_primary_key:
                desc += " [PRIMARY KEY]"
            if not column.nullable:
                desc += " [NOT NULL]"
            for fk in column.foreign_keys:
                desc += f" [FK -> {fk.references_table}.{fk.references_column}]"

            lines.append(desc)

        lines.append("")

    return "\n".join(lines)


def format_database_results(result: ExecutionResult, query: Any, database_name: str = "unknown") -> str:
    """Format an execution result as plain text.

    Formats rows in a column-aligned table with row numbers and a summary,
    or the failure reason when execution did not succeed.

    Args:
        result: Execution result to render
        query: The query that produced the result
        database_name: Name of the database (for context)

    Returns:
        Plain text formatted results with clear separators
    """
    header = [
        RESULT_SEPARATOR,
        "DATABASE QUERY RESULTS",
        RESULT_SEPARATOR,
        f"Database: {database_name}",
        f"Query: {query_text(query)}",
        f"Execution time: {result.execution_time_ms} ms",
    ]

    if not result.success:
        return "\n".join(header + [f"Error: {result.error}", RESULT_SEPARATOR, ""])

    rows: list[dict[str, Any]] = result.data or []
    if not rows:
        return "\n".join(header + ["Result: No rows returned (empty result set)", RESULT_SEPARATOR, ""])

    # Union of keys, documents may differ in shape
    columns: list[str] = []
    for row in rows:
        for col in row:
            if col not in columns:
                columns.append(col)

    # Calculate column widths for alignment
    col_widths = {col: len(str(col)) for col in columns}
    for row in rows:
        for col in columns:
            col_widths[col] = max(col_widths[col], len(str(row.get(col, 'NULL'))))

    output = header + [f"Rows returned: {len(rows)}", "", ROW_SEPARATOR]

    header_parts = ["Row#"]
    for col in columns:
        header_parts.append(col.ljust(col_widths[col]))
    output.append("  ".join(header_parts))
    output.append(ROW_SEPARATOR)

    for idx, row in enumerate(rows, start=1):
        row_parts = [f"{idx:4d}"]
        for col in columns:
            row_parts.append(str(row.get(col, 'NULL')).ljust(col_widths[col]))
        output.append("  ".join(row_parts))

    output.extend([
        ROW_SEPARATOR,
        f"Total rows: {result.count if result.count is not None else len(rows)}",
        RESULT_SEPARATOR,
        "",
    ])

    return "\n".join(output)
