"""Query validation and read-only enforcement.

Both validators are pure classifiers: they return a ``ValidationResult`` and
never raise. They are pattern based, not parsers. The pipeline validator only
inspects the top-level operator of each stage; operators nested inside a
stage body are not checked.
"""

import re
from typing import Any

from ..constants import BLOCKED_OPERATORS, DANGEROUS_KEYWORDS
from ..models import ValidationResult

# Compiled word-boundary patterns for performance
COMPILED_KEYWORDS = [(re.compile(rf"\b{keyword}\b", re.IGNORECASE), keyword)
                     for keyword in DANGEROUS_KEYWORDS]


def validate_sql(query: str) -> ValidationResult:
    """Validate that a SQL statement is a single read-only query.

    Rejects, in order:
    - any dangerous keyword anywhere in the statement (DROP, DELETE, ...)
    - statements that do not start with SELECT or WITH
    - more than one semicolon, or one semicolon that is not the last character

    Args:
        query: SQL statement produced by the query generator

    Returns:
        ValidationResult with the rejection reason when invalid
    """
    if not isinstance(query, str) or not query.strip():
        return ValidationResult(False, "Query cannot be empty")

    sql_upper = query.upper().strip()

    for pattern, keyword in COMPILED_KEYWORDS:
        if pattern.search(sql_upper):
            return ValidationResult(False, f"Query contains forbidden operation: {keyword}")

    if not sql_upper.startswith("SELECT") and not sql_upper.startswith("WITH"):
        return ValidationResult(False, "Only SELECT queries are allowed")

    semicolon_count = query.count(";")
    if semicolon_count > 1 or (semicolon_count == 1 and not query.strip().endswith(";")):
        return ValidationResult(False, "Multiple statements or suspicious semicolons detected")

    return ValidationResult(True)


def validate_pipeline(pipeline: Any) -> ValidationResult:
    """Validate an aggregation pipeline stage by stage.

    Each stage must be a mapping with exactly one key, the key must be an
    operator (``$``-prefixed), and the operator must not be a write or
    arbitrary-code stage such as ``$out`` or ``$where``.

    Args:
        pipeline: Aggregation pipeline produced by the query generator

    Returns:
        ValidationResult with the rejection reason when invalid
    """
    if not isinstance(pipeline, list):
        return ValidationResult(False, "Mongo query must be an aggregation pipeline array")

    for stage in pipeline:
        if not isinstance(stage, dict) or len(stage) != 1:
            return ValidationResult(False, "Invalid aggregation stage")

        operator = next(iter(stage))

        if not isinstance(operator, str) or not operator.startswith("$"):
            return ValidationResult(False, "Invalid aggregation operator")

        if operator in BLOCKED_OPERATORS:
            return ValidationResult(False, f"Operator {operator} is not allowed")

    return ValidationResult(True)
