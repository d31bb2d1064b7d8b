"""Relevance-based schema pruning.

Bounds the schema handed to the query generator to the few tables a
question is about. This is keyword scoring, not semantic search.
"""

import logging
import re

from ..constants import (
    FK_EXPANSION_SCORE,
    MAX_PRIMARY_TABLES,
    MIN_SCORE,
    PRUNE_THRESHOLD,
    SCORE_EMAIL_COLUMN,
    SCORE_ID_COLUMN,
    SCORE_NAME_COLUMN,
    SCORE_SEMANTIC_HINT,
    SCORE_SINGULAR_PLURAL,
    SCORE_TABLE_NAME,
    SCORE_WORD_IN_COLUMN,
    SCORE_WORD_IN_TABLE,
    SEMANTIC_HINTS,
    STOP_WORDS,
)
from ..models import UnifiedSchema

logger = logging.getLogger(__name__)

NON_ALPHA = re.compile(r"[^a-z]")


def tokenize(question: str) -> list[str]:
    """Lowercase, strip non-letters, drop short tokens and stop words."""
    words = (NON_ALPHA.sub("", word) for word in question.lower().split())
    return [word for word in words if len(word) > 2 and word not in STOP_WORDS]


def score_tables(schema: UnifiedSchema, question: str) -> dict[str, int]:
    """Score every table of ``schema`` against ``question``.

    Args:
        schema: Full unified schema
        question: Natural-language question

    Returns:
        Mapping of table name to score, only for tables scoring above zero,
        in schema order
    """
    message_lower = question.lower()
    words = tokenize(question)
    scores: dict[str, int] = {}

    for table_name, table in schema.tables.items():
        score = 0
        table_lower = table_name.lower()
        column_names = [column.name.lower() for column in table.columns]

        if table_lower in message_lower:
            score += SCORE_TABLE_NAME

        # Naive singular/plural: one trailing "s"
        singular = table_lower[:-1] if table_lower.endswith("s") else table_lower
        plural = singular if singular.endswith("s") else f"{singular}s"
        if singular in message_lower or plural in message_lower:
            score += SCORE_SINGULAR_PLURAL

        if "email" in message_lower and any("email" in name for name in column_names):
            score += SCORE_EMAIL_COLUMN

        if "name" in message_lower and any("name" in name for name in column_names):
            score += SCORE_NAME_COLUMN

        if "id" in message_lower and "id" in column_names:
            score += SCORE_ID_COLUMN

        for word in words:
            if word in table_lower:
                score += SCORE_WORD_IN_TABLE
            for name in column_names:
                if word in name:
                    score += SCORE_WORD_IN_COLUMN

        for key, hints in SEMANTIC_HINTS.items():
            if key in table_lower:
                for hint in hints:
                    if hint in message_lower:
                        score += SCORE_SEMANTIC_HINT

        if score > 0:
            scores[table_name] = score

    return scores


def prune_schema(schema: UnifiedSchema, question: str) -> UnifiedSchema:
    """Select the tables relevant to ``question``.

    Schemas with at most PRUNE_THRESHOLD tables are returned unchanged.
    Otherwise the top MAX_PRIMARY_TABLES tables scoring at least MIN_SCORE
    are kept; those scoring at least FK_EXPANSION_SCORE also pull in the
    tables their own foreign keys reference (one hop, outward only).
    When nothing qualifies the result has no tables at all: the full schema
    is never used as a fallback.

    Args:
        schema: Full unified schema
        question: Natural-language question

    Returns:
        Pruned schema with the selected tables' definitions unmodified
    """
    if len(schema.tables) <= PRUNE_THRESHOLD:
        return schema

    empty = UnifiedSchema(source=schema.source)
    scores = score_tables(schema, question)
    if not scores:
        logger.info("No table matched the question, returning empty schema")
        return empty

    # sorted() is stable, so ties keep schema order
    ranked = sorted(
        ((name, score) for name, score in scores.items() if score >= MIN_SCORE),
        key=lambda item: item[1],
        reverse=True,
    )
    primary_tables = [name for name, _ in ranked[:MAX_PRIMARY_TABLES]]
    if not primary_tables:
        logger.info(f"No table reached the minimum score {MIN_SCORE}, returning empty schema")
        return empty

    selected = list(primary_tables)
    for table_name in primary_tables:
        if scores[table_name] < FK_EXPANSION_SCORE:
            continue
        for column in schema.tables[table_name].columns:
            for fk in column.foreign_keys:
                if fk.references_table not in selected:
                    selected.append(fk.references_table)

    pruned = UnifiedSchema(source=schema.source)
    for table_name in selected:
        if table_name in schema.tables:
            pruned.tables[table_name] = schema.tables[table_name]

    logger.debug(f"Pruned schema to {list(pruned.tables)} (scores: {scores})")
    return pruned
