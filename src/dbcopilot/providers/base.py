"""Base class and response helpers for query generator providers."""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from ..constants import SOURCE_MONGO, SOURCE_POSTGRES
from ..errors import GenerationError
from ..models import GeneratedQuery, UnifiedSchema

logger = logging.getLogger(__name__)

# ```json ... ``` wrappers some models add despite being told not to
CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)


def process_llm_response(response: str) -> str:
    """Strip whitespace and a surrounding markdown code fence."""
    text = (response or "").strip()
    match = CODE_FENCE.match(text)
    if match:
        text = match.group(1).strip()
    return text


def parse_generated_query(response: str, source: str) -> GeneratedQuery:
    """Parse a model response into a GeneratedQuery.

    Args:
        response: Raw model output
        source: Engine tag of the schema the query was generated for

    Returns:
        The candidate query (still unvalidated)

    Raises:
        GenerationError: If the response is not JSON or has the wrong shape
    """
    text = process_llm_response(response)
    if not text:
        raise GenerationError("No response from the query generator")

    try:
        parsed: Any = json.loads(text)
    except json.JSONDecodeError as e:
        raise GenerationError(f"Query generator returned invalid JSON: {e}") from e

    if not isinstance(parsed, dict) or not parsed.get("query"):
        raise GenerationError("Invalid response format: missing query")

    explanation = parsed.get("explanation") or "No explanation provided"

    if source == SOURCE_POSTGRES:
        if not isinstance(parsed["query"], str):
            raise GenerationError("Expected SQL query as string")
        return GeneratedQuery(type="sql", query=parsed["query"].strip(), explanation=explanation)

    if source == SOURCE_MONGO:
        if not isinstance(parsed["query"], list):
            raise GenerationError("Expected Mongo aggregation pipeline array")
        if not parsed.get("collection"):
            raise GenerationError("Missing collection name for Mongo query")
        return GeneratedQuery(
            type="mongo",
            query=parsed["query"],
            explanation=explanation,
            collection=parsed["collection"],
        )

    raise GenerationError(f"Unsupported schema source: {source}")


class BaseProvider(ABC):
    """Abstract query generator."""

    @abstractmethod
    async def generate_query(self, question: str, schema: UnifiedSchema, schema_description: str) -> GeneratedQuery:
        """Generate a candidate query for ``question``.

        Args:
            question: Natural-language question
            schema: Pruned schema (its source picks the engine)
            schema_description: Text description of ``schema``

        Returns:
            Candidate query, validated by the caller before execution

        Raises:
            GenerationError: If no usable query was produced
        """
        pass

    async def close(self) -> None:
        """Release the client resources held by the provider."""
        pass
