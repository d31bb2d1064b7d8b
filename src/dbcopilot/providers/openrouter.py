"""OpenRouter (OpenAI-compatible) query generator."""

import logging
from typing import Optional

import httpx
import openai
from openai import AsyncOpenAI

from ..constants import (
    DEFAULT_BASE_URL,
    DEFAULT_MODEL,
    DEFAULT_OUTPUT_TOKENS,
    DEFAULT_TEMPERATURE,
    LLM_CALL_TIMEOUT,
)
from ..errors import GenerationError, MissingConfig
from ..models import GeneratedQuery, UnifiedSchema
from ..prompts import build_user_prompt, get_system_prompt
from .base import BaseProvider, parse_generated_query

logger = logging.getLogger(__name__)


class OpenRouterProvider(BaseProvider):
    """Generates queries through any OpenAI-compatible chat completions API."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        client: Optional[AsyncOpenAI] = None,
    ):
        """Initialize provider.

        Args:
            api_key: API key for the endpoint
            model: Model name, e.g. "google/gemini-2.5-flash"
            base_url: OpenAI-compatible API base URL
            client: Preconfigured client (tests)
        """
        if client is None and not api_key:
            raise MissingConfig(
                "API key is not set\n"
                "  Hint: export DBCOPILOT_API_KEY or pass --api-key"
            )

        self.model = model
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            http_client=httpx.AsyncClient(timeout=LLM_CALL_TIMEOUT),
        )

    async def generate_query(self, question: str, schema: UnifiedSchema, schema_description: str) -> GeneratedQuery:
        messages = [
            {"role": "system", "content": get_system_prompt(schema.source)},
            {"role": "user", "content": build_user_prompt(schema_description, question, schema.source)},
        ]

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=DEFAULT_TEMPERATURE,
                max_tokens=DEFAULT_OUTPUT_TOKENS,
                response_format={"type": "json_object"},
            )
        except (openai.APITimeoutError, httpx.TimeoutException) as e:
            logger.error(f"Query generation timed out after {LLM_CALL_TIMEOUT} seconds")
            raise GenerationError(f"Request timeout after {LLM_CALL_TIMEOUT} seconds") from e
        except openai.OpenAIError as e:
            logger.error(f"Query generation API error: {e}")
            raise GenerationError(f"Query generation failed: {e}") from e

        if not response.choices:
            raise GenerationError("No response from the query generator")

        content = response.choices[0].message.content or ""
        logger.debug(f"Query generator raw response: {content[:500]}")

        generated = parse_generated_query(content, schema.source)
        logger.info(f"Generated {generated.type} query with {self.model}")
        return generated

    async def close(self) -> None:
        await self.client.close()
