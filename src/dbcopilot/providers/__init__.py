"""Query generator providers for dbcopilot."""

from .base import BaseProvider, parse_generated_query, process_llm_response
from .openrouter import OpenRouterProvider

__all__ = [
    "BaseProvider",
    "OpenRouterProvider",
    "parse_generated_query",
    "process_llm_response",
]
