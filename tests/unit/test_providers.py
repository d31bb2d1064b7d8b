import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from dbcopilot.errors import GenerationError, MissingConfig
from dbcopilot.prompts import MONGO_SYSTEM_PROMPT, build_user_prompt, get_system_prompt
from dbcopilot.providers import OpenRouterProvider, parse_generated_query, process_llm_response
from dbcopilot.models import UnifiedSchema
from fakes import make_schema


def test_process_llm_response_strips_code_fence():
    assert process_llm_response('```json\n{"query": "SELECT 1"}\n```') == '{"query": "SELECT 1"}'
    assert process_llm_response('  {"query": "SELECT 1"}  ') == '{"query": "SELECT 1"}'


def test_parse_sql_response():
    generated = parse_generated_query('{"query": " SELECT * FROM users ", "explanation": "All users"}', "postgres")

    assert generated.type == "sql"
    assert generated.query == "SELECT * FROM users"
    assert generated.explanation == "All users"
    assert generated.collection is None


def test_parse_mongo_response():
    response = json.dumps({"collection": "users", "query": [{"$match": {"active": True}}]})

    generated = parse_generated_query(response, "mongo")

    assert generated.type == "mongo"
    assert generated.collection == "users"
    assert generated.query == [{"$match": {"active": True}}]
    assert generated.explanation == "No explanation provided"
    assert generated.to_payload() == {"query": [{"$match": {"active": True}}], "collection": "users"}


@pytest.mark.parametrize("response, source", [
    ("", "postgres"),
    ("SELECT * FROM users", "postgres"),
    ('{"explanation": "nothing"}', "postgres"),
    ('{"query": ["SELECT 1"]}', "postgres"),
    ('{"query": "db.users.find()", "collection": "users"}', "mongo"),
    ('{"query": [{"$match": {}}]}', "mongo"),
])
def test_parse_rejects_unusable_responses(response, source):
    with pytest.raises(GenerationError):
        parse_generated_query(response, source)


def test_prompts_follow_source():
    assert get_system_prompt("mongo") is MONGO_SYSTEM_PROMPT

    prompt = build_user_prompt("Entity: users", "how many users?", "mongo")
    assert "Entity: users" in prompt
    assert "how many users?" in prompt
    assert "MongoDB aggregation pipeline" in prompt


class FakeCompletions:
    def __init__(self, content=None, error=None, choices=True):
        self.content = content
        self.error = error
        self.choices = choices
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error:
            raise self.error
        if not self.choices:
            return SimpleNamespace(choices=[])
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))])


def provider_with(completions: FakeCompletions) -> OpenRouterProvider:
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenRouterProvider(api_key=None, model="test/model", client=client)


@pytest.mark.asyncio
async def test_generate_query_sends_schema_and_parses_response():
    completions = FakeCompletions('{"query": "SELECT * FROM users", "explanation": "All users"}')
    provider = provider_with(completions)

    generated = await provider.generate_query("show all users", make_schema(), "Entity: users")

    assert generated.query == "SELECT * FROM users"
    request = completions.requests[0]
    assert request["model"] == "test/model"
    assert request["response_format"] == {"type": "json_object"}
    assert "Entity: users" in request["messages"][1]["content"]
    assert "show all users" in request["messages"][1]["content"]


@pytest.mark.asyncio
async def test_generate_query_uses_mongo_prompt():
    completions = FakeCompletions('{"collection": "users", "query": [{"$limit": 5}]}')
    provider = provider_with(completions)

    generated = await provider.generate_query("five users", UnifiedSchema(source="mongo"), "")

    assert generated.collection == "users"
    assert completions.requests[0]["messages"][0]["content"] == MONGO_SYSTEM_PROMPT


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    openai.APITimeoutError(request=httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")),
    httpx.ReadTimeout("read timed out"),
    openai.OpenAIError("rate limited"),
])
async def test_generate_query_wraps_client_errors(error):
    provider = provider_with(FakeCompletions(error=error))

    with pytest.raises(GenerationError) as exc_info:
        await provider.generate_query("show all users", make_schema(), "")
    assert exc_info.value.__cause__ is error


@pytest.mark.asyncio
async def test_generate_query_without_choices():
    provider = provider_with(FakeCompletions(choices=False))

    with pytest.raises(GenerationError, match="No response"):
        await provider.generate_query("show all users", make_schema(), "")


def test_provider_requires_api_key():
    with pytest.raises(MissingConfig):
        OpenRouterProvider(api_key=None)
