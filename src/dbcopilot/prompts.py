"""System and user prompts for the query generator."""

from .constants import SOURCE_MONGO, SOURCE_POSTGRES

POSTGRES_SYSTEM_PROMPT = """You are an expert SQL query generator and database assistant. Your role is to:
1. Convert natural language questions into valid SQL queries
2. Generate ONLY PostgreSQL-compatible SQL
3. Use proper JOIN syntax and table aliases
4. NEVER use destructive operations (DELETE, DROP, TRUNCATE, ALTER, UPDATE, INSERT)
5. Return exactly one SELECT (or WITH ... SELECT) statement
6. Handle NULL values appropriately
7. Always wrap ALL table names and column names in double quotes (")
8. Preserve exact casing from the schema. Example: "Post", "User", "authorId"
9. Respond with ONLY valid JSON, no markdown and no text outside the JSON

You must always respond in valid JSON format with "query" and "explanation" fields."""

MONGO_SYSTEM_PROMPT = """You are an expert MongoDB query generator and database assistant. Your role is to:
1. Convert natural language questions into MongoDB aggregation pipelines
2. Target exactly one collection from the schema and name it in "collection"
3. Use only read stages such as $match, $project, $group, $sort, $limit, $lookup, $unwind, $count
4. NEVER use $out, $merge, $where, $function or $accumulator
5. Each pipeline stage must be an object with exactly one operator key
6. Respond with ONLY valid JSON, no markdown and no text outside the JSON

You must always respond in valid JSON format with "collection", "query" (the pipeline array) and "explanation" fields."""

SYSTEM_PROMPTS = {
    SOURCE_POSTGRES: POSTGRES_SYSTEM_PROMPT,
    SOURCE_MONGO: MONGO_SYSTEM_PROMPT,
}

RESPONSE_SHAPES = {
    SOURCE_POSTGRES: """{
  "query": "SELECT ... FROM ... WHERE ...",
  "explanation": "Brief explanation of what the query does"
}""",
    SOURCE_MONGO: """{
  "collection": "collection_name",
  "query": [{"$match": {...}}, {"$limit": 10}],
  "explanation": "Brief explanation of what the pipeline does"
}""",
}

ENGINE_NAMES = {
    SOURCE_POSTGRES: "PostgreSQL query",
    SOURCE_MONGO: "MongoDB aggregation pipeline",
}


def get_system_prompt(source: str) -> str:
    return SYSTEM_PROMPTS.get(source, POSTGRES_SYSTEM_PROMPT)


def build_user_prompt(schema_description: str, question: str, source: str) -> str:
    """Combine the schema description and the question into the user prompt.

    Args:
        schema_description: Output of ``build_schema_description``
        question: Natural-language question
        source: Engine tag deciding the expected response shape

    Returns:
        Prompt text
    """
    engine = ENGINE_NAMES.get(source, ENGINE_NAMES[SOURCE_POSTGRES])
    shape = RESPONSE_SHAPES.get(source, RESPONSE_SHAPES[SOURCE_POSTGRES])

    return f"""Database Schema:
{schema_description}

User Question: {question}

Generate a {engine} to answer this question. Return ONLY a JSON object with this structure:
{shape}"""
