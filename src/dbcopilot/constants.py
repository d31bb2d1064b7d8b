"""Constants and static configuration for dbcopilot."""

# Application constants
SERVER_NAME = "dbcopilot"
SERVER_VERSION = "1.0.0"
EXIT_SUCCESS = 0
EXIT_FAILURE = 1

# Supported engines and credential modes
SOURCE_POSTGRES = "postgres"
SOURCE_MONGO = "mongo"
SUPPORTED_SOURCES = [SOURCE_POSTGRES, SOURCE_MONGO]
CREDENTIAL_MODES = ["url", "parameters"]
CREDENTIAL_MODE_ALIASES = {"parts": "parameters", "params": "parameters"}

# TLS markers looked up in url-mode connection strings
POSTGRES_SSL_MARKER = "sslmode=require"
MONGO_TLS_MARKER = "tls=true"

# Native pool settings
POOL_MAX_CONNECTIONS = 10
POOL_CONNECT_TIMEOUT = 10.0  # seconds
POOL_IDLE_TIMEOUT = 30.0  # seconds
STATEMENT_TIMEOUT = 30.0  # seconds, applied per Postgres session

# Introspection
POSTGRES_SCHEMA = "public"
MONGO_SAMPLE_SIZE = 50  # documents sampled per collection

# Cache keys and TTLs
SCHEMA_CACHE_PREFIX = "db_schema:"
SCHEMA_CACHE_TTL = 60 * 60  # 1 hour
CREDENTIAL_CACHE_PREFIX = "db_credentials:"
CREDENTIAL_CACHE_TTL = 10 * 60  # 10 minutes between test and save

# Schema pruning
PRUNE_THRESHOLD = 5  # schemas with this many tables or fewer are not pruned
MIN_SCORE = 50
MAX_PRIMARY_TABLES = 3
FK_EXPANSION_SCORE = 90

SCORE_TABLE_NAME = 80
SCORE_SINGULAR_PLURAL = 60
SCORE_EMAIL_COLUMN = 70
SCORE_NAME_COLUMN = 40
SCORE_ID_COLUMN = 10
SCORE_WORD_IN_TABLE = 30
SCORE_WORD_IN_COLUMN = 15
SCORE_SEMANTIC_HINT = 25

STOP_WORDS = frozenset([
    "can",
    "you",
    "tell",
    "me",
    "the",
    "of",
    "is",
    "whose",
    "a",
    "an",
    "to",
    "for",
    "with",
    "show",
    "give",
    "get",
    "find",
    "what",
    "if",
    "all",
    "any",
    "and",
    "or",
])

SEMANTIC_HINTS = {
    "user": ["user", "users", "account", "profile", "member", "customer"],
    "order": ["order", "orders", "purchase", "transaction"],
    "product": ["product", "item"],
    "payment": ["payment", "billing"],
}

# Query validation
DANGEROUS_KEYWORDS = [
    "DROP",
    "DELETE",
    "TRUNCATE",
    "ALTER",
    "CREATE",
    "INSERT",
    "UPDATE",
    "GRANT",
    "REVOKE",
    "EXECUTE",
    "EXEC",
    "CROSS",
]

BLOCKED_OPERATORS = frozenset([
    "$where",
    "$function",
    "$accumulator",
    "$merge",
    "$out",
])

# Caller-facing execution failures (driver errors are only logged)
SQL_EXECUTION_ERROR = "Error executing SQL"
MONGO_EXECUTION_ERROR = "Error executing Mongo query"

# Query generation (OpenAI-compatible endpoint)
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "google/gemini-2.5-flash"
DEFAULT_TEMPERATURE = 0.0
LLM_CALL_TIMEOUT = 120.0  # seconds
DEFAULT_OUTPUT_TOKENS = 2_000

# Storage
DEFAULT_STORAGE_DIRNAME = ".dbcopilot"
CATALOG_FILENAME = "catalog.json"
