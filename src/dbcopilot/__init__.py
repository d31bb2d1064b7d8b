"""dbcopilot - Natural-language questions over PostgreSQL and MongoDB, read-only."""

from .constants import SERVER_VERSION

__version__ = SERVER_VERSION
