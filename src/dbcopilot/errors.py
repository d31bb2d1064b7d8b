"""Exception taxonomy for dbcopilot.

Adapters and the connection registry raise these; the server boundary
catches ``DbCopilotError`` and turns it into a failure envelope.
"""

import builtins


class DbCopilotError(Exception):
    """Base class for every error raised by dbcopilot."""


class UnsupportedSource(DbCopilotError):
    """No adapter is registered for the requested database source."""


class UnsupportedMode(DbCopilotError):
    """Credential mode is not recognised for this database source."""


class AlreadyConnected(DbCopilotError):
    """A connection for this database id is already registered."""


class MissingConfig(DbCopilotError):
    """Required identifier, credential or saved configuration is absent."""


class NoActiveConnection(DbCopilotError):
    """No connection pool is registered for the requested database."""


class ConnectionError(DbCopilotError, builtins.ConnectionError):
    """Network or credential failure while talking to a database.

    Messages are fixed strings; the underlying driver error is chained
    with ``raise ... from`` and logged, never echoed to the caller.
    """


class DecryptionError(DbCopilotError):
    """Stored credential could not be decrypted (wrong key or tampered)."""


class ValidationRejected(DbCopilotError):
    """Generated query failed the read-only safety validation."""


class ExecutionError(DbCopilotError):
    """Query failed at runtime."""


class GenerationError(DbCopilotError):
    """Query generator returned no usable query."""
