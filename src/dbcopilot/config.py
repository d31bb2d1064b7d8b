"""Runtime configuration from environment variables and command-line flags."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .constants import DEFAULT_BASE_URL, DEFAULT_MODEL, DEFAULT_STORAGE_DIRNAME

ENV_PREFIX = "DBCOPILOT_"

# flag -> Settings attribute
FLAG_OPTIONS = {
    "--encryption-secret": "encryption_secret",
    "--storage-dir": "storage_dir",
    "--redis-url": "redis_url",
    "--api-key": "api_key",
    "--model": "model",
    "--base-url": "base_url",
}


@dataclass
class Settings:
    """Server configuration.

    Every field can be set from ``DBCOPILOT_<FIELD>`` in the environment and
    overridden on the command line with ``--<field>``.
    """

    encryption_secret: Optional[str] = field(default=None, repr=False)
    storage_dir: Path = field(default_factory=lambda: Path.home() / DEFAULT_STORAGE_DIRNAME)
    redis_url: Optional[str] = None
    api_key: Optional[str] = field(default=None, repr=False)
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    test_mode: bool = False

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "Settings":
        """Load settings from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``

        Returns:
            Settings with defaults for unset variables
        """
        env = os.environ if environ is None else environ
        settings = cls()

        for attr in FLAG_OPTIONS.values():
            value = env.get(f"{ENV_PREFIX}{attr.upper()}")
            if value:
                settings.set(attr, value)

        return settings

    def set(self, attr: str, value: str) -> None:
        if attr == "storage_dir":
            self.storage_dir = Path(value).expanduser()
        else:
            setattr(self, attr, value)

    def apply_args(self, args: list[str]) -> "Settings":
        """Apply command-line overrides.

        Args:
            args: Arguments without the program name

        Returns:
            self, for chaining

        Raises:
            ValueError: On an unknown flag or a flag missing its value
        """
        args = list(args)
        i = 0
        while i < len(args):
            arg = args[i]
            if arg == "--test":
                self.test_mode = True
                i += 1
            elif arg in FLAG_OPTIONS:
                if i + 1 >= len(args):
                    raise ValueError(f"{arg} requires a value")
                self.set(FLAG_OPTIONS[arg], args[i + 1])
                i += 2
            else:
                raise ValueError(f"Unknown argument: {arg}")

        return self
