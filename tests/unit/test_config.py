from pathlib import Path

import pytest

from dbcopilot.config import Settings
from dbcopilot.constants import DEFAULT_MODEL


def test_from_env_reads_prefixed_variables():
    settings = Settings.from_env({
        "DBCOPILOT_ENCRYPTION_SECRET": "secret",
        "DBCOPILOT_REDIS_URL": "redis://localhost:6379/0",
        "DBCOPILOT_STORAGE_DIR": "~/dbc",
        "ENCRYPTION_SECRET": "ignored",
    })

    assert settings.encryption_secret == "secret"
    assert settings.redis_url == "redis://localhost:6379/0"
    assert settings.storage_dir == Path("~/dbc").expanduser()
    assert settings.model == DEFAULT_MODEL
    assert not settings.test_mode


def test_apply_args_overrides_environment():
    settings = Settings.from_env({"DBCOPILOT_MODEL": "env/model"})

    settings.apply_args(["--model", "cli/model", "--api-key", "sk-test", "--test"])

    assert settings.model == "cli/model"
    assert settings.api_key == "sk-test"
    assert settings.test_mode


@pytest.mark.parametrize("args, message", [
    (["--verbose"], "Unknown argument"),
    (["--model"], "requires a value"),
])
def test_apply_args_rejects_bad_flags(args, message):
    with pytest.raises(ValueError, match=message):
        Settings().apply_args(args)


def test_secrets_are_not_in_repr():
    settings = Settings(encryption_secret="top-secret", api_key="sk-test")
    assert "top-secret" not in repr(settings)
    assert "sk-test" not in repr(settings)
