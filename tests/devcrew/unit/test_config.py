"""
Unit tests for RuntimeConfig
"""

import pytest

from devcrew.config import DEFAULT_BASE_URL, RuntimeConfig


@pytest.fixture
def env(monkeypatch, tmp_path):
    """Clean environment plus an empty .env file"""
    for name in (
        "DEVCREW_API_KEY", "DEEPSEEK_API_KEY", "ANTHROPIC_API_KEY", "DEVCREW_PROVIDER",
        "DEVCREW_BASE_URL", "DEVCREW_MODEL", "DEVCREW_MAX_TOKENS", "DEVCREW_TRANSCRIPT_DB_URL",
        "DEVCREW_LOG_DIR", "DEVCREW_MAX_TOOL_ITERATIONS", "DEVCREW_AGENTS_DIR",
    ):
        # setenv first so values loaded from .env files are removed on undo
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    env_file = tmp_path / ".env"
    env_file.write_text("", encoding="utf-8")
    return str(env_file)


def test_from_env_defaults_to_deepseek(env, monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-deepseek")

    config = RuntimeConfig.from_env(env)

    assert config.provider == "deepseek"
    assert config.api_key == "sk-deepseek"
    assert config.base_url == DEFAULT_BASE_URL
    assert config.model == "deepseek-chat"
    assert config.transcript_db_url is None
    assert config.log_dir is None
    config.validate()


def test_from_env_anthropic(env, monkeypatch):
    monkeypatch.setenv("DEVCREW_PROVIDER", "Anthropic")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
    monkeypatch.setenv("DEVCREW_MAX_TOOL_ITERATIONS", "25")

    config = RuntimeConfig.from_env(env)

    assert config.provider == "anthropic"
    assert config.api_key == "sk-ant"
    assert config.base_url is None
    assert config.max_tool_iterations == 25


def test_devcrew_api_key_takes_precedence(env, monkeypatch):
    monkeypatch.setenv("DEVCREW_API_KEY", "sk-devcrew")
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-deepseek")

    assert RuntimeConfig.from_env(env).api_key == "sk-devcrew"


def test_env_file_is_loaded(env, monkeypatch, tmp_path):
    env_file = tmp_path / "custom.env"
    env_file.write_text("DEVCREW_API_KEY=from-file\nDEVCREW_AGENTS_DIR=my-agents\n", encoding="utf-8")

    config = RuntimeConfig.from_env(str(env_file))

    assert config.api_key == "from-file"
    assert config.agents_dir == "my-agents"


def test_missing_api_key(env):
    with pytest.raises(ValueError, match="DEVCREW_API_KEY"):
        RuntimeConfig.from_env(env)


@pytest.mark.parametrize(
    "overrides",
    [
        {"api_key": ""},
        {"provider": "openai"},
        {"max_tokens": 0},
        {"temperature": 2.5},
        {"http_timeout": 0},
        {"session_ttl_minutes": 0},
        {"sweep_interval_minutes": 0},
        {"max_tool_iterations": 0},
    ],
)
def test_validate_rejects_bad_values(overrides):
    config = RuntimeConfig(api_key="sk-test")
    for key, value in overrides.items():
        setattr(config, key, value)

    with pytest.raises(ValueError):
        config.validate()
