"""
devcrew Runtime Configuration

Settings come from ``DEVCREW_*`` environment variables. A ``.env`` file in
the working directory is loaded first when present.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


PROVIDERS = ("deepseek", "anthropic")

DEFAULT_MODELS = {
    "deepseek": "deepseek-chat",
    "anthropic": "claude-sonnet-4-20250514",
}

DEFAULT_BASE_URL = "https://api.deepseek.com"


@dataclass
class RuntimeConfig:
    """Runtime configuration"""

    # Completion API
    api_key: str
    provider: str = "deepseek"
    base_url: Optional[str] = DEFAULT_BASE_URL
    model: str = DEFAULT_MODELS["deepseek"]
    max_tokens: int = 4096
    temperature: float = 1.0
    http_timeout: int = 120  # seconds

    # Agents
    agents_dir: str = "agents"
    project_root: str = "workspace"
    coding_agent: str = "CodingAgent"
    session_ttl_minutes: int = 10
    sweep_interval_minutes: int = 5
    max_tool_iterations: int = 10

    # Persistence
    transcript_db_url: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "RuntimeConfig":
        """Load configuration from environment variables"""
        load_dotenv(env_file)

        provider = os.getenv("DEVCREW_PROVIDER", "deepseek").lower()
        if provider == "anthropic":
            api_key = os.getenv("DEVCREW_API_KEY") or os.getenv("ANTHROPIC_API_KEY")
        else:
            api_key = os.getenv("DEVCREW_API_KEY") or os.getenv("DEEPSEEK_API_KEY")
        if not api_key:
            raise ValueError(
                "DEVCREW_API_KEY (or the provider's own API key variable) environment variable is required"
            )

        default_base_url = DEFAULT_BASE_URL if provider == "deepseek" else None

        return cls(
            api_key=api_key,
            provider=provider,
            base_url=os.getenv("DEVCREW_BASE_URL", default_base_url),
            model=os.getenv("DEVCREW_MODEL", DEFAULT_MODELS.get(provider, DEFAULT_MODELS["deepseek"])),
            max_tokens=int(os.getenv("DEVCREW_MAX_TOKENS", "4096")),
            temperature=float(os.getenv("DEVCREW_TEMPERATURE", "1.0")),
            http_timeout=int(os.getenv("DEVCREW_HTTP_TIMEOUT", "120")),
            agents_dir=os.getenv("DEVCREW_AGENTS_DIR", "agents"),
            project_root=os.getenv("DEVCREW_PROJECT_ROOT", "workspace"),
            coding_agent=os.getenv("DEVCREW_CODING_AGENT", "CodingAgent"),
            session_ttl_minutes=int(os.getenv("DEVCREW_SESSION_TTL_MINUTES", "10")),
            sweep_interval_minutes=int(os.getenv("DEVCREW_SWEEP_INTERVAL_MINUTES", "5")),
            max_tool_iterations=int(os.getenv("DEVCREW_MAX_TOOL_ITERATIONS", "10")),
            transcript_db_url=os.getenv("DEVCREW_TRANSCRIPT_DB_URL") or None,
            log_level=os.getenv("DEVCREW_LOG_LEVEL", "INFO"),
            log_dir=os.getenv("DEVCREW_LOG_DIR") or None,
        )

    def validate(self) -> None:
        """Validate configuration on startup (fail fast if invalid)"""
        if not self.api_key:
            raise ValueError("api_key is required")

        if self.provider not in PROVIDERS:
            raise ValueError(f"provider must be one of {', '.join(PROVIDERS)}")

        if self.max_tokens < 1 or self.max_tokens > 100000:
            raise ValueError("max_tokens must be between 1 and 100000")

        if self.temperature < 0 or self.temperature > 2:
            raise ValueError("temperature must be between 0 and 2")

        if self.http_timeout < 1:
            raise ValueError("http_timeout must be at least 1 second")

        if self.session_ttl_minutes < 1:
            raise ValueError("session_ttl_minutes must be at least 1")

        if self.sweep_interval_minutes < 1:
            raise ValueError("sweep_interval_minutes must be at least 1")

        if self.max_tool_iterations < 1:
            raise ValueError("max_tool_iterations must be at least 1")
