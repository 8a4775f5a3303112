"""Configuration management for tenx."""

from pathlib import Path
from typing import Literal

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

# tenx.logging depends on this module, so bind through structlog directly.
log = structlog.get_logger(__name__)

ModelTier = Literal["superfast", "fast", "smart"]
MODEL_TIERS: tuple[str, ...] = ("superfast", "fast", "smart")

# Paths
CONFIG_DIR = Path("~/.config/10x").expanduser()
DEFAULT_CONFIG_PATH = CONFIG_DIR / "config.yaml"
DEFAULT_DB_PATH = CONFIG_DIR / "sessions.db"
DEFAULT_SETTINGS_PATH = CONFIG_DIR / "settings.json"
LOCAL_CONFIG_FILENAME = "config.yaml"


class ModelsConfig(BaseModel):
    """Tier routing configuration."""

    tiers: dict[str, str] = Field(
        default_factory=lambda: {
            "superfast": "openai/gpt-oss-safeguard-20b",
            "fast": "moonshotai/kimi-k2-0905",
            "smart": "anthropic/claude-opus-4.5",
        }
    )
    # Groq serves the speed tiers; the smart tier is left to upstream routing.
    providers: dict[str, str] = Field(
        default_factory=lambda: {
            "superfast": "groq",
            "fast": "groq",
        }
    )
    vision_model: str = "google/gemini-2.0-flash-001"
    default_tier: ModelTier = "smart"


class TransportConfig(BaseModel):
    """OpenRouter transport configuration."""

    base_url: str = "https://openrouter.ai/api/v1"
    api_key: str = ""
    site_url: str = "https://10x.dev"
    site_name: str = "10x"
    max_retries: int = 3
    retry_delay_ms: int = 1000
    timeout: float = 120.0


class ContextConfig(BaseModel):
    """Context window and compaction configuration."""

    chars_per_token: int = 4
    compaction_threshold: float = 0.8
    keep_recent: int = 4
    min_messages: int = 4
    windows: dict[str, int] = Field(
        default_factory=lambda: {
            "superfast": 128000,
            "fast": 256000,
            "smart": 200000,
        }
    )


class SessionConfig(BaseModel):
    """Session storage configuration."""

    path: str = str(DEFAULT_DB_PATH)


class PermissionsConfig(BaseModel):
    """Permission settings configuration."""

    settings_path: str = str(DEFAULT_SETTINGS_PATH)
    ask_fallback: Literal["allow", "deny"] = "deny"


class ToolsConfig(BaseModel):
    """Tools configuration."""

    bash_timeout: float = 120.0
    max_output_chars: int = 30000
    read_max_lines: int = 2000


class AuthConfig(BaseModel):
    """Hosted API authentication configuration."""

    api_url: str = "http://localhost:3000"
    token: str = ""
    trust_on_network_error: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"
    file: str | None = None


class Config(BaseSettings):
    """Main configuration for tenx."""

    models: ModelsConfig = Field(default_factory=ModelsConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    permissions: PermissionsConfig = Field(default_factory=PermissionsConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="TENX_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment beats the YAML values passed as init kwargs.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError("top level must be a mapping")
            return cls(**data)
        except (OSError, yaml.YAMLError, ValidationError, ValueError) as e:
            log.warning("Ignoring unreadable config file", path=str(config_path), error=str(e))
            return cls()

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Config":
        """Load configuration; environment variables override YAML values."""
        return cls.from_yaml(path)

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def model_for_tier(self, tier: str) -> str:
        """Model id for a tier, falling back to the smart tier model."""
        return self.models.tiers.get(tier) or self.models.tiers.get("smart", "")

    def context_window(self, tier: str) -> int:
        """Context window size in tokens for a tier."""
        windows = self.context.windows
        return int(windows.get(tier) or windows.get("smart") or 200000)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
