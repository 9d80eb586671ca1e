"""Application settings with Pydantic Settings validation.

Secrets (the GitHub token) are loaded from the environment or a .env file.
Non-sensitive configuration is loaded from config/main.yaml and config/*.yaml
files. All configs are merged and validated against JSON schemas, then applied
as defaults that never override explicitly provided or env-provided values.
"""

import json
from datetime import tzinfo
from pathlib import Path
from typing import Annotated, Any, Literal, cast

import pytz
import yaml
from jsonschema import ValidationError as JSONSchemaValidationError
from jsonschema import validate
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from activity_tracker.config.logging_config import get_logger
from activity_tracker.domain.aggregation_constants import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_MAX_ACTIVITIES,
    DEFAULT_SUMMARY_WINDOW_DAYS,
    PSEUDO_EVENT_COMMIT_REPO_LIMIT,
    PSEUDO_EVENT_ITEM_REPO_LIMIT,
    PSEUDO_EVENT_WINDOW_DAYS,
    RECENT_ACTIVITIES_LIMIT,
)

logger = cast(Any, get_logger(__name__))

CONFIG_DIR = Path("config")
SCHEMA_DIR = CONFIG_DIR / "schemas"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge into base (takes precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_schema(schema_name: str) -> dict[str, Any]:
    """Load JSON Schema from config/schemas/.

    Args:
        schema_name: Schema name without extension (e.g., "main")

    Returns:
        JSON Schema dictionary or empty dict if not found
    """
    schema_path = SCHEMA_DIR / f"{schema_name}.schema.json"
    if not schema_path.exists():
        return {}

    try:
        with open(schema_path, encoding="utf-8") as f:
            return cast(dict[str, Any], json.load(f))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("config_schema_load_failed", schema=schema_name, error=str(e))
        return {}


def validate_config_section(
    config: dict[str, Any], schema_name: str, file_path: str = ""
) -> None:
    """Validate config section against JSON Schema.

    Args:
        config: Configuration dictionary to validate
        schema_name: Name of schema to validate against
        file_path: Optional file path for error messages

    Raises:
        ValueError: If validation fails
    """
    schema = load_schema(schema_name)
    if not schema:
        return

    try:
        validate(instance=config, schema=schema)
        logger.debug("config_validation_succeeded", schema=schema_name)
    except JSONSchemaValidationError as e:
        error_msg = f"Config validation failed for {schema_name}"
        if file_path:
            error_msg += f" (file: {file_path})"
        error_msg += f": {e.message}"
        raise ValueError(error_msg) from e


def _load_yaml(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return loaded


def load_all_configs() -> dict[str, Any]:
    """Load and merge all YAML configs from config/ directory.

    Loading order (later overrides earlier):
    1. config/main.yaml
    2. All other config/*.yaml files (sorted alphabetically)

    Each file is validated against ``config/schemas/<stem>.schema.json`` when
    that schema exists.

    Returns:
        Merged configuration dictionary

    Raises:
        ValueError: If a file fails schema validation
    """
    merged_config: dict[str, Any] = {}
    main_path = CONFIG_DIR / "main.yaml"
    yaml_files: list[Path] = []

    if CONFIG_DIR.is_dir():
        yaml_files = sorted(f for f in CONFIG_DIR.glob("*.yaml") if f.name != "main.yaml")
        if main_path.exists():
            yaml_files.insert(0, main_path)

    for yaml_file in yaml_files:
        schema_name = yaml_file.stem
        try:
            file_config = _load_yaml(yaml_file)
        except (yaml.YAMLError, OSError) as e:
            logger.warning("config_file_load_failed", path=str(yaml_file), error=str(e))
            continue

        try:
            validate_config_section(file_config, schema_name, str(yaml_file))
        except ValueError as e:
            logger.error(
                "config_validation_failed",
                path=str(yaml_file),
                schema=schema_name,
                error=str(e),
            )
            raise

        merged_config = deep_merge(merged_config, file_config)
        logger.debug("config_file_loaded", path=str(yaml_file), schema=schema_name)

    logger.info("config_load_complete", file_count=len(yaml_files))
    return merged_config


class Settings(BaseSettings):
    """Application settings.

    Secrets are loaded from .env file.
    Non-sensitive config is loaded from config/*.yaml with fallback to defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === SECRETS (from .env) ===

    github_token: SecretStr | None = Field(
        default=None,
        description="GitHub personal access token (from .env, optional)",
    )

    # === NON-SENSITIVE CONFIG (from config/*.yaml or defaults) ===

    # Tracked identity and sources
    github_username: str | None = Field(
        default=None,
        description="Tracked login (defaults to the token owner)",
    )
    github_orgs: Annotated[list[str], NoDecode] = Field(
        default_factory=list, description="Organizations whose events are scanned"
    )
    tracked_repos: Annotated[list[str], NoDecode] = Field(
        default_factory=list, description="Extra repositories (owner/name) to scan"
    )
    days_back: int = Field(default=30, ge=1, description="History depth in days")

    # GitHub API client
    github_api_url: str = Field(
        default="https://api.github.com", description="REST API base URL"
    )
    per_page: int = Field(default=100, ge=1, le=100, description="Page size")
    max_pages: int = Field(default=3, ge=1, description="Pages fetched per feed")
    request_timeout_seconds: float = Field(
        default=30.0, gt=0, description="HTTP request timeout"
    )
    max_retries: int = Field(default=3, ge=0, description="Retries on transient errors")
    max_workers: int = Field(default=8, ge=1, description="Concurrent source fetches")

    # Aggregation
    max_activities: int = Field(
        default=DEFAULT_MAX_ACTIVITIES, ge=1, description="Activities kept after merge"
    )
    summary_window_days: int = Field(
        default=DEFAULT_SUMMARY_WINDOW_DAYS, ge=1, description="Summary window"
    )
    recent_activities_limit: int = Field(
        default=RECENT_ACTIVITIES_LIMIT, ge=0, description="Recent activities echoed"
    )

    # Pseudo-events
    synthesize_pseudo_events: bool = Field(
        default=True, description="Scan repositories for events missing from the feed"
    )
    pseudo_event_window_days: int = Field(
        default=PSEUDO_EVENT_WINDOW_DAYS, ge=1, description="Pseudo-event window"
    )
    pseudo_event_commit_repo_limit: int = Field(
        default=PSEUDO_EVENT_COMMIT_REPO_LIMIT,
        ge=0,
        description="Repositories scanned for commits",
    )
    pseudo_event_item_repo_limit: int = Field(
        default=PSEUDO_EVENT_ITEM_REPO_LIMIT,
        ge=0,
        description="Repositories scanned for pull requests and issues",
    )

    # Cache
    cache_backend: Literal["memory", "file", "sqlite"] = Field(
        default="file", description="Cache storage backend"
    )
    cache_dir: str = Field(default="data/cache", description="File cache directory")
    cache_db_path: str = Field(
        default="data/activity_cache.db", description="SQLite cache database path"
    )
    cache_ttl_seconds: int = Field(
        default=DEFAULT_CACHE_TTL_SECONDS, ge=0, description="Cache TTL (0 = no expiry)"
    )

    # Watch mode
    watch_interval_seconds: int = Field(
        default=300, ge=1, description="Polling interval in watch mode"
    )

    # Processing
    timezone: str = Field(default="UTC", description="Timezone for calendar days")

    # Observability
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("github_token", mode="before")
    @classmethod
    def _blank_token_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("github_orgs", "tracked_repos", mode="before")
    @classmethod
    def _split_comma_list(cls, value: Any) -> Any:
        """Accept ``"a,b"`` strings (env) as well as lists (YAML)."""
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("tracked_repos")
    @classmethod
    def _validate_repo_names(cls, value: list[str]) -> list[str]:
        for name in value:
            owner, _, repo = name.partition("/")
            if not owner or not repo or "/" in repo:
                raise ValueError(f"tracked repository must be 'owner/name', got {name!r}")
        return value

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.upper()

    def __init__(self, **data: Any):
        """Initialize settings with auto-loaded configs from all YAML files."""
        config = load_all_configs()

        super().__init__(**data)
        self._apply_yaml_defaults(config)

    def _apply_yaml_defaults(self, config: dict[str, Any]) -> None:
        """Apply YAML-sourced defaults without overriding env-provided values."""

        fields_from_env = set(self.model_fields_set)

        def _assign(field_name: str, value: Any) -> None:
            if value is None:
                return
            if field_name in fields_from_env:
                return

            object.__setattr__(self, field_name, value)
            self.model_fields_set.add(field_name)

        github_config = config.get("github") or {}
        _assign("github_username", github_config.get("username"))
        _assign("github_orgs", github_config.get("orgs"))
        _assign("tracked_repos", github_config.get("tracked_repos"))
        _assign("days_back", github_config.get("days_back"))
        _assign("github_api_url", github_config.get("api_url"))
        _assign("per_page", github_config.get("per_page"))
        _assign("max_pages", github_config.get("max_pages"))
        _assign("request_timeout_seconds", github_config.get("request_timeout_seconds"))
        _assign("max_retries", github_config.get("max_retries"))

        aggregation_config = config.get("aggregation") or {}
        _assign("max_workers", aggregation_config.get("max_workers"))
        _assign("max_activities", aggregation_config.get("max_activities"))
        _assign("summary_window_days", aggregation_config.get("summary_window_days"))
        _assign(
            "recent_activities_limit",
            aggregation_config.get("recent_activities_limit"),
        )

        pseudo_config = config.get("pseudo_events") or {}
        _assign("synthesize_pseudo_events", pseudo_config.get("enabled"))
        _assign("pseudo_event_window_days", pseudo_config.get("window_days"))
        _assign("pseudo_event_commit_repo_limit", pseudo_config.get("commit_repo_limit"))
        _assign("pseudo_event_item_repo_limit", pseudo_config.get("item_repo_limit"))

        cache_config = config.get("cache") or {}
        _assign("cache_backend", cache_config.get("backend"))
        _assign("cache_dir", cache_config.get("dir"))
        _assign("cache_db_path", cache_config.get("db_path"))
        _assign("cache_ttl_seconds", cache_config.get("ttl_seconds"))

        watch_config = config.get("watch") or {}
        _assign("watch_interval_seconds", watch_config.get("interval_seconds"))

        processing_config = config.get("processing") or {}
        _assign("timezone", processing_config.get("timezone"))

        logging_config = config.get("logging") or {}
        _assign("log_level", logging_config.get("level"))

    @property
    def tzinfo(self) -> tzinfo:
        """Timezone object for calendar computations."""
        return pytz.timezone(self.timezone)

    @property
    def github_token_value(self) -> str | None:
        """Plain token value for the HTTP client (None when unset)."""
        return self.github_token.get_secret_value() if self.github_token else None


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create global settings instance.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
