"""
Configuration Management
Loads settings from YAML files and environment variables, and builds the
value objects injected into the rate limiter, token issuer and dispatcher.
"""
import yaml
import os
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_SEND_INTERVAL_SECONDS = 120


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: str = "development"
    debug: bool = True

    # API Settings
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = ["http://localhost:3333"]

    # Storage
    database_url: str = "sqlite:///./phishsim.db"


class RateLimitConfig(BaseModel):
    """Minimum spacing between two recipient sends"""
    default_send_interval_seconds: int = Field(default=DEFAULT_SEND_INTERVAL_SECONDS, ge=1)


class TokenConfig(BaseModel):
    """Shared-secret settings for tokens exchanged with the dispatch engine"""
    secret: str = ""
    ttl_seconds: int = Field(default=300, ge=1)
    subject: str = "fyphish"
    accepted_subjects: Tuple[str, ...] = ("n8n", "fyphish")
    max_clock_skew_seconds: int = 300


class DispatchConfig(BaseModel):
    """Outbound batch webhook of the external email engine"""
    webhook_url: str = ""
    timeout_seconds: float = Field(default=30.0, gt=0)


class TrackingConfig(BaseModel):
    """Public URL used to build phishing and tracking-pixel links"""
    public_base_url: str = ""
    fallback_base_url: str = "http://localhost:3333"


class ConfigManager:
    """Manages loading and merging configuration from multiple sources"""

    def __init__(self, env: Optional[str] = None, config_dir: Optional[Path] = None):
        self.env = env or os.getenv("ENVIRONMENT", "development")
        self.config_dir = config_dir or Path(
            os.getenv("PHISHSIM_CONFIG_DIR", Path(__file__).parent.parent.parent.parent / "config")
        )
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration files in order of precedence"""
        default_path = self.config_dir / "default.yaml"
        if default_path.exists():
            self._config = self._load_yaml(default_path)

        env_path = self.config_dir / f"{self.env}.yaml"
        if env_path.exists():
            env_config = self._load_yaml(env_path)
            self._deep_merge(self._config, env_config)

        self._substitute_env_vars(self._config)

    def _load_yaml(self, path: Path) -> Dict:
        """Load YAML file"""
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}

    def _substitute_env_vars(self, config: Dict) -> None:
        """Replace ${VAR_NAME} with environment variable values (empty when unset)"""
        for key, value in config.items():
            if isinstance(value, dict):
                self._substitute_env_vars(value)
            elif isinstance(value, str) and value.startswith("${") and value.endswith("}"):
                env_var = value[2:-1]
                config[key] = os.getenv(env_var, "")

    def _deep_merge(self, base: Dict, override: Dict) -> None:
        """Recursively merge override into base"""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation
        Example: config.get("dispatch.timeout_seconds") -> 30
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def rate_limit_config(self) -> RateLimitConfig:
        raw = self.get("rate_limit.default_send_interval_seconds")
        return RateLimitConfig(default_send_interval_seconds=parse_send_interval(raw))

    def token_config(self) -> TokenConfig:
        subjects = self.get("security.accepted_subjects") or ["n8n", "fyphish"]
        return TokenConfig(
            secret=self.get("security.token_secret") or "",
            ttl_seconds=int(self.get("security.token_ttl_seconds", 300)),
            subject=self.get("security.outbound_subject", "fyphish"),
            accepted_subjects=tuple(subjects),
        )

    def dispatch_config(self) -> DispatchConfig:
        return DispatchConfig(
            webhook_url=self.get("dispatch.webhook_url") or "",
            timeout_seconds=float(self.get("dispatch.timeout_seconds", 30)),
        )

    def tracking_config(self) -> TrackingConfig:
        return TrackingConfig(
            public_base_url=self.get("tracking.public_base_url") or "",
            fallback_base_url=self.get("tracking.fallback_base_url") or "http://localhost:3333",
        )


def parse_send_interval(raw: Any) -> int:
    """
    Parse the configured per-recipient interval in seconds.

    Empty, non-integer or < 1 values fall back to 120 seconds.
    """
    if raw is None or raw == "":
        return DEFAULT_SEND_INTERVAL_SECONDS
    try:
        interval = int(raw)
    except (TypeError, ValueError):
        logger.warning(
            f"Invalid DEFAULT_EMAIL_SEND_INTERVAL value '{raw}', "
            f"using default {DEFAULT_SEND_INTERVAL_SECONDS} seconds"
        )
        return DEFAULT_SEND_INTERVAL_SECONDS
    if interval < 1:
        logger.warning(
            f"DEFAULT_EMAIL_SEND_INTERVAL too small ({interval}), "
            f"using default {DEFAULT_SEND_INTERVAL_SECONDS} seconds"
        )
        return DEFAULT_SEND_INTERVAL_SECONDS
    return interval


def validate_config_on_startup(config: ConfigManager, strict: bool = False) -> List[str]:
    """
    Check that the dispatch boundary is configured.

    Returns the list of problems found. Raises RuntimeError in strict mode.
    """
    problems = []
    if not config.token_config().secret:
        problems.append("JWT_SECRET is not set - dispatch and callbacks will be rejected")
    if not config.dispatch_config().webhook_url:
        problems.append("N8N_SEND_EMAIL is not set - campaign creation will fail at dispatch")

    for problem in problems:
        logger.warning(problem)

    if problems and strict:
        raise RuntimeError("; ".join(problems))
    return problems


@lru_cache()
def get_settings() -> Settings:
    return Settings()


@lru_cache()
def get_config_manager() -> ConfigManager:
    return ConfigManager()
