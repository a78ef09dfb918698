"""Typed configuration for the catalog mirror.

Settings are resolved in order: model defaults, then an optional YAML
file, then environment variables. A ``.env`` file can be loaded first so
its values take part in the environment step.

Example YAML (mirror.yaml):

    api:
      base_url: https://api.bgm.tv
      access_token: ${BANGUMI_ACCESS_TOKEN}
    rate_limit:
      default_qps: 10
      character_qps: 1
    cooldown:
      monthly_min: 30
      monthly_max: 90
    notify:
      webhook_url: https://open.feishu.cn/open-apis/bot/v2/hook/xxxx
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from catalog_mirror.lib.env import env_overrides, expand_options
from catalog_mirror.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "ApiConfig",
    "RateLimitConfig",
    "SyncConfig",
    "CooldownConfig",
    "StateConfig",
    "CircuitBreakerConfig",
    "NotifyConfig",
    "MirrorConfig",
    "load_config",
    "ENV_VARS",
]

ENV_VARS = {
    "BANGUMI_API_URL": ("api", "base_url"),
    "BANGUMI_ACCESS_TOKEN": ("api", "access_token"),
    "BANGUMI_USER_AGENT": ("api", "user_agent"),
    "BANGUMI_API_TIMEOUT": ("api", "timeout_ms"),
    "BANGUMI_MAX_RETRIES": ("api", "max_retries"),
    "BANGUMI_DEFAULT_QPS": ("rate_limit", "default_qps"),
    "BANGUMI_CHARACTER_QPS": ("rate_limit", "character_qps"),
    "BANGUMI_BATCH_SIZE": ("sync", "batch_size"),
    "MIRROR_DATA_DIR": ("sync", "data_dir"),
    "COOLDOWN_DAILY": ("cooldown", "daily"),
    "COOLDOWN_BIWEEKLY": ("cooldown", "biweekly"),
    "COOLDOWN_MONTHLY": ("cooldown", "monthly"),
    "COOLDOWN_MONTHLY_MIN": ("cooldown", "monthly_min"),
    "COOLDOWN_MONTHLY_MAX": ("cooldown", "monthly_max"),
    "MIRROR_STATE_DIR": ("state", "state_dir"),
    "MIRROR_NOTIFY_WEBHOOK": ("notify", "webhook_url"),
    "MIRROR_NOTIFY_CHANNEL": ("notify", "channel"),
}


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ApiConfig(_Section):
    base_url: str = "https://api.bgm.tv"
    access_token: Optional[str] = None
    user_agent: Optional[str] = None
    timeout_ms: int = 15000
    max_retries: int = 3

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return value.rstrip("/")

    @field_validator("timeout_ms")
    @classmethod
    def _validate_timeout(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("timeout_ms must be positive")
        return value

    @field_validator("max_retries")
    @classmethod
    def _validate_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("max_retries must not be negative")
        return value

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


class RateLimitConfig(_Section):
    default_qps: float = 10.0
    character_qps: float = 1.0

    @field_validator("default_qps", "character_qps")
    @classmethod
    def _validate_qps(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("QPS must be positive")
        return value


class SyncConfig(_Section):
    batch_size: int = 50
    subject_type: int = 2
    incremental_buffer: int = 50
    data_dir: str = "./data"

    @field_validator("batch_size")
    @classmethod
    def _validate_batch_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("batch_size must be a positive integer")
        return value

    @field_validator("incremental_buffer")
    @classmethod
    def _validate_buffer(cls, value: int) -> int:
        if value < 0:
            raise ValueError("incremental_buffer must not be negative")
        return value


class CooldownConfig(_Section):
    """Refresh cooldowns in days."""

    daily: int = 3
    biweekly: int = 14
    monthly: int = 60
    monthly_min: int = 30
    monthly_max: int = 90

    @field_validator("daily", "biweekly", "monthly", "monthly_min", "monthly_max")
    @classmethod
    def _validate_days(cls, value: int) -> int:
        if value < 0:
            raise ValueError("cooldown days must not be negative")
        return value

    @model_validator(mode="after")
    def _validate_bounds(self) -> "CooldownConfig":
        if self.monthly_min > self.monthly_max:
            raise ValueError(
                f"monthly_min ({self.monthly_min}) must not exceed monthly_max ({self.monthly_max})"
            )
        return self


class StateConfig(_Section):
    state_dir: str = ".state"
    key_prefix: str = "bangumi:"
    rotation_key: str = "monthly_rotation:current_month"
    checkpoint_key: str = "full_sync:offset"
    checkpoint_ttl_days: int = 14

    @property
    def rotation_state_key(self) -> str:
        return f"{self.key_prefix}{self.rotation_key}"

    @property
    def checkpoint_state_key(self) -> str:
        return f"{self.key_prefix}{self.checkpoint_key}"

    @property
    def checkpoint_ttl_seconds(self) -> int:
        return self.checkpoint_ttl_days * 24 * 60 * 60


class CircuitBreakerConfig(_Section):
    failure_threshold: int = 3
    backoff_seconds: float = 30.0

    @field_validator("failure_threshold")
    @classmethod
    def _validate_threshold(cls, value: int) -> int:
        if value < 1:
            raise ValueError("failure_threshold must be at least 1")
        return value


class NotifyConfig(_Section):
    webhook_url: Optional[str] = None
    channel: str = "sync-alerts"
    timeout_seconds: float = 5.0


class MirrorConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    api: ApiConfig = Field(default_factory=ApiConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    cooldown: CooldownConfig = Field(default_factory=CooldownConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    notify: NotifyConfig = Field(default_factory=NotifyConfig)

    def to_display_dict(self) -> Dict[str, Any]:
        """Configuration as a dict with secrets masked."""
        data = self.model_dump()
        token = data["api"].get("access_token")
        if token:
            data["api"]["access_token"] = f"{token[:4]}****" if len(token) > 8 else "****"
        return data


def _merge(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {path}",
            field="config",
            value=str(path),
        )

    with path.open(encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax: {e}", field="config", value=str(path))

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            "Configuration root must be a mapping",
            field="config",
            value=str(path),
        )
    return expand_options(data)


def load_config(
    path: Optional[Union[str, Path]] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> MirrorConfig:
    """Resolve configuration from defaults, YAML and environment.

    Raises:
        ConfigurationError: If the file is missing or malformed, or a
            value fails validation
    """
    raw: Dict[str, Any] = {}
    if path is not None:
        raw = _read_yaml(Path(path))
        logger.debug("Loaded configuration from %s", path)

    raw = _merge(raw, env_overrides(ENV_VARS, environ))

    try:
        return MirrorConfig.model_validate(raw)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ConfigurationError(
            f"Invalid configuration: {first['msg']}",
            field=location or None,
            value=first.get("input"),
            suggestion="Check the YAML file and BANGUMI_*/COOLDOWN_*/MIRROR_* environment variables.",
        ) from e
