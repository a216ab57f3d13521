#!/usr/bin/env python3
"""
Configuration manager for the maintenance agent
Loads the YAML config file, merges secrets and builds the immutable AgentConfig value
"""
import os
import re
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
import validators
from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "brewkeeper" / "config.yaml"
DEFAULT_LOG_FILE = Path.home() / "Library" / "Logs" / "Brewkeeper.log"
DEFAULT_STATE_DIR = Path.home() / ".local" / "state" / "brewkeeper"
CONFIG_ENV_VAR = "BREWKEEPER_CONFIG"

SUPPORTED_PROVIDERS = ("telegram", "email", "imessage")
CHANNEL_KINDS = ("summary", "detailed")

PHONE_NUMBER_PATTERN = re.compile(r"^\+[0-9]{10,15}$")


class ConfigError(Exception):
    """Raised when the configuration file cannot be used"""


# =============================================================================
# CONFIGURATION MODELS
# =============================================================================

class ConditionsConfig(BaseModel):
    """Environmental gates for a maintenance run"""
    model_config = ConfigDict(frozen=True)

    required_network: str = ""              # empty means any network
    allowed_networks: Tuple[str, ...] = ()
    network_interface: str = "en0"
    require_ac_power: bool = True
    min_battery_percent: Optional[int] = Field(default=None, ge=0, le=100)


class RetryConfig(BaseModel):
    """Bounded precondition retry"""
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    delay_seconds: float = Field(default=300, ge=0)    # 5 minutes


class PackageManagerConfig(BaseModel):
    """Package manager invocation settings"""
    model_config = ConfigDict(frozen=True)

    binary: str = "brew"
    timeout_seconds: int = Field(default=3600, ge=1)
    upgrade_applications: bool = True


class ChannelConfig(BaseModel):
    """One notification channel as configured by the user"""
    model_config = ConfigDict(frozen=True)

    id: str
    provider: str
    kind: str = "summary"
    enabled: bool = True
    timeout_seconds: int = Field(default=30, ge=1)
    settings: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('provider')
    @classmethod
    def known_provider(cls, value: str) -> str:
        if value not in SUPPORTED_PROVIDERS:
            raise ValueError(f"unknown provider '{value}', expected one of {', '.join(SUPPORTED_PROVIDERS)}")
        return value

    @field_validator('kind')
    @classmethod
    def known_kind(cls, value: str) -> str:
        if value not in CHANNEL_KINDS:
            raise ValueError(f"unknown channel kind '{value}', expected summary or detailed")
        return value

    @model_validator(mode="after")
    def check_addressing(self) -> "ChannelConfig":
        # Disabled channels may be left half-configured
        if not self.enabled:
            return self

        if self.provider == "email":
            for key in ("smtp_server", "from_email", "to_email"):
                if not self.settings.get(key):
                    raise ValueError(f"email channel '{self.id}' missing required setting: {key}")
            for key in ("from_email", "to_email"):
                if not validators.email(str(self.settings[key])):
                    raise ValueError(f"email channel '{self.id}' has invalid {key}: {self.settings[key]}")

        elif self.provider == "telegram":
            for key in ("token", "chat_id"):
                if not self.settings.get(key):
                    raise ValueError(f"telegram channel '{self.id}' missing required setting: {key}")

        elif self.provider == "imessage":
            phone_number = str(self.settings.get("phone_number", ""))
            if not PHONE_NUMBER_PATTERN.match(phone_number):
                raise ValueError(
                    f"imessage channel '{self.id}' needs phone_number as + followed by 10-15 digits"
                )

        return self


class AgentConfig(BaseModel):
    """Immutable configuration value handed to the orchestrator"""
    model_config = ConfigDict(frozen=True)

    conditions: ConditionsConfig = Field(default_factory=ConditionsConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    package_manager: PackageManagerConfig = Field(default_factory=PackageManagerConfig)
    channels: Tuple[ChannelConfig, ...] = ()
    log_file: Path = DEFAULT_LOG_FILE
    log_level: str = "INFO"
    state_dir: Path = DEFAULT_STATE_DIR
    excerpt_lines: int = Field(default=20, ge=1)

    @field_validator('log_level')
    @classmethod
    def known_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise ValueError(f"unknown log level '{value}'")
        return value

    @model_validator(mode="after")
    def unique_channel_ids(self) -> "AgentConfig":
        seen = set()
        for channel in self.channels:
            if channel.id in seen:
                raise ValueError(f"duplicate channel id '{channel.id}'")
            seen.add(channel.id)
        return self

    def enabled_channels(self) -> List[ChannelConfig]:
        return [channel for channel in self.channels if channel.enabled]


# =============================================================================
# LOADING
# =============================================================================

def resolve_config_path(config_file: Optional[str] = None) -> Path:
    """Explicit path wins, then the environment variable, then the default location"""
    if config_file:
        return Path(config_file).expanduser()
    if os.environ.get(CONFIG_ENV_VAR):
        return Path(os.environ[CONFIG_ENV_VAR]).expanduser()
    return DEFAULT_CONFIG_PATH


def load_config(config_file: Optional[str] = None) -> AgentConfig:
    """Load config from YAML plus sibling secrets.env and validate it"""
    config_path = resolve_config_path(config_file)

    if not config_path.exists():
        logger.warning(f"No configuration file at {config_path} - using defaults (no conditions, no channels)")
        return AgentConfig()

    try:
        content = config_path.read_text().strip()
        raw_config = yaml.safe_load(content) if content else {}
    except (yaml.YAMLError, OSError) as e:
        raise ConfigError(f"Could not read {config_path}: {e}") from e

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")

    secrets_file = config_path.parent / "secrets.env"
    if secrets_file.exists():
        secrets = {k: v for k, v in dotenv_values(secrets_file).items() if v is not None}
        raw_config = _merge_secrets(raw_config, secrets)

    return build_config(raw_config, source=str(config_path))


def build_config(raw_config: Dict[str, Any], source: str = "<dict>") -> AgentConfig:
    """Build AgentConfig from a plain dictionary (YAML layout)"""
    notification = raw_config.get('notification', {}) or {}
    logging_settings = raw_config.get('logging', {}) or {}
    for section, value in (('notification', notification), ('logging', logging_settings)):
        if not isinstance(value, dict):
            raise ConfigError(f"Invalid configuration in {source}: '{section}' must be a mapping")

    values: Dict[str, Any] = {
        'conditions': raw_config.get('conditions', {}) or {},
        'retry': raw_config.get('retry', {}) or {},
        'package_manager': raw_config.get('package_manager', {}) or {},
        'channels': notification.get('channels', []) or [],
    }
    if logging_settings.get('log_file'):
        values['log_file'] = Path(logging_settings['log_file']).expanduser()
    if logging_settings.get('log_level'):
        values['log_level'] = logging_settings['log_level']
    if logging_settings.get('state_dir'):
        values['state_dir'] = Path(logging_settings['state_dir']).expanduser()
    if raw_config.get('excerpt_lines'):
        values['excerpt_lines'] = raw_config['excerpt_lines']

    try:
        return AgentConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {source}: {e}") from e


def _merge_secrets(config, secrets):
    """Merge secrets into config by replacing ${VAR} placeholders"""
    def replace_vars(obj):
        if isinstance(obj, str):
            for key, value in secrets.items():
                obj = obj.replace(f"${{{key}}}", value)
            return obj
        elif isinstance(obj, dict):
            return {k: replace_vars(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [replace_vars(item) for item in obj]
        else:
            return obj

    return replace_vars(config)


def default_config_template() -> Dict[str, Any]:
    """Template configuration written by `brewkeeper init-config`"""
    return {
        "conditions": {
            "required_network": "",         # WiFi name required for updates, empty = any network
            "allowed_networks": [],         # alternative list of acceptable networks
            "network_interface": "en0",     # WiFi interface to query
            "require_ac_power": True,       # battery power is never enough when true
            "min_battery_percent": None,    # used only when require_ac_power is false
        },
        "retry": {
            "max_attempts": 3,              # precondition polls before skipping
            "delay_seconds": 300,           # 5 minutes between polls
        },
        "package_manager": {
            "binary": "brew",
            "timeout_seconds": 3600,
            "upgrade_applications": True,   # run `upgrade --cask`
        },
        "notification": {
            "channels": [
                {
                    "id": "text",
                    "provider": "imessage",
                    "kind": "summary",
                    "enabled": False,
                    "settings": {"phone_number": "+1234567890"},
                },
                {
                    "id": "telegram",
                    "provider": "telegram",
                    "kind": "summary",
                    "enabled": False,
                    "settings": {"token": "${TELEGRAM_TOKEN}", "chat_id": ""},
                },
                {
                    "id": "report",
                    "provider": "email",
                    "kind": "detailed",
                    "enabled": False,
                    "settings": {
                        "smtp_server": "smtp.gmail.com",
                        "smtp_port": 587,
                        "use_tls": True,
                        "use_ssl": False,
                        "from_email": "",
                        "to_email": "",
                        "username": "",
                        "password": "${EMAIL_PASSWORD}",
                    },
                },
            ],
        },
        "logging": {
            "log_file": str(DEFAULT_LOG_FILE),
            "log_level": "INFO",
            "state_dir": str(DEFAULT_STATE_DIR),
        },
    }


def write_config_template(config_file: Optional[str] = None, overwrite: bool = False) -> Path:
    """Write the template config and an empty secrets.env next to it"""
    config_path = resolve_config_path(config_file)
    if config_path.exists() and not overwrite:
        raise ConfigError(f"{config_path} already exists")

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(yaml.safe_dump(default_config_template(), default_flow_style=False, sort_keys=False))

    secrets_file = config_path.parent / "secrets.env"
    if not secrets_file.exists():
        secrets_file.write_text("TELEGRAM_TOKEN=\nEMAIL_PASSWORD=\n")
        secrets_file.chmod(0o600)

    return config_path
