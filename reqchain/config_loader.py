"""Config Loader - Loads client configuration from YAML.

Values may reference the environment as ${VAR} or ${VAR:-fallback}, so
secrets (proxy credentials, certificate passwords, auth headers) and
per-deployment knobs stay out of config files. Expanded values are strings;
ClientConfig coerces them to the field's type, so ``timeout: ${TIMEOUT}``,
``verify_ssl: ${VERIFY:-true}`` and ``statuses: ${RETRY_ON:-500,503}`` all
load as numbers, booleans and status lists.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from reqchain.errors import ConfigError
from reqchain.models import ClientConfig

DEBUG_ENV_VAR = "REQCHAIN_DEBUG"

_PLACEHOLDER = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<fallback>[^}]*))?\}")


def load_client_config(config_path: Path) -> ClientConfig:
    """Load client configuration from YAML, expanding ${VAR} placeholders.

    Raises:
        ConfigError: If the file is missing, is not a YAML mapping, names an
            unset variable without a fallback, or fails validation.
    """
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _expand_placeholders(raw_config)

    try:
        return ClientConfig.model_validate(raw_config)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def default_config() -> ClientConfig:
    """Defaults for a new builder; REQCHAIN_DEBUG=1 turns on debug dumps."""
    return ClientConfig(debug=os.environ.get(DEBUG_ENV_VAR) == "1")


def _expand_placeholders(data: Any) -> Any:
    if isinstance(data, str):
        return _expand(data)
    elif isinstance(data, dict):
        return {k: _expand_placeholders(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_placeholders(item) for item in data]
    return data


def _expand(text: str) -> str:
    """Replace each placeholder with its variable, or its fallback when unset."""

    def lookup(match: re.Match) -> str:
        value = os.environ.get(match.group("name"))
        if value is not None:
            return value
        if match.group("fallback") is not None:
            return match.group("fallback")
        raise ConfigError(f"Environment variable '{match.group('name')}' is not set")

    return _PLACEHOLDER.sub(lookup, text)
