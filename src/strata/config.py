"""
strata.config - Settings.

~/.strata/config.yaml (STRATA_HOME overrides the directory):

    region: eu-west-1
    profile: platform-admin
    role_arn: arn:aws:iam::123456789012:role/deployer
    poll_delay: 5
    max_attempts: 720
    max_workers: 1

Precedence (high to low):
    CLI flag > environment variable > config file > registry metadata > default

Environment variables:
    AWS_REGION / AWS_DEFAULT_REGION, AWS_PROFILE, STRATA_ROLE_ARN,
    STRATA_POLL_DELAY, STRATA_MAX_ATTEMPTS, STRATA_MAX_WORKERS, GITHUB_TOKEN
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from strata.errors import ConfigError


@dataclass
class Settings:
    """Resolved runtime settings."""
    region: str | None = None
    profile: str | None = None
    role_arn: str | None = None
    poll_delay: int = 5
    max_attempts: int = 720
    max_workers: int = 1
    github_token: str | None = None


_INT_FIELDS = ("poll_delay", "max_attempts", "max_workers")

_ENV_VARS = {
    "region": ("AWS_REGION", "AWS_DEFAULT_REGION"),
    "profile": ("AWS_PROFILE",),
    "role_arn": ("STRATA_ROLE_ARN",),
    "poll_delay": ("STRATA_POLL_DELAY",),
    "max_attempts": ("STRATA_MAX_ATTEMPTS",),
    "max_workers": ("STRATA_MAX_WORKERS",),
    "github_token": ("GITHUB_TOKEN",),
}


def strata_home() -> Path:
    return Path(os.environ.get("STRATA_HOME") or Path.home() / ".strata")


def config_path() -> Path:
    return strata_home() / "config.yaml"


def load_config_file(path: Path | None = None) -> dict[str, Any]:
    """Read the config file. A missing file is an empty config."""
    cp = path or config_path()
    if not cp.exists():
        return {}

    with open(cp) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {cp}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a YAML mapping: {cp}")

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config key(s) in {cp}: {unknown}")
    return data


def load_settings(
    overrides: dict[str, Any] | None = None,
    registry_region: str | None = None,
    config_file: Path | None = None,
) -> Settings:
    """Resolve settings from all sources.

    Args:
        overrides: CLI flag values (None entries are ignored)
        registry_region: Region from the registry metadata
        config_file: Explicit config file path

    Returns:
        Settings
    """
    values: dict[str, Any] = {}
    if registry_region:
        values["region"] = registry_region

    values.update(load_config_file(config_file))

    for name, env_names in _ENV_VARS.items():
        for env_name in env_names:
            env_value = os.environ.get(env_name, "").strip()
            if env_value:
                values[name] = env_value
                break

    for name, value in (overrides or {}).items():
        if value is not None:
            values[name] = value

    for name in _INT_FIELDS:
        if name in values:
            values[name] = _positive_int(name, values[name])

    return Settings(**values)


def _positive_int(name: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got '{value}'") from None
    if number < 1:
        raise ConfigError(f"{name} must be at least 1, got {number}")
    return number
