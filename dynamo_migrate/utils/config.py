"""
Run configuration management.

Configuration is merged from three layers, later layers winning:

1. an optional YAML file (``--config``)
2. environment variables (``.env`` files are loaded by the CLI)
3. explicit overrides from the command line

Expected YAML format:
```yaml
source:
  type: s3-dynamodb
  bucket: my-export-bucket
  prefix: exports/pictures/
  region: eu-west-1

target:
  type: postgresql
  host: db.internal
  user: migrator
  password: secret
  database: infinityCMS

profile:
  batchSize: 500
  maxId: 2000000

log_dir: /var/log/migrate
```
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dynamo_migrate.core.errors import ConfigError
from dynamo_migrate.core.models import ProfileConfig

from .validation import parse_bool

# Environment variable → (section, key)
ENV_MAPPING: dict[str, tuple[str, str]] = {
    "S3_BUCKET": ("source", "bucket"),
    "S3_PREFIX": ("source", "prefix"),
    "AWS_REGION": ("source", "region"),
    "EXPORT_PATH": ("source", "path"),
    "SERVER": ("target", "host"),
    "PORT": ("target", "port"),
    "PG_USER": ("target", "user"),
    "PASSWORD": ("target", "password"),
    "DATABASE": ("target", "database"),
}


class SourceConfig(BaseModel):
    """
    Source dialect settings.

    Attributes:
        type: Registered source dialect name
        bucket: S3 bucket holding the DynamoDB export (s3-dynamodb)
        prefix: S3 key prefix of the export files (s3-dynamodb)
        region: AWS region
        path: Local directory holding export files (local-dynamodb)
    """

    model_config = ConfigDict(extra="allow")

    type: str = "s3-dynamodb"
    bucket: str | None = None
    prefix: str | None = None
    region: str = "eu-west-1"
    path: str | None = None


class TargetConfig(BaseModel):
    """
    Target dialect settings.

    Attributes:
        type: Registered target dialect name
        host, port, user, password, database: PostgreSQL connection settings
        ssl: Require an SSL connection
        min_size, max_size: Connection pool bounds
        application_name: Reported to PostgreSQL for the session
    """

    model_config = ConfigDict(extra="allow")

    type: str = "postgresql"
    host: str | None = None
    port: int = 5432
    user: str | None = None
    password: str | None = None
    database: str = "infinityCMS"
    ssl: bool = True
    min_size: int = Field(2, ge=1)
    max_size: int = Field(10, ge=1)
    application_name: str = "migrate-dynamodb-to-pg"


class RunnerConfig(BaseModel):
    """Everything a migration run needs besides the profile itself."""

    source: SourceConfig = Field(default_factory=SourceConfig)
    target: TargetConfig = Field(default_factory=TargetConfig)
    profile_config: ProfileConfig = Field(default_factory=ProfileConfig)
    log_dir: Path = Field(default_factory=Path.cwd)


def _deep_merge(base: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Merge `overrides` into a copy of `base`; None values are ignored."""
    merged = dict(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_yaml_config(config_path: str | Path) -> dict[str, Any]:
    """
    Load a YAML configuration file.

    Raises:
        ConfigError: If the file is missing, unparsable or not a mapping
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path) as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigError(f"Configuration file {config_path} must contain a mapping")

    # The file uses "profile" for readability; the model calls it profile_config
    if "profile" in config:
        config["profile_config"] = config.pop("profile")
    return config


def config_from_env(env: Mapping[str, str]) -> dict[str, Any]:
    """Collect configuration values from environment variables."""
    config: dict[str, Any] = {"source": {}, "target": {}}
    for var, (section, key) in ENV_MAPPING.items():
        value = env.get(var)
        if value:
            config[section][key] = value

    if env.get("DB_SSL"):
        config["target"]["ssl"] = parse_bool(env.get("DB_SSL"), default=True)
    if env.get("MIGRATE_LOG_DIR"):
        config["log_dir"] = env["MIGRATE_LOG_DIR"]
    return config


def load_runner_config(
    overrides: Mapping[str, Any] | None = None,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> RunnerConfig:
    """
    Build the run configuration from file, environment and overrides.

    Args:
        overrides: Nested mapping (source/target/profile_config/log_dir);
            None values leave lower layers untouched
        config_path: Optional YAML configuration file
        env: Environment mapping (defaults to os.environ)

    Returns:
        Validated RunnerConfig

    Raises:
        ConfigError: If the merged configuration is invalid
    """
    env = os.environ if env is None else env

    merged: dict[str, Any] = {}
    if config_path is not None:
        merged = load_yaml_config(config_path)
    merged = _deep_merge(merged, config_from_env(env))
    merged = _deep_merge(merged, overrides or {})

    try:
        return RunnerConfig.model_validate(merged)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}") from e
