"""config.yaml の読み込み"""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from channelhub.config.models import Config, DatabaseConfig, LoggingConfig

CONFIG_PATH_ENV = "CHANNELHUB_CONFIG"
DEFAULT_CONFIG_PATH = "config.yaml"

# ${VAR_NAME}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class ConfigError(Exception):
    """設定関連の基底例外"""


class ConfigValidationError(ConfigError):
    """必須項目の欠落や型の不一致"""


class EnvironmentVariableError(ConfigError):
    """参照された環境変数が未設定"""


def resolve_config_path() -> Path:
    """CHANNELHUB_CONFIG（未設定なら ./config.yaml）のパスを返す"""
    return Path(os.environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH))


def expand_env_vars(value: str) -> str:
    """${VAR_NAME} を環境変数の値で置き換える

    Raises:
        EnvironmentVariableError: 環境変数が未設定
    """

    def lookup(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in os.environ:
            raise EnvironmentVariableError(f"Environment variable '{name}' is not set")
        return os.environ[name]

    return ENV_VAR_PATTERN.sub(lookup, value) if value else value


def _expand_all(data: Any) -> Any:
    if isinstance(data, dict):
        return {key: _expand_all(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_all(item) for item in data]
    if isinstance(data, str):
        return expand_env_vars(data)
    return data


def _require(section: dict[str, Any], key: str, path: str) -> Any:
    value = section.get(key)
    if value is None:
        raise ConfigValidationError(f"Required field '{path}' is missing")
    return value


def _parse_database(data: dict[str, Any]) -> DatabaseConfig:
    section = _require(data, "database", "database")
    if not isinstance(section, dict):
        raise ConfigValidationError("'database' must be a mapping")
    return DatabaseConfig(path=str(_require(section, "path", "database.path")))


def _parse_logging(data: dict[str, Any]) -> LoggingConfig | None:
    section = data.get("logging")
    if not section:
        return None
    if not isinstance(section, dict):
        raise ConfigValidationError("'logging' must be a mapping")

    defaults = LoggingConfig()
    return LoggingConfig(
        level=section.get("level", defaults.level),
        format=section.get("format", defaults.format),
        loggers=section.get("loggers"),
    )


def load_config(path: str | Path) -> Config:
    """設定ファイルを読み込む

    Args:
        path: config.yaml のパス

    Returns:
        Config オブジェクト

    Raises:
        FileNotFoundError: ファイルが存在しない
        ConfigValidationError: 必須項目が欠落
        EnvironmentVariableError: 環境変数が未設定
        yaml.YAMLError: YAML構文エラー
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        raw_data = yaml.safe_load(f)

    if not isinstance(raw_data, dict):
        raise ConfigValidationError("Config file must contain a mapping")

    data = _expand_all(raw_data)
    return Config(database=_parse_database(data), logging=_parse_logging(data))
