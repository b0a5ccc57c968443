"""設定管理モジュール"""

from channelhub.config.loader import (
    CONFIG_PATH_ENV,
    ConfigError,
    ConfigValidationError,
    EnvironmentVariableError,
    expand_env_vars,
    load_config,
    resolve_config_path,
)
from channelhub.config.models import Config, DatabaseConfig, LoggingConfig

__all__ = [
    "CONFIG_PATH_ENV",
    "Config",
    "ConfigError",
    "ConfigValidationError",
    "DatabaseConfig",
    "EnvironmentVariableError",
    "LoggingConfig",
    "expand_env_vars",
    "load_config",
    "resolve_config_path",
]
