"""設定データクラス"""

from dataclasses import dataclass


@dataclass
class DatabaseConfig:
    """チャンネル / Identity ストアの設定（":memory:" でインメモリ DB）"""

    path: str


@dataclass
class LoggingConfig:
    """ログ設定（loggers はロガー名ごとのレベル）"""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    loggers: dict[str, str] | None = None


@dataclass
class Config:
    """config.yaml 全体"""

    database: DatabaseConfig
    logging: LoggingConfig | None = None
