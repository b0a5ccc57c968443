"""アプリケーションのエントリポイント

設定ファイルの database.path にストアを初期化し、
各チャンネルの所属 Identity 数をログに出力する。
"""

import asyncio
import logging
import sys

from channelhub.application.services import ChannelRelationshipManager
from channelhub.config import (
    ConfigError,
    LoggingConfig,
    load_config,
    resolve_config_path,
)
from channelhub.infrastructure.persistence import (
    DatabaseManager,
    SQLiteChannelRepository,
    SQLiteIdentityRepository,
)

# Default logging until config.yaml is loaded
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def configure_logging(config: LoggingConfig | None) -> None:
    """Apply the logging section of config.yaml.

    Args:
        config: Logging configuration. None keeps the startup defaults.
    """
    if config is None:
        return

    root_logger = logging.getLogger()
    root_logger.setLevel(_level(config.level))

    formatter = logging.Formatter(config.format)
    for handler in root_logger.handlers:
        handler.setFormatter(formatter)

    for logger_name, logger_level in (config.loggers or {}).items():
        logging.getLogger(logger_name).setLevel(_level(logger_level))
        logger.debug("Set logger '%s' to level %s", logger_name, logger_level.upper())


def create_relationship_manager(
    db_manager: DatabaseManager,
) -> ChannelRelationshipManager:
    """DatabaseManager のセッションを共有するマネージャを生成する

    Args:
        db_manager: 初期化済みの DatabaseManager

    Returns:
        ChannelRelationshipManager インスタンス
    """
    return ChannelRelationshipManager(
        channel_repository=SQLiteChannelRepository(db_manager.get_session),
        identity_repository=SQLiteIdentityRepository(db_manager.get_session),
    )


async def report_channels(db_manager: DatabaseManager) -> None:
    """全チャンネルと所属 Identity 数をログに出力する"""
    manager = create_relationship_manager(db_manager)
    channels = await SQLiteChannelRepository(db_manager.get_session).find_all()
    logger.info(
        "Database ready at %s (%d channels)", db_manager.database_path, len(channels)
    )
    for channel in channels:
        identities = await manager.retrieve_identity_list_for_channel(channel.id)
        logger.info("  #%s: %d identities", channel.name, len(identities))


async def main() -> None:
    """設定を読み込み、ストアを初期化して状態を出力する"""
    config_path = resolve_config_path()
    try:
        config = load_config(config_path)
    except FileNotFoundError:
        logger.error("%s not found", config_path)
        sys.exit(1)
    except ConfigError as e:
        logger.error("Failed to load config: %s", e)
        sys.exit(1)

    configure_logging(config.logging)

    db_manager = DatabaseManager(config.database.path)
    try:
        await db_manager.create_tables()
        await report_channels(db_manager)
    finally:
        await db_manager.close()


def run() -> None:
    """Run the async main function."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    run()
