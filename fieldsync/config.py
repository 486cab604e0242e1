# ==============================================
# Configuration Management
# ==============================================
#
# PURPOSE:
#   Load and validate all configuration from environment
#   variables / .env file. Provides typed config objects
#   to all other modules.
#
# CLASSES:
# --------
# - MySQLConfig (dataclass)
#     host: str          (default "localhost")
#     port: int          (default 3306)
#     user: str          (default "root")
#     password: str      (default "root")
#     database: str      (default "fieldsync")
#
# - SourceConfig (dataclass)
#     base_url: str               (default "http://127.0.0.1:8000")
#     api_token: str | None       (default None)
#     page_size: int              (default 100, the Data API maximum)
#     timeout_seconds: float      (default 30.0)
#
# - SyncConfig (dataclass)
#     sample_size: int                (default 200)
#     external_id_field: str          (default "_id")
#     identifier_max_length: int      (default 64, MySQL limit)
#     collision_suffix_headroom: int  (default 4)
#
# - AppConfig (dataclass)
#     mysql: MySQLConfig
#     source: SourceConfig
#     sync: SyncConfig
#     metadata_dir: str          (default "metadata/")
#     log_level: str             (default "INFO")
#
# FUNCTION:
# ---------
# - get_config() -> AppConfig
#     Load .env using python-dotenv, construct AppConfig.
#     Returns the same singleton on repeated calls.
#
# USAGE:
# ------
#   from fieldsync.config import get_config
#   config = get_config()
#   print(config.mysql.host)
#   print(config.sync.sample_size)
#
# ==============================================

import os
from dataclasses import dataclass, field
from typing import Optional
from pathlib import Path

from dotenv import load_dotenv


@dataclass
class MySQLConfig:
    """MySQL database configuration."""
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = "root"
    database: str = "fieldsync"


@dataclass
class SourceConfig:
    """Upstream Data API configuration."""
    base_url: str = "http://127.0.0.1:8000"
    api_token: Optional[str] = None
    page_size: int = 100
    timeout_seconds: float = 30.0


@dataclass
class SyncConfig:
    """Name resolution and discovery settings."""
    sample_size: int = 200
    external_id_field: str = "_id"
    identifier_max_length: int = 64
    collision_suffix_headroom: int = 4


@dataclass
class AppConfig:
    """Main application configuration."""
    mysql: MySQLConfig = field(default_factory=MySQLConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    metadata_dir: str = "metadata/"
    log_level: str = "INFO"


# Singleton instance
_config_instance: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Load configuration from environment variables / .env file.
    Returns the same singleton instance on repeated calls.

    Returns:
        AppConfig: Application configuration
    """
    global _config_instance

    if _config_instance is not None:
        return _config_instance

    # Load .env file from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(dotenv_path=env_path)

    mysql_config = MySQLConfig(
        host=os.getenv("MYSQL_HOST", "localhost"),
        port=int(os.getenv("MYSQL_PORT", "3306")),
        user=os.getenv("MYSQL_USER", "root"),
        password=os.getenv("MYSQL_PASSWORD", "root"),
        database=os.getenv("MYSQL_DATABASE", "fieldsync")
    )

    # The Data API caps a page at 100 records
    page_size = min(int(os.getenv("SOURCE_PAGE_SIZE", "100")), 100)
    source_config = SourceConfig(
        base_url=os.getenv("SOURCE_BASE_URL", "http://127.0.0.1:8000"),
        api_token=os.getenv("SOURCE_API_TOKEN") or None,
        page_size=page_size,
        timeout_seconds=float(os.getenv("SOURCE_TIMEOUT_SECONDS", "30.0"))
    )

    sync_config = SyncConfig(
        sample_size=int(os.getenv("SYNC_SAMPLE_SIZE", "200")),
        external_id_field=os.getenv("SYNC_EXTERNAL_ID_FIELD", "_id"),
        identifier_max_length=int(os.getenv("IDENTIFIER_MAX_LENGTH", "64")),
        collision_suffix_headroom=int(os.getenv("COLLISION_SUFFIX_HEADROOM", "4"))
    )

    _config_instance = AppConfig(
        mysql=mysql_config,
        source=source_config,
        sync=sync_config,
        metadata_dir=os.getenv("METADATA_DIR", "metadata/"),
        log_level=os.getenv("LOG_LEVEL", "INFO")
    )

    return _config_instance


def reset_config() -> None:
    """Drop the cached singleton so the next get_config() re-reads the environment."""
    global _config_instance
    _config_instance = None
