"""Application settings resolved from the environment."""

from __future__ import annotations

import logging
import os
from typing import Any, List, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_TYPES = ("mongodb", "firestore", "redis", "dynamodb")


def _value_from_sources(key: str, default: Any = None) -> Any:
    env_val = os.getenv(key)
    if env_val is not None:
        return env_val
    return default


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    return str(value)


def _as_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return str(value)


def _as_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        return normalized in {"1", "true", "yes", "on"}
    return default


def _as_int(value: Any, default: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        return default


def parse_cluster_nodes(value: Optional[str]) -> List[tuple[str, int]]:
    """Parse ``host:port,host:port`` into a list of (host, port) tuples.

    Entries without a port default to 6379; malformed ports are skipped.
    """
    nodes: List[tuple[str, int]] = []
    if not value:
        return nodes
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        host, _, port = entry.partition(":")
        if not port:
            nodes.append((host, 6379))
            continue
        try:
            nodes.append((host, int(port)))
        except ValueError:
            logger.warning(f"Ignoring malformed cluster node: {entry}")
    return nodes


class Settings:
    """Process-wide settings, read once at import time."""

    DATABASE_TYPE: str = "firestore"
    DEFAULT_CACHE_EXPIRY: int = 3600
    DATAGATE_INIT_RETRY: bool = True

    DATAGATE_REDIS_URL: Optional[str] = None
    DATAGATE_REDIS_CLUSTER_NODES: Optional[str] = None
    REDIS_PASSWORD: Optional[str] = None
    DATAGATE_CACHE_PREFIX: str = "datagate:"
    DATAGATE_CACHE_MAX_SIZE: int = 10000

    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "datagate"

    FIRESTORE_PROJECT: Optional[str] = None
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None

    AWS_REGION: str = "us-east-1"
    DYNAMODB_PARTITION_KEY: str = "id"

    DATAGATE_STORE_REDIS_URL: str = "redis://localhost:6379/0"
    DATAGATE_STORE_REDIS_CLUSTER_NODES: Optional[str] = None

    LOG_LEVEL: str = "INFO"

    @classmethod
    def _populate(cls) -> None:
        cls.DATABASE_TYPE = (
            _as_str(_value_from_sources("DATABASE_TYPE", "firestore")).strip().lower()
        )
        # Zero or garbage falls back to the default, matching a missing value
        expiry = _as_int(_value_from_sources("DEFAULT_CACHE_EXPIRY", 3600), 3600)
        cls.DEFAULT_CACHE_EXPIRY = expiry if expiry > 0 else 3600
        cls.DATAGATE_INIT_RETRY = _as_bool(_value_from_sources("DATAGATE_INIT_RETRY", "true"), True)

        cls.DATAGATE_REDIS_URL = _as_optional_str(_value_from_sources("DATAGATE_REDIS_URL"))
        cls.DATAGATE_REDIS_CLUSTER_NODES = _as_optional_str(
            _value_from_sources("DATAGATE_REDIS_CLUSTER_NODES")
        )
        cls.REDIS_PASSWORD = _as_optional_str(os.getenv("REDIS_PASSWORD"))
        cls.DATAGATE_CACHE_PREFIX = _as_str(
            _value_from_sources("DATAGATE_CACHE_PREFIX", "datagate:"), "datagate:"
        )
        cls.DATAGATE_CACHE_MAX_SIZE = _as_int(
            _value_from_sources("DATAGATE_CACHE_MAX_SIZE", 10000), 10000
        )

        cls.MONGODB_URI = _as_str(
            _value_from_sources("MONGODB_URI", "mongodb://localhost:27017"),
            "mongodb://localhost:27017",
        )
        cls.MONGODB_DATABASE = _as_str(_value_from_sources("MONGODB_DATABASE", "datagate"))

        cls.FIRESTORE_PROJECT = _as_optional_str(_value_from_sources("FIRESTORE_PROJECT"))
        cls.GOOGLE_APPLICATION_CREDENTIALS = _as_optional_str(
            _value_from_sources("GOOGLE_APPLICATION_CREDENTIALS")
        )

        cls.AWS_REGION = _as_str(_value_from_sources("AWS_REGION", "us-east-1"), "us-east-1")
        cls.DYNAMODB_PARTITION_KEY = _as_str(
            _value_from_sources("DYNAMODB_PARTITION_KEY", "id"), "id"
        )

        cls.DATAGATE_STORE_REDIS_URL = _as_str(
            _value_from_sources("DATAGATE_STORE_REDIS_URL", "redis://localhost:6379/0"),
            "redis://localhost:6379/0",
        )
        cls.DATAGATE_STORE_REDIS_CLUSTER_NODES = _as_optional_str(
            _value_from_sources("DATAGATE_STORE_REDIS_CLUSTER_NODES")
        )

        cls.LOG_LEVEL = _as_str(_value_from_sources("LOG_LEVEL", "INFO"), "INFO")

    @classmethod
    def refresh_from_env(cls) -> None:
        cls._populate()

    @classmethod
    def validate(cls) -> bool:
        errors = []

        if cls.DATABASE_TYPE not in DATABASE_TYPES:
            errors.append(
                f"DATABASE_TYPE must be one of {', '.join(DATABASE_TYPES)} "
                f"(got '{cls.DATABASE_TYPE}')"
            )
        if cls.DATABASE_TYPE == "dynamodb" and not cls.DYNAMODB_PARTITION_KEY:
            errors.append("DYNAMODB_PARTITION_KEY is required when DATABASE_TYPE=dynamodb")
        if cls.DEFAULT_CACHE_EXPIRY <= 0:
            errors.append("DEFAULT_CACHE_EXPIRY must be positive")
        if cls.DATAGATE_CACHE_MAX_SIZE <= 0:
            errors.append("DATAGATE_CACHE_MAX_SIZE must be positive")

        if errors:
            logger.error("Configuration validation failed:")
            for error in errors:
                logger.error(f"  - {error}")
            return False

        return True

    @classmethod
    def log_config(cls) -> None:
        logger.info("datagate configuration:")
        logger.info(f"  Database Type: {cls.DATABASE_TYPE}")
        logger.info(f"  Default Cache Expiry: {cls.DEFAULT_CACHE_EXPIRY}s")
        logger.info(f"  Retry Failed Init: {cls.DATAGATE_INIT_RETRY}")
        if cls.DATAGATE_REDIS_CLUSTER_NODES:
            logger.info(f"  Cache: redis cluster ({cls.DATAGATE_REDIS_CLUSTER_NODES})")
        elif cls.DATAGATE_REDIS_URL:
            logger.info("  Cache: redis")
        else:
            logger.info(f"  Cache: memory (max_size={cls.DATAGATE_CACHE_MAX_SIZE})")
        if cls.DATABASE_TYPE == "mongodb":
            logger.info(f"  MongoDB Database: {cls.MONGODB_DATABASE}")
        elif cls.DATABASE_TYPE == "firestore":
            logger.info(f"  Firestore Project: {cls.FIRESTORE_PROJECT or 'default'}")
        elif cls.DATABASE_TYPE == "dynamodb":
            logger.info(f"  AWS Region: {cls.AWS_REGION}")
            logger.info(f"  Partition Key: {cls.DYNAMODB_PARTITION_KEY}")


# Populate class attributes on import
Settings.refresh_from_env()


def setup_logging(level_override: Optional[str] = None) -> None:
    """Configure root logging using settings or override."""

    level_name = (level_override or Settings.LOG_LEVEL or "WARNING").upper()

    if level_name in {"NO", "NONE", "OFF"}:
        # Use a level above CRITICAL to ensure all logging is effectively disabled
        level = logging.CRITICAL + 10
    else:
        level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )

    logging.getLogger("datagate").setLevel(level)

    # Keep noisy driver loggers at INFO or higher
    noisy_logger_level = max(level, logging.INFO)
    for name in ("botocore", "boto3", "pymongo", "urllib3", "google"):
        logging.getLogger(name).setLevel(noisy_logger_level)
