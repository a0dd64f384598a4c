import os
import sys
from pathlib import Path
from typing import List, Optional

import logfire
from dotenv import load_dotenv
from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .models import Base
from .strategy_models import SearchPolicy

# Setup base path
BASE_DIR = Path(__file__).parent.parent

DEFAULT_LOG_FILE = "logs/scheduling_assistant.log"


def load_environment() -> None:
    """Load .env then .env.secrets (secrets override)."""
    load_dotenv(BASE_DIR / ".env")
    load_dotenv(BASE_DIR / ".env.secrets", override=True)


def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Read an env value, stripping trailing ``# comments``."""
    value = os.getenv(key)
    if value is None:
        return default
    value = value.split("#")[0].strip()
    return value or default


def get_env_int(key: str, default: Optional[int]) -> Optional[int]:
    value = get_env(key)
    return int(value) if value is not None else default


def get_env_float(key: str, default: Optional[float]) -> Optional[float]:
    value = get_env(key)
    return float(value) if value is not None else default


def get_env_list(key: str, default: List[int]) -> List[int]:
    value = get_env(key)
    if value is None:
        return default
    return [int(part) for part in value.split(",") if part.strip()]


def configure_logging(level: str = "INFO", log_file: Optional[str] = DEFAULT_LOG_FILE) -> None:
    """Install the loguru sinks used by the application.

    File logging keeps full detail at ``level``; the console only shows
    warnings and errors.
    """
    logger.remove()

    if log_file:
        logger.add(
            log_file,
            rotation="500 MB",
            retention="10 days",
            compression="zip",
            backtrace=True,
            diagnose=True,
            enqueue=True,
            catch=True,
            format="<green>{time:HH:mm:ss}</green> | <level>{level}</level> | {extra[component]} | <level>{message}</level>",
            level=level,
        )

    logger.add(
        sys.stderr,
        format="<level>{message}</level>",
        level="WARNING",
        backtrace=True,
        diagnose=True,
    )
    logger.configure(extra={"component": "app"})


class DatabaseConfig:
    """Database configuration and initialization."""

    def __init__(self, db_url: Optional[str] = None):
        """Initialize database configuration.

        Args:
            db_url: Database URL. If None, uses environment variable or default SQLite.
        """
        self.db_url = db_url or get_env("DATABASE_URL", "sqlite:///scheduling.db")
        self._engine = None
        self._session_factory = None

    @property
    def engine(self) -> Engine:
        """Get or create SQLAlchemy engine."""
        if self._engine is None:
            self._engine = create_engine(self.db_url)
            # Create tables if they don't exist
            Base.metadata.create_all(self._engine)
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create SQLAlchemy session factory."""
        if self._session_factory is None:
            # Objects are handed to callers after the session closes
            self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        return self._session_factory

    def init_db(self) -> Engine:
        """Initialize the database and return the engine."""
        return self.engine


class Config:
    """Global configuration singleton"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._init()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Forget the cached instance so the environment is read again."""
        cls._instance = None

    def _init(self):
        """Initialize configuration"""
        load_environment()

        self.log_level: str = get_env("LOG_LEVEL", "INFO")
        self.log_file: Optional[str] = get_env("LOG_FILE", DEFAULT_LOG_FILE)
        configure_logging(self.log_level, self.log_file)

        # Never ship spans anywhere unless a token is configured
        logfire.configure(
            service_name="scheduling_assistant",
            send_to_logfire="if-token-present",
            console=False,
        )
        logger.debug("Logfire configured")

        # Database configuration
        self.db = DatabaseConfig()
        logger.debug(f"Database configured with URL: {self.db.db_url}")

        # Sensitive configurations
        self.openai_api_key: Optional[str] = get_env("OPENAI_API_KEY")
        self.model_name: str = get_env("SCHEDULER_MODEL", "openai:gpt-4o")

        # Scheduling policy
        self.timezone: str = get_env("SCHEDULER_TIMEZONE", "UTC")
        self.business_start_hour: int = get_env_int("BUSINESS_START_HOUR", 9)
        self.business_end_hour: int = get_env_int("BUSINESS_END_HOUR", 18)
        self.horizon_days: int = get_env_int("SEARCH_HORIZON_DAYS", 7)
        self.preferred_hours: List[int] = get_env_list("PREFERRED_HOURS", [10, 14, 16])
        self.search_timeout: Optional[float] = get_env_float("SEARCH_TIMEOUT_SECONDS", None)
        self.provider_concurrency: Optional[int] = get_env_int("PROVIDER_CONCURRENCY", None)

        # Flag to indicate if we're using a real LLM
        self.is_using_real_llm = bool(self.openai_api_key)

    def search_policy(self) -> SearchPolicy:
        """Search policy built from the environment."""
        return SearchPolicy(
            timezone=self.timezone,
            business_start_hour=self.business_start_hour,
            business_end_hour=self.business_end_hour,
            horizon_days=self.horizon_days,
            preferred_hours=self.preferred_hours,
            search_timeout=self.search_timeout,
        )


def get_config() -> Config:
    """Return the process configuration, building it on first use."""
    return Config()
