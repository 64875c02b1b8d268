"""
Runtime configuration for the School API.

Values come from the environment, optionally seeded from a .env file.
"""

import logging
import os
from dataclasses import dataclass

import structlog
from dotenv import find_dotenv, load_dotenv

ID_POLICIES = ("objectid", "sequential")
TEST_STORAGES = ("normalized", "embedded")


@dataclass(frozen=True)
class Settings:
    mongodb_uri: str = "mongodb://localhost:27017"
    database_name: str = "school"
    id_policy: str = "objectid"
    test_storage: str = "normalized"
    storage_timeout_ms: int = 10000
    insert_retries: int = 3
    port: int = 8000
    log_level: str = "INFO"

    @property
    def embedded_tests(self) -> bool:
        return self.test_storage == "embedded"


def load_settings() -> Settings:
    load_dotenv(find_dotenv(usecwd=True))
    settings = Settings(
        mongodb_uri=os.getenv("MONGODB_URI") or os.getenv("DATABASE_URL") or Settings.mongodb_uri,
        database_name=os.getenv("DATABASE_NAME", Settings.database_name),
        id_policy=os.getenv("SCHOOL_ID_POLICY", Settings.id_policy).lower(),
        test_storage=os.getenv("SCHOOL_TEST_STORAGE", Settings.test_storage).lower(),
        storage_timeout_ms=int(os.getenv("SCHOOL_STORAGE_TIMEOUT_MS", Settings.storage_timeout_ms)),
        insert_retries=int(os.getenv("SCHOOL_INSERT_RETRIES", Settings.insert_retries)),
        port=int(os.getenv("PORT", Settings.port)),
        log_level=os.getenv("LOG_LEVEL", Settings.log_level).upper(),
    )
    if settings.id_policy not in ID_POLICIES:
        raise ValueError(f"SCHOOL_ID_POLICY must be one of {ID_POLICIES}, got {settings.id_policy!r}")
    if settings.test_storage not in TEST_STORAGES:
        raise ValueError(f"SCHOOL_TEST_STORAGE must be one of {TEST_STORAGES}, got {settings.test_storage!r}")
    return settings


def configure_logging(level: str = "INFO") -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        cache_logger_on_first_use=True,
    )
