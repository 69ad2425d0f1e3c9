"""
Configuration Management for the GraphKB API core.

This module provides centralized configuration management including:
- Environment variable loading (.env support through python-dotenv)
- Database connection settings and adapter creation
- Logging configuration

Configuration is built on first use through `get_config()` rather than at
import time, so that tests and embedding applications can adjust the
environment first.
"""

import os
import logging
from typing import Dict, Any, Optional

from dotenv import load_dotenv

from .database import create_database, GraphDatabase


# ================================
# Configuration Classes
# ================================

class DatabaseConfig:
    """Database configuration management."""

    def __init__(self):
        self.db_type = "neo4j"
        self.config = self._get_database_config()

    @staticmethod
    def _get_database_config() -> Dict[str, Any]:
        """
        Read the store connection settings from the environment.

        Returns:
            Dict[str, Any]: Database configuration dictionary

        Raises:
            ValueError: If required environment variables are missing or malformed
        """
        try:
            config = {
                "uri": os.getenv("GKB_DB_URI", "bolt://localhost:7687"),
                "username": os.getenv("GKB_DB_USER", "neo4j"),
                "password": os.getenv("GKB_DB_PASS", "password"),
                "database": os.getenv("GKB_DB_NAME", "neo4j"),
                "connection_timeout": int(os.getenv("GKB_DB_TIMEOUT", "30")),
                "max_connection_pool_size": int(os.getenv("GKB_DB_POOL_SIZE", "10")),
            }
        except ValueError as e:
            raise ValueError(f"Invalid numeric database setting: {e}") from e

        if not all([config["uri"], config["username"], config["password"]]):
            raise ValueError(
                "Database configuration incomplete. Required: GKB_DB_URI, GKB_DB_USER, GKB_DB_PASS"
            )
        return config

    def get_db_adapter(self) -> GraphDatabase:
        """
        Create the configured database adapter (without connecting).

        Returns:
            GraphDatabase: Configured database adapter instance
        """
        return create_database(self.db_type, self.config)


class LoggingConfig:
    """Logging configuration management."""

    def __init__(self):
        self.level = os.getenv("GKB_LOG_LEVEL", "INFO").upper()
        self.log_file = os.getenv("GKB_LOG_FILE", "")
        self.format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

        if self.log_file:
            log_dir = os.path.dirname(self.log_file)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, exist_ok=True)

    def configure_logging(self):
        """Configure Python logging."""
        handlers = [logging.StreamHandler()]
        if self.log_file:
            handlers.append(logging.FileHandler(self.log_file))

        logging.basicConfig(
            level=getattr(logging, self.level, logging.INFO),
            format=self.format,
            handlers=handlers
        )


class Config:
    """Main configuration class that aggregates all configuration sections."""

    def __init__(self, configure_logging: bool = True):
        self.database = DatabaseConfig()
        self.logging = LoggingConfig()

        if configure_logging:
            self.logging.configure_logging()

    def validate_configuration(self) -> Dict[str, Any]:
        """
        Validate the entire configuration and return status.

        Returns:
            Dict[str, Any]: Validation results with any errors or warnings
        """
        results = {
            "valid": True,
            "errors": [],
            "warnings": [],
            "database_type": self.database.db_type,
        }

        try:
            self.database.get_db_adapter()
            results["database_config"] = "valid"
        except Exception as e:
            results["valid"] = False
            results["errors"].append(f"Database configuration error: {str(e)}")

        if "localhost" in self.database.config.get("uri", ""):
            results["warnings"].append("Using localhost Neo4j URI - ensure Neo4j is running")

        if not isinstance(getattr(logging, self.logging.level, None), int):
            results["warnings"].append(f"Unknown log level '{self.logging.level}', using INFO")

        return results


# ================================
# Global Configuration Instance
# ================================

_config: Optional[Config] = None


def get_config(reload: bool = False) -> Config:
    """
    Get the shared configuration, building it on first use.

    Args:
        reload: Re-read the environment even if a configuration exists

    Returns:
        Config: The configuration instance
    """
    global _config
    if _config is None or reload:
        load_dotenv()
        _config = Config()
    return _config


# ================================
# Factory Functions
# ================================

async def get_database() -> GraphDatabase:
    """
    Get configured database instance with connection.

    Returns:
        GraphDatabase: Connected database adapter

    Raises:
        DatabaseConnectionError: If database connection fails
        ValueError: If configuration is invalid
    """
    db = get_config().database.get_db_adapter()

    if not db.is_connected:
        await db.connect()

    return db


def load_env_file(env_file: Optional[str] = None) -> bool:
    """
    Load environment variables from a specific file.

    Args:
        env_file: Path to environment file (defaults to .env)

    Returns:
        bool: True if file was loaded successfully
    """
    if env_file:
        return load_dotenv(env_file)
    return load_dotenv()


# ================================
# Module Exports
# ================================

__all__ = [
    "Config",
    "DatabaseConfig",
    "LoggingConfig",
    "get_config",
    "get_database",
    "load_env_file",
]
