#!/usr/bin/env python3
"""
Tests for Configuration Management.

This module tests centralized configuration management including:
- Environment variable loading
- Configuration validation
- Factory functions
"""

import logging
import os
import pytest
import tempfile
from unittest.mock import patch, AsyncMock

from graphkb import config as config_module
from graphkb.config import Config, DatabaseConfig, LoggingConfig, get_config, get_database, load_env_file
from graphkb.database import Neo4jAdapter


NEO4J_ENV = {
    "GKB_DB_URI": "bolt://db.example.org:7687",
    "GKB_DB_USER": "graphkb",
    "GKB_DB_PASS": "secret",
    "GKB_DB_NAME": "kb",
}


class TestDatabaseConfig:
    """Test database configuration management."""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = DatabaseConfig()

        assert config.db_type == "neo4j"
        assert config.config["uri"] == "bolt://localhost:7687"
        assert config.config["database"] == "neo4j"
        assert config.config["connection_timeout"] == 30
        assert config.config["max_connection_pool_size"] == 10

    def test_from_environment(self):
        env = {**NEO4J_ENV, "GKB_DB_TIMEOUT": "5", "GKB_DB_POOL_SIZE": "50"}
        with patch.dict(os.environ, env, clear=True):
            config = DatabaseConfig()

        assert config.config == {
            "uri": "bolt://db.example.org:7687",
            "username": "graphkb",
            "password": "secret",
            "database": "kb",
            "connection_timeout": 5,
            "max_connection_pool_size": 50,
        }

    def test_incomplete(self):
        with patch.dict(os.environ, {"GKB_DB_PASS": ""}, clear=True):
            with pytest.raises(ValueError, match="Database configuration incomplete"):
                DatabaseConfig()

    def test_bad_number(self):
        with patch.dict(os.environ, {"GKB_DB_POOL_SIZE": "many"}, clear=True):
            with pytest.raises(ValueError, match="Invalid numeric database setting"):
                DatabaseConfig()

    def test_adapter(self):
        with patch.dict(os.environ, NEO4J_ENV, clear=True):
            adapter = DatabaseConfig().get_db_adapter()

        assert isinstance(adapter, Neo4jAdapter)
        assert adapter.database == "kb"
        assert not adapter.is_connected


class TestLoggingConfig:
    """Test logging configuration."""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = LoggingConfig()
        assert config.level == "INFO"
        assert config.log_file == ""

    def test_log_file_directory_created(self):
        with tempfile.TemporaryDirectory() as tmp:
            log_file = os.path.join(tmp, "logs", "graphkb.log")
            with patch.dict(os.environ, {"GKB_LOG_LEVEL": "debug", "GKB_LOG_FILE": log_file}, clear=True):
                config = LoggingConfig()

            assert config.level == "DEBUG"
            assert os.path.isdir(os.path.join(tmp, "logs"))

    def test_configure_logging(self):
        with patch.dict(os.environ, {"GKB_LOG_LEVEL": "WARNING"}, clear=True):
            config = LoggingConfig()

        with patch("logging.basicConfig") as basic_config:
            config.configure_logging()

        kwargs = basic_config.call_args.kwargs
        assert kwargs["level"] == logging.WARNING
        assert len(kwargs["handlers"]) == 1


class TestConfig:
    """Test the aggregated configuration."""

    def test_validate_configuration(self):
        with patch.dict(os.environ, NEO4J_ENV, clear=True):
            results = Config(configure_logging=False).validate_configuration()

        assert results["valid"] is True
        assert results["errors"] == []
        assert results["warnings"] == []
        assert results["database_config"] == "valid"

    def test_validation_warnings(self):
        with patch.dict(os.environ, {"GKB_LOG_LEVEL": "chatty"}, clear=True):
            results = Config(configure_logging=False).validate_configuration()

        assert results["valid"] is True
        assert any("localhost" in warning for warning in results["warnings"])
        assert any("CHATTY" in warning for warning in results["warnings"])

    def test_validation_errors(self):
        with patch.dict(os.environ, NEO4J_ENV, clear=True):
            config = Config(configure_logging=False)
        del config.database.config["password"]

        results = config.validate_configuration()

        assert results["valid"] is False
        assert "Missing required configuration field: password" in results["errors"][0]


class TestGetConfig:
    """Test the shared configuration instance."""

    @pytest.fixture(autouse=True)
    def reset_config(self):
        with patch.object(config_module, "_config", None), patch.object(config_module, "load_dotenv") as load:
            yield load

    def test_built_once(self, reset_config):
        with patch.dict(os.environ, NEO4J_ENV, clear=True), patch("logging.basicConfig"):
            first = get_config()
            second = get_config()

        assert first is second
        reset_config.assert_called_once()

    def test_reload(self, reset_config):
        with patch.dict(os.environ, NEO4J_ENV, clear=True), patch("logging.basicConfig"):
            first = get_config()
            with patch.dict(os.environ, {"GKB_DB_NAME": "other"}):
                second = get_config(reload=True)

        assert first is not second
        assert second.database.config["database"] == "other"

    @pytest.mark.asyncio
    async def test_get_database_connects(self, reset_config):
        with patch.dict(os.environ, NEO4J_ENV, clear=True), patch("logging.basicConfig"):
            with patch.object(Neo4jAdapter, "connect", new_callable=AsyncMock) as connect:
                db = await get_database()

        assert isinstance(db, Neo4jAdapter)
        connect.assert_awaited_once()


class TestLoadEnvFile:
    """Test loading environment files."""

    def test_specific_file(self):
        with tempfile.NamedTemporaryFile("w", suffix=".env", delete=False) as env_file:
            env_file.write("GKB_TEST_VALUE=loaded\n")

        try:
            with patch.dict(os.environ, {}, clear=True):
                assert load_env_file(env_file.name) is True
                assert os.environ["GKB_TEST_VALUE"] == "loaded"
        finally:
            os.unlink(env_file.name)

    def test_missing_file(self):
        assert load_env_file("/nonexistent/path/.env") is False
