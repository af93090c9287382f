"""
Tests for configuration validation.
"""

import pytest

from valuation_desk import create_app
from valuation_desk.config.settings import Config, ProductionConfig, TestingConfig, config


def test_testing_config_is_valid():
    assert TestingConfig.validate_config() is True
    assert config["default"].FILES_PER_PAGE == 15


def test_unknown_backend_is_rejected():
    class BadBackend(TestingConfig):
        STORAGE_BACKEND = "redis"

    with pytest.raises(ValueError, match="Unknown STORAGE_BACKEND"):
        BadBackend.validate_config()


def test_backend_settings_are_required():
    class NoPath(TestingConfig):
        STORAGE_PATH = ""

    with pytest.raises(ValueError, match="STORAGE_PATH"):
        NoPath.validate_config()

    class NoDatabase(TestingConfig):
        STORAGE_BACKEND = "postgres"
        DB_NAME = ""

    with pytest.raises(ValueError, match="DB_NAME"):
        NoDatabase.validate_config()


def test_memory_backend_needs_nothing():
    class InMemory(Config):
        STORAGE_BACKEND = "memory"

    assert InMemory.get_storage_config() == {}
    assert InMemory.validate_config() is True


def test_production_rejects_placeholder_secret():
    class InsecureProduction(ProductionConfig):
        SECRET_KEY = "MUST_BE_SET_IN_PRODUCTION"
        LOG_FILE = ""

    with pytest.raises(ValueError, match="SECRET_KEY"):
        InsecureProduction.validate_config()


def test_create_app_refuses_invalid_config():
    class BadPageSize(TestingConfig):
        STORAGE_BACKEND = "memory"
        FILES_PER_PAGE = 0

    with pytest.raises(ValueError):
        create_app(BadPageSize)
