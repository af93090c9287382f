"""
Configuration settings for the Valuation Desk application.

Every setting can be overridden from the environment or a ``.env`` file.
"""

import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

STORAGE_BACKENDS = ("json", "postgres", "memory")
INSECURE_SECRET_KEYS = ("dev-key-change-in-production", "MUST_BE_SET_IN_PRODUCTION")


def env_bool(name, default):
    return os.getenv(name, "true" if default else "false").strip().lower() in ("true", "1", "yes", "on")


def env_int(name, default):
    return int(os.getenv(name, str(default)))


class Config:
    """Base configuration class"""

    # Flask
    SECRET_KEY = os.getenv("SECRET_KEY", INSECURE_SECRET_KEYS[0])
    FLASK_ENV = os.getenv("FLASK_ENV", "development")
    DEBUG = env_bool("FLASK_DEBUG", True)
    JSON_SORT_KEYS = False
    APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT = env_int("APP_PORT", 5000)

    # Record storage: a JSON file, a PostgreSQL key-value table, or memory
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "json").strip().lower()
    STORAGE_PATH = os.getenv("STORAGE_PATH", "data/storage.json")
    # Seconds between checks for writes made by other processes
    SYNC_POLL_INTERVAL = float(os.getenv("SYNC_POLL_INTERVAL", "5"))

    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = env_int("DB_PORT", 5432)
    DB_NAME = os.getenv("DB_NAME", "valuation_desk")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "postgres")
    DB_TABLE = os.getenv("DB_TABLE", "kv_store")

    # List views
    FILES_PER_PAGE = env_int("FILES_PER_PAGE", 15)
    INVOICES_PER_PAGE = env_int("INVOICES_PER_PAGE", 50)
    MAX_PAGE_SIZE = 500

    # Seeded on first start when no users exist
    DEFAULT_ADMIN_USERNAME = os.getenv("DEFAULT_ADMIN_USERNAME", "admin")
    DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "admin123")
    DEFAULT_ADMIN_FULL_NAME = os.getenv("DEFAULT_ADMIN_FULL_NAME", "Administrator")

    # Logging ('json' for production, 'development' for a console layout)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "development")
    LOG_FILE = os.getenv("LOG_FILE", "logs/app.log")
    LOG_MAX_BYTES = env_int("LOG_MAX_BYTES", 10 * 1024 * 1024)
    LOG_BACKUP_COUNT = env_int("LOG_BACKUP_COUNT", 5)
    LOG_ENABLE_CONSOLE = env_bool("LOG_ENABLE_CONSOLE", True)

    @classmethod
    def get_database_config(cls):
        """psycopg2 connection keyword arguments"""
        return {
            "host": cls.DB_HOST,
            "port": cls.DB_PORT,
            "database": cls.DB_NAME,
            "user": cls.DB_USER,
            "password": cls.DB_PASSWORD,
        }

    @classmethod
    def get_storage_config(cls):
        """Settings the selected storage backend needs"""
        if cls.STORAGE_BACKEND == "postgres":
            return {"DB_HOST": cls.DB_HOST, "DB_NAME": cls.DB_NAME, "DB_USER": cls.DB_USER,
                    "DB_PASSWORD": cls.DB_PASSWORD, "DB_TABLE": cls.DB_TABLE}
        if cls.STORAGE_BACKEND == "json":
            return {"STORAGE_PATH": cls.STORAGE_PATH}
        return {}

    @classmethod
    def validate_config(cls):
        """
        Validate required configuration

        Raises:
            ValueError: For an unknown backend, a missing backend setting or a bad page size
        """
        if cls.STORAGE_BACKEND not in STORAGE_BACKENDS:
            raise ValueError(
                f"Unknown STORAGE_BACKEND '{cls.STORAGE_BACKEND}' (expected one of: {', '.join(STORAGE_BACKENDS)})"
            )

        missing_vars = [name for name, value in cls.get_storage_config().items() if not value]
        if missing_vars:
            raise ValueError(f"Missing required configuration variables: {', '.join(missing_vars)}")

        if min(cls.FILES_PER_PAGE, cls.INVOICES_PER_PAGE) < 1 or cls.MAX_PAGE_SIZE < 1:
            raise ValueError("Page sizes must be positive")

        return True


class DevelopmentConfig(Config):
    """Development configuration"""

    DEBUG = True
    FLASK_ENV = "development"


class ProductionConfig(Config):
    """Production configuration"""

    DEBUG = False
    FLASK_ENV = "production"
    SECRET_KEY = os.getenv("SECRET_KEY") or INSECURE_SECRET_KEYS[1]

    LOG_FORMAT = os.getenv("LOG_FORMAT", "json")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")
    LOG_ENABLE_CONSOLE = env_bool("LOG_ENABLE_CONSOLE", False)

    @classmethod
    def validate_config(cls):
        """Production also refuses the placeholder secret keys"""
        super().validate_config()

        if not cls.SECRET_KEY or cls.SECRET_KEY in INSECURE_SECRET_KEYS:
            raise ValueError("SECRET_KEY must be set to a secure value in production")
        return True


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "testing-secret"
    STORAGE_BACKEND = "json"
    STORAGE_PATH = os.getenv("TEST_STORAGE_PATH", "data/test_storage.json")
    SYNC_POLL_INTERVAL = 0.0
    LOG_FILE = ""
    LOG_ENABLE_CONSOLE = False
    LOG_LEVEL = "DEBUG"


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
