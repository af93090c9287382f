"""
Valuation Desk Flask Application

Back office for a valuation firm: valuation files, invoices, receiving bank
accounts and users, served as a JSON API.
"""

from flask import Flask, current_app

from valuation_desk.config.settings import Config
from valuation_desk.services.bank_service import BankService
from valuation_desk.services.file_service import FileService
from valuation_desk.services.invoice_service import InvoiceService
from valuation_desk.services.record_store import RecordStore
from valuation_desk.services.stats_service import StatsService
from valuation_desk.services.storage import create_storage
from valuation_desk.services.user_service import UserService
from valuation_desk.utils.logging_config import get_logger, setup_flask_logging
from valuation_desk.utils.security import reset_request_user

EXTENSION_KEY = "valuation_desk"


class Services:
    """The record store and the domain services built on it"""

    def __init__(self, store: RecordStore):
        self.store = store
        self.files = FileService(store)
        self.invoices = InvoiceService(store)
        self.banks = BankService(store)
        self.users = UserService(store)
        self.stats = StatsService(store)


def create_app(config_class=Config):
    """Application factory pattern for creating Flask app instances"""
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config_class)
    try:
        config_class.validate_config()
        app.secret_key = config_class.SECRET_KEY
    except ValueError as e:
        setup_flask_logging(app)
        logger = get_logger("app.config")
        logger.error("Configuration validation failed", extra={"error": str(e), "config_class": config_class.__name__})
        raise

    app.json.sort_keys = config_class.JSON_SORT_KEYS

    # Set up structured logging
    setup_flask_logging(app)
    logger = get_logger("app.init")

    # Initialize storage and the record store
    try:
        storage = create_storage(config_class)
        store = RecordStore(storage, poll_interval=config_class.SYNC_POLL_INTERVAL)
        logger.info(
            "Storage initialised successfully",
            extra={
                "category": "storage_init_success",
                "backend": config_class.STORAGE_BACKEND,
                "path": config_class.STORAGE_PATH if config_class.STORAGE_BACKEND == "json" else None,
            },
        )
    except Exception as e:
        logger.error(
            "Failed to initialise storage",
            extra={
                "category": "storage_init_failed",
                "backend": config_class.STORAGE_BACKEND,
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise

    services = Services(store)
    services.users.ensure_default_admin(config_class)
    app.extensions[EXTENSION_KEY] = services

    # Per-request user cache
    app.before_request(reset_request_user)

    # Register blueprints
    from valuation_desk.views.api import api_bp
    from valuation_desk.views.main import main_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(api_bp, url_prefix="/api")

    # Register error handlers
    from valuation_desk.views.errors import register_error_handlers

    register_error_handlers(app)

    return app


def get_services() -> Services:
    """Services of the current application"""
    return current_app.extensions[EXTENSION_KEY]


def get_store() -> RecordStore:
    """Record store of the current application"""
    return get_services().store
