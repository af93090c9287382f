"""
Pytest configuration and fixtures for the Valuation Desk tests.
"""

import os

# Keep test runs from writing log files
os.environ["LOG_FILE"] = ""
os.environ["LOG_ENABLE_CONSOLE"] = "false"

from datetime import date  # noqa: E402

import pytest  # noqa: E402

from valuation_desk import Services, create_app  # noqa: E402
from valuation_desk.config.settings import TestingConfig  # noqa: E402
from valuation_desk.models.entities import ROLE_COMPUTER_OPERATOR, ROLE_INSPECTOR  # noqa: E402
from valuation_desk.services.bank_service import BankService  # noqa: E402
from valuation_desk.services.file_service import FileService  # noqa: E402
from valuation_desk.services.invoice_service import InvoiceService  # noqa: E402
from valuation_desk.services.record_store import RecordStore  # noqa: E402
from valuation_desk.services.storage import MemoryStorage  # noqa: E402
from valuation_desk.services.user_service import UserService  # noqa: E402

ADMIN_PASSWORD = TestingConfig.DEFAULT_ADMIN_PASSWORD
STAFF_PASSWORD = "secret123"
TODAY = date(2025, 5, 10)


@pytest.fixture
def config_class(tmp_path):
    """Testing configuration with storage under the test's temporary directory."""

    class IsolatedTestingConfig(TestingConfig):
        STORAGE_PATH = str(tmp_path / "storage.json")

    return IsolatedTestingConfig


@pytest.fixture
def app(config_class):
    """Create application for testing."""
    app = create_app(config_class)
    app.config.update({
        "TESTING": True,
    })

    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create test CLI runner."""
    return app.test_cli_runner()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    """Record store that polls storage on every read."""
    return RecordStore(storage, poll_interval=0)


@pytest.fixture
def services(store):
    return Services(store)


@pytest.fixture
def users(store):
    return UserService(store)


@pytest.fixture
def admin(users):
    return users.ensure_default_admin(TestingConfig)


@pytest.fixture
def operator(users, admin):
    return users.create_user(
        {"username": "ravi", "password": STAFF_PASSWORD, "fullName": "Ravi Kumar", "role": ROLE_COMPUTER_OPERATOR},
        admin,
    )


@pytest.fixture
def inspector(users, admin):
    return users.create_user(
        {"username": "priya", "password": STAFF_PASSWORD, "fullName": "Priya Das", "role": ROLE_INSPECTOR},
        admin,
    )


@pytest.fixture
def file_service(store):
    return FileService(store, today=lambda: TODAY)


@pytest.fixture
def invoice_service(store):
    return InvoiceService(store, today=lambda: TODAY)


@pytest.fixture
def bank_service(store):
    return BankService(store)


def file_form(**overrides):
    form = {
        "clientFirstName": "Anil",
        "clientLastName": "Sharma",
        "description": "Residential flat, 2 BHK",
        "propertyValue": "4500000",
        "bankName": "STATE BANK OF INDIA",
        "branchName": "Park Street",
        "reportMaker": "Ravi Kumar",
        "inspectedBy": "Priya Das",
    }
    form.update(overrides)
    return form


def invoice_form(**overrides):
    form = {
        "invoiceDate": "2025-05-10",
        "dueDate": "2025-06-09",
        "clientFirstName": "Anil",
        "clientLastName": "Sharma",
        "bankName": "STATE BANK OF INDIA",
        "branchName": "Park Street",
        "reportMaker": "Ravi Kumar",
        "inspectedBy": "Priya Das",
        "professionalFees": "10000",
        "advance": "2000",
        "gstApplicable": True,
    }
    form.update(overrides)
    return form


def login(client, username="admin", password=ADMIN_PASSWORD):
    return client.post("/api/auth/login", json={"username": username, "password": password})
