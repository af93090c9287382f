"""
Tests for user accounts, sign-in and roles.
"""

import pytest

from conftest import ADMIN_PASSWORD, STAFF_PASSWORD
from valuation_desk.services.access import PermissionDeniedError
from valuation_desk.services.record_store import ConfirmationRequiredError
from valuation_desk.utils.validators import ValidationError


def test_default_admin(admin):
    assert admin.username == "admin"
    assert admin.role == "admin"
    assert admin.password_hash and admin.password_hash != ADMIN_PASSWORD


def test_authenticate(users, store, operator):
    assert users.authenticate("RAVI", STAFF_PASSWORD).id == operator.id
    assert store.get_current_user()["username"] == "ravi"
    assert users.authenticate("ravi", "wrong") is None
    assert users.authenticate("nobody", STAFF_PASSWORD) is None


def test_inactive_user_cannot_sign_in(users, admin, operator):
    users.set_active(operator.id, False, admin)
    assert users.authenticate("ravi", STAFF_PASSWORD) is None


def test_logout_clears_current_user(users, store, operator):
    users.authenticate("ravi", STAFF_PASSWORD)
    users.logout(operator)
    assert store.get_current_user() is None


def test_duplicate_username(users, admin, operator):
    with pytest.raises(ValidationError) as exc_info:
        users.create_user({"username": "Ravi", "password": STAFF_PASSWORD, "fullName": "Another Ravi"}, admin)
    assert exc_info.value.code == "DUPLICATE"


def test_short_password_rejected(users, admin):
    with pytest.raises(ValidationError):
        users.create_user({"username": "mina", "password": "123", "fullName": "Mina Pal"}, admin)


def test_only_admin_creates_users(users, operator):
    with pytest.raises(PermissionDeniedError):
        users.create_user({"username": "mina", "password": STAFF_PASSWORD, "fullName": "Mina Pal"}, operator)


def test_users_see_only_their_own_profile(users, operator, inspector, admin):
    assert users.get_user(operator.id, operator).id == operator.id
    assert users.get_user(operator.id, admin).id == operator.id
    with pytest.raises(PermissionDeniedError):
        users.get_user(operator.id, inspector)


def test_update_profile(users, store, operator):
    users.authenticate("ravi", STAFF_PASSWORD)
    updated = users.update_profile(operator.id, {"fullName": "Ravi K. Sen", "phone": "+91 98300 12345"}, operator)
    assert updated.full_name == "Ravi K. Sen"
    assert store.get_current_user()["fullName"] == "Ravi K. Sen"


def test_change_role(users, admin, operator):
    assert users.change_role(operator.id, "inspector", admin).role == "inspector"
    with pytest.raises(ValidationError):
        users.change_role(operator.id, "superuser", admin)


def test_change_own_password_needs_current(users, operator):
    with pytest.raises(ValidationError):
        users.change_password(operator.id, "newsecret", operator, current_password="wrong")

    users.change_password(operator.id, "newsecret", operator, current_password=STAFF_PASSWORD)
    assert users.authenticate("ravi", "newsecret") is not None


def test_admin_resets_password(users, admin, operator):
    users.change_password(operator.id, "resetpass", admin)
    assert users.authenticate("ravi", "resetpass") is not None


def test_admin_cannot_deactivate_or_delete_self(users, admin):
    with pytest.raises(ValidationError):
        users.set_active(admin.id, False, admin)
    with pytest.raises(ValidationError):
        users.delete_user(admin.id, admin, confirmed=True)


def test_delete_user_needs_confirmation(users, admin, operator):
    with pytest.raises(ConfirmationRequiredError):
        users.delete_user(operator.id, admin)
    users.delete_user(operator.id, admin, confirmed=True)
    assert users.find_by_username("ravi") is None
