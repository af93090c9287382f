"""
Tests for receiving bank accounts.
"""

import pytest

from valuation_desk.services.access import PermissionDeniedError
from valuation_desk.services.record_store import ConfirmationRequiredError, RecordNotFoundError
from valuation_desk.utils.validators import ValidationError


def bank_form(**overrides):
    form = {
        "bankName": "STATE BANK OF INDIA",
        "branchName": "Park Street",
        "accountNumber": "30012345678",
        "ifscCode": "sbin0001234",
        "accountHolderName": "S. Sen & Associates",
    }
    form.update(overrides)
    return form


def test_add_bank_normalises_ifsc(bank_service, operator):
    bank = bank_service.add_bank(bank_form(), operator)
    assert bank.ifsc_code == "SBIN0001234"
    assert bank.account_type == "Current"
    assert bank.is_default is False


def test_holder_name_is_required(bank_service, operator):
    with pytest.raises(ValidationError) as exc_info:
        bank_service.add_bank(bank_form(accountHolderName=""), operator)
    assert "account_holder_name" in exc_info.value.errors


def test_invalid_ifsc_is_rejected(bank_service, operator):
    with pytest.raises(ValidationError) as exc_info:
        bank_service.add_bank(bank_form(ifscCode="SBIN1234"), operator)
    assert "ifsc_code" in exc_info.value.errors


def test_only_one_default_bank(bank_service, operator):
    first = bank_service.add_bank(bank_form(isDefault=True), operator)
    second = bank_service.add_bank(bank_form(bankName="HDFC BANK", ifscCode="HDFC0004321", isDefault=True), operator)

    banks = {bank.id: bank for bank in bank_service.list_banks()}
    assert banks[first.id].is_default is False
    assert banks[second.id].is_default is True
    assert bank_service.get_default_bank().id == second.id

    bank_service.set_default_bank(first.id, operator)
    assert bank_service.get_default_bank().id == first.id
    assert [bank.id for bank in bank_service.list_banks() if bank.is_default] == [first.id]


def test_default_bank_falls_back_to_first(bank_service, operator):
    assert bank_service.get_default_bank() is None
    first = bank_service.add_bank(bank_form(), operator)
    assert bank_service.get_default_bank().id == first.id


def test_update_bank(bank_service, operator):
    bank = bank_service.add_bank(bank_form(), operator)
    updated = bank_service.update_bank(bank.id, {"branchName": "Salt Lake"}, operator)
    assert updated.branch_name == "Salt Lake"
    assert updated.account_number == "30012345678"

    with pytest.raises(RecordNotFoundError):
        bank_service.update_bank("bank_missing", {"branchName": "x"}, operator)


def test_inspector_cannot_manage_banks(bank_service, inspector):
    with pytest.raises(PermissionDeniedError):
        bank_service.add_bank(bank_form(), inspector)


def test_delete_bank_needs_confirmation(bank_service, admin):
    bank = bank_service.add_bank(bank_form(), admin)
    with pytest.raises(ConfirmationRequiredError):
        bank_service.delete_bank(bank.id, admin)
    bank_service.delete_bank(bank.id, admin, confirmed=True)
    assert bank_service.list_banks() == []
