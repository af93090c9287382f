"""
Bank service: the firm's receiving bank accounts.

At most one bank carries ``is_default``; setting it on one bank clears it on
every other bank in the same write.
"""

from dataclasses import fields
from typing import Any, Dict, List, Optional

from valuation_desk.models.entities import BANKS_KEY, Bank, User
from valuation_desk.services.access import ensure_can_manage_banks
from valuation_desk.services.record_store import RecordNotFoundError, RecordStore
from valuation_desk.utils.form_validators import form_validator
from valuation_desk.utils.helpers import new_record_id, now_iso
from valuation_desk.utils.logging_config import log_business_event

BANK_FIELDS = {f.name for f in fields(Bank)}


class BankService:
    """Manage receiving bank accounts"""

    def __init__(self, store: RecordStore):
        self.store = store

    def list_banks(self) -> List[Bank]:
        return self.store.list(BANKS_KEY)

    def get_bank(self, bank_id: str) -> Bank:
        return self.store.get(BANKS_KEY, bank_id)

    def get_default_bank(self) -> Optional[Bank]:
        """The flagged default bank, else the first bank, else None"""
        banks = self.list_banks()
        for bank in banks:
            if bank.is_default:
                return bank
        return banks[0] if banks else None

    def _save_with_default(self, banks: List[Bank], default_id: Optional[str]) -> None:
        if default_id is not None:
            for bank in banks:
                bank.is_default = bank.id == default_id
        self.store.replace_all(BANKS_KEY, banks)

    def add_bank(self, form: Dict[str, Any], actor: Optional[User]) -> Bank:
        """
        Validate and store a new bank account

        Raises:
            ValidationError: If the form is invalid (including a malformed IFSC code)
            PermissionDeniedError: If the actor may not manage banks
        """
        ensure_can_manage_banks(actor)
        data = form_validator.validate_bank_form(form)
        banks = self.list_banks()
        timestamp = now_iso()

        bank = Bank(
            id=new_record_id("bank", (b.id for b in banks)),
            **{key: value for key, value in data.items() if key in BANK_FIELDS and value is not None},
        )
        bank.created_at = timestamp
        bank.updated_at = timestamp

        banks.append(bank)
        self._save_with_default(banks, bank.id if bank.is_default else None)
        log_business_event("bank_added", "bank", bank.id, bank_name=bank.bank_name, is_default=bank.is_default)
        return bank

    def update_bank(self, bank_id: str, changes: Dict[str, Any], actor: Optional[User]) -> Bank:
        ensure_can_manage_banks(actor)
        data = form_validator.validate_bank_form(changes, partial=True)
        banks = self.list_banks()
        bank = next((b for b in banks if b.id == str(bank_id)), None)
        if bank is None:
            raise RecordNotFoundError(BANKS_KEY, str(bank_id))

        for key, value in data.items():
            if key in BANK_FIELDS and value is not None:
                setattr(bank, key, value)
        bank.updated_at = now_iso()

        self._save_with_default(banks, bank.id if data.get("is_default") else None)
        log_business_event("bank_updated", "bank", bank.id, changed_fields=sorted(data.keys()))
        return bank

    def set_default_bank(self, bank_id: str, actor: Optional[User]) -> Bank:
        """Make one bank the default; every other bank loses the flag"""
        ensure_can_manage_banks(actor)
        banks = self.list_banks()
        bank = next((b for b in banks if b.id == str(bank_id)), None)
        if bank is None:
            raise RecordNotFoundError(BANKS_KEY, str(bank_id))

        bank.updated_at = now_iso()
        self._save_with_default(banks, bank.id)
        log_business_event("bank_default_set", "bank", bank.id, bank_name=bank.bank_name)
        return bank

    def delete_bank(self, bank_id: str, actor: Optional[User], confirmed: bool = False) -> Bank:
        """
        Delete a bank account

        Raises:
            ConfirmationRequiredError: Unless ``confirmed`` is set
        """
        ensure_can_manage_banks(actor)
        removed = self.store.remove(BANKS_KEY, bank_id, confirmed=confirmed)
        log_business_event("bank_deleted", "bank", removed.id, bank_name=removed.bank_name)
        return removed
