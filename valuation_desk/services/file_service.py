"""
File service: form-submission logic for valuation files.

Every mutation validates its input, appends a dated line to the file's audit
notes and goes through the record store.
"""

from dataclasses import fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from valuation_desk.models.entities import FILE_STATUS_LABELS, FILE_STATUSES, FILES_KEY, User, ValuationFile, join_name
from valuation_desk.services.access import ensure_can_edit, ensure_can_view, visible_records
from valuation_desk.services.numbering import generate_file_number
from valuation_desk.services.record_store import RecordStore
from valuation_desk.services.search_service import FileCriteria, Page, filter_options, search_files
from valuation_desk.utils.form_validators import form_validator
from valuation_desk.utils.helpers import (
    append_note,
    audit_line,
    change_description,
    format_currency,
    new_record_id,
    now_iso,
)
from valuation_desk.utils.logging_config import get_logger, log_business_event
from valuation_desk.utils.validators import ValidationError

FILE_FIELDS = {f.name for f in fields(ValuationFile)}


def actor_name(actor: Optional[User]) -> str:
    return actor.full_name if actor and actor.full_name else "User"


class FileService:
    """Create, edit and list valuation files"""

    def __init__(self, store: RecordStore, today: Callable[[], date] = date.today):
        self.store = store
        self.today = today
        self.logger = get_logger("services.files")

    # Reads
    def all_files(self) -> List[ValuationFile]:
        return self.store.list(FILES_KEY)

    def visible_files(self, actor: Optional[User]) -> List[ValuationFile]:
        return visible_records(actor, self.all_files())

    def list_files(
        self,
        actor: Optional[User],
        criteria: Optional[FileCriteria] = None,
        sort_key: str = "created",
        order: str = "desc",
        page: int = 1,
        page_size: int = 15,
        now: Optional[datetime] = None,
    ) -> Page[ValuationFile]:
        return search_files(self.visible_files(actor), criteria, sort_key, order, page, page_size, now)

    def get_file(self, file_id: str, actor: Optional[User]) -> ValuationFile:
        record = self.store.get(FILES_KEY, file_id)
        ensure_can_view(actor, record)
        return record

    def filter_options(self, actor: Optional[User]) -> Dict[str, List[str]]:
        return filter_options(self.visible_files(actor))

    def next_file_number(self, on: Optional[date] = None) -> str:
        """Number the next file would receive; nothing is reserved"""
        return generate_file_number(self.all_files(), on or self.today())

    # Mutations
    def create_file(self, draft: Dict[str, Any], actor: Optional[User]) -> ValuationFile:
        """
        Validate a file form and store the new file

        The file number is generated here once and never recomputed.

        Raises:
            ValidationError: If the form is invalid
        """
        data = form_validator.validate_file_form(draft)
        existing = self.all_files()
        today = self.today()
        timestamp = now_iso()

        record = ValuationFile(
            id=new_record_id("file", (f.id for f in existing)),
            file_number=generate_file_number(existing, today),
            **{key: value for key, value in data.items() if key in FILE_FIELDS and value is not None},
        )
        record.file_date = data.get("file_date") or today.isoformat()
        record.created_at = timestamp
        record.updated_at = timestamp
        record.created_by = actor.id if actor else None
        record.created_by_name = actor.full_name if actor else None
        record.notes = audit_line(actor_name(actor), f"created file {record.file_number}", today)

        self.store.add(FILES_KEY, record)
        log_business_event(
            "file_created",
            "file",
            record.id,
            file_number=record.file_number,
            created_by=record.created_by,
        )
        return record

    def _history(self, record: ValuationFile, data: Dict[str, Any], actor: Optional[User]) -> List[str]:
        today = self.today()
        who = actor_name(actor)
        lines = []

        name_parts = ("client_first_name", "client_middle_name", "client_last_name")
        if any(part in data for part in name_parts):
            old_name = record.client_name
            new_name = join_name(*(data.get(part, getattr(record, part)) for part in name_parts))
            if old_name != new_name:
                lines.append(audit_line(who, change_description("client name", old_name, new_name), today))

        for attr, label in (
            ("client_address", "client address"),
            ("bank_name", "bank name"),
            ("branch_name", "branch name"),
            ("description", "property description"),
        ):
            if attr in data and (data[attr] or "") != (getattr(record, attr) or ""):
                lines.append(audit_line(who, change_description(label, getattr(record, attr), data[attr]), today))

        if "property_value" in data and data["property_value"] != record.property_value:
            old_value = format_currency(record.property_value) if record.property_value is not None else None
            new_value = format_currency(data["property_value"]) if data["property_value"] is not None else None
            lines.append(audit_line(who, change_description("property value", old_value, new_value), today))

        if "status" in data and data["status"] and data["status"] != record.status:
            lines.append(self._status_line(record.status, data["status"], who, today))

        return lines

    @staticmethod
    def _status_line(old_status: str, new_status: str, who: str, on: date) -> str:
        old_label = FILE_STATUS_LABELS.get(old_status, old_status)
        new_label = FILE_STATUS_LABELS.get(new_status, new_status)
        return audit_line(who, f'changed status from "{old_label}" to "{new_label}"', on)

    def update_file(self, file_id: str, changes: Dict[str, Any], actor: Optional[User]) -> ValuationFile:
        """
        Apply an edit form to a file

        The id, number and creation stamp never change. Edited fields are
        recorded in the audit notes.
        """
        record = self.store.get(FILES_KEY, file_id)
        ensure_can_edit(actor, record)
        data = form_validator.validate_file_form(changes, partial=True)

        history = self._history(record, data, actor)
        for key, value in data.items():
            # a blank optional date keeps its value; a blank invoice amount clears it
            if key in FILE_FIELDS and (value is not None or key == "invoice_amount"):
                setattr(record, key, value)
        record.updated_at = now_iso()
        record.notes = append_note(record.notes, *history)

        self._warn_if_completed_without_amount(record)
        self.store.update(FILES_KEY, record)
        log_business_event("file_updated", "file", record.id, changed_fields=sorted(data.keys()))
        return record

    def _warn_if_completed_without_amount(self, record: ValuationFile) -> None:
        if record.status == "completed" and record.invoice_amount is None:
            self.logger.warning(
                "File marked completed without an invoice amount",
                extra={"category": "file_completed_unbilled", "file_id": record.id, "file_number": record.file_number},
            )

    def change_status(self, file_id: str, status: str, actor: Optional[User]) -> ValuationFile:
        if status not in FILE_STATUSES:
            raise ValidationError(
                f"Invalid status. Allowed values: {', '.join(FILE_STATUSES)}", "status", "INVALID_VALUE"
            )
        record = self.store.get(FILES_KEY, file_id)
        ensure_can_edit(actor, record)

        old_status = record.status
        if old_status == status:
            return record

        record.status = status
        record.updated_at = now_iso()
        record.notes = append_note(record.notes, self._status_line(old_status, status, actor_name(actor), self.today()))

        self._warn_if_completed_without_amount(record)
        self.store.update(FILES_KEY, record)
        log_business_event("file_status_changed", "file", record.id, old_status=old_status, new_status=status)
        return record

    def add_note(self, file_id: str, note: str, actor: Optional[User]) -> ValuationFile:
        data = form_validator.validate_note_form({"note": note})
        record = self.store.get(FILES_KEY, file_id)
        ensure_can_edit(actor, record)

        record.notes = append_note(record.notes, audit_line(actor_name(actor), f"added note: {data['note']}", self.today()))
        record.updated_at = now_iso()
        self.store.update(FILES_KEY, record)
        return record

    def link_invoice(self, file_id: str, invoice_id: str, amount: Optional[Decimal]) -> ValuationFile:
        """Record that an invoice bills this file, and for how much"""
        record = self.store.get(FILES_KEY, file_id)
        if invoice_id not in record.linked_invoices:
            record.linked_invoices.append(invoice_id)
        if amount is not None:
            record.invoice_amount = amount
        record.updated_at = now_iso()
        self.store.update(FILES_KEY, record)
        log_business_event("file_invoice_linked", "file", record.id, invoice_id=invoice_id)
        return record

    def unlink_invoice(self, file_id: str, invoice_id: str) -> Optional[ValuationFile]:
        record = self.store.find(FILES_KEY, file_id)
        if record is None or invoice_id not in record.linked_invoices:
            return record
        record.linked_invoices = [linked for linked in record.linked_invoices if linked != invoice_id]
        record.updated_at = now_iso()
        self.store.update(FILES_KEY, record)
        return record

    def delete_file(self, file_id: str, actor: Optional[User], confirmed: bool = False) -> ValuationFile:
        """
        Delete a file

        Raises:
            ConfirmationRequiredError: Unless ``confirmed`` is set
        """
        record = self.store.get(FILES_KEY, file_id)
        ensure_can_edit(actor, record)
        removed = self.store.remove(FILES_KEY, file_id, confirmed=confirmed)
        log_business_event(
            "file_deleted", "file", removed.id, file_number=removed.file_number, deleted_by=actor.id if actor else None
        )
        return removed
