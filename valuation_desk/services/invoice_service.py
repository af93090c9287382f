"""
Invoice service: form-submission logic for invoices.

Invoices are numbered once at creation. ``total`` is kept equal to
``professional_fees - advance``; GST is always derived on demand by
``services.tax`` and never stored.
"""

from dataclasses import fields
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from valuation_desk.models.entities import (
    FILES_KEY,
    INVOICE_STATUS_LABELS,
    INVOICE_STATUSES,
    INVOICES_KEY,
    Invoice,
    User,
    join_name,
)
from valuation_desk.services.access import ensure_can_edit, ensure_can_view, visible_records
from valuation_desk.services.file_service import FileService, actor_name
from valuation_desk.services.numbering import generate_invoice_number, reference_initials
from valuation_desk.services.record_store import RecordStore
from valuation_desk.services.search_service import InvoiceCriteria, Page, search_invoices
from valuation_desk.services.tax import GstBreakdown, base_amount, calculate_gst, invoice_tax
from valuation_desk.utils.form_validators import form_validator
from valuation_desk.utils.helpers import (
    append_note,
    audit_line,
    change_description,
    format_amount,
    format_currency,
    new_record_id,
    note_date_label,
    now_iso,
    parse_date,
)
from valuation_desk.utils.logging_config import get_logger, log_business_event
from valuation_desk.utils.validators import ValidationError

INVOICE_FIELDS = {f.name for f in fields(Invoice)}
OPEN_STATUSES = ("pending", "partially_paid")
SETTLED_STATUSES = ("paid", "cancelled")


def is_overdue(invoice: Invoice, today: date) -> bool:
    """Marked overdue, or still pending after its due date"""
    if invoice.status == "overdue":
        return True
    due = parse_date(invoice.due_date)
    return invoice.status == "pending" and due is not None and due < today


def outstanding_amount(invoice: Invoice) -> Decimal:
    remaining = invoice.total - invoice.amount_paid
    return remaining if remaining > 0 else Decimal("0")


class InvoiceService:
    """Create, edit and list invoices"""

    def __init__(self, store: RecordStore, today: Callable[[], date] = date.today):
        self.store = store
        self.today = today
        self.files = FileService(store, today)
        self.logger = get_logger("services.invoices")

    # Reads
    def all_invoices(self) -> List[Invoice]:
        return self.store.list(INVOICES_KEY)

    def visible_invoices(self, actor: Optional[User]) -> List[Invoice]:
        return visible_records(actor, self.all_invoices())

    def list_invoices(
        self,
        actor: Optional[User],
        criteria: Optional[InvoiceCriteria] = None,
        sort_key: str = "date",
        order: str = "desc",
        page: int = 1,
        page_size: int = 50,
    ) -> Page[Invoice]:
        return search_invoices(self.visible_invoices(actor), criteria, sort_key, order, page, page_size)

    def get_invoice(self, invoice_id: str, actor: Optional[User]) -> Invoice:
        record = self.store.get(INVOICES_KEY, invoice_id)
        ensure_can_view(actor, record)
        return record

    def next_invoice_number(self, draft: Dict[str, Any], on: Optional[date] = None) -> Dict[str, Any]:
        """
        Number a draft would receive, plus the short forms of its parties

        Nothing is reserved; the number is generated again when the invoice is saved.
        """
        gst_applicable = form_validator.validate_boolean_param(
            draft.get("gstApplicable", draft.get("gst_applicable")), "gst_applicable"
        )
        bank_name = draft.get("bankName", draft.get("bank_name"))
        number = generate_invoice_number(self.all_invoices(), gst_applicable, bank_name, on or self.today())
        initials = reference_initials(
            bank_name,
            draft.get("clientFirstName", draft.get("client_first_name")),
            draft.get("clientMiddleName", draft.get("client_middle_name")),
            draft.get("clientLastName", draft.get("client_last_name")),
            draft.get("inspectedBy", draft.get("inspected_by")),
            draft.get("reportMaker", draft.get("report_maker")),
        )
        return {"invoiceNumber": number, "gstApplicable": gst_applicable, "initials": initials}

    def tax_breakdown(self, invoice: Invoice) -> GstBreakdown:
        return invoice_tax(invoice)

    def tax_preview(self, draft: Dict[str, Any]) -> GstBreakdown:
        """GST for unsaved form values"""
        data = form_validator.validate_invoice_form(draft, partial=True)
        return calculate_gst(
            base_amount(data.get("professional_fees"), data.get("advance")),
            data.get("gst_applicable", False),
            data.get("gst_type") or "CGST_SGST",
            data.get("cgst_rate", Decimal("9")),
            data.get("sgst_rate", Decimal("9")),
            data.get("igst_rate", Decimal("18")),
        )

    # Mutations
    def create_invoice(self, draft: Dict[str, Any], actor: Optional[User], as_draft: bool = False) -> Invoice:
        """
        Validate an invoice form and store the new invoice

        Args:
            draft: Form data
            actor: Creating user
            as_draft: Save with status ``draft`` instead of ``pending``. Required
                fields may be left out of a draft; the values given are still checked.

        Raises:
            ValidationError: If the form is invalid
            PermissionDeniedError: If a linked file is not editable by ``actor``
        """
        data = form_validator.validate_invoice_form(draft, partial=as_draft)
        existing = self.all_invoices()
        today = self.today()
        timestamp = now_iso()
        if as_draft:
            data["invoice_date"] = data.get("invoice_date") or today.isoformat()

        record = Invoice(
            id=new_record_id("invoice", (inv.id for inv in existing)),
            invoice_number=generate_invoice_number(
                existing, data.get("gst_applicable") or False, data.get("bank_name"), today
            ),
            **{
                key: value
                for key, value in data.items()
                if key in INVOICE_FIELDS and key != "status" and value is not None
            },
        )
        record.status = "draft" if as_draft else "pending"
        record.recompute_total()
        record.amount_paid = Decimal("0")
        record.created_at = timestamp
        record.updated_at = timestamp
        record.created_by = actor.id if actor else None
        record.created_by_name = actor.full_name if actor else None
        record.notes = audit_line(
            actor_name(actor), f"created invoice {record.invoice_number} for {format_currency(record.total)}", today
        )

        self._check_linkable_files(record.linked_file_ids, actor)
        self.store.add(INVOICES_KEY, record)
        self._link_files_to(record)

        log_business_event(
            "invoice_created",
            "invoice",
            record.id,
            invoice_number=record.invoice_number,
            total=format_amount(record.total),
            draft=as_draft,
        )
        return record

    def _check_linkable_files(self, file_ids: List[str], actor: Optional[User]) -> None:
        """Every linked file must exist and be editable by ``actor``"""
        found = {file_id: self.store.find(FILES_KEY, file_id) for file_id in file_ids}
        missing = [file_id for file_id, record in found.items() if record is None]
        if missing:
            raise ValidationError(f"Unknown file(s): {', '.join(missing)}", "file_id", "NOT_FOUND")
        for record in found.values():
            ensure_can_edit(actor, record)

    def _link_files_to(self, record: Invoice) -> None:
        for file_id in record.linked_file_ids:
            amount = record.total if file_id == record.file_id else None
            self.files.link_invoice(file_id, record.id, amount)

    def _history(self, record: Invoice, data: Dict[str, Any], new_total: Decimal, actor: Optional[User]) -> List[str]:
        today = self.today()
        who = actor_name(actor)
        lines = []

        name_parts = ("client_first_name", "client_middle_name", "client_last_name")
        if any(part in data for part in name_parts):
            new_name = join_name(*(data.get(part, getattr(record, part)) for part in name_parts))
            if new_name != record.client_name:
                lines.append(audit_line(who, change_description("client name", record.client_name, new_name), today))

        for attr, label in (
            ("client_address", "client address"),
            ("bank_name", "bank name"),
            ("branch_name", "branch name"),
            ("description", "service description"),
        ):
            if attr in data and (data[attr] or "") != (getattr(record, attr) or ""):
                lines.append(audit_line(who, change_description(label, getattr(record, attr), data[attr]), today))

        if new_total != record.total:
            lines.append(
                audit_line(
                    who,
                    f"changed total amount from {format_currency(record.total)} to {format_currency(new_total)}",
                    today,
                )
            )
        return lines

    def update_invoice(self, invoice_id: str, changes: Dict[str, Any], actor: Optional[User]) -> Invoice:
        """
        Apply an edit form to an invoice

        The number is never regenerated, even if the bank or GST flag changes.
        Status changes go through ``change_status``.
        """
        record = self.store.get(INVOICES_KEY, invoice_id)
        ensure_can_edit(actor, record)
        data = form_validator.validate_invoice_form(changes, partial=True)
        data.pop("status", None)

        fees = data.get("professional_fees", record.professional_fees)
        advance = data.get("advance", record.advance)
        new_total = fees - advance if ("professional_fees" in data or "advance" in data) else record.total

        history = self._history(record, data, new_total, actor)
        old_links = set(record.linked_file_ids)
        for key, value in data.items():
            if key in INVOICE_FIELDS and (value is not None or key in ("file_id", "due_date")):
                setattr(record, key, value)
        record.recompute_total()
        record.updated_at = now_iso()
        record.notes = append_note(record.notes, *history)

        self._check_linkable_files([fid for fid in record.linked_file_ids if fid not in old_links], actor)
        self.store.update(INVOICES_KEY, record)
        for file_id in old_links - set(record.linked_file_ids):
            self.files.unlink_invoice(file_id, record.id)
        self._link_files_to(record)

        log_business_event("invoice_updated", "invoice", record.id, changed_fields=sorted(data.keys()))
        return record

    def _status_line(self, old_status: str, new_status: str, actor: Optional[User], suffix: str = "") -> str:
        old_label = INVOICE_STATUS_LABELS.get(old_status, old_status)
        new_label = INVOICE_STATUS_LABELS.get(new_status, new_status)
        return audit_line(actor_name(actor), f'changed status from "{old_label}" to "{new_label}"{suffix}', self.today())

    def change_status(
        self, invoice_id: str, status: str, actor: Optional[User], payment_date: Optional[str] = None
    ) -> Invoice:
        """
        Move an invoice to a new status

        ``paid`` stamps the payment date (given, or now); every other status clears it.
        """
        if status not in INVOICE_STATUSES:
            raise ValidationError(
                f"Invalid status. Allowed values: {', '.join(INVOICE_STATUSES)}", "status", "INVALID_VALUE"
            )
        record = self.store.get(INVOICES_KEY, invoice_id)
        ensure_can_edit(actor, record)

        old_status = record.status
        if status == "paid":
            record.payment_date = payment_date or now_iso()
        else:
            record.payment_date = None
        record.status = status
        record.updated_at = now_iso()
        if old_status != status:
            record.notes = append_note(record.notes, self._status_line(old_status, status, actor))

        self.store.update(INVOICES_KEY, record)
        log_business_event("invoice_status_changed", "invoice", record.id, old_status=old_status, new_status=status)
        return record

    def record_partial_payment(self, invoice_id: str, amount: Any, actor: Optional[User]) -> Invoice:
        """
        Record a payment smaller than what is still owed

        Raises:
            ValidationError: Unless 0 < amount < outstanding amount, or if the
                invoice is already paid or cancelled
        """
        data = form_validator.validate_payment_form({"amount": amount})
        record = self.store.get(INVOICES_KEY, invoice_id)
        ensure_can_edit(actor, record)
        if record.status in SETTLED_STATUSES:
            label = INVOICE_STATUS_LABELS.get(record.status, record.status)
            raise ValidationError(
                f"Cannot record a payment on an invoice that is {label.lower()}", "status", "INVALID_STATUS"
            )

        paid = data["amount"]
        remaining = outstanding_amount(record)
        if paid >= remaining:
            raise ValidationError(
                f"A partial payment must be less than the outstanding amount of {format_currency(remaining)}",
                "amount",
                "INVALID_VALUE",
            )

        old_status = record.status
        record.amount_paid = record.amount_paid + paid
        record.status = "partially_paid"
        record.payment_date = None
        record.updated_at = now_iso()
        record.notes = append_note(
            record.notes,
            self._status_line(old_status, "partially_paid", actor, f" ({format_currency(paid)} paid)"),
        )

        self.store.update(INVOICES_KEY, record)
        log_business_event(
            "invoice_partial_payment",
            "invoice",
            record.id,
            amount=format_amount(paid),
            amount_paid=format_amount(record.amount_paid),
        )
        return record

    def update_due_date(self, invoice_id: str, due_date: Any, actor: Optional[User]) -> Invoice:
        data = form_validator.validate_due_date_form({"due_date": due_date})
        record = self.store.get(INVOICES_KEY, invoice_id)
        ensure_can_edit(actor, record)

        old_due = parse_date(record.due_date)
        new_due = parse_date(data["due_date"])
        old_label = note_date_label(old_due) if old_due else "None"
        record.due_date = data["due_date"]
        record.updated_at = now_iso()
        record.notes = append_note(
            record.notes,
            audit_line(actor_name(actor), f"updated due date from {old_label} to {note_date_label(new_due)}", self.today()),
        )
        self.store.update(INVOICES_KEY, record)
        return record

    def add_note(self, invoice_id: str, note: str, actor: Optional[User]) -> Invoice:
        data = form_validator.validate_note_form({"note": note})
        record = self.store.get(INVOICES_KEY, invoice_id)
        ensure_can_edit(actor, record)

        record.notes = append_note(record.notes, audit_line(actor_name(actor), f"added note: {data['note']}", self.today()))
        record.updated_at = now_iso()
        self.store.update(INVOICES_KEY, record)
        return record

    def link_files(
        self,
        invoice_id: str,
        primary_file_id: Optional[str],
        additional_file_ids: Optional[List[str]],
        actor: Optional[User],
    ) -> Invoice:
        """Point an invoice at its files and record the invoice on each file"""
        return self.update_invoice(
            invoice_id,
            {"file_id": primary_file_id or "", "additional_file_ids": list(additional_file_ids or [])},
            actor,
        )

    def delete_invoice(self, invoice_id: str, actor: Optional[User], confirmed: bool = False) -> Invoice:
        """
        Delete an invoice and drop it from its files' links

        Raises:
            ConfirmationRequiredError: Unless ``confirmed`` is set
        """
        record = self.store.get(INVOICES_KEY, invoice_id)
        ensure_can_edit(actor, record)
        removed = self.store.remove(INVOICES_KEY, invoice_id, confirmed=confirmed)
        for file_id in removed.linked_file_ids:
            self.files.unlink_invoice(file_id, removed.id)
        log_business_event(
            "invoice_deleted",
            "invoice",
            removed.id,
            invoice_number=removed.invoice_number,
            deleted_by=actor.id if actor else None,
        )
        return removed

    def mark_overdue(self, today: Optional[date] = None) -> List[Invoice]:
        """Flip pending invoices past their due date to ``overdue`` in one write"""
        today = today or self.today()
        invoices = self.all_invoices()
        flipped = []
        for record in invoices:
            if record.status == "pending" and is_overdue(record, today):
                record.status = "overdue"
                record.updated_at = now_iso()
                record.notes = append_note(
                    record.notes, audit_line("System", 'changed status from "Pending" to "Overdue"', today)
                )
                flipped.append(record)

        if flipped:
            self.store.replace_all(INVOICES_KEY, invoices)
            self.logger.info(
                "Marked invoices overdue",
                extra={"category": "invoices_overdue", "count": len(flipped), "invoice_ids": [r.id for r in flipped]},
            )
        return flipped
