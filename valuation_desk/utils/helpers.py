"""
Helper functions for the Valuation Desk.

This module contains formatting, date and audit-note utilities used across the
application.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from valuation_desk.models.entities import MONEY_QUANTUM, to_decimal


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Current UTC timestamp in ISO format"""
    return utc_now().isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO date or timestamp into a naive UTC datetime.

    Missing or unparseable values sort first (``datetime.min``).
    """
    if value is None or value == "":
        return datetime.min
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            try:
                parsed = datetime.strptime(text, "%d/%m/%Y")
            except ValueError:
                return datetime.min
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_date(value: Any) -> Optional[date]:
    """Parse a date-like value; None when missing or invalid"""
    parsed = parse_timestamp(value)
    if parsed == datetime.min:
        return None
    return parsed.date()


def note_date_label(on: Optional[date] = None) -> str:
    """Audit-note date in DD/MM/YYYY form"""
    return (on or date.today()).strftime("%d/%m/%Y")


def audit_line(actor_name: Optional[str], action: str, on: Optional[date] = None) -> str:
    """One line of the audit trail: ``DD/MM/YYYY - {user} {action}``"""
    return f"{note_date_label(on)} - {actor_name or 'User'} {action}"


def append_note(existing: Optional[str], *lines: str) -> str:
    """Append lines to a newline-delimited notes log"""
    new_lines = [line for line in lines if line]
    if not new_lines:
        return existing or ""
    addition = "\n".join(new_lines)
    return f"{existing}\n{addition}" if existing else addition


def _group_indian(integer_part: str) -> str:
    if len(integer_part) <= 3:
        return integer_part
    head, tail = integer_part[:-3], integer_part[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_amount(amount: Any) -> str:
    """Amount with Indian digit grouping and two decimals, e.g. ``12,34,567.50``"""
    value = to_decimal(amount)
    if value is None:
        value = Decimal("0")
    value = value.quantize(MONEY_QUANTUM)
    sign = "-" if value < 0 else ""
    integer_part, _, fraction = format(abs(value), "f").partition(".")
    return f"{sign}{_group_indian(integer_part)}.{fraction or '00'}"


def format_currency(amount: Any) -> str:
    """Format an amount in rupees for display"""
    return f"₹{format_amount(amount)}"


def new_record_id(prefix: str, existing_ids=()) -> str:
    """Timestamp-derived id such as ``file_1735712345678``, unique within ``existing_ids``"""
    taken = set(existing_ids)
    stamp = int(utc_now().timestamp() * 1000)
    candidate = f"{prefix}_{stamp}"
    while candidate in taken:
        stamp += 1
        candidate = f"{prefix}_{stamp}"
    return candidate


def change_description(label: str, old: Any, new: Any) -> str:
    """Readable history entry for one edited field"""
    return f'changed {label} from "{old or "Not set"}" to "{new or ""}"'
