"""
Reference numbers for valuation files and invoices.

Numbers follow the Indian financial year (April to March) and a serial taken
from the most recently created sibling record, so no central counter is kept:

- files:                FILE/001/25-26
- invoices with GST:    01/25-26
- invoices without GST: SBI/01/25-26

Everything here is a pure function of the sibling records, the draft fields and
the date; regenerating a number for the same inputs gives the same string.
"""

import re
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence

from valuation_desk.models.entities import BANK_ABBREVIATIONS, Invoice, ValuationFile, join_name
from valuation_desk.utils.helpers import parse_timestamp

FILE_PREFIX = "FILE"
FILE_SERIAL_WIDTH = 3
INVOICE_SERIAL_WIDTH = 2

PLACEHOLDER_BANK = "BNK"
PLACEHOLDER_CLIENT = "CLT"
PLACEHOLDER_INSPECTOR = "INS"
PLACEHOLDER_MAKER = "MKR"

_DIGIT_RUN = re.compile(r"(\d+)")


def financial_year(on: Optional[date] = None) -> str:
    """
    Financial year token for a date, e.g. ``"25-26"``.

    April onwards belongs to the year starting that April; January to March
    belongs to the year that started the previous April.
    """
    on = on or date.today()
    if isinstance(on, datetime):
        on = on.date()
    start = on.year if on.month >= 4 else on.year - 1
    return f"{start % 100:02d}-{(start + 1) % 100:02d}"


def short_form(name: Optional[str], is_bank: bool = False, placeholder: str = "") -> str:
    """Uppercase initials of each word; known banks use their usual abbreviation"""
    if not name or not name.strip():
        return placeholder
    if is_bank:
        known = BANK_ABBREVIATIONS.get(" ".join(name.upper().split()))
        if known:
            return known
    return "".join(word[0] for word in name.split()).upper()


def extract_serial(reference: Optional[str]) -> Optional[int]:
    """First run of digits in a reference, or None"""
    if not reference:
        return None
    match = _DIGIT_RUN.search(reference)
    if not match:
        return None
    return int(match.group(1))


def latest_by_creation(records: Iterable) -> Optional[object]:
    """Most recently created record (stable: the first of equal timestamps wins)"""
    ordered = sorted(records, key=lambda r: parse_timestamp(getattr(r, "created_at", None)), reverse=True)
    return ordered[0] if ordered else None


def next_serial(siblings: Sequence) -> int:
    """
    Serial for a new record given its same-kind siblings.

    The most recent sibling's reference decides; anything unparseable counts as
    no prior record.
    """
    latest = latest_by_creation(siblings)
    if latest is None:
        return 1
    last = extract_serial(getattr(latest, "reference", None))
    return 1 if last is None else last + 1


def generate_file_number(files: Sequence[ValuationFile], on: Optional[date] = None) -> str:
    """``FILE/{serial:03}/{financial year}``"""
    serial = next_serial(files)
    return f"{FILE_PREFIX}/{serial:0{FILE_SERIAL_WIDTH}d}/{financial_year(on)}"


def gst_bucket(invoices: Sequence[Invoice], gst_applicable: bool) -> List[Invoice]:
    return [inv for inv in invoices if bool(inv.gst_applicable) == bool(gst_applicable)]


def generate_invoice_number(
    invoices: Sequence[Invoice],
    gst_applicable: bool,
    bank_name: Optional[str] = None,
    on: Optional[date] = None,
) -> str:
    """
    Invoice number for a draft.

    GST invoices share one bank-agnostic series ``NN/FY``; other invoices are
    numbered ``BANK/NN/FY`` from the series of non-GST invoices.
    """
    serial = next_serial(gst_bucket(invoices, gst_applicable))
    fy = financial_year(on)
    if gst_applicable:
        return f"{serial:0{INVOICE_SERIAL_WIDTH}d}/{fy}"
    bank_short = short_form(bank_name, is_bank=True, placeholder=PLACEHOLDER_BANK)
    return f"{bank_short}/{serial:0{INVOICE_SERIAL_WIDTH}d}/{fy}"


def reference_initials(
    bank_name: Optional[str],
    client_first_name: Optional[str] = None,
    client_middle_name: Optional[str] = None,
    client_last_name: Optional[str] = None,
    inspected_by: Optional[str] = None,
    report_maker: Optional[str] = None,
) -> dict:
    """Short forms for the parties named on a file or invoice, with placeholders for blanks"""
    return {
        "bank": short_form(bank_name, is_bank=True, placeholder=PLACEHOLDER_BANK),
        "client": short_form(
            join_name(client_first_name, client_middle_name, client_last_name), placeholder=PLACEHOLDER_CLIENT
        ),
        "inspector": short_form(inspected_by, placeholder=PLACEHOLDER_INSPECTOR),
        "maker": short_form(report_maker, placeholder=PLACEHOLDER_MAKER),
    }
