"""
Search service: filter, sort and paginate record collections.

Everything here is a read-side projection. Criteria are optional and combine
with AND; text criteria are case-insensitive substring matches and range
criteria are inclusive. Sorts are stable, so records that tie keep their
collection order.
"""

import math
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from valuation_desk.models.entities import Invoice, ValuationFile
from valuation_desk.utils.helpers import parse_date, parse_timestamp

T = TypeVar("T")

DATE_PRESET_DAYS = {"week": 7, "month": 30}

FILE_SORT_KEYS = ["date", "created", "amount", "name", "status", "reference"]
INVOICE_SORT_KEYS = ["date", "amount", "client", "status", "reference"]


@dataclass(frozen=True)
class FileCriteria:
    """File list criteria; ``None`` leaves a field unconstrained"""

    search: Optional[str] = None
    status: Optional[str] = None
    bank_name: Optional[str] = None
    branch_name: Optional[str] = None
    inspected_by: Optional[str] = None
    description: Optional[str] = None
    client_first_name: Optional[str] = None
    client_middle_name: Optional[str] = None
    client_last_name: Optional[str] = None
    client_phone: Optional[str] = None
    client_email: Optional[str] = None
    date_preset: Optional[str] = None  # today, week, month
    date_from: Optional[Any] = None
    date_to: Optional[Any] = None
    amount_min: Optional[Decimal] = None
    amount_max: Optional[Decimal] = None

    @property
    def active(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) not in (None, "")}


@dataclass(frozen=True)
class InvoiceCriteria:
    """Invoice list criteria; ``None`` leaves a field unconstrained"""

    search: Optional[str] = None
    status: Optional[str] = None
    bank_name: Optional[str] = None
    gst_applicable: Optional[bool] = None
    date_from: Optional[Any] = None
    date_to: Optional[Any] = None
    amount_min: Optional[Decimal] = None
    amount_max: Optional[Decimal] = None

    @property
    def active(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) not in (None, "")}


@dataclass
class Page(Generic[T]):
    """One page of a filtered, sorted collection"""

    items: List[T]
    page: int
    page_size: int
    total_items: int
    total_pages: int

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    def to_dict(self, serialize: Callable[[T], Any]) -> Dict[str, Any]:
        return {
            "items": [serialize(item) for item in self.items],
            "page": self.page,
            "pageSize": self.page_size,
            "totalItems": self.total_items,
            "totalPages": self.total_pages,
            "hasPrev": self.has_prev,
            "hasNext": self.has_next,
        }


# Matching helpers
def _contains(haystack: Optional[str], needle: str) -> bool:
    return needle.lower() in (haystack or "").lower()


def _contains_any(values: Sequence[Optional[str]], needle: str) -> bool:
    return any(_contains(value, needle) for value in values)


def _in_range(value: Any, low: Any, high: Any) -> bool:
    if low is not None and (value is None or value < low):
        return False
    if high is not None and (value is None or value > high):
        return False
    return True


def file_amount(record: ValuationFile) -> Optional[Decimal]:
    """The amount a file is filtered and sorted by: its invoice amount, else its property value"""
    return record.invoice_amount if record.invoice_amount is not None else record.property_value


def file_date(record: ValuationFile) -> Optional[date]:
    return parse_date(record.file_date) or parse_date(record.created_at)


def _matches_preset(created_at: Optional[str], preset: str, now: datetime) -> bool:
    created = parse_timestamp(created_at)
    if created == datetime.min:
        return False
    if preset == "today":
        return created.date() == now.date()
    days = DATE_PRESET_DAYS.get(preset)
    if days is None:
        return True
    return created >= now - timedelta(days=days)


def _matches_file(record: ValuationFile, criteria: FileCriteria, now: datetime) -> bool:
    if criteria.status and record.status != criteria.status:
        return False
    if criteria.bank_name and record.bank_name != criteria.bank_name:
        return False
    if criteria.branch_name and record.branch_name != criteria.branch_name:
        return False
    if criteria.inspected_by and record.inspected_by != criteria.inspected_by:
        return False
    if criteria.description and not _contains(record.description, criteria.description):
        return False
    if criteria.search and not _contains_any(
        [record.file_number, record.client_name, record.description, record.report_maker, record.inspected_by],
        criteria.search,
    ):
        return False

    for attr in ("client_first_name", "client_middle_name", "client_last_name", "client_phone", "client_email"):
        needle = getattr(criteria, attr)
        if needle and not _contains(getattr(record, attr), needle):
            return False

    if criteria.date_preset and not _matches_preset(record.created_at, criteria.date_preset, now):
        return False
    if criteria.date_from or criteria.date_to:
        if not _in_range(file_date(record), parse_date(criteria.date_from), parse_date(criteria.date_to)):
            return False
    if criteria.amount_min is not None or criteria.amount_max is not None:
        if not _in_range(file_amount(record), criteria.amount_min, criteria.amount_max):
            return False
    return True


def _matches_invoice(record: Invoice, criteria: InvoiceCriteria) -> bool:
    if criteria.status and record.status != criteria.status:
        return False
    if criteria.bank_name and record.bank_name != criteria.bank_name:
        return False
    if criteria.gst_applicable is not None and bool(record.gst_applicable) != criteria.gst_applicable:
        return False
    if criteria.search and not _contains_any(
        [record.client_name, record.invoice_number, record.bank_name], criteria.search
    ):
        return False
    if criteria.date_from or criteria.date_to:
        if not _in_range(parse_date(record.invoice_date), parse_date(criteria.date_from), parse_date(criteria.date_to)):
            return False
    if criteria.amount_min is not None or criteria.amount_max is not None:
        if not _in_range(record.total, criteria.amount_min, criteria.amount_max):
            return False
    return True


def filter_files(
    files: Sequence[ValuationFile], criteria: FileCriteria, now: Optional[datetime] = None
) -> List[ValuationFile]:
    now = now or datetime.now()
    return [record for record in files if _matches_file(record, criteria, now)]


def filter_invoices(invoices: Sequence[Invoice], criteria: InvoiceCriteria) -> List[Invoice]:
    return [record for record in invoices if _matches_invoice(record, criteria)]


# Sorting
def _decimal_key(value: Optional[Decimal]) -> Decimal:
    return value if value is not None else Decimal("0")


def _text_key(value: Optional[str]) -> str:
    return (value or "").lower()


def _date_key(value: Optional[date]) -> date:
    return value or date.min


FILE_SORTERS: Dict[str, Callable[[ValuationFile], Any]] = {
    "date": lambda r: _date_key(file_date(r)),
    "created": lambda r: parse_timestamp(r.created_at),
    "amount": lambda r: _decimal_key(file_amount(r)),
    "name": lambda r: _text_key(r.client_name),
    "status": lambda r: _text_key(r.status),
    "reference": lambda r: _text_key(r.file_number),
}

INVOICE_SORTERS: Dict[str, Callable[[Invoice], Any]] = {
    "date": lambda r: _date_key(parse_date(r.invoice_date)),
    "amount": lambda r: _decimal_key(r.total),
    "client": lambda r: _text_key(r.client_name),
    "status": lambda r: _text_key(r.status),
    "reference": lambda r: _text_key(r.invoice_number),
}


def sort_records(records: Sequence[T], sorters: Dict[str, Callable[[T], Any]], sort_key: str, order: str = "asc") -> List[T]:
    """
    Stable sort over one field

    Descending order is the exact reverse of ascending order, ties included.

    Raises:
        ValueError: For an unknown sort key or direction
    """
    if sort_key not in sorters:
        raise ValueError(f"Unknown sort key '{sort_key}'")
    if order not in ("asc", "desc"):
        raise ValueError(f"Unknown sort order '{order}'")
    ordered = sorted(records, key=sorters[sort_key])
    if order == "desc":
        ordered.reverse()
    return ordered


def sort_files(files: Sequence[ValuationFile], sort_key: str = "created", order: str = "desc") -> List[ValuationFile]:
    return sort_records(files, FILE_SORTERS, sort_key, order)


def sort_invoices(invoices: Sequence[Invoice], sort_key: str = "date", order: str = "desc") -> List[Invoice]:
    return sort_records(invoices, INVOICE_SORTERS, sort_key, order)


# Pagination
def total_pages(total_items: int, page_size: int) -> int:
    """``ceil(total_items / page_size)``; zero when there is nothing to show"""
    if page_size < 1:
        raise ValueError("page_size must be positive")
    return math.ceil(total_items / page_size)


def paginate(records: Sequence[T], page: int = 1, page_size: int = 15) -> Page[T]:
    """Slice one 1-based page; the page number is clamped into range"""
    pages = total_pages(len(records), page_size)
    page = min(max(page, 1), max(pages, 1))
    start = (page - 1) * page_size
    return Page(
        items=list(records[start : start + page_size]),
        page=page,
        page_size=page_size,
        total_items=len(records),
        total_pages=pages,
    )


def search_files(
    files: Sequence[ValuationFile],
    criteria: Optional[FileCriteria] = None,
    sort_key: str = "created",
    order: str = "desc",
    page: int = 1,
    page_size: int = 15,
    now: Optional[datetime] = None,
) -> Page[ValuationFile]:
    matched = filter_files(files, criteria or FileCriteria(), now)
    return paginate(sort_files(matched, sort_key, order), page, page_size)


def search_invoices(
    invoices: Sequence[Invoice],
    criteria: Optional[InvoiceCriteria] = None,
    sort_key: str = "date",
    order: str = "desc",
    page: int = 1,
    page_size: int = 50,
) -> Page[Invoice]:
    matched = filter_invoices(invoices, criteria or InvoiceCriteria())
    return paginate(sort_invoices(matched, sort_key, order), page, page_size)


def _unique_sorted(values) -> List[str]:
    return sorted({value for value in values if value})


def filter_options(files: Sequence[ValuationFile]) -> Dict[str, List[str]]:
    """Distinct banks, branches and inspectors for filter dropdowns"""
    return {
        "banks": _unique_sorted(record.bank_name for record in files),
        "branches": _unique_sorted(record.branch_name for record in files),
        "inspectors": _unique_sorted(record.inspected_by for record in files),
    }


@dataclass
class ListView(Generic[T]):
    """
    Criteria, sort and page state for one list screen.

    Changing the criteria or the page size sends the view back to page 1.
    """

    criteria: Any
    sort_key: str
    order: str = "desc"
    page: int = 1
    page_size: int = 15
    sorters: Dict[str, Callable[[Any], Any]] = field(default_factory=dict, repr=False)

    @classmethod
    def for_files(cls, page_size: int = 15) -> "ListView[ValuationFile]":
        return cls(criteria=FileCriteria(), sort_key="created", page_size=page_size, sorters=FILE_SORTERS)

    @classmethod
    def for_invoices(cls, page_size: int = 50) -> "ListView[Invoice]":
        return cls(criteria=InvoiceCriteria(), sort_key="date", page_size=page_size, sorters=INVOICE_SORTERS)

    def set_criteria(self, **changes) -> None:
        updated = replace(self.criteria, **changes)
        if updated != self.criteria:
            self.criteria = updated
            self.page = 1

    def clear_criteria(self) -> None:
        self.set_criteria(**{f.name: None for f in fields(self.criteria)})

    def set_sort(self, sort_key: str, order: Optional[str] = None) -> None:
        if sort_key not in self.sorters:
            raise ValueError(f"Unknown sort key '{sort_key}'")
        self.sort_key = sort_key
        if order is not None:
            self.order = order

    def set_page_size(self, page_size: int) -> None:
        if page_size < 1:
            raise ValueError("page_size must be positive")
        if page_size != self.page_size:
            self.page_size = page_size
            self.page = 1

    def go_to(self, page: int) -> None:
        self.page = max(page, 1)

    def apply(self, records: Sequence[T], now: Optional[datetime] = None) -> Page[T]:
        if isinstance(self.criteria, FileCriteria):
            matched = filter_files(records, self.criteria, now)  # type: ignore[arg-type]
        else:
            matched = filter_invoices(records, self.criteria)  # type: ignore[arg-type]
        result = paginate(sort_records(matched, self.sorters, self.sort_key, self.order), self.page, self.page_size)
        self.page = result.page
        return result
