"""
Data models and entities for the Valuation Desk.

This module defines the records kept by the application (valuation files,
invoices, receiving bank accounts and users) together with the constants used
to validate them. Records are persisted as JSON documents with camelCase keys;
``to_dict``/``from_dict`` translate between the two shapes.
"""

from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

MONEY_QUANTUM = Decimal("0.01")


def to_decimal(value: Any, default: Optional[Decimal] = Decimal("0")) -> Optional[Decimal]:
    """Convert a JSON/form value to Decimal without passing through float"""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default


def money_to_str(value: Optional[Decimal]) -> Optional[str]:
    """Serialize a money amount as a 2-decimal string"""
    if value is None:
        return None
    return format(value.quantize(MONEY_QUANTUM), "f")


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


class RecordMixin:
    """Shared camelCase (de)serialization for persisted records"""

    MONEY_FIELDS: tuple = ()
    OPTIONAL_MONEY_FIELDS: tuple = ()
    RATE_FIELDS: tuple = ()
    PRIVATE_FIELDS: tuple = ()

    def to_dict(self, include_private: bool = True) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        data: Dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            if not include_private and f.name in self.PRIVATE_FIELDS:
                continue
            value = getattr(self, f.name)
            if f.name in self.MONEY_FIELDS or f.name in self.OPTIONAL_MONEY_FIELDS:
                value = money_to_str(value)
            elif f.name in self.RATE_FIELDS:
                value = format(value, "f")
            elif isinstance(value, list):
                value = list(value)
            data[_camel(f.name)] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Build a record from its persisted (camelCase) or snake_case form"""
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):  # type: ignore[arg-type]
            key = _camel(f.name)
            if key in data:
                value = data[key]
            elif f.name in data:
                value = data[f.name]
            else:
                continue
            if f.name in cls.MONEY_FIELDS or f.name in cls.RATE_FIELDS:
                value = to_decimal(value)
            elif f.name in cls.OPTIONAL_MONEY_FIELDS:
                value = to_decimal(value, default=None)
            elif isinstance(value, list):
                value = list(value)
            kwargs[f.name] = value
        if "id" in kwargs and kwargs["id"] is not None:
            kwargs["id"] = str(kwargs["id"])
        return cls(**kwargs)


def join_name(*parts: Optional[str]) -> str:
    """Join client name parts, skipping blanks"""
    return " ".join(p.strip() for p in parts if p and p.strip())


@dataclass
class ValuationFile(RecordMixin):
    """Valuation job ("file") entity model"""

    OPTIONAL_MONEY_FIELDS = ("property_value", "invoice_amount")

    id: str
    file_number: str
    file_date: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_by: Optional[str] = None
    created_by_name: Optional[str] = None
    status: str = "pending"  # pending, in-progress, completed, hold, returned, cancelled
    client_first_name: str = ""
    client_middle_name: str = ""
    client_last_name: str = ""
    client_address: str = ""
    client_phone: str = ""
    client_email: str = ""
    bank_name: str = ""
    branch_name: str = ""
    description: str = ""
    property_value: Optional[Decimal] = None
    report_maker: str = ""
    inspected_by: str = ""
    remarks: str = ""
    invoice_amount: Optional[Decimal] = None
    linked_invoices: List[str] = field(default_factory=list)
    notes: str = ""

    @property
    def client_name(self) -> str:
        """Get the client's full name"""
        return join_name(self.client_first_name, self.client_middle_name, self.client_last_name)

    @property
    def reference(self) -> str:
        return self.file_number

    def to_dict(self, include_private: bool = True) -> Dict[str, Any]:
        data = super().to_dict(include_private)
        data["clientName"] = self.client_name
        return data


@dataclass
class Invoice(RecordMixin):
    """Invoice (billing document) entity model"""

    MONEY_FIELDS = ("professional_fees", "advance", "total", "amount_paid")
    RATE_FIELDS = ("cgst_rate", "sgst_rate", "igst_rate")

    id: str
    invoice_number: str
    invoice_date: Optional[str] = None
    due_date: Optional[str] = None
    payment_date: Optional[str] = None
    status: str = "pending"  # draft, pending, paid, partially_paid, overdue, cancelled
    client_first_name: str = ""
    client_middle_name: str = ""
    client_last_name: str = ""
    client_address: str = ""
    client_gst_number: str = ""
    bank_name: str = ""
    branch_name: str = ""
    report_maker: str = ""
    inspected_by: str = ""
    description: str = ""
    professional_fees: Decimal = Decimal("0")
    advance: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    gst_applicable: bool = False
    gst_type: str = "CGST_SGST"  # CGST_SGST, IGST
    cgst_rate: Decimal = Decimal("9")
    sgst_rate: Decimal = Decimal("9")
    igst_rate: Decimal = Decimal("18")
    file_id: Optional[str] = None
    additional_file_ids: List[str] = field(default_factory=list)
    amount_paid: Decimal = Decimal("0")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_by: Optional[str] = None
    created_by_name: Optional[str] = None
    notes: str = ""

    @property
    def client_name(self) -> str:
        """Get the client's full name"""
        return join_name(self.client_first_name, self.client_middle_name, self.client_last_name)

    @property
    def reference(self) -> str:
        return self.invoice_number

    @property
    def linked_file_ids(self) -> List[str]:
        ids = [self.file_id] if self.file_id else []
        return ids + [fid for fid in self.additional_file_ids if fid and fid not in ids]

    def recompute_total(self) -> Decimal:
        """Keep ``total = professional_fees - advance``"""
        self.total = self.professional_fees - self.advance
        return self.total

    def to_dict(self, include_private: bool = True) -> Dict[str, Any]:
        data = super().to_dict(include_private)
        data["clientName"] = self.client_name
        return data


@dataclass
class Bank(RecordMixin):
    """Receiving bank account entity model"""

    id: str
    bank_name: str
    branch_name: str = ""
    account_number: str = ""
    ifsc_code: str = ""
    account_type: str = "Current"
    account_holder_name: str = ""
    is_default: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class User(RecordMixin):
    """Application user entity model"""

    PRIVATE_FIELDS = ("password_hash", "password_salt")

    id: str
    username: str
    full_name: str = ""
    role: str = "computer-operator"  # admin, computer-operator, inspector
    email: str = ""
    phone: str = ""
    address: str = ""
    password_hash: str = ""
    password_salt: str = ""
    is_active: bool = True
    created_at: Optional[str] = None

    def public_profile(self) -> Dict[str, Any]:
        """Profile without credentials, as kept under ``currentUser``"""
        return self.to_dict(include_private=False)


# Type aliases for common data structures
FileDict = Dict[str, Any]
InvoiceDict = Dict[str, Any]
BankDict = Dict[str, Any]
UserDict = Dict[str, Any]

# Roles
ROLE_ADMIN = "admin"
ROLE_COMPUTER_OPERATOR = "computer-operator"
ROLE_INSPECTOR = "inspector"
ROLES = [ROLE_ADMIN, ROLE_COMPUTER_OPERATOR, ROLE_INSPECTOR]
ROLE_LABELS = {
    ROLE_COMPUTER_OPERATOR: "Computer Operator",
    ROLE_INSPECTOR: "Inspector",
    ROLE_ADMIN: "Admin",
}

# Statuses
FILE_STATUSES = ["pending", "in-progress", "completed", "hold", "returned", "cancelled"]
FILE_STATUS_LABELS = {
    "pending": "Pending",
    "in-progress": "In Progress",
    "completed": "Completed",
    "hold": "Hold",
    "returned": "Returned",
    "cancelled": "Cancelled",
}
INVOICE_STATUSES = ["draft", "pending", "paid", "partially_paid", "overdue", "cancelled"]
INVOICE_STATUS_LABELS = {
    "draft": "Draft",
    "pending": "Pending",
    "paid": "Paid",
    "partially_paid": "Partially Paid",
    "overdue": "Overdue",
    "cancelled": "Cancelled",
}

# GST
GST_CGST_SGST = "CGST_SGST"
GST_IGST = "IGST"
GST_TYPES = [GST_CGST_SGST, GST_IGST]
DEFAULT_CGST_RATE = Decimal("9")
DEFAULT_SGST_RATE = Decimal("9")
DEFAULT_IGST_RATE = Decimal("18")

ACCOUNT_TYPES = ["Current", "Savings"]
DEFAULT_ACCOUNT_HOLDER = "S. Sen & Associates"

# Known bank abbreviations used in reference numbers
BANK_ABBREVIATIONS = {
    "STATE BANK OF INDIA": "SBI",
    "PUNJAB NATIONAL BANK": "PNB",
    "UNITED BANK OF INDIA": "UBI",
    "BANK OF MAHARASHTRA": "BOM",
    "HDFC BANK": "HDFC",
    "ICICI BANK": "ICICI",
    "AXIS BANK": "AXIS",
    "CANARA BANK": "CANARA",
    "BANK OF BARODA": "BOB",
    "INDIAN BANK": "IB",
}

# Persisted collection keys
FILES_KEY = "files"
INVOICES_KEY = "invoices"
BANKS_KEY = "banks"
USERS_KEY = "users"
CURRENT_USER_KEY = "currentUser"
COLLECTION_KEYS = [INVOICES_KEY, BANKS_KEY, FILES_KEY, USERS_KEY]
