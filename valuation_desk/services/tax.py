"""
GST arithmetic for invoices.

All amounts are ``Decimal``; nothing is rounded here. Rounding to paise happens
only when amounts are displayed or serialized.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from valuation_desk.models.entities import (
    DEFAULT_CGST_RATE,
    DEFAULT_IGST_RATE,
    DEFAULT_SGST_RATE,
    GST_CGST_SGST,
    GST_IGST,
    GST_TYPES,
    Invoice,
    money_to_str,
    to_decimal,
)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class GstBreakdown:
    """Tax line items derived from a pre-tax base"""

    base: Decimal
    gst_applicable: bool
    gst_type: Optional[str]
    cgst: Decimal = ZERO
    sgst: Decimal = ZERO
    igst: Decimal = ZERO

    @property
    def tax(self) -> Decimal:
        return self.cgst + self.sgst + self.igst

    @property
    def total(self) -> Decimal:
        return self.base + self.tax

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base": money_to_str(self.base),
            "gstApplicable": self.gst_applicable,
            "gstType": self.gst_type,
            "cgst": money_to_str(self.cgst),
            "sgst": money_to_str(self.sgst),
            "igst": money_to_str(self.igst),
            "tax": money_to_str(self.tax),
            "total": money_to_str(self.total),
        }


def base_amount(professional_fees: Any, advance: Any) -> Decimal:
    """Pre-tax amount ``fees - advance``, clamped at zero"""
    base = to_decimal(professional_fees) - to_decimal(advance)
    return base if base > ZERO else ZERO


def calculate_gst(
    base: Any,
    gst_applicable: bool,
    gst_type: str = GST_CGST_SGST,
    cgst_rate: Any = DEFAULT_CGST_RATE,
    sgst_rate: Any = DEFAULT_SGST_RATE,
    igst_rate: Any = DEFAULT_IGST_RATE,
) -> GstBreakdown:
    """
    Derive GST line items for a base amount.

    Args:
        base: Pre-tax amount; negative values are clamped to zero
        gst_applicable: When False every tax is zero and the total is the base
        gst_type: ``CGST_SGST`` (intrastate, split tax) or ``IGST`` (interstate)
        cgst_rate, sgst_rate, igst_rate: Percentages

    Raises:
        ValueError: For an unknown GST type
    """
    base_value = to_decimal(base)
    if base_value < ZERO:
        base_value = ZERO

    if not gst_applicable:
        return GstBreakdown(base=base_value, gst_applicable=False, gst_type=None)

    if gst_type not in GST_TYPES:
        raise ValueError(f"Unknown GST type '{gst_type}'")

    if gst_type == GST_IGST:
        igst = base_value * to_decimal(igst_rate, DEFAULT_IGST_RATE) / HUNDRED
        return GstBreakdown(base=base_value, gst_applicable=True, gst_type=GST_IGST, igst=igst)

    cgst = base_value * to_decimal(cgst_rate, DEFAULT_CGST_RATE) / HUNDRED
    sgst = base_value * to_decimal(sgst_rate, DEFAULT_SGST_RATE) / HUNDRED
    return GstBreakdown(base=base_value, gst_applicable=True, gst_type=GST_CGST_SGST, cgst=cgst, sgst=sgst)


def invoice_tax(invoice: Invoice) -> GstBreakdown:
    """GST breakdown for an invoice, based on ``professional_fees - advance``"""
    return calculate_gst(
        base_amount(invoice.professional_fees, invoice.advance),
        invoice.gst_applicable,
        invoice.gst_type,
        invoice.cgst_rate,
        invoice.sgst_rate,
        invoice.igst_rate,
    )


def grand_total(invoice: Invoice) -> Decimal:
    return invoice_tax(invoice).total
