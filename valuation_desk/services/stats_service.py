"""
Dashboard statistics for the signed-in user.
"""

import time
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from valuation_desk.models.entities import (
    FILE_STATUSES,
    FILES_KEY,
    INVOICE_STATUSES,
    INVOICES_KEY,
    Invoice,
    User,
    money_to_str,
)
from valuation_desk.services.access import visible_records
from valuation_desk.services.invoice_service import is_overdue
from valuation_desk.services.record_store import RecordStore
from valuation_desk.utils.helpers import parse_date, parse_timestamp
from valuation_desk.utils.logging_config import log_performance_metric

RECENT_INVOICE_COUNT = 5


def _sum_totals(invoices: Iterable[Invoice]) -> Decimal:
    return sum((invoice.total for invoice in invoices), Decimal("0"))


def _same_month(day: Optional[date], today: date) -> bool:
    return day is not None and (day.year, day.month) == (today.year, today.month)


def invoice_overview(invoices: List[Invoice], today: date) -> Dict[str, Any]:
    """Counts and amounts by status for a list of invoices"""
    overdue = [invoice for invoice in invoices if is_overdue(invoice, today)]
    partially_paid = [invoice for invoice in invoices if invoice.status == "partially_paid"]
    counts = {status: 0 for status in INVOICE_STATUSES}
    for invoice in invoices:
        counts[invoice.status] = counts.get(invoice.status, 0) + 1
    counts["all"] = len(invoices)

    return {
        "counts": counts,
        "overdueCount": len(overdue),
        "amounts": {
            "total": money_to_str(_sum_totals(invoices)),
            "paid": money_to_str(_sum_totals(i for i in invoices if i.status == "paid")),
            "pending": money_to_str(_sum_totals(i for i in invoices if i.status == "pending")),
            "overdue": money_to_str(_sum_totals(overdue)),
            "collected": money_to_str(sum((i.amount_paid for i in partially_paid), Decimal("0"))),
        },
    }


def file_overview(files: List[Any]) -> Dict[str, Any]:
    counts = {status: 0 for status in FILE_STATUSES}
    for record in files:
        counts[record.status] = counts.get(record.status, 0) + 1
    counts["all"] = len(files)
    return {"counts": counts}


class StatsService:
    """Builds the dashboard figures"""

    def __init__(self, store: RecordStore):
        self.store = store

    def dashboard(self, actor: Optional[User], today: Optional[date] = None) -> Dict[str, Any]:
        """
        Dashboard figures for ``actor``

        Totals cover the invoices the actor may see. The "mine" block covers
        only invoices the actor created.
        """
        started = time.perf_counter()
        today = today or date.today()
        invoices = visible_records(actor, self.store.list(INVOICES_KEY))
        files = visible_records(actor, self.store.list(FILES_KEY))
        mine = [invoice for invoice in invoices if actor is not None and invoice.created_by == actor.id]

        recent = sorted(invoices, key=lambda invoice: parse_timestamp(invoice.created_at), reverse=True)
        monthly = [invoice for invoice in invoices if _same_month(parse_date(invoice.created_at), today)]

        stats = {
            "invoices": invoice_overview(invoices, today),
            "mine": {
                "totalInvoices": len(mine),
                "totalAmount": money_to_str(_sum_totals(mine)),
                "pendingInvoices": sum(1 for invoice in mine if invoice.status == "pending"),
                "paidInvoices": sum(1 for invoice in mine if invoice.status == "paid"),
            },
            "recentInvoices": [invoice.to_dict() for invoice in recent[:RECENT_INVOICE_COUNT]],
            "month": {"invoices": len(monthly), "amount": money_to_str(_sum_totals(monthly))},
            "files": file_overview(files),
        }
        duration = (time.perf_counter() - started) * 1000
        log_performance_metric("dashboard_stats_duration", duration, invoice_count=len(invoices))
        return stats
