"""
Tests for dashboard statistics.
"""

from datetime import datetime, timezone

from conftest import TODAY, file_form, invoice_form
from valuation_desk.services.stats_service import StatsService, file_overview


def test_dashboard_for_operator(store, invoice_service, file_service, operator, admin):
    late = invoice_service.create_invoice(invoice_form(dueDate="2025-05-01"), operator)
    paid = invoice_service.create_invoice(invoice_form(professionalFees="5000", advance="0"), operator)
    invoice_service.change_status(paid.id, "paid", operator)
    invoice_service.create_invoice(invoice_form(reportMaker="Someone Else"), admin)
    file_service.create_file(file_form(), operator)

    stats = StatsService(store).dashboard(operator, today=TODAY)

    assert stats["invoices"]["counts"]["all"] == 2
    assert stats["invoices"]["counts"]["paid"] == 1
    assert stats["invoices"]["overdueCount"] == 1
    assert stats["invoices"]["amounts"] == {
        "total": "13000.00",
        "paid": "5000.00",
        "pending": "8000.00",
        "overdue": "8000.00",
        "collected": "0.00",
    }
    assert stats["mine"] == {
        "totalInvoices": 2,
        "totalAmount": "13000.00",
        "pendingInvoices": 1,
        "paidInvoices": 1,
    }
    assert stats["recentInvoices"][0]["id"] in (late.id, paid.id)
    assert stats["files"]["counts"]["pending"] == 1


def test_dashboard_month_uses_creation_time(store, invoice_service, operator):
    invoice_service.create_invoice(invoice_form(), operator)
    stats = StatsService(store).dashboard(operator, today=datetime.now(timezone.utc).date())
    assert stats["month"] == {"invoices": 1, "amount": "8000.00"}


def test_admin_dashboard_sees_everything(store, invoice_service, operator, admin):
    invoice_service.create_invoice(invoice_form(reportMaker="Someone Else"), operator)
    invoice_service.create_invoice(invoice_form(reportMaker="Someone Else"), admin)

    stats = StatsService(store).dashboard(admin, today=TODAY)
    assert stats["invoices"]["counts"]["all"] == 2
    assert stats["mine"]["totalInvoices"] == 1


def test_file_overview_of_no_files():
    assert file_overview([])["counts"]["all"] == 0
