"""
Tests for list filtering, sorting and pagination.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from valuation_desk.models.entities import Invoice, ValuationFile
from valuation_desk.services.search_service import (
    FileCriteria,
    InvoiceCriteria,
    ListView,
    filter_files,
    filter_invoices,
    filter_options,
    paginate,
    search_files,
    sort_files,
    sort_invoices,
    total_pages,
)

NOW = datetime(2025, 5, 10, 12, 0, 0)


@pytest.fixture
def files():
    return [
        ValuationFile(
            id="file_1",
            file_number="FILE/001/25-26",
            file_date="2025-04-02",
            created_at="2025-04-02T09:00:00Z",
            status="completed",
            client_first_name="Anil",
            client_last_name="Sharma",
            client_phone="9830012345",
            bank_name="STATE BANK OF INDIA",
            branch_name="Park Street",
            description="Residential flat",
            property_value=Decimal("4500000"),
            invoice_amount=Decimal("9440"),
            inspected_by="Priya Das",
        ),
        ValuationFile(
            id="file_2",
            file_number="FILE/002/25-26",
            file_date="2025-05-06",
            created_at="2025-05-06T09:00:00Z",
            status="pending",
            client_first_name="Bina",
            client_last_name="Roy",
            bank_name="HDFC BANK",
            branch_name="New Town",
            description="Commercial shop",
            property_value=Decimal("1200000"),
            inspected_by="Sunil Ghosh",
        ),
        ValuationFile(
            id="file_3",
            file_number="FILE/003/25-26",
            file_date="2025-05-10",
            created_at="2025-05-10T08:00:00Z",
            status="pending",
            client_first_name="Chitra",
            client_last_name="Bose",
            bank_name="STATE BANK OF INDIA",
            branch_name="Salt Lake",
            description="Vacant land",
            property_value=None,
            inspected_by="Priya Das",
        ),
    ]


@pytest.fixture
def invoices():
    return [
        Invoice(
            id="invoice_1",
            invoice_number="01/25-26",
            invoice_date="2025-04-05",
            status="paid",
            client_first_name="Anil",
            client_last_name="Sharma",
            bank_name="STATE BANK OF INDIA",
            gst_applicable=True,
            total=Decimal("8000"),
        ),
        Invoice(
            id="invoice_2",
            invoice_number="HDFC/01/25-26",
            invoice_date="2025-05-07",
            status="pending",
            client_first_name="Bina",
            client_last_name="Roy",
            bank_name="HDFC BANK",
            gst_applicable=False,
            total=Decimal("3500"),
        ),
    ]


def ids(records):
    return [record.id for record in records]


def test_free_text_search_is_case_insensitive(files):
    assert ids(filter_files(files, FileCriteria(search="sharma"), NOW)) == ["file_1"]
    assert ids(filter_files(files, FileCriteria(search="file/00"), NOW)) == ["file_1", "file_2", "file_3"]


def test_exact_match_filters(files):
    criteria = FileCriteria(bank_name="STATE BANK OF INDIA", inspected_by="Priya Das", status="pending")
    assert ids(filter_files(files, criteria, NOW)) == ["file_3"]


def test_client_field_filters_are_substring_matches(files):
    assert ids(filter_files(files, FileCriteria(client_phone="98300"), NOW)) == ["file_1"]
    assert ids(filter_files(files, FileCriteria(client_last_name="ro"), NOW)) == ["file_2"]


def test_date_presets_use_creation_time(files):
    assert ids(filter_files(files, FileCriteria(date_preset="today"), NOW)) == ["file_3"]
    assert ids(filter_files(files, FileCriteria(date_preset="week"), NOW)) == ["file_2", "file_3"]
    assert ids(filter_files(files, FileCriteria(date_preset="month"), NOW)) == ["file_2", "file_3"]


def test_date_range_is_inclusive(files):
    criteria = FileCriteria(date_from="2025-04-02", date_to="2025-05-06")
    assert ids(filter_files(files, criteria, NOW)) == ["file_1", "file_2"]


def test_amount_range_prefers_invoice_amount(files):
    assert ids(filter_files(files, FileCriteria(amount_max=Decimal("10000")), NOW)) == ["file_1"]
    # a file with no amount never matches an amount bound
    assert "file_3" not in ids(filter_files(files, FileCriteria(amount_min=Decimal("0")), NOW))


def test_invoice_filters(invoices):
    assert ids(filter_invoices(invoices, InvoiceCriteria(gst_applicable=False))) == ["invoice_2"]
    assert ids(filter_invoices(invoices, InvoiceCriteria(search="hdfc/"))) == ["invoice_2"]
    assert ids(filter_invoices(invoices, InvoiceCriteria(amount_min=Decimal("5000")))) == ["invoice_1"]
    assert ids(filter_invoices(invoices, InvoiceCriteria(date_from="2025-05-01"))) == ["invoice_2"]


def test_sort_files(files):
    assert ids(sort_files(files)) == ["file_3", "file_2", "file_1"]
    assert ids(sort_files(files, "name", "asc")) == ["file_1", "file_2", "file_3"]
    # missing amounts sort as zero
    assert ids(sort_files(files, "amount", "asc")) == ["file_3", "file_1", "file_2"]


def test_sort_is_stable_for_equal_keys(files):
    assert ids(sort_files(files, "status", "asc")) == ["file_1", "file_2", "file_3"]


def test_descending_amount_sort_reverses_ascending_with_ties():
    invoices = [
        Invoice(id="a", invoice_number="01/25-26", total=Decimal("100")),
        Invoice(id="b", invoice_number="02/25-26", total=Decimal("100")),
        Invoice(id="c", invoice_number="03/25-26", total=Decimal("200")),
    ]
    ascending = ids(sort_invoices(invoices, "amount", "asc"))
    descending = ids(sort_invoices(invoices, "amount", "desc"))

    assert ascending == ["a", "b", "c"]
    assert descending == ["c", "b", "a"]
    assert descending == ascending[::-1]


def test_sort_rejects_unknown_key(files):
    with pytest.raises(ValueError):
        sort_files(files, "colour")
    with pytest.raises(ValueError):
        sort_invoices([], "date", "sideways")


def test_total_pages():
    assert total_pages(0, 15) == 0
    assert total_pages(15, 15) == 1
    assert total_pages(16, 15) == 2


def test_paginate_clamps_page():
    records = list(range(40))
    page = paginate(records, page=9, page_size=15)
    assert page.page == 3
    assert page.items == list(range(30, 40))
    assert page.has_prev and not page.has_next

    empty = paginate([], page=4, page_size=15)
    assert empty.page == 1
    assert empty.total_pages == 0
    assert empty.items == []


def test_page_to_dict(files):
    data = search_files(files, page_size=2, now=NOW).to_dict(lambda record: record.id)
    assert data == {
        "items": ["file_3", "file_2"],
        "page": 1,
        "pageSize": 2,
        "totalItems": 3,
        "totalPages": 2,
        "hasPrev": False,
        "hasNext": True,
    }


def test_filter_options(files):
    options = filter_options(files)
    assert options["banks"] == ["HDFC BANK", "STATE BANK OF INDIA"]
    assert options["branches"] == ["New Town", "Park Street", "Salt Lake"]
    assert options["inspectors"] == ["Priya Das", "Sunil Ghosh"]


def test_list_view_resets_page_on_criteria_change(files):
    view = ListView.for_files(page_size=1)
    view.go_to(3)
    assert view.apply(files, NOW).items[0].id == "file_1"

    view.set_criteria(bank_name="STATE BANK OF INDIA")
    assert view.page == 1
    assert ids(view.apply(files, NOW).items) == ["file_3"]

    view.go_to(2)
    view.set_criteria(bank_name="STATE BANK OF INDIA")
    assert view.page == 2

    view.clear_criteria()
    assert view.page == 1
    assert view.criteria == FileCriteria()


def test_list_view_page_size_and_sort(files):
    view = ListView.for_files(page_size=2)
    view.go_to(2)
    view.set_page_size(5)
    assert view.page == 1

    view.set_sort("reference", "asc")
    assert ids(view.apply(files, NOW).items) == ["file_1", "file_2", "file_3"]
    with pytest.raises(ValueError):
        view.set_sort("colour")


def test_invoice_list_view(invoices):
    view = ListView.for_invoices()
    assert ids(view.apply(invoices).items) == ["invoice_2", "invoice_1"]
