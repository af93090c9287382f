"""
Tests for the JSON API.
"""

import pytest

from conftest import STAFF_PASSWORD, file_form, invoice_form, login


@pytest.fixture
def admin_client(client):
    assert login(client).status_code == 200
    return client


def create_staff(client, username="ravi", full_name="Ravi Kumar", role="computer-operator"):
    response = client.post(
        "/api/users",
        json={"username": username, "password": STAFF_PASSWORD, "fullName": full_name, "role": role},
    )
    assert response.status_code == 201
    return response.get_json()["user"]


@pytest.fixture
def operator_client(admin_client):
    create_staff(admin_client)
    admin_client.post("/api/auth/logout")
    assert login(admin_client, "ravi", STAFF_PASSWORD).status_code == 200
    return admin_client


class TestAuth:
    def test_login_with_bad_password(self, client):
        response = login(client, password="wrong")
        assert response.status_code == 401
        data = response.get_json()
        assert data["success"] is False
        assert data["details"]["code"] == "INVALID_CREDENTIALS"

    def test_login_requires_both_fields(self, client):
        response = client.post("/api/auth/login", json={"username": "admin"})
        assert response.status_code == 400
        assert response.get_json()["details"]["field"] == "password"

    def test_me_and_logout(self, admin_client):
        me = admin_client.get("/api/auth/me").get_json()
        assert me["user"]["username"] == "admin"
        assert "passwordHash" not in me["user"]

        assert admin_client.post("/api/auth/logout").status_code == 200
        response = admin_client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.get_json()["details"]["code"] == "AUTHENTICATION_REQUIRED"

    def test_update_own_profile(self, admin_client):
        response = admin_client.put("/api/auth/profile", json={"fullName": "Head Office"})
        assert response.status_code == 200
        assert response.get_json()["user"]["fullName"] == "Head Office"


class TestFiles:
    def test_file_lifecycle(self, operator_client):
        response = operator_client.post("/api/files", json=file_form())
        assert response.status_code == 201
        record = response.get_json()["file"]
        assert record["fileNumber"].startswith("FILE/001/")
        assert record["propertyValue"] == "4500000.00"
        assert record["clientName"] == "Anil Sharma"

        file_url = f"/api/files/{record['id']}"
        assert operator_client.get(file_url).get_json()["file"]["id"] == record["id"]

        updated = operator_client.put(file_url, json={"remarks": "Urgent"}).get_json()["file"]
        assert updated["remarks"] == "Urgent"

        status = operator_client.post(f"{file_url}/status", json={"status": "completed"})
        assert status.get_json()["file"]["status"] == "completed"

        noted = operator_client.post(f"{file_url}/notes", json={"note": "Report sent"}).get_json()["file"]
        assert noted["notes"].endswith("Ravi Kumar added note: Report sent")

    def test_create_file_validation_envelope(self, operator_client):
        response = operator_client.post("/api/files", json={"clientFirstName": "Anil"})
        assert response.status_code == 400
        data = response.get_json()
        assert data["success"] is False
        assert data["error"] == "Validation failed"
        assert set(data["details"]["errors"]) == {"client_last_name", "description", "property_value"}

    def test_non_object_body_is_rejected(self, operator_client):
        response = operator_client.post("/api/files", json=["not", "an", "object"])
        assert response.status_code == 400
        assert response.get_json()["details"]["code"] == "INVALID_TYPE"

    def test_delete_needs_confirmation(self, operator_client):
        record = operator_client.post("/api/files", json=file_form()).get_json()["file"]
        file_url = f"/api/files/{record['id']}"

        response = operator_client.delete(file_url)
        assert response.status_code == 409
        assert response.get_json()["details"]["code"] == "CONFIRMATION_REQUIRED"

        response = operator_client.delete(f"{file_url}?confirm=true")
        assert response.status_code == 200
        assert response.get_json()["deleted"] == record["id"]
        assert operator_client.get(file_url).status_code == 404

    def test_list_files(self, operator_client):
        for name in ("Anil", "Bina", "Chitra"):
            operator_client.post("/api/files", json=file_form(clientFirstName=name))

        data = operator_client.get("/api/files?page_size=2&sort=name&order=asc").get_json()
        assert data["totalItems"] == 3
        assert data["totalPages"] == 2
        assert data["pageSize"] == 2
        assert data["hasNext"] is True
        assert [item["clientFirstName"] for item in data["items"]] == ["Anil", "Bina"]

        data = operator_client.get("/api/files?search=bina").get_json()
        assert data["totalItems"] == 1
        assert data["criteria"] == {"search": "bina"}

    def test_list_files_rejects_bad_parameters(self, operator_client):
        assert operator_client.get("/api/files?page=0").status_code == 400
        assert operator_client.get("/api/files?sort=colour").status_code == 400
        assert operator_client.get("/api/files?status=archived").status_code == 400

    def test_filter_options_and_stats(self, operator_client):
        operator_client.post("/api/files", json=file_form())
        options = operator_client.get("/api/files/filter-options").get_json()
        assert options["banks"] == ["STATE BANK OF INDIA"]
        assert "in-progress" in options["statuses"]

        stats = operator_client.get("/api/files/stats/overview").get_json()
        assert stats["counts"]["pending"] == 1

    def test_other_users_files_are_hidden(self, admin_client):
        record = admin_client.post("/api/files", json=file_form(reportMaker="Someone Else")).get_json()["file"]
        create_staff(admin_client, "priya", "Priya Das", "inspector")
        admin_client.post("/api/auth/logout")
        login(admin_client, "priya", STAFF_PASSWORD)

        response = admin_client.get(f"/api/files/{record['id']}")
        assert response.status_code == 403
        assert response.get_json()["details"]["code"] == "PERMISSION_DENIED"
        assert admin_client.get("/api/files").get_json()["totalItems"] == 0


class TestInvoices:
    def test_create_invoice_with_tax(self, operator_client):
        response = operator_client.post("/api/invoices", json=invoice_form())
        assert response.status_code == 201
        invoice = response.get_json()["invoice"]
        assert invoice["total"] == "8000.00"
        assert invoice["status"] == "pending"
        assert invoice["tax"] == {
            "base": "8000.00",
            "gstApplicable": True,
            "gstType": "CGST_SGST",
            "cgst": "720.00",
            "sgst": "720.00",
            "igst": "0.00",
            "tax": "1440.00",
            "total": "9440.00",
        }

        tax = operator_client.get(f"/api/invoices/{invoice['id']}/tax").get_json()["tax"]
        assert tax["total"] == "9440.00"

    def test_draft_invoice(self, operator_client):
        invoice = operator_client.post("/api/invoices?draft=true", json=invoice_form()).get_json()["invoice"]
        assert invoice["status"] == "draft"

        partial = operator_client.post("/api/invoices?draft=true", json={"clientFirstName": "Anil"})
        assert partial.status_code == 201
        assert partial.get_json()["invoice"]["status"] == "draft"
        assert operator_client.post("/api/invoices", json={"clientFirstName": "Anil"}).status_code == 400

    def test_next_number_and_tax_preview(self, operator_client):
        preview = operator_client.post(
            "/api/invoices/next-number", json={"gstApplicable": False, "bankName": "HDFC BANK"}
        ).get_json()
        assert preview["invoiceNumber"].startswith("HDFC/01/")

        tax = operator_client.post(
            "/api/invoices/tax-preview", json={"professionalFees": "1000", "gstApplicable": True, "gstType": "IGST"}
        ).get_json()["tax"]
        assert tax["igst"] == "180.00"

    def test_payments_and_status(self, operator_client):
        invoice = operator_client.post("/api/invoices", json=invoice_form()).get_json()["invoice"]
        invoice_url = f"/api/invoices/{invoice['id']}"

        partial = operator_client.post(f"{invoice_url}/payments", json={"amount": "3000"}).get_json()["invoice"]
        assert partial["status"] == "partially_paid"
        assert partial["amountPaid"] == "3000.00"

        too_much = operator_client.post(f"{invoice_url}/payments", json={"amount": "9000"})
        assert too_much.status_code == 400

        paid = operator_client.post(
            f"{invoice_url}/status", json={"status": "paid", "paymentDate": "2025-05-12"}
        ).get_json()["invoice"]
        assert paid["status"] == "paid"
        assert paid["paymentDate"] == "2025-05-12"

        bad = operator_client.post(f"{invoice_url}/status", json={"status": "refunded"})
        assert bad.status_code == 400

    def test_due_date_and_files(self, operator_client):
        record = operator_client.post("/api/files", json=file_form()).get_json()["file"]
        invoice = operator_client.post("/api/invoices", json=invoice_form()).get_json()["invoice"]
        invoice_url = f"/api/invoices/{invoice['id']}"

        due = operator_client.put(f"{invoice_url}/due-date", json={"dueDate": "2025-07-01"}).get_json()["invoice"]
        assert due["dueDate"] == "2025-07-01"

        linked = operator_client.post(f"{invoice_url}/files", json={"fileId": record["id"]})
        assert linked.status_code == 200
        linked_file = operator_client.get(f"/api/files/{record['id']}").get_json()["file"]
        assert linked_file["linkedInvoices"] == [invoice["id"]]

    def test_list_invoices_and_stats(self, operator_client):
        operator_client.post("/api/invoices", json=invoice_form())
        operator_client.post("/api/invoices", json=invoice_form(gstApplicable=False, professionalFees="4000"))

        data = operator_client.get("/api/invoices?gstApplicable=false").get_json()
        assert data["totalItems"] == 1
        assert data["items"][0]["total"] == "2000.00"
        assert data["criteria"] == {"gst_applicable": False}

        stats = operator_client.get("/api/invoices/stats/overview").get_json()
        assert stats["counts"]["all"] == 2
        assert stats["amounts"]["total"] == "10000.00"

    def test_mark_overdue_is_admin_only(self, admin_client):
        late = admin_client.post("/api/invoices", json=invoice_form(dueDate="2025-05-01")).get_json()["invoice"]

        response = admin_client.post("/api/invoices/mark-overdue")
        assert response.status_code == 200
        assert response.get_json()["updated"] == [late["id"]]

        create_staff(admin_client)
        admin_client.post("/api/auth/logout")
        login(admin_client, "ravi", STAFF_PASSWORD)
        assert admin_client.post("/api/invoices/mark-overdue").status_code == 403


class TestBanks:
    def test_bank_accounts(self, operator_client):
        response = operator_client.post(
            "/api/banks",
            json={
                "bankName": "STATE BANK OF INDIA",
                "branchName": "Park Street",
                "accountNumber": "12345678901234",
                "ifscCode": "sbin0001234",
                "accountHolderName": "Valuation Desk",
            },
        )
        assert response.status_code == 201
        bank = response.get_json()["bank"]
        assert bank["ifscCode"] == "SBIN0001234"

        banks = operator_client.get("/api/banks").get_json()["banks"]
        assert [item["id"] for item in banks] == [bank["id"]]
        assert operator_client.get("/api/banks/default").get_json()["bank"]["id"] == bank["id"]

        assert operator_client.delete(f"/api/banks/{bank['id']}").status_code == 409
        assert operator_client.delete(f"/api/banks/{bank['id']}?confirm=1").status_code == 200
        assert operator_client.get("/api/banks/default").get_json()["bank"] is None


class TestUsers:
    def test_admin_manages_users(self, admin_client):
        user = create_staff(admin_client)
        user_url = f"/api/users/{user['id']}"

        duplicate = admin_client.post(
            "/api/users", json={"username": "ravi", "password": STAFF_PASSWORD, "fullName": "Another Ravi"}
        )
        assert duplicate.status_code == 400
        assert duplicate.get_json()["details"]["code"] == "DUPLICATE"

        role = admin_client.put(f"{user_url}/role", json={"role": "inspector"}).get_json()["user"]
        assert role["role"] == "inspector"

        inactive = admin_client.put(f"{user_url}/deactivate").get_json()["user"]
        assert inactive["isActive"] is False
        active = admin_client.put(f"{user_url}/activate").get_json()["user"]
        assert active["isActive"] is True

        usernames = [item["username"] for item in admin_client.get("/api/users").get_json()["users"]]
        assert usernames == ["admin", "ravi"]

        assert admin_client.delete(f"{user_url}?confirm=true").status_code == 200
        assert admin_client.get(user_url).status_code == 404

    def test_deactivated_user_loses_session(self, admin_client):
        user = create_staff(admin_client)
        admin_client.put(f"/api/users/{user['id']}/deactivate")
        admin_client.post("/api/auth/logout")

        assert login(admin_client, "ravi", STAFF_PASSWORD).status_code == 401

    def test_operator_cannot_manage_users(self, operator_client):
        response = operator_client.get("/api/users")
        assert response.status_code == 403
        assert response.get_json()["details"]["code"] == "PERMISSION_DENIED"
