"""
API routes for the Valuation Desk.

This module contains all JSON API endpoints for the application. Domain
errors (validation, permissions, missing records, unconfirmed deletes) are
turned into JSON responses by ``views.errors``.
"""

from datetime import date, datetime
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from valuation_desk.models.entities import FILE_STATUSES, INVOICE_STATUSES, ROLE_ADMIN
from valuation_desk.services.search_service import FILE_SORT_KEYS, INVOICE_SORT_KEYS, FileCriteria, InvoiceCriteria
from valuation_desk.services.stats_service import file_overview, invoice_overview
from valuation_desk.utils.form_validators import form_validator, normalize_form_keys, validate_form_data
from valuation_desk.utils.logging_config import get_logger, log_business_event, log_performance_metric
from valuation_desk.utils.security import (
    get_current_user,
    login_required,
    role_required,
    secure_headers,
    sign_in,
    sign_out,
)
from valuation_desk.utils.validators import ValidationError
from valuation_desk.views.main import storage_health

api_bp = Blueprint("api", __name__)


def get_services():
    """Get the services from the current app context"""
    from valuation_desk import get_services as _get_services

    return _get_services()


def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", "body", "INVALID_TYPE")
    return body


def _confirmed() -> bool:
    return form_validator.validate_boolean_param(request.args.get("confirm"), "confirm")


def _list_params(sort_keys, default_sort: str, default_size: int) -> Dict[str, Any]:
    params = form_validator.validate_sort(request.args, sort_keys, default_sort)
    params.update(
        form_validator.validate_pagination(
            request.args.get("page"),
            request.args.get("page_size"),
            default_size=default_size,
            max_size=current_app.config["MAX_PAGE_SIZE"],
        )
    )
    return params


def _criteria_json(criteria) -> Dict[str, Any]:
    return {key: value if isinstance(value, (bool, str)) else str(value) for key, value in criteria.active.items()}


def _invoice_payload(invoice) -> Dict[str, Any]:
    data = invoice.to_dict()
    data["tax"] = get_services().invoices.tax_breakdown(invoice).to_dict()
    return data


# Health
@api_bp.route("/health")
def health():
    return storage_health()


# Auth
@api_bp.route("/auth/login", methods=["POST"])
@secure_headers
def login():
    """Sign in with username and password"""
    body = _json_body()
    username = form_validator.sanitize_string(body.get("username"), max_length=50)
    password = body.get("password") or ""
    if not username or not password:
        raise ValidationError(
            "Username and password are required",
            "username" if not username else "password",
            "REQUIRED",
        )

    user = get_services().users.authenticate(username, password)
    if user is None:
        return (
            jsonify(
                {
                    "success": False,
                    "error": "Invalid credentials",
                    "details": {"message": "Invalid username or password", "code": "INVALID_CREDENTIALS"},
                }
            ),
            401,
        )

    sign_in(user)
    return jsonify({"success": True, "user": user.public_profile()})


@api_bp.route("/auth/logout", methods=["POST"])
def logout():
    user = get_current_user()
    get_services().users.logout(user)
    sign_out()
    return jsonify({"success": True})


@api_bp.route("/auth/me")
@login_required
def me():
    return jsonify({"success": True, "user": get_current_user().public_profile()})


@api_bp.route("/auth/profile", methods=["PUT"])
@login_required
def update_own_profile():
    user = get_current_user()
    updated = get_services().users.update_profile(user.id, _json_body(), user)
    return jsonify({"success": True, "user": updated.public_profile()})


# Files
@api_bp.route("/files")
@login_required
@secure_headers
def list_files():
    """Filtered, sorted, paginated file list"""
    logger = get_logger("api.files")
    start_time = datetime.utcnow()

    criteria = FileCriteria(**form_validator.validate_file_criteria(request.args.to_dict()))
    params = _list_params(FILE_SORT_KEYS, "created", current_app.config["FILES_PER_PAGE"])
    page = get_services().files.list_files(get_current_user(), criteria, **params)

    duration = (datetime.utcnow() - start_time).total_seconds() * 1000
    log_performance_metric("api_file_list_duration", duration, result_count=page.total_items)
    logger.debug("Listed files", extra={"category": "file_list", "criteria": criteria.active, "page": page.page})

    return jsonify({"success": True, **page.to_dict(lambda record: record.to_dict()), "criteria": _criteria_json(criteria)})


@api_bp.route("/files", methods=["POST"])
@login_required
def create_file():
    record = get_services().files.create_file(_json_body(), get_current_user())
    return jsonify({"success": True, "file": record.to_dict()}), 201


@api_bp.route("/files/next-number")
@login_required
def next_file_number():
    return jsonify({"success": True, "fileNumber": get_services().files.next_file_number()})


@api_bp.route("/files/filter-options")
@login_required
def file_filter_options():
    return jsonify({"success": True, "statuses": FILE_STATUSES, **get_services().files.filter_options(get_current_user())})


@api_bp.route("/files/stats/overview")
@login_required
def file_stats():
    files = get_services().files.visible_files(get_current_user())
    return jsonify({"success": True, **file_overview(files)})


@api_bp.route("/files/<file_id>")
@login_required
@secure_headers
def get_file(file_id):
    record = get_services().files.get_file(file_id, get_current_user())
    return jsonify({"success": True, "file": record.to_dict()})


@api_bp.route("/files/<file_id>", methods=["PUT"])
@login_required
def update_file(file_id):
    record = get_services().files.update_file(file_id, _json_body(), get_current_user())
    return jsonify({"success": True, "file": record.to_dict()})


@api_bp.route("/files/<file_id>", methods=["DELETE"])
@login_required
def delete_file(file_id):
    removed = get_services().files.delete_file(file_id, get_current_user(), confirmed=_confirmed())
    return jsonify({"success": True, "deleted": removed.id})


@api_bp.route("/files/<file_id>/status", methods=["POST"])
@login_required
@validate_form_data(lambda form: form_validator.validate_status_form(form, FILE_STATUSES))
def change_file_status(file_id, validated_data):
    record = get_services().files.change_status(file_id, validated_data["status"], get_current_user())
    return jsonify({"success": True, "file": record.to_dict()})


@api_bp.route("/files/<file_id>/notes", methods=["POST"])
@login_required
def add_file_note(file_id):
    record = get_services().files.add_note(file_id, _json_body().get("note"), get_current_user())
    return jsonify({"success": True, "file": record.to_dict()})


# Invoices
@api_bp.route("/invoices")
@login_required
@secure_headers
def list_invoices():
    """Filtered, sorted, paginated invoice list"""
    start_time = datetime.utcnow()

    criteria = InvoiceCriteria(**form_validator.validate_invoice_criteria(request.args.to_dict()))
    params = _list_params(INVOICE_SORT_KEYS, "date", current_app.config["INVOICES_PER_PAGE"])
    page = get_services().invoices.list_invoices(get_current_user(), criteria, **params)

    duration = (datetime.utcnow() - start_time).total_seconds() * 1000
    log_performance_metric("api_invoice_list_duration", duration, result_count=page.total_items)

    return jsonify({"success": True, **page.to_dict(lambda record: record.to_dict()), "criteria": _criteria_json(criteria)})


@api_bp.route("/invoices", methods=["POST"])
@login_required
def create_invoice():
    as_draft = form_validator.validate_boolean_param(request.args.get("draft"), "draft")
    record = get_services().invoices.create_invoice(_json_body(), get_current_user(), as_draft=as_draft)
    return jsonify({"success": True, "invoice": _invoice_payload(record)}), 201


@api_bp.route("/invoices/next-number", methods=["POST"])
@login_required
def next_invoice_number():
    """Preview the number a draft invoice would receive"""
    return jsonify({"success": True, **get_services().invoices.next_invoice_number(_json_body())})


@api_bp.route("/invoices/tax-preview", methods=["POST"])
@login_required
def tax_preview():
    breakdown = get_services().invoices.tax_preview(_json_body())
    return jsonify({"success": True, "tax": breakdown.to_dict()})


@api_bp.route("/invoices/stats/overview")
@login_required
def invoice_stats():
    invoices = get_services().invoices.visible_invoices(get_current_user())
    return jsonify({"success": True, **invoice_overview(invoices, date.today())})


@api_bp.route("/invoices/mark-overdue", methods=["POST"])
@role_required(ROLE_ADMIN)
def mark_overdue():
    flipped = get_services().invoices.mark_overdue()
    return jsonify({"success": True, "updated": [record.id for record in flipped]})


@api_bp.route("/invoices/<invoice_id>")
@login_required
@secure_headers
def get_invoice(invoice_id):
    record = get_services().invoices.get_invoice(invoice_id, get_current_user())
    return jsonify({"success": True, "invoice": _invoice_payload(record)})


@api_bp.route("/invoices/<invoice_id>", methods=["PUT"])
@login_required
def update_invoice(invoice_id):
    record = get_services().invoices.update_invoice(invoice_id, _json_body(), get_current_user())
    return jsonify({"success": True, "invoice": _invoice_payload(record)})


@api_bp.route("/invoices/<invoice_id>", methods=["DELETE"])
@login_required
def delete_invoice(invoice_id):
    removed = get_services().invoices.delete_invoice(invoice_id, get_current_user(), confirmed=_confirmed())
    return jsonify({"success": True, "deleted": removed.id})


@api_bp.route("/invoices/<invoice_id>/status", methods=["POST"])
@login_required
@validate_form_data(lambda form: form_validator.validate_status_form(form, INVOICE_STATUSES))
def change_invoice_status(invoice_id, validated_data):
    record = get_services().invoices.change_status(
        invoice_id, validated_data["status"], get_current_user(), payment_date=validated_data.get("payment_date")
    )
    return jsonify({"success": True, "invoice": _invoice_payload(record)})


@api_bp.route("/invoices/<invoice_id>/payments", methods=["POST"])
@login_required
@validate_form_data(form_validator.validate_payment_form)
def record_payment(invoice_id, validated_data):
    record = get_services().invoices.record_partial_payment(invoice_id, validated_data["amount"], get_current_user())
    return jsonify({"success": True, "invoice": _invoice_payload(record)})


@api_bp.route("/invoices/<invoice_id>/due-date", methods=["PUT"])
@login_required
@validate_form_data(form_validator.validate_due_date_form)
def update_due_date(invoice_id, validated_data):
    record = get_services().invoices.update_due_date(invoice_id, validated_data["due_date"], get_current_user())
    return jsonify({"success": True, "invoice": _invoice_payload(record)})


@api_bp.route("/invoices/<invoice_id>/notes", methods=["POST"])
@login_required
def add_invoice_note(invoice_id):
    record = get_services().invoices.add_note(invoice_id, _json_body().get("note"), get_current_user())
    return jsonify({"success": True, "invoice": _invoice_payload(record)})


@api_bp.route("/invoices/<invoice_id>/files", methods=["POST"])
@login_required
@validate_form_data(form_validator.validate_link_files_form)
def link_invoice_files(invoice_id, validated_data):
    record = get_services().invoices.link_files(
        invoice_id, validated_data.get("file_id"), validated_data.get("additional_file_ids"), get_current_user()
    )
    return jsonify({"success": True, "invoice": _invoice_payload(record)})


@api_bp.route("/invoices/<invoice_id>/tax")
@login_required
def invoice_tax(invoice_id):
    services = get_services()
    record = services.invoices.get_invoice(invoice_id, get_current_user())
    return jsonify({"success": True, "tax": services.invoices.tax_breakdown(record).to_dict()})


# Banks
@api_bp.route("/banks")
@login_required
def list_banks():
    return jsonify({"success": True, "banks": [bank.to_dict() for bank in get_services().banks.list_banks()]})


@api_bp.route("/banks/default")
@login_required
def default_bank():
    bank = get_services().banks.get_default_bank()
    return jsonify({"success": True, "bank": bank.to_dict() if bank else None})


@api_bp.route("/banks", methods=["POST"])
@login_required
def add_bank():
    bank = get_services().banks.add_bank(_json_body(), get_current_user())
    return jsonify({"success": True, "bank": bank.to_dict()}), 201


@api_bp.route("/banks/<bank_id>", methods=["PUT"])
@login_required
def update_bank(bank_id):
    bank = get_services().banks.update_bank(bank_id, _json_body(), get_current_user())
    return jsonify({"success": True, "bank": bank.to_dict()})


@api_bp.route("/banks/<bank_id>", methods=["DELETE"])
@login_required
def delete_bank(bank_id):
    removed = get_services().banks.delete_bank(bank_id, get_current_user(), confirmed=_confirmed())
    return jsonify({"success": True, "deleted": removed.id})


@api_bp.route("/banks/<bank_id>/default", methods=["POST"])
@login_required
def set_default_bank(bank_id):
    bank = get_services().banks.set_default_bank(bank_id, get_current_user())
    return jsonify({"success": True, "bank": bank.to_dict()})


# Users
@api_bp.route("/users")
@role_required(ROLE_ADMIN)
def list_users():
    users = get_services().users.list_users(get_current_user())
    return jsonify({"success": True, "users": [user.public_profile() for user in users]})


@api_bp.route("/users", methods=["POST"])
@role_required(ROLE_ADMIN)
def create_user():
    user = get_services().users.create_user(_json_body(), get_current_user())
    return jsonify({"success": True, "user": user.public_profile()}), 201


@api_bp.route("/users/<user_id>")
@role_required(ROLE_ADMIN)
def get_user(user_id):
    user = get_services().users.get_user(user_id, get_current_user())
    return jsonify({"success": True, "user": user.public_profile()})


@api_bp.route("/users/<user_id>", methods=["PUT"])
@role_required(ROLE_ADMIN)
def update_user(user_id):
    user = get_services().users.update_profile(user_id, _json_body(), get_current_user())
    return jsonify({"success": True, "user": user.public_profile()})


@api_bp.route("/users/<user_id>", methods=["DELETE"])
@role_required(ROLE_ADMIN)
def delete_user(user_id):
    removed = get_services().users.delete_user(user_id, get_current_user(), confirmed=_confirmed())
    return jsonify({"success": True, "deleted": removed.id})


@api_bp.route("/users/<user_id>/role", methods=["PUT"])
@role_required(ROLE_ADMIN)
def change_user_role(user_id):
    role = form_validator.sanitize_string(_json_body().get("role"))
    user = get_services().users.change_role(user_id, role, get_current_user())
    return jsonify({"success": True, "user": user.public_profile()})


@api_bp.route("/users/<user_id>/password", methods=["PUT"])
@role_required(ROLE_ADMIN)
def change_user_password(user_id):
    body = normalize_form_keys(_json_body())
    user = get_services().users.change_password(
        user_id,
        body.get("new_password") or body.get("password"),
        get_current_user(),
        current_password=body.get("current_password"),
    )
    return jsonify({"success": True, "user": user.public_profile()})


@api_bp.route("/users/<user_id>/activate", methods=["PUT"])
@role_required(ROLE_ADMIN)
def activate_user(user_id):
    user = get_services().users.set_active(user_id, True, get_current_user())
    log_business_event("user_activated", "user", user.id)
    return jsonify({"success": True, "user": user.public_profile()})


@api_bp.route("/users/<user_id>/deactivate", methods=["PUT"])
@role_required(ROLE_ADMIN)
def deactivate_user(user_id):
    user = get_services().users.set_active(user_id, False, get_current_user())
    log_business_event("user_deactivated", "user", user.id)
    return jsonify({"success": True, "user": user.public_profile()})
