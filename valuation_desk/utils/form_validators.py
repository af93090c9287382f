"""
Form validation utilities for JSON form submissions.

Forms arrive with either camelCase keys (as the records are persisted) or
snake_case keys; both are accepted and validated data is always snake_case.
"""

import re
from decimal import Decimal
from functools import wraps
from typing import Any, Dict, List, Optional

from flask import request

from valuation_desk.models.entities import (
    ACCOUNT_TYPES,
    FILE_STATUSES,
    GST_TYPES,
    INVOICE_STATUSES,
    ROLES,
)
from valuation_desk.utils.validators import InputValidator, ValidationError

IFSC_PATTERN = r"^[A-Z]{4}0[A-Z0-9]{6}$"
MIN_PASSWORD_LENGTH = 6

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def normalize_form_keys(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Convert camelCase keys to snake_case"""
    if not data:
        return {}
    return {_CAMEL_BOUNDARY.sub("_", key).lower(): value for key, value in data.items()}


FILE_SCHEMA = {
    "file_date": {"type": "date"},
    "status": {"type": "string", "allowed_values": FILE_STATUSES, "default": "pending"},
    "client_first_name": {"type": "string", "required": True, "max_length": 100, "label": "Client first name"},
    "client_middle_name": {"type": "string", "max_length": 100, "default": ""},
    "client_last_name": {"type": "string", "required": True, "max_length": 100, "label": "Client last name"},
    "client_address": {"type": "string", "max_length": 500, "default": ""},
    "client_phone": {"type": "phone", "default": ""},
    "client_email": {"type": "email", "default": ""},
    "bank_name": {"type": "string", "max_length": 200, "default": ""},
    "branch_name": {"type": "string", "max_length": 200, "default": ""},
    "description": {"type": "string", "required": True, "max_length": 2000, "label": "Property description"},
    "property_value": {"type": "amount", "required": True, "label": "Property value"},
    "report_maker": {"type": "string", "max_length": 200, "default": ""},
    "inspected_by": {"type": "string", "max_length": 200, "default": ""},
    "remarks": {"type": "string", "max_length": 2000, "default": ""},
    "invoice_amount": {"type": "amount"},
}

INVOICE_SCHEMA = {
    "invoice_date": {"type": "date", "required": True, "label": "Invoice date"},
    "due_date": {"type": "date"},
    "status": {"type": "string", "allowed_values": INVOICE_STATUSES},
    "client_first_name": {"type": "string", "required": True, "max_length": 100, "label": "Client first name"},
    "client_middle_name": {"type": "string", "max_length": 100, "default": ""},
    "client_last_name": {"type": "string", "required": True, "max_length": 100, "label": "Client last name"},
    "client_address": {"type": "string", "max_length": 500, "default": ""},
    "client_gst_number": {"type": "string", "max_length": 20, "default": ""},
    "bank_name": {"type": "string", "required": True, "max_length": 200, "label": "Bank name"},
    "branch_name": {"type": "string", "max_length": 200, "default": ""},
    "report_maker": {"type": "string", "required": True, "max_length": 200, "label": "Report maker"},
    "inspected_by": {"type": "string", "required": True, "max_length": 200, "label": "Inspector"},
    "description": {"type": "string", "max_length": 2000, "default": ""},
    "professional_fees": {"type": "amount", "label": "Professional fees"},
    "advance": {"type": "amount"},
    "gst_applicable": {"type": "boolean", "default": False, "label": "GST applicable"},
    "gst_type": {"type": "string", "allowed_values": GST_TYPES, "label": "GST type"},
    "cgst_rate": {"type": "amount", "label": "CGST rate"},
    "sgst_rate": {"type": "amount", "label": "SGST rate"},
    "igst_rate": {"type": "amount", "label": "IGST rate"},
    "file_id": {"type": "string", "max_length": 100},
    "additional_file_ids": {"type": "list", "max_length": 100, "default": []},
}

BANK_SCHEMA = {
    "bank_name": {"type": "string", "required": True, "max_length": 200, "label": "Bank name"},
    "branch_name": {"type": "string", "required": True, "max_length": 200, "label": "Branch name"},
    "account_number": {"type": "string", "required": True, "max_length": 34, "label": "Account number"},
    "ifsc_code": {
        "type": "string",
        "required": True,
        "max_length": 11,
        "label": "IFSC code",
        "pattern": IFSC_PATTERN,
        "pattern_message": "IFSC code must be 4 letters, a zero, then 6 letters or digits",
    },
    "account_type": {"type": "string", "allowed_values": ACCOUNT_TYPES, "default": "Current", "label": "Account type"},
    "account_holder_name": {"type": "string", "required": True, "max_length": 200, "label": "Account holder name"},
    "is_default": {"type": "boolean", "default": False},
}

USER_SCHEMA = {
    "username": {"type": "string", "required": True, "max_length": 50},
    "password": {"type": "text", "required": True, "max_length": 128},
    "full_name": {"type": "string", "required": True, "max_length": 200, "label": "Full name"},
    "role": {"type": "string", "allowed_values": ROLES, "default": "computer-operator"},
    "email": {"type": "email", "default": ""},
    "phone": {"type": "phone", "default": ""},
    "address": {"type": "string", "max_length": 500, "default": ""},
}

PROFILE_SCHEMA = {
    "full_name": {"type": "string", "required": True, "max_length": 200, "label": "Full name"},
    "email": {"type": "email", "default": ""},
    "phone": {"type": "phone", "default": ""},
    "address": {"type": "string", "max_length": 500, "default": ""},
}


class FormValidator(InputValidator):
    """Extended validator for form submissions"""

    def validate_file_form(self, form_data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """
        Validate file creation/update form

        Args:
            form_data: Form data dictionary
            partial: Validate only the fields that were submitted (updates)

        Returns:
            Validated form data

        Raises:
            ValidationError: If validation fails
        """
        return self.validate_request_data(normalize_form_keys(form_data), FILE_SCHEMA, partial=partial)

    def validate_invoice_form(self, form_data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """
        Validate invoice creation/update form

        Raises:
            ValidationError: If validation fails
        """
        validated = self.validate_request_data(normalize_form_keys(form_data), INVOICE_SCHEMA, partial=partial)

        if not partial and validated.get("gst_type") is None:
            validated["gst_type"] = GST_TYPES[0]

        for rate_field in ("cgst_rate", "sgst_rate", "igst_rate"):
            rate = validated.get(rate_field)
            if rate is not None and rate > 100:
                raise ValidationError(f"{rate_field.split('_')[0].upper()} rate cannot exceed 100", rate_field)
            if rate is None and rate_field in validated:
                del validated[rate_field]

        for amount_field in ("professional_fees", "advance"):
            if amount_field in validated and validated[amount_field] is None:
                if partial:
                    del validated[amount_field]
                else:
                    validated[amount_field] = Decimal("0")

        return validated

    def validate_bank_form(self, form_data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """
        Validate bank account form

        The IFSC code is upper-cased before it is checked.
        """
        data = normalize_form_keys(form_data)
        if isinstance(data.get("ifsc_code"), str):
            data["ifsc_code"] = data["ifsc_code"].strip().upper()
        return self.validate_request_data(data, BANK_SCHEMA, partial=partial)

    def validate_password(self, password: Any, field_name: str = "password") -> str:
        if not isinstance(password, str) or not password:
            raise ValidationError("Password is required", field_name, "REQUIRED")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field_name, "TOO_SHORT"
            )
        return password

    def validate_user_form(self, form_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate user creation form

        Raises:
            ValidationError: If validation fails or the password is too short
        """
        validated = self.validate_request_data(normalize_form_keys(form_data), USER_SCHEMA)
        self.validate_password(validated["password"])
        return validated

    def validate_profile_form(self, form_data: Dict[str, Any], partial: bool = True) -> Dict[str, Any]:
        return self.validate_request_data(normalize_form_keys(form_data), PROFILE_SCHEMA, partial=partial)

    def validate_status_form(self, form_data: Dict[str, Any], allowed_statuses: List[str]) -> Dict[str, Any]:
        """Validate a status change request (``status`` plus optional ``payment_date``)"""
        schema = {
            "status": {"type": "string", "required": True, "allowed_values": allowed_statuses},
            "payment_date": {"type": "date"},
        }
        return self.validate_request_data(normalize_form_keys(form_data), schema)

    def validate_payment_form(self, form_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate a partial payment

        Raises:
            ValidationError: If the amount is missing, negative or zero
        """
        schema = {"amount": {"type": "amount", "required": True}}
        validated = self.validate_request_data(normalize_form_keys(form_data), schema)
        if validated["amount"] <= 0:
            raise ValidationError("Amount must be greater than zero", "amount", "INVALID_VALUE")
        return validated

    def validate_note_form(self, form_data: Dict[str, Any]) -> Dict[str, Any]:
        schema = {"note": {"type": "string", "required": True, "max_length": 2000}}
        return self.validate_request_data(normalize_form_keys(form_data), schema)

    def validate_due_date_form(self, form_data: Dict[str, Any]) -> Dict[str, Any]:
        schema = {"due_date": {"type": "date", "required": True, "label": "Due date"}}
        return self.validate_request_data(normalize_form_keys(form_data), schema)

    def validate_link_files_form(self, form_data: Dict[str, Any]) -> Dict[str, Any]:
        schema = {
            "file_id": {"type": "string", "max_length": 100},
            "additional_file_ids": {"type": "list", "max_length": 100, "default": []},
        }
        return self.validate_request_data(normalize_form_keys(form_data), schema)

    def validate_file_criteria(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate file list criteria taken from query parameters

        Returns:
            Keyword arguments for ``FileCriteria``
        """
        schema = {
            "search": {"type": "string", "max_length": 200},
            "status": {"type": "string", "allowed_values": FILE_STATUSES},
            "bank_name": {"type": "string", "max_length": 200},
            "branch_name": {"type": "string", "max_length": 200},
            "inspected_by": {"type": "string", "max_length": 200},
            "description": {"type": "string", "max_length": 200},
            "client_first_name": {"type": "string", "max_length": 100},
            "client_middle_name": {"type": "string", "max_length": 100},
            "client_last_name": {"type": "string", "max_length": 100},
            "client_phone": {"type": "string", "max_length": 20},
            "client_email": {"type": "string", "max_length": 254},
            "date_preset": {"type": "string", "allowed_values": ["today", "week", "month"]},
            "date_from": {"type": "date"},
            "date_to": {"type": "date"},
            "amount_min": {"type": "amount"},
            "amount_max": {"type": "amount"},
        }
        validated = self.validate_request_data(normalize_form_keys(args), schema, partial=True)
        return {key: value for key, value in validated.items() if value not in (None, "")}

    def validate_invoice_criteria(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Validate invoice list criteria taken from query parameters"""
        schema = {
            "search": {"type": "string", "max_length": 200},
            "status": {"type": "string", "allowed_values": INVOICE_STATUSES},
            "bank_name": {"type": "string", "max_length": 200},
            "gst_applicable": {"type": "boolean"},
            "date_from": {"type": "date"},
            "date_to": {"type": "date"},
            "amount_min": {"type": "amount"},
            "amount_max": {"type": "amount"},
        }
        validated = self.validate_request_data(normalize_form_keys(args), schema, partial=True)
        return {key: value for key, value in validated.items() if value not in (None, "")}

    def validate_sort(self, args: Dict[str, Any], allowed_keys: List[str], default_key: str) -> Dict[str, str]:
        """Validate ``sort``/``order`` query parameters"""
        sort_key = self.validate_filter_value(args.get("sort") or default_key, "sort", allowed_keys)
        order = self.validate_filter_value((args.get("order") or "desc").lower(), "order", ["asc", "desc"])
        return {"sort_key": sort_key, "order": order}


# Global form validator instance
form_validator = FormValidator()


def validate_form_data(validation_func):
    """
    Decorator for validating a JSON form body

    The validated data is passed to the view as ``validated_data``. Validation
    errors propagate to the application's error handlers.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            form_data = dict(request.form)
            json_data = request.get_json(silent=True)
            if isinstance(json_data, dict):
                form_data.update(json_data)

            kwargs["validated_data"] = validation_func(form_data)
            return func(*args, **kwargs)

        return wrapper

    return decorator
