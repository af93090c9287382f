"""
Input validation and sanitization utilities for the Valuation Desk.

This module provides validation for user inputs: list criteria, pagination
parameters, amounts, dates and form data. Field problems are collected into a
single ``ValidationError`` so a form can report every bad field at once.
"""

import copy
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from valuation_desk.utils.helpers import parse_date


class ValidationError(Exception):
    """Custom exception for validation errors"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: Optional[str] = None,
        errors: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.field = field
        self.code = code or "VALIDATION_ERROR"
        self.errors = dict(errors or {})
        if field and field not in self.errors:
            self.errors[field] = message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "field": self.field, "code": self.code, "errors": self.errors}


class InputValidator:
    """Input validation and sanitization class"""

    CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
    EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
    PHONE_PATTERN = re.compile(r"^[\+]?[\d\s\-\(\)\.]{7,20}$")

    def sanitize_string(
        self,
        value: Optional[Any],
        max_length: Optional[int] = None,
        strip_whitespace: bool = True,
    ) -> str:
        """
        Sanitize string input

        Args:
            value: Input value to sanitize
            max_length: Maximum allowed length
            strip_whitespace: Whether to strip leading/trailing whitespace

        Returns:
            Sanitized string with control characters removed
        """
        if value is None:
            return ""

        if not isinstance(value, str):
            value = str(value)

        value = self.CONTROL_CHARS.sub("", value)

        if strip_whitespace:
            value = value.strip()

        if max_length and len(value) > max_length:
            value = value[:max_length]

        return value

    def validate_pagination(
        self,
        page: Optional[Union[str, int]] = None,
        page_size: Optional[Union[str, int]] = None,
        default_size: int = 15,
        max_size: int = 500,
    ) -> Dict[str, int]:
        """
        Validate pagination parameters

        Args:
            page: 1-based page number
            page_size: Items per page
            default_size: Page size used when none is given
            max_size: Maximum allowed page size

        Returns:
            Dictionary with validated page and page_size

        Raises:
            ValidationError: If parameters are invalid
        """
        result = {}

        if page is not None and page != "":
            try:
                page_int = int(page)
            except (ValueError, TypeError):
                raise ValidationError("Page must be a valid integer", "page", "INVALID_TYPE")
            if page_int < 1:
                raise ValidationError("Page must be positive", "page", "INVALID_VALUE")
            result["page"] = page_int
        else:
            result["page"] = 1

        if page_size is not None and page_size != "":
            try:
                size_int = int(page_size)
            except (ValueError, TypeError):
                raise ValidationError("Page size must be a valid integer", "page_size", "INVALID_TYPE")
            if size_int < 1:
                raise ValidationError("Page size must be positive", "page_size", "INVALID_VALUE")
            if size_int > max_size:
                raise ValidationError(f"Page size cannot exceed {max_size}", "page_size", "TOO_LARGE")
            result["page_size"] = size_int
        else:
            result["page_size"] = default_size

        return result

    def validate_filter_value(self, value: Any, filter_name: str, allowed_values: Optional[List[str]] = None) -> str:
        """
        Validate a filter value

        Raises:
            ValidationError: If the value is not one of ``allowed_values``
        """
        if value is None or value == "":
            return ""

        sanitized = self.sanitize_string(value, max_length=200)

        if allowed_values and sanitized not in allowed_values:
            raise ValidationError(
                f"Invalid {filter_name} value. Allowed values: {', '.join(allowed_values)}",
                filter_name,
                "INVALID_VALUE",
            )

        return sanitized

    def validate_boolean_param(self, value: Optional[Union[str, bool]], field_name: str, default: bool = False) -> bool:
        """
        Validate boolean parameters

        Raises:
            ValidationError: If value is not a recognised boolean
        """
        if value is None or value == "":
            return default

        if isinstance(value, bool):
            return value

        if isinstance(value, str):
            value_lower = value.lower()
            if value_lower in ("true", "1", "yes", "on"):
                return True
            elif value_lower in ("false", "0", "no", "off"):
                return False

        raise ValidationError(f"{field_name} must be a boolean value", field_name, "INVALID_TYPE")

    def validate_amount(self, value: Any, field_name: str = "amount", required: bool = False) -> Optional[Decimal]:
        """
        Validate a money amount: a non-negative number

        Returns:
            Decimal amount, or None when optional and blank
        """
        if value is None or value == "":
            if required:
                raise ValidationError(f"{field_name} is required", field_name, "REQUIRED")
            return None

        if isinstance(value, bool):
            raise ValidationError(f"{field_name} must be a number", field_name, "INVALID_TYPE")

        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field_name} must be a number", field_name, "INVALID_TYPE")

        if not amount.is_finite():
            raise ValidationError(f"{field_name} must be a number", field_name, "INVALID_TYPE")
        if amount < 0:
            raise ValidationError(f"{field_name} cannot be negative", field_name, "INVALID_VALUE")

        return amount

    def validate_date(self, value: Any, field_name: str = "date", required: bool = False) -> Optional[str]:
        """
        Validate a calendar date

        Returns:
            ISO date string (YYYY-MM-DD), or None when optional and blank
        """
        if value is None or value == "":
            if required:
                raise ValidationError(f"{field_name} is required", field_name, "REQUIRED")
            return None

        parsed = value if isinstance(value, date) else parse_date(value)
        if parsed is None:
            raise ValidationError(f"{field_name} must be a valid date", field_name, "INVALID_FORMAT")
        return parsed.isoformat()

    def validate_email(self, email: Any, field_name: str = "email", required: bool = True) -> Optional[str]:
        """
        Validate email address

        Raises:
            ValidationError: If email is invalid
        """
        if not email:
            if required:
                raise ValidationError("Email is required", field_name, "REQUIRED")
            return None

        if not isinstance(email, str):
            raise ValidationError("Email must be a string", field_name, "INVALID_TYPE")

        sanitized = self.sanitize_string(email, max_length=254).lower()

        if not self.EMAIL_PATTERN.match(sanitized):
            raise ValidationError("Invalid email format", field_name, "INVALID_FORMAT")

        return sanitized

    def validate_phone(self, phone: Any, field_name: str = "phone", required: bool = False) -> Optional[str]:
        """
        Validate phone number

        Raises:
            ValidationError: If phone number is invalid
        """
        if not phone:
            if required:
                raise ValidationError("Phone number is required", field_name, "REQUIRED")
            return None

        sanitized = self.sanitize_string(phone, max_length=20)

        if not self.PHONE_PATTERN.match(sanitized):
            raise ValidationError("Invalid phone number format", field_name, "INVALID_FORMAT")

        return sanitized

    def _validate_field_by_type(self, value: Any, field: str, field_type: str, max_length: Optional[int] = None) -> Any:
        """Validate a field based on its type."""
        if field_type == "string":
            return self.sanitize_string(value, max_length=max_length)
        elif field_type == "text":
            return self.sanitize_string(value, max_length=max_length, strip_whitespace=False)
        elif field_type == "email":
            return self.validate_email(value, field, required=False)
        elif field_type == "phone":
            return self.validate_phone(value, field, required=False)
        elif field_type == "amount":
            return self.validate_amount(value, field)
        elif field_type == "date":
            return self.validate_date(value, field)
        elif field_type == "boolean":
            return self.validate_boolean_param(value, field)
        elif field_type == "list":
            if not isinstance(value, (list, tuple)):
                raise ValidationError(f"{field} must be a list", field, "INVALID_TYPE")
            return [self.sanitize_string(item, max_length=max_length) for item in value if item]
        else:
            return self.sanitize_string(value, max_length=max_length)

    @staticmethod
    def _is_blank(value: Any) -> bool:
        return value is None or (isinstance(value, str) and not value.strip())

    def validate_request_data(
        self,
        data: Dict[str, Any],
        schema: Dict[str, Dict[str, Any]],
        partial: bool = False,
    ) -> Dict[str, Any]:
        """
        Validate request data against a schema

        Each schema entry may set ``type``, ``required``, ``max_length``,
        ``allowed_values``, ``pattern`` and ``label``. Every failing field is
        reported in the raised error's ``errors`` mapping.

        Args:
            data: Request data to validate (snake_case keys)
            schema: Validation schema
            partial: Only validate fields present in ``data`` and skip required checks

        Returns:
            Validated data

        Raises:
            ValidationError: If data is invalid
        """
        validated: Dict[str, Any] = {}
        errors: Dict[str, str] = {}

        for field, rules in schema.items():
            if partial and field not in data:
                continue

            value = data.get(field)
            label = rules.get("label", field.replace("_", " ").capitalize())

            if self._is_blank(value):
                if rules.get("required", False):
                    errors[field] = f"{label} is required"
                else:
                    validated[field] = copy.copy(rules.get("default"))
                continue

            try:
                cleaned = self._validate_field_by_type(value, field, rules.get("type", "string"), rules.get("max_length"))
            except ValidationError as e:
                errors[field] = e.message.replace(field, label, 1) if e.message.startswith(field) else e.message
                continue

            allowed_values = rules.get("allowed_values")
            if allowed_values and cleaned not in allowed_values:
                errors[field] = f"Invalid {label.lower()}. Allowed values: {', '.join(map(str, allowed_values))}"
                continue

            pattern = rules.get("pattern")
            if pattern and isinstance(cleaned, str) and not re.match(pattern, cleaned):
                errors[field] = rules.get("pattern_message", f"Invalid {label.lower()} format")
                continue

            validated[field] = cleaned

        if errors:
            first_field = next(iter(errors))
            raise ValidationError("Validation failed", first_field, "VALIDATION_ERROR", errors=errors)

        return validated


# Global validator instance
validator = InputValidator()
