"""
Error handlers for the Valuation Desk.

Domain exceptions are translated into the JSON error envelope
``{"success": false, "error": ..., "details": {...}}``.
"""

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from valuation_desk.services.access import PermissionDeniedError
from valuation_desk.services.record_store import (
    ConfirmationRequiredError,
    DuplicateRecordError,
    RecordNotFoundError,
    StorageWriteError,
)
from valuation_desk.utils.logging_config import get_logger, log_security_event
from valuation_desk.utils.security import AuthenticationRequiredError
from valuation_desk.utils.validators import ValidationError


def error_response(error: str, status: int, **details):
    return jsonify({"success": False, "error": error, "details": details}), status


def register_error_handlers(app):
    """Register error handlers with the Flask app"""
    logger = get_logger("views.errors")

    @app.errorhandler(ValidationError)
    def validation_error(e):
        logger.info(
            "Validation failed",
            extra={"category": "validation_error", "field": e.field, "code": e.code, "errors": e.errors},
        )
        return error_response("Validation failed", 400, **e.to_dict())

    @app.errorhandler(AuthenticationRequiredError)
    def authentication_required(e):
        return error_response("Authentication required", 401, message=e.message, code=e.code)

    @app.errorhandler(PermissionDeniedError)
    def permission_denied(e):
        log_security_event("permission_denied", {"endpoint": request.path, "action": e.action, "reason": e.message})
        return error_response("Permission denied", 403, message=e.message, code=e.code)

    @app.errorhandler(RecordNotFoundError)
    def record_not_found(e):
        return error_response("Not found", 404, message=e.message, code="NOT_FOUND", id=e.record_id)

    @app.errorhandler(ConfirmationRequiredError)
    def confirmation_required(e):
        return error_response("Confirmation required", 409, message=e.message, code=e.code, id=e.record_id)

    @app.errorhandler(DuplicateRecordError)
    def duplicate_record(e):
        return error_response("Duplicate record", 409, message=e.message, code="DUPLICATE", id=e.record_id)

    @app.errorhandler(StorageWriteError)
    def storage_write_failed(e):
        return error_response("Storage unavailable", 503, message=e.message, code=e.code)

    @app.errorhandler(HTTPException)
    def http_error(e):
        return error_response(e.name, e.code or 500, message=e.description)

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle unexpected exceptions"""
        logger.error(
            "Unhandled exception",
            extra={
                "category": "unhandled_exception",
                "endpoint": request.path,
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        return error_response("Internal server error", 500, message="An unexpected error occurred")
