"""
Main routes for the Valuation Desk: the dashboard and the health check.
"""

from datetime import datetime

from flask import Blueprint, jsonify

from valuation_desk.utils.security import get_current_user, login_required, secure_headers

main_bp = Blueprint("main", __name__)


def get_services():
    """Get the services from the current app context"""
    from valuation_desk import get_services as _get_services

    return _get_services()


def storage_health():
    services = get_services()
    storage = services.store.storage
    healthy = storage.health_check()
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "storage": storage.backend_name,
        "connected": healthy,
        "timestamp": datetime.now().isoformat(),
    }
    return body, 200 if healthy else 503


@main_bp.route("/")
@login_required
@secure_headers
def dashboard():
    """Dashboard figures for the signed-in user"""
    user = get_current_user()
    stats = get_services().stats.dashboard(user)
    return jsonify({"success": True, "user": user.public_profile(), "stats": stats})


@main_bp.route("/health")
def health_check():
    """Health check endpoint"""
    return storage_health()
