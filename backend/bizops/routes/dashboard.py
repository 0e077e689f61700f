# Overview: Flask API route for the dashboard metrics.

from flask import Blueprint, jsonify

from ..services import metrics_service
from .responses import error_response


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/")
def dashboard_route():
    try:
        return jsonify(metrics_service.dashboard()), 200
    except Exception as e:
        return error_response("Failed to load dashboard", e)
