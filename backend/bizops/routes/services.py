# Overview: Flask API routes for service tickets; intake and status updates.

from flask import Blueprint, jsonify, request

from ..services import repair_service
from .responses import error_response


services_bp = Blueprint("services", __name__, url_prefix="/api/services")


@services_bp.post("/")
def create_service_route():
    try:
        ticket = repair_service.create_service(request.get_json(silent=True))
        return jsonify({"service": ticket.to_dict()}), 201
    except Exception as e:
        return error_response("Failed to create service", e)


@services_bp.get("/<int:service_id>")
def get_service_route(service_id: int):
    try:
        ticket = repair_service.get_service(service_id)
        return jsonify({"service": ticket.to_dict()}), 200
    except Exception as e:
        return error_response("Failed to load service", e)


@services_bp.put("/<int:service_id>")
def update_service_route(service_id: int):
    """
    Update a service ticket.

    Moving the ticket into "completed" with a positive cost books the service
    income (once per ticket) and refreshes the targets.
    """
    try:
        ticket = repair_service.update_service(service_id, request.get_json(silent=True))
        income = repair_service.find_service_income(ticket.id)
        return jsonify({
            "service": ticket.to_dict(),
            "income_transaction": income.to_dict() if income is not None else None,
        }), 200
    except Exception as e:
        return error_response("Failed to update service", e)
