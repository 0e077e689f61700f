# Overview: Flask API routes for customer profile and manual loyalty awards.

from flask import Blueprint, jsonify, request

from ..services import customer_service, metrics_service
from ..validation import require_json_object
from .responses import error_response


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/<int:customer_id>/profile")
def customer_profile_route(customer_id: int):
    try:
        return jsonify(metrics_service.customer_profile(customer_id)), 200
    except Exception as e:
        return error_response("Failed to load customer profile", e)


@customers_bp.put("/<int:customer_id>/loyalty")
def add_loyalty_route(customer_id: int):
    try:
        data = require_json_object(request.get_json(silent=True))
        customer = customer_service.add_loyalty_points(customer_id, data.get("points"))
        return jsonify({"customer": customer.to_dict()}), 200
    except Exception as e:
        return error_response("Failed to add loyalty points", e)
