# Overview: Flask API routes for sales targets; list, create, edit and recalculate.

from flask import Blueprint, jsonify, request

from ..services import target_service
from .responses import error_response


targets_bp = Blueprint("targets", __name__, url_prefix="/api/targets")


@targets_bp.get("/")
def list_targets_route():
    """All targets; active ones are recalculated first."""
    try:
        targets = target_service.list_targets()
        return jsonify({"targets": [t.to_dict() for t in targets]}), 200
    except Exception as e:
        return error_response("Failed to load targets", e)


@targets_bp.post("/")
def create_target_route():
    try:
        target = target_service.create_target(request.get_json(silent=True))
        return jsonify({"target": target.to_dict()}), 201
    except Exception as e:
        return error_response("Failed to create target", e)


@targets_bp.put("/<int:target_id>")
def update_target_route(target_id: int):
    try:
        target = target_service.update_target(target_id, request.get_json(silent=True))
        return jsonify({"target": target.to_dict()}), 200
    except Exception as e:
        return error_response("Failed to update target", e)


@targets_bp.post("/recalculate")
def recalculate_targets_route():
    try:
        updated = target_service.recalculate_targets()
        return jsonify({"recalculated": len(updated), "targets": [t.to_dict() for t in updated]}), 200
    except Exception as e:
        return error_response("Failed to recalculate targets", e)
