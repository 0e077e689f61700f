from flask import Blueprint, jsonify, request

from ..services import metrics_service
from .responses import error_response


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/revenue")
def revenue_report():
    group_by = request.args.get("group_by", "day")
    start = request.args.get("start")
    end = request.args.get("end")

    try:
        report = metrics_service.revenue_report(start=start, end=end, group_by=group_by)
        return jsonify(report), 200
    except Exception as e:
        return error_response("Failed to build revenue report", e)


@reports_bp.get("/top")
def top_report():
    start = request.args.get("start")
    end = request.args.get("end")
    limit = request.args.get("limit", 10, type=int)

    try:
        report = metrics_service.top_report(start=start, end=end, limit=limit)
        return jsonify(report), 200
    except Exception as e:
        return error_response("Failed to build top report", e)
