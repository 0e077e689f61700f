# backend/bizops/routes/system.py
"""
Health endpoint.

Two checks:
- database: the store answers and the main tables can be counted.
- workflows: saga runs that failed and left steps applied. These need manual
  reconciliation; they mark the service "degraded" but still answer 200.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, Target, Transaction
from ..services.ledger_service import unreconciled_runs
from bizops.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def _timed(check):
    started = time.perf_counter()
    try:
        result = check()
        result.setdefault("status", "healthy")
    except SQLAlchemyError:
        current_app.logger.exception("Health check %s failed", check.__name__)
        db.session.rollback()
        result = {"status": "unhealthy", "error": "Database error"}
    result["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
    return result


def _database() -> dict:
    return {
        "details": {
            "products": db.session.query(Product).count(),
            "transactions": db.session.query(Transaction).count(),
            "targets": db.session.query(Target).count(),
        }
    }


def _workflows() -> dict:
    runs = unreconciled_runs()
    return {
        "status": "degraded" if runs else "healthy",
        "unreconciled": [
            {**run, "occurred_at": to_utc_z(run["occurred_at"])} for run in runs
        ],
    }


@system_bp.get("/api/health")
def health():
    """
    Returns:
    - 200: database reachable (status "healthy" or "degraded")
    - 503: database unreachable
    """
    checks = {"database": _timed(_database), "workflows": _timed(_workflows)}

    if checks["database"]["status"] != "healthy":
        status, http_status = "unhealthy", 503
    elif checks["workflows"]["status"] != "healthy":
        status, http_status = "degraded", 200
    else:
        status, http_status = "healthy", 200

    return {"status": status, "timestamp": to_utc_z(utcnow()), "checks": checks}, http_status
