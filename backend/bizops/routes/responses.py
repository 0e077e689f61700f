# Overview: Shared JSON error responses for the API blueprints.

from flask import current_app, jsonify

from ..errors import BizOpsError


def error_response(prefix: str, exc: Exception):
    """
    "<prefix>: <message>" plus details, with the status carried by the error.

    Anything that is not a BizOpsError is logged with its traceback and
    reported as a plain 500.
    """
    if isinstance(exc, BizOpsError):
        if exc.status_code >= 500:
            current_app.logger.error("%s: %s (%s)", prefix, exc.message, exc.details)
        return jsonify({"error": f"{prefix}: {exc.message}", "details": exc.details}), exc.status_code

    current_app.logger.exception(prefix)
    return jsonify({"error": f"{prefix}: Internal server error"}), 500
