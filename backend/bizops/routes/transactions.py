# Overview: Flask API routes for transactions; sale/income/expense create, edit and delete.

from flask import Blueprint, jsonify, request

from ..services import transaction_service
from .responses import error_response


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.post("/")
def create_transaction_route():
    """
    Record a transaction.

    type=sale takes `items` (product_id, quantity, optional unit_price_cents)
    and adjusts stock, the customer ledger and receivables. income/expense
    take a plain amount_cents.
    """
    try:
        tx = transaction_service.create_transaction(request.get_json(silent=True))
        return jsonify({"transaction": tx.to_dict()}), 201
    except Exception as e:
        return error_response("Failed to create transaction", e)


@transactions_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        tx = transaction_service.get_transaction(transaction_id)
        return jsonify({"transaction": tx.to_dict()}), 200
    except Exception as e:
        return error_response("Failed to load transaction", e)


@transactions_bp.put("/<int:transaction_id>")
def update_transaction_route(transaction_id: int):
    """Edit a transaction; stock from the old version is restored before the new one is taken."""
    try:
        tx = transaction_service.update_transaction(transaction_id, request.get_json(silent=True))
        return jsonify({"transaction": tx.to_dict()}), 200
    except Exception as e:
        return error_response("Failed to update transaction", e)


@transactions_bp.delete("/<int:transaction_id>")
def delete_transaction_route(transaction_id: int):
    try:
        transaction_service.delete_transaction(transaction_id)
        return jsonify({"deleted": transaction_id}), 200
    except Exception as e:
        return error_response("Failed to delete transaction", e)
