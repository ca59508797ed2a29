# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales API Routes

POST /api/sales posts a whole checkout in one transaction:

{
    "items": [
        {"product_id": 1, "quantity": 3, "unit_price_cents": 5000,
         "original_price_cents": 5000}
    ],
    "payment_method": "cash",
    "amount_paid_cents": 20000,
    "customer_id": 7,            (optional)
    "points_to_redeem": 0,       (optional)
    "reward_discount_cents": 0,  (optional)
    "tax_cents": 0               (optional, defaults to TAX_RATE_BPS)
}
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import LedgerError, ValidationError
from ..models.auth import ROLE_CASHIER, ROLE_MANAGER
from ..models.sales import RETURN_STATUS_FULL, RETURN_STATUS_NONE, RETURN_STATUS_PARTIAL
from ..services import sales_service
from ..services.reporting_service import parse_range
from ..services.sales_service import CheckoutInput
from ..validation import query_int
from ..decorators import require_auth, require_role


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_role(ROLE_CASHIER, ROLE_MANAGER)
def create_sale_route():
    try:
        checkout = CheckoutInput.from_dict(request.get_json(silent=True))
        result = sales_service.process_sale(checkout, actor_user_id=g.current_user.id)
        body = result.to_dict()
        body["message"] = "Sale processed successfully"
        return jsonify(body), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    try:
        start, end = parse_range(request.args.get("start"), request.args.get("end"))
        return_status = request.args.get("return_status")
        if return_status and return_status not in (RETURN_STATUS_NONE, RETURN_STATUS_PARTIAL, RETURN_STATUS_FULL):
            raise ValidationError("return_status must be none, partial or full")

        result = sales_service.list_sales(
            start=start,
            end=end,
            product_id=query_int(request.args, "product_id"),
            customer_id=query_int(request.args, "customer_id"),
            cashier_id=query_int(request.args, "cashier_id"),
            return_status=return_status,
            page=query_int(request.args, "page", 1, minimum=1),
            limit=query_int(request.args, "limit", 50, minimum=1, maximum=200),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({
            "sale": sale.to_dict(),
            "returns": [r.to_dict() for r in sale.returns],
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.get("/receipts/<receipt_number>")
@require_auth
def get_receipt_route(receipt_number: str):
    try:
        return jsonify({"receipt": sales_service.get_receipt(receipt_number)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
