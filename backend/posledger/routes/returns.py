# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

"""
Return Processing API Routes

DESIGN:
- Check eligibility before offering a return at the till
- A return is processed in one call and is immutable afterwards
- Refund, restock, profit correction and loyalty deduction happen together
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..models.auth import ROLE_CASHIER, ROLE_MANAGER
from ..services import return_service
from ..services.reporting_service import parse_range
from ..validation import query_int
from ..decorators import require_auth, require_role


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.get("/eligibility")
@require_auth
@require_role(ROLE_CASHIER, ROLE_MANAGER)
def eligibility_route():
    """Query: ?sale_id=..&product_id=.."""
    try:
        eligibility = return_service.check_eligibility(
            request.args.get("sale_id"),
            request.args.get("product_id"),
        )
        return jsonify({"eligible": True, **eligibility.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check return eligibility")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("")
@require_auth
@require_role(ROLE_CASHIER, ROLE_MANAGER)
def create_return_route():
    """
    Request body:
    {
        "sale_id": 123,
        "product_id": 4,
        "quantity_returned": 1,
        "return_reason": "Damaged",  (optional)
        "restock": true              (optional, default: true)
    }

    Returns:
        201: Return processed
        400: Invalid input
        404: Sale line not found
        409: Exceeds remaining quantity / already fully returned
    """
    try:
        data = request.get_json(silent=True) or {}

        product_return = return_service.process_return(
            data.get("sale_id"),
            data.get("product_id"),
            data.get("quantity_returned"),
            reason=data.get("return_reason"),
            restock=data.get("restock", True),
            actor_user_id=g.current_user.id,
        )

        return jsonify({
            "return": product_return.to_dict(),
            "sale": product_return.sale.to_dict(),
            "message": "Return processed successfully",
        }), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("")
@require_auth
@require_role(ROLE_MANAGER)
def list_returns_route():
    try:
        start, end = parse_range(request.args.get("start"), request.args.get("end"))
        result = return_service.list_returns(
            start=start,
            end=end,
            page=query_int(request.args, "page", 1, minimum=1),
            limit=query_int(request.args, "limit", 50, minimum=1, maximum=200),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/stats")
@require_auth
@require_role(ROLE_MANAGER)
def return_stats_route():
    try:
        days = query_int(request.args, "days", 30, minimum=1, maximum=366)
        return jsonify({"stats": return_service.return_stats(days)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute return stats")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<int:return_id>")
@require_auth
def get_return_route(return_id: int):
    try:
        return jsonify({"return": return_service.get_return(return_id).to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
