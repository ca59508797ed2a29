# Overview: Flask API routes for customers and loyalty programs; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..models.auth import ROLE_CASHIER, ROLE_MANAGER
from ..services import customer_service, loyalty_service
from ..validation import coerce_bool, query_int
from ..decorators import require_auth, require_role


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")
loyalty_bp = Blueprint("loyalty", __name__, url_prefix="/api/loyalty")


# =============================================================================
# CUSTOMERS
# =============================================================================

@customers_bp.get("")
@require_auth
def search_customers_route():
    try:
        customers = customer_service.search_customers(
            request.args.get("search"),
            limit=query_int(request.args, "limit", 50, minimum=1, maximum=200),
        )
        return jsonify({"customers": [c.to_dict() for c in customers]}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to search customers")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("")
@require_auth
@require_role(ROLE_CASHIER, ROLE_MANAGER)
def create_customer_route():
    try:
        customer = customer_service.create_customer(
            request.get_json(silent=True),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"customer": customer.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        return jsonify({"customer": customer_service.get_customer(customer_id).to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@customers_bp.patch("/<int:customer_id>")
@require_auth
@require_role(ROLE_CASHIER, ROLE_MANAGER)
def update_customer_route(customer_id: int):
    try:
        customer = customer_service.update_customer(customer_id, request.get_json(silent=True))
        return jsonify({"customer": customer.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/transactions")
@require_auth
def customer_transactions_route(customer_id: int):
    try:
        result = customer_service.list_transactions(
            customer_id,
            page=query_int(request.args, "page", 1, minimum=1),
            limit=query_int(request.args, "limit", 50, minimum=1, maximum=200),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list loyalty transactions")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/points")
@require_auth
@require_role(ROLE_MANAGER)
def adjust_points_route(customer_id: int):
    """
    Manual points adjustment.

    Request body: {"points": -50, "reason": "Goodwill correction"}
    """
    try:
        data = request.get_json(silent=True) or {}
        txn = loyalty_service.adjust_points(
            customer_id,
            data.get("points"),
            data.get("reason"),
            actor_user_id=g.current_user.id,
        )
        customer = customer_service.get_customer(customer_id)
        return jsonify({"transaction": txn.to_dict(), "customer": customer.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust points")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LOYALTY PROGRAMS
# =============================================================================

@loyalty_bp.get("/programs")
@require_auth
def list_programs_route():
    try:
        active_only = coerce_bool("active_only", request.args.get("active_only"), default=False)
        programs = loyalty_service.list_programs(active_only=active_only)
        return jsonify({"programs": [p.to_dict() for p in programs]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@loyalty_bp.post("/programs")
@require_auth
@require_role(ROLE_MANAGER)
def create_program_route():
    try:
        program = loyalty_service.create_program(request.get_json(silent=True))
        return jsonify({"program": program.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create loyalty program")
        return jsonify({"error": "Internal server error"}), 500


@loyalty_bp.patch("/programs/<int:program_id>")
@require_auth
@require_role(ROLE_MANAGER)
def update_program_route(program_id: int):
    try:
        program = loyalty_service.update_program(program_id, request.get_json(silent=True))
        return jsonify({"program": program.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update loyalty program")
        return jsonify({"error": "Internal server error"}), 500


@loyalty_bp.get("/programs/<int:program_id>/stats")
@require_auth
@require_role(ROLE_MANAGER)
def program_stats_route(program_id: int):
    try:
        stats = loyalty_service.program_stats(program_id, days=query_int(request.args, "days", 30, minimum=1))
        return jsonify({"stats": stats}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load loyalty program stats")
        return jsonify({"error": "Internal server error"}), 500
