# Overview: Flask API routes for suppliers and purchase orders; parses input and returns JSON responses.

"""
Purchasing API Routes

- Suppliers: CRUD (soft delete) and order statistics
- Purchase orders: create, edit header, receive (restocks products), cancel
- Managers only; cashiers never touch purchasing
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..models.auth import ROLE_MANAGER
from ..services import purchase_order_service, supplier_service
from ..validation import coerce_bool, query_int
from ..decorators import require_auth, require_role


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")
purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


# =============================================================================
# SUPPLIERS
# =============================================================================

@suppliers_bp.get("")
@require_auth
@require_role(ROLE_MANAGER)
def list_suppliers_route():
    try:
        result = supplier_service.list_suppliers(
            search=request.args.get("search"),
            include_inactive=coerce_bool("include_inactive", request.args.get("include_inactive"), default=False),
            page=query_int(request.args, "page", 1, minimum=1),
            limit=query_int(request.args, "limit", 50, minimum=1, maximum=200),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list suppliers")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.post("")
@require_auth
@require_role(ROLE_MANAGER)
def create_supplier_route():
    try:
        supplier = supplier_service.create_supplier(
            request.get_json(silent=True),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"supplier": supplier.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
@require_role(ROLE_MANAGER)
def get_supplier_route(supplier_id: int):
    try:
        return jsonify({"supplier": supplier_service.get_supplier(supplier_id).to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@suppliers_bp.patch("/<int:supplier_id>")
@require_auth
@require_role(ROLE_MANAGER)
def update_supplier_route(supplier_id: int):
    try:
        supplier = supplier_service.update_supplier(supplier_id, request.get_json(silent=True))
        return jsonify({"supplier": supplier.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@require_role(ROLE_MANAGER)
def deactivate_supplier_route(supplier_id: int):
    """Soft delete; refused while the supplier has open orders."""
    try:
        supplier = supplier_service.deactivate_supplier(supplier_id)
        return jsonify({"supplier": supplier.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("/<int:supplier_id>/stats")
@require_auth
@require_role(ROLE_MANAGER)
def supplier_stats_route(supplier_id: int):
    try:
        return jsonify({"stats": supplier_service.supplier_stats(supplier_id)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load supplier stats")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PURCHASE ORDERS
# =============================================================================

@purchase_orders_bp.get("")
@require_auth
@require_role(ROLE_MANAGER)
def list_purchase_orders_route():
    """Query: ?search=&status=&supplier_id=&from_date=&to_date=&page=&limit="""
    try:
        result = purchase_order_service.list_purchase_orders(
            search=request.args.get("search"),
            status=request.args.get("status"),
            supplier_id=query_int(request.args, "supplier_id", minimum=1),
            from_date=request.args.get("from_date"),
            to_date=request.args.get("to_date"),
            page=query_int(request.args, "page", 1, minimum=1),
            limit=query_int(request.args, "limit", 50, minimum=1, maximum=200),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list purchase orders")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("")
@require_auth
@require_role(ROLE_MANAGER)
def create_purchase_order_route():
    try:
        order = purchase_order_service.create_purchase_order(
            request.get_json(silent=True),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"purchase_order": order.to_dict(include_items=True)}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.get("/<int:order_id>")
@require_auth
@require_role(ROLE_MANAGER)
def get_purchase_order_route(order_id: int):
    try:
        order = purchase_order_service.get_purchase_order(order_id)
        return jsonify({"purchase_order": order.to_dict(include_items=True)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@purchase_orders_bp.patch("/<int:order_id>")
@require_auth
@require_role(ROLE_MANAGER)
def update_purchase_order_route(order_id: int):
    try:
        order = purchase_order_service.update_purchase_order(order_id, request.get_json(silent=True))
        return jsonify({"purchase_order": order.to_dict(include_items=True)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<int:order_id>/receive")
@require_auth
@require_role(ROLE_MANAGER)
def receive_purchase_order_route(order_id: int):
    """
    Request body: {"items": [{"id": 12, "quantity_received": 5}]}
    An empty body receives everything still outstanding.
    """
    try:
        data = request.get_json(silent=True) or {}
        order = purchase_order_service.receive_purchase_order(
            order_id,
            data.get("items"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"purchase_order": order.to_dict(include_items=True)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_role(ROLE_MANAGER)
def cancel_purchase_order_route(order_id: int):
    try:
        order = purchase_order_service.cancel_purchase_order(order_id)
        return jsonify({"purchase_order": order.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel purchase order")
        return jsonify({"error": "Internal server error"}), 500
