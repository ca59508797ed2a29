# Overview: Flask API routes for product operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import LedgerError
from ..models.auth import ROLE_MANAGER
from ..services import inventory_service
from ..validation import coerce_bool, query_int
from ..decorators import require_auth, require_role


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    try:
        result = inventory_service.list_products(
            search=request.args.get("search"),
            category=request.args.get("category"),
            include_inactive=coerce_bool("include_inactive", request.args.get("include_inactive"), default=False),
            page=query_int(request.args, "page", 1, minimum=1),
            limit=query_int(request.args, "limit", 50, minimum=1, maximum=200),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_auth
@require_role(ROLE_MANAGER)
def create_product_route():
    try:
        product = inventory_service.create_product(
            request.get_json(silent=True),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"product": product.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/low-stock")
@require_auth
def low_stock_route():
    try:
        products = inventory_service.list_low_stock(query_int(request.args, "threshold", minimum=0))
        return jsonify({"products": [p.to_dict() for p in products]}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list low stock products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/expiring")
@require_auth
def expiring_route():
    try:
        products = inventory_service.list_expiring(query_int(request.args, "days", 30, minimum=0))
        return jsonify({"products": [p.to_dict() for p in products]}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list expiring products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return jsonify({"product": inventory_service.get_product(product_id).to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.patch("/<int:product_id>")
@require_auth
@require_role(ROLE_MANAGER)
def update_product_route(product_id: int):
    try:
        product = inventory_service.update_product(product_id, request.get_json(silent=True))
        return jsonify({"product": product.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_MANAGER)
def deactivate_product_route(product_id: int):
    """Soft delete: products with sales history are never removed."""
    try:
        product = inventory_service.deactivate_product(product_id)
        return jsonify({"product": product.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/restock")
@require_auth
@require_role(ROLE_MANAGER)
def restock_product_route(product_id: int):
    """
    Request body:
    {
        "quantity": 20,
        "unit_cost_cents": 2900  (optional, new buying price)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        product = inventory_service.restock_product(
            product_id,
            data.get("quantity"),
            actor_user_id=g.current_user.id,
            unit_cost_cents=data.get("unit_cost_cents"),
        )
        return jsonify({"product": product.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to restock product")
        return jsonify({"error": "Internal server error"}), 500
