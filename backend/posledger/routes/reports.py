# Overview: Flask API routes for reporting; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..models.auth import ROLE_MANAGER
from ..services import reporting_service
from ..validation import query_int
from ..decorators import require_auth, require_role


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_auth
@require_role(ROLE_MANAGER)
def sales_report_route():
    """Query: ?start=ISO&end=ISO (half-open range)."""
    try:
        start, end = reporting_service.parse_range(request.args.get("start"), request.args.get("end"))
        return jsonify({"report": reporting_service.sales_summary(start, end)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build sales report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/daily")
@require_auth
@require_role(ROLE_MANAGER)
def daily_report_route():
    try:
        days = query_int(request.args, "days", 30, minimum=1, maximum=366)
        return jsonify({"days": reporting_service.daily_sales(days)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build daily sales report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/top-products")
@require_auth
@require_role(ROLE_MANAGER)
def top_products_route():
    try:
        start, end = reporting_service.parse_range(request.args.get("start"), request.args.get("end"))
        limit = query_int(request.args, "limit", 10, minimum=1, maximum=100)
        return jsonify({"products": reporting_service.top_selling_products(limit, start, end)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build top products report")
        return jsonify({"error": "Internal server error"}), 500
