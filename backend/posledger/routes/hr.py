# Overview: Flask API routes for HR operations (work sessions, payroll); parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import payroll_service, timekeeping_service
from ..services.reporting_service import parse_range
from ..validation import query_int
from ..decorators import require_auth, require_role


hr_bp = Blueprint("hr", __name__, url_prefix="/api/hr")


# =============================================================================
# WORK SESSIONS
# =============================================================================

@hr_bp.get("/work-sessions")
@require_auth
@require_role(ROLE_MANAGER)
def list_work_sessions_route():
    try:
        start, end = parse_range(request.args.get("start"), request.args.get("end"))
        sessions = timekeeping_service.list_sessions(
            user_id=query_int(request.args, "user_id"),
            start=start,
            end=end,
            limit=query_int(request.args, "limit", 200, minimum=1, maximum=1000),
        )
        return jsonify({"work_sessions": [s.to_dict() for s in sessions]}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list work sessions")
        return jsonify({"error": "Internal server error"}), 500


@hr_bp.get("/work-sessions/me")
@require_auth
def my_work_sessions_route():
    user_id = g.current_user.id
    current = timekeeping_service.get_current_session(user_id)
    recent = timekeeping_service.list_sessions(user_id=user_id, limit=30)
    return jsonify({
        "current": current.to_dict() if current else None,
        "work_sessions": [s.to_dict() for s in recent],
    }), 200


# =============================================================================
# PAYROLL INFO
# =============================================================================

@hr_bp.get("/payroll-info")
@require_auth
@require_role(ROLE_MANAGER)
def list_payroll_info_route():
    infos = payroll_service.list_payroll_info(active_only=request.args.get("all") != "true")
    return jsonify({"payroll_info": [i.to_dict() for i in infos]}), 200


@hr_bp.get("/payroll-info/<int:user_id>")
@require_auth
@require_role(ROLE_MANAGER)
def get_payroll_info_route(user_id: int):
    try:
        return jsonify({"payroll_info": payroll_service.get_payroll_info(user_id).to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@hr_bp.put("/payroll-info/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def upsert_payroll_info_route(user_id: int):
    """
    Request body:
    {
        "hourly_rate_cents": 1000,
        "overtime_rate_cents": 1500,  (optional, default 1.5x hourly)
        "position": "Cashier",
        "hire_date": "2024-01-15",   (optional)
        "is_active": true            (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        info = payroll_service.upsert_payroll_info(
            user_id,
            data.get("hourly_rate_cents"),
            data.get("position"),
            hire_date=data.get("hire_date"),
            overtime_rate_cents=data.get("overtime_rate_cents"),
            is_active=data.get("is_active", True),
        )
        return jsonify({"payroll_info": info.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to save payroll info")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYROLL SUMMARIES
# =============================================================================

@hr_bp.get("/payroll-summaries")
@require_auth
@require_role(ROLE_MANAGER)
def list_payroll_summaries_route():
    try:
        summaries = payroll_service.list_payroll_summaries(
            month=request.args.get("month"),
            year=request.args.get("year"),
            status=request.args.get("status"),
        )
        return jsonify({"payroll_summaries": [s.to_dict() for s in summaries]}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list payroll summaries")
        return jsonify({"error": "Internal server error"}), 500


@hr_bp.post("/payroll-summaries")
@require_auth
@require_role(ROLE_MANAGER)
def calculate_payroll_route():
    """
    Request body:
    {"month": 3, "year": 2025, "user_id": 5}  (user_id optional: all staff)
    """
    try:
        data = request.get_json(silent=True) or {}
        user_id = data.get("user_id")

        if user_id is not None:
            summary = payroll_service.calculate_monthly_payroll(user_id, data.get("month"), data.get("year"))
            return jsonify({"payroll_summary": summary.to_dict()}), 200

        result = payroll_service.calculate_all_payroll(data.get("month"), data.get("year"))
        return jsonify({
            "payroll_summaries": [s.to_dict() for s in result["summaries"]],
            "skipped": result["skipped"],
        }), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to calculate payroll")
        return jsonify({"error": "Internal server error"}), 500


@hr_bp.get("/payroll-summaries/<int:summary_id>")
@require_auth
@require_role(ROLE_MANAGER)
def get_payroll_summary_route(summary_id: int):
    try:
        return jsonify({"payroll_summary": payroll_service.get_payroll_summary(summary_id).to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@hr_bp.post("/payroll-summaries/<int:summary_id>/approve")
@require_auth
@require_role(ROLE_MANAGER)
def approve_payroll_route(summary_id: int):
    try:
        summary = payroll_service.approve_payroll(summary_id, approver_id=g.current_user.id)
        return jsonify({"payroll_summary": summary.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve payroll")
        return jsonify({"error": "Internal server error"}), 500


@hr_bp.get("/dashboard")
@require_auth
@require_role(ROLE_MANAGER)
def hr_dashboard_route():
    try:
        return jsonify({"stats": payroll_service.hr_dashboard_stats()}), 200
    except Exception:
        current_app.logger.exception("Failed to load HR dashboard")
        return jsonify({"error": "Internal server error"}), 500
