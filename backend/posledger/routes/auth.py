# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- Password and badge (barcode) login issue a bearer token
- Cashier login opens a work session; cashier logout closes it
- Admins create staff accounts; staff may reissue their own badge
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import LedgerError
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER
from ..services import auth_service, session_service, timekeeping_service
from ..decorators import require_auth, require_role


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _login_response(user):
    session, token = session_service.create_session(user.id)

    work_session = None
    if user.role == ROLE_CASHIER:
        work_session = timekeeping_service.start_session(user.id)

    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "work_session": work_session.to_dict() if work_session else None,
        "message": "Login successful",
    }), 200


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with username/email and password.

    Token must be included in the Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.info("Failed login for %s", username)
            return jsonify({"error": "Invalid credentials"}), 401

        return _login_response(user)

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/barcode-login")
def barcode_login_route():
    try:
        data = request.get_json(silent=True) or {}
        code = data.get("barcode")

        if not isinstance(code, str) or not code.strip():
            return jsonify({"error": "barcode is required"}), 400

        user = auth_service.authenticate_barcode(code)
        if not user:
            current_app.logger.info("Failed badge login for code %s...", code.strip()[:4])
            return jsonify({"error": "Invalid barcode or user not found"}), 401

        return _login_response(user)

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed badge login")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current token; cashiers also clock out."""
    try:
        user = g.current_user
        work_session = None
        if user.role == ROLE_CASHIER:
            work_session = timekeeping_service.end_session(user.id)

        session_service.revoke_session(g.auth_token, reason="User logout")

        return jsonify({
            "message": "Logout successful",
            "work_session": work_session.to_dict() if work_session else None,
        }), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.post("/users")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.create_user(
            username=data.get("username"),
            email=data.get("email"),
            password=data.get("password"),
            name=data.get("name"),
            role=data.get("role") or ROLE_CASHIER,
        )
        return jsonify({"user": user.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/users/<int:user_id>/barcode")
@require_auth
def issue_barcode_route(user_id: int):
    """Issue a new badge code. Staff may only reissue their own unless admin."""
    try:
        user = g.current_user
        if user.id != user_id and user.role != ROLE_ADMIN:
            return jsonify({"error": "You can only generate a barcode for your own account"}), 403

        code = auth_service.set_barcode(user_id)
        return jsonify({"user_id": user_id, "barcode": code}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to issue barcode")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_role(ROLE_ADMIN)
def deactivate_user_route(user_id: int):
    try:
        if user_id == g.current_user.id:
            return jsonify({"error": "You cannot deactivate your own account"}), 400

        user = auth_service.deactivate_user(user_id)
        return jsonify({"user": user.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate user")
        return jsonify({"error": "Internal server error"}), 500
