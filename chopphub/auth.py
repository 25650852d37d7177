from __future__ import annotations

import logging

from flask import Blueprint, g, jsonify, request, session

from chopphub.application.auth_service import AuthService
from chopphub.db import get_db
from chopphub.domain.contracts import AuthLoginInput, AuthRegisterInput, AuthUser
from chopphub.errors import AuthenticationError
from chopphub.infrastructure.repositories.account_repository import AccountRepository
from chopphub.ui_strings import error_message


logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)

_AUTH_SERVICE = AuthService()

PUBLIC_PATHS = {
    "/health",
    "/metrics",
    "/api/auth/login",
    "/api/auth/register",
    "/api/auth/reset-password",
    "/api/users/send-reset",
    "/api/asaas/webhook",
    "/api/mp-notify",
}


def register_auth(app) -> None:
    app.register_blueprint(auth_bp)

    @app.before_request
    def _require_login():
        if not app.config.get("AUTH_ENABLED", True):
            return None

        path = request.path or "/"
        if path in PUBLIC_PATHS or not (path.startswith("/api/") or path.startswith("/files/")):
            return None

        user_id = session.get("user_id")
        company_id = session.get("company_id")
        if not user_id or not company_id:
            return jsonify({"error": "auth_required", "message": error_message("auth_required")}), 401

        # Membership is re-read so blocks and removals apply to live sessions.
        db = get_db()
        repository = AccountRepository()
        membership = repository.membership(db, company_id, user_id)
        user = repository.find_user(db, user_id) if membership else None
        if not membership or not user or user.get("is_blocked"):
            session.clear()
            return jsonify({"error": "auth_required", "message": error_message("auth_required")}), 401
        session["user_role"] = membership["role"]
        g.user_role = membership["role"]
        return None


def _start_session(user: AuthUser) -> None:
    session.clear()
    session["user_id"] = user.user_id
    session["user_email"] = user.email
    session["display_name"] = user.display_name
    session["company_id"] = user.company_id
    session["user_role"] = user.role


def _user_payload(user: AuthUser) -> dict:
    return {
        "id": user.user_id,
        "email": user.email,
        "display_name": user.display_name,
        "company_id": user.company_id,
        "role": user.role,
    }


@auth_bp.route("/api/auth/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or {}
    db = get_db()
    user = _AUTH_SERVICE.login(
        db,
        AuthLoginInput(email=payload.get("email") or "", password=payload.get("password") or ""),
    )
    if not user:
        raise AuthenticationError(code="invalid_credentials", message_key="invalid_credentials")
    db.commit()
    _start_session(user)
    logger.info("user_logged_in", extra={"user_id": user.user_id})
    return jsonify({"user": _user_payload(user)})


@auth_bp.route("/api/auth/register", methods=["POST"])
def register():
    payload = request.get_json(silent=True) or {}
    db = get_db()
    user = _AUTH_SERVICE.register(
        db,
        AuthRegisterInput(
            email=payload.get("email") or "",
            password=payload.get("password") or "",
            display_name=payload.get("display_name"),
            company_name=payload.get("company_name"),
        ),
    )
    _start_session(user)
    return jsonify({"user": _user_payload(user)}), 201


@auth_bp.route("/api/auth/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify({"success": True})


@auth_bp.route("/api/auth/me", methods=["GET"])
def me():
    if not session.get("user_id"):
        raise AuthenticationError()
    return jsonify(
        {
            "user": {
                "id": session.get("user_id"),
                "email": session.get("user_email"),
                "display_name": session.get("display_name"),
                "company_id": session.get("company_id"),
                "role": session.get("user_role"),
            }
        }
    )


@auth_bp.route("/api/auth/reset-password", methods=["POST"])
def reset_password():
    payload = request.get_json(silent=True) or {}
    db = get_db()
    result = _AUTH_SERVICE.reset_password(
        db,
        token=str(payload.get("token") or ""),
        password=str(payload.get("password") or ""),
    )
    return jsonify(result.payload), result.status_code
