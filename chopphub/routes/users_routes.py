from __future__ import annotations

from flask import Blueprint, jsonify, request, session

from chopphub.auth import _AUTH_SERVICE
from chopphub.db import get_db
from chopphub.errors import NotFoundError, ValidationError, require_fields
from chopphub.infrastructure.repositories.account_repository import AccountRepository
from chopphub.policies import require_roles
from chopphub.tenant import current_company_id
from chopphub.ui_strings import success_message
from chopphub.validators import normalize_cep, normalize_document


users_bp = Blueprint("users", __name__)

_ACCOUNTS = AccountRepository()


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _actor_id() -> str:
    return str(session.get("user_id") or "")


@users_bp.route("/api/users/team", methods=["GET"])
def team():
    result = _AUTH_SERVICE.list_team(get_db(), company_id=current_company_id())
    return jsonify(result.payload), result.status_code


@users_bp.route("/api/users/add-member", methods=["POST"])
def add_member():
    require_roles("admin")
    payload = _payload()
    require_fields(payload, "email")
    result = _AUTH_SERVICE.add_member(
        get_db(),
        company_id=current_company_id(),
        email=payload["email"],
        password=payload.get("password") or None,
        role=payload.get("role"),
        display_name=payload.get("display_name"),
    )
    return jsonify(result.payload), result.status_code


@users_bp.route("/api/users/block", methods=["POST"])
def block_member():
    require_roles("admin")
    payload = _payload()
    require_fields(payload, "user_id")
    result = _AUTH_SERVICE.set_blocked(
        get_db(),
        company_id=current_company_id(),
        actor_id=_actor_id(),
        user_id=str(payload["user_id"]),
        blocked=bool(payload.get("blocked", True)),
    )
    return jsonify(result.payload), result.status_code


@users_bp.route("/api/users/delete", methods=["POST"])
def delete_member():
    require_roles("admin")
    payload = _payload()
    require_fields(payload, "user_id")
    result = _AUTH_SERVICE.delete_member(
        get_db(),
        company_id=current_company_id(),
        actor_id=_actor_id(),
        user_id=str(payload["user_id"]),
    )
    return jsonify(result.payload), result.status_code


@users_bp.route("/api/users/send-reset", methods=["POST"])
def send_reset():
    payload = _payload()
    require_fields(payload, "email")
    result = _AUTH_SERVICE.send_reset(get_db(), email=str(payload["email"]))
    return jsonify(result.payload), result.status_code


@users_bp.route("/api/users/resend-invite", methods=["POST"])
def resend_invite():
    require_roles("admin")
    payload = _payload()
    require_fields(payload, "user_id")
    result = _AUTH_SERVICE.resend_invite(
        get_db(),
        company_id=current_company_id(),
        user_id=str(payload["user_id"]),
    )
    return jsonify(result.payload), result.status_code


@users_bp.route("/api/company", methods=["GET", "PUT"])
def company_profile():
    db = get_db()
    company_id = current_company_id()
    if request.method == "PUT":
        require_roles("admin")
        values = dict(_payload())
        if values.get("document"):
            values["document"] = normalize_document(values["document"])
        if values.get("zip_code"):
            values["zip_code"] = normalize_cep(values["zip_code"]) or values["zip_code"]
        if "name" in values and not str(values["name"] or "").strip():
            raise ValidationError(code="field_required", message_key="field_required", payload={"field": "name"})
        _ACCOUNTS.update_company(db, company_id, values)
        db.commit()

    company = _ACCOUNTS.get_company(db, company_id)
    if not company:
        raise NotFoundError(code="company_required", message_key="company_required")
    if request.method == "PUT":
        company["message"] = success_message("saved")
    return jsonify(company)
