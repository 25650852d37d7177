from __future__ import annotations

from flask import Blueprint, jsonify, request

from chopphub.application.settings_service import SettingsService
from chopphub.db import get_db
from chopphub.domain.contracts import IntegrationInput
from chopphub.errors import ValidationError, require_fields
from chopphub.policies import require_roles
from chopphub.tenant import current_company_id


settings_bp = Blueprint("settings", __name__)

_SETTINGS_SERVICE = SettingsService()


def _payload() -> dict:
    return request.get_json(silent=True) or {}


@settings_bp.route("/api/integrations", methods=["GET"])
def list_integrations():
    require_roles("admin")
    result = _SETTINGS_SERVICE.list_integrations(get_db(), company_id=current_company_id())
    return jsonify(result.payload), result.status_code


@settings_bp.route("/api/integrations", methods=["POST"])
def save_integration():
    require_roles("admin")
    payload = _payload()
    require_fields(payload, "provider", "access_token")
    result = _SETTINGS_SERVICE.save_integration(
        get_db(),
        company_id=current_company_id(),
        integration_input=IntegrationInput(
            provider=str(payload["provider"]),
            access_token=str(payload["access_token"]),
            env=payload.get("env") or None,
        ),
    )
    return jsonify(result.payload), result.status_code


@settings_bp.route("/api/integrations", methods=["DELETE"])
def delete_integration():
    require_roles("admin")
    provider = (request.args.get("provider") or "").strip().lower()
    if not provider:
        raise ValidationError(code="field_required", message_key="field_required", payload={"field": "provider"})
    db = get_db()
    result = _SETTINGS_SERVICE.delete_integration(db, company_id=current_company_id(), provider=provider)
    db.commit()
    return jsonify(result.payload), result.status_code


@settings_bp.route("/api/settings/nfe-credentials", methods=["GET", "PUT"])
def nfe_credentials():
    require_roles("admin")
    db = get_db()
    if request.method == "PUT":
        result = _SETTINGS_SERVICE.save_nfe_credentials(db, company_id=current_company_id(), payload=_payload())
        db.commit()
    else:
        result = _SETTINGS_SERVICE.get_nfe_credentials(db, company_id=current_company_id())
    return jsonify(result.payload), result.status_code


@settings_bp.route("/api/settings/email-credentials", methods=["GET", "PUT"])
def email_credentials():
    require_roles("admin")
    db = get_db()
    if request.method == "PUT":
        result = _SETTINGS_SERVICE.save_email_credentials(db, company_id=current_company_id(), payload=_payload())
        db.commit()
    else:
        result = _SETTINGS_SERVICE.get_email_credentials(db, company_id=current_company_id())
    return jsonify(result.payload), result.status_code


@settings_bp.route("/api/settings/payment-methods", methods=["GET"])
def list_payment_methods():
    result = _SETTINGS_SERVICE.list_payment_methods(get_db(), company_id=current_company_id())
    return jsonify(result.payload), result.status_code


@settings_bp.route("/api/settings/payment-methods", methods=["POST"])
def save_payment_method():
    require_roles("admin")
    db = get_db()
    result = _SETTINGS_SERVICE.save_payment_method(db, company_id=current_company_id(), payload=_payload())
    db.commit()
    return jsonify(result.payload), result.status_code


@settings_bp.route("/api/settings/payment-methods/<record_id>", methods=["DELETE"])
def delete_payment_method(record_id: str):
    require_roles("admin")
    db = get_db()
    result = _SETTINGS_SERVICE.delete_payment_method(db, company_id=current_company_id(), record_id=record_id)
    db.commit()
    return jsonify(result.payload), result.status_code


@settings_bp.route("/api/notifications", methods=["GET"])
def list_notifications():
    unread_only = (request.args.get("unread") or "").strip().lower() in {"1", "true", "yes"}
    result = _SETTINGS_SERVICE.list_notifications(get_db(), company_id=current_company_id(), unread_only=unread_only)
    return jsonify(result.payload), result.status_code


@settings_bp.route("/api/notifications/<notification_id>/read", methods=["POST"])
def mark_notification_read(notification_id: str):
    db = get_db()
    result = _SETTINGS_SERVICE.mark_notification_read(
        db, company_id=current_company_id(), notification_id=notification_id
    )
    db.commit()
    return jsonify(result.payload), result.status_code


@settings_bp.route("/api/notifications/read-all", methods=["POST"])
def mark_all_notifications_read():
    db = get_db()
    result = _SETTINGS_SERVICE.mark_all_notifications_read(db, company_id=current_company_id())
    db.commit()
    return jsonify(result.payload), result.status_code
