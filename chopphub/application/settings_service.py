from __future__ import annotations

import logging
import re
import secrets
from typing import Any, Dict

from chopphub.domain.contracts import IntegrationInput, ServiceOutput
from chopphub.errors import NotFoundError, ValidationError, require_fields
from chopphub.infrastructure.repositories.settings_repository import (
    EmailCredentialRepository,
    IntegrationRepository,
    NfeCredentialRepository,
    NotificationRepository,
    PaymentMethodRepository,
)
from chopphub.integrations import asaas, focus_nfe
from chopphub.observability import token_prefix
from chopphub.ui_strings import success_message
from chopphub.validators import only_digits


logger = logging.getLogger(__name__)

INTEGRATION_PROVIDERS = {"asaas", "mercado_pago"}
PAYMENT_METHOD_CODE = re.compile(r"^[a-z0-9\-_.]{2,}$")


def mask_token(token: str | None) -> str | None:
    if not token:
        return None
    # Curtos ficam totalmente mascarados; longos mostram no maximo um quarto.
    visible = min(6, len(token) // 4) if len(token) >= 12 else 0
    return f"{token[:visible]}{'*' * 6}"


class SettingsService:
    def save_integration(self, db, *, company_id: str, integration_input: IntegrationInput) -> ServiceOutput:
        provider = str(integration_input.provider or "").strip().lower()
        if provider not in INTEGRATION_PROVIDERS:
            raise ValidationError(code="validation_error", payload={"field": "provider"})
        access_token = str(integration_input.access_token or "").strip()
        if not access_token:
            raise ValidationError(code="field_required", message_key="field_required", payload={"field": "access_token"})

        values: Dict[str, Any] = {"access_token": access_token, "env": None, "webhook_token": None}
        if provider == "asaas":
            values["env"] = asaas.resolve_env(integration_input.env, access_token)
            values["webhook_token"] = secrets.token_urlsafe(24)

        repository = IntegrationRepository(company_id=company_id)
        with db.transaction():
            record = repository.replace(db, provider, values)

        logger.info(
            "integration_saved",
            extra={"provider": provider, "env": values["env"], "token_prefix": token_prefix(access_token)},
        )
        payload = {
            "success": True,
            "provider": provider,
            "env": record.get("env"),
            "access_token": mask_token(access_token),
        }
        if record.get("webhook_token"):
            payload["webhook_token"] = record["webhook_token"]
        return ServiceOutput(payload=payload, status_code=201)

    def list_integrations(self, db, *, company_id: str) -> ServiceOutput:
        items = []
        for row in IntegrationRepository(company_id=company_id).list(db):
            items.append(
                {
                    "provider": row["provider"],
                    "env": row.get("env"),
                    "access_token": mask_token(row.get("access_token")),
                    "webhook_token": row.get("webhook_token"),
                    "created_at": row.get("created_at"),
                }
            )
        return ServiceOutput(payload={"items": items})

    def delete_integration(self, db, *, company_id: str, provider: str) -> ServiceOutput:
        if not IntegrationRepository(company_id=company_id).delete_provider(db, provider):
            raise NotFoundError(code="integration_not_configured", message_key="integration_not_configured")
        return ServiceOutput(payload={"success": True})

    def save_nfe_credentials(self, db, *, company_id: str, payload: Dict[str, Any]) -> ServiceOutput:
        require_fields(payload, "focus_token")
        record = NfeCredentialRepository(company_id=company_id).upsert(
            db,
            {
                "focus_token": focus_nfe.clean_token(payload.get("focus_token")),
                "environment": focus_nfe.resolve_environment(payload.get("environment")),
                "cnpj": only_digits(payload.get("cnpj")) or None,
            },
        )
        return ServiceOutput(
            payload={
                "environment": record["environment"],
                "cnpj": record.get("cnpj"),
                "focus_token": mask_token(record.get("focus_token")),
                "message": success_message("saved"),
            }
        )

    def get_nfe_credentials(self, db, *, company_id: str) -> ServiceOutput:
        record = NfeCredentialRepository(company_id=company_id).get_current(db) or {}
        return ServiceOutput(
            payload={
                "environment": record.get("environment") or "homologacao",
                "cnpj": record.get("cnpj"),
                "focus_token": mask_token(record.get("focus_token")),
                "configured": bool(record.get("focus_token")),
            }
        )

    def save_email_credentials(self, db, *, company_id: str, payload: Dict[str, Any]) -> ServiceOutput:
        require_fields(payload, "sendgrid_api_key", "sender_email")
        record = EmailCredentialRepository(company_id=company_id).upsert(
            db,
            {
                "sendgrid_api_key": str(payload["sendgrid_api_key"]).strip(),
                "sender_email": str(payload["sender_email"]).strip().lower(),
                "sender_name": str(payload.get("sender_name") or "").strip() or None,
            },
        )
        return ServiceOutput(
            payload={
                "sender_email": record["sender_email"],
                "sender_name": record.get("sender_name"),
                "sendgrid_api_key": mask_token(record.get("sendgrid_api_key")),
                "message": success_message("saved"),
            }
        )

    def get_email_credentials(self, db, *, company_id: str) -> ServiceOutput:
        record = EmailCredentialRepository(company_id=company_id).get_current(db) or {}
        return ServiceOutput(
            payload={
                "sender_email": record.get("sender_email"),
                "sender_name": record.get("sender_name"),
                "sendgrid_api_key": mask_token(record.get("sendgrid_api_key")),
                "configured": bool(record.get("sendgrid_api_key")),
            }
        )

    def list_payment_methods(self, db, *, company_id: str) -> ServiceOutput:
        return ServiceOutput(payload={"items": PaymentMethodRepository(company_id=company_id).list(db)})

    def save_payment_method(self, db, *, company_id: str, payload: Dict[str, Any]) -> ServiceOutput:
        name = str(payload.get("name") or "").strip()
        code = str(payload.get("code") or "").strip().lower()
        if len(name) < 2:
            raise ValidationError(code="validation_error", payload={"field": "name"})
        if not PAYMENT_METHOD_CODE.match(code):
            raise ValidationError(code="validation_error", payload={"field": "code"})
        try:
            default_days = int(payload.get("default_days") or 0)
        except (TypeError, ValueError):
            raise ValidationError(code="validation_error", payload={"field": "default_days"}) from None
        if default_days < 0:
            raise ValidationError(code="validation_error", payload={"field": "default_days"})

        values = {
            "name": name,
            "code": code,
            "enabled": bool(payload.get("enabled", True)),
            "default_days": default_days,
        }
        repository = PaymentMethodRepository(company_id=company_id)
        record_id = payload.get("id")
        if record_id:
            if not repository.update(db, record_id, values):
                raise NotFoundError()
            return ServiceOutput(payload=repository.get(db, record_id))
        return ServiceOutput(payload=repository.insert(db, values), status_code=201)

    def delete_payment_method(self, db, *, company_id: str, record_id: str) -> ServiceOutput:
        if not PaymentMethodRepository(company_id=company_id).delete(db, record_id):
            raise NotFoundError()
        return ServiceOutput(payload={"success": True})

    def list_notifications(self, db, *, company_id: str, unread_only: bool = False) -> ServiceOutput:
        filters = {"is_read": 0} if unread_only else None
        items = NotificationRepository(company_id=company_id).list(db, filters=filters, limit=200)
        return ServiceOutput(payload={"items": items, "unread": sum(1 for item in items if not item["is_read"])})

    def mark_notification_read(self, db, *, company_id: str, notification_id: str) -> ServiceOutput:
        if not NotificationRepository(company_id=company_id).mark_read(db, notification_id):
            raise NotFoundError()
        return ServiceOutput(payload={"success": True})

    def mark_all_notifications_read(self, db, *, company_id: str) -> ServiceOutput:
        updated = NotificationRepository(company_id=company_id).mark_all_read(db)
        return ServiceOutput(payload={"success": True, "updated": updated})
