from __future__ import annotations

import logging
from typing import Any, Dict

from chopphub.domain.contracts import ServiceOutput
from chopphub.errors import NotFoundError, SystemError, ValidationError, require_fields
from chopphub.infrastructure.repositories.order_repository import OrderRepository, find_order_company
from chopphub.infrastructure.repositories.settings_repository import IntegrationRepository, NotificationRepository
from chopphub.integrations.http import config_value
from chopphub.integrations.mercado_pago import MercadoPagoClient, build_boleto_payment, idempotency_key_for


logger = logging.getLogger(__name__)

BOLETO_REQUIRED_FIELDS = (
    "nome",
    "document",
    "email",
    "total",
    "days_ticket",
    "order_id",
    "zip_code",
    "address",
    "number",
    "neighborhood",
    "city",
    "state",
)


class MercadoPagoService:
    """Boleto issuing and payment notifications through Mercado Pago."""

    def __init__(self, client_factory=MercadoPagoClient) -> None:
        self.client_factory = client_factory

    def _company_token(self, db, company_id: str) -> str | None:
        integration = IntegrationRepository(company_id=company_id).get_by_provider(db, "mercado_pago")
        if integration and integration.get("access_token"):
            return integration["access_token"]
        return None

    def _token_or_default(self, db, company_id: str) -> str:
        token = self._company_token(db, company_id) or config_value("MERCADO_PAGO_ACCESS_TOKEN")
        if not token:
            raise ValidationError(
                code="integration_not_configured",
                message_key="integration_not_configured",
                payload={"provider": "mercado_pago"},
            )
        return str(token)

    def create_boleto(self, db, *, company_id: str, data: Dict[str, Any]) -> ServiceOutput:
        require_fields(data, *BOLETO_REQUIRED_FIELDS)
        orders = OrderRepository(company_id=company_id)
        if not orders.get(db, str(data["order_id"])):
            raise NotFoundError(code="order_not_found", message_key="order_not_found")

        client = self.client_factory(self._token_or_default(db, company_id))
        payment = client.create_payment(
            build_boleto_payment(data),
            idempotency_key=idempotency_key_for(data["document"]),
        )
        details = payment.get("transaction_details") or {}
        barcode = (details.get("barcode") or {}).get("content")
        if not barcode:
            logger.error("mercado_pago_boleto_without_barcode", extra={"payment_id": payment.get("id")})
            raise SystemError(
                code="boleto_generation_failed",
                message_key="boleto_generation_failed",
                payload={"details": payment},
            )

        orders.update(
            db,
            str(data["order_id"]),
            {
                "boleto_url": details.get("external_resource_url"),
                "boleto_barcode_number": barcode,
                "boleto_id": str(payment.get("id")),
                "boleto_expiration_date": payment.get("date_of_expiration"),
            },
        )
        db.commit()
        logger.info("mercado_pago_boleto_created", extra={"payment_id": payment.get("id"), "order_id": data["order_id"]})
        return ServiceOutput(payload=payment)

    def handle_notification(self, db, *, body: Dict[str, Any]) -> ServiceOutput:
        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        payment_id = data.get("id")
        if not payment_id:
            raise ValidationError(code="payment_id_missing", message_key="payment_id_missing")

        default_token = config_value("MERCADO_PAGO_ACCESS_TOKEN")
        if not default_token:
            raise ValidationError(
                code="integration_not_configured",
                message_key="integration_not_configured",
                payload={"provider": "mercado_pago"},
            )
        payment = self.client_factory(str(default_token)).get_payment(str(payment_id))
        order_id = payment.get("external_reference")
        if not order_id:
            raise ValidationError(code="payment_reference_missing", message_key="payment_reference_missing")

        company_id = find_order_company(db, str(order_id))
        if not company_id:
            raise NotFoundError(code="order_not_found", message_key="order_not_found")
        token = self._company_token(db, company_id)
        if not token:
            raise ValidationError(
                code="integration_not_configured",
                message_key="integration_not_configured",
                payload={"provider": "mercado_pago"},
            )

        validated = self.client_factory(token).get_payment(str(payment_id))
        approved = validated.get("status") == "approved"
        if approved:
            amount = validated.get("transaction_amount")
            with db.transaction():
                OrderRepository(company_id=company_id).update(
                    db,
                    str(validated.get("external_reference") or order_id),
                    {"payment_status": "Paid", "total_payed": amount},
                )
                NotificationRepository(company_id=company_id).create(
                    db,
                    title="Pagamento aprovado",
                    description=f"Pagamento de R$ {amount} aprovado.",
                    notification_type="payment",
                    meta={"provider": "mercado_pago", "payment_id": str(payment_id), "order_id": order_id},
                )
        logger.info(
            "mercado_pago_notification",
            extra={"payment_id": payment_id, "order_id": order_id, "approved": approved},
        )
        return ServiceOutput(payload={"success": True})
