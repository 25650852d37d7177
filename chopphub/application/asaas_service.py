from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict

from chopphub.domain.contracts import AsaasPaymentInput, ServiceOutput
from chopphub.errors import AuthenticationError, NotFoundError, ProviderError, ValidationError
from chopphub.infrastructure.repositories.catalog_repository import CustomerRepository
from chopphub.infrastructure.repositories.financial_repository import FinancialRecordRepository
from chopphub.infrastructure.repositories.order_repository import OrderRepository
from chopphub.infrastructure.repositories.settings_repository import (
    IntegrationRepository,
    NotificationRepository,
    find_integration_by_webhook_token,
)
from chopphub.integrations.asaas import (
    AsaasClient,
    build_payment_payload,
    compact,
    diff_customer,
    map_payment_status,
    map_to_asaas_customer,
)
from chopphub.validators import parse_iso_date


logger = logging.getLogger(__name__)

MAX_FINE_PERCENT = 2
MAX_INTEREST_PERCENT_MONTH = 1
WEBHOOK_TOKEN_HEADERS = ("asaas-access-token", "x-asaas-access-token", "authorization")


def build_boleto_notes(digitable_line: str | None, boleto_url: str | None, barcode: str | None) -> str:
    parts = []
    if digitable_line:
        parts.append(f"Linha digitavel: {digitable_line}")
    if boleto_url:
        parts.append(f"URL: {boleto_url}")
    if barcode:
        parts.append(f"Codigo de barras: {barcode}")
    return " | ".join(parts)


def webhook_token_from(headers) -> str | None:
    for name in WEBHOOK_TOKEN_HEADERS:
        value = str(headers.get(name) or "").strip()
        if value:
            return value
    return None


class AsaasService:
    def __init__(self, client_factory=AsaasClient) -> None:
        self.client_factory = client_factory

    def _client(self, db, company_id: str) -> AsaasClient:
        integration = IntegrationRepository(company_id=company_id).get_by_provider(db, "asaas")
        if not integration or not integration.get("access_token"):
            raise ValidationError(
                code="integration_not_configured",
                message_key="integration_not_configured",
                payload={"provider": "asaas"},
            )
        return self.client_factory(integration["access_token"], integration.get("env"))

    def sync_customer(self, db, *, company_id: str, customer_id: str) -> ServiceOutput:
        """Create or update the Asaas customer mirroring a local customer."""
        customers = CustomerRepository(company_id=company_id)
        customer = customers.get(db, customer_id)
        if not customer:
            raise NotFoundError(code="customer_not_found", message_key="customer_not_found")

        desired = map_to_asaas_customer(customer)
        if not desired["name"]:
            raise ValidationError(code="asaas_customer_name_required", message_key="asaas_customer_name_required")
        if not desired["cpfCnpj"] and not desired["email"]:
            raise ValidationError(
                code="asaas_customer_identity_required",
                message_key="asaas_customer_identity_required",
            )

        client = self._client(db, company_id)
        stored_id = customer.get("asaas_customer_id")
        action = "unchanged"
        replaced_old_id = False

        if stored_id:
            asaas_id = stored_id
            changes = diff_customer({}, desired)
            if changes:
                try:
                    client.update_customer(stored_id, changes)
                    action = "updated"
                except ProviderError as exc:
                    if exc.status != 404:
                        raise
                    logger.warning("asaas_customer_stale", extra={"customer_id": customer_id})
                    created = client.create_customer(compact(desired))
                    asaas_id = created["id"]
                    action = "created"
                    replaced_old_id = True
        else:
            found = client.find_customer(
                cpf_cnpj=desired["cpfCnpj"],
                email=desired["email"],
                name=desired["name"],
            )
            if found:
                asaas_id = found["id"]
                changes = diff_customer(found, desired)
                if changes:
                    client.update_customer(asaas_id, changes)
                    action = "updated"
            else:
                created = client.create_customer(compact(desired))
                asaas_id = created["id"]
                action = "created"

        if asaas_id != stored_id:
            customers.set_asaas_customer_id(db, customer_id, asaas_id)
            db.commit()

        logger.info(
            "asaas_customer_synced",
            extra={"customer_id": customer_id, "action": action, "replaced_old_id": replaced_old_id},
        )
        return ServiceOutput(
            payload={
                "ok": True,
                "asaasCustomerId": asaas_id,
                "action": action,
                "replacedOldId": replaced_old_id,
            }
        )

    def create_payment(self, db, *, company_id: str, payment_input: AsaasPaymentInput) -> ServiceOutput:
        if payment_input.value is None or float(payment_input.value) <= 0:
            raise ValidationError(code="validation_error", payload={"field": "value"})
        due_date = parse_iso_date(payment_input.due_date, field="dueDate").isoformat()
        if payment_input.fine_percent is not None and not 0 <= payment_input.fine_percent <= MAX_FINE_PERCENT:
            raise ValidationError(code="validation_error", payload={"field": "finePercent"})
        if payment_input.interest_percent_month is not None and not (
            0 <= payment_input.interest_percent_month <= MAX_INTEREST_PERCENT_MONTH
        ):
            raise ValidationError(code="validation_error", payload={"field": "interestPercentMonth"})

        customer = CustomerRepository(company_id=company_id).get(db, payment_input.customer_id)
        if not customer:
            raise NotFoundError(code="customer_not_found", message_key="customer_not_found")
        if not customer.get("asaas_customer_id"):
            raise ValidationError(code="asaas_customer_not_synced", message_key="asaas_customer_not_synced")

        client = self._client(db, company_id)
        created = client.create_payment(
            build_payment_payload(
                asaas_customer_id=customer["asaas_customer_id"],
                value=float(payment_input.value),
                due_date=due_date,
                description=payment_input.description,
                postal_service=payment_input.postal_service,
                fine_percent=payment_input.fine_percent,
                interest_percent_month=payment_input.interest_percent_month,
                discount_value=payment_input.discount_value,
                discount_due_date_limit_days=payment_input.discount_due_date_limit_days,
            )
        )
        payment_id = created.get("id")
        digitable_line = created.get("identificationField") or created.get("digitableLine")
        barcode = created.get("bankSlipBarcode")
        boleto_url = created.get("bankSlipUrl") or created.get("invoiceUrl")

        try:
            with db.transaction():
                FinancialRecordRepository(company_id=company_id).insert(
                    db,
                    {
                        "type": "input",
                        "issue_date": date.today().isoformat(),
                        "due_date": due_date,
                        "supplier": customer["name"],
                        "description": payment_input.description or f"Boleto ASAAS #{payment_id}",
                        "amount": float(payment_input.value),
                        "total_payed": 0,
                        "status": "Unpaid",
                        "payment_method": "BOLETO",
                        "invoice_number": payment_id,
                        "notes": build_boleto_notes(digitable_line, boleto_url, barcode),
                    },
                )
                if payment_input.order_id:
                    OrderRepository(company_id=company_id).update(
                        db,
                        payment_input.order_id,
                        {
                            "boleto_id": payment_id,
                            "boleto_url": boleto_url,
                            "boleto_barcode_number": barcode,
                            "boleto_digitable_line": digitable_line,
                            "boleto_expiration_date": due_date,
                        },
                    )
        except Exception:
            logger.exception("asaas_receivable_record_failed", extra={"asaas_payment_id": payment_id})

        logger.info("asaas_payment_created", extra={"asaas_payment_id": payment_id, "value": payment_input.value})
        return ServiceOutput(
            payload={
                "ok": True,
                "asaasPaymentId": payment_id,
                "digitableLine": digitable_line,
                "barcode": barcode,
                "boletoUrl": boleto_url,
                "payment": created,
            }
        )

    def handle_webhook(self, db, *, webhook_token: str | None, body: Dict[str, Any]) -> ServiceOutput:
        if not webhook_token:
            raise AuthenticationError(code="webhook_unauthorized", message_key="webhook_unauthorized")
        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        payment = body.get("payment") or data.get("payment") or {}
        if not isinstance(payment, dict) or not payment.get("id"):
            raise ValidationError(code="payment_id_missing", message_key="payment_id_missing")

        integration = find_integration_by_webhook_token(db, "asaas", webhook_token)
        if not integration:
            raise AuthenticationError(code="webhook_unauthorized", message_key="webhook_unauthorized")
        company_id = integration["company_id"]

        payment_id = str(payment["id"])
        status = map_payment_status(payment.get("status"))
        total_payed = payment.get("netValue")
        if not isinstance(total_payed, (int, float)):
            total_payed = payment.get("value") if isinstance(payment.get("value"), (int, float)) else None

        values: Dict[str, Any] = {"status": status}
        order_values: Dict[str, Any] = {"payment_status": status}
        if total_payed is not None:
            values["total_payed"] = total_payed
            order_values["total_payed"] = total_payed

        try:
            with db.transaction():
                FinancialRecordRepository(company_id=company_id).update_by_invoice_number(db, payment_id, values)
                OrderRepository(company_id=company_id).update_payment_by_boleto(db, payment_id, order_values)
                if status == "Paid":
                    NotificationRepository(company_id=company_id).create(
                        db,
                        title="Pagamento recebido",
                        description=f"Boleto {payment_id} confirmado pelo Asaas.",
                        notification_type="payment",
                        meta={"provider": "asaas", "payment_id": payment_id, "total_payed": total_payed},
                    )
        except Exception:
            logger.exception("asaas_webhook_update_failed", extra={"asaas_payment_id": payment_id})

        logger.info(
            "asaas_webhook_applied",
            extra={"asaas_payment_id": payment_id, "status": status, "asaas_event": body.get("event")},
        )
        return ServiceOutput(
            payload={
                "ok": True,
                "company_id": company_id,
                "event": body.get("event"),
                "payment_id": payment_id,
                "status_applied": status,
                "total_payed": total_payed,
            }
        )
