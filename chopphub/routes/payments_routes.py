from __future__ import annotations

from flask import Blueprint, jsonify, request

from chopphub.application.asaas_service import AsaasService, webhook_token_from
from chopphub.application.payment_service import MercadoPagoService
from chopphub.db import get_db
from chopphub.domain.contracts import AsaasPaymentInput
from chopphub.errors import ValidationError, require_fields
from chopphub.tenant import current_company_id
from chopphub.validators import parse_money


payments_bp = Blueprint("payments", __name__)

_ASAAS_SERVICE = AsaasService()
_MERCADO_PAGO_SERVICE = MercadoPagoService()


def _optional_number(payload: dict, field: str) -> float | None:
    if payload.get(field) in (None, ""):
        return None
    return parse_money(payload[field], field=field)


def _payment_input(payload: dict) -> AsaasPaymentInput:
    require_fields(payload, "customerId", "dueDate")
    limit_days = payload.get("discountDueDateLimitDays")
    try:
        limit_days = int(limit_days) if limit_days not in (None, "") else None
    except (TypeError, ValueError):
        raise ValidationError(code="validation_error", payload={"field": "discountDueDateLimitDays"}) from None
    return AsaasPaymentInput(
        customer_id=str(payload["customerId"]),
        value=parse_money(payload.get("value"), field="value"),
        due_date=str(payload["dueDate"]),
        description=payload.get("description"),
        postal_service=bool(payload.get("postalService")),
        discount_value=_optional_number(payload, "discountValue"),
        discount_due_date_limit_days=limit_days,
        fine_percent=_optional_number(payload, "finePercent"),
        interest_percent_month=_optional_number(payload, "interestPercentMonth"),
        order_id=payload.get("orderId") or None,
    )


@payments_bp.route("/api/asaas/customers/sync", methods=["POST"])
def asaas_sync_customer():
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "customerId")
    result = _ASAAS_SERVICE.sync_customer(
        get_db(), company_id=current_company_id(), customer_id=str(payload["customerId"])
    )
    return jsonify(result.payload), result.status_code


@payments_bp.route("/api/asaas/payments/create", methods=["POST"])
def asaas_create_payment():
    result = _ASAAS_SERVICE.create_payment(
        get_db(),
        company_id=current_company_id(),
        payment_input=_payment_input(request.get_json(silent=True) or {}),
    )
    return jsonify(result.payload), result.status_code


@payments_bp.route("/api/asaas/webhook", methods=["POST"])
def asaas_webhook():
    result = _ASAAS_SERVICE.handle_webhook(
        get_db(),
        webhook_token=webhook_token_from(request.headers),
        body=request.get_json(silent=True) or {},
    )
    return jsonify(result.payload), result.status_code


@payments_bp.route("/api/create-payment", methods=["POST"])
def mercado_pago_create_payment():
    result = _MERCADO_PAGO_SERVICE.create_boleto(
        get_db(), company_id=current_company_id(), data=request.get_json(silent=True) or {}
    )
    return jsonify(result.payload), result.status_code


@payments_bp.route("/api/mp-notify", methods=["POST"])
def mercado_pago_notify():
    result = _MERCADO_PAGO_SERVICE.handle_notification(get_db(), body=request.get_json(silent=True) or {})
    return jsonify(result.payload), result.status_code
