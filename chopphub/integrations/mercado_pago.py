from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from chopphub.integrations.http import config_value, request_json
from chopphub.observability import token_prefix
from chopphub.validators import only_digits


logger = logging.getLogger(__name__)

PROVIDER = "mercado_pago"
PAYMENT_DESCRIPTION = "Pedido no Chopp Hub"


def error_message_from(body: object) -> str | None:
    if not isinstance(body, dict):
        return None
    message = body.get("message") or body.get("error")
    return str(message) if message else None


class MercadoPagoClient:
    def __init__(self, access_token: str) -> None:
        self.access_token = str(access_token or "").strip()

    def _url(self, path: str) -> str:
        base = str(config_value("MERCADO_PAGO_BASE_URL", "https://api.mercadopago.com")).rstrip("/")
        return f"{base}{path}"

    def create_payment(self, payment: dict, *, idempotency_key: str) -> dict:
        logger.info(
            "mercado_pago_create_payment",
            extra={
                "external_reference": payment.get("external_reference"),
                "token_prefix": token_prefix(self.access_token),
            },
        )
        return request_json(
            PROVIDER,
            "POST",
            self._url("/v1/payments"),
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "X-Idempotency-Key": idempotency_key,
            },
            payload=payment,
            message_from=error_message_from,
        )

    def get_payment(self, payment_id: str) -> dict:
        return request_json(
            PROVIDER,
            "GET",
            self._url(f"/v1/payments/{payment_id}"),
            headers={"Authorization": f"Bearer {self.access_token}"},
            allow_retry=True,
            message_from=error_message_from,
        )


def split_name(full_name: str | None) -> tuple[str, str]:
    parts = str(full_name or "").split()
    if not parts:
        return "Cliente", "Sobrenome"
    return parts[0], " ".join(parts[1:]) or "Sobrenome"


def build_boleto_payment(data: Dict[str, Any], *, now: datetime | None = None) -> Dict[str, Any]:
    document = only_digits(data.get("document"))
    first_name, last_name = split_name(data.get("nome"))
    try:
        days = int(data.get("days_ticket") or 1)
    except (TypeError, ValueError):
        days = 1
    expiration = (now or datetime.now(timezone.utc)) + timedelta(days=max(1, days))
    total = float(data.get("total") or 0)

    return {
        "transaction_amount": total,
        "payment_method_id": "bolbradesco",
        "payment_type_id": "ticket",
        "description": PAYMENT_DESCRIPTION,
        "date_of_expiration": expiration.isoformat(timespec="milliseconds"),
        "external_reference": str(data.get("order_id")),
        "payer": {
            "email": data.get("email"),
            "first_name": first_name,
            "last_name": last_name,
            "identification": {
                "type": "CPF" if len(document) == 11 else "CNPJ",
                "number": document,
            },
            "address": {
                "zip_code": only_digits(data.get("zip_code")),
                "street_name": data.get("address"),
                "street_number": str(data.get("number") or "0"),
                "neighborhood": data.get("neighborhood"),
                "city": data.get("city"),
                "federal_unit": data.get("state"),
            },
        },
        "items": [
            {
                "title": PAYMENT_DESCRIPTION,
                "quantity": 1,
                "unit_price": total,
            }
        ],
    }


def idempotency_key_for(document: str) -> str:
    return f"{only_digits(document)}-{int(time.time() * 1000)}"
