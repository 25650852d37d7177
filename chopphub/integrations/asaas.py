from __future__ import annotations

import logging
import re
from typing import Any, Dict

from chopphub.integrations.http import config_value, request_json
from chopphub.observability import token_prefix
from chopphub.validators import normalize_phone_br, only_digits


logger = logging.getLogger(__name__)

PROVIDER = "asaas"
ASAAS_ENVS = {"sandbox", "production"}
PAID_STATUSES = {"RECEIVED", "CONFIRMED", "RECEIVED_IN_CASH", "RECEIVED_IN_BANK"}
TRACKED_CUSTOMER_FIELDS = (
    "name",
    "cpfCnpj",
    "email",
    "phone",
    "mobilePhone",
    "address",
    "addressNumber",
    "complement",
    "province",
    "postalCode",
)

_TEST_TOKEN = re.compile(r"^test_", re.IGNORECASE)


def resolve_env(stored_env: str | None, access_token: str | None) -> str:
    env = str(stored_env or "").strip().lower()
    if env in ASAAS_ENVS:
        return env
    if _TEST_TOKEN.match(str(access_token or "")):
        return "sandbox"
    return "production"


def base_url(env: str) -> str:
    if env == "sandbox":
        return str(config_value("ASAAS_SANDBOX_URL", "https://api-sandbox.asaas.com/v3")).rstrip("/")
    return str(config_value("ASAAS_PRODUCTION_URL", "https://api.asaas.com/v3")).rstrip("/")


def error_message_from(body: object) -> str | None:
    if not isinstance(body, dict):
        return None
    message = body.get("message") or body.get("error")
    if message:
        return str(message)
    errors = body.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        description = errors[0].get("description")
        if description:
            return str(description)
    return None


class AsaasClient:
    def __init__(self, access_token: str, env: str | None = None) -> None:
        self.access_token = str(access_token or "").strip()
        self.env = resolve_env(env, self.access_token)

    def request(
        self,
        method: str,
        path: str,
        *,
        payload: dict | None = None,
        params: Dict[str, object] | None = None,
    ) -> Any:
        url = f"{base_url(self.env)}{path}"
        logger.info(
            "asaas_request",
            extra={
                "asaas_env": self.env,
                "http_method": method,
                "asaas_path": path,
                "token_prefix": token_prefix(self.access_token),
            },
        )
        return request_json(
            PROVIDER,
            method,
            url,
            headers={"access_token": self.access_token},
            payload=payload,
            params=params,
            allow_retry=method.upper() == "GET",
            message_from=error_message_from,
        )

    def find_customer(
        self,
        *,
        cpf_cnpj: str | None = None,
        email: str | None = None,
        name: str | None = None,
    ) -> dict | None:
        if cpf_cnpj:
            params = {"cpfCnpj": cpf_cnpj}
        elif email:
            params = {"email": email}
        elif name:
            params = {"name": name}
        else:
            return None
        found = self.request("GET", "/customers", params=params)
        data = found.get("data") if isinstance(found, dict) else None
        if isinstance(data, list) and data:
            return data[0]
        return None

    def create_customer(self, customer: dict) -> dict:
        return self.request("POST", "/customers", payload=customer)

    def update_customer(self, customer_id: str, changes: dict) -> dict:
        return self.request("PUT", f"/customers/{customer_id}", payload=changes)

    def create_payment(self, payment: dict) -> dict:
        return self.request("POST", "/payments", payload=payment)


def map_to_asaas_customer(row: dict) -> Dict[str, Any]:
    """Map a local customer row to the Asaas customer payload.

    At most one of ``phone`` / ``mobilePhone`` is set: an explicit mobile
    number wins, otherwise an 11-digit phone is treated as mobile and a
    10-digit one as landline.
    """
    phone_digits = normalize_phone_br(row.get("phone"))
    mobile_digits = normalize_phone_br(row.get("mobile_phone"))

    phone = None
    mobile_phone = mobile_digits
    if not mobile_phone and phone_digits:
        if len(phone_digits) == 11:
            mobile_phone = phone_digits
        else:
            phone = phone_digits

    email = str(row.get("email") or "").strip() or None
    name = (
        str(row.get("name") or "").strip()
        or str(row.get("fantasy_name") or "").strip()
        or (email or "")
    )
    postal_code = only_digits(row.get("zip_code")) or None

    return {
        "name": name,
        "cpfCnpj": only_digits(row.get("document")) or None,
        "email": email,
        "phone": phone,
        "mobilePhone": mobile_phone,
        "address": row.get("address") or None,
        "addressNumber": row.get("number") or None,
        "complement": row.get("complement") or None,
        "province": row.get("neighborhood") or None,
        "postalCode": postal_code,
        "company": row.get("fantasy_name") or None,
        "stateInscription": row.get("state_registration") or None,
        "externalReference": row.get("id"),
    }


def compact(payload: dict) -> dict:
    return {key: value for key, value in payload.items() if value is not None}


def diff_customer(current: dict | None, desired: dict) -> Dict[str, Any]:
    current = current or {}
    changes: Dict[str, Any] = {}
    for key in TRACKED_CUSTOMER_FIELDS:
        wanted = desired.get(key)
        if wanted is None:
            continue
        if wanted != current.get(key):
            changes[key] = wanted
    return changes


def map_payment_status(asaas_status: str | None) -> str:
    if str(asaas_status or "").strip().upper() in PAID_STATUSES:
        return "Paid"
    return "Unpaid"


def build_payment_payload(
    *,
    asaas_customer_id: str,
    value: float,
    due_date: str,
    description: str | None = None,
    postal_service: bool = False,
    fine_percent: float | None = None,
    interest_percent_month: float | None = None,
    discount_value: float | None = None,
    discount_due_date_limit_days: int | None = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "customer": asaas_customer_id,
        "billingType": "BOLETO",
        "value": value,
        "dueDate": due_date,
        "postalService": bool(postal_service),
    }
    if description:
        payload["description"] = description
    if fine_percent is not None:
        payload["fine"] = {"value": fine_percent, "type": "PERCENTAGE"}
    if interest_percent_month is not None:
        payload["interest"] = {"value": interest_percent_month, "type": "PERCENTAGE_PER_MONTH"}
    if discount_value is not None and discount_value > 0:
        payload["discount"] = {
            "value": discount_value,
            "type": "FIXED",
            "dueDateLimitDays": int(discount_due_date_limit_days or 0),
        }
    return payload
