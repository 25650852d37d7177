from __future__ import annotations

import base64
import logging
import time
import urllib.parse
from datetime import date
from typing import Any, Callable, Dict, List

from chopphub.errors import ProviderError, ValidationError
from chopphub.integrations.http import config_value, request_bytes, request_json
from chopphub.observability import token_prefix
from chopphub.validators import only_digits


logger = logging.getLogger(__name__)

PROVIDER = "focus_nfe"
FOCUS_ENVS = {"homologacao", "producao"}
CST_ONLY = {"04", "06", "07", "08"}
CST_WITH_BASE = {"01", "99"}
DEFAULT_CFOP = "5102"


def resolve_environment(value: str | None) -> str:
    env = str(value or "").strip().lower()
    return env if env in FOCUS_ENVS else "homologacao"


def base_url(environment: str) -> str:
    if resolve_environment(environment) == "producao":
        return str(config_value("FOCUS_NFE_PRODUCAO_URL", "https://api.focusnfe.com.br/v2")).rstrip("/")
    return str(config_value("FOCUS_NFE_HOMOLOGACAO_URL", "https://homologacao.focusnfe.com.br/v2")).rstrip("/")


def clean_token(raw_token: str | None) -> str:
    return str(raw_token or "").strip().replace("\r", "").replace("\n", "")


def auth_header(raw_token: str | None) -> str:
    basic = base64.b64encode(f"{clean_token(raw_token)}:".encode("utf-8")).decode("ascii")
    return f"Basic {basic}"


def extract_mensagem_sefaz(body: object) -> str | None:
    if not isinstance(body, dict):
        return None
    for key in ("mensagem_sefaz", "motivo", "motivo_sefaz"):
        if body.get(key):
            return str(body[key])
    retornos = body.get("retornos")
    if isinstance(retornos, list) and retornos and isinstance(retornos[0], dict):
        if retornos[0].get("mensagem"):
            return str(retornos[0]["mensagem"])
    erros = body.get("erros")
    if isinstance(erros, list):
        joined = "; ".join(str(e.get("mensagem")) for e in erros if isinstance(e, dict) and e.get("mensagem"))
        if joined:
            return joined
    return None


def error_message_from(body: object) -> str | None:
    if not isinstance(body, dict):
        return None
    if body.get("mensagem"):
        return str(body["mensagem"])
    erros = body.get("erros")
    if isinstance(erros, list) and erros and isinstance(erros[0], dict) and erros[0].get("mensagem"):
        return str(erros[0]["mensagem"])
    return None


def is_authorized(status: str | None) -> bool:
    return "autorizad" in str(status or "").lower()


def parse_status(body: object) -> Dict[str, Any]:
    body = body if isinstance(body, dict) else {}
    links = body.get("links") if isinstance(body.get("links"), dict) else {}
    return {
        "status": body.get("status"),
        "numero": body.get("numero"),
        "serie": body.get("serie"),
        "chave": body.get("chave_nfe") or body.get("chave"),
        "xml_url": links.get("xml") or body.get("caminho_xml_nota_fiscal") or body.get("xml"),
        "danfe_url": links.get("danfe") or body.get("caminho_danfe") or body.get("danfe"),
        "data_emissao": body.get("data_emissao") or body.get("dataEmissao"),
        "mensagem_sefaz": extract_mensagem_sefaz(body),
    }


class FocusNfeClient:
    def __init__(self, token: str, environment: str | None = None) -> None:
        self.token = clean_token(token)
        self.environment = resolve_environment(environment)

    def _url(self, ref: str, suffix: str = "") -> str:
        return f"{base_url(self.environment)}/nfe/{urllib.parse.quote(str(ref), safe='')}{suffix}"

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": auth_header(self.token)}

    def create(self, ref: str, invoice: dict) -> dict:
        logger.info(
            "focus_nfe_create",
            extra={"ref": ref, "focus_env": self.environment, "token_prefix": token_prefix(self.token)},
        )
        return request_json(
            PROVIDER,
            "POST",
            f"{base_url(self.environment)}/nfe",
            headers=self._headers(),
            payload=invoice,
            params={"ref": ref},
            message_from=error_message_from,
        )

    def status(self, ref: str) -> Dict[str, Any]:
        body = request_json(
            PROVIDER,
            "GET",
            self._url(ref),
            headers=self._headers(),
            allow_retry=True,
            message_from=error_message_from,
        )
        return parse_status(body)

    def cancel(self, ref: str, justificativa: str) -> dict:
        return request_json(
            PROVIDER,
            "DELETE",
            self._url(ref),
            headers=self._headers(),
            payload={"justificativa": justificativa},
            message_from=error_message_from,
        )

    def download(self, ref: str, extension: str) -> bytes:
        return request_bytes(PROVIDER, "GET", self._url(ref, f".{extension}"), headers=self._headers())


def poll_status(
    client: FocusNfeClient,
    ref: str,
    *,
    attempts: int,
    interval_ms: int,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    """Query the status, then re-query while authorised without file links.

    Fixed attempt count and interval; the last answer wins.
    """
    result = client.status(ref)
    if not (is_authorized(result.get("status")) and not (result.get("xml_url") and result.get("danfe_url"))):
        return result

    last_error: ProviderError | None = None
    for _ in range(max(0, attempts)):
        sleep(interval_ms / 1000)
        try:
            current = client.status(ref)
        except ProviderError as exc:
            last_error = exc
            continue
        last_error = None
        result = current
        if result.get("xml_url") or result.get("danfe_url"):
            break
    if last_error is not None:
        raise last_error
    return result


def build_pis_fields(item: dict) -> Dict[str, Any]:
    cst = str(item.get("pis_situacao_tributaria") or "").zfill(2)
    if cst in CST_ONLY:
        return {"pis_situacao_tributaria": cst}
    if cst in CST_WITH_BASE:
        base = item.get("valor_base_calculo_pis")
        if base is None:
            base = item.get("valor_bruto") or 0
        return {
            "pis_situacao_tributaria": cst,
            "valor_base_calculo_pis": round(float(base), 2),
            "aliquota_pis": round(float(item.get("aliquota_pis") or 0), 2),
            "valor_pis": round(float(item.get("valor_pis") or 0), 2),
        }
    return {"pis_situacao_tributaria": "06"}


def build_cofins_fields(item: dict) -> Dict[str, Any]:
    cst = str(item.get("cofins_situacao_tributaria") or "").zfill(2)
    if cst in CST_ONLY:
        return {"cofins_situacao_tributaria": cst}
    if cst in CST_WITH_BASE:
        base = item.get("valor_base_calculo_cofins")
        if base is None:
            base = item.get("valor_bruto") or 0
        return {
            "cofins_situacao_tributaria": cst,
            "valor_base_calculo_cofins": round(float(base), 2),
            "aliquota_cofins": round(float(item.get("aliquota_cofins") or 0), 2),
            "valor_cofins": round(float(item.get("valor_cofins") or 0), 2),
        }
    return {"cofins_situacao_tributaria": "06"}


def _tax_amount(base: float, rate: object) -> float:
    if rate is None:
        return 0.0
    return round(base * float(rate) / 100, 2)


def build_invoice_data(
    order: dict,
    customer: dict,
    items: List[dict],
    company: dict,
    operation: dict | None = None,
    *,
    issue_date: date | None = None,
) -> Dict[str, Any]:
    """Build the Focus NFe payload for an order.

    ``items`` are order items joined with their product (``name``, ``code``,
    ``ncm``, ``unit``). Without ``operation`` a plain in-state sale is assumed.
    """
    operation = operation or {}
    today = (issue_date or date.today()).isoformat()
    cfop = str(operation.get("cfop") or DEFAULT_CFOP).zfill(4)
    icms_origem = str(operation.get("icms_origem") or "0")
    icms_cst = str(operation.get("icms_situacao_tributaria") or "102")

    nfe_items: List[Dict[str, Any]] = []
    products_total = 0.0
    for index, item in enumerate(items, start=1):
        name = item.get("name") or "Produto"
        if not item.get("ncm") or not item.get("unit"):
            raise ValidationError(
                code="nfe_product_incomplete",
                message_key="nfe_product_incomplete",
                payload={"product": name},
            )
        quantity = float(item.get("quantity") or 0)
        price = float(item.get("price") if item.get("price") is not None else item.get("standard_price") or 0)
        gross = round(price * quantity, 2)
        products_total += gross

        tax_source = {
            "pis_situacao_tributaria": operation.get("pis_situacao_tributaria") or "07",
            "cofins_situacao_tributaria": operation.get("cofins_situacao_tributaria") or "07",
            "valor_bruto": gross,
            "aliquota_pis": operation.get("aliquota_pis"),
            "aliquota_cofins": operation.get("aliquota_cofins"),
            "valor_pis": _tax_amount(gross, operation.get("aliquota_pis")),
            "valor_cofins": _tax_amount(gross, operation.get("aliquota_cofins")),
        }
        nfe_item = {
            "numero_item": index,
            "codigo_produto": str(item.get("code") or item.get("product_id") or name),
            "descricao": name,
            "codigo_ncm": only_digits(item.get("ncm")).zfill(8),
            "cfop": cfop,
            "unidade_comercial": item.get("unit"),
            "quantidade_comercial": quantity,
            "valor_unitario_comercial": price,
            "unidade_tributavel": item.get("unit"),
            "quantidade_tributavel": quantity,
            "valor_unitario_tributavel": price,
            "valor_bruto": gross,
            "icms_origem": icms_origem,
            "icms_situacao_tributaria": icms_cst,
        }
        nfe_item.update(build_pis_fields(tax_source))
        nfe_item.update(build_cofins_fields(tax_source))
        nfe_items.append(nfe_item)

    freight = float(order.get("freight") or 0)
    document = only_digits(customer.get("document"))
    recipient_doc = {"cnpj_destinatario": document} if len(document) == 14 else {"cpf_destinatario": document}
    phone = only_digits(customer.get("phone"))
    if phone.startswith("55") and len(phone) > 11:
        phone = phone[2:]

    payload: Dict[str, Any] = {
        "natureza_operacao": operation.get("natureza_operacao") or "Venda de mercadoria",
        "data_emissao": today,
        "data_entrada_saida": today,
        "tipo_documento": int(operation.get("tipo_documento") or 1),
        "finalidade_emissao": int(operation.get("finalidade_emissao") or 1),
        "presenca_comprador": str(operation.get("presenca_comprador") or "1"),
        "modalidade_frete": 0,
        "valor_frete": freight,
        "valor_seguro": 0,
        "valor_produtos": round(products_total, 2),
        "valor_total": round(products_total + freight, 2),
        "nome_emitente": company.get("corporate_name") or company.get("name"),
        "nome_fantasia_emitente": company.get("trade_name"),
        "cnpj_emitente": only_digits(company.get("document")),
        "inscricao_estadual_emitente": company.get("state_registration"),
        "logradouro_emitente": company.get("address"),
        "numero_emitente": str(company.get("number") or "S/N"),
        "bairro_emitente": company.get("neighborhood"),
        "municipio_emitente": company.get("city"),
        "uf_emitente": company.get("state"),
        "cep_emitente": only_digits(company.get("zip_code")),
        "regime_tributario_emitente": company.get("regime_tributario"),
        "nome_destinatario": customer.get("name"),
        "telefone_destinatario": phone,
        "email_destinatario": customer.get("email"),
        "inscricao_estadual_destinatario": str(customer.get("state_registration") or "").strip() or "ISENTO",
        "logradouro_destinatario": customer.get("address"),
        "numero_destinatario": str(customer.get("number") or "S/N"),
        "bairro_destinatario": customer.get("neighborhood") or "",
        "municipio_destinatario": customer.get("city"),
        "uf_destinatario": customer.get("state"),
        "cep_destinatario": only_digits(customer.get("zip_code")),
        "pais_destinatario": "Brasil",
        "items": nfe_items,
        "formas_pagamento": [
            {
                "forma_pagamento": "15" if str(order.get("payment_method") or "").lower() == "boleto" else "01",
                "valor_pagamento": round(products_total + freight, 2),
            }
        ],
    }
    payload.update(recipient_doc)
    return {key: value for key, value in payload.items() if value is not None}
