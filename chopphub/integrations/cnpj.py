from __future__ import annotations

import logging
from typing import Any, Dict

from chopphub.errors import ProviderError
from chopphub.integrations.http import config_value, request_json
from chopphub.validators import only_digits


logger = logging.getLogger(__name__)


def _activities(items: object, code_key: str, text_key: str) -> list | None:
    if not isinstance(items, list):
        return None
    return [
        {"code": str(item.get(code_key)), "text": item.get(text_key)}
        for item in items
        if isinstance(item, dict)
    ]


def normalize_brasil_api(data: dict) -> Dict[str, Any]:
    street = data.get("logradouro")
    if data.get("descricao_tipo_logradouro"):
        street = f"{data['descricao_tipo_logradouro']} {street or ''}".strip()
    main_activity = None
    if data.get("cnae_fiscal"):
        main_activity = [{"code": str(data["cnae_fiscal"]), "text": data.get("cnae_fiscal_descricao")}]
    return {
        "cnpj": only_digits(data.get("cnpj")),
        "razao_social": data.get("razao_social"),
        "nome_fantasia": data.get("nome_fantasia"),
        "logradouro": street,
        "numero": data.get("numero"),
        "complemento": data.get("complemento"),
        "bairro": data.get("bairro"),
        "municipio": data.get("municipio"),
        "uf": data.get("uf"),
        "cep": only_digits(data.get("cep")),
        "telefone": only_digits(data.get("ddd_telefone_1") or data.get("ddd_telefone_2")),
        "email": data.get("email"),
        "abertura": data.get("data_situacao_cadastral"),
        "situacao": data.get("descricao_situacao_cadastral"),
        "natureza_juridica": data.get("natureza_juridica"),
        "atividades_principais": main_activity,
        "atividades_secundarias": _activities(data.get("cnaes_secundarios"), "codigo", "descricao"),
        "source": "brasilapi",
    }


def normalize_receitaws(data: dict) -> Dict[str, Any]:
    return {
        "cnpj": only_digits(data.get("cnpj")),
        "razao_social": data.get("nome"),
        "nome_fantasia": data.get("fantasia"),
        "logradouro": data.get("logradouro"),
        "numero": data.get("numero"),
        "complemento": data.get("complemento"),
        "bairro": data.get("bairro"),
        "municipio": data.get("municipio"),
        "uf": data.get("uf"),
        "cep": only_digits(data.get("cep")),
        "telefone": only_digits(data.get("telefone")),
        "email": data.get("email"),
        "abertura": data.get("abertura"),
        "situacao": data.get("situacao"),
        "natureza_juridica": data.get("natureza_juridica"),
        "atividades_principais": _activities(data.get("atividade_principal"), "code", "text"),
        "atividades_secundarias": _activities(data.get("atividades_secundarias"), "code", "text"),
        "source": "receitaws",
    }


def lookup_cnpj(cnpj: str) -> Dict[str, Any]:
    """BrasilAPI first, ReceitaWS as fallback; raises ProviderError when both fail."""
    brasil_api = str(config_value("BRASIL_API_URL", "https://brasilapi.com.br/api/cnpj/v1")).rstrip("/")
    try:
        data = request_json("brasilapi", "GET", f"{brasil_api}/{cnpj}", allow_retry=True)
        if isinstance(data, dict):
            return normalize_brasil_api(data)
    except ProviderError as exc:
        logger.warning("cnpj_brasilapi_failed", extra={"status": exc.status, "error": exc.message})

    receitaws = str(config_value("RECEITAWS_URL", "https://www.receitaws.com.br/v1/cnpj")).rstrip("/")
    data = request_json(
        "receitaws",
        "GET",
        f"{receitaws}/{cnpj}",
        headers={"User-Agent": "Mozilla/5.0"},
        allow_retry=True,
    )
    # ReceitaWS answers 200 with {"status": "ERROR"} for unknown numbers.
    if not isinstance(data, dict) or str(data.get("status") or "").upper() == "ERROR":
        message = data.get("message") if isinstance(data, dict) else None
        raise ProviderError("receitaws", str(message or "CNPJ nao encontrado."), status=404, body=data)
    return normalize_receitaws(data)
