from __future__ import annotations

from flask import Blueprint, jsonify, request

from chopphub.application.catalog_service import CatalogService
from chopphub.db import get_db
from chopphub.errors import IntegrationError, ProviderError, ValidationError
from chopphub.integrations.cnpj import lookup_cnpj
from chopphub.tenant import current_company_id
from chopphub.validators import only_digits


catalog_bp = Blueprint("catalog", __name__)

_CATALOG_SERVICE = CatalogService()

_RESOURCE_PATTERN = '<any(customers, suppliers, products, equipments, "fiscal-operations"):resource>'


@catalog_bp.route(f"/api/{_RESOURCE_PATTERN}", methods=["GET"])
def list_records(resource: str):
    result = _CATALOG_SERVICE.list(
        get_db(),
        company_id=current_company_id(),
        resource=resource,
        search=(request.args.get("q") or "").strip() or None,
    )
    return jsonify(result.payload), result.status_code


@catalog_bp.route(f"/api/{_RESOURCE_PATTERN}", methods=["POST"])
def create_record(resource: str):
    db = get_db()
    result = _CATALOG_SERVICE.create(
        db,
        company_id=current_company_id(),
        resource=resource,
        payload=request.get_json(silent=True) or {},
    )
    db.commit()
    return jsonify(result.payload), result.status_code


@catalog_bp.route(f"/api/{_RESOURCE_PATTERN}/<record_id>", methods=["GET"])
def get_record(resource: str, record_id: str):
    result = _CATALOG_SERVICE.get(get_db(), company_id=current_company_id(), resource=resource, record_id=record_id)
    return jsonify(result.payload), result.status_code


@catalog_bp.route(f"/api/{_RESOURCE_PATTERN}/<record_id>", methods=["PUT"])
def update_record(resource: str, record_id: str):
    db = get_db()
    result = _CATALOG_SERVICE.update(
        db,
        company_id=current_company_id(),
        resource=resource,
        record_id=record_id,
        payload=request.get_json(silent=True) or {},
    )
    db.commit()
    return jsonify(result.payload), result.status_code


@catalog_bp.route(f"/api/{_RESOURCE_PATTERN}/<record_id>", methods=["DELETE"])
def delete_record(resource: str, record_id: str):
    result = _CATALOG_SERVICE.delete(
        get_db(), company_id=current_company_id(), resource=resource, record_id=record_id
    )
    return jsonify(result.payload), result.status_code


@catalog_bp.route("/api/cnpj/<cnpj>", methods=["GET"])
def cnpj_lookup(cnpj: str):
    digits = only_digits(cnpj)
    if len(digits) != 14:
        raise ValidationError(code="invalid_document", message_key="invalid_document")
    try:
        data = lookup_cnpj(digits)
    except ProviderError as exc:
        raise IntegrationError(
            code="cnpj_lookup_failed",
            message_key="cnpj_lookup_failed",
            http_status=502,
            details=str(exc),
        ) from exc
    return jsonify(data)
