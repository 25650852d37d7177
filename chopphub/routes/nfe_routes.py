from __future__ import annotations

from flask import Blueprint, jsonify, request

from chopphub.application.nfe_service import NfeService
from chopphub.db import get_db
from chopphub.domain.contracts import NfeCreateInput, NfeEmailInput
from chopphub.errors import ValidationError, require_fields
from chopphub.storage import get_storage
from chopphub.tenant import current_company_id


nfe_bp = Blueprint("nfe", __name__)

_NFE_SERVICE = NfeService()


def _payload() -> dict:
    return request.get_json(silent=True) or {}


@nfe_bp.route("/api/nfe/order", methods=["GET"])
def order_context():
    order_id = (request.args.get("order_id") or "").strip()
    if not order_id:
        raise ValidationError(code="field_required", message_key="field_required", payload={"field": "order_id"})
    result = _NFE_SERVICE.order_context(get_db(), company_id=current_company_id(), order_id=order_id)
    return jsonify(result.payload), result.status_code


@nfe_bp.route("/api/nfe/create", methods=["POST"])
def create_invoice():
    payload = _payload()
    require_fields(payload, "orderId")
    invoice_data = payload.get("invoiceData")
    if invoice_data is not None and not isinstance(invoice_data, dict):
        raise ValidationError(code="validation_error", payload={"field": "invoiceData"})
    result = _NFE_SERVICE.create_invoice(
        get_db(),
        company_id=current_company_id(),
        create_input=NfeCreateInput(
            order_id=str(payload["orderId"]),
            operation_id=payload.get("operationId") or None,
            invoice_data=invoice_data or None,
            ref=payload.get("ref") or None,
        ),
    )
    return jsonify(result.payload), result.status_code


@nfe_bp.route("/api/nfe/status", methods=["POST"])
def invoice_status():
    payload = _payload()
    require_fields(payload, "ref")
    result = _NFE_SERVICE.refresh_status(get_db(), company_id=current_company_id(), ref=str(payload["ref"]))
    return jsonify(result.payload), result.status_code


@nfe_bp.route("/api/nfe/fetch-links", methods=["POST"])
def fetch_links():
    payload = _payload()
    require_fields(payload, "ref")
    result = _NFE_SERVICE.fetch_links(
        get_db(),
        company_id=current_company_id(),
        ref=str(payload["ref"]),
        invoice_id=payload.get("invoiceId") or None,
    )
    return jsonify(result.payload), result.status_code


@nfe_bp.route("/api/nfe/fetch-files", methods=["POST"])
def fetch_files():
    payload = _payload()
    require_fields(payload, "ref", "invoiceId")
    result = _NFE_SERVICE.fetch_files(
        get_db(),
        company_id=current_company_id(),
        ref=str(payload["ref"]),
        invoice_id=str(payload["invoiceId"]),
        storage=get_storage(),
    )
    return jsonify(result.payload), result.status_code


@nfe_bp.route("/api/nfe/cancel", methods=["POST"])
def cancel_invoice():
    payload = _payload()
    require_fields(payload, "ref", "motivo")
    result = _NFE_SERVICE.cancel(
        get_db(),
        company_id=current_company_id(),
        ref=str(payload["ref"]),
        motivo=str(payload["motivo"]),
    )
    return jsonify(result.payload), result.status_code


@nfe_bp.route("/api/nfe/send-email", methods=["POST"])
def send_email():
    payload = _payload()
    result = _NFE_SERVICE.send_email(
        get_db(),
        company_id=current_company_id(),
        email_input=NfeEmailInput(
            ref=str(payload.get("refId") or ""),
            to_email=str(payload.get("toEmail") or ""),
            subject=payload.get("subject") or None,
            body=payload.get("body") or None,
        ),
        storage=get_storage(),
    )
    return jsonify(result.payload), result.status_code


@nfe_bp.route("/api/nfe/invoices", methods=["GET"])
def list_invoices():
    result = _NFE_SERVICE.list_invoices(
        get_db(),
        company_id=current_company_id(),
        search=(request.args.get("q") or "").strip() or None,
    )
    return jsonify(result.payload), result.status_code
