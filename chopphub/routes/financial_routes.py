from __future__ import annotations

from flask import Blueprint, jsonify, request

from chopphub.application.financial_service import FinancialService
from chopphub.db import get_db
from chopphub.errors import require_fields
from chopphub.tenant import current_company_id


financial_bp = Blueprint("financial", __name__)

_FINANCIAL_SERVICE = FinancialService()

_FILTER_KEYS = ("status", "type", "month", "supplier_id", "q")


@financial_bp.route("/api/financial-records", methods=["GET"])
def list_records():
    filters = {key: (request.args.get(key) or "").strip() or None for key in _FILTER_KEYS}
    result = _FINANCIAL_SERVICE.list_records(get_db(), company_id=current_company_id(), filters=filters)
    return jsonify(result.payload), result.status_code


@financial_bp.route("/api/financial-records/summary", methods=["GET"])
def summary():
    result = _FINANCIAL_SERVICE.summary(
        get_db(),
        company_id=current_company_id(),
        month=(request.args.get("month") or "").strip() or None,
    )
    return jsonify(result.payload), result.status_code


@financial_bp.route("/api/financial-records", methods=["POST"])
def create_record():
    db = get_db()
    result = _FINANCIAL_SERVICE.create_record(
        db, company_id=current_company_id(), payload=request.get_json(silent=True) or {}
    )
    db.commit()
    return jsonify(result.payload), result.status_code


@financial_bp.route("/api/financial-records/<record_id>", methods=["GET"])
def get_record(record_id: str):
    result = _FINANCIAL_SERVICE.get_record(get_db(), company_id=current_company_id(), record_id=record_id)
    return jsonify(result.payload), result.status_code


@financial_bp.route("/api/financial-records/<record_id>", methods=["PUT"])
def update_record(record_id: str):
    db = get_db()
    result = _FINANCIAL_SERVICE.update_record(
        db,
        company_id=current_company_id(),
        record_id=record_id,
        payload=request.get_json(silent=True) or {},
    )
    db.commit()
    return jsonify(result.payload), result.status_code


@financial_bp.route("/api/financial-records/<record_id>", methods=["DELETE"])
def delete_record(record_id: str):
    db = get_db()
    result = _FINANCIAL_SERVICE.delete_record(db, company_id=current_company_id(), record_id=record_id)
    db.commit()
    return jsonify(result.payload), result.status_code


@financial_bp.route("/api/update-financial-payment", methods=["POST"])
def update_financial_payment():
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "financial_id", "payment_method")
    db = get_db()
    result = _FINANCIAL_SERVICE.mark_paid(
        db,
        company_id=current_company_id(),
        record_id=str(payload["financial_id"]),
        payment_method=str(payload["payment_method"]),
    )
    db.commit()
    return jsonify(result.payload), result.status_code
