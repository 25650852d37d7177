from __future__ import annotations

from flask import Blueprint, jsonify, request

from chopphub.application.equipment_service import EquipmentService
from chopphub.db import get_db
from chopphub.domain.contracts import LoanCreateInput, LoanItemInput, LoanReturnInput, ReturnItemInput
from chopphub.errors import ValidationError, require_fields
from chopphub.tenant import current_company_id


equipment_bp = Blueprint("equipment", __name__)

_EQUIPMENT_SERVICE = EquipmentService()


def _int_field(raw: dict, field: str) -> int:
    value = raw.get(field)
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(code="validation_error", payload={"field": field})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(code="validation_error", payload={"field": field}) from None


def _items(payload: dict, key: str) -> list[dict]:
    raw_items = payload.get("items") or []
    if not isinstance(raw_items, list) or any(not isinstance(raw, dict) or not raw.get(key) for raw in raw_items):
        raise ValidationError(code="validation_error", payload={"field": "items"})
    return raw_items


@equipment_bp.route("/api/equipment-loans", methods=["POST"])
def register_loan():
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "customer_id")
    create_input = LoanCreateInput(
        customer_id=str(payload["customer_id"]),
        items=[
            LoanItemInput(equipment_id=str(raw["equipment_id"]), quantity=_int_field(raw, "quantity"))
            for raw in _items(payload, "equipment_id")
        ],
        note_number=payload.get("note_number") or None,
        note_date=payload.get("note_date") or None,
        loan_date=payload.get("loan_date") or None,
        condition=payload.get("condition"),
        notes=payload.get("notes"),
    )
    result = _EQUIPMENT_SERVICE.register_loan(get_db(), company_id=current_company_id(), create_input=create_input)
    return jsonify(result.payload), result.status_code


@equipment_bp.route("/api/equipment-loans", methods=["GET"])
def list_loans():
    result = _EQUIPMENT_SERVICE.list_loans(
        get_db(),
        company_id=current_company_id(),
        customer_id=(request.args.get("customer_id") or "").strip() or None,
        status=(request.args.get("status") or "").strip() or None,
    )
    return jsonify(result.payload), result.status_code


@equipment_bp.route("/api/equipment-loans/return", methods=["POST"])
def register_return():
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "customer_id")
    return_input = LoanReturnInput(
        customer_id=str(payload["customer_id"]),
        items=[
            ReturnItemInput(loan_id=str(raw["loan_id"]), quantity=_int_field(raw, "quantity"))
            for raw in _items(payload, "loan_id")
        ],
        return_date=payload.get("return_date") or None,
        condition=payload.get("condition"),
        notes=payload.get("notes"),
        close_without_collection=bool(payload.get("close_without_collection")),
    )
    result = _EQUIPMENT_SERVICE.register_return(get_db(), company_id=current_company_id(), return_input=return_input)
    return jsonify(result.payload), result.status_code


@equipment_bp.route("/api/equipment-loans/history", methods=["GET"])
def loan_history():
    customer_id = (request.args.get("customer_id") or "").strip()
    if not customer_id:
        raise ValidationError(code="field_required", message_key="field_required", payload={"field": "customer_id"})
    result = _EQUIPMENT_SERVICE.customer_history(get_db(), company_id=current_company_id(), customer_id=customer_id)
    return jsonify(result.payload), result.status_code
