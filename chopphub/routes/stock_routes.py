from __future__ import annotations

from flask import Blueprint, jsonify, request, session

from chopphub.application.stock_service import StockService
from chopphub.db import get_db
from chopphub.domain.contracts import StockMovementInput
from chopphub.errors import require_fields
from chopphub.tenant import current_company_id
from chopphub.validators import parse_money


stock_bp = Blueprint("stock", __name__)

_STOCK_SERVICE = StockService()


@stock_bp.route("/api/stock-movements/register", methods=["POST"])
def register_movement():
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "productId", "type", "quantity")
    db = get_db()
    result = _STOCK_SERVICE.register_movement(
        db,
        company_id=current_company_id(),
        movement_input=StockMovementInput(
            product_id=str(payload["productId"]),
            movement_type=str(payload["type"]).strip().lower(),
            quantity=parse_money(payload["quantity"], field="quantity"),
            reason=payload.get("reason"),
            note_id=payload.get("noteId"),
            created_by=session.get("user_id"),
        ),
    )
    return jsonify(result.payload), result.status_code


@stock_bp.route("/api/stock-movements", methods=["GET"])
def list_movements():
    result = _STOCK_SERVICE.list_movements(
        get_db(),
        company_id=current_company_id(),
        product_id=(request.args.get("product_id") or "").strip() or None,
    )
    return jsonify(result.payload), result.status_code
