from __future__ import annotations

from flask import Blueprint, jsonify, request

from chopphub.application.order_service import OrderService
from chopphub.db import get_db
from chopphub.domain.contracts import OrderCreateInput, OrderItemInput
from chopphub.errors import ValidationError, require_fields
from chopphub.infrastructure.repositories.order_repository import OrderRepository
from chopphub.policies import current_role
from chopphub.tenant import current_company_id
from chopphub.ui_strings import payment_status_label
from chopphub.validators import parse_money


orders_bp = Blueprint("orders", __name__)

_ORDER_SERVICE = OrderService()


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _order_input(payload: dict) -> OrderCreateInput:
    require_fields(payload, "customer_id", "payment_method", "appointment_date")
    raw_items = payload.get("items") or []
    if not isinstance(raw_items, list):
        raise ValidationError(code="validation_error", payload={"field": "items"})

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict) or not raw.get("product_id"):
            raise ValidationError(code="validation_error", payload={"field": "items"})
        items.append(
            OrderItemInput(
                product_id=str(raw["product_id"]),
                quantity=parse_money(raw.get("quantity"), field="quantity"),
                price=parse_money(raw["price"], field="price") if raw.get("price") not in (None, "") else None,
            )
        )

    days_ticket = payload.get("days_ticket")
    return OrderCreateInput(
        customer_id=str(payload["customer_id"]),
        items=items,
        payment_method=str(payload["payment_method"]),
        appointment_date=str(payload["appointment_date"]),
        appointment_hour=payload.get("appointment_hour"),
        appointment_local=payload.get("appointment_local"),
        freight=parse_money(payload.get("freight"), field="freight", default=0.0),
        days_ticket=int(days_ticket) if days_ticket not in (None, "") else None,
        document_type=payload.get("document_type") or "internal",
        note_number=payload.get("note_number") or None,
        text_note=payload.get("text_note"),
        total=parse_money(payload.get("total"), field="total") if payload.get("total") not in (None, "") else None,
        override_overdue=_as_bool(payload.get("override_overdue")),
    )


@orders_bp.route("/api/orders", methods=["POST"])
def create_order():
    db = get_db()
    result = _ORDER_SERVICE.create_order(
        db,
        company_id=current_company_id(),
        create_input=_order_input(request.get_json(silent=True) or {}),
        role=current_role(),
    )
    return jsonify(result.payload), result.status_code


@orders_bp.route("/api/orders", methods=["GET"])
def list_orders():
    rows = OrderRepository(company_id=current_company_id()).list_orders(
        get_db(),
        payment_status=(request.args.get("payment_status") or "").strip() or None,
        customer_id=(request.args.get("customer_id") or "").strip() or None,
        date_from=(request.args.get("from") or "").strip() or None,
        date_to=(request.args.get("to") or "").strip() or None,
    )
    for row in rows:
        row["payment_status_label"] = payment_status_label(row.get("payment_status"))
    return jsonify({"items": rows})


@orders_bp.route("/api/orders/<order_id>", methods=["GET"])
def get_order(order_id: str):
    result = _ORDER_SERVICE.get_order(get_db(), company_id=current_company_id(), order_id=order_id)
    return jsonify(result.payload), result.status_code


@orders_bp.route("/api/orders/<order_id>", methods=["DELETE"])
def delete_order(order_id: str):
    result = _ORDER_SERVICE.delete_order(get_db(), company_id=current_company_id(), order_id=order_id)
    return jsonify(result.payload), result.status_code


@orders_bp.route("/api/update-payment", methods=["POST"])
def update_payment():
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "order_id", "total_payed")
    result = _ORDER_SERVICE.register_payment(
        get_db(),
        company_id=current_company_id(),
        order_id=str(payload["order_id"]),
        total_payed=parse_money(payload["total_payed"], field="total_payed"),
        payment_method=payload.get("payment_method") or None,
    )
    return jsonify(result.payload), result.status_code


@orders_bp.route("/api/customers/<customer_id>/overdue", methods=["GET"])
def customer_overdue(customer_id: str):
    result = _ORDER_SERVICE.overdue_for_customer(get_db(), company_id=current_company_id(), customer_id=customer_id)
    return jsonify(result.payload), result.status_code


@orders_bp.route("/api/routes/generate", methods=["POST"])
def generate_route():
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "driverId", "date", "type")
    delivery_ids = payload.get("deliveryIds") or []
    if not isinstance(delivery_ids, list) or not delivery_ids:
        raise ValidationError(code="field_required", message_key="field_required", payload={"field": "deliveryIds"})
    result = _ORDER_SERVICE.generate_route(
        get_db(),
        company_id=current_company_id(),
        delivery_ids=[str(item) for item in delivery_ids],
        driver_id=str(payload["driverId"]),
        route_date=str(payload["date"]),
        delivery_status=str(payload["type"]),
    )
    return jsonify(result.payload), result.status_code


@orders_bp.route("/api/products/<product_id>/reserved-stock", methods=["GET"])
def reserved_stock(product_id: str):
    result = _ORDER_SERVICE.reserved_stock(get_db(), company_id=current_company_id(), product_id=product_id)
    return jsonify(result.payload), result.status_code
