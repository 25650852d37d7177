from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Dict, List

from chopphub.domain.contracts import OrderCreateInput, ServiceOutput
from chopphub.errors import ConflictError, NotFoundError, PermissionError, ValidationError
from chopphub.infrastructure.repositories.catalog_repository import CustomerRepository, ProductRepository
from chopphub.infrastructure.repositories.order_repository import OrderRepository
from chopphub.policies import is_admin
from chopphub.ui_strings import success_message
from chopphub.validators import parse_iso_date


logger = logging.getLogger(__name__)

DEFAULT_BOLETO_DAYS = 12


def is_boleto(payment_method: str | None) -> bool:
    return str(payment_method or "").strip().lower() == "boleto"


def next_note_number(existing: List[str | None]) -> str:
    highest = 0
    for value in existing:
        try:
            highest = max(highest, int(str(value or "").strip()))
        except ValueError:
            continue
    return str(highest + 1).zfill(6)


def compute_due_date(payment_method: str | None, appointment_date: date, days_ticket: int | None) -> date:
    if is_boleto(payment_method):
        days = DEFAULT_BOLETO_DAYS if days_ticket is None else int(days_ticket)
        return appointment_date + timedelta(days=days)
    return appointment_date


def summarize_products(lines: List[Dict[str, Any]]) -> str:
    def _qty(value: float) -> str:
        return str(int(value)) if float(value).is_integer() else f"{value:g}"

    return ", ".join(f"{line['name']} ({_qty(line['quantity'])}x)" for line in lines)


class OrderService:
    def create_order(
        self,
        db,
        *,
        company_id: str,
        create_input: OrderCreateInput,
        role: str,
        today: date | None = None,
    ) -> ServiceOutput:
        today = today or date.today()
        customers = CustomerRepository(company_id=company_id)
        products = ProductRepository(company_id=company_id)
        orders = OrderRepository(company_id=company_id)

        customer = customers.get(db, create_input.customer_id)
        if not customer:
            raise NotFoundError(code="customer_not_found", message_key="customer_not_found")

        overdue = self._overdue_items(orders, db, customer["id"], today)
        if overdue:
            if not create_input.override_overdue:
                raise ConflictError(
                    code="customer_has_overdue_boletos",
                    message_key="customer_has_overdue_boletos",
                    payload={"overdue": overdue},
                )
            if not is_admin(role):
                raise PermissionError(
                    code="permission_denied",
                    message_key="permission_denied",
                    payload={"overdue": overdue},
                )
            logger.warning(
                "order_overdue_override",
                extra={"customer_id": customer["id"], "overdue_count": len(overdue)},
            )

        appointment = parse_iso_date(create_input.appointment_date, field="appointment_date")
        lines = self._resolve_lines(db, products, create_input)
        if not lines and create_input.total is None:
            raise ValidationError(code="items_required", message_key="items_required")

        freight = float(create_input.freight or 0)
        if lines:
            total = round(sum(line["price"] * line["quantity"] for line in lines) + freight, 2)
        else:
            total = round(float(create_input.total or 0), 2)
        amount = sum(line["quantity"] for line in lines)
        due_date = compute_due_date(create_input.payment_method, appointment, create_input.days_ticket)
        days_ticket = (
            (DEFAULT_BOLETO_DAYS if create_input.days_ticket is None else int(create_input.days_ticket))
            if is_boleto(create_input.payment_method)
            else 1
        )

        with db.transaction():
            note_number = create_input.note_number or next_note_number(orders.internal_note_numbers(db))
            order = orders.insert(
                db,
                {
                    "customer_id": customer["id"],
                    "customer": customer["name"],
                    "phone": customer.get("phone") or customer.get("mobile_phone"),
                    "products": summarize_products(lines),
                    "amount": amount,
                    "note_number": note_number,
                    "document_type": create_input.document_type or "internal",
                    "payment_method": create_input.payment_method,
                    "payment_status": "Unpaid",
                    "days_ticket": days_ticket,
                    "total": total,
                    "freight": freight,
                    "total_payed": 0,
                    "delivery_status": "Entregar",
                    "appointment_date": appointment.isoformat(),
                    "appointment_hour": create_input.appointment_hour,
                    "appointment_local": create_input.appointment_local,
                    "issue_date": today.isoformat(),
                    "due_date": due_date.isoformat(),
                    "text_note": create_input.text_note,
                },
            )
            orders.insert_items(db, order["id"], lines)

        logger.info(
            "order_created",
            extra={"order_id": order["id"], "note_number": note_number, "total": total, "items": len(lines)},
        )
        return ServiceOutput(
            payload={
                "id": order["id"],
                "note_number": note_number,
                "total": total,
                "amount": amount,
                "due_date": due_date.isoformat(),
                "payment_status": "Unpaid",
                "delivery_status": "Entregar",
                "message": success_message("order_created"),
            },
            status_code=201,
        )

    @staticmethod
    def _overdue_items(orders: OrderRepository, db, customer_id: str, today: date) -> List[Dict[str, Any]]:
        return [
            {
                "order_id": row["order_id"],
                "note_number": row["note_number"],
                "due_date": row["due_date"],
                "total": row["total"],
                "payment_status": row["payment_status"],
            }
            for row in orders.overdue_boletos(db, customer_id, today.isoformat())
        ]

    @staticmethod
    def _resolve_lines(db, products: ProductRepository, create_input: OrderCreateInput) -> List[Dict[str, Any]]:
        catalog = products.get_many(db, [item.product_id for item in create_input.items])
        lines = []
        for item in create_input.items:
            product = catalog.get(item.product_id)
            if not product:
                raise NotFoundError(
                    code="product_not_found",
                    message_key="product_not_found",
                    payload={"product_id": item.product_id},
                )
            if item.quantity is None or float(item.quantity) <= 0:
                raise ValidationError(
                    code="validation_error",
                    message_key="validation_error",
                    payload={"field": "quantity", "product_id": item.product_id},
                )
            price = item.price if item.price is not None else product.get("standard_price") or 0
            lines.append(
                {
                    "product_id": product["id"],
                    "name": product["name"],
                    "quantity": float(item.quantity),
                    "price": float(price),
                }
            )
        return lines

    def overdue_for_customer(self, db, *, company_id: str, customer_id: str, today: date | None = None) -> ServiceOutput:
        if not CustomerRepository(company_id=company_id).get(db, customer_id):
            raise NotFoundError(code="customer_not_found", message_key="customer_not_found")
        items = self._overdue_items(OrderRepository(company_id=company_id), db, customer_id, today or date.today())
        return ServiceOutput(payload={"hasOverdue": bool(items), "items": items})

    def get_order(self, db, *, company_id: str, order_id: str) -> ServiceOutput:
        orders = OrderRepository(company_id=company_id)
        order = orders.get(db, order_id)
        if not order:
            raise NotFoundError(code="order_not_found", message_key="order_not_found")
        order["items"] = orders.list_items(db, order_id)
        return ServiceOutput(payload=order)

    def delete_order(self, db, *, company_id: str, order_id: str) -> ServiceOutput:
        orders = OrderRepository(company_id=company_id)
        if not orders.get(db, order_id):
            raise NotFoundError(code="order_not_found", message_key="order_not_found")
        with db.transaction():
            orders.delete_cascade(db, order_id)
        logger.info("order_deleted", extra={"order_id": order_id})
        return ServiceOutput(payload={"success": True})

    def register_payment(
        self,
        db,
        *,
        company_id: str,
        order_id: str,
        total_payed: float,
        payment_method: str | None = None,
    ) -> ServiceOutput:
        orders = OrderRepository(company_id=company_id)
        order = orders.get(db, order_id)
        if not order:
            raise NotFoundError(code="order_not_found", message_key="order_not_found")

        paid = round(float(order.get("total_payed") or 0) + float(total_payed), 2)
        status = "Paid" if paid >= float(order.get("total") or 0) else "Unpaid"
        values: Dict[str, Any] = {"total_payed": paid, "payment_status": status}
        if payment_method:
            values["payment_method"] = payment_method
        orders.update(db, order_id, values)
        db.commit()
        return ServiceOutput(payload={"success": True, "total_payed": paid, "payment_status": status})

    def generate_route(
        self,
        db,
        *,
        company_id: str,
        delivery_ids: List[str],
        driver_id: str,
        route_date: str,
        delivery_status: str,
    ) -> ServiceOutput:
        orders = OrderRepository(company_id=company_id)
        parse_iso_date(route_date, field="date")
        with db.transaction():
            route_number = orders.next_route_number(db, route_date)
            updated = orders.assign_route(
                db,
                delivery_ids,
                driver_id=driver_id,
                route_number=route_number,
                delivery_status=delivery_status,
            )
        return ServiceOutput(payload={"success": True, "routeNumber": route_number, "updated": updated})

    def reserved_stock(self, db, *, company_id: str, product_id: str, today: date | None = None) -> ServiceOutput:
        if not ProductRepository(company_id=company_id).get(db, product_id):
            raise NotFoundError(code="product_not_found", message_key="product_not_found")
        reserved = OrderRepository(company_id=company_id).reserved_quantity(
            db, product_id, (today or date.today()).isoformat()
        )
        return ServiceOutput(payload={"product_id": product_id, "reserved": reserved})
