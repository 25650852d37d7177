from __future__ import annotations

from typing import Any, Dict, Iterable

from chopphub.db import new_id
from chopphub.infrastructure.repositories.base import BaseRepository


class OrderRepository(BaseRepository):
    table = "orders"
    columns = (
        "customer_id",
        "customer",
        "phone",
        "products",
        "amount",
        "note_number",
        "document_type",
        "payment_method",
        "payment_status",
        "days_ticket",
        "total",
        "freight",
        "total_payed",
        "delivery_status",
        "appointment_date",
        "appointment_hour",
        "appointment_local",
        "issue_date",
        "due_date",
        "text_note",
        "driver_id",
        "route_number",
        "boleto_id",
        "boleto_url",
        "boleto_barcode_number",
        "boleto_digitable_line",
        "boleto_expiration_date",
    )
    default_order = "appointment_date DESC, created_at DESC"

    def list_orders(
        self,
        db,
        *,
        payment_status: str | None = None,
        customer_id: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> list[dict]:
        clauses = ["company_id = ?"]
        params: list[Any] = [self.company_id]
        if payment_status:
            clauses.append("payment_status = ?")
            params.append(payment_status)
        if customer_id:
            clauses.append("customer_id = ?")
            params.append(customer_id)
        if date_from:
            clauses.append("appointment_date >= ?")
            params.append(date_from)
        if date_to:
            clauses.append("appointment_date <= ?")
            params.append(date_to)
        rows = db.execute(
            f"SELECT * FROM orders WHERE {' AND '.join(clauses)} ORDER BY {self.default_order}",
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def insert_items(self, db, order_id: str, items: Iterable[Dict[str, Any]]) -> None:
        for item in items:
            db.execute(
                """
                INSERT INTO order_items (id, company_id, order_id, product_id, quantity, price)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (new_id(), self.company_id, order_id, item["product_id"], item["quantity"], item["price"]),
            )

    def list_items(self, db, order_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT oi.id, oi.order_id, oi.product_id, oi.quantity, oi.price,
                   p.name, p.code, p.ncm, p.unit, p.standard_price
            FROM order_items oi
            LEFT JOIN products p ON p.id = oi.product_id
            WHERE oi.order_id = ? AND oi.company_id = ?
            ORDER BY p.name ASC
            """,
            (order_id, self.company_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def internal_note_numbers(self, db) -> list[str]:
        rows = db.execute(
            "SELECT note_number FROM orders WHERE company_id = ? AND document_type = 'internal'",
            (self.company_id,),
        ).fetchall()
        return [row["note_number"] for row in rows]

    def overdue_boletos(self, db, customer_id: str, today: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT id AS order_id, note_number, due_date, total, total_payed, payment_status
            FROM orders
            WHERE company_id = ?
              AND customer_id = ?
              AND LOWER(COALESCE(payment_method, '')) = 'boleto'
              AND payment_status <> 'Paid'
              AND due_date IS NOT NULL
              AND due_date < ?
            ORDER BY due_date ASC
            """,
            (self.company_id, customer_id, today),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def delete_cascade(self, db, order_id: str) -> bool:
        db.execute(
            "DELETE FROM order_items WHERE order_id = ? AND company_id = ?",
            (order_id, self.company_id),
        )
        db.execute(
            "DELETE FROM invoices WHERE order_id = ? AND company_id = ?",
            (order_id, self.company_id),
        )
        return self.delete(db, order_id)

    def next_route_number(self, db, appointment_date: str) -> int:
        row = db.execute(
            "SELECT MAX(route_number) AS last_route FROM orders WHERE company_id = ? AND appointment_date = ?",
            (self.company_id, appointment_date),
        ).fetchone()
        last_route = row["last_route"] if row else None
        return int(last_route or 0) + 1

    def assign_route(
        self,
        db,
        order_ids: list[str],
        *,
        driver_id: str,
        route_number: int,
        delivery_status: str,
    ) -> int:
        placeholders = ", ".join("?" for _ in order_ids)
        cursor = db.execute(
            f"""
            UPDATE orders
            SET driver_id = ?, route_number = ?, delivery_status = ?
            WHERE company_id = ? AND id IN ({placeholders})
            """,
            (driver_id, route_number, delivery_status, self.company_id, *order_ids),
        )
        return int(cursor.rowcount or 0)

    def reserved_quantity(self, db, product_id: str, today: str) -> float:
        row = db.execute(
            """
            SELECT COALESCE(SUM(oi.quantity), 0) AS reserved
            FROM order_items oi
            JOIN orders o ON o.id = oi.order_id
            WHERE oi.product_id = ?
              AND o.company_id = ?
              AND o.appointment_date > ?
            """,
            (product_id, self.company_id, today),
        ).fetchone()
        return float(row["reserved"] or 0) if row else 0.0

    def update_payment_by_boleto(self, db, boleto_id: str, values: Dict[str, Any]) -> int:
        data = self._writable(values)
        assignments = ", ".join(f"{name} = ?" for name in data)
        cursor = db.execute(
            f"UPDATE orders SET {assignments} WHERE company_id = ? AND boleto_id = ?",
            (*data.values(), self.company_id, boleto_id),
        )
        return int(cursor.rowcount or 0)


def find_order_company(db, order_id: str) -> str | None:
    """Unscoped lookup used by provider callbacks that only know the order id."""
    row = db.execute("SELECT company_id FROM orders WHERE id = ?", (order_id,)).fetchone()
    return row["company_id"] if row else None
