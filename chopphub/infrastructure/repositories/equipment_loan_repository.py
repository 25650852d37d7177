from __future__ import annotations

from typing import Any

from chopphub.db import new_id, utc_now_iso
from chopphub.infrastructure.repositories.base import BaseRepository


class EquipmentLoanRepository(BaseRepository):
    table = "equipment_loans"
    columns = (
        "customer_id",
        "customer_name",
        "equipment_id",
        "loan_date",
        "note_number",
        "note_date",
        "quantity",
        "returned_quantity",
        "status",
        "return_date",
        "condition_on_loan",
        "condition_on_return",
        "notes",
    )
    default_order = "loan_date DESC, created_at DESC"

    _SELECT = """
        SELECT l.*, e.name AS equipment_name, e.type AS equipment_type,
               (l.quantity - l.returned_quantity) AS remaining_quantity
        FROM equipment_loans l
        LEFT JOIN equipments e ON e.id = l.equipment_id
    """

    def list_loans(self, db, *, customer_id: str | None = None, status: str | None = None) -> list[dict]:
        clauses = ["l.company_id = ?"]
        params: list[Any] = [self.company_id]
        if customer_id:
            clauses.append("l.customer_id = ?")
            params.append(customer_id)
        if status:
            clauses.append("l.status = ?")
            params.append(status)
        rows = db.execute(
            f"{self._SELECT} WHERE {' AND '.join(clauses)} ORDER BY l.loan_date DESC, l.created_at DESC",
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def get_loan(self, db, loan_id: str) -> dict | None:
        row = db.execute(
            f"{self._SELECT} WHERE l.id = ? AND l.company_id = ?",
            (loan_id, self.company_id),
        ).fetchone()
        return dict(row) if row else None

    def apply_return(self, db, loan_id: str, quantity: int, *, return_date: str, condition: str | None) -> bool:
        """Add ``quantity`` to the returned amount only while it still fits.

        The guard lives in the WHERE clause so two concurrent returns can never
        push ``returned_quantity`` past ``quantity``.
        """
        cursor = db.execute(
            """
            UPDATE equipment_loans
            SET returned_quantity = returned_quantity + ?,
                status = CASE
                    WHEN returned_quantity + ? >= quantity THEN 'returned'
                    ELSE 'partially_returned'
                END,
                return_date = CASE
                    WHEN returned_quantity + ? >= quantity THEN ?
                    ELSE return_date
                END,
                condition_on_return = COALESCE(?, condition_on_return),
                updated_at = ?
            WHERE id = ?
              AND company_id = ?
              AND quantity - returned_quantity >= ?
            """,
            (
                quantity,
                quantity,
                quantity,
                return_date,
                condition,
                utc_now_iso(),
                loan_id,
                self.company_id,
                quantity,
            ),
        )
        return int(cursor.rowcount or 0) == 1

    def insert_return(
        self,
        db,
        *,
        loan_id: str | None,
        customer_id: str,
        equipment_id: str | None,
        quantity: int,
        return_date: str,
        condition: str | None,
        notes: str | None,
    ) -> str:
        return_id = new_id()
        db.execute(
            """
            INSERT INTO equipment_returns (
                id, company_id, loan_id, customer_id, equipment_id, quantity,
                return_date, condition, notes, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                return_id,
                self.company_id,
                loan_id,
                customer_id,
                equipment_id,
                quantity,
                return_date,
                condition,
                notes,
                utc_now_iso(),
            ),
        )
        return return_id

    def list_returns(self, db, *, customer_id: str | None = None) -> list[dict]:
        clauses = ["r.company_id = ?"]
        params: list[Any] = [self.company_id]
        if customer_id:
            clauses.append("r.customer_id = ?")
            params.append(customer_id)
        rows = db.execute(
            f"""
            SELECT r.*, e.name AS equipment_name
            FROM equipment_returns r
            LEFT JOIN equipments e ON e.id = r.equipment_id
            WHERE {' AND '.join(clauses)}
            ORDER BY r.return_date DESC, r.created_at DESC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)
