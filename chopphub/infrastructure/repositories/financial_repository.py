from __future__ import annotations

from typing import Any, Dict

from chopphub.infrastructure.repositories.base import BaseRepository


class FinancialRecordRepository(BaseRepository):
    table = "financial_records"
    columns = (
        "type",
        "issue_date",
        "due_date",
        "supplier",
        "supplier_id",
        "description",
        "category",
        "amount",
        "total_payed",
        "status",
        "payment_method",
        "invoice_number",
        "notes",
        "bank_account_id",
    )
    search_columns = ("supplier", "description", "invoice_number")
    default_order = "due_date ASC, created_at DESC"

    def list_records(
        self,
        db,
        *,
        status: str | None = None,
        record_type: str | None = None,
        month: str | None = None,
        supplier_id: str | None = None,
        search: str | None = None,
    ) -> list[dict]:
        clauses = ["company_id = ?"]
        params: list[Any] = [self.company_id]
        if status:
            clauses.append("status = ?")
            params.append(status)
        if record_type:
            clauses.append("type = ?")
            params.append(record_type)
        if month:
            clauses.append("due_date LIKE ?")
            params.append(f"{month}%")
        if supplier_id:
            clauses.append("supplier_id = ?")
            params.append(supplier_id)
        term = str(search or "").strip().lower()
        if term:
            clauses.append(
                "(LOWER(COALESCE(supplier, '')) LIKE ? OR LOWER(COALESCE(description, '')) LIKE ?)"
            )
            params.extend([f"%{term}%", f"%{term}%"])
        rows = db.execute(
            f"SELECT * FROM financial_records WHERE {' AND '.join(clauses)} ORDER BY {self.default_order}",
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def summary(self, db, *, month: str | None = None) -> list[dict]:
        clauses = ["company_id = ?"]
        params: list[Any] = [self.company_id]
        if month:
            clauses.append("due_date LIKE ?")
            params.append(f"{month}%")
        rows = db.execute(
            f"""
            SELECT type, status, COUNT(*) AS records,
                   COALESCE(SUM(amount), 0) AS amount,
                   COALESCE(SUM(total_payed), 0) AS total_payed
            FROM financial_records
            WHERE {' AND '.join(clauses)}
            GROUP BY type, status
            ORDER BY type, status
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def update_by_invoice_number(self, db, invoice_number: str, values: Dict[str, Any]) -> int:
        data = self._writable(values)
        assignments = ", ".join(f"{name} = ?" for name in data)
        cursor = db.execute(
            f"UPDATE financial_records SET {assignments} WHERE company_id = ? AND invoice_number = ?",
            (*data.values(), self.company_id, invoice_number),
        )
        return int(cursor.rowcount or 0)
