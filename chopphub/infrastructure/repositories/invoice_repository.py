from __future__ import annotations

from typing import Any, Dict

from chopphub.infrastructure.repositories.base import BaseRepository


class InvoiceRepository(BaseRepository):
    table = "invoices"
    columns = (
        "order_id",
        "ref",
        "status",
        "numero",
        "serie",
        "chave_nfe",
        "xml_url",
        "danfe_url",
        "data_emissao",
        "natureza_operacao",
        "note_number",
        "customer_name",
        "valor_total",
        "mensagem_sefaz",
    )
    search_columns = ("ref", "customer_name", "note_number", "numero")

    def get_by_ref(self, db, ref: str) -> dict | None:
        row = db.execute(
            "SELECT * FROM invoices WHERE company_id = ? AND ref = ?",
            (self.company_id, ref),
        ).fetchone()
        return dict(row) if row else None

    def update_by_ref(self, db, ref: str, values: Dict[str, Any]) -> bool:
        invoice = self.get_by_ref(db, ref)
        if not invoice:
            return False
        return self.update(db, invoice["id"], values)


class StockMovementRepository(BaseRepository):
    table = "stock_movements"
    columns = ("product_id", "type", "quantity", "reason", "note_id", "created_by")
    has_updated_at = False
