from __future__ import annotations

from chopphub.infrastructure.repositories.base import BaseRepository


ADDRESS_COLUMNS = (
    "address",
    "number",
    "complement",
    "neighborhood",
    "city",
    "state",
    "zip_code",
)


class CustomerRepository(BaseRepository):
    table = "customers"
    columns = (
        "name",
        "fantasy_name",
        "type",
        "document",
        "state_registration",
        "email",
        "phone",
        "mobile_phone",
        *ADDRESS_COLUMNS,
        "emit_nf",
        "price_table_id",
        "asaas_customer_id",
    )
    boolean_columns = ("emit_nf",)
    search_columns = ("name", "fantasy_name", "document")
    default_order = "name ASC"

    def set_asaas_customer_id(self, db, customer_id: str, asaas_customer_id: str) -> None:
        db.execute(
            "UPDATE customers SET asaas_customer_id = ? WHERE id = ? AND company_id = ?",
            (asaas_customer_id, customer_id, self.company_id),
        )


class SupplierRepository(BaseRepository):
    table = "suppliers"
    columns = (
        "name",
        "fantasy_name",
        "type",
        "document",
        "state_registration",
        "email",
        "phone",
        *ADDRESS_COLUMNS,
    )
    search_columns = ("name", "fantasy_name", "document")
    default_order = "name ASC"


class ProductRepository(BaseRepository):
    table = "products"
    columns = (
        "code",
        "name",
        "description",
        "unit",
        "ncm",
        "cest",
        "standard_price",
        "stock",
        "manufacturer",
        "material_class",
        "material_origin",
        "loan_product_code",
    )
    search_columns = ("name", "code")
    default_order = "name ASC"

    def get_many(self, db, product_ids: list[str]) -> dict[str, dict]:
        if not product_ids:
            return {}
        placeholders = ", ".join("?" for _ in product_ids)
        rows = db.execute(
            f"SELECT * FROM products WHERE id IN ({placeholders}) AND company_id = ?",
            (*product_ids, self.company_id),
        ).fetchall()
        return {row["id"]: dict(row) for row in rows}

    def adjust_stock(self, db, product_id: str, delta: float) -> bool:
        cursor = db.execute(
            "UPDATE products SET stock = stock + ? WHERE id = ? AND company_id = ?",
            (delta, product_id, self.company_id),
        )
        return int(cursor.rowcount or 0) > 0


class EquipmentRepository(BaseRepository):
    table = "equipments"
    columns = (
        "code",
        "name",
        "type",
        "description",
        "value",
        "stock",
        "status",
        "is_available",
    )
    boolean_columns = ("is_available",)
    search_columns = ("name", "code", "type")
    default_order = "name ASC"
