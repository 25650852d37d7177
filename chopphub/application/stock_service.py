from __future__ import annotations

import logging

from chopphub.domain.contracts import ServiceOutput, StockMovementInput
from chopphub.errors import NotFoundError, ValidationError
from chopphub.infrastructure.repositories.catalog_repository import ProductRepository
from chopphub.infrastructure.repositories.invoice_repository import StockMovementRepository


logger = logging.getLogger(__name__)

MOVEMENT_TYPES = {"input", "output", "return", "adjustment"}


def stock_delta(movement_type: str, quantity: float) -> float:
    # adjustment carries its own sign
    if movement_type == "output":
        return -abs(quantity)
    if movement_type == "adjustment":
        return quantity
    return abs(quantity)


class StockService:
    def register_movement(self, db, *, company_id: str, movement_input: StockMovementInput) -> ServiceOutput:
        if movement_input.movement_type not in MOVEMENT_TYPES:
            raise ValidationError(code="validation_error", payload={"field": "type"})
        try:
            quantity = float(movement_input.quantity)
        except (TypeError, ValueError):
            raise ValidationError(code="validation_error", payload={"field": "quantity"}) from None
        if quantity == 0 or (movement_input.movement_type != "adjustment" and quantity < 0):
            raise ValidationError(code="validation_error", payload={"field": "quantity"})

        products = ProductRepository(company_id=company_id)
        if not products.get(db, movement_input.product_id):
            raise NotFoundError(code="product_not_found", message_key="product_not_found")

        delta = stock_delta(movement_input.movement_type, quantity)
        with db.transaction():
            movement = StockMovementRepository(company_id=company_id).insert(
                db,
                {
                    "product_id": movement_input.product_id,
                    "type": movement_input.movement_type,
                    "quantity": quantity,
                    "reason": movement_input.reason,
                    "note_id": movement_input.note_id,
                    "created_by": movement_input.created_by,
                },
            )
            products.adjust_stock(db, movement_input.product_id, delta)

        stock = products.get(db, movement_input.product_id)["stock"]
        logger.info(
            "stock_movement_registered",
            extra={"product_id": movement_input.product_id, "movement_type": movement_input.movement_type, "delta": delta},
        )
        return ServiceOutput(payload={"success": True, "id": movement["id"], "stock": stock}, status_code=201)

    def list_movements(self, db, *, company_id: str, product_id: str | None = None) -> ServiceOutput:
        items = StockMovementRepository(company_id=company_id).list(
            db, filters={"product_id": product_id}, limit=500
        )
        return ServiceOutput(payload={"items": items})
