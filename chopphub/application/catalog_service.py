from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Tuple, Type

from chopphub.db import INTEGRITY_ERRORS
from chopphub.domain.contracts import ServiceOutput
from chopphub.errors import ConflictError, NotFoundError, require_fields
from chopphub.infrastructure.repositories.base import BaseRepository
from chopphub.infrastructure.repositories.catalog_repository import (
    CustomerRepository,
    EquipmentRepository,
    ProductRepository,
    SupplierRepository,
)
from chopphub.infrastructure.repositories.settings_repository import FiscalOperationRepository
from chopphub.ui_strings import success_message
from chopphub.validators import normalize_cep, normalize_document, parse_money


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogResource:
    name: str
    repository: Type[BaseRepository]
    required: Tuple[str, ...]
    has_document: bool = False
    money_fields: Tuple[str, ...] = ()


RESOURCES: Dict[str, CatalogResource] = {
    "customers": CatalogResource("customers", CustomerRepository, ("name", "document"), has_document=True),
    "suppliers": CatalogResource("suppliers", SupplierRepository, ("name", "document"), has_document=True),
    "products": CatalogResource(
        "products", ProductRepository, ("name", "code"), money_fields=("standard_price", "stock")
    ),
    "equipments": CatalogResource("equipments", EquipmentRepository, ("name", "type"), money_fields=("value",)),
    "fiscal-operations": CatalogResource(
        "fiscal-operations",
        FiscalOperationRepository,
        ("name", "natureza_operacao", "cfop"),
        money_fields=("aliquota_pis", "aliquota_cofins"),
    ),
}


class CatalogService:
    """Tenant-scoped CRUD for the master data tables."""

    def _resource(self, resource: str) -> CatalogResource:
        definition = RESOURCES.get(resource)
        if definition is None:
            raise NotFoundError()
        return definition

    def _clean(self, definition: CatalogResource, payload: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
        values = {key: value for key, value in payload.items() if key not in {"id", "company_id"}}
        if not partial:
            require_fields(values, *definition.required)
        else:
            present = {field: values[field] for field in definition.required if field in values}
            require_fields(present, *present.keys())
        if definition.has_document and "document" in values:
            values["document"] = normalize_document(values["document"])
        if "zip_code" in values and values["zip_code"]:
            values["zip_code"] = normalize_cep(values["zip_code"]) or values["zip_code"]
        for field in definition.money_fields:
            if field in values:
                values[field] = parse_money(values[field], field=field, default=0.0)
        return values

    def list(self, db, *, company_id: str, resource: str, search: str | None = None) -> ServiceOutput:
        definition = self._resource(resource)
        return ServiceOutput(payload={"items": definition.repository(company_id=company_id).list(db, search=search)})

    def get(self, db, *, company_id: str, resource: str, record_id: str) -> ServiceOutput:
        definition = self._resource(resource)
        record = definition.repository(company_id=company_id).get(db, record_id)
        if not record:
            raise NotFoundError()
        return ServiceOutput(payload=record)

    def create(self, db, *, company_id: str, resource: str, payload: Dict[str, Any]) -> ServiceOutput:
        definition = self._resource(resource)
        record = definition.repository(company_id=company_id).insert(db, self._clean(definition, payload, partial=False))
        logger.info("catalog_record_created", extra={"resource": resource, "record_id": record["id"]})
        return ServiceOutput(payload={**record, "message": success_message("saved")}, status_code=201)

    def update(self, db, *, company_id: str, resource: str, record_id: str, payload: Dict[str, Any]) -> ServiceOutput:
        definition = self._resource(resource)
        repository = definition.repository(company_id=company_id)
        if not repository.update(db, record_id, self._clean(definition, payload, partial=True)):
            raise NotFoundError()
        return ServiceOutput(payload={**repository.get(db, record_id), "message": success_message("saved")})

    def delete(self, db, *, company_id: str, resource: str, record_id: str) -> ServiceOutput:
        definition = self._resource(resource)
        try:
            deleted = definition.repository(company_id=company_id).delete(db, record_id)
            db.commit()
        except INTEGRITY_ERRORS:
            db.rollback()
            raise ConflictError(code="record_in_use", message_key="record_in_use") from None
        if not deleted:
            raise NotFoundError()
        logger.info("catalog_record_deleted", extra={"resource": resource, "record_id": record_id})
        return ServiceOutput(payload={"success": True, "message": success_message("deleted")})
