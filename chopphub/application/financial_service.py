from __future__ import annotations

import logging
from typing import Any, Dict

from chopphub.domain.contracts import ServiceOutput
from chopphub.errors import NotFoundError, ValidationError, require_fields
from chopphub.infrastructure.repositories.financial_repository import FinancialRecordRepository
from chopphub.ui_strings import payment_status_label, success_message
from chopphub.validators import parse_iso_date, parse_money


logger = logging.getLogger(__name__)

RECORD_TYPES = {"input", "output"}
RECORD_STATUSES = {"Paid", "Unpaid"}


def _empty_totals() -> Dict[str, Any]:
    return {"records": 0, "amount": 0.0, "total_payed": 0.0}


class FinancialService:
    def __init__(self, repository_factory=FinancialRecordRepository) -> None:
        self.repository_factory = repository_factory

    def _repository(self, company_id: str) -> FinancialRecordRepository:
        return self.repository_factory(company_id=company_id)

    def _clean(self, payload: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
        if not partial:
            require_fields(payload, "type", "issue_date", "due_date", "supplier", "amount")
        values = dict(payload)
        if "type" in values and values["type"] not in RECORD_TYPES:
            raise ValidationError(code="validation_error", payload={"field": "type"})
        if "status" in values and values["status"] not in RECORD_STATUSES:
            raise ValidationError(code="validation_error", payload={"field": "status"})
        for field in ("issue_date", "due_date"):
            if values.get(field):
                values[field] = parse_iso_date(values[field], field=field).isoformat()
        if "amount" in values:
            values["amount"] = parse_money(values["amount"], field="amount")
        if "total_payed" in values:
            values["total_payed"] = parse_money(values["total_payed"], field="total_payed", default=0.0)
        return values

    def list_records(self, db, *, company_id: str, filters: Dict[str, Any]) -> ServiceOutput:
        items = self._repository(company_id).list_records(
            db,
            status=filters.get("status"),
            record_type=filters.get("type"),
            month=filters.get("month"),
            supplier_id=filters.get("supplier_id"),
            search=filters.get("q"),
        )
        for item in items:
            item["status_label"] = payment_status_label(item.get("status"))
        return ServiceOutput(payload={"items": items})

    def get_record(self, db, *, company_id: str, record_id: str) -> ServiceOutput:
        record = self._repository(company_id).get(db, record_id)
        if not record:
            raise NotFoundError()
        return ServiceOutput(payload=record)

    def create_record(self, db, *, company_id: str, payload: Dict[str, Any]) -> ServiceOutput:
        values = self._clean(payload, partial=False)
        values.setdefault("status", "Unpaid")
        values.setdefault("total_payed", 0.0)
        record = self._repository(company_id).insert(db, values)
        logger.info("financial_record_created", extra={"record_id": record["id"], "record_type": record["type"]})
        return ServiceOutput(payload={**record, "message": success_message("saved")}, status_code=201)

    def update_record(self, db, *, company_id: str, record_id: str, payload: Dict[str, Any]) -> ServiceOutput:
        repository = self._repository(company_id)
        if not repository.update(db, record_id, self._clean(payload, partial=True)):
            raise NotFoundError()
        return ServiceOutput(payload={**repository.get(db, record_id), "message": success_message("saved")})

    def delete_record(self, db, *, company_id: str, record_id: str) -> ServiceOutput:
        if not self._repository(company_id).delete(db, record_id):
            raise NotFoundError()
        return ServiceOutput(payload={"success": True, "message": success_message("deleted")})

    def mark_paid(self, db, *, company_id: str, record_id: str, payment_method: str) -> ServiceOutput:
        repository = self._repository(company_id)
        record = repository.get(db, record_id)
        if not record:
            raise NotFoundError()
        repository.update(
            db,
            record_id,
            {"status": "Paid", "payment_method": payment_method, "total_payed": record["amount"]},
        )
        logger.info("financial_record_paid", extra={"record_id": record_id, "payment_method": payment_method})
        return ServiceOutput(payload={"success": True, "status": "Paid", "total_payed": record["amount"]})

    def summary(self, db, *, company_id: str, month: str | None = None) -> ServiceOutput:
        totals = {
            record_type: {status: _empty_totals() for status in sorted(RECORD_STATUSES)}
            for record_type in sorted(RECORD_TYPES)
        }
        for row in self._repository(company_id).summary(db, month=month):
            bucket = totals.get(row["type"], {}).get(row["status"])
            if bucket is None:
                continue
            bucket["records"] = int(row["records"] or 0)
            bucket["amount"] = round(float(row["amount"] or 0), 2)
            bucket["total_payed"] = round(float(row["total_payed"] or 0), 2)

        receivable = totals["input"]
        payable = totals["output"]
        return ServiceOutput(
            payload={
                "month": month,
                "totals": totals,
                "to_receive": receivable["Unpaid"]["amount"],
                "received": receivable["Paid"]["total_payed"],
                "to_pay": payable["Unpaid"]["amount"],
                "paid": payable["Paid"]["total_payed"],
            }
        )
