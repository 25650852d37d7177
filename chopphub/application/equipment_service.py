from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import date

from chopphub.domain.contracts import LoanCreateInput, LoanReturnInput, ServiceOutput
from chopphub.errors import ConflictError, NotFoundError, ValidationError
from chopphub.infrastructure.repositories.catalog_repository import CustomerRepository, EquipmentRepository
from chopphub.infrastructure.repositories.equipment_loan_repository import EquipmentLoanRepository
from chopphub.ui_strings import LOAN_STATUS_LABELS, success_message
from chopphub.validators import parse_iso_date


logger = logging.getLogger(__name__)


class EquipmentService:
    """Equipment loans (comodato) and their returns."""

    def register_loan(
        self,
        db,
        *,
        company_id: str,
        create_input: LoanCreateInput,
        today: date | None = None,
    ) -> ServiceOutput:
        customer = CustomerRepository(company_id=company_id).get(db, create_input.customer_id)
        if not customer:
            raise NotFoundError(code="customer_not_found", message_key="customer_not_found")
        if not create_input.items:
            raise ValidationError(code="items_required", message_key="items_required")

        equipments = EquipmentRepository(company_id=company_id)
        loans = EquipmentLoanRepository(company_id=company_id)
        loan_date = (
            parse_iso_date(create_input.loan_date, field="loan_date")
            if create_input.loan_date
            else today or date.today()
        ).isoformat()
        note_date = (
            parse_iso_date(create_input.note_date, field="note_date").isoformat()
            if create_input.note_date
            else None
        )

        created = []
        with db.transaction():
            for item in create_input.items:
                quantity = int(item.quantity or 0)
                if quantity <= 0:
                    raise ValidationError(
                        code="validation_error",
                        message_key="validation_error",
                        payload={"field": "quantity", "equipment_id": item.equipment_id},
                    )
                if not equipments.get(db, item.equipment_id):
                    raise NotFoundError(
                        code="not_found",
                        message_key="not_found",
                        payload={"equipment_id": item.equipment_id},
                    )
                loan = loans.insert(
                    db,
                    {
                        "customer_id": customer["id"],
                        "customer_name": customer["name"],
                        "equipment_id": item.equipment_id,
                        "loan_date": loan_date,
                        "note_number": create_input.note_number,
                        "note_date": note_date,
                        "quantity": quantity,
                        "returned_quantity": 0,
                        "status": "active",
                        "condition_on_loan": create_input.condition,
                        "notes": create_input.notes,
                    },
                )
                created.append(loan["id"])

        logger.info("loan_registered", extra={"customer_id": customer["id"], "loans": len(created)})
        return ServiceOutput(
            payload={"success": True, "ids": created, "message": success_message("loan_registered")},
            status_code=201,
        )

    def register_return(
        self,
        db,
        *,
        company_id: str,
        return_input: LoanReturnInput,
        today: date | None = None,
    ) -> ServiceOutput:
        if not CustomerRepository(company_id=company_id).get(db, return_input.customer_id):
            raise NotFoundError(code="customer_not_found", message_key="customer_not_found")

        loans = EquipmentLoanRepository(company_id=company_id)
        return_date = (
            parse_iso_date(return_input.return_date, field="return_date")
            if return_input.return_date
            else today or date.today()
        ).isoformat()

        if return_input.close_without_collection:
            loans.insert_return(
                db,
                loan_id=None,
                customer_id=return_input.customer_id,
                equipment_id=None,
                quantity=0,
                return_date=return_date,
                condition=return_input.condition,
                notes=return_input.notes or "Nenhum item coletado",
            )
            db.commit()
            return ServiceOutput(
                payload={"success": True, "message": success_message("return_without_collection")},
                status_code=201,
            )

        if not return_input.items:
            raise ValidationError(code="items_required", message_key="items_required")

        with db.transaction():
            for item in return_input.items:
                quantity = int(item.quantity or 0)
                loan = loans.get_loan(db, item.loan_id)
                if not loan or loan["customer_id"] != return_input.customer_id:
                    raise NotFoundError(
                        code="loan_not_found",
                        message_key="loan_not_found",
                        payload={"loan_id": item.loan_id},
                    )
                if quantity <= 0:
                    raise ValidationError(
                        code="validation_error",
                        message_key="validation_error",
                        payload={"field": "quantity", "loan_id": item.loan_id},
                    )
                applied = loans.apply_return(
                    db,
                    item.loan_id,
                    quantity,
                    return_date=return_date,
                    condition=return_input.condition,
                )
                if not applied:
                    raise ConflictError(
                        code="return_exceeds_remaining",
                        message_key="return_exceeds_remaining",
                        payload={"loan_id": item.loan_id, "remaining_quantity": loan["remaining_quantity"]},
                    )
                loans.insert_return(
                    db,
                    loan_id=item.loan_id,
                    customer_id=return_input.customer_id,
                    equipment_id=loan["equipment_id"],
                    quantity=quantity,
                    return_date=return_date,
                    condition=return_input.condition,
                    notes=return_input.notes,
                )

        logger.info(
            "loan_return_registered",
            extra={"customer_id": return_input.customer_id, "items": len(return_input.items)},
        )
        return ServiceOutput(
            payload={"success": True, "message": success_message("return_registered")},
            status_code=201,
        )

    def list_loans(
        self,
        db,
        *,
        company_id: str,
        customer_id: str | None = None,
        status: str | None = None,
    ) -> ServiceOutput:
        items = EquipmentLoanRepository(company_id=company_id).list_loans(
            db, customer_id=customer_id, status=status
        )
        for item in items:
            item["status_label"] = LOAN_STATUS_LABELS.get(item.get("status") or "", "-")
        return ServiceOutput(payload={"items": items})

    def customer_history(self, db, *, company_id: str, customer_id: str) -> ServiceOutput:
        """Loans grouped by note number plus the return log for one customer."""
        repository = EquipmentLoanRepository(company_id=company_id)
        groups: "OrderedDict[str, dict]" = OrderedDict()
        for loan in repository.list_loans(db, customer_id=customer_id):
            key = loan.get("note_number") or loan["id"]
            group = groups.setdefault(
                key,
                {
                    "note_number": loan.get("note_number"),
                    "loan_date": loan.get("loan_date"),
                    "items": [],
                    "open_quantity": 0,
                },
            )
            group["items"].append(loan)
            group["open_quantity"] += int(loan.get("remaining_quantity") or 0)
        return ServiceOutput(
            payload={
                "loans": list(groups.values()),
                "returns": repository.list_returns(db, customer_id=customer_id),
            }
        )
