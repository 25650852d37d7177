from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(frozen=True)
class ServiceOutput:
    payload: Dict[str, Any]
    status_code: int = 200


@dataclass(frozen=True)
class AuthLoginInput:
    email: str
    password: str


@dataclass(frozen=True)
class AuthRegisterInput:
    email: str
    password: str
    display_name: str | None
    company_name: str | None


@dataclass(frozen=True)
class AuthUser:
    user_id: str
    email: str
    display_name: str
    company_id: str
    role: str = "member"


@dataclass(frozen=True)
class OrderItemInput:
    product_id: str
    quantity: float
    price: float | None = None


@dataclass(frozen=True)
class OrderCreateInput:
    customer_id: str
    items: List[OrderItemInput]
    payment_method: str
    appointment_date: str
    appointment_hour: str | None = None
    appointment_local: str | None = None
    freight: float = 0.0
    days_ticket: int | None = None
    document_type: str = "internal"
    note_number: str | None = None
    text_note: str | None = None
    total: float | None = None
    override_overdue: bool = False


@dataclass(frozen=True)
class LoanItemInput:
    equipment_id: str
    quantity: int


@dataclass(frozen=True)
class LoanCreateInput:
    customer_id: str
    items: List[LoanItemInput]
    note_number: str | None = None
    note_date: str | None = None
    loan_date: str | None = None
    condition: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ReturnItemInput:
    loan_id: str
    quantity: int


@dataclass(frozen=True)
class LoanReturnInput:
    customer_id: str
    items: List[ReturnItemInput]
    return_date: str | None = None
    condition: str | None = None
    notes: str | None = None
    close_without_collection: bool = False


@dataclass(frozen=True)
class AsaasPaymentInput:
    customer_id: str
    value: float
    due_date: str
    description: str | None = None
    postal_service: bool = False
    discount_value: float | None = None
    discount_due_date_limit_days: int | None = None
    fine_percent: float | None = None
    interest_percent_month: float | None = None
    order_id: str | None = None


@dataclass(frozen=True)
class NfeCreateInput:
    order_id: str
    operation_id: str | None = None
    invoice_data: Dict[str, Any] | None = None
    ref: str | None = None


@dataclass(frozen=True)
class NfeEmailInput:
    ref: str
    to_email: str
    subject: str | None = None
    body: str | None = None


@dataclass(frozen=True)
class StockMovementInput:
    product_id: str
    movement_type: str
    quantity: float
    reason: str | None = None
    note_id: str | None = None
    created_by: str | None = None


@dataclass(frozen=True)
class IntegrationInput:
    provider: str
    access_token: str
    env: str | None = None
