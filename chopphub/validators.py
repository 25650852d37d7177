from __future__ import annotations

import re
from datetime import date, datetime

from chopphub.errors import ValidationError


_NON_DIGITS = re.compile(r"\D")


def only_digits(value: object) -> str:
    return _NON_DIGITS.sub("", str(value or ""))


def is_valid_cpf(value: object) -> bool:
    cpf = only_digits(value)
    if len(cpf) != 11 or cpf == cpf[0] * 11:
        return False

    total = sum(int(cpf[i]) * (10 - i) for i in range(9))
    first = (total * 10) % 11
    if first == 10:
        first = 0
    if first != int(cpf[9]):
        return False

    total = sum(int(cpf[i]) * (11 - i) for i in range(10))
    second = (total * 10) % 11
    if second == 10:
        second = 0
    return second == int(cpf[10])


def is_valid_cnpj(value: object) -> bool:
    cnpj = only_digits(value)
    if len(cnpj) != 14 or cnpj == cnpj[0] * 14:
        return False

    def _check_digit(digits: str, weights: list[int]) -> int:
        remainder = sum(int(d) * w for d, w in zip(digits, weights)) % 11
        return 0 if remainder < 2 else 11 - remainder

    first = _check_digit(cnpj[:12], [5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2])
    second = _check_digit(cnpj[:13], [6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2])
    return cnpj[12] == str(first) and cnpj[13] == str(second)


def is_valid_document(value: object) -> bool:
    digits = only_digits(value)
    if len(digits) == 11:
        return is_valid_cpf(digits)
    if len(digits) == 14:
        return is_valid_cnpj(digits)
    return False


def normalize_document(value: object, *, field: str = "document") -> str:
    digits = only_digits(value)
    if not is_valid_document(digits):
        raise ValidationError(
            code="invalid_document",
            message_key="invalid_document",
            payload={"field": field},
        )
    return digits


def normalize_phone_br(value: object) -> str | None:
    """Local phone digits (DDD + number); None when not a 10/11 digit number."""
    digits = only_digits(value)
    if not digits:
        return None
    if digits.startswith("55") and len(digits) in (12, 13):
        digits = digits[2:]
    if digits.startswith("0") and len(digits) in (11, 12):
        digits = digits[1:]
    if len(digits) in (10, 11):
        return digits
    return None


def normalize_cep(value: object) -> str | None:
    digits = only_digits(value)
    return digits if len(digits) == 8 else None


def parse_iso_date(value: object, *, field: str = "date") -> date:
    raw = str(value or "").strip()
    try:
        return datetime.strptime(raw[:10], "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(
            code="invalid_date",
            message_key="invalid_date",
            payload={"field": field},
        ) from None


def parse_money(value: object, *, field: str = "value", default: float | None = None) -> float:
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(code="field_required", message_key="field_required", payload={"field": field})
    try:
        return round(float(str(value).replace(",", ".")), 2)
    except ValueError:
        raise ValidationError(
            code="validation_error",
            message_key="validation_error",
            payload={"field": field},
        ) from None
