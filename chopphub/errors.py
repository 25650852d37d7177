from __future__ import annotations

from typing import Any, Dict

from chopphub.ui_strings import error_message


class AppError(Exception):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message_key = (message_key or code or self.default_message_key).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        fallback = error_message("unexpected_error", "Nao foi possivel concluir a operacao.")
        return error_message(self.message_key, fallback)

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.user_message(),
            "request_id": request_id,
        }
        if self.payload:
            payload.update(self.payload)
        return payload


class UserActionError(AppError):
    default_code = "action_invalid"
    default_message_key = "validation_error"
    default_http_status = 400
    default_critical = False


class ValidationError(UserActionError):
    default_code = "validation_error"
    default_message_key = "validation_error"
    default_http_status = 400


class NotFoundError(UserActionError):
    default_code = "not_found"
    default_message_key = "not_found"
    default_http_status = 404


class ConflictError(UserActionError):
    default_code = "conflict"
    default_message_key = "validation_error"
    default_http_status = 409


class AuthenticationError(UserActionError):
    default_code = "auth_required"
    default_message_key = "auth_required"
    default_http_status = 401


class PermissionError(UserActionError):
    default_code = "permission_denied"
    default_message_key = "permission_denied"
    default_http_status = 403


class IntegrationError(AppError):
    default_code = "provider_unavailable"
    default_message_key = "provider_unavailable"
    default_http_status = 502
    default_critical = False


class SystemError(AppError):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True


class ProviderError(RuntimeError):
    """Non-2xx answer or transport failure from a third-party API."""

    def __init__(
        self,
        provider: str,
        message: str,
        status: int | None = None,
        body: object | None = None,
    ) -> None:
        self.provider = provider
        self.status = status
        self.body = body
        self.message = message
        super().__init__(f"{provider} {status or 'erro'}: {message}")


def classify_provider_failure(exc: ProviderError) -> tuple[str, str, int]:
    status = exc.status or 0
    if 400 <= status < 500 and status not in {408, 429}:
        return ("provider_rejected", "provider_rejected", 422)
    return ("provider_unavailable", "provider_unavailable", 502)


def require_fields(payload: Dict[str, Any], *fields: str) -> None:
    for field in fields:
        value = payload.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(
                code="field_required",
                message_key="field_required",
                payload={"field": field},
                details=f"Campo obrigatorio ausente: {field}",
            )
