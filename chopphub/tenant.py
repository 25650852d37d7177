from flask import current_app, g, request, session

from chopphub.errors import AuthenticationError


def normalize_company_id(value: str | None) -> str | None:
    company_id = str(value or "").strip()
    return company_id or None


def resolve_company_id() -> str | None:
    """Company of the current request: session first, header only without auth."""
    company_id = normalize_company_id(session.get("company_id"))
    if company_id:
        return company_id
    if not current_app.config.get("AUTH_ENABLED", True):
        return normalize_company_id(request.headers.get("X-Company-Id"))
    return None


def current_company_id() -> str:
    company_id = normalize_company_id(getattr(g, "company_id", None))
    if not company_id:
        raise AuthenticationError(code="company_required", message_key="company_required", http_status=401)
    return company_id
