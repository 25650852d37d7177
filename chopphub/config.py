import os


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "database")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "chopphub.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", False)

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-chopphub")
    AUTH_ENABLED = _bool_env("AUTH_ENABLED", True)
    PASSWORD_RESET_TTL_MINUTES = _int_env("PASSWORD_RESET_TTL_MINUTES", 60)
    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")

    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    RATE_LIMIT_ENABLED = _bool_env("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_WINDOW_SECONDS = _int_env("RATE_LIMIT_WINDOW_SECONDS", 60)
    RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 300)
    SECURITY_HEADERS_ENABLED = _bool_env("SECURITY_HEADERS_ENABLED", True)

    PROVIDER_TIMEOUT_SECONDS = _int_env("PROVIDER_TIMEOUT_SECONDS", 20)
    PROVIDER_VERIFY_SSL = _bool_env("PROVIDER_VERIFY_SSL", True)
    PROVIDER_RETRY_ATTEMPTS = _int_env("PROVIDER_RETRY_ATTEMPTS", 2)
    PROVIDER_RETRY_BACKOFF_MS = _int_env("PROVIDER_RETRY_BACKOFF_MS", 300)

    ASAAS_SANDBOX_URL = os.environ.get("ASAAS_SANDBOX_URL", "https://api-sandbox.asaas.com/v3")
    ASAAS_PRODUCTION_URL = os.environ.get("ASAAS_PRODUCTION_URL", "https://api.asaas.com/v3")

    MERCADO_PAGO_BASE_URL = os.environ.get("MERCADO_PAGO_BASE_URL", "https://api.mercadopago.com")
    MERCADO_PAGO_ACCESS_TOKEN = os.environ.get("MERCADO_PAGO_ACCESS_TOKEN")

    FOCUS_NFE_HOMOLOGACAO_URL = os.environ.get(
        "FOCUS_NFE_HOMOLOGACAO_URL", "https://homologacao.focusnfe.com.br/v2"
    )
    FOCUS_NFE_PRODUCAO_URL = os.environ.get("FOCUS_NFE_PRODUCAO_URL", "https://api.focusnfe.com.br/v2")
    NFE_POLL_ATTEMPTS = _int_env("NFE_POLL_ATTEMPTS", 6)
    NFE_POLL_INTERVAL_MS = _int_env("NFE_POLL_INTERVAL_MS", 2000)

    SENDGRID_BASE_URL = os.environ.get("SENDGRID_BASE_URL", "https://api.sendgrid.com/v3")
    SENDGRID_API_KEY = os.environ.get("SENDGRID_API_KEY")
    SENDGRID_SENDER_EMAIL = os.environ.get("SENDGRID_SENDER_EMAIL", "nao-responda@chopphub.com.br")
    SENDGRID_SENDER_NAME = os.environ.get("SENDGRID_SENDER_NAME", "Chopp Hub")

    BRASIL_API_URL = os.environ.get("BRASIL_API_URL", "https://brasilapi.com.br/api/cnpj/v1")
    RECEITAWS_URL = os.environ.get("RECEITAWS_URL", "https://www.receitaws.com.br/v1/cnpj")

    FILE_STORAGE_DIR = os.environ.get("FILE_STORAGE_DIR") or os.path.join(BASE_DIR, "storage")
    FILE_PUBLIC_BASE_URL = os.environ.get("FILE_PUBLIC_BASE_URL", "/files")

    def __init__(self):
        env = os.environ.get("FLASK_ENV", "development").lower()
        if env == "production" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL nao definida para ambiente de producao.")
        if env == "production" and self.SECRET_KEY == "dev-secret-chopphub":
            raise RuntimeError("SECRET_KEY insegura para producao.")
