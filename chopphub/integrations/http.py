from __future__ import annotations

import json
import logging
import os
import ssl
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Callable, Dict

from flask import current_app

from chopphub.errors import ProviderError
from chopphub.observability import observe_provider_call


logger = logging.getLogger(__name__)

MessageExtractor = Callable[[object], "str | None"]

RETRYABLE_STATUSES = frozenset({408, 429})


def request_json(
    provider: str,
    method: str,
    url: str,
    *,
    headers: Dict[str, str] | None = None,
    payload: dict | None = None,
    params: Dict[str, object] | None = None,
    allow_retry: bool = False,
    message_from: MessageExtractor | None = None,
) -> object:
    request_headers = {"Accept": "application/json"}
    request_headers.update(headers or {})
    data = None
    if payload is not None:
        request_headers["Content-Type"] = "application/json"
        data = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

    status, body = _send(
        provider,
        method,
        build_url(url, params),
        headers=request_headers,
        data=data,
        allow_retry=allow_retry,
    )
    parsed = _parse_json(body)
    if 200 <= status < 300:
        if isinstance(parsed, (dict, list)):
            return parsed
        if not body.strip():
            return {}
        raise ProviderError(provider, "Resposta JSON invalida.", status=status, body=_text(body))

    message = None
    if message_from is not None:
        message = message_from(parsed)
    raise ProviderError(
        provider,
        message or f"HTTP {status}",
        status=status,
        body=parsed if parsed is not None else _text(body),
    )


def request_bytes(
    provider: str,
    method: str,
    url: str,
    *,
    headers: Dict[str, str] | None = None,
    allow_retry: bool = True,
) -> bytes:
    status, body = _send(provider, method, url, headers=dict(headers or {}), data=None, allow_retry=allow_retry)
    if 200 <= status < 300:
        return body
    raise ProviderError(provider, f"HTTP {status}", status=status, body=_text(body)[:200])


def build_url(url: str, params: Dict[str, object] | None = None) -> str:
    if not params:
        return url
    clean = {key: value for key, value in params.items() if value is not None and value != ""}
    if not clean:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urllib.parse.urlencode(clean)}"


def _send(
    provider: str,
    method: str,
    url: str,
    *,
    headers: Dict[str, str],
    data: bytes | None,
    allow_retry: bool,
) -> tuple[int, bytes]:
    timeout = _int_config("PROVIDER_TIMEOUT_SECONDS", 20)
    attempts = max(1, _int_config("PROVIDER_RETRY_ATTEMPTS", 2)) if allow_retry else 1
    backoff_ms = _int_config("PROVIDER_RETRY_BACKOFF_MS", 300)

    context = None
    if not _bool_config("PROVIDER_VERIFY_SSL", True):
        context = ssl._create_unverified_context()

    for attempt in range(attempts):
        request = urllib.request.Request(url, data=data, headers=headers, method=method.upper())
        started = time.perf_counter()
        try:
            with urllib.request.urlopen(request, timeout=timeout, context=context) as response:
                body = response.read()
                status = int(getattr(response, "status", 200) or 200)
            observe_provider_call(provider, status, (time.perf_counter() - started) * 1000.0)
            return status, body
        except urllib.error.HTTPError as exc:  # noqa: PERF203
            body = exc.read() if exc.fp else b""
            observe_provider_call(provider, exc.code, (time.perf_counter() - started) * 1000.0)
            retryable = exc.code >= 500 or exc.code in RETRYABLE_STATUSES
            should_retry = allow_retry and attempt < attempts - 1 and retryable
            logger.warning(
                "provider_http_error",
                extra={
                    "provider": provider,
                    "http_method": method.upper(),
                    "status": exc.code,
                    "attempt": attempt + 1,
                    "will_retry": should_retry,
                },
            )
            if should_retry:
                time.sleep(backoff_ms / 1000)
                continue
            return exc.code, body
        except urllib.error.URLError as exc:
            observe_provider_call(provider, None, (time.perf_counter() - started) * 1000.0)
            should_retry = allow_retry and attempt < attempts - 1
            logger.warning(
                "provider_transport_error",
                extra={
                    "provider": provider,
                    "http_method": method.upper(),
                    "reason": str(exc.reason),
                    "attempt": attempt + 1,
                    "will_retry": should_retry,
                },
            )
            if should_retry:
                time.sleep(backoff_ms / 1000)
                continue
            raise ProviderError(provider, f"Erro de conexao: {exc.reason}") from exc

    raise ProviderError(provider, "Falha ao chamar provedor.")


def _parse_json(body: bytes) -> object | None:
    if not body:
        return None
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None


def _text(body: bytes) -> str:
    return body.decode("utf-8", errors="replace")


def _get_config(key: str, default: object | None = None) -> object | None:
    try:
        return current_app.config.get(key, default)
    except RuntimeError:
        return os.environ.get(key, default)


def _int_config(key: str, default: int) -> int:
    value = _get_config(key, default)
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _bool_config(key: str, default: bool) -> bool:
    value = _get_config(key, default)
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def config_value(key: str, default: object | None = None) -> object | None:
    return _get_config(key, default)
