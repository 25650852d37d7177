from __future__ import annotations

import logging
import os
import posixpath

from flask import current_app

from chopphub.errors import NotFoundError, ValidationError


logger = logging.getLogger(__name__)


class LocalFileStorage:
    """Bucket-like storage backed by a local directory."""

    def __init__(self, root_dir: str, public_base_url: str = "/files") -> None:
        self.root_dir = os.path.abspath(root_dir)
        self.public_base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> str:
        relative = str(path or "").strip().lstrip("/")
        full_path = os.path.abspath(os.path.join(self.root_dir, relative))
        if not relative or not full_path.startswith(self.root_dir + os.sep):
            raise ValidationError(code="invalid_path", message_key="validation_error", payload={"path": path})
        return full_path

    def upload(self, path: str, content: bytes, content_type: str | None = None) -> str:
        full_path = self._resolve(path)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, "wb") as handle:
            handle.write(content)
        logger.info(
            "file_stored",
            extra={"storage_path": path, "size": len(content), "content_type": content_type},
        )
        return path

    def download(self, path: str) -> bytes:
        full_path = self._resolve(path)
        if not os.path.isfile(full_path):
            raise NotFoundError(code="file_not_found", message_key="not_found", payload={"path": path})
        with open(full_path, "rb") as handle:
            return handle.read()

    def exists(self, path: str) -> bool:
        return os.path.isfile(self._resolve(path))

    def full_path(self, path: str) -> str:
        return self._resolve(path)

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{str(path).lstrip('/')}"


def company_file_path(area: str, company_id: str, *parts: str) -> str:
    """Storage path partitioned by company: ``<area>/<company_id>/...``."""
    return "/".join((area, company_id, *parts))


def belongs_to_company(path: str, company_id: str) -> bool:
    parts = posixpath.normpath(str(path or "").strip().lstrip("/")).split("/")
    return len(parts) >= 3 and parts[1] == company_id


def get_storage() -> LocalFileStorage:
    return LocalFileStorage(
        current_app.config["FILE_STORAGE_DIR"],
        current_app.config.get("FILE_PUBLIC_BASE_URL", "/files"),
    )
