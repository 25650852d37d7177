from __future__ import annotations

import json
from typing import Any, Dict

from chopphub.db import new_id, utc_now_iso
from chopphub.infrastructure.repositories.base import BaseRepository


class IntegrationRepository(BaseRepository):
    table = "company_integrations"
    columns = ("provider", "access_token", "env", "webhook_token")
    default_order = "provider ASC"
    has_updated_at = False

    def get_by_provider(self, db, provider: str) -> dict | None:
        row = db.execute(
            "SELECT * FROM company_integrations WHERE company_id = ? AND provider = ?",
            (self.company_id, provider),
        ).fetchone()
        return dict(row) if row else None

    def replace(self, db, provider: str, values: Dict[str, Any]) -> dict:
        db.execute(
            "DELETE FROM company_integrations WHERE company_id = ? AND provider = ?",
            (self.company_id, provider),
        )
        return self.insert(db, {**values, "provider": provider})

    def delete_provider(self, db, provider: str) -> bool:
        cursor = db.execute(
            "DELETE FROM company_integrations WHERE company_id = ? AND provider = ?",
            (self.company_id, provider),
        )
        return int(cursor.rowcount or 0) > 0


def find_integration_by_webhook_token(db, provider: str, webhook_token: str) -> dict | None:
    """Unscoped lookup: the webhook token is what identifies the company."""
    row = db.execute(
        "SELECT * FROM company_integrations WHERE provider = ? AND webhook_token = ?",
        (provider, webhook_token),
    ).fetchone()
    return dict(row) if row else None


class _SingletonSettingsRepository(BaseRepository):
    """One row per company, written with upsert semantics."""

    def get_current(self, db) -> dict | None:
        row = db.execute(
            f"SELECT * FROM {self.table} WHERE company_id = ?",
            (self.company_id,),
        ).fetchone()
        return self.to_record(row)

    def upsert(self, db, values: Dict[str, Any]) -> dict:
        current = self.get_current(db)
        if current:
            self.update(db, current["id"], values)
            return self.get_current(db)
        self.insert(db, values)
        return self.get_current(db)


class NfeCredentialRepository(_SingletonSettingsRepository):
    table = "nfe_credentials"
    columns = ("focus_token", "environment", "cnpj")


class EmailCredentialRepository(_SingletonSettingsRepository):
    table = "email_credentials"
    columns = ("sendgrid_api_key", "sender_email", "sender_name")


class PaymentMethodRepository(BaseRepository):
    table = "payment_methods"
    columns = ("name", "code", "enabled", "default_days")
    boolean_columns = ("enabled",)
    default_order = "name ASC"

    def get_by_code(self, db, code: str) -> dict | None:
        row = db.execute(
            "SELECT * FROM payment_methods WHERE company_id = ? AND code = ?",
            (self.company_id, code),
        ).fetchone()
        return self.to_record(row)


class FiscalOperationRepository(BaseRepository):
    table = "fiscal_operations"
    columns = (
        "operation_id",
        "name",
        "natureza_operacao",
        "cfop",
        "tipo_documento",
        "finalidade_emissao",
        "presenca_comprador",
        "icms_origem",
        "icms_situacao_tributaria",
        "pis_situacao_tributaria",
        "cofins_situacao_tributaria",
        "aliquota_pis",
        "aliquota_cofins",
    )
    default_order = "operation_id ASC, name ASC"
    has_updated_at = False


class NotificationRepository(BaseRepository):
    table = "notifications"
    columns = ("type", "title", "description", "meta", "is_read")
    boolean_columns = ("is_read",)
    has_updated_at = False

    def to_record(self, row: Any) -> dict | None:
        record = super().to_record(row)
        if record and isinstance(record.get("meta"), str) and record["meta"]:
            record["meta"] = json.loads(record["meta"])
        return record

    def create(
        self,
        db,
        *,
        title: str,
        description: str | None = None,
        notification_type: str | None = None,
        meta: Dict[str, Any] | None = None,
    ) -> str:
        notification_id = new_id()
        db.execute(
            """
            INSERT INTO notifications (id, company_id, type, title, description, meta, is_read, created_at)
            VALUES (?, ?, ?, ?, ?, ?, 0, ?)
            """,
            (
                notification_id,
                self.company_id,
                notification_type,
                title,
                description,
                json.dumps(meta, ensure_ascii=False) if meta else None,
                utc_now_iso(),
            ),
        )
        return notification_id

    def mark_read(self, db, notification_id: str) -> bool:
        cursor = db.execute(
            "UPDATE notifications SET is_read = 1 WHERE id = ? AND company_id = ?",
            (notification_id, self.company_id),
        )
        return int(cursor.rowcount or 0) > 0

    def mark_all_read(self, db) -> int:
        cursor = db.execute(
            "UPDATE notifications SET is_read = 1 WHERE company_id = ? AND is_read = 0",
            (self.company_id,),
        )
        return int(cursor.rowcount or 0)
