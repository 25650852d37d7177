"""Chopp Hub schema baseline from chopphub.db

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:01
"""

from __future__ import annotations

from typing import Iterable, Sequence, Union

from alembic import op
from sqlalchemy.engine import Connection

from chopphub.db import _convert_qmark_to_pg, apply_schema, drop_schema


# revision identifiers, used by Alembic.
revision: str = "20261019_000001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


class _AlembicDbAdapter:
    """Exposes the Alembic connection with the execute/commit surface of chopphub.db."""

    def __init__(self, connection: Connection, backend: str):
        self._connection = connection
        self.backend = backend

    def execute(self, sql: str, params: Iterable | None = None):
        if params is None:
            return self._connection.exec_driver_sql(sql)
        statement = _convert_qmark_to_pg(sql) if self.backend == "postgres" else sql
        return self._connection.exec_driver_sql(statement, tuple(params))

    def commit(self):
        # Alembic controla transacoes no contexto da migration.
        return None


def _adapter() -> _AlembicDbAdapter:
    connection = op.get_bind()
    dialect = (connection.dialect.name or "").lower()
    return _AlembicDbAdapter(connection, "postgres" if dialect.startswith("postgres") else "sqlite")


def upgrade() -> None:
    apply_schema(_adapter())


def downgrade() -> None:
    drop_schema(_adapter())
