from __future__ import annotations

import re
from typing import Any, Dict, Iterable, Sequence

from chopphub.db import new_id, utc_now_iso


class TenantScopeRequiredError(ValueError):
    """Raised when a repository is instantiated without a company scope."""


class BaseRepository:
    table: str = ""
    columns: Sequence[str] = ()
    boolean_columns: Sequence[str] = ()
    search_columns: Sequence[str] = ()
    default_order: str = "created_at DESC"
    timestamps: bool = True
    has_updated_at: bool = True

    def __init__(self, *, company_id: str | None = None) -> None:
        scope = str(company_id or "").strip()
        if not scope:
            raise TenantScopeRequiredError("company_id is required for repository access")
        self.company_id = scope

    def build_tenant_clause(
        self,
        *,
        table_alias: str | None = None,
        column_name: str = "company_id",
    ) -> str:
        prefix = f"{table_alias.strip()}." if table_alias and str(table_alias).strip() else ""
        return f"{prefix}{column_name} = ?"

    def enforce_tenant_scope(
        self,
        query: str,
        *,
        table_alias: str | None = None,
        column_name: str = "company_id",
    ) -> str:
        raw_query = str(query or "").strip()
        if not raw_query:
            return raw_query

        if "company_id" in raw_query.lower():
            return raw_query

        clause = self.build_tenant_clause(table_alias=table_alias, column_name=column_name)
        marker = re.search(r"\b(group\s+by|order\s+by|limit|offset|returning)\b", raw_query, flags=re.IGNORECASE)
        if marker:
            head = raw_query[: marker.start()].rstrip()
            tail = raw_query[marker.start() :]
        else:
            head = raw_query
            tail = ""

        if re.search(r"\bwhere\b", head, flags=re.IGNORECASE):
            scoped_head = f"{head} AND {clause}"
        else:
            scoped_head = f"{head} WHERE {clause}"
        return f"{scoped_head} {tail}".strip()

    def scoped_params(self, params: Iterable[Any] | None = None) -> tuple[Any, ...]:
        values = tuple(params or ())
        return (*values, self.company_id)

    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [dict(row) for row in rows]

    def to_record(self, row: Any) -> dict | None:
        if not row:
            return None
        record = dict(row)
        for column in self.boolean_columns:
            if column in record and record[column] is not None:
                record[column] = bool(record[column])
        return record

    def to_records(self, rows: Iterable[Any]) -> list[dict]:
        return [self.to_record(row) for row in rows]

    def _writable(self, values: Dict[str, Any]) -> Dict[str, Any]:
        data = {key: value for key, value in values.items() if key in self.columns}
        for column in self.boolean_columns:
            if column in data and data[column] is not None:
                data[column] = 1 if data[column] else 0
        return data

    def get(self, db, record_id: str) -> dict | None:
        row = db.execute(
            f"SELECT * FROM {self.table} WHERE id = ? AND company_id = ?",
            (record_id, self.company_id),
        ).fetchone()
        return self.to_record(row)

    def list(
        self,
        db,
        *,
        filters: Dict[str, Any] | None = None,
        search: str | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        clauses = []
        params: list[Any] = []
        for column, value in (filters or {}).items():
            if value is None or value == "":
                continue
            clauses.append(f"{column} = ?")
            params.append(value)
        term = str(search or "").strip().lower()
        if term and self.search_columns:
            like = " OR ".join(f"LOWER(COALESCE({column}, '')) LIKE ?" for column in self.search_columns)
            clauses.append(f"({like})")
            params.extend([f"%{term}%"] * len(self.search_columns))

        query = f"SELECT * FROM {self.table}"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += f" ORDER BY {order_by or self.default_order}"
        if limit:
            query += f" LIMIT {int(limit)}"
        rows = db.execute(self.enforce_tenant_scope(query), self.scoped_params(params)).fetchall()
        return self.to_records(rows)

    def insert(self, db, values: Dict[str, Any]) -> dict:
        data = self._writable(values)
        data["id"] = str(values.get("id") or new_id())
        data["company_id"] = self.company_id
        if self.timestamps:
            now = utc_now_iso()
            data.setdefault("created_at", now)
            if self.has_updated_at:
                data.setdefault("updated_at", now)
        names = list(data.keys())
        placeholders = ", ".join("?" for _ in names)
        db.execute(
            f"INSERT INTO {self.table} ({', '.join(names)}) VALUES ({placeholders})",
            tuple(data[name] for name in names),
        )
        return self.to_record(data)

    def update(self, db, record_id: str, values: Dict[str, Any]) -> bool:
        data = self._writable(values)
        data.pop("id", None)
        data.pop("company_id", None)
        if self.timestamps and self.has_updated_at:
            data["updated_at"] = utc_now_iso()
        if not data:
            return self.get(db, record_id) is not None
        assignments = ", ".join(f"{name} = ?" for name in data)
        cursor = db.execute(
            f"UPDATE {self.table} SET {assignments} WHERE id = ? AND company_id = ?",
            (*data.values(), record_id, self.company_id),
        )
        return int(cursor.rowcount or 0) > 0

    def delete(self, db, record_id: str) -> bool:
        cursor = db.execute(
            f"DELETE FROM {self.table} WHERE id = ? AND company_id = ?",
            (record_id, self.company_id),
        )
        return int(cursor.rowcount or 0) > 0
