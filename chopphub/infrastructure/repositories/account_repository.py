from __future__ import annotations

from typing import Any, Dict

from werkzeug.security import generate_password_hash

from chopphub.db import new_id, utc_now_iso


COMPANY_COLUMNS = (
    "name",
    "corporate_name",
    "trade_name",
    "document",
    "state_registration",
    "regime_tributario",
    "email",
    "phone",
    "address",
    "number",
    "complement",
    "neighborhood",
    "city",
    "state",
    "zip_code",
    "logo_url",
)


class AccountRepository:
    """Users, companies and memberships. Not tenant scoped: it resolves the tenant."""

    def find_user_by_email(self, db, email: str) -> dict | None:
        row = db.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return dict(row) if row else None

    def find_user(self, db, user_id: str) -> dict | None:
        row = db.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return dict(row) if row else None

    def create_user(
        self,
        db,
        *,
        email: str,
        password: str | None,
        display_name: str | None,
    ) -> str:
        user_id = new_id()
        now = utc_now_iso()
        db.execute(
            """
            INSERT INTO users (id, email, password_hash, display_name, is_blocked, created_at, updated_at)
            VALUES (?, ?, ?, ?, 0, ?, ?)
            """,
            (
                user_id,
                email,
                generate_password_hash(password) if password else None,
                display_name,
                now,
                now,
            ),
        )
        return user_id

    def set_password(self, db, user_id: str, password: str) -> None:
        db.execute(
            "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
            (generate_password_hash(password), utc_now_iso(), user_id),
        )

    def set_blocked(self, db, user_id: str, blocked: bool) -> None:
        db.execute(
            "UPDATE users SET is_blocked = ?, updated_at = ? WHERE id = ?",
            (1 if blocked else 0, utc_now_iso(), user_id),
        )

    def touch_sign_in(self, db, user_id: str) -> None:
        db.execute("UPDATE users SET last_sign_in_at = ? WHERE id = ?", (utc_now_iso(), user_id))

    def delete_user(self, db, user_id: str) -> None:
        db.execute("DELETE FROM password_resets WHERE user_id = ?", (user_id,))
        db.execute("DELETE FROM users WHERE id = ?", (user_id,))

    def create_company(self, db, values: Dict[str, Any]) -> str:
        company_id = new_id()
        now = utc_now_iso()
        data = {key: value for key, value in values.items() if key in COMPANY_COLUMNS}
        data.update({"id": company_id, "created_at": now, "updated_at": now})
        names = list(data.keys())
        db.execute(
            f"INSERT INTO companies ({', '.join(names)}) VALUES ({', '.join('?' for _ in names)})",
            tuple(data[name] for name in names),
        )
        return company_id

    def get_company(self, db, company_id: str) -> dict | None:
        row = db.execute("SELECT * FROM companies WHERE id = ?", (company_id,)).fetchone()
        return dict(row) if row else None

    def update_company(self, db, company_id: str, values: Dict[str, Any]) -> None:
        data = {key: value for key, value in values.items() if key in COMPANY_COLUMNS}
        if not data:
            return
        data["updated_at"] = utc_now_iso()
        assignments = ", ".join(f"{name} = ?" for name in data)
        db.execute(
            f"UPDATE companies SET {assignments} WHERE id = ?",
            (*data.values(), company_id),
        )

    def add_membership(self, db, company_id: str, user_id: str, role: str) -> None:
        db.execute(
            """
            INSERT INTO company_users (id, company_id, user_id, role, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (new_id(), company_id, user_id, role, utc_now_iso()),
        )

    def membership(self, db, company_id: str, user_id: str) -> dict | None:
        row = db.execute(
            "SELECT * FROM company_users WHERE company_id = ? AND user_id = ?",
            (company_id, user_id),
        ).fetchone()
        return dict(row) if row else None

    def first_membership(self, db, user_id: str) -> dict | None:
        row = db.execute(
            "SELECT * FROM company_users WHERE user_id = ? ORDER BY created_at ASC LIMIT 1",
            (user_id,),
        ).fetchone()
        return dict(row) if row else None

    def count_memberships(self, db, user_id: str) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM company_users WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        return int(row["total"] or 0) if row else 0

    def remove_membership(self, db, company_id: str, user_id: str) -> None:
        db.execute(
            "DELETE FROM company_users WHERE company_id = ? AND user_id = ?",
            (company_id, user_id),
        )

    def list_team(self, db, company_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT u.id, u.email, u.display_name, u.is_blocked, u.last_sign_in_at,
                   u.created_at, cu.role
            FROM company_users cu
            JOIN users u ON u.id = cu.user_id
            WHERE cu.company_id = ?
            ORDER BY u.email ASC
            """,
            (company_id,),
        ).fetchall()
        return [dict(row) for row in rows]

    def create_password_reset(self, db, user_id: str, token_hash: str, expires_at: str) -> None:
        db.execute(
            """
            INSERT INTO password_resets (id, user_id, token_hash, expires_at, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (new_id(), user_id, token_hash, expires_at, utc_now_iso()),
        )

    def find_password_reset(self, db, token_hash: str) -> dict | None:
        row = db.execute(
            "SELECT * FROM password_resets WHERE token_hash = ?",
            (token_hash,),
        ).fetchone()
        return dict(row) if row else None

    def consume_password_reset(self, db, reset_id: str) -> bool:
        cursor = db.execute(
            "UPDATE password_resets SET used_at = ? WHERE id = ? AND used_at IS NULL",
            (utc_now_iso(), reset_id),
        )
        return int(cursor.rowcount or 0) == 1
