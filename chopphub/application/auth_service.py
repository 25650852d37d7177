from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone

from werkzeug.security import check_password_hash

from chopphub.domain.contracts import AuthLoginInput, AuthRegisterInput, AuthUser, ServiceOutput
from chopphub.errors import ConflictError, NotFoundError, PermissionError, ValidationError
from chopphub.infrastructure.repositories.account_repository import AccountRepository
from chopphub.integrations import sendgrid
from chopphub.integrations.http import config_value
from chopphub.policies import normalize_role
from chopphub.ui_strings import success_message


logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _validate_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            code="validation_error",
            payload={"field": "password", "min_length": MIN_PASSWORD_LENGTH},
        )


class AuthService:
    def __init__(self, repository: AccountRepository | None = None, mail_fn=None) -> None:
        self.repository = repository or AccountRepository()
        self.mail_fn = mail_fn

    def login(self, db, auth_input: AuthLoginInput) -> AuthUser | None:
        email = (auth_input.email or "").strip().lower()
        password = auth_input.password or ""
        if not email or not password:
            return None

        user = self.repository.find_user_by_email(db, email)
        if not user or not user.get("password_hash"):
            return None
        if not check_password_hash(user["password_hash"], password):
            return None
        if user.get("is_blocked"):
            raise PermissionError(code="user_blocked", message_key="user_blocked")

        membership = self.repository.first_membership(db, user["id"])
        if not membership:
            return None
        self.repository.touch_sign_in(db, user["id"])
        return AuthUser(
            user_id=user["id"],
            email=user["email"],
            display_name=user.get("display_name") or user["email"].split("@")[0],
            company_id=membership["company_id"],
            role=normalize_role(membership.get("role")),
        )

    def register(self, db, auth_input: AuthRegisterInput) -> AuthUser:
        email = (auth_input.email or "").strip().lower()
        password = auth_input.password or ""
        display_name = (auth_input.display_name or "").strip() or None
        company_name = (auth_input.company_name or "").strip()
        if not email or "@" not in email:
            raise ValidationError(code="validation_error", payload={"field": "email"})
        if not company_name:
            raise ValidationError(code="field_required", message_key="field_required", payload={"field": "company_name"})
        _validate_password(password)
        if self.repository.find_user_by_email(db, email):
            raise ConflictError(code="email_taken", message_key="email_taken")

        with db.transaction():
            company_id = self.repository.create_company(db, {"name": company_name})
            user_id = self.repository.create_user(db, email=email, password=password, display_name=display_name)
            self.repository.add_membership(db, company_id, user_id, "admin")
            self.repository.touch_sign_in(db, user_id)

        logger.info("company_registered", extra={"company_id": company_id, "user_id": user_id})
        return AuthUser(
            user_id=user_id,
            email=email,
            display_name=display_name or email.split("@")[0],
            company_id=company_id,
            role="admin",
        )

    def list_team(self, db, *, company_id: str) -> ServiceOutput:
        members = []
        for row in self.repository.list_team(db, company_id):
            members.append(
                {
                    "id": row["id"],
                    "email": row["email"],
                    "display_name": row.get("display_name"),
                    "role": row["role"],
                    "is_blocked": bool(row.get("is_blocked")),
                    "pending": not row.get("last_sign_in_at"),
                    "last_sign_in_at": row.get("last_sign_in_at"),
                    "created_at": row.get("created_at"),
                }
            )
        return ServiceOutput(payload={"items": members})

    def add_member(
        self,
        db,
        *,
        company_id: str,
        email: str,
        password: str | None = None,
        role: str | None = None,
        display_name: str | None = None,
    ) -> ServiceOutput:
        email = (email or "").strip().lower()
        if not email or "@" not in email:
            raise ValidationError(code="validation_error", payload={"field": "email"})
        if password:
            _validate_password(password)
        member_role = normalize_role(role)

        user = self.repository.find_user_by_email(db, email)
        with db.transaction():
            if user:
                user_id = user["id"]
                if self.repository.membership(db, company_id, user_id):
                    raise ConflictError(code="email_taken", message_key="email_taken")
            else:
                user_id = self.repository.create_user(
                    db, email=email, password=password, display_name=display_name
                )
            self.repository.add_membership(db, company_id, user_id, member_role)

        invited = False
        if not user and not password:
            self._send_reset_link(db, user_id=user_id, email=email, invite=True)
            invited = True
        logger.info("member_added", extra={"user_id": user_id, "role": member_role, "invited": invited})
        return ServiceOutput(
            payload={"success": True, "user_id": user_id, "role": member_role, "invited": invited},
            status_code=201,
        )

    def _member_or_404(self, db, company_id: str, user_id: str) -> dict:
        membership = self.repository.membership(db, company_id, user_id)
        if not membership:
            raise NotFoundError(code="member_not_found", message_key="member_not_found")
        return membership

    def set_blocked(self, db, *, company_id: str, actor_id: str, user_id: str, blocked: bool) -> ServiceOutput:
        self._member_or_404(db, company_id, user_id)
        if user_id == actor_id and blocked:
            raise ValidationError(code="cannot_block_self", message_key="cannot_block_self")
        self.repository.set_blocked(db, user_id, blocked)
        db.commit()
        logger.info("member_block_changed", extra={"user_id": user_id, "blocked": blocked})
        return ServiceOutput(payload={"success": True, "is_blocked": bool(blocked)})

    def delete_member(self, db, *, company_id: str, actor_id: str, user_id: str) -> ServiceOutput:
        if user_id == actor_id:
            raise ValidationError(code="cannot_delete_self", message_key="cannot_delete_self")
        self._member_or_404(db, company_id, user_id)
        with db.transaction():
            self.repository.remove_membership(db, company_id, user_id)
            deleted_user = self.repository.count_memberships(db, user_id) == 0
            if deleted_user:
                self.repository.delete_user(db, user_id)
        logger.info("member_deleted", extra={"user_id": user_id, "user_removed": deleted_user})
        return ServiceOutput(payload={"success": True, "message": success_message("deleted")})

    def send_reset(self, db, *, email: str) -> ServiceOutput:
        user = self.repository.find_user_by_email(db, (email or "").strip().lower())
        if user:
            self._send_reset_link(db, user_id=user["id"], email=user["email"], invite=False)
        else:
            logger.info("password_reset_unknown_email")
        return ServiceOutput(payload={"success": True, "message": success_message("reset_sent")})

    def resend_invite(self, db, *, company_id: str, user_id: str) -> ServiceOutput:
        self._member_or_404(db, company_id, user_id)
        user = self.repository.find_user(db, user_id)
        self._send_reset_link(db, user_id=user_id, email=user["email"], invite=True)
        return ServiceOutput(payload={"success": True})

    def reset_password(self, db, *, token: str, password: str) -> ServiceOutput:
        _validate_password(password)
        record = self.repository.find_password_reset(db, hash_reset_token(str(token or "")))
        now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        if not record or record.get("used_at") or str(record["expires_at"]) < now:
            raise ValidationError(code="reset_token_invalid", message_key="reset_token_invalid")
        with db.transaction():
            if not self.repository.consume_password_reset(db, record["id"]):
                raise ValidationError(code="reset_token_invalid", message_key="reset_token_invalid")
            self.repository.set_password(db, record["user_id"], password)
        logger.info("password_reset_consumed", extra={"user_id": record["user_id"]})
        return ServiceOutput(payload={"success": True})

    def _send_reset_link(self, db, *, user_id: str, email: str, invite: bool) -> str:
        token = secrets.token_urlsafe(32)
        ttl_minutes = int(config_value("PASSWORD_RESET_TTL_MINUTES", 60))
        expires_at = (datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes)).isoformat().replace("+00:00", "Z")
        self.repository.create_password_reset(db, user_id, hash_reset_token(token), expires_at)
        db.commit()

        base_url = str(config_value("APP_BASE_URL", "http://localhost:5000")).rstrip("/")
        link = f"{base_url}/reset-password?token={token}"
        api_key, sender = sendgrid.system_sender()
        if not api_key:
            logger.warning("password_reset_mail_skipped", extra={"user_id": user_id, "reason": "no_api_key"})
            return token

        subject = "Convite para o Chopp Hub" if invite else "Redefinicao de senha"
        text = (
            f"Voce foi convidado para o Chopp Hub. Defina sua senha em: {link}"
            if invite
            else f"Para redefinir sua senha acesse: {link}"
        )
        send = self.mail_fn or sendgrid.send_mail
        send(api_key, sender, email, subject, text)
        logger.info("password_reset_sent", extra={"user_id": user_id, "invite": invite})
        return token
