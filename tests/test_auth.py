import unittest
from unittest import mock

from chopphub.application.auth_service import hash_reset_token
from chopphub.auth import _AUTH_SERVICE
from chopphub.db import close_db
from tests.api_utils import build_temp_app
from tests.helpers.temp_db import TempDbSandbox


class AuthFlowTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="auth_flow")
        self.app = build_temp_app(self._temp_db, AUTH_ENABLED=True, SENDGRID_API_KEY=None)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _register(self, client=None, email: str = "dono@distribuidora.com") -> dict:
        response = (client or self.client).post(
            "/api/auth/register",
            json={
                "email": email,
                "password": "segredo123",
                "display_name": "Dono",
                "company_name": "Distribuidora Teste",
            },
        )
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()["user"]

    def _login(self, client, email: str, password: str):
        return client.post("/api/auth/login", json={"email": email, "password": password})

    def _add_member(self, email: str = "vendedor@distribuidora.com", **extra):
        payload = {"email": email, "password": "vendas123", "role": "member"}
        payload.update(extra)
        return self.client.post("/api/users/add-member", json=payload)

    def test_register_starts_admin_session(self) -> None:
        user = self._register()
        self.assertEqual(user["role"], "admin")
        self.assertEqual(user["email"], "dono@distribuidora.com")

        me = self.client.get("/api/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.get_json()["user"]["company_id"], user["company_id"])

        company = self.client.get("/api/company").get_json()
        self.assertEqual(company["name"], "Distribuidora Teste")

    def test_register_rejects_short_password_and_duplicate_email(self) -> None:
        short = self.client.post(
            "/api/auth/register",
            json={"email": "a@b.com", "password": "123", "company_name": "X"},
        )
        self.assertEqual(short.status_code, 400)
        self.assertEqual(short.get_json()["field"], "password")

        self._register()
        duplicate = self.app.test_client().post(
            "/api/auth/register",
            json={"email": "DONO@distribuidora.com", "password": "segredo123", "company_name": "Outra"},
        )
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.get_json()["error"], "email_taken")

    def test_api_requires_session_but_health_is_public(self) -> None:
        response = self.client.get("/api/orders")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["error"], "auth_required")

        self.assertEqual(self.client.get("/health").status_code, 200)

    def test_header_tenant_is_ignored_when_auth_enabled(self) -> None:
        user = self._register()
        stranger = self.app.test_client()
        response = stranger.get("/api/orders", headers={"X-Company-Id": user["company_id"], "X-User-Role": "admin"})
        self.assertEqual(response.status_code, 401)

    def test_login_logout_and_invalid_password(self) -> None:
        self._register()
        self.client.post("/api/auth/logout")
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)

        wrong = self._login(self.client, "dono@distribuidora.com", "errada123")
        self.assertEqual(wrong.status_code, 401)
        self.assertEqual(wrong.get_json()["error"], "invalid_credentials")

        ok = self._login(self.client, " Dono@Distribuidora.com ", "segredo123")
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(self.client.get("/api/orders").status_code, 200)

    def test_member_cannot_manage_team(self) -> None:
        self._register()
        added = self._add_member()
        self.assertEqual(added.status_code, 201)
        self.assertEqual(added.get_json()["role"], "member")
        self.assertFalse(added.get_json()["invited"])

        member = self.app.test_client()
        self.assertEqual(self._login(member, "vendedor@distribuidora.com", "vendas123").status_code, 200)
        self.assertEqual(member.get("/api/users/team").status_code, 200)
        forbidden = member.post("/api/users/add-member", json={"email": "x@y.com", "password": "abcdef"})
        self.assertEqual(forbidden.status_code, 403)

        team = self.client.get("/api/users/team").get_json()["items"]
        self.assertEqual(sorted(item["role"] for item in team), ["admin", "member"])

    def test_blocking_ends_member_session(self) -> None:
        admin = self._register()
        member_id = self._add_member().get_json()["user_id"]
        member = self.app.test_client()
        self._login(member, "vendedor@distribuidora.com", "vendas123")

        self_block = self.client.post("/api/users/block", json={"user_id": admin["id"], "blocked": True})
        self.assertEqual(self_block.status_code, 400)
        self.assertEqual(self_block.get_json()["error"], "cannot_block_self")

        blocked = self.client.post("/api/users/block", json={"user_id": member_id, "blocked": True})
        self.assertEqual(blocked.status_code, 200)

        self.assertEqual(member.get("/api/orders").status_code, 401)
        relogin = self._login(member, "vendedor@distribuidora.com", "vendas123")
        self.assertEqual(relogin.status_code, 403)
        self.assertEqual(relogin.get_json()["error"], "user_blocked")

    def test_deleting_member_removes_access(self) -> None:
        admin = self._register()
        member_id = self._add_member().get_json()["user_id"]

        self.assertEqual(
            self.client.post("/api/users/delete", json={"user_id": admin["id"]}).get_json()["error"],
            "cannot_delete_self",
        )
        self.assertEqual(self.client.post("/api/users/delete", json={"user_id": member_id}).status_code, 200)
        self.assertEqual(self._login(self.app.test_client(), "vendedor@distribuidora.com", "vendas123").status_code, 401)

    def test_password_reset_with_single_use_token(self) -> None:
        self._register()
        with mock.patch("chopphub.application.auth_service.secrets.token_urlsafe", return_value="fixed-token"):
            sent = self.app.test_client().post("/api/users/send-reset", json={"email": "dono@distribuidora.com"})
        self.assertEqual(sent.status_code, 200)

        public = self.app.test_client()
        reset = public.post("/api/auth/reset-password", json={"token": "fixed-token", "password": "novasenha1"})
        self.assertEqual(reset.status_code, 200)
        reused = public.post("/api/auth/reset-password", json={"token": "fixed-token", "password": "outrasenha"})
        self.assertEqual(reused.status_code, 400)
        self.assertEqual(reused.get_json()["error"], "reset_token_invalid")

        self.assertEqual(self._login(public, "dono@distribuidora.com", "novasenha1").status_code, 200)
        self.assertEqual(self._login(self.app.test_client(), "dono@distribuidora.com", "segredo123").status_code, 401)

    def test_unknown_email_reset_still_succeeds(self) -> None:
        response = self.client.post("/api/users/send-reset", json={"email": "ninguem@x.com"})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.get_json()["success"])

    def test_invite_mail_sent_when_member_has_no_password(self) -> None:
        self.app.config["SENDGRID_API_KEY"] = "SG.system"
        self._register()
        mail_fn = mock.Mock()
        with mock.patch.object(_AUTH_SERVICE, "mail_fn", mail_fn):
            added = self.client.post("/api/users/add-member", json={"email": "novo@distribuidora.com"})

        self.assertEqual(added.status_code, 201)
        self.assertTrue(added.get_json()["invited"])
        args = mail_fn.call_args[0]
        self.assertEqual(args[0], "SG.system")
        self.assertEqual(args[2], "novo@distribuidora.com")
        self.assertEqual(args[3], "Convite para o Chopp Hub")
        self.assertIn("/reset-password?token=", args[4])

        team = self.client.get("/api/users/team").get_json()["items"]
        invited = next(item for item in team if item["email"] == "novo@distribuidora.com")
        self.assertTrue(invited["pending"])

    def test_reset_token_is_stored_hashed(self) -> None:
        self.assertEqual(len(hash_reset_token("abc")), 64)
        self.assertNotEqual(hash_reset_token("abc"), "abc")


if __name__ == "__main__":
    unittest.main()
