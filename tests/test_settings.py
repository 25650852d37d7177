import unittest

from chopphub.application.settings_service import mask_token
from chopphub.db import close_db, get_db
from chopphub.infrastructure.repositories.settings_repository import NotificationRepository
from chopphub.integrations.asaas import resolve_env
from tests.api_utils import build_temp_app, company_headers, create_company
from tests.helpers.temp_db import TempDbSandbox


class AsaasEnvironmentTest(unittest.TestCase):
    def test_stored_env_wins(self) -> None:
        self.assertEqual(resolve_env("production", "test_abc"), "production")
        self.assertEqual(resolve_env("sandbox", "prod-token"), "sandbox")

    def test_token_prefix_decides_without_stored_env(self) -> None:
        self.assertEqual(resolve_env(None, "TEST_abc"), "sandbox")
        self.assertEqual(resolve_env("", "$aact_prod"), "production")
        self.assertEqual(resolve_env("staging", None), "production")


class MaskTokenTest(unittest.TestCase):
    def test_short_tokens_are_fully_hidden(self) -> None:
        self.assertEqual(mask_token("abc"), "******")
        self.assertEqual(mask_token("abcdef"), "******")
        self.assertEqual(mask_token("abcdef12345"), "******")
        self.assertIsNone(mask_token(""))

    def test_long_tokens_show_at_most_a_quarter(self) -> None:
        self.assertEqual(mask_token("abcdef123456"), "abc******")
        self.assertEqual(mask_token("test_abcdef123456789012345"), "test_a******")
        for token in ("abcdef123456", "second-token-111", "$aact_prod_0123456789abcdef"):
            visible = mask_token(token).rstrip("*")
            self.assertLessEqual(len(visible), len(token) // 4)


class SettingsApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="settings_api")
        self.app = build_temp_app(self._temp_db)
        self.client = self.app.test_client()
        self.company_id = create_company(self.app)
        self.headers = company_headers(self.company_id)
        self.member_headers = company_headers(self.company_id, role="member")

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_asaas_integration_gets_webhook_token_and_masked_listing(self) -> None:
        response = self.client.post(
            "/api/integrations",
            headers=self.headers,
            json={"provider": "asaas", "access_token": "test_abcdef123456"},
        )
        self.assertEqual(response.status_code, 201)
        payload = response.get_json()
        self.assertEqual(payload["env"], "sandbox")
        self.assertEqual(payload["access_token"], mask_token("test_abcdef123456"))
        self.assertTrue(payload["webhook_token"])

        listed = self.client.get("/api/integrations", headers=self.headers).get_json()["items"]
        self.assertEqual(len(listed), 1)
        self.assertEqual(listed[0]["provider"], "asaas")
        self.assertNotIn("abcdef123456", listed[0]["access_token"])

    def test_saving_again_replaces_integration(self) -> None:
        for token in ("first-token-000", "second-token-111"):
            self.client.post(
                "/api/integrations",
                headers=self.headers,
                json={"provider": "mercado_pago", "access_token": token},
            )
        listed = self.client.get("/api/integrations", headers=self.headers).get_json()["items"]
        self.assertEqual(len(listed), 1)
        self.assertEqual(listed[0]["access_token"], mask_token("second-token-111"))
        self.assertIsNone(listed[0]["env"])

    def test_delete_integration(self) -> None:
        self.client.post(
            "/api/integrations",
            headers=self.headers,
            json={"provider": "asaas", "access_token": "prod-token"},
        )
        deleted = self.client.delete("/api/integrations?provider=asaas", headers=self.headers)
        self.assertEqual(deleted.status_code, 200)
        again = self.client.delete("/api/integrations?provider=asaas", headers=self.headers)
        self.assertEqual(again.status_code, 404)

    def test_integrations_require_admin(self) -> None:
        response = self.client.post(
            "/api/integrations",
            headers=self.member_headers,
            json={"provider": "asaas", "access_token": "x"},
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["error"], "permission_denied")

    def test_unknown_provider_is_rejected(self) -> None:
        response = self.client.post(
            "/api/integrations",
            headers=self.headers,
            json={"provider": "paypal", "access_token": "x"},
        )
        self.assertEqual(response.status_code, 400)

    def test_nfe_credentials_roundtrip_masks_token(self) -> None:
        saved = self.client.put(
            "/api/settings/nfe-credentials",
            headers=self.headers,
            json={"focus_token": "  abcdef123\n", "environment": "producao", "cnpj": "11.222.333/0001-81"},
        )
        self.assertEqual(saved.status_code, 200)

        stored = self.client.get("/api/settings/nfe-credentials", headers=self.headers).get_json()
        self.assertEqual(stored["environment"], "producao")
        self.assertEqual(stored["cnpj"], "11222333000181")
        self.assertEqual(stored["focus_token"], mask_token("abcdef123"))
        self.assertTrue(stored["configured"])

    def test_payment_methods_validation_and_update(self) -> None:
        invalid = self.client.post(
            "/api/settings/payment-methods",
            headers=self.headers,
            json={"name": "Pix", "code": "P X"},
        )
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(invalid.get_json()["field"], "code")

        created = self.client.post(
            "/api/settings/payment-methods",
            headers=self.headers,
            json={"name": "Boleto 30", "code": "boleto-30", "default_days": 30},
        )
        self.assertEqual(created.status_code, 201)
        method_id = created.get_json()["id"]

        updated = self.client.post(
            "/api/settings/payment-methods",
            headers=self.headers,
            json={"id": method_id, "name": "Boleto 28", "code": "boleto-28", "default_days": 28, "enabled": False},
        )
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.get_json()["default_days"], 28)

        deleted = self.client.delete(f"/api/settings/payment-methods/{method_id}", headers=self.headers)
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.client.get("/api/settings/payment-methods", headers=self.headers).get_json()["items"], [])

    def test_notifications_read_flow(self) -> None:
        with self.app.app_context():
            db = get_db()
            notifications = NotificationRepository(company_id=self.company_id)
            first = notifications.create(
                db, title="Pagamento aprovado", description="Pagamento de R$ 10.00 aprovado.", notification_type="payment"
            )
            notifications.create(db, title="Outro", description="Outro aviso", notification_type="info")
            db.commit()

        unread = self.client.get("/api/notifications?unread=1", headers=self.headers).get_json()
        self.assertEqual(len(unread["items"]), 2)

        self.client.post(f"/api/notifications/{first}/read", headers=self.headers)
        self.assertEqual(len(self.client.get("/api/notifications?unread=1", headers=self.headers).get_json()["items"]), 1)

        read_all = self.client.post("/api/notifications/read-all", headers=self.headers)
        self.assertEqual(read_all.get_json()["updated"], 1)
        self.assertEqual(self.client.get("/api/notifications?unread=1", headers=self.headers).get_json()["items"], [])


if __name__ == "__main__":
    unittest.main()
