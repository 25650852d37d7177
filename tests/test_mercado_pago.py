import unittest
from datetime import datetime, timezone
from unittest import mock

from chopphub.db import close_db
from chopphub.integrations.mercado_pago import build_boleto_payment, split_name
from chopphub.routes import payments_routes
from tests.api_utils import (
    VALID_CNPJ,
    build_temp_app,
    company_headers,
    create_company,
    create_customer,
    create_order,
    create_product,
)
from tests.helpers.temp_db import TempDbSandbox


class FakeMercadoPagoClient:
    payments: dict = {}
    created: list = []
    barcode = "23790001"

    def __init__(self, access_token) -> None:
        self.access_token = access_token

    def create_payment(self, payment, *, idempotency_key):
        FakeMercadoPagoClient.created.append((self.access_token, payment, idempotency_key))
        details = {"external_resource_url": "https://mp.test/boleto/1"}
        if self.barcode:
            details["barcode"] = {"content": self.barcode}
        return {"id": 987, "date_of_expiration": "2030-01-13T00:00:00.000-03:00", "transaction_details": details}

    def get_payment(self, payment_id):
        return FakeMercadoPagoClient.payments[(self.access_token, payment_id)]


class BoletoPayloadTest(unittest.TestCase):
    def test_split_name_defaults(self) -> None:
        self.assertEqual(split_name("Maria da Silva"), ("Maria", "da Silva"))
        self.assertEqual(split_name("Maria"), ("Maria", "Sobrenome"))
        self.assertEqual(split_name(""), ("Cliente", "Sobrenome"))

    def test_payload_uses_cnpj_and_minimum_one_day(self) -> None:
        payload = build_boleto_payment(
            {
                "nome": "Bar do Ze",
                "document": "11.222.333/0001-81",
                "email": "ze@bar.com",
                "total": "120.5",
                "days_ticket": 0,
                "order_id": "o1",
                "zip_code": "01001-000",
                "number": None,
            },
            now=datetime(2030, 1, 1, tzinfo=timezone.utc),
        )
        self.assertEqual(payload["transaction_amount"], 120.5)
        self.assertEqual(payload["payment_method_id"], "bolbradesco")
        self.assertEqual(payload["payer"]["identification"], {"type": "CNPJ", "number": VALID_CNPJ})
        self.assertEqual(payload["payer"]["address"]["zip_code"], "01001000")
        self.assertEqual(payload["payer"]["address"]["street_number"], "0")
        self.assertTrue(payload["date_of_expiration"].startswith("2030-01-02T00:00:00.000"))
        self.assertEqual(payload["external_reference"], "o1")


class MercadoPagoApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="mercado_pago_api")
        self.app = build_temp_app(self._temp_db, MERCADO_PAGO_ACCESS_TOKEN="platform-token")
        self.client = self.app.test_client()
        self.headers = company_headers(create_company(self.app))
        customer = create_customer(self.client, self.headers)
        product = create_product(self.client, self.headers)
        self.order = create_order(self.client, self.headers, customer["id"], product["id"]).get_json()
        self.customer = customer

        FakeMercadoPagoClient.payments = {}
        FakeMercadoPagoClient.created = []
        FakeMercadoPagoClient.barcode = "23790001"
        patcher = mock.patch.object(payments_routes._MERCADO_PAGO_SERVICE, "client_factory", FakeMercadoPagoClient)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _boleto_request(self) -> dict:
        return {
            "nome": self.customer["name"],
            "document": self.customer["document"],
            "email": self.customer["email"],
            "total": self.order["total"],
            "days_ticket": 3,
            "order_id": self.order["id"],
            "zip_code": "01001000",
            "address": "Rua A",
            "number": "10",
            "neighborhood": "Centro",
            "city": "Sao Paulo",
            "state": "SP",
        }

    def _configure_company_token(self) -> None:
        self.client.post(
            "/api/integrations",
            headers=self.headers,
            json={"provider": "mercado_pago", "access_token": "company-token"},
        )

    def test_create_boleto_stores_barcode_on_order(self) -> None:
        self._configure_company_token()
        response = self.client.post("/api/create-payment", headers=self.headers, json=self._boleto_request())
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["id"], 987)

        token, payment, idempotency_key = FakeMercadoPagoClient.created[0]
        self.assertEqual(token, "company-token")
        self.assertEqual(payment["external_reference"], self.order["id"])
        self.assertTrue(idempotency_key.startswith(self.customer["document"] + "-"))

        order = self.client.get(f"/api/orders/{self.order['id']}", headers=self.headers).get_json()
        self.assertEqual(order["boleto_id"], "987")
        self.assertEqual(order["boleto_barcode_number"], "23790001")
        self.assertEqual(order["boleto_url"], "https://mp.test/boleto/1")

    def test_create_boleto_falls_back_to_platform_token(self) -> None:
        self.client.post("/api/create-payment", headers=self.headers, json=self._boleto_request())
        self.assertEqual(FakeMercadoPagoClient.created[0][0], "platform-token")

    def test_missing_field_is_rejected(self) -> None:
        payload = self._boleto_request()
        payload.pop("zip_code")
        response = self.client.post("/api/create-payment", headers=self.headers, json=payload)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["field"], "zip_code")

    def test_boleto_without_barcode_is_an_error(self) -> None:
        FakeMercadoPagoClient.barcode = None
        response = self.client.post("/api/create-payment", headers=self.headers, json=self._boleto_request())
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json()["error"], "boleto_generation_failed")

    def test_notification_marks_order_paid_after_company_validation(self) -> None:
        self._configure_company_token()
        FakeMercadoPagoClient.payments = {
            ("platform-token", "55"): {"id": 55, "external_reference": self.order["id"], "status": "pending"},
            ("company-token", "55"): {
                "id": 55,
                "external_reference": self.order["id"],
                "status": "approved",
                "transaction_amount": 900.0,
            },
        }

        response = self.client.post("/api/mp-notify", json={"type": "payment", "data": {"id": "55"}})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"success": True})

        order = self.client.get(f"/api/orders/{self.order['id']}", headers=self.headers).get_json()
        self.assertEqual(order["payment_status"], "Paid")
        self.assertEqual(order["total_payed"], 900.0)
        notifications = self.client.get("/api/notifications", headers=self.headers).get_json()["items"]
        self.assertEqual(notifications[0]["title"], "Pagamento aprovado")

    def test_notification_not_approved_keeps_order_unpaid(self) -> None:
        self._configure_company_token()
        FakeMercadoPagoClient.payments = {
            ("platform-token", "56"): {"id": 56, "external_reference": self.order["id"]},
            ("company-token", "56"): {"id": 56, "external_reference": self.order["id"], "status": "pending"},
        }

        response = self.client.post("/api/mp-notify", json={"data": {"id": "56"}})
        self.assertEqual(response.status_code, 200)
        order = self.client.get(f"/api/orders/{self.order['id']}", headers=self.headers).get_json()
        self.assertEqual(order["payment_status"], "Unpaid")

    def test_notification_without_payment_id(self) -> None:
        response = self.client.post("/api/mp-notify", json={"type": "payment"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "payment_id_missing")


if __name__ == "__main__":
    unittest.main()
