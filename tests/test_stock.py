import unittest

from chopphub.application.stock_service import stock_delta
from chopphub.db import close_db
from tests.api_utils import build_temp_app, company_headers, create_company, create_product
from tests.helpers.temp_db import TempDbSandbox


class StockDeltaTest(unittest.TestCase):
    def test_signs_per_movement_type(self) -> None:
        self.assertEqual(stock_delta("input", 5), 5)
        self.assertEqual(stock_delta("return", 2), 2)
        self.assertEqual(stock_delta("output", 3), -3)
        self.assertEqual(stock_delta("adjustment", -4), -4)


class StockMovementsApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="stock_api")
        self.app = build_temp_app(self._temp_db)
        self.client = self.app.test_client()
        self.headers = company_headers(create_company(self.app))
        self.product = create_product(self.client, self.headers)

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _register(self, movement_type: str, quantity, **extra):
        payload = {"productId": self.product["id"], "type": movement_type, "quantity": quantity}
        payload.update(extra)
        return self.client.post("/api/stock-movements/register", headers=self.headers, json=payload)

    def test_movements_update_product_stock(self) -> None:
        entry = self._register("input", 5, reason="Compra", noteId="NF-10")
        self.assertEqual(entry.status_code, 201)
        self.assertEqual(entry.get_json()["stock"], 15.0)

        self.assertEqual(self._register("output", "3").get_json()["stock"], 12.0)
        self.assertEqual(self._register("adjustment", -2).get_json()["stock"], 10.0)

        product = self.client.get(f"/api/products/{self.product['id']}", headers=self.headers).get_json()
        self.assertEqual(product["stock"], 10.0)

        movements = self.client.get(
            f"/api/stock-movements?product_id={self.product['id']}", headers=self.headers
        ).get_json()["items"]
        self.assertEqual(len(movements), 3)
        self.assertEqual(sorted(item["type"] for item in movements), ["adjustment", "input", "output"])
        entry_row = next(item for item in movements if item["type"] == "input")
        self.assertEqual(entry_row["note_id"], "NF-10")

    def test_invalid_movements_are_rejected(self) -> None:
        unknown_type = self._register("transfer", 1)
        self.assertEqual(unknown_type.status_code, 400)
        self.assertEqual(unknown_type.get_json()["field"], "type")

        negative_output = self._register("output", -1)
        self.assertEqual(negative_output.status_code, 400)
        self.assertEqual(negative_output.get_json()["field"], "quantity")

        self.assertEqual(self._register("input", 0).status_code, 400)

    def test_unknown_product_returns_404(self) -> None:
        response = self.client.post(
            "/api/stock-movements/register",
            headers=self.headers,
            json={"productId": "missing", "type": "input", "quantity": 1},
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["error"], "product_not_found")


if __name__ == "__main__":
    unittest.main()
