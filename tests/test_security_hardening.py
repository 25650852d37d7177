import unittest

from chopphub.db import close_db
from chopphub.observability import reset_metrics_for_tests
from chopphub.security import reset_rate_limiter_for_tests
from chopphub.ui_strings import error_message
from tests.api_utils import build_temp_app
from tests.helpers.temp_db import TempDbSandbox


class SecurityHardeningTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="security_hardening")
        self.app = build_temp_app(
            self._temp_db,
            RATE_LIMIT_ENABLED=True,
            RATE_LIMIT_WINDOW_SECONDS=60,
            RATE_LIMIT_MAX_REQUESTS=300,
        )
        self.client = self.app.test_client()
        reset_rate_limiter_for_tests()
        reset_metrics_for_tests()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()
        reset_rate_limiter_for_tests()
        reset_metrics_for_tests()

    def test_rate_limit_blocks_excessive_api_calls(self) -> None:
        self.app.config["RATE_LIMIT_MAX_REQUESTS"] = 2

        first = self.client.get("/api/unknown")
        second = self.client.get("/api/unknown")
        third = self.client.get("/api/unknown")

        self.assertEqual(first.status_code, 404)
        self.assertEqual(second.status_code, 404)
        self.assertEqual(third.status_code, 429)
        payload = third.get_json() or {}
        self.assertEqual(payload.get("error"), "rate_limit_exceeded")
        self.assertEqual(payload.get("message"), error_message("rate_limit_exceeded"))
        self.assertGreaterEqual(int(payload.get("retry_after") or 0), 0)

    def test_webhooks_are_never_throttled(self) -> None:
        self.app.config["RATE_LIMIT_MAX_REQUESTS"] = 1

        statuses = [self.client.post("/api/asaas/webhook", json={}).status_code for _ in range(3)]
        self.assertNotIn(429, statuses)

    def test_health_exposes_db_backend_and_http_metrics(self) -> None:
        self.client.get("/api/unknown")

        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json() or {}
        self.assertEqual(payload.get("status"), "ok")
        self.assertEqual(payload.get("db"), "sqlite")
        self.assertIn("http", payload.get("metrics") or {})
        self.assertGreaterEqual(int((payload.get("metrics") or {}).get("http", {}).get("requests_total", 0)), 1)

    def test_security_headers_present(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers.get("X-Content-Type-Options"), "nosniff")
        self.assertEqual(response.headers.get("X-Frame-Options"), "DENY")
        self.assertEqual(response.headers.get("Referrer-Policy"), "strict-origin-when-cross-origin")
        self.assertTrue((response.headers.get("Content-Security-Policy") or "").strip())
        self.assertTrue((response.headers.get("X-Request-Id") or "").strip())
        self.assertTrue((response.headers.get("X-Response-Time-Ms") or "").strip())


if __name__ == "__main__":
    unittest.main()
