import json
import logging
import unittest

from chopphub import create_app
from chopphub.config import Config
from chopphub.db import close_db
from chopphub.observability import (
    JsonLogFormatter,
    metrics_snapshot,
    observe_provider_call,
    reset_metrics_for_tests,
    set_log_request_id,
)
from tests.helpers.temp_db import TempDbSandbox


class _MetricsConfig(Config):
    TESTING = False
    DB_AUTO_INIT = False
    AUTH_ENABLED = False


class ObservabilityPrometheusTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="observability_metrics")
        cfg = self._temp_db.make_config(_MetricsConfig, TESTING=False, DB_AUTO_INIT=False)
        self.app = create_app(cfg)
        self.client = self.app.test_client()
        reset_metrics_for_tests()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()
        reset_metrics_for_tests()

    def test_metrics_endpoint_exposes_prometheus_metrics(self) -> None:
        self.client.get("/api/unknown")
        observe_provider_call("asaas", 200, 120.0)
        observe_provider_call("focus_nfe", None, 30000.0)

        response = self.client.get("/metrics")
        self.assertEqual(response.status_code, 200)
        content_type = response.headers.get("Content-Type") or ""
        self.assertIn("text/plain", content_type)

        payload = response.get_data(as_text=True)
        self.assertIn("http_request_total", payload)
        self.assertIn("http_request_duration_ms_bucket", payload)
        self.assertIn("provider_call_total", payload)
        self.assertIn("provider_call_duration_ms_bucket", payload)
        self.assertIn('provider="asaas"', payload)
        self.assertIn('outcome="transport_error"', payload)

    def test_snapshot_counts_provider_calls(self) -> None:
        observe_provider_call("mercado_pago", 201, 80.0)
        observe_provider_call("mercado_pago", 500, 90.0)

        providers = metrics_snapshot().get("providers") or {}
        self.assertIn("mercado_pago", providers)

    def test_log_formatter_includes_request_id_outside_request_context(self) -> None:
        set_log_request_id("worker-req-123")
        formatter = JsonLogFormatter()
        record = logging.LogRecord(
            name="chopphub",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="nfe_status_polled",
            args=(),
            exc_info=None,
        )
        parsed = json.loads(formatter.format(record))
        self.assertEqual(parsed.get("request_id"), "worker-req-123")
        self.assertEqual(parsed.get("message"), "nfe_status_polled")


if __name__ == "__main__":
    unittest.main()
