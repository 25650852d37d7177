import unittest
from datetime import date
from unittest import mock

from chopphub.db import close_db
from chopphub.errors import ValidationError
from chopphub.integrations.focus_nfe import (
    auth_header,
    build_cofins_fields,
    build_invoice_data,
    build_pis_fields,
    extract_mensagem_sefaz,
    poll_status,
)
from chopphub.routes import nfe_routes
from tests.api_utils import (
    VALID_CNPJ,
    VALID_CPF,
    build_temp_app,
    company_headers,
    create_company,
    create_customer,
    create_order,
    create_product,
)
from tests.helpers.temp_db import TempDbSandbox


class FakeFocusClient:
    statuses: list = []
    created: list = []
    cancelled: list = []

    def __init__(self, token, environment=None) -> None:
        self.token = token
        self.environment = environment

    def create(self, ref, invoice):
        FakeFocusClient.created.append((ref, invoice))
        return {"status": "processando_autorizacao"}

    def status(self, ref):
        if len(FakeFocusClient.statuses) > 1:
            return FakeFocusClient.statuses.pop(0)
        return FakeFocusClient.statuses[0]

    def cancel(self, ref, justificativa):
        FakeFocusClient.cancelled.append((ref, justificativa))
        return {"status": "cancelado", "mensagem_sefaz": "Cancelamento homologado"}

    def download(self, ref, extension):
        return f"<{extension} {ref}>".encode("utf-8")


class TaxFieldsTest(unittest.TestCase):
    def test_cst_with_base_is_zero_padded(self) -> None:
        fields = build_pis_fields({"pis_situacao_tributaria": "1", "valor_bruto": 100, "aliquota_pis": 1.65, "valor_pis": 1.65})
        self.assertEqual(
            fields,
            {
                "pis_situacao_tributaria": "01",
                "valor_base_calculo_pis": 100.0,
                "aliquota_pis": 1.65,
                "valor_pis": 1.65,
            },
        )

    def test_cst_without_base_and_unknown_fallback(self) -> None:
        self.assertEqual(build_cofins_fields({"cofins_situacao_tributaria": "07"}), {"cofins_situacao_tributaria": "07"})
        self.assertEqual(build_cofins_fields({"cofins_situacao_tributaria": "50"}), {"cofins_situacao_tributaria": "06"})

    def test_explicit_base_wins_over_gross_value(self) -> None:
        fields = build_cofins_fields(
            {"cofins_situacao_tributaria": "99", "valor_bruto": 100, "valor_base_calculo_cofins": 80}
        )
        self.assertEqual(fields["valor_base_calculo_cofins"], 80.0)
        self.assertEqual(fields["aliquota_cofins"], 0.0)


class InvoiceDataTest(unittest.TestCase):
    def setUp(self) -> None:
        self.order = {"freight": 10, "payment_method": "Boleto"}
        self.customer = {"name": "Bar do Ze", "document": VALID_CPF, "phone": "5511987654321", "zip_code": "01001-000"}
        self.company = {"name": "Distribuidora", "document": VALID_CNPJ}
        self.items = [{"name": "Chopp Pilsen 50L", "code": "CH50", "ncm": "2203.00.00", "unit": "UN", "quantity": 2, "price": 450}]

    def test_builds_totals_recipient_and_payment_form(self) -> None:
        data = build_invoice_data(self.order, self.customer, self.items, self.company, issue_date=date(2030, 1, 10))
        self.assertEqual(data["valor_produtos"], 900.0)
        self.assertEqual(data["valor_total"], 910.0)
        self.assertEqual(data["cpf_destinatario"], VALID_CPF)
        self.assertNotIn("cnpj_destinatario", data)
        self.assertEqual(data["telefone_destinatario"], "11987654321")
        self.assertEqual(data["inscricao_estadual_destinatario"], "ISENTO")
        self.assertEqual(data["formas_pagamento"][0]["forma_pagamento"], "15")
        self.assertEqual(data["data_emissao"], "2030-01-10")

        item = data["items"][0]
        self.assertEqual(item["codigo_ncm"], "22030000")
        self.assertEqual(item["cfop"], "5102")
        self.assertEqual(item["pis_situacao_tributaria"], "07")

    def test_operation_overrides_cfop_and_taxes(self) -> None:
        operation = {
            "natureza_operacao": "Venda interestadual",
            "cfop": "6102",
            "pis_situacao_tributaria": "01",
            "cofins_situacao_tributaria": "01",
            "aliquota_pis": 1.65,
            "aliquota_cofins": 7.6,
        }
        data = build_invoice_data(
            {"payment_method": "Pix"}, self.customer, self.items, self.company, operation, issue_date=date(2030, 1, 10)
        )
        item = data["items"][0]
        self.assertEqual(data["natureza_operacao"], "Venda interestadual")
        self.assertEqual(item["cfop"], "6102")
        self.assertEqual(item["valor_pis"], 14.85)
        self.assertEqual(item["valor_cofins"], 68.4)
        self.assertEqual(data["formas_pagamento"][0]["forma_pagamento"], "01")

    def test_product_without_ncm_is_rejected(self) -> None:
        items = [{"name": "Copo", "unit": "UN", "quantity": 1, "price": 5}]
        with self.assertRaises(ValidationError) as ctx:
            build_invoice_data(self.order, self.customer, items, self.company)
        self.assertEqual(ctx.exception.code, "nfe_product_incomplete")
        self.assertEqual(ctx.exception.payload["product"], "Copo")

    def test_auth_header_and_sefaz_message(self) -> None:
        self.assertEqual(auth_header(" abc\n"), "Basic YWJjOg==")
        self.assertEqual(extract_mensagem_sefaz({"erros": [{"mensagem": "A"}, {"mensagem": "B"}]}), "A; B")
        self.assertEqual(extract_mensagem_sefaz({"retornos": [{"mensagem": "Rejeicao"}]}), "Rejeicao")


class PollStatusTest(unittest.TestCase):
    def test_polls_until_links_appear(self) -> None:
        client = mock.Mock()
        client.status.side_effect = [
            {"status": "autorizado"},
            {"status": "autorizado"},
            {"status": "autorizado", "xml_url": "/x.xml", "danfe_url": "/d.pdf"},
        ]
        sleep = mock.Mock()

        result = poll_status(client, "REF", attempts=5, interval_ms=100, sleep=sleep)

        self.assertEqual(result["xml_url"], "/x.xml")
        self.assertEqual(client.status.call_count, 3)
        sleep.assert_called_with(0.1)

    def test_not_authorised_returns_immediately(self) -> None:
        client = mock.Mock()
        client.status.return_value = {"status": "erro_autorizacao"}
        sleep = mock.Mock()

        result = poll_status(client, "REF", attempts=5, interval_ms=100, sleep=sleep)

        self.assertEqual(result["status"], "erro_autorizacao")
        sleep.assert_not_called()


class NfeApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="nfe_api")
        self.app = build_temp_app(self._temp_db, NFE_POLL_ATTEMPTS=2, NFE_POLL_INTERVAL_MS=1)
        self.client = self.app.test_client()
        self.company_id = create_company(self.app, document=VALID_CNPJ, state="SP", city="Sao Paulo")
        self.headers = company_headers(self.company_id)
        customer = create_customer(self.client, self.headers)
        product = create_product(self.client, self.headers)
        self.order = create_order(self.client, self.headers, customer["id"], product["id"]).get_json()

        FakeFocusClient.statuses = [{"status": "processando_autorizacao"}]
        FakeFocusClient.created = []
        FakeFocusClient.cancelled = []
        for name, value in (("client_factory", FakeFocusClient), ("sleep", mock.Mock())):
            patcher = mock.patch.object(nfe_routes._NFE_SERVICE, name, value)
            patcher.start()
            self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _configure(self) -> None:
        self.client.put(
            "/api/settings/nfe-credentials",
            headers=self.headers,
            json={"focus_token": "focus-token", "environment": "homologacao"},
        )

    def _create(self, ref: str = "REF1") -> dict:
        response = self.client.post("/api/nfe/create", headers=self.headers, json={"orderId": self.order["id"], "ref": ref})
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()

    def test_create_requires_credentials(self) -> None:
        response = self.client.post("/api/nfe/create", headers=self.headers, json={"orderId": self.order["id"]})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "nfe_credentials_missing")

    def test_order_context_lists_products(self) -> None:
        response = self.client.get(f"/api/nfe/order?order_id={self.order['id']}", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["order"]["id"], self.order["id"])
        self.assertEqual(payload["products"][0]["ncm"], "22030000")
        self.assertEqual(payload["emitter"]["document"], VALID_CNPJ)

    def test_create_sends_built_invoice_and_records_it(self) -> None:
        self._configure()
        created = self._create()
        self.assertEqual(created["ref"], "REF1")
        self.assertEqual(created["status"], "processando_autorizacao")

        ref, invoice = FakeFocusClient.created[0]
        self.assertEqual(ref, "REF1")
        self.assertEqual(invoice["cnpj_emitente"], VALID_CNPJ)
        self.assertEqual(invoice["valor_total"], 900.0)

        listed = self.client.get("/api/nfe/invoices?q=ref1", headers=self.headers).get_json()["items"]
        self.assertEqual(len(listed), 1)
        self.assertEqual(listed[0]["note_number"], self.order["note_number"])

    def test_generated_ref_starts_with_note_number(self) -> None:
        self._configure()
        response = self.client.post("/api/nfe/create", headers=self.headers, json={"orderId": self.order["id"]})
        self.assertTrue(response.get_json()["ref"].startswith(f"{self.order['note_number']}-"))

    def test_status_updates_invoice(self) -> None:
        self._configure()
        self._create()
        FakeFocusClient.statuses = [{"status": "autorizado", "numero": "12", "chave": "3520", "mensagem_sefaz": "Autorizado o uso"}]

        response = self.client.post("/api/nfe/status", headers=self.headers, json={"ref": "REF1"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["mensagem_sefaz"], "Autorizado o uso")

        invoice = self.client.get("/api/nfe/invoices", headers=self.headers).get_json()["items"][0]
        self.assertEqual(invoice["status"], "autorizado")
        self.assertEqual(invoice["numero"], "12")
        self.assertEqual(invoice["chave_nfe"], "3520")

    def test_fetch_links_downloads_files_when_provider_has_none(self) -> None:
        self._configure()
        invoice_id = self._create()["invoice_id"]
        FakeFocusClient.statuses = [{"status": "autorizado"}]

        response = self.client.post(
            "/api/nfe/fetch-links", headers=self.headers, json={"ref": "REF1", "invoiceId": invoice_id}
        )
        self.assertEqual(response.status_code, 200)
        data = response.get_json()["data"]
        self.assertEqual(data["xml_url"], f"/files/nfe-files/{self.company_id}/xml/REF1.xml")
        self.assertEqual(data["danfe_url"], f"/files/nfe-files/{self.company_id}/pdf/REF1.pdf")

        served = self.client.get(f"/files/nfe-files/{self.company_id}/xml/REF1.xml", headers=self.headers)
        self.assertEqual(served.status_code, 200)
        self.assertEqual(served.data, b"<xml REF1>")
        served.close()

    def test_fetch_files_requires_known_invoice(self) -> None:
        self._configure()
        response = self.client.post(
            "/api/nfe/fetch-files", headers=self.headers, json={"ref": "REF1", "invoiceId": "missing"}
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["error"], "invoice_not_found")

    def test_cancel_requires_reason_and_marks_cancelled(self) -> None:
        self._configure()
        self._create()

        blank = self.client.post("/api/nfe/cancel", headers=self.headers, json={"ref": "REF1", "motivo": "   "})
        self.assertEqual(blank.status_code, 400)

        response = self.client.post(
            "/api/nfe/cancel", headers=self.headers, json={"ref": "REF1", "motivo": "Erro na quantidade do pedido"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(FakeFocusClient.cancelled, [("REF1", "Erro na quantidade do pedido")])
        invoice = self.client.get("/api/nfe/invoices", headers=self.headers).get_json()["items"][0]
        self.assertEqual(invoice["status"], "cancelado")
        self.assertEqual(invoice["mensagem_sefaz"], "Cancelamento homologado")

    def test_send_email_flow(self) -> None:
        payload = {"refId": "REF1", "toEmail": "cliente@bar.com"}
        missing_credentials = self.client.post("/api/nfe/send-email", headers=self.headers, json=payload)
        self.assertEqual(missing_credentials.status_code, 401)
        self.assertEqual(missing_credentials.get_json()["error"], "email_credentials_missing")

        self.client.put(
            "/api/settings/email-credentials",
            headers=self.headers,
            json={"sendgrid_api_key": "SG.key", "sender_email": "Fiscal@Distribuidora.com"},
        )
        unknown_invoice = self.client.post("/api/nfe/send-email", headers=self.headers, json=payload)
        self.assertEqual(unknown_invoice.status_code, 404)
        self.assertEqual(unknown_invoice.get_json()["error"], "invoice_not_found")

        self._configure()
        invoice_id = self._create()["invoice_id"]
        missing_files = self.client.post("/api/nfe/send-email", headers=self.headers, json=payload)
        self.assertEqual(missing_files.status_code, 404)
        self.assertEqual(missing_files.get_json()["error"], "nfe_files_missing")

        self.client.post("/api/nfe/fetch-files", headers=self.headers, json={"ref": "REF1", "invoiceId": invoice_id})

        with mock.patch("chopphub.application.nfe_service.sendgrid.send_mail") as send_mail:
            response = self.client.post("/api/nfe/send-email", headers=self.headers, json=payload)

        self.assertEqual(response.status_code, 200)
        args, kwargs = send_mail.call_args
        self.assertEqual(args[0], "SG.key")
        self.assertEqual(args[1].email, "fiscal@distribuidora.com")
        self.assertEqual(args[1].name, "Sua Empresa")
        self.assertEqual(args[2], "cliente@bar.com")
        self.assertEqual(args[3], "NF-e REF1")
        filenames = [attachment.filename for attachment in kwargs["attachments"]]
        self.assertEqual(filenames, ["DANFE-REF1.pdf", "NF-e-REF1.xml"])

    def test_invoices_and_files_are_isolated_per_company(self) -> None:
        self._configure()
        invoice_id = self._create()["invoice_id"]
        self.client.post("/api/nfe/fetch-files", headers=self.headers, json={"ref": "REF1", "invoiceId": invoice_id})

        other = company_headers(create_company(self.app, name="Outra Distribuidora"))
        self.client.put(
            "/api/settings/nfe-credentials",
            headers=other,
            json={"focus_token": "other-token", "environment": "homologacao"},
        )
        self.client.put(
            "/api/settings/email-credentials",
            headers=other,
            json={"sendgrid_api_key": "SG.other", "sender_email": "fiscal@outra.com"},
        )

        with mock.patch("chopphub.application.nfe_service.sendgrid.send_mail") as send_mail:
            emailed = self.client.post(
                "/api/nfe/send-email", headers=other, json={"refId": "REF1", "toEmail": "x@fora.com"}
            )
        self.assertEqual(emailed.status_code, 404)
        self.assertEqual(emailed.get_json()["error"], "invoice_not_found")
        send_mail.assert_not_called()

        for path, body in (
            ("/api/nfe/status", {"ref": "REF1"}),
            ("/api/nfe/fetch-links", {"ref": "REF1", "invoiceId": invoice_id}),
            ("/api/nfe/fetch-files", {"ref": "REF1", "invoiceId": invoice_id}),
            ("/api/nfe/cancel", {"ref": "REF1", "motivo": "Erro de digitacao"}),
        ):
            response = self.client.post(path, headers=other, json=body)
            self.assertEqual(response.status_code, 404, path)
        self.assertEqual(FakeFocusClient.cancelled, [])

        file_url = f"/files/nfe-files/{self.company_id}/xml/REF1.xml"
        self.assertEqual(self.client.get(file_url, headers=other).status_code, 404)
        owned = self.client.get(file_url, headers=self.headers)
        self.assertEqual(owned.status_code, 200)
        owned.close()

        self.assertEqual(self.client.get("/files/nfe-files/xml/REF1.xml", headers=self.headers).status_code, 404)

    def test_fetch_files_rejects_mismatched_ref(self) -> None:
        self._configure()
        invoice_id = self._create()["invoice_id"]
        response = self.client.post(
            "/api/nfe/fetch-files", headers=self.headers, json={"ref": "OUTRA-REF", "invoiceId": invoice_id}
        )
        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
