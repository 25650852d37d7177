from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict

from chopphub.db import new_id
from chopphub.domain.contracts import NfeCreateInput, NfeEmailInput, ServiceOutput
from chopphub.errors import AuthenticationError, NotFoundError, ValidationError, require_fields
from chopphub.infrastructure.repositories.account_repository import AccountRepository
from chopphub.infrastructure.repositories.catalog_repository import CustomerRepository
from chopphub.infrastructure.repositories.invoice_repository import InvoiceRepository
from chopphub.infrastructure.repositories.order_repository import OrderRepository
from chopphub.infrastructure.repositories.settings_repository import (
    EmailCredentialRepository,
    FiscalOperationRepository,
    NfeCredentialRepository,
)
from chopphub.integrations import sendgrid
from chopphub.integrations.focus_nfe import (
    FocusNfeClient,
    build_invoice_data,
    extract_mensagem_sefaz,
    is_authorized,
    poll_status,
)
from chopphub.integrations.http import config_value
from chopphub.storage import LocalFileStorage, company_file_path, get_storage
from chopphub.ui_strings import success_message


logger = logging.getLogger(__name__)

NFE_FILES_AREA = "nfe-files"


def nfe_file_path(company_id: str, kind: str, ref: str) -> str:
    extension = "pdf" if kind == "pdf" else "xml"
    return company_file_path(NFE_FILES_AREA, company_id, extension, f"{ref}.{extension}")


def _status_fields(result: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "status": result.get("status"),
        "numero": result.get("numero"),
        "serie": result.get("serie"),
        "chave_nfe": result.get("chave"),
        "xml_url": result.get("xml_url"),
        "danfe_url": result.get("danfe_url"),
        "data_emissao": result.get("data_emissao"),
        "mensagem_sefaz": result.get("mensagem_sefaz"),
    }


class NfeService:
    """NF-e emission through Focus NFe and the local invoice mirror."""

    def __init__(
        self,
        client_factory=FocusNfeClient,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client_factory = client_factory
        self.sleep = sleep

    def _client(self, db, company_id: str) -> FocusNfeClient:
        credentials = NfeCredentialRepository(company_id=company_id).get_current(db)
        if not credentials or not credentials.get("focus_token"):
            raise ValidationError(code="nfe_credentials_missing", message_key="nfe_credentials_missing")
        return self.client_factory(credentials["focus_token"], credentials.get("environment"))

    def _order_bundle(self, db, company_id: str, order_id: str) -> Dict[str, Any]:
        orders = OrderRepository(company_id=company_id)
        order = orders.get(db, order_id)
        if not order:
            raise NotFoundError(code="order_not_found", message_key="order_not_found")
        customer = None
        if order.get("customer_id"):
            customer = CustomerRepository(company_id=company_id).get(db, order["customer_id"])
        return {
            "order": order,
            "customer": customer,
            "items": orders.list_items(db, order_id),
            "company": AccountRepository().get_company(db, company_id) or {},
        }

    def order_context(self, db, *, company_id: str, order_id: str) -> ServiceOutput:
        bundle = self._order_bundle(db, company_id, order_id)
        return ServiceOutput(
            payload={
                "order": bundle["order"],
                "customer": bundle["customer"],
                "products": bundle["items"],
                "operations": FiscalOperationRepository(company_id=company_id).list(db),
                "emitter": bundle["company"],
            }
        )

    def list_invoices(self, db, *, company_id: str, search: str | None = None) -> ServiceOutput:
        return ServiceOutput(payload={"items": InvoiceRepository(company_id=company_id).list(db, search=search)})

    def create_invoice(self, db, *, company_id: str, create_input: NfeCreateInput) -> ServiceOutput:
        bundle = self._order_bundle(db, company_id, create_input.order_id)
        order = bundle["order"]
        if create_input.invoice_data:
            invoice_data = dict(create_input.invoice_data)
        else:
            if not bundle["customer"]:
                raise NotFoundError(code="customer_not_found", message_key="customer_not_found")
            operation = None
            if create_input.operation_id:
                operation = FiscalOperationRepository(company_id=company_id).get(db, create_input.operation_id)
                if not operation:
                    raise NotFoundError()
            invoice_data = build_invoice_data(
                order, bundle["customer"], bundle["items"], bundle["company"], operation
            )

        ref = create_input.ref or f"{order.get('note_number') or order['id'][:8]}-{new_id()[:8]}"
        client = self._client(db, company_id)
        response = client.create(ref, invoice_data)

        invoice = InvoiceRepository(company_id=company_id).insert(
            db,
            {
                "order_id": order["id"],
                "ref": ref,
                "status": response.get("status") or "processando_autorizacao",
                "natureza_operacao": invoice_data.get("natureza_operacao"),
                "note_number": order.get("note_number"),
                "customer_name": order.get("customer"),
                "valor_total": invoice_data.get("valor_total", order.get("total")),
                "mensagem_sefaz": extract_mensagem_sefaz(response),
            },
        )
        db.commit()
        logger.info("nfe_created", extra={"ref": ref, "order_id": order["id"], "nfe_status": invoice["status"]})
        return ServiceOutput(
            payload={"success": True, "ref": ref, "invoice_id": invoice["id"], "status": invoice["status"], "data": response},
            status_code=201,
        )

    def _invoice_by_ref(self, db, company_id: str, ref: str) -> Dict[str, Any]:
        invoice = InvoiceRepository(company_id=company_id).get_by_ref(db, ref)
        if not invoice:
            raise NotFoundError(code="invoice_not_found", message_key="invoice_not_found")
        return invoice

    def refresh_status(self, db, *, company_id: str, ref: str) -> ServiceOutput:
        self._invoice_by_ref(db, company_id, ref)
        result = self._client(db, company_id).status(ref)
        InvoiceRepository(company_id=company_id).update_by_ref(db, ref, _status_fields(result))
        db.commit()
        return ServiceOutput(payload={"success": True, "data": result, "mensagem_sefaz": result.get("mensagem_sefaz")})

    def fetch_links(self, db, *, company_id: str, ref: str, invoice_id: str | None = None) -> ServiceOutput:
        invoice = self._invoice_by_ref(db, company_id, ref)
        if invoice_id and invoice["id"] != invoice_id:
            raise NotFoundError(code="invoice_not_found", message_key="invoice_not_found")
        client = self._client(db, company_id)
        result = poll_status(
            client,
            ref,
            attempts=int(config_value("NFE_POLL_ATTEMPTS", 6)),
            interval_ms=int(config_value("NFE_POLL_INTERVAL_MS", 2000)),
            sleep=self.sleep,
        )
        missing_links = not (result.get("xml_url") and result.get("danfe_url"))
        if is_authorized(result.get("status")) and missing_links and invoice_id:
            stored = self._store_files(client, company_id, ref)
            result = {
                **result,
                "xml_url": stored["xml_url"] or result.get("xml_url"),
                "danfe_url": stored["pdf_url"] or result.get("danfe_url"),
            }

        InvoiceRepository(company_id=company_id).update_by_ref(db, ref, _status_fields(result))
        db.commit()
        return ServiceOutput(payload={"success": True, "data": result, "mensagem_sefaz": result.get("mensagem_sefaz")})

    def fetch_files(self, db, *, company_id: str, ref: str, invoice_id: str, storage: LocalFileStorage) -> ServiceOutput:
        invoices = InvoiceRepository(company_id=company_id)
        invoice = invoices.get(db, invoice_id)
        if not invoice or invoice.get("ref") != ref:
            raise NotFoundError(code="invoice_not_found", message_key="invoice_not_found")
        stored = self._store_files(self._client(db, company_id), company_id, ref, storage=storage)
        invoices.update(db, invoice_id, {"xml_url": stored["xml_url"], "danfe_url": stored["pdf_url"]})
        db.commit()
        return ServiceOutput(payload={"success": True, "xmlUrl": stored["xml_url"], "pdfUrl": stored["pdf_url"]})

    def _store_files(
        self,
        client: FocusNfeClient,
        company_id: str,
        ref: str,
        storage: LocalFileStorage | None = None,
    ) -> Dict[str, Any]:
        storage = storage or get_storage()
        xml_path = storage.upload(nfe_file_path(company_id, "xml", ref), client.download(ref, "xml"), "application/xml")
        pdf_path = storage.upload(nfe_file_path(company_id, "pdf", ref), client.download(ref, "pdf"), "application/pdf")
        logger.info("nfe_files_stored", extra={"ref": ref})
        return {"xml_url": storage.public_url(xml_path), "pdf_url": storage.public_url(pdf_path)}

    def cancel(self, db, *, company_id: str, ref: str, motivo: str) -> ServiceOutput:
        justificativa = str(motivo or "").strip()
        if not justificativa:
            raise ValidationError(code="field_required", message_key="field_required", payload={"field": "motivo"})
        self._invoice_by_ref(db, company_id, ref)

        response = self._client(db, company_id).cancel(ref, justificativa)
        InvoiceRepository(company_id=company_id).update_by_ref(
            db,
            ref,
            {"status": "cancelado", "mensagem_sefaz": extract_mensagem_sefaz(response)},
        )
        db.commit()
        logger.info("nfe_cancelled", extra={"ref": ref})
        return ServiceOutput(payload={"success": True, "message": success_message("nfe_cancelled"), "data": response})

    def send_email(self, db, *, company_id: str, email_input: NfeEmailInput, storage: LocalFileStorage) -> ServiceOutput:
        require_fields({"refId": email_input.ref, "toEmail": email_input.to_email}, "refId", "toEmail")
        credentials = EmailCredentialRepository(company_id=company_id).get_current(db)
        if not credentials or not credentials.get("sendgrid_api_key"):
            raise AuthenticationError(code="email_credentials_missing", message_key="email_credentials_missing")

        ref = email_input.ref
        self._invoice_by_ref(db, company_id, ref)
        xml_path = nfe_file_path(company_id, "xml", ref)
        pdf_path = nfe_file_path(company_id, "pdf", ref)
        if not (storage.exists(xml_path) and storage.exists(pdf_path)):
            raise NotFoundError(code="nfe_files_missing", message_key="nfe_files_missing")

        sendgrid.send_mail(
            credentials["sendgrid_api_key"],
            sendgrid.MailSender(
                email=credentials["sender_email"],
                name=credentials.get("sender_name") or "Sua Empresa",
            ),
            email_input.to_email,
            email_input.subject or f"NF-e {ref}",
            email_input.body or f"Segue em anexo a NF-e {ref}.",
            html=email_input.body or f"<p>Segue em anexo a NF-e <strong>{ref}</strong>.</p>",
            attachments=(
                sendgrid.MailAttachment(f"DANFE-{ref}.pdf", storage.download(pdf_path), "application/pdf"),
                sendgrid.MailAttachment(f"NF-e-{ref}.xml", storage.download(xml_path), "application/xml"),
            ),
        )
        return ServiceOutput(payload={"success": True, "message": success_message("email_sent")})
