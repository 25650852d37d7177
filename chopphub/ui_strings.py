from __future__ import annotations

from typing import Dict


PAYMENT_STATUS_LABELS: Dict[str, str] = {
    "Paid": "Pago",
    "Unpaid": "Pendente",
}


LOAN_STATUS_LABELS: Dict[str, str] = {
    "active": "Emprestado",
    "partially_returned": "Devolucao parcial",
    "returned": "Devolvido",
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "error": {
        "unexpected_error": "Nao foi possivel concluir a operacao. Tente novamente.",
        "auth_required": "Autenticacao necessaria.",
        "invalid_credentials": "Credenciais invalidas. Tente novamente.",
        "user_blocked": "Usuario bloqueado. Procure o administrador da empresa.",
        "email_taken": "Email ja cadastrado. Use outro email ou faca login.",
        "company_required": "Empresa nao encontrada para o usuario.",
        "permission_denied": "Voce nao tem permissao para esta acao.",
        "validation_error": "Dados invalidos.",
        "field_required": "Campo obrigatorio ausente.",
        "invalid_document": "CPF/CNPJ invalido.",
        "invalid_date": "Data invalida. Use o formato AAAA-MM-DD.",
        "not_found": "Registro nao encontrado.",
        "customer_not_found": "Cliente nao encontrado.",
        "order_not_found": "Pedido nao encontrado.",
        "product_not_found": "Produto nao encontrado.",
        "invoice_not_found": "NF-e nao encontrada.",
        "loan_not_found": "Emprestimo nao encontrado.",
        "member_not_found": "Usuario nao pertence a esta empresa.",
        "cannot_delete_self": "Voce nao pode deletar a si mesmo.",
        "record_in_use": "Registro em uso por outros cadastros.",
        "cannot_block_self": "Voce nao pode bloquear a si mesmo.",
        "reset_token_invalid": "Link de redefinicao invalido ou expirado.",
        "rate_limit_exceeded": "Muitas requisicoes. Tente novamente em instantes.",
        "items_required": "Informe ao menos um item.",
        "customer_has_overdue_boletos": "Cliente possui boletos vencidos.",
        "return_exceeds_remaining": "Quantidade devolvida maior que a quantidade em comodato.",
        "integration_not_configured": "Integracao nao configurada para esta empresa.",
        "asaas_customer_name_required": "Nome e obrigatorio para o Asaas.",
        "asaas_customer_identity_required": "Informe CPF/CNPJ ou e-mail para sincronizar com o Asaas.",
        "asaas_customer_not_synced": "Cliente nao sincronizado com o Asaas.",
        "webhook_unauthorized": "Token de webhook invalido.",
        "payment_id_missing": "ID do pagamento nao fornecido.",
        "payment_reference_missing": "Pagamento sem referencia externa.",
        "boleto_generation_failed": "Erro ao gerar boleto.",
        "nfe_credentials_missing": "Token da Focus NFe nao configurado.",
        "nfe_product_incomplete": "Produto sem NCM ou unidade definida.",
        "nfe_files_missing": "Arquivos da NF-e nao encontrados.",
        "email_credentials_missing": "Credenciais SendGrid nao encontradas.",
        "provider_rejected": "O provedor recusou a operacao. Revise os dados enviados.",
        "provider_unavailable": "Provedor externo indisponivel no momento. Tente novamente.",
        "cnpj_lookup_failed": "Erro ao buscar CNPJ nas APIs.",
    },
    "success": {
        "saved": "Registro salvo com sucesso.",
        "deleted": "Registro removido com sucesso.",
        "order_created": "Pedido criado!",
        "loan_registered": "Emprestimo registrado com sucesso.",
        "return_registered": "Itens retornados com sucesso!",
        "return_without_collection": "Retorno registrado como nenhum item coletado.",
        "nfe_cancelled": "NF-e cancelada com sucesso!",
        "email_sent": "E-mail enviado com sucesso.",
        "payment_approved": "Pagamento aprovado",
        "reset_sent": "Se o e-mail existir, enviaremos um link de redefinicao.",
    },
}


def get_message(category: str, key: str, default: str | None = None) -> str:
    bucket = MESSAGES.get(category) or {}
    value = bucket.get(str(key or "").strip())
    if value:
        return value
    return default if default is not None else str(key or "")


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def payment_status_label(status: str | None) -> str:
    return PAYMENT_STATUS_LABELS.get(str(status or ""), "-")
