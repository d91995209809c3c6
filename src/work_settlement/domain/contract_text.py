"""Contract text generation.

The text is rendered once from an immutable snapshot of the engagement, its
accepted terms and the two parties. Nothing here reads the clock or a
database; the caller passes ``generated_at`` so the same snapshot always
renders the same text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from work_settlement.domain.money import format_brl
from work_settlement.domain.payment_terms import describe_terms, resolve_terms

if TYPE_CHECKING:
    from datetime import datetime

    from work_settlement.domain.payment_terms import PaymentTerms


@dataclass(frozen=True)
class ContractSnapshot:
    engagement_id: str
    job_id: str
    producer_name: str
    worker_name: str
    total_minor_units: int
    terms: PaymentTerms
    generated_at: datetime


def render_contract_text(snapshot: ContractSnapshot) -> str:
    """Render the pt-BR service contract for ``snapshot``."""
    resolution = resolve_terms(snapshot.terms, snapshot.total_minor_units)
    lines = [
        "CONTRATO DE PRESTAÇÃO DE SERVIÇOS RURAIS",
        "",
        "ENTRE:",
        f"Contratante (Produtor): {snapshot.producer_name}",
        f"Contratado (Trabalhador): {snapshot.worker_name}",
        "",
        "1. OBJETO",
        f"Execução do serviço da vaga {snapshot.job_id}, ordem de serviço {snapshot.engagement_id}.",
        "",
        "2. VALORES E PAGAMENTO",
        f"Valor total: {format_brl(resolution.total)}",
        f"Forma de pagamento: {describe_terms(snapshot.terms)}",
        f"Adiantamento: {format_brl(resolution.advance)}",
        f"Saldo na conclusão: {format_brl(resolution.remainder)}",
    ]
    if snapshot.terms.notes:
        lines.append(f"Observações: {snapshot.terms.notes}")
    lines += [
        "Pagamento via plataforma (PIX).",
        "",
        "3. CONDIÇÕES GERAIS",
        "3.1. O CONTRATADO compromete-se a executar os serviços com zelo e competência, "
        "respeitando as normas de segurança do trabalho.",
        "3.2. O CONTRATANTE compromete-se a fornecer as condições necessárias para a "
        "execução do serviço, conforme combinado.",
        "3.3. Este contrato é gerado eletronicamente e passa a valer quando assinado "
        "por ambas as partes.",
        "",
        f"Documento gerado em {snapshot.generated_at:%d/%m/%Y %H:%M} UTC",
    ]
    return "\n".join(lines)
