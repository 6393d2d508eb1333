# fiscal/services/journal_state_machine.py

from __future__ import annotations

import logging
from typing import Iterable

from django.core.exceptions import ValidationError
from django.utils import timezone

from fiscal.models import JournalStatus, Transaction

logger = logging.getLogger("icore.fiscal")


# PENDING → QUEUED → COMPLETED | FAILED
# FAILED → QUEUED apenas quando o worker inicia uma nova tentativa.
# QUEUED → QUEUED cobre a reentrega de uma tentativa interrompida.
TRANSICOES_VALIDAS: dict[str, set[str]] = {
    JournalStatus.PENDING: {JournalStatus.QUEUED},
    JournalStatus.QUEUED: {JournalStatus.QUEUED, JournalStatus.COMPLETED, JournalStatus.FAILED},
    JournalStatus.FAILED: {JournalStatus.QUEUED},
    JournalStatus.COMPLETED: set(),
}


class JournalStateMachine:
    """
    ÚNICO ponto autorizado a trocar o journal_status de uma Transaction.
    Campos de assinatura nunca são tocados aqui.
    """

    @classmethod
    def mudar_status(
        cls,
        tx: Transaction,
        novo_status: str,
        *,
        error_message: str | None = None,
        trace_id: str | None = None,
    ) -> None:
        status_atual = tx.journal_status

        permitidos: Iterable[str] = TRANSICOES_VALIDAS.get(status_atual, set())
        if novo_status not in permitidos:
            raise ValidationError(
                f"Transição de journal {status_atual} → {novo_status} não é permitida para transação {tx.id}."
            )

        update_fields = ["journal_status", "updated_at"]
        tx.journal_status = novo_status

        if novo_status == JournalStatus.QUEUED:
            tx.journal_attempts += 1
            update_fields.append("journal_attempts")
        elif novo_status == JournalStatus.COMPLETED:
            tx.journal_error_message = None
            tx.journaled_at = timezone.now()
            update_fields += ["journal_error_message", "journaled_at"]
        elif novo_status == JournalStatus.FAILED:
            tx.journal_error_message = error_message or "Falha desconhecida no journaling."
            update_fields.append("journal_error_message")

        tx.save(update_fields=update_fields)

        logger.info(
            "journal_status_transicao",
            extra={
                "event": "kra_journal_status",
                "trace_id": trace_id,
                "transaction_id": str(tx.id),
                "status_anterior": status_atual,
                "status_novo": novo_status,
                "attempt": tx.journal_attempts,
            },
        )

    @classmethod
    def para_queued(cls, tx: Transaction, **kwargs) -> None:
        cls.mudar_status(tx, JournalStatus.QUEUED, **kwargs)

    @classmethod
    def para_completed(cls, tx: Transaction, **kwargs) -> None:
        cls.mudar_status(tx, JournalStatus.COMPLETED, **kwargs)

    @classmethod
    def para_failed(cls, tx: Transaction, **kwargs) -> None:
        cls.mudar_status(tx, JournalStatus.FAILED, **kwargs)
