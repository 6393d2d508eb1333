# fiscal/tasks.py
"""
Tasks Celery do journaling KRA.

Fila dedicada (KRA_JOURNALING_QUEUE), separada do atendimento HTTP.
Até 3 tentativas no total; entre elas, esperas de 60s e 300s
(600s fica reservado para uma eventual quarta tentativa).
"""

import logging

from celery import shared_task

from commons.context import CallContext
from fiscal.kra_errors import KraError
from fiscal.services.journaling_service import run_journaling

logger = logging.getLogger("icore.fiscal")

JOURNAL_MAX_ATTEMPTS = 3
JOURNAL_BACKOFF_SECONDS = (60, 300, 600)


@shared_task(
    name="fiscal.tasks.journal_transaction",
    bind=True,
    max_retries=JOURNAL_MAX_ATTEMPTS - 1,
    acks_late=True,
)
def journal_transaction(self, transaction_id: str, trace_id: str | None = None) -> str:
    """
    Executa uma tentativa de journaling e agenda a próxima em caso de KraError.

    Esgotadas as tentativas, a transação permanece FAILED e a task falha.
    """
    context = CallContext.background(trace_id)
    attempt = self.request.retries + 1

    try:
        tx = run_journaling(transaction_id=transaction_id, context=context)
    except KraError as exc:
        if self.request.retries >= self.max_retries:
            logger.error(
                "journaling_falha_definitiva",
                extra={
                    "event": "kra_journal",
                    "trace_id": context.trace_id,
                    "transaction_id": transaction_id,
                    "attempt": attempt,
                    "error": exc.message,
                },
            )
            raise

        countdown = JOURNAL_BACKOFF_SECONDS[min(self.request.retries, len(JOURNAL_BACKOFF_SECONDS) - 1)]
        logger.warning(
            "journaling_retry_agendado",
            extra={
                "event": "kra_journal",
                "trace_id": context.trace_id,
                "transaction_id": transaction_id,
                "attempt": attempt,
                "countdown": countdown,
            },
        )
        raise self.retry(exc=exc, countdown=countdown, kwargs={"trace_id": context.trace_id})

    return tx.journal_status
