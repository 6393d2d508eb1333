# fiscal/services/journaling_service.py

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping
from uuid import UUID

from django.utils import timezone

from commons.context import CallContext
from fiscal.kra_codec import KraCommand, build_command, format_amount, to_decimal
from fiscal.kra_errors import KraError
from fiscal.kra_factory import PURPOSE_JOURNAL, PURPOSE_JOURNAL_ITEM, get_kra_transport, resolve_target
from fiscal.kra_transport import KraTransportProtocol
from fiscal.models import JournalStatus, Transaction
from fiscal.services.journal_state_machine import JournalStateMachine
from fiscal.services.signing_service import (
    DEVICE_DATE_FORMAT,
    DEVICE_TIME_FORMAT,
    RECEIPT_TYPE_CODES,
    TRANSACTION_TYPE_CODES,
)
from fiscal.services.tax_service import LineTotals, TaxSummary, compute_tax_summary, journal_tax_fields

logger = logging.getLogger("icore.fiscal")

ITEM_COMMAND = "SEND_RECEIPTITEM"
JOURNAL_COMMAND = "SEND_RECEIPT"


def build_item_command(
    tx: Transaction,
    item: Mapping[str, Any],
    line: LineTotals,
    item_no: int,
) -> KraCommand:
    data: Dict[str, Any] = {
        "RNum": tx.internal_receipt_number,
        "ItemNo": item_no,
        "ItemName": item.get("description") or "",
        "ItemCode": item.get("code") or "",
        "ItemQuantity": format(to_decimal(item["quantity"]), "f"),
        "ItemPrice": format_amount(item["unit_price"]),
        "ItemTotal": format_amount(line.total),
        "ItemTaxRate": format_amount(line.rate),
        "ItemTaxAmount": format_amount(line.tax),
    }
    return build_command(tx.taxpayer.pin, ITEM_COMMAND, data)


def build_journal_command(tx: Transaction, summary: TaxSummary) -> KraCommand:
    local = timezone.localtime(tx.device_timestamp)
    data: Dict[str, Any] = {
        "RNum": tx.internal_receipt_number,
        "Rtype": RECEIPT_TYPE_CODES[tx.receipt_type],
        "TType": TRANSACTION_TYPE_CODES[tx.transaction_type],
        "Date": local.strftime(DEVICE_DATE_FORMAT),
        "Time": local.strftime(DEVICE_TIME_FORMAT),
        "SNumber": tx.device_serial_number,
        "Signature": tx.digital_signature,
        "InternalData": tx.internal_data,
        "CUInvoiceNo": tx.invoice_number,
    }
    data.update(journal_tax_fields(summary))
    return build_command(tx.taxpayer.pin, JOURNAL_COMMAND, data)


def _mark_failed(tx: Transaction, message: str, *, context: CallContext, log_extra: Dict[str, Any]) -> None:
    JournalStateMachine.para_failed(tx, error_message=message, trace_id=context.trace_id)
    logger.error(
        "journaling_falhou",
        extra={**log_extra, "error": message, "attempt": tx.journal_attempts},
    )


def run_journaling(
    *,
    transaction_id: UUID | str,
    context: CallContext,
    transport: KraTransportProtocol | None = None,
) -> Transaction:
    """
    Uma tentativa completa de journaling de uma transação assinada.

    Fluxo:
      1. QUEUED.
      2. SEND_RECEIPTITEM por item (ItemNo 1-based) no canal central, perfil geral.
      3. SEND_RECEIPT agregado com assinatura, internal data e faixas A–E.
      4. COMPLETED.

    Qualquer KraError → FAILED com a mensagem e a exceção é relançada
    para o mecanismo de retry da task. Outras exceções (payload gravado que
    não monta comando) também marcam FAILED, com prefixo [internal], e são
    relançadas sem retry. Transações já COMPLETED são ignoradas.
    """
    tx = Transaction.objects.select_related("taxpayer", "device").get(pk=transaction_id)

    log_extra = {
        "event": "kra_journal",
        "trace_id": context.trace_id,
        "transaction_id": str(tx.id),
    }

    if tx.journal_status == JournalStatus.COMPLETED:
        logger.info("journaling_ja_concluido", extra=log_extra)
        return tx

    JournalStateMachine.para_queued(tx, trace_id=context.trace_id)

    transport = transport or get_kra_transport()
    payload = tx.request_payload or {}

    try:
        items = payload.get("items") or []
        summary = compute_tax_summary(items, payload.get("tax_rates") or {})

        item_target = resolve_target(PURPOSE_JOURNAL_ITEM, device_class=tx.device.device_class)
        for item_no, (item, line) in enumerate(zip(items, summary.lines), start=1):
            transport.send(
                build_item_command(tx, item, line, item_no),
                target=item_target,
                context=context,
            )
            logger.info("journal_item_enviado", extra={**log_extra, "item_no": item_no})

        transport.send(
            build_journal_command(tx, summary),
            target=resolve_target(PURPOSE_JOURNAL, device_class=tx.device.device_class),
            context=context,
        )
    except KraError as exc:
        _mark_failed(tx, f"[{exc.category}] {exc.message}", context=context, log_extra=log_extra)
        raise
    except Exception as exc:
        _mark_failed(tx, f"[internal] {exc}", context=context, log_extra=log_extra)
        raise

    JournalStateMachine.para_completed(tx, trace_id=context.trace_id)
    logger.info("journaling_concluido", extra={**log_extra, "outcome": "completed"})
    return tx
