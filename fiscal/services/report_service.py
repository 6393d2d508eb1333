# fiscal/services/report_service.py

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from commons.context import CallContext
from commons.results import ServiceResult
from devices.models import FiscalDevice
from fiscal.kra_codec import KraReply, build_command, parse_records
from fiscal.kra_errors import KraError, KraValidationError
from fiscal.kra_factory import (
    PURPOSE_PLU_REPORT,
    PURPOSE_X_REPORT,
    PURPOSE_Z_REPORT,
    get_kra_transport,
    resolve_target,
)
from fiscal.kra_transport import KraTransportProtocol

logger = logging.getLogger("icore.fiscal")

REPORT_PURPOSES = {
    "X": PURPOSE_X_REPORT,
    "Z": PURPOSE_Z_REPORT,
}


def fetch_daily_report(
    *,
    device: FiscalDevice,
    report_type: str,
    context: CallContext,
    transport: KraTransportProtocol | None = None,
) -> ServiceResult[Dict[str, Any]]:
    """
    Busca o relatório diário X (parcial) ou Z (fechamento) do dispositivo.

    Canal da autoridade central, perfil geral. Devolve o mapa DATA como veio;
    a renderização fica com o chamador.
    """
    normalized = (report_type or "").strip().upper()
    if normalized not in REPORT_PURPOSES:
        return ServiceResult.failure(
            KraValidationError(f"Tipo de relatório inválido: {report_type}. Use X ou Z.")
        )

    purpose = REPORT_PURPOSES[normalized]
    transport = transport or get_kra_transport()
    command = build_command(device.taxpayer.pin, purpose)

    try:
        reply = transport.send(
            command,
            target=resolve_target(purpose, device_class=device.device_class),
            context=context,
        )
    except KraError as exc:
        logger.error(
            "daily_report_falhou",
            extra={
                "event": "kra_report",
                "trace_id": context.trace_id,
                "device_id": str(device.id),
                "report_type": normalized,
                "category": exc.category,
                "error": exc.message,
            },
        )
        return ServiceResult.failure(exc)

    logger.info(
        "daily_report_obtido",
        extra={
            "event": "kra_report",
            "trace_id": context.trace_id,
            "device_id": str(device.id),
            "report_type": normalized,
        },
    )
    return ServiceResult.success(
        {
            "report_type": f"{normalized}_DAILY_REPORT",
            "device_serial_number": device.serial_number,
            "report": reply.data,
        }
    )


PLU_COMMAND = "PLU_REPORT"
KRA_DATE_FORMAT = "%Y%m%d"

# campo KRA → campo exposto
_PLU_ITEM_FIELDS = {
    "itemCode": "item_code",
    "itemName": "item_name",
    "unitPrice": "unit_price",
    "taxRate": "tax_rate",
    "quantitySold": "quantity_sold",
    "amountCollected": "amount_collected",
    "remainQuantityInStock": "remaining_quantity_in_stock",
}


def _plu_items(reply: KraReply) -> List[Dict[str, Any]]:
    records = parse_records(reply, container="items")
    if not records and reply.data.get("itemCode"):
        records = [reply.data]
    return [
        {exposed: record.get(kra_field, "") for kra_field, exposed in _PLU_ITEM_FIELDS.items()}
        for record in records
    ]


def fetch_plu_report(
    *,
    device: FiscalDevice,
    context: CallContext,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    transport: KraTransportProtocol | None = None,
) -> ServiceResult[Dict[str, Any]]:
    """
    Relatório PLU: por item, quantidade vendida e valor arrecadado no período.

    Datas opcionais vão no DATA como startDate/endDate (AAAAMMDD).
    """
    if start_date and end_date and start_date > end_date:
        return ServiceResult.failure(
            KraValidationError(
                "Período inválido: start_date posterior a end_date.",
                errors={"start_date": ["Deve ser anterior ou igual a end_date."]},
            )
        )

    data: Dict[str, Any] = {}
    if start_date:
        data["startDate"] = start_date.strftime(KRA_DATE_FORMAT)
    if end_date:
        data["endDate"] = end_date.strftime(KRA_DATE_FORMAT)

    transport = transport or get_kra_transport()
    command = build_command(device.taxpayer.pin, PLU_COMMAND, data)
    log_extra = {
        "event": "kra_report",
        "trace_id": context.trace_id,
        "device_id": str(device.id),
        "report_type": PLU_COMMAND,
    }

    try:
        reply = transport.send(
            command,
            target=resolve_target(PURPOSE_PLU_REPORT, device_class=device.device_class),
            context=context,
        )
    except KraError as exc:
        logger.error(
            "plu_report_falhou",
            extra={**log_extra, "category": exc.category, "error": exc.message},
        )
        return ServiceResult.failure(exc)

    items = _plu_items(reply)
    logger.info("plu_report_obtido", extra={**log_extra, "items": len(items)})

    return ServiceResult.success(
        {
            "report_type": PLU_COMMAND,
            "device_serial_number": device.serial_number,
            "company_name": reply.data.get("companyName") or "",
            "taxpayer_pin": reply.data.get("taxIdentificationNumber") or device.taxpayer.pin,
            "start_date": data.get("startDate"),
            "end_date": data.get("endDate"),
            "items": items,
        }
    )
