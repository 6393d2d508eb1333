# fiscal/services/inventory_service.py

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from django.utils import timezone

from commons.context import CallContext
from commons.results import ServiceResult
from devices.models import FiscalDevice
from fiscal.kra_codec import build_command, parse_records, to_decimal
from fiscal.kra_errors import KraError, KraValidationError
from fiscal.kra_factory import PURPOSE_INVENTORY, PURPOSE_INVENTORY_LIST, get_kra_transport, resolve_target
from fiscal.kra_transport import KraTransportProtocol
from fiscal.services.purchase_service import kra_date, kra_datetime

logger = logging.getLogger("icore.fiscal")

INVENTORY_COMMAND = "SEND_INVENTORY"
INVENTORY_LIST_COMMAND = "RECV_INVENTORY"


def build_inventory_data(movement: Mapping[str, Any]) -> Dict[str, Any]:
    # qty negativo = saída de estoque
    return {
        "bhfId": movement["branch_id"],
        "itemClsCd": movement["item_classification_code"],
        "itemCd": movement["item_code"],
        "qty": format(to_decimal(movement["quantity"]), "f"),
        "updDt": kra_datetime(movement.get("update_date") or timezone.now()),
    }


def build_inventory_filters(filters: Mapping[str, Any]) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if filters.get("branch_id"):
        data["bhfId"] = filters["branch_id"]
    if filters.get("item_code"):
        data["itemCd"] = filters["item_code"]
    if filters.get("start_date"):
        data["startDt"] = kra_date(filters["start_date"])
    if filters.get("end_date"):
        data["endDt"] = kra_date(filters["end_date"])
    return data


def send_inventory_movement(
    *,
    device: FiscalDevice,
    movement: Mapping[str, Any],
    context: CallContext,
    transport: KraTransportProtocol | None = None,
) -> ServiceResult[Dict[str, Any]]:
    """
    Informa uma movimentação de estoque à KRA (SEND_INVENTORY).
    """
    try:
        data = build_inventory_data(movement)
        command = build_command(device.taxpayer.pin, INVENTORY_COMMAND, data)
    except (KeyError, ValueError) as exc:
        return ServiceResult.failure(KraValidationError(f"Movimentação inválida: {exc}"))

    transport = transport or get_kra_transport()
    log_extra = {
        "event": "kra_inventory",
        "trace_id": context.trace_id,
        "device_id": str(device.id),
        "item_code": data["itemCd"],
    }

    try:
        reply = transport.send(
            command,
            target=resolve_target(PURPOSE_INVENTORY, device_class=device.device_class),
            context=context,
        )
    except KraError as exc:
        logger.error(
            "estoque_envio_falhou",
            extra={**log_extra, "category": exc.category, "error": exc.message},
        )
        return ServiceResult.failure(exc)

    logger.info("estoque_enviado", extra={**log_extra, "quantity": data["qty"]})
    return ServiceResult.success(
        {
            "item_code": data["itemCd"],
            "quantity": data["qty"],
            "status": reply.status,
            "kra_response": reply.data,
        }
    )


def list_inventory(
    *,
    device: FiscalDevice,
    context: CallContext,
    filters: Mapping[str, Any] | None = None,
    transport: KraTransportProtocol | None = None,
) -> ServiceResult[List[Dict[str, Any]]]:
    """
    Consulta o estoque na KRA (RECV_INVENTORY). Filtros opcionais:
    branch_id, item_code, start_date e end_date.
    """
    filters = filters or {}
    start, end = filters.get("start_date"), filters.get("end_date")
    if start and end and start > end:
        return ServiceResult.failure(
            KraValidationError(
                "Período inválido.",
                errors={"end_date": ["Deve ser igual ou posterior a start_date."]},
            )
        )

    transport = transport or get_kra_transport()

    try:
        reply = transport.send(
            build_command(device.taxpayer.pin, INVENTORY_LIST_COMMAND, build_inventory_filters(filters)),
            target=resolve_target(PURPOSE_INVENTORY_LIST, device_class=device.device_class),
            context=context,
        )
    except KraError as exc:
        logger.error(
            "estoque_listagem_falhou",
            extra={
                "event": "kra_inventory",
                "trace_id": context.trace_id,
                "device_id": str(device.id),
                "category": exc.category,
                "error": exc.message,
            },
        )
        return ServiceResult.failure(exc)

    return ServiceResult.success(parse_records(reply))
