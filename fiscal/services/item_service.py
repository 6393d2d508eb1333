# fiscal/services/item_service.py

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from django.utils import timezone

from commons.context import CallContext
from commons.results import ServiceResult
from devices.models import FiscalDevice
from fiscal.kra_codec import build_command, format_amount, parse_records, to_decimal
from fiscal.kra_errors import KraError, KraValidationError
from fiscal.kra_factory import PURPOSE_ITEM_LIST, PURPOSE_ITEM_REGISTER, get_kra_transport, resolve_target
from fiscal.kra_transport import KraTransportProtocol

logger = logging.getLogger("icore.fiscal")

REGISTER_COMMAND = "SEND_ITEM"
LIST_COMMAND = "RECV_ITEM"

KRA_DATETIME_FORMAT = "%Y%m%d%H%M%S"
DEFAULT_USER_ID = "GatewaySystem"


def _flag(value: Any) -> str:
    return "Y" if value else "N"


def build_item_data(item: Mapping[str, Any], *, now=None) -> Dict[str, Any]:
    """
    Monta o DATA do SEND_ITEM a partir do cadastro validado
    (ver fiscal.serializers_items.RegisterItemSerializer).
    """
    stamp = (now or timezone.localtime()).strftime(KRA_DATETIME_FORMAT)
    initial_price = item["initial_wholesale_unit_price"]
    average_price = item.get("average_wholesale_unit_price")

    return {
        "itemCd": item["item_code"],
        "itemClsCd": item["item_classification_code"],
        "itemNm": item["item_name"],
        "itemTyCd": item.get("item_type_code") or "2",
        "itemStd": item.get("item_standard") or "",
        "OrgplceCd": item.get("origin_country_code") or "KE",
        "PkgUnitCd": item["packaging_unit_code"],
        "QtyUnitCd": item["quantity_unit_code"],
        "AdiInfo": item.get("additional_info") or "0001",
        "InitlWhUntpc": format_amount(initial_price),
        "InitlQty": format(to_decimal(item["initial_quantity"]), "f"),
        "AvgWhUntpc": format_amount(average_price if average_price is not None else initial_price),
        "dfltDlUntpc": format_amount(item["default_selling_unit_price"]),
        "taxTyCd": item["tax_type"],
        "rm": item.get("remark") or "",
        "useYn": _flag(item.get("in_use", True)),
        "regusrId": item.get("register_user_id") or DEFAULT_USER_ID,
        "regDt": stamp,
        "updusrId": item.get("register_user_id") or DEFAULT_USER_ID,
        "updDt": stamp,
        "safetyQty": format(to_decimal(item.get("safety_quantity") or 0), "f"),
        "useBarcode": _flag(item.get("use_barcode")),
        "changeYn": _flag(item.get("change_allowed")),
        "useAdiYn": _flag(item.get("use_additional_info")),
    }


def register_item(
    *,
    device: FiscalDevice,
    item: Mapping[str, Any],
    context: CallContext,
    transport: KraTransportProtocol | None = None,
) -> ServiceResult[Dict[str, Any]]:
    """
    Cadastra ou atualiza um item na KRA (SEND_ITEM).

    Canal da autoridade central, perfil geral. Nada é gravado localmente:
    o cadastro de itens vive na KRA.
    """
    try:
        data = build_item_data(item)
        command = build_command(device.taxpayer.pin, REGISTER_COMMAND, data)
    except (KeyError, ValueError) as exc:
        return ServiceResult.failure(KraValidationError(f"Item inválido: {exc}"))

    transport = transport or get_kra_transport()
    log_extra = {
        "event": "kra_item",
        "trace_id": context.trace_id,
        "device_id": str(device.id),
        "item_code": data["itemCd"],
    }

    try:
        reply = transport.send(
            command,
            target=resolve_target(PURPOSE_ITEM_REGISTER, device_class=device.device_class),
            context=context,
        )
    except KraError as exc:
        logger.error(
            "item_cadastro_falhou",
            extra={**log_extra, "category": exc.category, "error": exc.message},
        )
        return ServiceResult.failure(exc)

    logger.info("item_cadastrado", extra=log_extra)
    return ServiceResult.success(
        {
            "item_code": data["itemCd"],
            "status": reply.status,
            "kra_response": reply.data,
        }
    )


def list_items(
    *,
    device: FiscalDevice,
    context: CallContext,
    transport: KraTransportProtocol | None = None,
) -> ServiceResult[List[Dict[str, Any]]]:
    """
    Lista os itens cadastrados na KRA para o PIN do dispositivo (RECV_ITEM).
    """
    transport = transport or get_kra_transport()

    try:
        reply = transport.send(
            build_command(device.taxpayer.pin, LIST_COMMAND),
            target=resolve_target(PURPOSE_ITEM_LIST, device_class=device.device_class),
            context=context,
        )
    except KraError as exc:
        logger.error(
            "item_listagem_falhou",
            extra={
                "event": "kra_item",
                "trace_id": context.trace_id,
                "device_id": str(device.id),
                "category": exc.category,
                "error": exc.message,
            },
        )
        return ServiceResult.failure(exc)

    items = parse_records(reply)
    logger.info(
        "itens_listados",
        extra={
            "event": "kra_item",
            "trace_id": context.trace_id,
            "device_id": str(device.id),
            "items": len(items),
        },
    )
    return ServiceResult.success(items)
