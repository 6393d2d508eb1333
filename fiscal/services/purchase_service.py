# fiscal/services/purchase_service.py

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

from django.utils import timezone

from commons.context import CallContext
from commons.results import ServiceResult
from devices.models import FiscalDevice
from fiscal.kra_codec import KraCommand, build_command, format_amount, parse_records, to_decimal
from fiscal.kra_errors import KraError, KraValidationError
from fiscal.kra_factory import (
    PURPOSE_PURCHASE,
    PURPOSE_PURCHASE_ITEM,
    PURPOSE_PURCHASE_ITEM_LIST,
    PURPOSE_PURCHASE_LIST,
    get_kra_transport,
    resolve_target,
)
from fiscal.kra_transport import KraTransportProtocol
from fiscal.services.tax_service import TAX_LABELS

logger = logging.getLogger("icore.fiscal")

PURCHASE_COMMAND = "SEND_PURCHASE"
PURCHASE_ITEM_COMMAND = "SEND_PURCHASEITEM"
PURCHASE_LIST_COMMAND = "RECV_PURCHASE"
PURCHASE_ITEM_LIST_COMMAND = "RECV_PURCHASEITEM"

KRA_DATE_FORMAT = "%Y%m%d"
KRA_DATETIME_FORMAT = "%Y%m%d%H%M%S"


def kra_date(value: Optional[date]) -> str:
    return value.strftime(KRA_DATE_FORMAT) if value else ""


def kra_datetime(value: Optional[datetime]) -> str:
    if not value:
        return ""
    if timezone.is_aware(value):
        value = timezone.localtime(value)
    return value.strftime(KRA_DATETIME_FORMAT)


def build_purchase_data(purchase: Mapping[str, Any]) -> Dict[str, Any]:
    taxable = purchase.get("taxable_amounts") or {}
    taxes = purchase.get("taxes") or {}

    data: Dict[str, Any] = {
        "InvId": purchase["invoice_id"],
        "bhfId": purchase["branch_id"],
        "bencId": purchase["supplier_pin"],
        "bcncNm": purchase["supplier_name"],
        "bencSdcId": purchase["supplier_cu_id"],
        "regTyCd": purchase["registration_type_code"],
        "refId": purchase["reference_id"],
        "payTyCd": purchase["payment_type_code"],
        "invStatusCd": purchase["invoice_status_code"],
        "ocde": kra_date(purchase["transaction_date"]),
        "validDt": kra_date(purchase.get("valid_date") or purchase["transaction_date"]),
        "cancelReqDt": kra_datetime(purchase.get("cancel_request_date")),
        "cancelDt": kra_datetime(purchase.get("cancel_date")),
        "refundDt": kra_datetime(purchase.get("refund_date")),
        "cancelTyCd": purchase.get("cancel_type_code") or "",
        "totNumItem": len(purchase["items"]),
    }
    for label in TAX_LABELS:
        data[f"totTaxablAmt{label}"] = format_amount(taxable.get(label) or 0)
    for label in TAX_LABELS:
        data[f"totTax{label}"] = format_amount(taxes.get(label) or 0)

    data.update(
        {
            "totSplpc": format_amount(purchase["total_supplier_price"]),
            "totTax": format_amount(purchase["total_tax"]),
            "totAmt": format_amount(purchase["total_amount"]),
            "remark": purchase.get("remark") or "",
            "regusrId": purchase["register_user_id"],
            "regDt": kra_datetime(purchase["register_date"]),
        }
    )
    return data


def build_purchase_item_data(purchase: Mapping[str, Any], item: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "invId": purchase["invoice_id"],
        "bhfId": purchase["branch_id"],
        "itemSeq": item["sequence"],
        "itemClsCd": item["item_classification_code"],
        "itemCd": item["item_code"],
        "itemNm": item["item_name"],
        "bcncItemClsCd": item.get("supplier_item_classification_code") or "",
        "bcncItemCd": item.get("supplier_item_code") or "",
        "bcncItemNm": item.get("supplier_item_name") or "",
        "pkgUnitCd": item["packaging_unit_code"],
        "pkgQty": format(to_decimal(item["packaging_quantity"]), "f"),
        "qtyUnitCd": item["quantity_unit_code"],
        "qty": format(to_decimal(item["quantity"]), "f"),
        "expirDt": kra_date(item.get("expiry_date")),
        "untpc": format_amount(item["unit_price"]),
        "splpc": format_amount(item["supplier_price"]),
        "dcRate": format_amount(item.get("discount_rate") or 0),
        "dcAmt": format_amount(item.get("discount_amount") or 0),
        "taxablAmt": format_amount(item["taxable_amount"]),
        "taxTyCd": item["tax_type"],
        "tax": format_amount(item["tax_amount"]),
    }


def send_purchase(
    *,
    device: FiscalDevice,
    purchase: Mapping[str, Any],
    context: CallContext,
    transport: KraTransportProtocol | None = None,
) -> ServiceResult[Dict[str, Any]]:
    """
    Envia uma compra à KRA: SEND_PURCHASE (cabeçalho) e um SEND_PURCHASEITEM
    por item, na ordem de itemSeq. Canal central, perfil geral.

    A primeira falha interrompe o envio; o resultado informa quantos itens
    já tinham sido aceitos.
    """
    pin = device.taxpayer.pin
    try:
        header = build_command(pin, PURCHASE_COMMAND, build_purchase_data(purchase))
        items: List[KraCommand] = [
            build_command(pin, PURCHASE_ITEM_COMMAND, build_purchase_item_data(purchase, item))
            for item in sorted(purchase["items"], key=lambda item: item["sequence"])
        ]
    except (KeyError, ValueError) as exc:
        return ServiceResult.failure(KraValidationError(f"Compra inválida: {exc}"))

    transport = transport or get_kra_transport()
    log_extra = {
        "event": "kra_purchase",
        "trace_id": context.trace_id,
        "device_id": str(device.id),
        "invoice_id": purchase["invoice_id"],
    }

    items_sent = 0
    try:
        transport.send(
            header,
            target=resolve_target(PURPOSE_PURCHASE, device_class=device.device_class),
            context=context,
        )
        item_target = resolve_target(PURPOSE_PURCHASE_ITEM, device_class=device.device_class)
        for command in items:
            transport.send(command, target=item_target, context=context)
            items_sent += 1
    except KraError as exc:
        logger.error(
            "compra_envio_falhou",
            extra={**log_extra, "items_sent": items_sent, "category": exc.category, "error": exc.message},
        )
        exc.details["items_sent"] = items_sent
        return ServiceResult.failure(exc)

    logger.info("compra_enviada", extra={**log_extra, "items_sent": items_sent})
    return ServiceResult.success({"invoice_id": purchase["invoice_id"], "items_sent": items_sent})


def list_purchases(
    *,
    device: FiscalDevice,
    context: CallContext,
    transport: KraTransportProtocol | None = None,
) -> ServiceResult[Dict[str, Any]]:
    """
    RECV_PURCHASE seguido de RECV_PURCHASEITEM. Devolve cabeçalhos e itens
    como vieram da KRA.
    """
    transport = transport or get_kra_transport()
    pin = device.taxpayer.pin

    try:
        headers = transport.send(
            build_command(pin, PURCHASE_LIST_COMMAND),
            target=resolve_target(PURPOSE_PURCHASE_LIST, device_class=device.device_class),
            context=context,
        )
        items = transport.send(
            build_command(pin, PURCHASE_ITEM_LIST_COMMAND),
            target=resolve_target(PURPOSE_PURCHASE_ITEM_LIST, device_class=device.device_class),
            context=context,
        )
    except KraError as exc:
        logger.error(
            "compra_listagem_falhou",
            extra={
                "event": "kra_purchase",
                "trace_id": context.trace_id,
                "device_id": str(device.id),
                "category": exc.category,
                "error": exc.message,
            },
        )
        return ServiceResult.failure(exc)

    return ServiceResult.success(
        {
            "purchases": parse_records(headers),
            "purchase_items": parse_records(items),
        }
    )
