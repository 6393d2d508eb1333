# fiscal/services/signing_service.py

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import IntegrityError, transaction as db_transaction
from django.utils import timezone

from commons.context import CallContext
from commons.results import ServiceResult
from devices.models import FiscalDevice
from devices.services.device_service import demote_device_on_fault
from fiscal.kra_codec import KraReply, build_command, serialize_command
from fiscal.kra_errors import (
    DeviceNotActivatedError,
    KraError,
    KraProtocolError,
    KraValidationError,
)
from fiscal.kra_factory import PURPOSE_SIGN, get_kra_transport, target_for_device
from fiscal.kra_transport import KraTransportProtocol
from fiscal.models import JournalStatus, Transaction
from fiscal.serializers_transactions import TransactionRequestSerializer
from fiscal.services.tax_service import TaxSummary, device_tax_fields

logger = logging.getLogger("icore.fiscal")

SIGN_COMMAND = "SEND_RECEIPT"

RECEIPT_TYPE_CODES = {
    "NORMAL": "N",
    "COPY": "C",
    "TRAINING": "T",
    "PROFORMA": "P",
}

TRANSACTION_TYPE_CODES = {
    "SALE": "S",
    "CREDIT_NOTE": "NC",
    "DEBIT_NOTE": "ND",
}

DEVICE_DATE_FORMAT = "%d/%m/%Y"
DEVICE_TIME_FORMAT = "%H:%M:%S"

VERIFICATION_DELIMITER = "#"


# ---------------------------------------------------------------------------
# DTO da resposta de assinatura
# ---------------------------------------------------------------------------


@dataclass
class SignedReceipt:
    """
    Campos extraídos da resposta SEND_RECEIPT do dispositivo.
    """

    serial_number: str
    device_timestamp: datetime
    receipt_label: str
    receipt_type_counter: int
    receipt_total_counter: int
    signature: str
    internal_data: str


# ---------------------------------------------------------------------------
# Helpers internos
# ---------------------------------------------------------------------------


def _as_int(value: Any) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0


def _parse_device_timestamp(date_value: str, time_value: str, raw: str) -> datetime:
    try:
        naive = datetime.strptime(
            f"{date_value.strip()} {time_value.strip()}",
            f"{DEVICE_DATE_FORMAT} {DEVICE_TIME_FORMAT}",
        )
    except ValueError as exc:
        raise KraProtocolError(
            f"Data/hora inválida na resposta do dispositivo: {date_value!r} {time_value!r}.",
            raw_response=raw,
        ) from exc
    return timezone.make_aware(naive, timezone.get_default_timezone())


def parse_signed_receipt(reply: KraReply) -> SignedReceipt:
    """
    Extrai os campos da assinatura. Ausência de serial, assinatura ou
    data/hora é erro de protocolo.
    """
    data = reply.data

    def _text(key: str) -> str:
        value = data.get(key)
        return value.strip() if isinstance(value, str) else ""

    serial = _text("Snumber") or _text("SNumber")
    signature = _text("Signature")
    date_value = _text("Date")
    time_value = _text("Time")

    missing = [
        name
        for name, value in (
            ("Snumber", serial),
            ("Signature", signature),
            ("Date", date_value),
            ("Time", time_value),
        )
        if not value
    ]
    if missing:
        raise KraProtocolError(
            f"Resposta SEND_RECEIPT sem campos obrigatórios: {', '.join(missing)}.",
            raw_response=reply.raw,
        )

    return SignedReceipt(
        serial_number=serial,
        device_timestamp=_parse_device_timestamp(date_value, time_value, reply.raw),
        receipt_label=_text("RLabel"),
        receipt_type_counter=_as_int(data.get("TNumber")),
        receipt_total_counter=_as_int(data.get("GNumber")),
        signature=signature,
        internal_data=_text("InternalData"),
    )


def build_invoice_number(serial_number: str, internal_receipt_number: str) -> str:
    return f"{serial_number}/{internal_receipt_number}"


def build_verification_string(receipt: SignedReceipt) -> str:
    """
    data(ddmmYYYY)#hora(HHMM)#serial#contador_por_tipo#internal_data#assinatura
    """
    local = timezone.localtime(receipt.device_timestamp)
    return VERIFICATION_DELIMITER.join(
        [
            local.strftime("%d%m%Y"),
            local.strftime("%H%M"),
            receipt.serial_number,
            str(receipt.receipt_type_counter),
            receipt.internal_data,
            receipt.signature,
        ]
    )


def build_verification_url(receipt: SignedReceipt) -> str:
    return f"{settings.KRA_QR_CODE_BASE_URL}?{urlencode({'data': build_verification_string(receipt)})}"


def build_sign_data(
    validated: Mapping[str, Any],
    summary: TaxSummary,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    local_now = timezone.localtime(now or timezone.now())

    data: Dict[str, Any] = {
        "Rtype": RECEIPT_TYPE_CODES[validated["receipt_type"]],
        "TType": TRANSACTION_TYPE_CODES[validated["transaction_type"]],
        "Date": local_now.strftime(DEVICE_DATE_FORMAT),
        "Time": local_now.strftime(DEVICE_TIME_FORMAT),
        "RNum": validated["internal_receipt_number"],
    }
    data.update(device_tax_fields(summary))

    if validated.get("buyer_pin"):
        data["ClientsPin"] = validated["buyer_pin"]
    return data


def _json_safe(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return json.loads(json.dumps(dict(payload), cls=DjangoJSONEncoder))


def _enqueue_journaling(tx: Transaction, context: CallContext) -> None:
    from fiscal.tasks import journal_transaction

    journal_transaction.apply_async(
        args=[str(tx.id)],
        kwargs={"trace_id": context.trace_id},
        queue=settings.KRA_JOURNALING_QUEUE,
    )
    logger.info(
        "journaling_enfileirado",
        extra={
            "event": "kra_sign",
            "trace_id": context.trace_id,
            "transaction_id": str(tx.id),
            "queue": settings.KRA_JOURNALING_QUEUE,
        },
    )


def _validate_payload(device: FiscalDevice, payload: Mapping[str, Any]) -> Dict[str, Any]:
    serializer = TransactionRequestSerializer(data=payload)
    if not serializer.is_valid():
        raise KraValidationError("Payload de transação inválido.", errors=serializer.errors)

    validated = serializer.validated_data

    if str(validated["gateway_device_id"]) != str(device.id):
        raise KraValidationError(
            "gateway_device_id não corresponde ao dispositivo informado.",
            errors={"gateway_device_id": ["Dispositivo divergente."]},
        )
    if validated["taxpayer_pin"] != device.taxpayer.pin:
        raise KraValidationError(
            "taxpayer_pin não pertence ao dispositivo informado.",
            errors={"taxpayer_pin": ["PIN divergente do dispositivo."]},
        )

    duplicated = Transaction.objects.filter(
        device=device,
        internal_receipt_number=validated["internal_receipt_number"],
        receipt_type=validated["receipt_type"],
        transaction_type=validated["transaction_type"],
    ).exists()
    if duplicated:
        raise KraValidationError(
            "Transação já assinada para este cupom.",
            code="KRA_DUPLICATE_TRANSACTION",
            http_status=409,
        )
    return validated


# ---------------------------------------------------------------------------
# Função de domínio principal
# ---------------------------------------------------------------------------


def sign_transaction(
    *,
    device: FiscalDevice,
    payload: Mapping[str, Any],
    context: CallContext,
    transport: KraTransportProtocol | None = None,
) -> ServiceResult[Transaction]:
    """
    Assinatura síncrona de uma venda/nota no dispositivo fiscal.

    Regras principais:

      1. Dispositivo precisa estar ACTIVATED; caso contrário nenhum comando
         é enviado.
      2. Payload validado (tipos, sinais, totais) e chave composta conferida
         antes de qualquer I/O.
      3. SEND_RECEIPT pelo canal do dispositivo com perfil estrito.
      4. Resposta → serial, data/hora, label, contadores, assinatura,
         internal data; número da fatura "serial/RNum" e URL de verificação.
      5. Persistência atômica com journal_status=PENDING e journaling
         enfileirado no commit.
      6. Qualquer erro antes do passo 5 devolve failure e nada é gravado.
    """
    log_extra = {
        "event": "kra_sign",
        "trace_id": context.trace_id,
        "device_id": str(device.id),
    }
    logger.info("sign_transaction_iniciado", extra=log_extra)

    if not device.is_activated:
        logger.warning(
            "sign_transaction_dispositivo_inativo",
            extra={**log_extra, "device_status": device.status},
        )
        return ServiceResult.failure(
            DeviceNotActivatedError(
                f"Dispositivo {device.serial_number} não está ativado (status={device.status})."
            )
        )

    try:
        validated = _validate_payload(device, payload)
    except KraValidationError as exc:
        logger.warning(
            "sign_transaction_payload_invalido",
            extra={**log_extra, "code": exc.code, "errors": exc.errors},
        )
        return ServiceResult.failure(exc)

    summary: TaxSummary = validated["tax_summary"]
    command = build_command(device.taxpayer.pin, SIGN_COMMAND, build_sign_data(validated, summary))
    raw_request = serialize_command(command)

    transport = transport or get_kra_transport()
    target = target_for_device(PURPOSE_SIGN, device)

    try:
        reply = transport.send(command, target=target, context=context)
        receipt = parse_signed_receipt(reply)
    except KraError as exc:
        demote_device_on_fault(device, exc, context=context)
        logger.error(
            "sign_transaction_falhou",
            extra={
                **log_extra,
                "category": exc.category,
                "code": exc.code,
                "kra_error_code": getattr(exc, "error_code", None),
                "error": exc.message,
            },
        )
        return ServiceResult.failure(exc)

    internal_receipt_number = validated["internal_receipt_number"]

    try:
        with db_transaction.atomic():
            tx = Transaction.objects.create(
                device=device,
                taxpayer=device.taxpayer,
                internal_receipt_number=internal_receipt_number,
                receipt_type=validated["receipt_type"],
                transaction_type=validated["transaction_type"],
                device_serial_number=receipt.serial_number,
                receipt_label=receipt.receipt_label,
                receipt_type_counter=receipt.receipt_type_counter,
                receipt_total_counter=receipt.receipt_total_counter,
                invoice_number=build_invoice_number(receipt.serial_number, internal_receipt_number),
                digital_signature=receipt.signature,
                internal_data=receipt.internal_data,
                verification_url=build_verification_url(receipt),
                device_timestamp=receipt.device_timestamp,
                request_payload=_json_safe(payload),
                response_payload={"device": reply.data, "tax_summary": summary.as_dict()},
                raw_request_xml=raw_request,
                raw_response_xml=reply.raw,
                journal_status=JournalStatus.PENDING,
            )
            db_transaction.on_commit(lambda: _enqueue_journaling(tx, context))
    except IntegrityError as exc:
        # corrida entre duas assinaturas do mesmo cupom
        logger.error("sign_transaction_duplicada", extra={**log_extra, "error": str(exc)})
        return ServiceResult.failure(
            KraValidationError(
                "Transação já assinada para este cupom.",
                code="KRA_DUPLICATE_TRANSACTION",
                http_status=409,
            )
        )

    logger.info(
        "sign_transaction_concluido",
        extra={
            **log_extra,
            "transaction_id": str(tx.id),
            "invoice_number": tx.invoice_number,
            "outcome": "signed",
        },
    )
    return ServiceResult.success(tx)
