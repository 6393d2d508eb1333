# devices/services/device_service.py

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

from django.db import transaction
from django.utils import timezone

from commons.context import CallContext
from commons.results import ServiceResult
from devices.models import DeviceClass, DeviceStatus, FiscalDevice
from fiscal.kra_codec import build_command
from fiscal.kra_errors import (
    ALREADY_ACTIVATED_CODE,
    KraCommunicationError,
    KraDeviceError,
    KraError,
    KraValidationError,
    is_hardware_fault,
)
from fiscal.kra_factory import PURPOSE_ACTIVATE, PURPOSE_STATUS, get_kra_transport, resolve_target
from fiscal.kra_transport import KraTransportProtocol
from taxpayers.models import TaxpayerPin

logger = logging.getLogger("icore.devices")

INIT_COMMANDS = {
    DeviceClass.OSCU: "INIT_OSCU",
    DeviceClass.VSCU: "INIT_VSCU",
}
STATUS_COMMAND = "STATUS"

# Campos onde o dispositivo devolve o serial (varia entre firmwares)
_SERIAL_FIELDS = ("SCU_ID", "Snumber", "SerialNumber", "SNumber")
_SERIAL_PATTERN = re.compile(r"\b(KRA[A-Z]{0,4}\d{6,})\b")


def _serial_from_data(data: Dict[str, Any]) -> Optional[str]:
    for field in _SERIAL_FIELDS:
        value = data.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def extract_serial_from_error(error: KraDeviceError) -> Optional[str]:
    """
    Recupera o serial embutido no detalhe de um erro 41 (já ativado).

    Ordem: campos do DATA → mensagem → corpo bruto.
    """
    serial = _serial_from_data(error.data)
    if serial:
        return serial

    for text in (error.message, error.raw_response or ""):
        match = _SERIAL_PATTERN.search(text or "")
        if match:
            return match.group(1)
    return None


def _recover_already_activated(
    error: KraDeviceError,
    *,
    taxpayer: TaxpayerPin,
    context: CallContext,
) -> Optional[FiscalDevice]:
    serial = extract_serial_from_error(error)
    if not serial:
        return None

    device = FiscalDevice.objects.filter(serial_number=serial, taxpayer=taxpayer).first()
    if device is None:
        return None

    if device.status != DeviceStatus.ACTIVATED:
        device.status = DeviceStatus.ACTIVATED
        device.save(update_fields=["status", "updated_at"])

    logger.info(
        "device_ja_ativado_recuperado",
        extra={
            "event": "device_initialize",
            "trace_id": context.trace_id,
            "device_id": str(device.id),
            "serial_number": serial,
        },
    )
    return device


def initialize_device(
    *,
    taxpayer: TaxpayerPin,
    device_class: str,
    device_serial_number: str,
    branch_office_id: str = "",
    config: Dict[str, Any] | None = None,
    context: CallContext,
    transport: KraTransportProtocol | None = None,
) -> ServiceResult[FiscalDevice]:
    """
    Inicializa/ativa um dispositivo OSCU/VSCU.

    Regras:
      1. Envia INIT_OSCU / INIT_VSCU pelo canal do dispositivo (perfil estrito).
      2. Sucesso → cria ou atualiza o FiscalDevice local como ACTIVATED.
      3. Erro 41 (já ativado) → recupera o registro local pelo serial do
         detalhe do erro e devolve como sucesso. Sem registro local, o erro
         é devolvido normalmente.
    """
    if device_class not in INIT_COMMANDS:
        return ServiceResult.failure(
            KraValidationError(f"Classe de dispositivo inválida: {device_class}.")
        )

    transport = transport or get_kra_transport()
    config = dict(config or {})

    target = resolve_target(PURPOSE_ACTIVATE, device_class=device_class, device_config=config)
    command = build_command(
        taxpayer.pin,
        INIT_COMMANDS[device_class],
        {"bhfId": branch_office_id, "dvcSrlNo": device_serial_number},
    )

    logger.info(
        "device_initialize_iniciado",
        extra={
            "event": "device_initialize",
            "trace_id": context.trace_id,
            "taxpayer_pin": taxpayer.pin,
            "device_class": device_class,
        },
    )

    try:
        reply = transport.send(command, target=target, context=context)
    except KraDeviceError as exc:
        if exc.error_code == ALREADY_ACTIVATED_CODE:
            device = _recover_already_activated(exc, taxpayer=taxpayer, context=context)
            if device is not None:
                return ServiceResult.success(device)
        return ServiceResult.failure(exc)
    except KraError as exc:
        logger.error(
            "device_initialize_falhou",
            extra={
                "event": "device_initialize",
                "trace_id": context.trace_id,
                "category": exc.category,
                "error": exc.message,
            },
        )
        return ServiceResult.failure(exc)

    serial = _serial_from_data(reply.data) or device_serial_number

    if FiscalDevice.objects.filter(serial_number=serial).exclude(taxpayer=taxpayer).exists():
        logger.warning(
            "device_initialize_serial_de_outro_contribuinte",
            extra={
                "event": "device_initialize",
                "trace_id": context.trace_id,
                "taxpayer_pin": taxpayer.pin,
                "serial_number": serial,
            },
        )
        return ServiceResult.failure(
            KraValidationError(
                f"Dispositivo {serial} já está registrado para outro contribuinte.",
                errors={"device_serial_number": ["Serial registrado para outro contribuinte."]},
            )
        )

    with transaction.atomic():
        device, created = FiscalDevice.objects.update_or_create(
            serial_number=serial,
            defaults={
                "taxpayer": taxpayer,
                "device_class": device_class,
                "status": DeviceStatus.ACTIVATED,
                "branch_office_id": branch_office_id or "",
                "config": config,
                "last_status_check_at": timezone.now(),
            },
        )

    logger.info(
        "device_initialize_concluido",
        extra={
            "event": "device_initialize",
            "trace_id": context.trace_id,
            "device_id": str(device.id),
            "serial_number": serial,
            "device_created": created,
        },
    )
    return ServiceResult.success(device)


def check_device_status(
    *,
    device: FiscalDevice,
    context: CallContext,
    transport: KraTransportProtocol | None = None,
) -> ServiceResult[FiscalDevice]:
    """
    Consulta STATUS no dispositivo e atualiza o status local.

      - sucesso → ACTIVATED
      - falha de hardware → ERROR
      - não ativado (40) → PENDING
      - falha de comunicação → UNAVAILABLE
    """
    transport = transport or get_kra_transport()
    target = resolve_target(
        PURPOSE_STATUS,
        device_class=device.device_class,
        device_config=device.config,
    )
    command = build_command(device.taxpayer.pin, STATUS_COMMAND, {"SNumber": device.serial_number})

    error: KraError | None = None
    try:
        transport.send(command, target=target, context=context)
        new_status = DeviceStatus.ACTIVATED
    except KraDeviceError as exc:
        error = exc
        if is_hardware_fault(exc.error_code):
            new_status = DeviceStatus.ERROR
        elif exc.definition.kind == "NotActivated":
            new_status = DeviceStatus.PENDING
        else:
            new_status = device.status
    except KraCommunicationError as exc:
        error = exc
        new_status = DeviceStatus.UNAVAILABLE
    except KraError as exc:
        error = exc
        new_status = device.status

    device.status = new_status
    device.last_status_check_at = timezone.now()
    device.save(update_fields=["status", "last_status_check_at", "updated_at"])

    logger.info(
        "device_status_verificado",
        extra={
            "event": "device_status",
            "trace_id": context.trace_id,
            "device_id": str(device.id),
            "status": new_status,
            "outcome": "error" if error else "ok",
        },
    )

    if error is not None:
        return ServiceResult.failure(error)
    return ServiceResult.success(device)


def demote_device_on_fault(device: FiscalDevice, error: KraError, *, context: CallContext) -> None:
    """
    Rebaixa o dispositivo para ERROR quando a assinatura recebe falha de hardware.
    """
    if not isinstance(error, KraDeviceError) or not is_hardware_fault(error.error_code):
        return

    FiscalDevice.objects.filter(pk=device.pk).update(status=DeviceStatus.ERROR, updated_at=timezone.now())
    device.status = DeviceStatus.ERROR

    logger.warning(
        "device_rebaixado_para_erro",
        extra={
            "event": "device_status",
            "trace_id": context.trace_id,
            "device_id": str(device.id),
            "kra_error_code": error.error_code,
        },
    )
