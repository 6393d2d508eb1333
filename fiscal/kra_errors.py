# fiscal/kra_errors.py
"""
Taxonomia de erros do gateway KRA e tradução de códigos do dispositivo fiscal.

Este módulo define:

- Exceções usadas internamente pelo codec, transporte e services
  (KraValidationError, DeviceNotActivatedError, KraDeviceError,
  KraCommunicationError, KraProtocolError).
- Tabela fixa de códigos de erro do dispositivo (OSCU/VSCU) → categoria,
  retentativa e status HTTP externo.
- translate_error_code(code): função pura sobre a tabela.

Nas fronteiras de service os erros não atravessam como exceção: são
devolvidos dentro de um ServiceResult (ver commons.results).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


# ---------------------------------------------------------------------------
# Categorias
# ---------------------------------------------------------------------------

CATEGORY_VALIDATION = "validation"
CATEGORY_NOT_ACTIVATED = "device_not_activated"
CATEGORY_DEVICE = "device"
CATEGORY_COMMUNICATION = "communication"
CATEGORY_PROTOCOL = "protocol"


# ---------------------------------------------------------------------------
# Tabela de tradução de códigos do dispositivo
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KraErrorDefinition:
    """
    Semântica externa de um código de erro devolvido pelo dispositivo.
    """

    code: str
    kind: str
    gateway_code: str
    retryable: bool
    http_status: int
    message: str


SUCCESS_CODE = "00"
ALREADY_ACTIVATED_CODE = "41"

_HARDWARE_FAULT_CODES = ("11", "12", "13", "20", "91", "99")
_REQUEST_INVALID_CODES = ("30", "31", "33", "34")


def _build_table() -> Dict[str, KraErrorDefinition]:
    table: Dict[str, KraErrorDefinition] = {
        SUCCESS_CODE: KraErrorDefinition(
            code=SUCCESS_CODE,
            kind="Success",
            gateway_code="KRA_SUCCESS",
            retryable=False,
            http_status=200,
            message="Operação concluída pelo dispositivo.",
        ),
        "32": KraErrorDefinition(
            code="32",
            kind="InvalidPin",
            gateway_code="KRA_INVALID_PIN",
            retryable=False,
            http_status=403,
            message="PIN do contribuinte inválido para o dispositivo.",
        ),
        "40": KraErrorDefinition(
            code="40",
            kind="NotActivated",
            gateway_code="KRA_DEVICE_NOT_ACTIVATED",
            retryable=False,
            http_status=412,
            message="Dispositivo fiscal não ativado.",
        ),
        ALREADY_ACTIVATED_CODE: KraErrorDefinition(
            code=ALREADY_ACTIVATED_CODE,
            kind="AlreadyActivated",
            gateway_code="KRA_DEVICE_ALREADY_ACTIVATED",
            retryable=False,
            http_status=409,
            message="Dispositivo fiscal já ativado.",
        ),
        "42": KraErrorDefinition(
            code="42",
            kind="DeviceAuthFailed",
            gateway_code="KRA_DEVICE_AUTH_FAILED",
            retryable=False,
            http_status=401,
            message="Falha de autenticação do dispositivo fiscal.",
        ),
        "90": KraErrorDefinition(
            code="90",
            kind="NetworkUnavailable",
            gateway_code="KRA_DEVICE_NETWORK_ERROR",
            retryable=True,
            http_status=503,
            message="Rede do dispositivo fiscal indisponível.",
        ),
    }

    for code in _HARDWARE_FAULT_CODES:
        table[code] = KraErrorDefinition(
            code=code,
            kind="DeviceHardwareFault",
            gateway_code="KRA_DEVICE_INTERNAL_ERROR",
            retryable=True,
            http_status=500,
            message="Falha interna do dispositivo fiscal.",
        )

    for code in _REQUEST_INVALID_CODES:
        table[code] = KraErrorDefinition(
            code=code,
            kind="RequestDataInvalid",
            gateway_code="KRA_REQUEST_DATA_INVALID",
            retryable=False,
            http_status=400,
            message="Dados do comando rejeitados pelo dispositivo fiscal.",
        )

    return table


KRA_ERROR_TABLE: Dict[str, KraErrorDefinition] = _build_table()


def _normalize_code(code: Any) -> str:
    """
    Normaliza o código para duas posições ("0" → "00", " 41 " → "41").
    """
    if code is None:
        return ""
    value = str(code).strip()
    if value.isdigit() and len(value) < 2:
        return value.zfill(2)
    return value


def translate_error_code(code: Any) -> KraErrorDefinition:
    """
    Traduz um código de erro do dispositivo para sua definição externa.

    Função pura: o mesmo código sempre devolve a mesma definição.
    Códigos fora da tabela viram "Unknown" com status 500.
    """
    normalized = _normalize_code(code)
    definition = KRA_ERROR_TABLE.get(normalized)
    if definition is not None:
        return definition

    return KraErrorDefinition(
        code=normalized,
        kind="Unknown",
        gateway_code="KRA_API_ERROR",
        retryable=False,
        http_status=500,
        message="Erro desconhecido reportado pelo dispositivo fiscal.",
    )


def is_hardware_fault(code: Any) -> bool:
    return translate_error_code(code).kind == "DeviceHardwareFault"


# ---------------------------------------------------------------------------
# Exceções
# ---------------------------------------------------------------------------


class KraError(Exception):
    """
    Base de todos os erros do gateway KRA.

    Atributos comuns:
      - category: variante da taxonomia (validation, device, ...)
      - code: código estável exposto ao chamador (ex: KRA_INVALID_PIN)
      - http_status: status HTTP sugerido para a resposta externa
      - raw_response: corpo bruto do fio (apenas para auditoria/debug)
    """

    category = "unknown"
    default_code = "KRA_API_ERROR"
    default_http_status = 500

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        http_status: int | None = None,
        raw_response: str | None = None,
        details: Dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.http_status = http_status or self.default_http_status
        self.raw_response = raw_response
        self.details: Dict[str, Any] = details or {}

    def __str__(self) -> str:
        return self.message


class KraValidationError(KraError):
    """
    Entrada do chamador malformada. Sempre rejeitada antes de qualquer I/O.
    """

    category = CATEGORY_VALIDATION
    default_code = "KRA_VALIDATION_ERROR"
    default_http_status = 400

    def __init__(self, message: str, *, errors: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors


class DeviceNotActivatedError(KraError):
    category = CATEGORY_NOT_ACTIVATED
    default_code = "KRA_DEVICE_NOT_ACTIVATED"
    default_http_status = 412


class KraDeviceError(KraError):
    """
    Falha reportada pelo dispositivo (ou pela autoridade central) numa
    resposta bem formada: STATUS diferente de sucesso.
    """

    category = CATEGORY_DEVICE

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        data: Dict[str, Any] | None = None,
        raw_response: str | None = None,
    ):
        definition = translate_error_code(error_code)
        super().__init__(
            message,
            code=definition.gateway_code,
            http_status=definition.http_status,
            raw_response=raw_response,
        )
        self.error_code = definition.code
        self.definition = definition
        self.data: Dict[str, Any] = data or {}

    @property
    def retryable(self) -> bool:
        return self.definition.retryable


class KraCommunicationError(KraError):
    """
    Falha de transporte: timeout, conexão recusada ou HTTP não-2xx.
    """

    category = CATEGORY_COMMUNICATION
    default_code = "KRA_COMMUNICATION_ERROR"
    default_http_status = 502

    def __init__(
        self,
        message: str,
        *,
        upstream_status: Optional[int] = None,
        timeout: bool = False,
        raw_response: str | None = None,
    ):
        super().__init__(
            message,
            code="KRA_TIMEOUT" if timeout else self.default_code,
            http_status=504 if timeout else self.default_http_status,
            raw_response=raw_response,
        )
        self.upstream_status = upstream_status
        self.timeout = timeout


class KraProtocolError(KraError):
    """
    Corpo de resposta que não pode ser interpretado no formato esperado
    (vazio, XML malformado, sem STATUS ou sem campos obrigatórios).
    """

    category = CATEGORY_PROTOCOL
    default_code = "KRA_PROTOCOL_ERROR"
    default_http_status = 502
