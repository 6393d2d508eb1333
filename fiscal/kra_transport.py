# fiscal/kra_transport.py
"""
Transporte HTTP dos comandos KRA.

Cada chamada recebe um KraTarget explícito (URL base, caminho e timeout).
O transporte não guarda endpoint nem timeout como estado: a mesma
instância pode ser usada por várias chamadas concorrentes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import requests

from commons.context import CallContext
from fiscal.kra_codec import KraCommand, KraReply, parse_reply, serialize_command
from fiscal.kra_errors import KraCommunicationError, KraDeviceError

logger = logging.getLogger("icore.fiscal")

CHANNEL_DEVICE = "device"
CHANNEL_CENTRAL = "central"

_LOG_BODY_LIMIT = 500


@dataclass(frozen=True)
class KraTarget:
    base_url: str
    path: str
    timeout_ms: int
    channel: str = CHANNEL_DEVICE

    @property
    def url(self) -> str:
        if not self.path:
            return self.base_url
        return f"{self.base_url.rstrip('/')}/{self.path.lstrip('/')}"

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


class KraTransportProtocol(Protocol):
    """
    Contrato que signing/journaling/device services esperam do transporte.
    """

    def send(
        self,
        command: KraCommand,
        *,
        target: KraTarget,
        context: Optional[CallContext] = None,
    ) -> KraReply:
        ...


class KraTransport:
    """
    Implementação sobre requests.

    Regras:
      - Timeout / falha de conexão / HTTP não-2xx → KraCommunicationError.
      - Corpo ilegível → KraProtocolError (levantada pelo codec).
      - STATUS de falha → KraDeviceError com código e corpo bruto.
    """

    def __init__(self, session: Optional[requests.Session] = None, *, api_key: str | None = None):
        self.session = session or requests.Session()
        self.api_key = api_key

    def _headers(self, context: Optional[CallContext]) -> dict:
        headers = {
            "Content-Type": "application/xml",
            "Accept": "application/xml",
        }
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        if context is not None and context.trace_id:
            headers["X-Trace-Id"] = context.trace_id
        return headers

    def send(
        self,
        command: KraCommand,
        *,
        target: KraTarget,
        context: Optional[CallContext] = None,
    ) -> KraReply:
        body = serialize_command(command)
        log_extra = {
            "event": "kra_send",
            "trace_id": context.trace_id if context else None,
            "cmd": command.cmd,
            "channel": target.channel,
            "url": target.url,
            "timeout_ms": target.timeout_ms,
        }

        logger.info("kra_request_enviado", extra=log_extra)

        try:
            response = self.session.post(
                target.url,
                data=body.encode("utf-8"),
                headers=self._headers(context),
                timeout=target.timeout_seconds,
            )
        except requests.Timeout as exc:
            logger.error("kra_request_timeout", extra={**log_extra, "error": str(exc)})
            raise KraCommunicationError(
                f"Timeout após {target.timeout_ms}ms ao chamar {target.url}.",
                timeout=True,
            ) from exc
        except requests.RequestException as exc:
            logger.error("kra_request_falha_conexao", extra={**log_extra, "error": str(exc)})
            raise KraCommunicationError(
                f"Falha de comunicação com {target.url}: {exc}",
            ) from exc

        raw = response.text or ""
        if not 200 <= response.status_code < 300:
            logger.error(
                "kra_request_http_erro",
                extra={
                    **log_extra,
                    "http_status": response.status_code,
                    "body": raw[:_LOG_BODY_LIMIT],
                },
            )
            raise KraCommunicationError(
                f"HTTP {response.status_code} recebido de {target.url}.",
                upstream_status=response.status_code,
                raw_response=raw,
            )

        reply = parse_reply(raw)

        if not reply.ok:
            logger.warning(
                "kra_request_status_erro",
                extra={
                    **log_extra,
                    "status": reply.status,
                    "kra_error_code": reply.error_code,
                    "body": raw[:_LOG_BODY_LIMIT],
                },
            )
            raise KraDeviceError(
                reply.error_message or f"Dispositivo respondeu STATUS={reply.status}.",
                error_code=reply.error_code,
                data=reply.data,
                raw_response=raw,
            )

        logger.info(
            "kra_request_concluido",
            extra={**log_extra, "status": reply.status, "http_status": response.status_code},
        )
        return reply
