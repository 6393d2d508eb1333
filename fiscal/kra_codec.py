# fiscal/kra_codec.py
"""
Codec do formato de comando XML plano dos dispositivos fiscais KRA.

Requisição:

    <KRA>
      <PIN>P051234567X</PIN>
      <CMD>SEND_RECEIPT</CMD>
      <DATA><RNum>1001</RNum>...</DATA>
    </KRA>

Resposta:

    <KRA>
      <STATUS>P</STATUS>
      <DATA><Snumber>KRACU0100000001</Snumber>...</DATA>
    </KRA>

Regras:
  - Todos os valores são escapados (ElementTree cuida disso); \r vira &#13;
    para não ser normalizado em \n pelo parser.
  - Caracteres proibidos no XML 1.0 (controles exceto \t \n \r) são
    rejeitados com ValueError na montagem do comando.
  - parse_command devolve os valores como foram montados; só parse_reply
    apara espaços das respostas.
  - DATA vazio vira <DATA />.
  - Valores monetários (Decimal/float) sempre com 2 casas e ponto decimal,
    independente de locale.
  - Corpo vazio, XML malformado ou sem STATUS → KraProtocolError.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional

from fiscal.kra_errors import KraProtocolError


ROOT_TAG = "KRA"
SUCCESS_STATUSES = {"P", "SUCCESS"}

_TWO_PLACES = Decimal("0.01")

_INVALID_XML_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


@dataclass
class KraCommand:
    pin: str
    cmd: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class KraReply:
    """
    Resposta já interpretada do dispositivo / autoridade central.
    """

    status: str
    ok: bool
    data: Dict[str, Any]
    raw: str
    error_code: Optional[str] = None
    error_message: Optional[str] = None


# ---------------------------------------------------------------------------
# Valores
# ---------------------------------------------------------------------------


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # via str para não herdar a representação binária do float
        return Decimal(repr(value))
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Valor monetário inválido: {value!r}") from exc


def quantize_amount(value: Any) -> Decimal:
    return to_decimal(value).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def format_amount(value: Any) -> str:
    """
    Formata um valor monetário com exatamente 2 casas decimais e ponto.

    >>> format_amount("2.005")
    '2.01'
    """
    return format(quantize_amount(value), "f")


def _render_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (Decimal, float)):
        return format_amount(value)
    return str(value)


# ---------------------------------------------------------------------------
# Build / serialize
# ---------------------------------------------------------------------------


def find_invalid_xml_char(text: str) -> Optional[str]:
    """
    Primeiro caractere que o XML 1.0 não aceita, ou None.
    """
    match = _INVALID_XML_CHARS.search(text or "")
    return match.group(0) if match else None


def _check_fields(data: Mapping[str, Any], prefix: str = "") -> None:
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping):
            _check_fields(value, prefix=f"{name}.")
            continue
        invalid = find_invalid_xml_char(_render_value(value))
        if invalid is not None:
            raise ValueError(f"Caractere inválido para XML no campo {name}: {invalid!r}.")


def build_command(pin: str, cmd: str, data: Mapping[str, Any] | None = None) -> KraCommand:
    if not pin:
        raise ValueError("PIN do contribuinte é obrigatório para montar o comando.")
    if not cmd:
        raise ValueError("Nome do comando é obrigatório.")
    data = dict(data or {})
    _check_fields({"PIN": pin, "CMD": cmd, **data})
    return KraCommand(pin=pin, cmd=cmd, data=data)


def _append_fields(parent: ET.Element, data: Mapping[str, Any]) -> None:
    for key, value in data.items():
        child = ET.SubElement(parent, str(key))
        if isinstance(value, Mapping):
            _append_fields(child, value)
        else:
            child.text = _render_value(value)


def serialize_command(command: KraCommand) -> str:
    root = ET.Element(ROOT_TAG)
    ET.SubElement(root, "PIN").text = command.pin
    ET.SubElement(root, "CMD").text = command.cmd
    data_el = ET.SubElement(root, "DATA")
    _append_fields(data_el, command.data)

    body = ET.tostring(root, encoding="unicode", short_empty_elements=True)
    # \r só aparece em texto (tags e PIN/CMD já foram validados)
    return '<?xml version="1.0" encoding="UTF-8"?>' + body.replace("\r", "&#13;")


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------


def _element_to_value(element: ET.Element, *, strip: bool) -> Any:
    children = list(element)
    if not children:
        text = element.text or ""
        return text.strip() if strip else text
    return {child.tag: _element_to_value(child, strip=strip) for child in children}


def _parse_root(body: Any) -> ET.Element:
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")

    if body is None or not str(body).strip():
        raise KraProtocolError("Resposta vazia do dispositivo fiscal.", raw_response=body or "")

    try:
        return ET.fromstring(str(body).strip())
    except ET.ParseError as exc:
        raise KraProtocolError(
            f"Resposta do dispositivo não é XML válido: {exc}",
            raw_response=str(body),
        ) from exc


def _data_map(root: ET.Element, *, strip: bool) -> Dict[str, Any]:
    data_el = root.find("DATA")
    if data_el is None:
        return {}
    value = _element_to_value(data_el, strip=strip)
    return value if isinstance(value, dict) else {}


def parse_command(body: Any) -> KraCommand:
    """
    Inverso de serialize_command. Usado em auditoria e nos testes do codec.
    """
    root = _parse_root(body)
    pin = root.findtext("PIN")
    cmd = root.findtext("CMD")
    if pin is None or cmd is None:
        raise KraProtocolError("Comando sem PIN ou CMD.", raw_response=str(body))
    return KraCommand(pin=pin.strip(), cmd=cmd.strip(), data=_data_map(root, strip=False))


def parse_reply(body: Any) -> KraReply:
    """
    Interpreta a resposta do dispositivo.

    STATUS "P"/"SUCCESS" → ok=True; qualquer outro valor → ok=False com
    error_code vindo de DATA/ErrorCode (quando presente).
    """
    root = _parse_root(body)
    raw = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else str(body)

    status_el = root.find("STATUS")
    if status_el is None:
        raise KraProtocolError("Resposta sem elemento STATUS.", raw_response=raw)

    status = (status_el.text or "").strip().upper()
    data = _data_map(root, strip=True)
    ok = status in SUCCESS_STATUSES

    error_code = None
    error_message = None
    if not ok:
        error_code = str(data.get("ErrorCode") or "").strip() or None
        error_message = (
            data.get("ErrorMessage") or data.get("Message") or data.get("ErrorDetail") or None
        )

    return KraReply(
        status=status,
        ok=ok,
        data=data,
        raw=raw,
        error_code=error_code,
        error_message=error_message if isinstance(error_message, str) else None,
    )


def parse_records(reply: KraReply, container: str | None = None) -> list[Dict[str, Any]]:
    """
    Registros repetidos de uma resposta (ex: vários <Item> dentro de DATA).

    KraReply.data é um mapa e perde tags repetidas; aqui o corpo bruto é
    relido. Filhos de DATA (ou de DATA/<container>) que tenham subcampos
    viram um registro cada. DATA só com campos simples vira um registro único.
    """
    data_el = _parse_root(reply.raw).find("DATA")
    if data_el is None:
        return []
    if container is not None:
        data_el = data_el.find(container)
        if data_el is None:
            return []

    children = list(data_el)
    records = [
        _element_to_value(child, strip=True) for child in children if len(child)
    ]
    if records:
        return records
    if children:
        return [_element_to_value(data_el, strip=True)]
    return []
