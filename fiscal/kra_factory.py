# fiscal/kra_factory.py
"""
Factory de alvos (endpoint + perfil de timeout) e do transporte KRA.

Objetivos:
- Isolar num único ponto a escolha do canal por propósito da chamada.
- Canal do dispositivo (assinatura, status, ativação): perfil estrito.
  OSCU → API remota da KRA; VSCU → bridge local (config do dispositivo
  ou KRA_VSCU_BRIDGE_BASE_URL).
- Canal da autoridade central (journal, itens, compras, estoque, relatórios):
  perfil geral.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from django.conf import settings

from fiscal.kra_transport import (
    CHANNEL_CENTRAL,
    CHANNEL_DEVICE,
    KraTarget,
    KraTransport,
    KraTransportProtocol,
)


PURPOSE_SIGN = "SIGN"
PURPOSE_ACTIVATE = "ACTIVATE"
PURPOSE_STATUS = "STATUS"
PURPOSE_JOURNAL_ITEM = "JOURNAL_ITEM"
PURPOSE_JOURNAL = "JOURNAL"
PURPOSE_X_REPORT = "X_REPORT"
PURPOSE_Z_REPORT = "Z_REPORT"
PURPOSE_PLU_REPORT = "PLU_REPORT"
PURPOSE_ITEM_REGISTER = "ITEM_REGISTER"
PURPOSE_ITEM_LIST = "ITEM_LIST"
PURPOSE_PURCHASE = "PURCHASE"
PURPOSE_PURCHASE_ITEM = "PURCHASE_ITEM"
PURPOSE_PURCHASE_LIST = "PURCHASE_LIST"
PURPOSE_PURCHASE_ITEM_LIST = "PURCHASE_ITEM_LIST"
PURPOSE_INVENTORY = "INVENTORY"
PURPOSE_INVENTORY_LIST = "INVENTORY_LIST"

DEVICE_PURPOSES = {PURPOSE_SIGN, PURPOSE_ACTIVATE, PURPOSE_STATUS}
CENTRAL_PURPOSES = {
    PURPOSE_JOURNAL_ITEM,
    PURPOSE_JOURNAL,
    PURPOSE_X_REPORT,
    PURPOSE_Z_REPORT,
    PURPOSE_PLU_REPORT,
    PURPOSE_ITEM_REGISTER,
    PURPOSE_ITEM_LIST,
    PURPOSE_PURCHASE,
    PURPOSE_PURCHASE_ITEM,
    PURPOSE_PURCHASE_LIST,
    PURPOSE_PURCHASE_ITEM_LIST,
    PURPOSE_INVENTORY,
    PURPOSE_INVENTORY_LIST,
}

# Caminho por (propósito, classe do dispositivo). None = vale para ambas.
PATHS: dict[tuple[str, Optional[str]], str] = {
    (PURPOSE_SIGN, None): "",
    (PURPOSE_ACTIVATE, "OSCU"): "/selectInitOsdcInfo",
    (PURPOSE_ACTIVATE, "VSCU"): "/selectInitVscuInfo",
    (PURPOSE_STATUS, "OSCU"): "/selectOsdcStatus",
    (PURPOSE_STATUS, "VSCU"): "/selectVscuStatus",
    (PURPOSE_JOURNAL_ITEM, None): "/api/journal/receipt-item",
    (PURPOSE_JOURNAL, None): "/api/journal/receipt",
    (PURPOSE_X_REPORT, None): "/api/getXReport",
    (PURPOSE_Z_REPORT, None): "/api/generateZReport",
    (PURPOSE_PLU_REPORT, None): "/api/getPLUReport",
    (PURPOSE_ITEM_REGISTER, None): "/api/sendItem",
    (PURPOSE_ITEM_LIST, None): "/api/recvItem",
    (PURPOSE_PURCHASE, None): "/api/sendPurchase",
    (PURPOSE_PURCHASE_ITEM, None): "/api/sendPurchaseItem",
    (PURPOSE_PURCHASE_LIST, None): "/api/recvPurchase",
    (PURPOSE_PURCHASE_ITEM_LIST, None): "/api/recvPurchaseItem",
    (PURPOSE_INVENTORY, None): "/api/sendInventory",
    (PURPOSE_INVENTORY_LIST, None): "/api/recvInventory",
}


def _normalize_device_class(device_class: str | None) -> str:
    """
    Normaliza a classe do dispositivo para "OSCU" ou "VSCU".
    """
    if not device_class:
        return "OSCU"
    return device_class.strip().upper()


def _normalize_environment(environment: str | None) -> str:
    if not environment:
        return "sandbox"

    env = environment.strip().lower()
    if env in {"prod", "production", "producao"}:
        return "production"
    return "sandbox"


def get_central_base_url() -> str:
    if _normalize_environment(settings.KRA_ENVIRONMENT) == "production":
        return settings.KRA_API_PRODUCTION_BASE_URL
    return settings.KRA_API_SANDBOX_BASE_URL


def _device_base_url(device_class: str, device_config: Dict[str, Any]) -> str:
    if device_class == "VSCU":
        return device_config.get("vscu_bridge_url") or settings.KRA_VSCU_BRIDGE_BASE_URL
    return get_central_base_url()


def _path_for(purpose: str, device_class: str) -> str:
    if (purpose, device_class) in PATHS:
        return PATHS[(purpose, device_class)]
    return PATHS[(purpose, None)]


def resolve_target(
    purpose: str,
    *,
    device_class: str | None = None,
    device_config: Dict[str, Any] | None = None,
) -> KraTarget:
    """
    Devolve o KraTarget de uma chamada, sem tocar em estado compartilhado.
    """
    normalized_class = _normalize_device_class(device_class)
    config = device_config or {}

    if purpose in DEVICE_PURPOSES:
        return KraTarget(
            base_url=_device_base_url(normalized_class, config),
            path=_path_for(purpose, normalized_class),
            timeout_ms=int(settings.KRA_STRICT_TIMEOUT_MS),
            channel=CHANNEL_DEVICE,
        )

    if purpose in CENTRAL_PURPOSES:
        return KraTarget(
            base_url=get_central_base_url(),
            path=_path_for(purpose, normalized_class),
            timeout_ms=int(settings.KRA_GENERAL_TIMEOUT_MS),
            channel=CHANNEL_CENTRAL,
        )

    raise ValueError(f"Propósito de chamada KRA desconhecido: {purpose}")


def target_for_device(purpose: str, device) -> KraTarget:
    return resolve_target(
        purpose,
        device_class=device.device_class,
        device_config=device.config,
    )


def get_kra_transport() -> KraTransportProtocol:
    """
    Único ponto de construção do transporte. Os testes fazem monkeypatch aqui.
    """
    return KraTransport(api_key=settings.KRA_API_KEY or None)
