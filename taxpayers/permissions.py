# taxpayers/permissions.py

from rest_framework.exceptions import PermissionDenied

from taxpayers.models import ApiClient


def assert_taxpayer_pin_allowed(request, taxpayer_pin: str | None) -> None:
    """
    Garante que o chamador pode operar em nome do PIN informado.

    - ApiClient: PIN precisa estar em allowed_taxpayer_pins.
    - Usuário de back-office (JWT) staff: acesso a qualquer PIN.
    """
    principal = request.user

    if isinstance(principal, ApiClient):
        if principal.is_allowed_taxpayer_pin(taxpayer_pin):
            return
    elif getattr(principal, "is_staff", False):
        return

    raise PermissionDenied(
        detail={
            "code": "AUTH_PIN_NOT_ALLOWED",
            "message": f"Acesso não permitido ao PIN {taxpayer_pin}.",
        }
    )


def scope_to_allowed_pins(request, queryset, *, pin_lookup: str = "taxpayer__pin"):
    """
    Mesma regra de assert_taxpayer_pin_allowed aplicada a listagens.

    ApiClient vê só os PINs liberados; staff vê tudo; qualquer outro
    principal autenticado não vê nada.
    """
    principal = request.user

    if isinstance(principal, ApiClient):
        return queryset.filter(**{f"{pin_lookup}__in": principal.allowed_pins})
    if getattr(principal, "is_staff", False):
        return queryset
    return queryset.none()
