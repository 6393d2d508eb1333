# taxpayers/authentication.py

import logging

from django.conf import settings
from django.utils import timezone
from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication

from taxpayers.models import ApiClient

logger = logging.getLogger("icore.request")


class ApiKeyAuthentication(BaseAuthentication):
    """
    Autenticação de sistemas PDV/ERP por chave de API.

    Header configurável em ICORE_API_KEY_HEADER (padrão X-API-Key).
    Sem header → segue para o próximo autenticador (JWT de back-office).
    """

    def authenticate(self, request):
        header = settings.ICORE_API_KEY_HEADER
        api_key = request.headers.get(header)
        if not api_key:
            return None

        client = ApiClient.objects.filter(api_key=api_key, is_active=True).first()
        if client is None:
            logger.warning(
                "api_key_invalida",
                extra={"event": "auth_api_key", "trace_id": getattr(request, "trace_id", None)},
            )
            raise exceptions.AuthenticationFailed(
                detail={"code": "ICORE_AUTH_INVALID_API_KEY", "message": "Invalid API Key."}
            )

        ApiClient.objects.filter(pk=client.pk).update(last_used_at=timezone.now())
        return client, api_key

    def authenticate_header(self, request):
        return settings.ICORE_API_KEY_HEADER
