# fiscal/views/transaction_views.py

import logging
from collections.abc import Mapping

from django.core.exceptions import ValidationError as DjangoValidationError
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from commons.context import CallContext
from commons.errors import error_response
from devices.models import FiscalDevice
from fiscal.filters import TransactionFilter
from fiscal.kra_errors import KraValidationError
from fiscal.models import Transaction
from fiscal.serializers_transactions import TransactionSerializer
from fiscal.services.signing_service import sign_transaction
from taxpayers.permissions import assert_taxpayer_pin_allowed, scope_to_allowed_pins

logger = logging.getLogger("icore.fiscal")


def get_device_or_404(gateway_device_id) -> FiscalDevice:
    try:
        return FiscalDevice.objects.select_related("taxpayer").get(id=gateway_device_id)
    except (FiscalDevice.DoesNotExist, DjangoValidationError):
        raise NotFound(
            detail={
                "code": "ICORE_DEVICE_NOT_FOUND",
                "message": "Dispositivo fiscal não encontrado para o gateway_device_id informado.",
            }
        )


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def sign_transaction_view(request):
    """
    Endpoint HTTP de assinatura de venda / nota de crédito / nota de débito.

        POST /api/v1/transactions/sign/

    Fluxo:

    1. Localiza o dispositivo por gateway_device_id (404 se não existir).
    2. Confere se o chamador pode operar o PIN do dispositivo (403).
    3. Chama fiscal.services.signing_service.sign_transaction.
    4. Sucesso → 201 com a transação assinada; erro → corpo padrão
       (commons.errors) com o status da categoria.
    """
    context = CallContext.from_request(request)

    if not isinstance(request.data, Mapping):
        return error_response(
            KraValidationError(
                "Corpo da requisição deve ser um objeto JSON.",
                errors={"non_field_errors": ["Esperado um objeto JSON."]},
            ),
            context,
        )

    device = get_device_or_404(request.data.get("gateway_device_id"))
    assert_taxpayer_pin_allowed(request, device.taxpayer.pin)
    if request.data.get("taxpayer_pin"):
        assert_taxpayer_pin_allowed(request, request.data.get("taxpayer_pin"))

    logger.info(
        "http_sign_transaction",
        extra={
            "event": "kra_sign",
            "trace_id": context.trace_id,
            "device_id": str(device.id),
            "internal_receipt_number": request.data.get("internal_receipt_number"),
        },
    )

    result = sign_transaction(device=device, payload=request.data, context=context)
    if not result.ok:
        return error_response(result.error, context)

    return Response(
        TransactionSerializer(result.value).data,
        status=status.HTTP_201_CREATED,
        headers={"X-Trace-Id": context.trace_id},
    )


class TransactionListView(generics.ListAPIView):
    """
    Lista transações assinadas, com filtros por status de journal, tipo,
    dispositivo e período.
    """

    serializer_class = TransactionSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_class = TransactionFilter

    def get_queryset(self):
        queryset = Transaction.objects.select_related("taxpayer", "device")
        return scope_to_allowed_pins(self.request, queryset)


class TransactionDetailView(generics.RetrieveAPIView):
    serializer_class = TransactionSerializer
    permission_classes = [IsAuthenticated]
    lookup_url_kwarg = "transaction_id"

    def get_queryset(self):
        queryset = Transaction.objects.select_related("taxpayer", "device")
        return scope_to_allowed_pins(self.request, queryset)
