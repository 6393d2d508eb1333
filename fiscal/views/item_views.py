# fiscal/views/item_views.py

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from commons.context import CallContext
from commons.errors import error_response
from fiscal.serializers_items import RegisterItemSerializer
from fiscal.services.item_service import list_items, register_item
from fiscal.views.transaction_views import get_device_or_404
from taxpayers.permissions import assert_taxpayer_pin_allowed


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def items_view(request):
    """
    Cadastro de itens na KRA.

        GET  /api/v1/items/?gateway_device_id=<uuid>  → RECV_ITEM
        POST /api/v1/items/                           → SEND_ITEM
    """
    context = CallContext.from_request(request)

    if request.method == "GET":
        gateway_device_id = request.query_params.get("gateway_device_id")
        if not gateway_device_id:
            raise ValidationError({"gateway_device_id": ["Obrigatório."]})
        device = get_device_or_404(gateway_device_id)
        assert_taxpayer_pin_allowed(request, device.taxpayer.pin)

        result = list_items(device=device, context=context)
        if not result.ok:
            return error_response(result.error, context)
        return Response({"gateway_device_id": str(device.id), "items": result.value})

    serializer = RegisterItemSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    item = serializer.validated_data

    device = get_device_or_404(item["gateway_device_id"])
    assert_taxpayer_pin_allowed(request, device.taxpayer.pin)

    result = register_item(device=device, item=item, context=context)
    if not result.ok:
        return error_response(result.error, context)
    return Response(result.value, status=status.HTTP_201_CREATED)
