# fiscal/views/stock_views.py

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from commons.context import CallContext
from commons.errors import error_response
from fiscal.serializers_stock import InventoryMovementSerializer, InventoryQuerySerializer, PurchaseSerializer
from fiscal.services.inventory_service import list_inventory, send_inventory_movement
from fiscal.services.purchase_service import list_purchases, send_purchase
from fiscal.views.transaction_views import get_device_or_404
from taxpayers.permissions import assert_taxpayer_pin_allowed


def _allowed_device(request, device_id):
    device = get_device_or_404(device_id)
    assert_taxpayer_pin_allowed(request, device.taxpayer.pin)
    return device


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def purchases_view(request):
    """
    Compras de fornecedores.

        GET  /api/v1/purchases/?gateway_device_id=<uuid>  → RECV_PURCHASE + RECV_PURCHASEITEM
        POST /api/v1/purchases/                           → SEND_PURCHASE + SEND_PURCHASEITEM
    """
    context = CallContext.from_request(request)

    if request.method == "GET":
        gateway_device_id = request.query_params.get("gateway_device_id")
        if not gateway_device_id:
            raise ValidationError({"gateway_device_id": ["Obrigatório."]})
        device = _allowed_device(request, gateway_device_id)

        result = list_purchases(device=device, context=context)
        if not result.ok:
            return error_response(result.error, context)
        return Response({"gateway_device_id": str(device.id), **result.value})

    serializer = PurchaseSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    purchase = serializer.validated_data

    device = _allowed_device(request, purchase["gateway_device_id"])

    result = send_purchase(device=device, purchase=purchase, context=context)
    if not result.ok:
        return error_response(result.error, context)
    return Response(result.value, status=status.HTTP_201_CREATED)


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def inventory_view(request):
    """
    Estoque.

        GET  /api/v1/inventory/?gateway_device_id=<uuid>[&item_code=&branch_id=&start_date=&end_date=]
        POST /api/v1/inventory/  → SEND_INVENTORY
    """
    context = CallContext.from_request(request)

    if request.method == "GET":
        query = InventoryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        filters = query.validated_data
        device = _allowed_device(request, filters["gateway_device_id"])

        result = list_inventory(device=device, filters=filters, context=context)
        if not result.ok:
            return error_response(result.error, context)
        return Response({"gateway_device_id": str(device.id), "inventory": result.value})

    serializer = InventoryMovementSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    movement = serializer.validated_data

    device = _allowed_device(request, movement["gateway_device_id"])

    result = send_inventory_movement(device=device, movement=movement, context=context)
    if not result.ok:
        return error_response(result.error, context)
    return Response(result.value, status=status.HTTP_201_CREATED)
