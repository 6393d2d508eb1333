# devices/views/device_views.py

import logging

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from commons.context import CallContext
from commons.errors import error_response
from devices.models import FiscalDevice
from devices.serializers import FiscalDeviceSerializer, InitializeDeviceInputSerializer
from devices.services.device_service import check_device_status, initialize_device
from fiscal.serializers_items import PluReportQuerySerializer
from fiscal.services.report_service import fetch_daily_report, fetch_plu_report
from taxpayers.models import TaxpayerPin
from taxpayers.permissions import assert_taxpayer_pin_allowed

logger = logging.getLogger("icore.devices")


def _get_device(request, device_id) -> FiscalDevice:
    device = get_object_or_404(FiscalDevice.objects.select_related("taxpayer"), pk=device_id)
    assert_taxpayer_pin_allowed(request, device.taxpayer.pin)
    return device


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def initialize_device_view(request):
    """
    POST /api/v1/devices/initialize/

    Ativa um OSCU/VSCU na KRA e registra o dispositivo local.
    Dispositivo já ativado (código 41) devolve o registro existente.
    """
    context = CallContext.from_request(request)

    serializer = InitializeDeviceInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    assert_taxpayer_pin_allowed(request, data["taxpayer_pin"])

    taxpayer = TaxpayerPin.objects.filter(pin=data["taxpayer_pin"], is_active=True).first()
    if taxpayer is None:
        raise NotFound(
            detail={
                "code": "ICORE_TAXPAYER_NOT_FOUND",
                "message": "PIN do contribuinte não cadastrado ou inativo.",
            }
        )

    config = {}
    if data.get("vscu_bridge_url"):
        config["vscu_bridge_url"] = data["vscu_bridge_url"]

    result = initialize_device(
        taxpayer=taxpayer,
        device_class=data["device_class"],
        device_serial_number=data["device_serial_number"],
        branch_office_id=data["branch_office_id"],
        config=config,
        context=context,
    )
    if not result.ok:
        return error_response(result.error, context)

    return Response(FiscalDeviceSerializer(result.value).data, status=status.HTTP_200_OK)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def device_status_view(request, device_id):
    """
    GET /api/v1/devices/<id>/status/
    """
    context = CallContext.from_request(request)
    device = _get_device(request, device_id)

    result = check_device_status(device=device, context=context)
    if not result.ok:
        return error_response(result.error, context)
    return Response(FiscalDeviceSerializer(result.value).data)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def device_daily_report_view(request, device_id, report_type):
    """
    GET /api/v1/devices/<id>/reports/<x|z>/
    """
    context = CallContext.from_request(request)
    device = _get_device(request, device_id)

    result = fetch_daily_report(device=device, report_type=report_type, context=context)
    if not result.ok:
        return error_response(result.error, context)
    return Response(result.value)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def device_plu_report_view(request, device_id):
    """
    GET /api/v1/devices/<id>/reports/plu/?start_date=AAAA-MM-DD&end_date=AAAA-MM-DD
    """
    context = CallContext.from_request(request)
    device = _get_device(request, device_id)

    query = PluReportQuerySerializer(data=request.query_params)
    query.is_valid(raise_exception=True)

    result = fetch_plu_report(
        device=device,
        context=context,
        start_date=query.validated_data.get("start_date"),
        end_date=query.validated_data.get("end_date"),
    )
    if not result.ok:
        return error_response(result.error, context)
    return Response(result.value)
