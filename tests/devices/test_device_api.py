# tests/devices/test_device_api.py

import pytest
from django.urls import reverse

from commons.tests.helpers import ok_reply
from devices.models import DeviceClass, DeviceStatus, FiscalDevice
from devices.services import device_service
from fiscal.kra_errors import KraCommunicationError
from fiscal.services import report_service


@pytest.fixture
def patch_device_transport(monkeypatch, fake_transport):
    def _patch(module, outcomes=None):
        transport = fake_transport(outcomes=outcomes)
        monkeypatch.setattr(module, "get_kra_transport", lambda: transport)
        return transport

    return _patch


@pytest.mark.django_db
def test_initialize_endpoint(pos_client, taxpayer, patch_device_transport):
    patch_device_transport(device_service, outcomes=[ok_reply({"SCU_ID": "KRACU0100000077"})])

    response = pos_client.post(
        reverse("devices:device-initialize"),
        {
            "taxpayer_pin": taxpayer.pin,
            "branch_office_id": "00",
            "device_class": "OSCU",
            "device_serial_number": "SN-POS-77",
        },
        format="json",
    )

    assert response.status_code == 200, response.data
    assert response.data["serial_number"] == "KRACU0100000077"
    assert response.data["status"] == DeviceStatus.ACTIVATED
    assert FiscalDevice.objects.filter(serial_number="KRACU0100000077").exists()


@pytest.mark.django_db
def test_initialize_endpoint_bloqueia_pin_nao_autorizado(pos_client, other_taxpayer, patch_device_transport):
    transport = patch_device_transport(device_service)

    response = pos_client.post(
        reverse("devices:device-initialize"),
        {
            "taxpayer_pin": other_taxpayer.pin,
            "branch_office_id": "00",
            "device_class": "OSCU",
            "device_serial_number": "SN-POS-77",
        },
        format="json",
    )

    assert response.status_code == 403
    assert response.data["code"] == "AUTH_PIN_NOT_ALLOWED"
    assert transport.calls == []


@pytest.mark.django_db
def test_initialize_endpoint_rejeita_bridge_em_oscu(pos_client, taxpayer):
    response = pos_client.post(
        reverse("devices:device-initialize"),
        {
            "taxpayer_pin": taxpayer.pin,
            "branch_office_id": "00",
            "device_class": "OSCU",
            "device_serial_number": "SN-POS-77",
            "vscu_bridge_url": "http://10.0.0.5:8088",
        },
        format="json",
    )

    assert response.status_code == 400


@pytest.mark.django_db
def test_status_endpoint_com_dispositivo_indisponivel(pos_client, device, patch_device_transport):
    patch_device_transport(device_service, outcomes=[KraCommunicationError("refused")])

    response = pos_client.get(reverse("devices:device-status", args=[device.id]))

    assert response.status_code == 502
    assert response.data["category"] == "communication"
    device.refresh_from_db()
    assert device.status == DeviceStatus.UNAVAILABLE


@pytest.mark.django_db
def test_status_endpoint_de_outro_contribuinte(pos_client, other_taxpayer):
    foreign = FiscalDevice.objects.create(
        taxpayer=other_taxpayer,
        serial_number="KRACU0100000500",
        device_class=DeviceClass.OSCU,
        status=DeviceStatus.ACTIVATED,
    )

    response = pos_client.get(reverse("devices:device-status", args=[foreign.id]))

    assert response.status_code == 403


@pytest.mark.django_db
@pytest.mark.parametrize("report_type, cmd, path", [("x", "X_REPORT", "/api/getXReport"), ("Z", "Z_REPORT", "/api/generateZReport")])
def test_relatorio_diario(pos_client, device, patch_device_transport, report_type, cmd, path):
    transport = patch_device_transport(
        report_service, outcomes=[ok_reply({"TotalSales": "232.00", "TotalTax": "32.00"})]
    )

    response = pos_client.get(reverse("devices:device-daily-report", args=[device.id, report_type]))

    assert response.status_code == 200
    assert response.data["report_type"] == f"{report_type.upper()}_DAILY_REPORT"
    assert response.data["device_serial_number"] == device.serial_number
    assert response.data["report"] == {"TotalSales": "232.00", "TotalTax": "32.00"}

    command, target = transport.calls[0]
    assert command.cmd == cmd
    assert target.path == path
    assert target.channel == "central"


@pytest.mark.django_db
def test_relatorio_de_tipo_invalido(pos_client, device, patch_device_transport):
    transport = patch_device_transport(report_service)

    response = pos_client.get(reverse("devices:device-daily-report", args=[device.id, "Q"]))

    assert response.status_code == 400
    assert response.data["category"] == "validation"
    assert transport.calls == []
