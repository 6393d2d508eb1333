# conftest.py (na raiz do projeto)

import pytest
from rest_framework.test import APIClient

from commons.context import CallContext
from commons.tests.helpers import (
    DEVICE_SERIAL,
    OTHER_TAXPAYER_PIN,
    TAXPAYER_PIN,
    FakeTransport,
    ok_reply,
    signed_receipt_data,
)
from devices.models import DeviceClass, DeviceStatus, FiscalDevice
from fiscal.services.signing_service import sign_transaction
from taxpayers.models import ApiClient, TaxpayerPin


# =============================================================================
# DOUBLES DE TRANSPORTE
# =============================================================================

@pytest.fixture
def fake_transport():
    def _build(outcomes=None, default=None):
        return FakeTransport(outcomes=outcomes, default=default)

    return _build


# =============================================================================
# ENTIDADES
# =============================================================================

@pytest.fixture
def context():
    return CallContext(trace_id="trace-test-0001", debug=False)


@pytest.fixture
def taxpayer(db):
    return TaxpayerPin.objects.create(pin=TAXPAYER_PIN, name="Duka Supermarket Ltd")


@pytest.fixture
def other_taxpayer(db):
    return TaxpayerPin.objects.create(pin=OTHER_TAXPAYER_PIN, name="Outro Contribuinte")


@pytest.fixture
def device(taxpayer):
    return FiscalDevice.objects.create(
        taxpayer=taxpayer,
        serial_number=DEVICE_SERIAL,
        device_class=DeviceClass.OSCU,
        status=DeviceStatus.ACTIVATED,
        branch_office_id="00",
    )


@pytest.fixture
def vscu_device(taxpayer):
    return FiscalDevice.objects.create(
        taxpayer=taxpayer,
        serial_number="KRAVS0200000007",
        device_class=DeviceClass.VSCU,
        status=DeviceStatus.ACTIVATED,
        config={"vscu_bridge_url": "http://10.0.0.5:8088"},
    )


@pytest.fixture
def sale_payload():
    """
    Uma linha: 2 x 100.00 na faixa B (16%) → 200.00 + 32.00 = 232.00.
    """

    def _build(device, **overrides):
        payload = {
            "gateway_device_id": str(device.id),
            "taxpayer_pin": device.taxpayer.pin,
            "receipt_type": "NORMAL",
            "transaction_type": "SALE",
            "internal_receipt_number": "1001",
            "buyer_pin": "",
            "items": [
                {
                    "description": "Sugar 1kg",
                    "code": "SUG-1KG",
                    "quantity": 2,
                    "unit_price": 100,
                    "tax_designation_code": "B",
                },
            ],
            "total_amount": "232.00",
            "payment_method": "CASH",
            "tax_rates": {"A": 0, "B": 16},
            "taxable_amounts": {"B": "200.00"},
            "calculated_taxes": {"B": "32.00"},
        }
        payload.update(overrides)
        return payload

    return _build


# =============================================================================
# CLIENTES HTTP
# =============================================================================

@pytest.fixture
def api_client_record(taxpayer):
    return ApiClient.objects.create(name="POS Duka", allowed_taxpayer_pins=TAXPAYER_PIN)


@pytest.fixture
def pos_client(api_client_record):
    """
    APIClient do DRF já autenticado via X-API-Key.
    """
    client = APIClient()
    client.credentials(HTTP_X_API_KEY=api_client_record.api_key)
    return client


@pytest.fixture
def signed_transaction(device, sale_payload, context):
    """
    Transação já assinada (journal_status=PENDING), pronta para o journaling.
    """
    transport = FakeTransport(outcomes=[ok_reply(signed_receipt_data())])
    return sign_transaction(
        device=device,
        payload=sale_payload(device),
        context=context,
        transport=transport,
    ).unwrap()
