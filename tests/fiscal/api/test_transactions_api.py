# tests/fiscal/api/test_transactions_api.py

import uuid

import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from commons.tests.helpers import DEVICE_SERIAL, ok_reply, signed_receipt_data
from devices.models import DeviceClass, DeviceStatus, FiscalDevice
from fiscal.kra_errors import KraDeviceError
from fiscal.models import JournalStatus, Transaction
from fiscal.services import signing_service

SIGN_URL = "/api/v1/transactions/sign/"


@pytest.fixture
def patch_sign_transport(monkeypatch, fake_transport):
    def _patch(outcomes=None):
        transport = fake_transport(outcomes=outcomes)
        monkeypatch.setattr(signing_service, "get_kra_transport", lambda: transport)
        return transport

    return _patch


@pytest.fixture
def foreign_device(other_taxpayer):
    return FiscalDevice.objects.create(
        taxpayer=other_taxpayer,
        serial_number="KRACU0100000500",
        device_class=DeviceClass.OSCU,
        status=DeviceStatus.ACTIVATED,
    )


# =============================================================================
# ASSINATURA
# =============================================================================

@pytest.mark.django_db
def test_assinatura_via_http_devolve_201(pos_client, device, sale_payload, patch_sign_transport):
    patch_sign_transport(outcomes=[ok_reply(signed_receipt_data())])

    response = pos_client.post(
        SIGN_URL, sale_payload(device), format="json", HTTP_X_TRACE_ID="trace-pos-42"
    )

    assert response.status_code == 201, response.data
    assert response["X-Trace-Id"] == "trace-pos-42"

    body = response.data
    assert body["invoice_number"] == f"{DEVICE_SERIAL}/1001"
    assert body["digital_signature"] == "V249-J39C-FJ48-HE2W"
    assert body["receipt_type_counter"] == 152
    assert body["receipt_total_counter"] == 389
    assert body["journal_status"] == JournalStatus.PENDING
    assert body["gateway_device_id"] == str(device.id)
    assert body["taxpayer_pin"] == device.taxpayer.pin
    assert body["verification_url"].startswith("https://")


@pytest.mark.django_db
def test_dispositivo_nao_ativado_devolve_412(pos_client, device, sale_payload, patch_sign_transport):
    device.status = DeviceStatus.PENDING
    device.save()
    transport = patch_sign_transport()

    response = pos_client.post(SIGN_URL, sale_payload(device), format="json")

    assert response.status_code == 412
    assert response.data["code"] == "KRA_DEVICE_NOT_ACTIVATED"
    assert response.data["category"] == "device_not_activated"
    assert response.data["trace_id"]
    assert transport.calls == []


@pytest.mark.django_db
def test_payload_invalido_devolve_400_com_erros(pos_client, device, sale_payload, patch_sign_transport):
    transport = patch_sign_transport()

    response = pos_client.post(SIGN_URL, sale_payload(device, total_amount="999.00"), format="json")

    assert response.status_code == 400
    assert response.data["code"] == "KRA_VALIDATION_ERROR"
    assert "total_amount" in response.data["details"]["errors"]
    assert transport.calls == []


@pytest.mark.django_db
def test_falha_do_dispositivo_traduz_codigo(pos_client, device, sale_payload, patch_sign_transport):
    patch_sign_transport(
        outcomes=[KraDeviceError("Invalid PIN", error_code="32", raw_response="<KRA>raw</KRA>")]
    )

    response = pos_client.post(SIGN_URL, sale_payload(device), format="json")

    assert response.status_code == 403
    assert response.data["code"] == "KRA_INVALID_PIN"
    assert response.data["details"]["kra_error_code"] == "32"
    assert "raw_response" not in response.data["details"]


@pytest.mark.django_db
def test_modo_diagnostico_expoe_corpo_bruto(pos_client, device, sale_payload, patch_sign_transport, settings):
    settings.KRA_EXPOSE_RAW_RESPONSES = True
    patch_sign_transport(
        outcomes=[KraDeviceError("Printer error", error_code="11", raw_response="<KRA>raw</KRA>")]
    )

    response = pos_client.post(SIGN_URL, sale_payload(device), format="json")

    assert response.status_code == 500
    assert response.data["details"]["raw_response"] == "<KRA>raw</KRA>"


@pytest.mark.django_db
def test_dispositivo_inexistente_devolve_404(pos_client, device, sale_payload, patch_sign_transport):
    payload = sale_payload(device, gateway_device_id=str(uuid.uuid4()))

    response = pos_client.post(SIGN_URL, payload, format="json")

    assert response.status_code == 404
    assert response.data["code"] == "ICORE_DEVICE_NOT_FOUND"


@pytest.mark.django_db
def test_device_id_malformado_devolve_404(pos_client, device, sale_payload):
    response = pos_client.post(SIGN_URL, sale_payload(device, gateway_device_id="abc"), format="json")

    assert response.status_code == 404


@pytest.mark.django_db
def test_pin_nao_autorizado_devolve_403(pos_client, foreign_device, sale_payload, patch_sign_transport):
    transport = patch_sign_transport()

    response = pos_client.post(SIGN_URL, sale_payload(foreign_device), format="json")

    assert response.status_code == 403
    assert response.data["code"] == "AUTH_PIN_NOT_ALLOWED"
    assert transport.calls == []


@pytest.mark.django_db
def test_sem_api_key_devolve_401(device, sale_payload):
    response = APIClient().post(SIGN_URL, sale_payload(device), format="json")

    assert response.status_code == 401


@pytest.mark.django_db
def test_api_key_invalida_devolve_401(device, sale_payload):
    client = APIClient()
    client.credentials(HTTP_X_API_KEY="nao-existe")

    response = client.post(SIGN_URL, sale_payload(device), format="json")

    assert response.status_code == 401
    assert response.data["code"] == "ICORE_AUTH_INVALID_API_KEY"


@pytest.mark.django_db
def test_api_key_inativa_devolve_401(api_client_record, device, sale_payload):
    api_client_record.is_active = False
    api_client_record.save()
    client = APIClient()
    client.credentials(HTTP_X_API_KEY=api_client_record.api_key)

    response = client.post(SIGN_URL, sale_payload(device), format="json")

    assert response.status_code == 401


@pytest.mark.django_db
def test_api_key_registra_ultimo_uso(pos_client, api_client_record, device, sale_payload, patch_sign_transport):
    patch_sign_transport(outcomes=[ok_reply(signed_receipt_data())])

    pos_client.post(SIGN_URL, sale_payload(device), format="json")

    api_client_record.refresh_from_db()
    assert api_client_record.last_used_at is not None


@pytest.mark.django_db
def test_duplicado_via_http_devolve_409(pos_client, device, sale_payload, patch_sign_transport):
    patch_sign_transport(outcomes=[ok_reply(signed_receipt_data()), ok_reply(signed_receipt_data())])

    first = pos_client.post(SIGN_URL, sale_payload(device), format="json")
    second = pos_client.post(SIGN_URL, sale_payload(device), format="json")

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.data["code"] == "KRA_DUPLICATE_TRANSACTION"


# =============================================================================
# CONSULTA
# =============================================================================

@pytest.mark.django_db
def test_listagem_restrita_aos_pins_do_cliente(pos_client, signed_transaction, foreign_device, sale_payload, context, fake_transport):
    signing_service.sign_transaction(
        device=foreign_device,
        payload=sale_payload(foreign_device),
        context=context,
        transport=fake_transport(outcomes=[ok_reply(signed_receipt_data(Snumber="KRACU0100000500"))]),
    ).unwrap()
    assert Transaction.objects.count() == 2

    response = pos_client.get(reverse("fiscal:transaction-list"))

    assert response.status_code == 200
    assert response.data["count"] == 1
    assert response.data["results"][0]["gateway_transaction_id"] == str(signed_transaction.id)


@pytest.mark.django_db
def test_listagem_filtra_por_status_de_journal(pos_client, signed_transaction):
    pending = pos_client.get(reverse("fiscal:transaction-list"), {"journal_status": "PENDING"})
    completed = pos_client.get(reverse("fiscal:transaction-list"), {"journal_status": "COMPLETED"})

    assert pending.data["count"] == 1
    assert completed.data["count"] == 0


@pytest.mark.django_db
def test_detalhe_da_transacao(pos_client, signed_transaction):
    response = pos_client.get(reverse("fiscal:transaction-detail", args=[signed_transaction.id]))

    assert response.status_code == 200
    assert response.data["invoice_number"] == signed_transaction.invoice_number
    assert response.data["journal_attempts"] == 0


@pytest.mark.django_db
def test_detalhe_de_outro_contribuinte_devolve_404(pos_client, foreign_device, sale_payload, context, fake_transport):
    foreign_tx = signing_service.sign_transaction(
        device=foreign_device,
        payload=sale_payload(foreign_device),
        context=context,
        transport=fake_transport(outcomes=[ok_reply(signed_receipt_data(Snumber="KRACU0100000500"))]),
    ).unwrap()

    response = pos_client.get(reverse("fiscal:transaction-detail", args=[foreign_tx.id]))

    assert response.status_code == 404


@pytest.fixture
def backoffice_client(django_user_model):
    def _build(is_staff):
        user = django_user_model.objects.create_user(
            username=f"operador-{'staff' if is_staff else 'comum'}",
            password="senha-forte-123",
            is_staff=is_staff,
        )
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return _build


@pytest.mark.django_db
def test_usuario_sem_staff_nao_lista_nem_detalha_transacoes(backoffice_client, signed_transaction):
    client = backoffice_client(is_staff=False)

    listing = client.get(reverse("fiscal:transaction-list"))
    detail = client.get(reverse("fiscal:transaction-detail", args=[signed_transaction.id]))

    assert listing.status_code == 200
    assert listing.data["count"] == 0
    assert detail.status_code == 404


@pytest.mark.django_db
def test_usuario_staff_ve_todos_os_contribuintes(backoffice_client, signed_transaction):
    client = backoffice_client(is_staff=True)

    listing = client.get(reverse("fiscal:transaction-list"))

    assert listing.status_code == 200
    assert listing.data["count"] == 1


@pytest.mark.django_db
@pytest.mark.parametrize("body", [[{"gateway_device_id": "x"}], "texto", 42])
def test_corpo_que_nao_e_objeto_devolve_400(pos_client, device, patch_sign_transport, body):
    transport = patch_sign_transport()

    response = pos_client.post(SIGN_URL, body, format="json")

    assert response.status_code == 400
    assert response.data["code"] == "KRA_VALIDATION_ERROR"
    assert response.data["category"] == "validation"
    assert transport.calls == []


@pytest.mark.django_db
def test_caractere_de_controle_no_item_devolve_400(pos_client, device, sale_payload, patch_sign_transport):
    transport = patch_sign_transport()
    payload = sale_payload(device)
    payload["items"][0]["description"] = "Sugar\x0b1kg"

    response = pos_client.post(SIGN_URL, payload, format="json")

    assert response.status_code == 400
    assert "items" in response.data["details"]["errors"]
    assert transport.calls == []
