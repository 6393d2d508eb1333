# tests/fiscal/signing/test_signing_service.py

from datetime import datetime
from urllib.parse import parse_qs, urlparse

import pytest
from django.utils import timezone

from commons.tests.helpers import DEVICE_SERIAL, ok_reply, signed_receipt_data
from devices.models import DeviceStatus
from fiscal.kra_errors import KraCommunicationError, KraDeviceError
from fiscal.models import JournalStatus, Transaction
from fiscal.services import signing_service
from fiscal.services.signing_service import (
    SignedReceipt,
    build_verification_string,
    sign_transaction,
)


@pytest.fixture
def signing_transport(fake_transport):
    return fake_transport(outcomes=[ok_reply(signed_receipt_data())])


@pytest.mark.django_db
def test_assinatura_de_venda_persiste_transacao_pendente(device, sale_payload, context, signing_transport):
    """
    Venda 2 x 100.00 na faixa B (16%) → 200.00 + 32.00 = 232.00.
    """
    result = sign_transaction(
        device=device,
        payload=sale_payload(device),
        context=context,
        transport=signing_transport,
    )

    assert result.ok, result.error
    tx = result.value

    assert tx.invoice_number == f"{DEVICE_SERIAL}/1001"
    assert tx.device_serial_number == DEVICE_SERIAL
    assert tx.digital_signature == "V249-J39C-FJ48-HE2W"
    assert tx.internal_data == "ABCD1234EFGH"
    assert tx.receipt_label == "NS"
    assert tx.receipt_type_counter == 152
    assert tx.receipt_total_counter == 389
    assert tx.journal_status == JournalStatus.PENDING
    assert tx.journal_attempts == 0
    assert timezone.localtime(tx.device_timestamp).strftime("%d/%m/%Y %H:%M:%S") == "19/10/2026 14:05:09"

    summary = tx.response_payload["tax_summary"]
    assert summary["B"] == {"rate": "16.00", "taxable_amount": "200.00", "tax_amount": "32.00"}

    stored = Transaction.objects.get(pk=tx.pk)
    assert stored.request_payload["internal_receipt_number"] == "1001"
    assert "<STATUS>P</STATUS>" in stored.raw_response_xml


@pytest.mark.django_db
def test_comando_enviado_usa_canal_estrito_e_campos_posicionais(device, sale_payload, context, signing_transport):
    sign_transaction(device=device, payload=sale_payload(device), context=context, transport=signing_transport)

    assert signing_transport.commands == ["SEND_RECEIPT"]
    command, target = signing_transport.calls[0]

    assert command.pin == device.taxpayer.pin
    assert command.data["RNum"] == "1001"
    assert command.data["Rtype"] == "N"
    assert command.data["TType"] == "S"
    assert command.data["TaxRate2"] == "16.00"
    assert command.data["Amount2"] == "200.00"
    assert command.data["Tax2"] == "32.00"
    assert command.data["Amount1"] == "0.00"
    assert "ClientsPin" not in command.data

    assert target.timeout_ms == 1000
    assert target.channel == "device"


@pytest.mark.django_db
def test_pin_do_comprador_vai_no_comando(device, sale_payload, context, signing_transport):
    sign_transaction(
        device=device,
        payload=sale_payload(device, buyer_pin="A012345678B"),
        context=context,
        transport=signing_transport,
    )

    command, _ = signing_transport.calls[0]
    assert command.data["ClientsPin"] == "A012345678B"


@pytest.mark.django_db
def test_url_de_verificacao(device, sale_payload, context, signing_transport, settings):
    settings.KRA_QR_CODE_BASE_URL = "https://etims.example.test/verify"

    tx = sign_transaction(
        device=device, payload=sale_payload(device), context=context, transport=signing_transport
    ).unwrap()

    parsed = urlparse(tx.verification_url)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://etims.example.test/verify"
    assert parse_qs(parsed.query)["data"] == [
        f"19102026#1405#{DEVICE_SERIAL}#152#ABCD1234EFGH#V249-J39C-FJ48-HE2W"
    ]


def test_string_de_verificacao_usa_horario_local_sem_segundos():
    receipt = SignedReceipt(
        serial_number="KRACU0100000001",
        device_timestamp=timezone.make_aware(datetime(2026, 1, 5, 9, 7, 59)),
        receipt_label="NS",
        receipt_type_counter=7,
        receipt_total_counter=9,
        signature="SIG",
        internal_data="INT",
    )

    assert build_verification_string(receipt) == "05012026#0907#KRACU0100000001#7#INT#SIG"


@pytest.mark.django_db
@pytest.mark.parametrize("status", [DeviceStatus.PENDING, DeviceStatus.ERROR, DeviceStatus.UNAVAILABLE])
def test_dispositivo_nao_ativado_nao_envia_comando(device, sale_payload, context, fake_transport, status):
    device.status = status
    device.save()
    transport = fake_transport()

    result = sign_transaction(device=device, payload=sale_payload(device), context=context, transport=transport)

    assert not result.ok
    assert result.category == "device_not_activated"
    assert result.error.http_status == 412
    assert transport.calls == []
    assert Transaction.objects.count() == 0


@pytest.mark.django_db
@pytest.mark.parametrize(
    "item_overrides, total_amount, error_key",
    [
        ({"quantity": 2}, "-232.00", "items.0.quantity"),
        ({"quantity": 0}, "-232.00", "items.0.quantity"),
        ({"quantity": -2, "total_amount": "232.00"}, "-232.00", "items.0.quantity"),
        ({"quantity": -2, "total_amount": "0"}, "-232.00", "items.0.quantity"),
        ({"quantity": -2}, "232.00", "total_amount"),
        ({"quantity": -2}, "0", "total_amount"),
    ],
)
def test_nota_de_credito_com_sinal_invalido_e_rejeitada(
    device, sale_payload, context, fake_transport, item_overrides, total_amount, error_key
):
    transport = fake_transport()
    item = {
        "description": "Sugar 1kg",
        "unit_price": 100,
        "tax_designation_code": "B",
        **item_overrides,
    }
    payload = sale_payload(
        device,
        transaction_type="CREDIT_NOTE",
        items=[item],
        total_amount=total_amount,
        taxable_amounts={"B": "-200.00"},
        calculated_taxes={"B": "-32.00"},
        original_invoice_number=f"{DEVICE_SERIAL}/1000",
        original_internal_receipt_number="1000",
        credit_note_reason="Devolução",
    )

    result = sign_transaction(device=device, payload=payload, context=context, transport=transport)

    assert not result.ok
    assert result.category == "validation"
    assert error_key in result.error.errors
    assert transport.calls == []
    assert Transaction.objects.count() == 0


@pytest.mark.django_db
def test_nota_de_credito_valida_e_assinada(device, sale_payload, context, fake_transport):
    transport = fake_transport(outcomes=[ok_reply(signed_receipt_data(RLabel="NC"))])
    payload = sale_payload(
        device,
        transaction_type="CREDIT_NOTE",
        internal_receipt_number="1002",
        items=[
            {
                "description": "Sugar 1kg",
                "quantity": -2,
                "unit_price": 100,
                "tax_designation_code": "B",
            }
        ],
        total_amount="-232.00",
        taxable_amounts={"B": "-200.00"},
        calculated_taxes={"B": "-32.00"},
        original_invoice_number=f"{DEVICE_SERIAL}/1001",
        original_internal_receipt_number="1001",
        credit_note_reason="Devolução de mercadoria",
    )

    result = sign_transaction(device=device, payload=payload, context=context, transport=transport)

    assert result.ok, getattr(result.error, "errors", result.error)
    command, _ = transport.calls[0]
    assert command.data["TType"] == "NC"
    assert command.data["Amount2"] == "-200.00"
    assert command.data["Tax2"] == "-32.00"


@pytest.mark.django_db
def test_nota_de_credito_sem_referencia_ao_original(device, sale_payload, context, fake_transport):
    transport = fake_transport()
    payload = sale_payload(
        device,
        transaction_type="CREDIT_NOTE",
        items=[{"description": "X", "quantity": -1, "unit_price": 100, "tax_designation_code": "B"}],
        total_amount="-116.00",
        taxable_amounts={"B": "-100.00"},
        calculated_taxes={"B": "-16.00"},
    )

    result = sign_transaction(device=device, payload=payload, context=context, transport=transport)

    assert not result.ok
    assert set(result.error.errors) >= {
        "original_invoice_number",
        "original_internal_receipt_number",
        "credit_note_reason",
    }
    assert transport.calls == []


@pytest.mark.django_db
def test_total_divergente_e_rejeitado_antes_do_envio(device, sale_payload, context, fake_transport):
    transport = fake_transport()

    result = sign_transaction(
        device=device,
        payload=sale_payload(device, total_amount="240.00"),
        context=context,
        transport=transport,
    )

    assert not result.ok
    assert result.error.http_status == 400
    assert "total_amount" in result.error.errors
    assert transport.calls == []


@pytest.mark.django_db
def test_pin_divergente_do_dispositivo(device, sale_payload, context, fake_transport, other_taxpayer):
    transport = fake_transport()

    result = sign_transaction(
        device=device,
        payload=sale_payload(device, taxpayer_pin=other_taxpayer.pin),
        context=context,
        transport=transport,
    )

    assert not result.ok
    assert "taxpayer_pin" in result.error.errors
    assert transport.calls == []


@pytest.mark.django_db
def test_falha_de_hardware_rebaixa_dispositivo_e_nao_grava(device, sale_payload, context, fake_transport):
    transport = fake_transport(
        outcomes=[KraDeviceError("Printer error", error_code="11", raw_response="<KRA>...</KRA>")]
    )

    result = sign_transaction(device=device, payload=sale_payload(device), context=context, transport=transport)

    assert not result.ok
    assert result.category == "device"
    assert result.error.error_code == "11"
    assert result.error.http_status == 500
    assert Transaction.objects.count() == 0

    device.refresh_from_db()
    assert device.status == DeviceStatus.ERROR


@pytest.mark.django_db
def test_erro_de_dados_nao_rebaixa_dispositivo(device, sale_payload, context, fake_transport):
    transport = fake_transport(outcomes=[KraDeviceError("Invalid data", error_code="30")])

    result = sign_transaction(device=device, payload=sale_payload(device), context=context, transport=transport)

    assert result.error.http_status == 400
    device.refresh_from_db()
    assert device.status == DeviceStatus.ACTIVATED


@pytest.mark.django_db
def test_timeout_do_dispositivo_devolve_504_sem_gravar(device, sale_payload, context, fake_transport):
    transport = fake_transport(outcomes=[KraCommunicationError("timeout", timeout=True)])

    result = sign_transaction(device=device, payload=sale_payload(device), context=context, transport=transport)

    assert result.category == "communication"
    assert result.error.http_status == 504
    assert len(transport.calls) == 1
    assert Transaction.objects.count() == 0


@pytest.mark.django_db
def test_resposta_sem_assinatura_e_erro_de_protocolo(device, sale_payload, context, fake_transport):
    data = signed_receipt_data()
    del data["Signature"]
    transport = fake_transport(outcomes=[ok_reply(data)])

    result = sign_transaction(device=device, payload=sale_payload(device), context=context, transport=transport)

    assert result.category == "protocol"
    assert result.error.http_status == 502
    assert Transaction.objects.count() == 0


@pytest.mark.django_db
def test_cupom_duplicado_devolve_409_sem_novo_envio(device, sale_payload, context, fake_transport):
    transport = fake_transport(default=ok_reply(signed_receipt_data()))

    first = sign_transaction(device=device, payload=sale_payload(device), context=context, transport=transport)
    second = sign_transaction(device=device, payload=sale_payload(device), context=context, transport=transport)

    assert first.ok
    assert not second.ok
    assert second.error.code == "KRA_DUPLICATE_TRANSACTION"
    assert second.error.http_status == 409
    assert len(transport.calls) == 1
    assert Transaction.objects.count() == 1


@pytest.mark.django_db
def test_journaling_enfileirado_apenas_no_commit(
    device, sale_payload, context, signing_transport, settings, monkeypatch, django_capture_on_commit_callbacks
):
    from fiscal.tasks import journal_transaction

    enqueued = []
    monkeypatch.setattr(
        journal_transaction,
        "apply_async",
        lambda *args, **kwargs: enqueued.append(kwargs),
    )

    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        tx = sign_transaction(
            device=device, payload=sale_payload(device), context=context, transport=signing_transport
        ).unwrap()

    assert enqueued == []
    assert len(callbacks) == 1

    callbacks[0]()

    assert enqueued == [
        {
            "args": [str(tx.id)],
            "kwargs": {"trace_id": context.trace_id},
            "queue": settings.KRA_JOURNALING_QUEUE,
        }
    ]


@pytest.mark.django_db
def test_falha_nao_agenda_journaling(device, sale_payload, context, fake_transport, django_capture_on_commit_callbacks):
    transport = fake_transport(outcomes=[KraCommunicationError("refused")])

    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        sign_transaction(device=device, payload=sale_payload(device), context=context, transport=transport)

    assert callbacks == []


@pytest.mark.django_db
def test_transporte_padrao_vem_da_factory(device, sale_payload, context, signing_transport, monkeypatch):
    monkeypatch.setattr(signing_service, "get_kra_transport", lambda: signing_transport)

    result = sign_transaction(device=device, payload=sale_payload(device), context=context)

    assert result.ok
    assert len(signing_transport.calls) == 1
