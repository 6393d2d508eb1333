# tests/fiscal/journaling/test_journal_task.py

import pytest

from fiscal.kra_errors import KraCommunicationError
from fiscal.models import JournalStatus
from fiscal.services import journaling_service
from fiscal.tasks import JOURNAL_BACKOFF_SECONDS, JOURNAL_MAX_ATTEMPTS, journal_transaction


@pytest.fixture
def patch_transport(monkeypatch, fake_transport):
    def _patch(outcomes=None):
        transport = fake_transport(outcomes=outcomes)
        monkeypatch.setattr(journaling_service, "get_kra_transport", lambda: transport)
        return transport

    return _patch


def test_politica_de_retentativa():
    assert JOURNAL_MAX_ATTEMPTS == 3
    assert JOURNAL_BACKOFF_SECONDS[:2] == (60, 300)
    assert journal_transaction.max_retries == 2


@pytest.mark.django_db
def test_sucesso_na_primeira_tentativa(signed_transaction, patch_transport):
    transport = patch_transport()

    result = journal_transaction.apply(args=[str(signed_transaction.id)], kwargs={"trace_id": "t-1"})

    assert result.successful()
    assert result.result == JournalStatus.COMPLETED
    assert transport.commands == ["SEND_RECEIPTITEM", "SEND_RECEIPT"]


@pytest.mark.django_db
def test_duas_falhas_e_sucesso_na_terceira(signed_transaction, patch_transport):
    transport = patch_transport(
        outcomes=[
            KraCommunicationError("central offline"),
            KraCommunicationError("central offline"),
        ]
    )

    result = journal_transaction.apply(args=[str(signed_transaction.id)])

    assert result.successful()
    signed_transaction.refresh_from_db()
    assert signed_transaction.journal_status == JournalStatus.COMPLETED
    assert signed_transaction.journal_attempts == 3
    assert signed_transaction.journal_error_message is None
    assert transport.commands == [
        "SEND_RECEIPTITEM",
        "SEND_RECEIPTITEM",
        "SEND_RECEIPTITEM",
        "SEND_RECEIPT",
    ]


@pytest.mark.django_db
def test_tres_falhas_deixam_transacao_failed(signed_transaction, patch_transport):
    before = (
        signed_transaction.invoice_number,
        signed_transaction.digital_signature,
        signed_transaction.internal_data,
        signed_transaction.verification_url,
    )
    transport = patch_transport(outcomes=[KraCommunicationError("central offline")] * 3)

    result = journal_transaction.apply(args=[str(signed_transaction.id)])

    assert result.failed()
    assert len(transport.calls) == 3

    signed_transaction.refresh_from_db()
    assert signed_transaction.journal_status == JournalStatus.FAILED
    assert signed_transaction.journal_attempts == 3
    assert "central offline" in signed_transaction.journal_error_message
    assert (
        signed_transaction.invoice_number,
        signed_transaction.digital_signature,
        signed_transaction.internal_data,
        signed_transaction.verification_url,
    ) == before
