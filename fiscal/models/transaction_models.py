# fiscal/models/transaction_models.py

import uuid

from django.db import models
from django.utils import timezone


class ReceiptType(models.TextChoices):
    NORMAL = "NORMAL", "Normal"
    COPY = "COPY", "Cópia"
    TRAINING = "TRAINING", "Treinamento"
    PROFORMA = "PROFORMA", "Proforma"


class TransactionType(models.TextChoices):
    SALE = "SALE", "Venda"
    CREDIT_NOTE = "CREDIT_NOTE", "Nota de crédito"
    DEBIT_NOTE = "DEBIT_NOTE", "Nota de débito"


class JournalStatus(models.TextChoices):
    PENDING = "PENDING", "Pendente"
    QUEUED = "QUEUED", "Em processamento"
    COMPLETED = "COMPLETED", "Concluído"
    FAILED = "FAILED", "Falhou"


class Transaction(models.Model):
    """
    Transação fiscal assinada por um dispositivo KRA.

    - Só existe se a assinatura foi concluída (nada de registro parcial).
    - Chave única (device, internal_receipt_number, receipt_type, transaction_type)
      impede assinar duas vezes o mesmo cupom do PDV/ERP.
    - journal_status só é alterado via JournalStateMachine.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    device = models.ForeignKey(
        "devices.FiscalDevice",
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    taxpayer = models.ForeignKey(
        "taxpayers.TaxpayerPin",
        on_delete=models.PROTECT,
        related_name="transactions",
    )

    internal_receipt_number = models.CharField(max_length=50, db_index=True)
    receipt_type = models.CharField(max_length=10, choices=ReceiptType.choices)
    transaction_type = models.CharField(max_length=12, choices=TransactionType.choices)

    # Dados devolvidos pelo dispositivo na assinatura
    device_serial_number = models.CharField(max_length=100)
    receipt_label = models.CharField(max_length=10, blank=True, default="")
    receipt_type_counter = models.PositiveIntegerField(default=0)
    receipt_total_counter = models.PositiveIntegerField(default=0)
    invoice_number = models.CharField(max_length=160)
    digital_signature = models.CharField(max_length=255)
    internal_data = models.CharField(max_length=255, blank=True, default="")
    verification_url = models.CharField(max_length=500)
    device_timestamp = models.DateTimeField()

    # Auditoria
    request_payload = models.JSONField()
    response_payload = models.JSONField(blank=True, null=True)
    raw_request_xml = models.TextField(blank=True, null=True)
    raw_response_xml = models.TextField(blank=True, null=True)

    journal_status = models.CharField(
        max_length=10,
        choices=JournalStatus.choices,
        default=JournalStatus.PENDING,
    )
    journal_error_message = models.TextField(blank=True, null=True)
    journal_attempts = models.PositiveSmallIntegerField(default=0)
    journaled_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "fiscal_transactions"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["device", "internal_receipt_number", "receipt_type", "transaction_type"],
                name="uniq_device_internal_receipt",
            ),
        ]
        indexes = [
            models.Index(fields=["journal_status"], name="fiscal_tx_journal_st_idx"),
            models.Index(fields=["taxpayer", "created_at"], name="fiscal_tx_taxpayer_dt_idx"),
        ]

    def __str__(self):
        return f"{self.invoice_number} [{self.transaction_type}/{self.receipt_type}] {self.journal_status}"
