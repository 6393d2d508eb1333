import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("taxpayers", "0001_initial"),
        ("devices", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Transaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("internal_receipt_number", models.CharField(db_index=True, max_length=50)),
                (
                    "receipt_type",
                    models.CharField(
                        choices=[
                            ("NORMAL", "Normal"),
                            ("COPY", "Cópia"),
                            ("TRAINING", "Treinamento"),
                            ("PROFORMA", "Proforma"),
                        ],
                        max_length=10,
                    ),
                ),
                (
                    "transaction_type",
                    models.CharField(
                        choices=[
                            ("SALE", "Venda"),
                            ("CREDIT_NOTE", "Nota de crédito"),
                            ("DEBIT_NOTE", "Nota de débito"),
                        ],
                        max_length=12,
                    ),
                ),
                ("device_serial_number", models.CharField(max_length=100)),
                ("receipt_label", models.CharField(blank=True, default="", max_length=10)),
                ("receipt_type_counter", models.PositiveIntegerField(default=0)),
                ("receipt_total_counter", models.PositiveIntegerField(default=0)),
                ("invoice_number", models.CharField(max_length=160)),
                ("digital_signature", models.CharField(max_length=255)),
                ("internal_data", models.CharField(blank=True, default="", max_length=255)),
                ("verification_url", models.CharField(max_length=500)),
                ("device_timestamp", models.DateTimeField()),
                ("request_payload", models.JSONField()),
                ("response_payload", models.JSONField(blank=True, null=True)),
                ("raw_request_xml", models.TextField(blank=True, null=True)),
                ("raw_response_xml", models.TextField(blank=True, null=True)),
                (
                    "journal_status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pendente"),
                            ("QUEUED", "Em processamento"),
                            ("COMPLETED", "Concluído"),
                            ("FAILED", "Falhou"),
                        ],
                        default="PENDING",
                        max_length=10,
                    ),
                ),
                ("journal_error_message", models.TextField(blank=True, null=True)),
                ("journal_attempts", models.PositiveSmallIntegerField(default=0)),
                ("journaled_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "device",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="devices.fiscaldevice",
                    ),
                ),
                (
                    "taxpayer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="taxpayers.taxpayerpin",
                    ),
                ),
            ],
            options={
                "db_table": "fiscal_transactions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["journal_status"], name="fiscal_tx_journal_st_idx"),
                    models.Index(fields=["taxpayer", "created_at"], name="fiscal_tx_taxpayer_dt_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("device", "internal_receipt_number", "receipt_type", "transaction_type"),
                        name="uniq_device_internal_receipt",
                    ),
                ],
            },
        ),
    ]
