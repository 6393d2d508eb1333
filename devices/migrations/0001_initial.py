import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("taxpayers", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="FiscalDevice",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("serial_number", models.CharField(max_length=100, unique=True)),
                (
                    "device_class",
                    models.CharField(
                        choices=[("OSCU", "Online Sales Control Unit"), ("VSCU", "Virtual Sales Control Unit")],
                        max_length=4,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pendente de ativação"),
                            ("ACTIVATED", "Ativado"),
                            ("UNAVAILABLE", "Indisponível"),
                            ("ERROR", "Erro"),
                        ],
                        default="PENDING",
                        max_length=16,
                    ),
                ),
                ("branch_office_id", models.CharField(blank=True, default="", max_length=10)),
                ("config", models.JSONField(blank=True, default=dict)),
                ("last_status_check_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "taxpayer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="devices",
                        to="taxpayers.taxpayerpin",
                    ),
                ),
            ],
            options={
                "db_table": "fiscal_devices",
                "indexes": [models.Index(fields=["taxpayer", "status"], name="fiscal_dev_taxpayer_st_idx")],
            },
        ),
    ]
