import uuid

import django.utils.timezone
from django.db import migrations, models

import taxpayers.models.taxpayer_models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="TaxpayerPin",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("pin", models.CharField(max_length=20, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("address", models.CharField(blank=True, default="", max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "taxpayer_pins",
                "ordering": ["pin"],
            },
        ),
        migrations.CreateModel(
            name="ApiClient",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                (
                    "api_key",
                    models.CharField(
                        default=taxpayers.models.taxpayer_models.generate_api_key,
                        max_length=128,
                        unique=True,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("allowed_taxpayer_pins", models.TextField(blank=True, default="")),
                ("last_used_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "api_clients",
                "indexes": [models.Index(fields=["api_key", "is_active"], name="api_clients_key_active_idx")],
            },
        ),
    ]
