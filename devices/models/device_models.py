# devices/models/device_models.py

import uuid

from django.db import models
from django.utils import timezone


class DeviceClass(models.TextChoices):
    OSCU = "OSCU", "Online Sales Control Unit"
    VSCU = "VSCU", "Virtual Sales Control Unit"


class DeviceStatus(models.TextChoices):
    PENDING = "PENDING", "Pendente de ativação"
    ACTIVATED = "ACTIVATED", "Ativado"
    UNAVAILABLE = "UNAVAILABLE", "Indisponível"
    ERROR = "ERROR", "Erro"


class FiscalDevice(models.Model):
    """
    Dispositivo fiscal (OSCU/VSCU) registrado na KRA.

    - serial_number é atribuído pela autoridade (ex: KRACU0100000001).
    - config guarda dados de transporte, ex: {"vscu_bridge_url": "http://10.0.0.5:8088"}.
    - Assinatura só é tentada com status == ACTIVATED.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    taxpayer = models.ForeignKey(
        "taxpayers.TaxpayerPin",
        on_delete=models.PROTECT,
        related_name="devices",
    )

    serial_number = models.CharField(max_length=100, unique=True)
    device_class = models.CharField(max_length=4, choices=DeviceClass.choices)
    status = models.CharField(
        max_length=16,
        choices=DeviceStatus.choices,
        default=DeviceStatus.PENDING,
    )
    branch_office_id = models.CharField(max_length=10, blank=True, default="")

    config = models.JSONField(default=dict, blank=True)
    last_status_check_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "fiscal_devices"
        indexes = [
            models.Index(fields=["taxpayer", "status"], name="fiscal_dev_taxpayer_st_idx"),
        ]

    def __str__(self):
        return f"{self.device_class} {self.serial_number} ({self.status})"

    @property
    def is_activated(self) -> bool:
        return self.status == DeviceStatus.ACTIVATED
