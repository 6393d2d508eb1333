# taxpayers/models/taxpayer_models.py

import secrets
import uuid

from django.db import models
from django.utils import timezone


class TaxpayerPin(models.Model):
    """
    Contribuinte (PIN KRA) em nome de quem os dispositivos fiscais operam.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    pin = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=255)
    address = models.CharField(max_length=255, blank=True, default="")
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "taxpayer_pins"
        ordering = ["pin"]

    def __str__(self):
        return f"{self.pin} - {self.name}"


def generate_api_key() -> str:
    return secrets.token_hex(32)


class ApiClient(models.Model):
    """
    Sistema cliente (PDV/ERP) autorizado a chamar o gateway via X-API-Key.

    allowed_taxpayer_pins é uma lista separada por vírgula; vazio = nenhum PIN.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=255)
    api_key = models.CharField(max_length=128, unique=True, default=generate_api_key)
    is_active = models.BooleanField(default=True)
    allowed_taxpayer_pins = models.TextField(blank=True, default="")
    last_used_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "api_clients"
        indexes = [
            models.Index(fields=["api_key", "is_active"], name="api_clients_key_active_idx"),
        ]

    def __str__(self):
        return self.name

    # DRF trata request.user.is_authenticated em IsAuthenticated
    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def is_staff(self) -> bool:
        return False

    @property
    def allowed_pins(self) -> list[str]:
        return [p.strip() for p in (self.allowed_taxpayer_pins or "").split(",") if p.strip()]

    def is_allowed_taxpayer_pin(self, taxpayer_pin: str | None) -> bool:
        if not taxpayer_pin:
            return True
        return taxpayer_pin in self.allowed_pins
