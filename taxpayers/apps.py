from django.apps import AppConfig


class TaxpayersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "taxpayers"
