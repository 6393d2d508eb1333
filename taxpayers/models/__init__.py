from .taxpayer_models import ApiClient, TaxpayerPin  # noqa

__all__ = ["ApiClient", "TaxpayerPin"]
