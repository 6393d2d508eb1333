from .device_models import DeviceClass, DeviceStatus, FiscalDevice  # noqa

__all__ = ["DeviceClass", "DeviceStatus", "FiscalDevice"]
