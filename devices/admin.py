from django.contrib import admin

from devices.models import FiscalDevice


@admin.register(FiscalDevice)
class FiscalDeviceAdmin(admin.ModelAdmin):
    list_display = ("serial_number", "device_class", "status", "taxpayer", "last_status_check_at")
    list_filter = ("device_class", "status")
    search_fields = ("serial_number",)
