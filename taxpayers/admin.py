from django.contrib import admin

from taxpayers.models import ApiClient, TaxpayerPin


@admin.register(TaxpayerPin)
class TaxpayerPinAdmin(admin.ModelAdmin):
    list_display = ("pin", "name", "is_active")
    search_fields = ("pin", "name")


@admin.register(ApiClient)
class ApiClientAdmin(admin.ModelAdmin):
    list_display = ("name", "is_active", "allowed_taxpayer_pins", "last_used_at")
    readonly_fields = ("api_key", "last_used_at")
