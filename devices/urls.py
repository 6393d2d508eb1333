# devices/urls.py

from django.urls import path

from devices.views.device_views import (
    device_daily_report_view,
    device_plu_report_view,
    device_status_view,
    initialize_device_view,
)

app_name = "devices"

urlpatterns = [
    path("initialize/", initialize_device_view, name="device-initialize"),
    path("<uuid:device_id>/status/", device_status_view, name="device-status"),
    path("<uuid:device_id>/reports/plu/", device_plu_report_view, name="device-plu-report"),
    path(
        "<uuid:device_id>/reports/<str:report_type>/",
        device_daily_report_view,
        name="device-daily-report",
    ),
]
