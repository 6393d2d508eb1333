# fiscal/filters.py

import django_filters

from fiscal.models import Transaction


class TransactionFilter(django_filters.FilterSet):
    created_from = django_filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_to = django_filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")
    gateway_device_id = django_filters.UUIDFilter(field_name="device_id")
    taxpayer_pin = django_filters.CharFilter(field_name="taxpayer__pin")

    class Meta:
        model = Transaction
        fields = [
            "journal_status",
            "receipt_type",
            "transaction_type",
            "internal_receipt_number",
        ]
