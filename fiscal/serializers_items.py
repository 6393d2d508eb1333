# fiscal/serializers_items.py

from decimal import Decimal

from rest_framework import serializers

from fiscal.serializers_transactions import XML_SAFE


_AMOUNT = {"max_digits": 18, "decimal_places": 4, "min_value": Decimal("0")}
_OPTIONAL_TEXT = {"required": False, "allow_blank": True, "validators": XML_SAFE}


class RegisterItemSerializer(serializers.Serializer):
    """
    Cadastro de item enviado à KRA (SEND_ITEM).
    """

    gateway_device_id = serializers.UUIDField()

    item_code = serializers.CharField(max_length=50, validators=XML_SAFE)
    item_classification_code = serializers.CharField(max_length=50, validators=XML_SAFE)
    item_name = serializers.CharField(max_length=255, validators=XML_SAFE)
    item_type_code = serializers.CharField(max_length=10, **_OPTIONAL_TEXT)
    item_standard = serializers.CharField(max_length=255, **_OPTIONAL_TEXT)
    origin_country_code = serializers.CharField(max_length=5, **_OPTIONAL_TEXT)
    packaging_unit_code = serializers.CharField(max_length=10, validators=XML_SAFE)
    quantity_unit_code = serializers.CharField(max_length=10, validators=XML_SAFE)
    additional_info = serializers.CharField(max_length=255, **_OPTIONAL_TEXT)

    initial_wholesale_unit_price = serializers.DecimalField(**_AMOUNT)
    initial_quantity = serializers.DecimalField(**_AMOUNT)
    average_wholesale_unit_price = serializers.DecimalField(required=False, allow_null=True, **_AMOUNT)
    default_selling_unit_price = serializers.DecimalField(**_AMOUNT)
    safety_quantity = serializers.DecimalField(required=False, default=Decimal("0"), **_AMOUNT)

    tax_type = serializers.CharField(max_length=5, validators=XML_SAFE)
    remark = serializers.CharField(max_length=255, **_OPTIONAL_TEXT)
    register_user_id = serializers.CharField(max_length=50, **_OPTIONAL_TEXT)

    in_use = serializers.BooleanField(default=True)
    use_barcode = serializers.BooleanField(default=False)
    change_allowed = serializers.BooleanField(default=False)
    use_additional_info = serializers.BooleanField(default=False)


class PluReportQuerySerializer(serializers.Serializer):
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
