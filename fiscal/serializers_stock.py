# fiscal/serializers_stock.py

from decimal import Decimal

from rest_framework import serializers

from fiscal.serializers_transactions import XML_SAFE, TaxAmountsSerializer
from fiscal.services.tax_service import TAX_LABELS


_AMOUNT = {"max_digits": 18, "decimal_places": 4, "min_value": Decimal("0")}
_OPTIONAL_TEXT = {"required": False, "allow_blank": True, "validators": XML_SAFE}
_TAX_TYPES = [(label, label) for label in TAX_LABELS]


class PurchaseItemSerializer(serializers.Serializer):
    sequence = serializers.IntegerField(min_value=1)
    item_classification_code = serializers.CharField(max_length=50, validators=XML_SAFE)
    item_code = serializers.CharField(max_length=50, validators=XML_SAFE)
    item_name = serializers.CharField(max_length=255, validators=XML_SAFE)
    supplier_item_classification_code = serializers.CharField(max_length=50, **_OPTIONAL_TEXT)
    supplier_item_code = serializers.CharField(max_length=50, **_OPTIONAL_TEXT)
    supplier_item_name = serializers.CharField(max_length=255, **_OPTIONAL_TEXT)
    packaging_unit_code = serializers.CharField(max_length=10, validators=XML_SAFE)
    packaging_quantity = serializers.DecimalField(**_AMOUNT)
    quantity_unit_code = serializers.CharField(max_length=10, validators=XML_SAFE)
    quantity = serializers.DecimalField(**_AMOUNT)
    expiry_date = serializers.DateField(required=False, allow_null=True)
    unit_price = serializers.DecimalField(**_AMOUNT)
    supplier_price = serializers.DecimalField(**_AMOUNT)
    discount_rate = serializers.DecimalField(required=False, default=Decimal("0"), **_AMOUNT)
    discount_amount = serializers.DecimalField(required=False, default=Decimal("0"), **_AMOUNT)
    taxable_amount = serializers.DecimalField(**_AMOUNT)
    tax_type = serializers.ChoiceField(choices=_TAX_TYPES)
    tax_amount = serializers.DecimalField(**_AMOUNT)


class PurchaseSerializer(serializers.Serializer):
    """
    Compra de fornecedor enviada à KRA (SEND_PURCHASE + SEND_PURCHASEITEM).
    """

    gateway_device_id = serializers.UUIDField()

    invoice_id = serializers.CharField(max_length=50, validators=XML_SAFE)
    branch_id = serializers.CharField(max_length=10, validators=XML_SAFE)
    supplier_pin = serializers.CharField(max_length=20, validators=XML_SAFE)
    supplier_name = serializers.CharField(max_length=255, validators=XML_SAFE)
    supplier_cu_id = serializers.CharField(max_length=50, validators=XML_SAFE)
    registration_type_code = serializers.CharField(max_length=5, validators=XML_SAFE)
    reference_id = serializers.CharField(max_length=50, validators=XML_SAFE)
    payment_type_code = serializers.CharField(max_length=5, validators=XML_SAFE)
    invoice_status_code = serializers.CharField(max_length=5, validators=XML_SAFE)

    transaction_date = serializers.DateField()
    valid_date = serializers.DateField(required=False, allow_null=True)
    cancel_request_date = serializers.DateTimeField(required=False, allow_null=True)
    cancel_date = serializers.DateTimeField(required=False, allow_null=True)
    refund_date = serializers.DateTimeField(required=False, allow_null=True)
    cancel_type_code = serializers.CharField(max_length=5, **_OPTIONAL_TEXT)

    taxable_amounts = TaxAmountsSerializer(required=False)
    taxes = TaxAmountsSerializer(required=False)
    total_supplier_price = serializers.DecimalField(**_AMOUNT)
    total_tax = serializers.DecimalField(**_AMOUNT)
    total_amount = serializers.DecimalField(**_AMOUNT)

    remark = serializers.CharField(max_length=255, **_OPTIONAL_TEXT)
    register_user_id = serializers.CharField(max_length=50, validators=XML_SAFE)
    register_date = serializers.DateTimeField()

    items = PurchaseItemSerializer(many=True, allow_empty=False)

    def validate_items(self, items):
        sequences = [item["sequence"] for item in items]
        if len(set(sequences)) != len(sequences):
            raise serializers.ValidationError("Sequência de itens repetida.")
        return items


class InventoryMovementSerializer(serializers.Serializer):
    gateway_device_id = serializers.UUIDField()
    branch_id = serializers.CharField(max_length=10, validators=XML_SAFE)
    item_classification_code = serializers.CharField(max_length=50, validators=XML_SAFE)
    item_code = serializers.CharField(max_length=50, validators=XML_SAFE)
    # negativo = saída
    quantity = serializers.DecimalField(max_digits=18, decimal_places=4)
    update_date = serializers.DateTimeField(required=False, allow_null=True)


class InventoryQuerySerializer(serializers.Serializer):
    gateway_device_id = serializers.UUIDField()
    branch_id = serializers.CharField(max_length=10, required=False, validators=XML_SAFE)
    item_code = serializers.CharField(max_length=50, required=False, validators=XML_SAFE)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)

    def validate(self, attrs):
        start, end = attrs.get("start_date"), attrs.get("end_date")
        if start and end and start > end:
            raise serializers.ValidationError({"end_date": ["Deve ser igual ou posterior a start_date."]})
        return attrs
