# fiscal/serializers_transactions.py

from decimal import Decimal

from rest_framework import serializers

from fiscal.kra_codec import find_invalid_xml_char
from fiscal.models import ReceiptType, Transaction, TransactionType
from fiscal.services.tax_service import TAX_LABELS, compute_tax_summary, differs, line_net


_AMOUNT = {"max_digits": 18, "decimal_places": 4}


def xml_safe_text(value):
    """
    Rejeita caracteres de controle que o XML 1.0 não aceita (o texto vai
    para o comando do dispositivo e para o journal).
    """
    if value and find_invalid_xml_char(value) is not None:
        raise serializers.ValidationError("Texto contém caractere de controle não permitido.")


XML_SAFE = [xml_safe_text]


class TransactionItemSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=255, validators=XML_SAFE)
    code = serializers.CharField(
        max_length=50, required=False, allow_blank=True, default="", validators=XML_SAFE
    )
    quantity = serializers.DecimalField(max_digits=18, decimal_places=4)
    unit_price = serializers.DecimalField(min_value=Decimal("0"), **_AMOUNT)
    tax_designation_code = serializers.ChoiceField(choices=[(label, label) for label in TAX_LABELS])
    discount_amount = serializers.DecimalField(
        min_value=Decimal("0"), required=False, default=Decimal("0"), **_AMOUNT
    )
    packaging_unit_code = serializers.CharField(max_length=10, required=False, allow_blank=True)
    quantity_unit_code = serializers.CharField(max_length=10, required=False, allow_blank=True)
    total_amount = serializers.DecimalField(required=False, allow_null=True, **_AMOUNT)


class TaxRatesSerializer(serializers.Serializer):
    A = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False)
    B = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False)
    C = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False)
    D = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False)
    E = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False)


class TaxAmountsSerializer(serializers.Serializer):
    A = serializers.DecimalField(required=False, **_AMOUNT)
    B = serializers.DecimalField(required=False, **_AMOUNT)
    C = serializers.DecimalField(required=False, **_AMOUNT)
    D = serializers.DecimalField(required=False, **_AMOUNT)
    E = serializers.DecimalField(required=False, **_AMOUNT)


class TransactionRequestSerializer(serializers.Serializer):
    """
    Payload de assinatura enviado pelo PDV/ERP.

    Regras (além dos tipos):
      - Totais informados precisam bater com os calculados (tolerância 0.01).
      - SALE/DEBIT_NOTE: quantidades positivas.
      - CREDIT_NOTE: quantidade, valor da linha e total negativos, e
        referência ao documento original obrigatória.
    """

    gateway_device_id = serializers.UUIDField()
    taxpayer_pin = serializers.CharField(max_length=20)
    receipt_type = serializers.ChoiceField(choices=ReceiptType.choices)
    transaction_type = serializers.ChoiceField(choices=TransactionType.choices)
    internal_receipt_number = serializers.CharField(max_length=50, validators=XML_SAFE)

    buyer_pin = serializers.CharField(
        max_length=20, required=False, allow_blank=True, allow_null=True, validators=XML_SAFE
    )
    sale_location_address = serializers.CharField(
        max_length=255, required=False, allow_blank=True, validators=XML_SAFE
    )

    items = TransactionItemSerializer(many=True, allow_empty=False)

    total_amount = serializers.DecimalField(**_AMOUNT)
    payment_method = serializers.CharField(max_length=50, validators=XML_SAFE)

    tax_rates = TaxRatesSerializer()
    taxable_amounts = TaxAmountsSerializer(required=False)
    calculated_taxes = TaxAmountsSerializer(required=False)

    original_invoice_number = serializers.CharField(
        max_length=160, required=False, allow_blank=True, validators=XML_SAFE
    )
    original_internal_receipt_number = serializers.CharField(
        max_length=50, required=False, allow_blank=True, validators=XML_SAFE
    )
    credit_note_reason = serializers.CharField(
        max_length=255, required=False, allow_blank=True, validators=XML_SAFE
    )

    def validate(self, attrs):
        errors = {}
        items = attrs["items"]
        is_credit_note = attrs["transaction_type"] == TransactionType.CREDIT_NOTE

        # Sinal das linhas
        for index, item in enumerate(items):
            net = line_net(item)
            provided_total = item.get("total_amount")
            if is_credit_note:
                if item["quantity"] >= 0 or net >= 0 or (
                    provided_total is not None and provided_total >= 0
                ):
                    errors[f"items.{index}.quantity"] = (
                        "Em notas de crédito, quantidade e valores devem ser negativos."
                    )
            elif item["quantity"] <= 0:
                errors[f"items.{index}.quantity"] = "Quantidade deve ser maior que zero."

        if is_credit_note:
            if attrs["total_amount"] >= 0:
                errors["total_amount"] = "Em notas de crédito, o total deve ser negativo."
            for field in ("original_invoice_number", "original_internal_receipt_number", "credit_note_reason"):
                if not attrs.get(field):
                    errors[field] = "Obrigatório para notas de crédito."
        elif attrs["total_amount"] < 0:
            errors["total_amount"] = "Total não pode ser negativo."

        if errors:
            raise serializers.ValidationError(errors)

        # Conferência dos totais
        summary = compute_tax_summary(items, attrs["tax_rates"])

        if differs(summary.total_amount, attrs["total_amount"]):
            errors["total_amount"] = (
                f"Total calculado ({summary.total_amount}) difere do informado ({attrs['total_amount']})."
            )

        taxable = attrs.get("taxable_amounts")
        taxes = attrs.get("calculated_taxes")
        for label, bucket in summary.buckets.items():
            if taxable is not None and differs(bucket.taxable_amount, taxable.get(label) or 0):
                errors[f"taxable_amounts.{label}"] = (
                    f"Valor tributável calculado para {label} ({bucket.taxable_amount}) difere do informado."
                )
            if taxes is not None and differs(bucket.tax_amount, taxes.get(label) or 0):
                errors[f"calculated_taxes.{label}"] = (
                    f"Imposto calculado para {label} ({bucket.tax_amount}) difere do informado."
                )

        if errors:
            raise serializers.ValidationError(errors)

        attrs["tax_summary"] = summary
        return attrs


class TransactionSerializer(serializers.ModelSerializer):
    gateway_transaction_id = serializers.UUIDField(source="id", read_only=True)
    gateway_device_id = serializers.UUIDField(source="device_id", read_only=True)
    taxpayer_pin = serializers.CharField(source="taxpayer.pin", read_only=True)

    class Meta:
        model = Transaction
        fields = [
            "gateway_transaction_id",
            "gateway_device_id",
            "taxpayer_pin",
            "internal_receipt_number",
            "receipt_type",
            "transaction_type",
            "device_serial_number",
            "receipt_label",
            "receipt_type_counter",
            "receipt_total_counter",
            "invoice_number",
            "digital_signature",
            "internal_data",
            "verification_url",
            "device_timestamp",
            "journal_status",
            "journal_error_message",
            "journal_attempts",
            "journaled_at",
            "created_at",
        ]
        read_only_fields = fields
