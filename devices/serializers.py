# devices/serializers.py

from rest_framework import serializers

from devices.models import DeviceClass, FiscalDevice


class InitializeDeviceInputSerializer(serializers.Serializer):
    taxpayer_pin = serializers.CharField(max_length=20)
    branch_office_id = serializers.CharField(max_length=10)
    device_class = serializers.ChoiceField(choices=DeviceClass.choices)
    device_serial_number = serializers.CharField(max_length=100)
    vscu_bridge_url = serializers.URLField(required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs["device_class"] == DeviceClass.OSCU and attrs.get("vscu_bridge_url"):
            raise serializers.ValidationError(
                {"vscu_bridge_url": "Bridge local só se aplica a dispositivos VSCU."}
            )
        return attrs


class FiscalDeviceSerializer(serializers.ModelSerializer):
    gateway_device_id = serializers.UUIDField(source="id", read_only=True)
    taxpayer_pin = serializers.CharField(source="taxpayer.pin", read_only=True)

    class Meta:
        model = FiscalDevice
        fields = [
            "gateway_device_id",
            "taxpayer_pin",
            "serial_number",
            "device_class",
            "status",
            "branch_office_id",
            "last_status_check_at",
            "created_at",
        ]
        read_only_fields = fields
