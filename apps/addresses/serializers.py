import re

from rest_framework import serializers

from apps.addresses.models import Address, normalize_ph_mobile

POSTAL_CODE_PATTERN = re.compile(r"^\d{4,5}$")


def validate_ph_mobile(value):
    normalized = normalize_ph_mobile(value)
    if not normalized:
        raise serializers.ValidationError("Invalid Philippine mobile number. Use 09XXXXXXXXX or +639XXXXXXXXX.")
    return normalized


def validate_postal_code(value):
    value = (value or "").strip()
    if value and not POSTAL_CODE_PATTERN.match(value):
        raise serializers.ValidationError("Postal code must be 4-5 digits.")
    return value


class AddressSerializer(serializers.ModelSerializer):
    is_default = serializers.BooleanField(required=False)

    class Meta:
        model = Address
        fields = [
            "id",
            "nickname",
            "full_name",
            "phone",
            "email",
            "province",
            "province_code",
            "city",
            "city_code",
            "barangay",
            "barangay_code",
            "street",
            "postal_code",
            "is_default",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_phone(self, value):
        return validate_ph_mobile(value)

    def validate_postal_code(self, value):
        return validate_postal_code(value)

    def validate(self, attrs):
        for field in ("nickname", "full_name", "province", "city", "barangay", "street"):
            if field in attrs:
                attrs[field] = attrs[field].strip()
                if field != "nickname" and not attrs[field]:
                    raise serializers.ValidationError({field: f"{field} is required"})
        return attrs


class PsgcAreaSerializer(serializers.Serializer):
    code = serializers.CharField()
    name = serializers.CharField()
