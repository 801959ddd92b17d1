from rest_framework import serializers

from apps.payments.models import PaymentTerms, PaymentVerification


class PaymentTermsSerializer(serializers.ModelSerializer):
    order_code = serializers.CharField(source="order.order_code", read_only=True)

    class Meta:
        model = PaymentTerms
        fields = ["order", "order_code", "method", "deposit_rate", "amount_due", "created_at", "updated_at"]
        read_only_fields = fields


class PaymentDecisionSerializer(serializers.Serializer):
    method = serializers.CharField(max_length=20)
    deposit_rate = serializers.IntegerField()


class PaymentVerificationSerializer(serializers.ModelSerializer):
    order_code = serializers.CharField(source="order.order_code", read_only=True)
    submitted_by_username = serializers.CharField(source="submitted_by.username", read_only=True, default=None)
    reviewed_by_username = serializers.CharField(source="reviewed_by.username", read_only=True, default=None)

    class Meta:
        model = PaymentVerification
        fields = [
            "id",
            "order",
            "order_code",
            "method",
            "account_name",
            "account_number",
            "reference_number",
            "amount_reported",
            "screenshot",
            "status",
            "rejection_reason",
            "duplicate_reference",
            "submitted_by",
            "submitted_by_username",
            "reviewed_by",
            "reviewed_by_username",
            "reviewed_at",
            "created_at",
        ]
        read_only_fields = fields


class PaymentSubmitSerializer(serializers.Serializer):
    """Multipart proof-of-payment form. ``amount_reported`` is accepted as an alias of ``amount_paid``."""

    order_id = serializers.IntegerField()
    order_code = serializers.CharField(required=False, allow_blank=True, max_length=32)
    method = serializers.CharField(required=False, allow_blank=True, max_length=20)
    account_name = serializers.CharField(max_length=255)
    account_number = serializers.CharField(max_length=32)
    reference_number = serializers.CharField(max_length=32)
    amount_paid = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    amount_reported = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    screenshot = serializers.ImageField()
    terms_accepted = serializers.BooleanField(default=False)

    def validate_terms_accepted(self, value):
        if not value:
            raise serializers.ValidationError("You must accept the payment terms.")
        return value

    def validate(self, attrs):
        amount = attrs.get("amount_paid")
        if amount is None:
            amount = attrs.get("amount_reported")
        if amount is None:
            raise serializers.ValidationError({"amount_paid": "This field is required."})
        attrs["amount"] = amount
        return attrs


class RejectVerificationSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255)
