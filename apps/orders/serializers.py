from rest_framework import serializers

from apps.addresses.serializers import validate_postal_code
from apps.orders.models import DeliveryMode, Order, OrderLine, OrderStatus, OrderStatusLog, PaymentStatus


class OrderLineSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderLine
        fields = ["id", "product", "product_name", "sku", "unit_price", "qty", "tax_rate", "line_subtotal", "line_tax", "line_total"]
        read_only_fields = fields


class OrderStatusLogSerializer(serializers.ModelSerializer):
    actor_username = serializers.CharField(source="actor.username", read_only=True, default=None)

    class Meta:
        model = OrderStatusLog
        fields = ["id", "old_status", "new_status", "notes", "actor", "actor_username", "created_at"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    customer_username = serializers.CharField(source="customer.username", read_only=True)
    remaining_balance = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    payment_status_text = serializers.CharField(read_only=True)
    delivery = serializers.SerializerMethodField()
    payment_terms = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "order_code",
            "customer",
            "customer_username",
            "delivery_mode",
            "subtotal",
            "tax_amount",
            "total_amount",
            "amount_paid",
            "remaining_balance",
            "status",
            "payment_status",
            "payment_status_text",
            "terms_agreed",
            "delivery",
            "payment_terms",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_delivery(self, obj):
        return {
            "full_name": obj.recipient_name,
            "phone": obj.recipient_phone,
            "email": obj.recipient_email,
            "province": obj.province,
            "province_code": obj.province_code,
            "city": obj.city,
            "city_code": obj.city_code,
            "barangay": obj.barangay,
            "barangay_code": obj.barangay_code,
            "street": obj.street,
            "postal_code": obj.postal_code,
        }

    def get_payment_terms(self, obj):
        terms = getattr(obj, "payment_terms", None)
        if terms is None:
            return None
        return {
            "method": terms.method,
            "deposit_rate": terms.deposit_rate,
            "amount_due": str(terms.amount_due),
            "updated_at": terms.updated_at,
        }


class OrderDetailSerializer(serializers.Serializer):
    order = OrderSerializer()
    items = OrderLineSerializer(many=True)
    status_history = serializers.SerializerMethodField()

    def get_status_history(self, obj):
        return OrderStatusLogSerializer(obj["order"].status_logs.all(), many=True).data


class OrderItemInputSerializer(serializers.Serializer):
    pid = serializers.UUIDField()
    qty = serializers.IntegerField(min_value=1)


class DeliveryInfoSerializer(serializers.Serializer):
    """Checkout ``info`` block: a saved ``address_id`` or the inline fields below."""

    address_id = serializers.UUIDField(required=False, allow_null=True)
    full_name = serializers.CharField(required=False, allow_blank=True, max_length=255)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=20)
    email = serializers.EmailField(required=False, allow_blank=True)
    province = serializers.CharField(required=False, allow_blank=True, max_length=120)
    province_code = serializers.CharField(required=False, allow_blank=True, max_length=20)
    city = serializers.CharField(required=False, allow_blank=True, max_length=120)
    city_code = serializers.CharField(required=False, allow_blank=True, max_length=20)
    barangay = serializers.CharField(required=False, allow_blank=True, max_length=120)
    barangay_code = serializers.CharField(required=False, allow_blank=True, max_length=20)
    street = serializers.CharField(required=False, allow_blank=True, max_length=255)
    postal_code = serializers.CharField(required=False, allow_blank=True, max_length=5)

    def validate_postal_code(self, value):
        return validate_postal_code(value)


class OrderCreateSerializer(serializers.Serializer):
    items = OrderItemInputSerializer(many=True, required=False)
    pid = serializers.UUIDField(required=False)
    qty = serializers.IntegerField(required=False, min_value=1, default=1)
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    vat = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    total = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    mode = serializers.ChoiceField(choices=DeliveryMode.choices, default=DeliveryMode.PICKUP)
    info = DeliveryInfoSerializer(required=False, default=dict)
    terms_agreed = serializers.BooleanField(default=False)

    def validate(self, attrs):
        items = attrs.get("items")
        if not items:
            if not attrs.get("pid"):
                raise serializers.ValidationError({"items": "Include at least one item (items or pid)."})
            items = [{"pid": attrs["pid"], "qty": attrs.get("qty", 1)}]

        seen = set()
        lines = []
        for item in items:
            if item["pid"] in seen:
                raise serializers.ValidationError({"items": "A product may only appear once per order."})
            seen.add(item["pid"])
            lines.append({"product_id": item["pid"], "qty": item["qty"]})

        attrs["_lines"] = lines
        attrs["_client_totals"] = {key: attrs.get(key) for key in ("subtotal", "vat", "total") if attrs.get(key) is not None}
        return attrs


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")


class PaymentStatusUpdateSerializer(serializers.Serializer):
    payment_status = serializers.ChoiceField(choices=PaymentStatus.choices)
