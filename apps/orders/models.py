from decimal import Decimal

from django.db import models

from apps.common.money import ZERO, is_settled


class OrderStatus(models.TextChoices):
    PENDING = "Pending", "Pending"
    PROCESSING = "Processing", "Processing"
    COMPLETED = "Completed", "Completed"
    CANCELLED = "Cancelled", "Cancelled"


class PaymentStatus(models.TextChoices):
    PENDING = "Pending", "Pending"
    WITH_BALANCE = "With Balance", "With Balance"
    FULLY_PAID = "Fully Paid", "Fully Paid"


class DeliveryMode(models.TextChoices):
    PICKUP = "pickup", "Pick-up"
    DELIVERY = "delivery", "Delivery"


def derive_payment_status(total_amount, amount_paid):
    remaining = (total_amount - amount_paid).quantize(Decimal("0.01"))
    if is_settled(remaining):
        return PaymentStatus.FULLY_PAID
    if amount_paid <= ZERO:
        return PaymentStatus.PENDING
    return PaymentStatus.WITH_BALANCE


class Order(models.Model):
    order_code = models.CharField(max_length=32, unique=True)
    customer = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="orders")
    delivery_mode = models.CharField(max_length=16, choices=DeliveryMode.choices, default=DeliveryMode.PICKUP)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    status = models.CharField(max_length=16, choices=OrderStatus.choices, default=OrderStatus.PENDING)
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    terms_agreed = models.BooleanField(default=False)

    # Copied from the checkout address at creation time; never re-read from the address book.
    recipient_name = models.CharField(max_length=255)
    recipient_phone = models.CharField(max_length=20)
    recipient_email = models.EmailField(blank=True)
    province = models.CharField(max_length=120, blank=True)
    province_code = models.CharField(max_length=20, blank=True)
    city = models.CharField(max_length=120, blank=True)
    city_code = models.CharField(max_length=20, blank=True)
    barangay = models.CharField(max_length=120, blank=True)
    barangay_code = models.CharField(max_length=20, blank=True)
    street = models.CharField(max_length=255, blank=True)
    postal_code = models.CharField(max_length=5, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
            models.Index(fields=["payment_status"], name="order_payment_status_idx"),
            models.Index(fields=["customer", "created_at"], name="order_customer_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(total_amount__gt=0), name="order_total_gt_zero"),
            models.CheckConstraint(condition=models.Q(amount_paid__gte=0), name="order_amount_paid_gte_zero"),
            models.CheckConstraint(
                condition=models.Q(amount_paid__lte=models.F("total_amount")),
                name="order_amount_paid_lte_total",
            ),
        ]

    def __str__(self):
        return self.order_code

    @property
    def remaining_balance(self):
        return (self.total_amount - self.amount_paid).quantize(Decimal("0.01"))

    @property
    def is_fully_paid(self):
        return is_settled(self.remaining_balance)

    @property
    def payment_status_text(self):
        return PaymentStatus(self.payment_status).label


class OrderLine(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="lines")
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="order_lines")
    product_name = models.CharField(max_length=255)
    sku = models.CharField(max_length=64)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    qty = models.PositiveIntegerField()
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2)
    line_subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    line_tax = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=models.Q(qty__gt=0), name="orderline_qty_gt_zero"),
        ]

    @property
    def line_total(self):
        return self.line_subtotal + self.line_tax


class OrderStatusLog(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="status_logs")
    old_status = models.CharField(max_length=16, choices=OrderStatus.choices)
    new_status = models.CharField(max_length=16, choices=OrderStatus.choices)
    notes = models.CharField(max_length=500, blank=True)
    actor = models.ForeignKey("accounts.User", on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
