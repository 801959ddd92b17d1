# Generated manually for the order store.

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

ORDER_STATUS_CHOICES = [
    ("Pending", "Pending"),
    ("Processing", "Processing"),
    ("Completed", "Completed"),
    ("Cancelled", "Cancelled"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("order_code", models.CharField(max_length=32, unique=True)),
                (
                    "delivery_mode",
                    models.CharField(
                        choices=[("pickup", "Pick-up"), ("delivery", "Delivery")],
                        default="pickup",
                        max_length=16,
                    ),
                ),
                ("subtotal", models.DecimalField(decimal_places=2, max_digits=12)),
                ("tax_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("amount_paid", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("status", models.CharField(choices=ORDER_STATUS_CHOICES, default="Pending", max_length=16)),
                (
                    "payment_status",
                    models.CharField(
                        choices=[("Pending", "Pending"), ("With Balance", "With Balance"), ("Fully Paid", "Fully Paid")],
                        default="Pending",
                        max_length=16,
                    ),
                ),
                ("terms_agreed", models.BooleanField(default=False)),
                ("recipient_name", models.CharField(max_length=255)),
                ("recipient_phone", models.CharField(max_length=20)),
                ("recipient_email", models.EmailField(blank=True, max_length=254)),
                ("province", models.CharField(blank=True, max_length=120)),
                ("province_code", models.CharField(blank=True, max_length=20)),
                ("city", models.CharField(blank=True, max_length=120)),
                ("city_code", models.CharField(blank=True, max_length=20)),
                ("barangay", models.CharField(blank=True, max_length=120)),
                ("barangay_code", models.CharField(blank=True, max_length=20)),
                ("street", models.CharField(blank=True, max_length=255)),
                ("postal_code", models.CharField(blank=True, max_length=5)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
                    models.Index(fields=["payment_status"], name="order_payment_status_idx"),
                    models.Index(fields=["customer", "created_at"], name="order_customer_created_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(total_amount__gt=0), name="order_total_gt_zero"),
                    models.CheckConstraint(condition=models.Q(amount_paid__gte=0), name="order_amount_paid_gte_zero"),
                    models.CheckConstraint(
                        condition=models.Q(amount_paid__lte=models.F("total_amount")),
                        name="order_amount_paid_lte_total",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("product_name", models.CharField(max_length=255)),
                ("sku", models.CharField(max_length=64)),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("qty", models.PositiveIntegerField()),
                ("tax_rate", models.DecimalField(decimal_places=2, max_digits=5)),
                ("line_subtotal", models.DecimalField(decimal_places=2, max_digits=12)),
                ("line_tax", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lines",
                        to="orders.order",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="order_lines",
                        to="catalog.product",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.CheckConstraint(condition=models.Q(qty__gt=0), name="orderline_qty_gt_zero"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderStatusLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("old_status", models.CharField(choices=ORDER_STATUS_CHOICES, max_length=16)),
                ("new_status", models.CharField(choices=ORDER_STATUS_CHOICES, max_length=16)),
                ("notes", models.CharField(blank=True, max_length=500)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="status_logs",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
