# Generated manually for saved customer addresses.

import django.db.models.deletion
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Address",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("nickname", models.CharField(blank=True, max_length=80)),
                ("full_name", models.CharField(max_length=255)),
                ("phone", models.CharField(max_length=20)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("province", models.CharField(max_length=120)),
                ("province_code", models.CharField(blank=True, max_length=20)),
                ("city", models.CharField(max_length=120)),
                ("city_code", models.CharField(blank=True, max_length=20)),
                ("barangay", models.CharField(max_length=120)),
                ("barangay_code", models.CharField(blank=True, max_length=20)),
                ("street", models.CharField(max_length=255)),
                ("postal_code", models.CharField(blank=True, max_length=5)),
                ("is_default", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="addresses",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-is_default", "-created_at"],
                "indexes": [
                    models.Index(fields=["customer", "created_at"], name="address_customer_created_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(is_default=True),
                        fields=("customer",),
                        name="unique_default_address_per_customer",
                    )
                ],
            },
        ),
    ]
