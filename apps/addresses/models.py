import re
import uuid

from django.db import models

PH_MOBILE_PATTERN = re.compile(r"^\+639\d{9}$")


def normalize_ph_mobile(value):
    """Return ``+639XXXXXXXXX`` for any common PH mobile spelling, else ``None``."""
    digits = re.sub(r"[\s\-()]+", "", str(value or "").strip())
    if digits.startswith("+"):
        digits = digits[1:]
    if not digits.isdigit():
        return None
    if len(digits) == 12 and digits.startswith("63"):
        digits = digits[2:]
    elif len(digits) == 11 and digits.startswith("0"):
        digits = digits[1:]
    if len(digits) != 10 or not digits.startswith("9"):
        return None
    return f"+63{digits}"


class Address(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    customer = models.ForeignKey("accounts.User", on_delete=models.CASCADE, related_name="addresses")
    nickname = models.CharField(max_length=80, blank=True)
    full_name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20)
    email = models.EmailField(blank=True)
    province = models.CharField(max_length=120)
    province_code = models.CharField(max_length=20, blank=True)
    city = models.CharField(max_length=120)
    city_code = models.CharField(max_length=20, blank=True)
    barangay = models.CharField(max_length=120)
    barangay_code = models.CharField(max_length=20, blank=True)
    street = models.CharField(max_length=255)
    postal_code = models.CharField(max_length=5, blank=True)
    is_default = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-is_default", "-created_at"]
        indexes = [
            models.Index(fields=["customer", "created_at"], name="address_customer_created_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["customer"],
                condition=models.Q(is_default=True),
                name="unique_default_address_per_customer",
            )
        ]

    def __str__(self):
        label = self.nickname or self.full_name
        return f"{label}: {self.street}, {self.barangay}, {self.city}, {self.province}"

    def snapshot(self):
        return {
            "full_name": self.full_name,
            "phone": self.phone,
            "email": self.email,
            "province": self.province,
            "province_code": self.province_code,
            "city": self.city,
            "city_code": self.city_code,
            "barangay": self.barangay,
            "barangay_code": self.barangay_code,
            "street": self.street,
            "postal_code": self.postal_code,
        }
