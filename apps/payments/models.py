from django.db import models


class DepositRate(models.IntegerChoices):
    THIRTY = 30, "30%"
    FIFTY = 50, "50%"
    FULL = 100, "100%"


class VerificationStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"


class PaymentTerms(models.Model):
    order = models.OneToOneField("orders.Order", on_delete=models.CASCADE, related_name="payment_terms")
    method = models.CharField(max_length=20)
    deposit_rate = models.PositiveSmallIntegerField(choices=DepositRate.choices)
    amount_due = models.DecimalField(max_digits=12, decimal_places=2)
    decided_by = models.ForeignKey("accounts.User", on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "payment terms"
        constraints = [
            models.CheckConstraint(condition=models.Q(amount_due__gte=0), name="terms_amount_due_gte_zero"),
        ]

    def __str__(self):
        return f"{self.order_id}: {self.method} {self.deposit_rate}%"


class PaymentVerification(models.Model):
    order = models.ForeignKey("orders.Order", on_delete=models.PROTECT, related_name="verifications")
    method = models.CharField(max_length=20)
    account_name = models.CharField(max_length=255)
    account_number = models.CharField(max_length=32)
    reference_number = models.CharField(max_length=20)
    amount_reported = models.DecimalField(max_digits=12, decimal_places=2)
    screenshot = models.ImageField(upload_to="payment_proofs/%Y/%m/")
    status = models.CharField(max_length=16, choices=VerificationStatus.choices, default=VerificationStatus.PENDING)
    rejection_reason = models.CharField(max_length=255, blank=True)
    duplicate_reference = models.BooleanField(default=False)
    terms_accepted = models.BooleanField(default=False)
    submitted_by = models.ForeignKey(
        "accounts.User", on_delete=models.SET_NULL, null=True, blank=True, related_name="submitted_verifications"
    )
    reviewed_by = models.ForeignKey(
        "accounts.User", on_delete=models.SET_NULL, null=True, blank=True, related_name="reviewed_verifications"
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["order", "status"], name="verif_order_status_idx"),
            models.Index(fields=["method", "reference_number"], name="verif_method_reference_idx"),
            models.Index(fields=["status", "created_at"], name="verif_status_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(amount_reported__gt=0), name="verif_amount_reported_gt_zero"),
        ]

    def __str__(self):
        return f"{self.method}:{self.reference_number} ({self.status})"
