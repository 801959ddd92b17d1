from django.contrib import admin

from apps.payments.models import PaymentTerms, PaymentVerification


@admin.register(PaymentTerms)
class PaymentTermsAdmin(admin.ModelAdmin):
    list_display = ("order", "method", "deposit_rate", "amount_due", "updated_at")
    list_filter = ("method", "deposit_rate")
    search_fields = ("order__order_code",)


@admin.register(PaymentVerification)
class PaymentVerificationAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "method", "reference_number", "amount_reported", "status", "duplicate_reference", "created_at")
    list_filter = ("status", "method", "duplicate_reference")
    search_fields = ("reference_number", "account_name", "order__order_code")
    readonly_fields = ("status", "reviewed_by", "reviewed_at")
