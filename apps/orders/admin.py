from django.contrib import admin

from apps.orders.models import Order, OrderLine, OrderStatusLog


class OrderLineInline(admin.TabularInline):
    model = OrderLine
    extra = 0
    readonly_fields = ("product", "product_name", "sku", "unit_price", "qty", "tax_rate", "line_subtotal", "line_tax")


class OrderStatusLogInline(admin.TabularInline):
    model = OrderStatusLog
    extra = 0
    readonly_fields = ("old_status", "new_status", "notes", "actor", "created_at")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "order_code",
        "customer",
        "delivery_mode",
        "total_amount",
        "amount_paid",
        "status",
        "payment_status",
        "created_at",
    )
    list_filter = ("status", "payment_status", "delivery_mode")
    search_fields = ("order_code", "recipient_name", "customer__username", "customer__email")
    readonly_fields = ("amount_paid", "subtotal", "tax_amount", "total_amount")
    inlines = [OrderLineInline, OrderStatusLogInline]
