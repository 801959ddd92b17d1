from django.contrib import admin

from apps.addresses.models import Address


@admin.register(Address)
class AddressAdmin(admin.ModelAdmin):
    list_display = ("customer", "nickname", "full_name", "phone", "city", "province", "is_default", "created_at")
    list_filter = ("is_default", "province")
    search_fields = ("customer__username", "full_name", "phone", "city", "barangay")
    autocomplete_fields = ("customer",)
