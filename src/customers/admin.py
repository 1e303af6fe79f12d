from django.contrib import admin

from customers.models import Customer


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "assigned_agent", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("code", "name", "email", "phone")
    raw_id_fields = ("assigned_agent",)
    readonly_fields = ("created_at", "updated_at")
