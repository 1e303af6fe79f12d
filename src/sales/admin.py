from django.contrib import admin

from sales.models import Invoice, InvoiceLine


class InvoiceLineInline(admin.TabularInline):
    model = InvoiceLine
    extra = 0
    fields = ("description", "quantity", "unit_price_excl_vat")


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ("doc_number", "customer_code", "doc_date", "gross_total", "vat_amount", "vat_percent")
    list_filter = ("doc_date",)
    search_fields = ("doc_number", "customer_code")
    date_hierarchy = "doc_date"
    inlines = [InvoiceLineInline]
    readonly_fields = ("created_at", "updated_at")
