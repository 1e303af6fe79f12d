"""Django admin for the customer targets module."""
from django.contrib import admin

from targets.models import CustomerTarget, TargetContribution, TargetPeriodHistory


class TargetContributionInline(admin.TabularInline):
    model = TargetContribution
    extra = 0
    fields = ("doc_number", "doc_date", "amount", "kind", "invoice")
    raw_id_fields = ("invoice",)
    ordering = ("doc_date",)


class TargetPeriodHistoryInline(admin.TabularInline):
    model = TargetPeriodHistory
    extra = 0
    fields = ("period_label", "period_start", "period_end", "target_amount", "achieved_amount", "achievement_rate")
    readonly_fields = fields
    can_delete = False


@admin.register(CustomerTarget)
class CustomerTargetAdmin(admin.ModelAdmin):
    list_display = (
        "customer_code", "customer_name", "sales_agent",
        "target_amount", "achieved_amount", "rate_display",
        "period_kind", "current_period_end", "status",
    )
    list_filter = ("status", "period_kind", "is_recurring", "achievement_stale")
    search_fields = ("customer_code", "customer_name", "sales_agent__email", "sales_agent__last_name")
    raw_id_fields = ("sales_agent", "created_by")
    readonly_fields = ("achieved_amount", "achievement_rate", "last_recalculated_at", "created_at", "updated_at")
    inlines = [TargetContributionInline, TargetPeriodHistoryInline]
    actions = ["recalculate_selected"]

    def rate_display(self, obj):
        return f"{obj.achievement_rate} %"
    rate_display.short_description = "Taux"

    @admin.action(description="Recalculer depuis les factures")
    def recalculate_selected(self, request, queryset):
        from targets.services import recalculate_targets

        result = recalculate_targets(queryset)
        self.message_user(request, f"{result.processed} objectif(s) recalcule(s), {result.failed} echec(s).")


@admin.register(TargetPeriodHistory)
class TargetPeriodHistoryAdmin(admin.ModelAdmin):
    list_display = ("target", "period_label", "target_amount", "achieved_amount", "achievement_rate")
    list_filter = ("period_label",)
    search_fields = ("target__customer_code", "target__customer_name")
    readonly_fields = ("created_at", "updated_at")
