from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.db.models import Count, Q

from accounts.models import User
from accounts.services import is_target_holder
from targets.models import CustomerTarget


class TeamMemberInline(admin.TabularInline):
    """Agents reporting to the manager being edited."""

    model = User
    fk_name = "manager"
    extra = 0
    fields = ("email", "first_name", "last_name", "role", "is_active")
    readonly_fields = fields
    can_delete = False
    show_change_link = True
    verbose_name = "membre de l'equipe"
    verbose_name_plural = "equipe"

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = (
        "email", "first_name", "last_name", "role", "manager",
        "holds_targets", "active_target_count", "team_size", "is_active",
    )
    list_filter = ("role", "is_active")
    search_fields = ("email", "first_name", "last_name")
    ordering = ("last_name", "first_name")
    raw_id_fields = ("manager",)
    readonly_fields = ("date_joined", "last_login")
    inlines = [TeamMemberInline]

    fieldsets = (
        (None, {"fields": ("email", "password")}),
        ("Identite", {"fields": ("first_name", "last_name")}),
        ("Role et equipe", {"fields": ("role", "manager", "is_active", "is_staff", "is_superuser")}),
        ("Dates", {"fields": ("last_login", "date_joined")}),
    )
    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "first_name", "last_name", "role", "manager", "password1", "password2"),
            },
        ),
    )

    def get_queryset(self, request):
        return super().get_queryset(request).annotate(
            _team_size=Count("team_members", distinct=True),
            _active_targets=Count(
                "customer_targets",
                filter=Q(customer_targets__status=CustomerTarget.Status.ACTIVE),
                distinct=True,
            ),
        )

    @admin.display(boolean=True, description="Porte des objectifs")
    def holds_targets(self, obj):
        return is_target_holder(obj)

    @admin.display(description="Objectifs actifs", ordering="_active_targets")
    def active_target_count(self, obj):
        return obj._active_targets

    @admin.display(description="Equipe", ordering="_team_size")
    def team_size(self, obj):
        return obj._team_size
