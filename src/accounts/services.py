"""Identity lookups used by the targets core."""

from __future__ import annotations

from django.db.models import QuerySet

from accounts.models import User


def is_target_holder(user) -> bool:
    """Only active SALES users may own a customer target."""
    return bool(
        user is not None
        and getattr(user, "role", None) == User.Role.SALES
        and getattr(user, "is_active", False)
    )


def team_agents(manager_id) -> QuerySet:
    """Active SALES users reporting to ``manager_id``."""
    return User.objects.filter(
        manager_id=manager_id,
        role=User.Role.SALES,
        is_active=True,
    ).order_by("last_name", "first_name")
