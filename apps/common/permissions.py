from rest_framework.permissions import BasePermission

from apps.accounts.models import UserRole


ROLE_CAPABILITIES = {
    UserRole.ADMIN: {
        "catalog.view",
        "catalog.manage",
        "orders.view",
        "orders.view.all",
        "orders.status",
        "orders.payment_status",
        "payments.view",
        "payments.view.all",
        "payments.review",
    },
    UserRole.STAFF: {
        "catalog.view",
        "orders.view",
        "orders.view.all",
        "orders.status",
        "payments.view",
        "payments.view.all",
    },
    UserRole.CUSTOMER: {
        "catalog.view",
        "addresses.manage",
        "orders.view",
        "orders.create",
        "payments.view",
        "payments.decide",
        "payments.submit",
    },
}


def resolve_role(user):
    group_names = set(user.groups.values_list("name", flat=True))
    for role in (UserRole.ADMIN, UserRole.STAFF, UserRole.CUSTOMER):
        if role in group_names:
            return role
    return getattr(user, "role", UserRole.CUSTOMER)


def has_capability(user, capability):
    if not user or not user.is_authenticated:
        return False
    return capability in ROLE_CAPABILITIES.get(resolve_role(user), set())


class RolePermission(BasePermission):
    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        capability_map = getattr(view, "capability_map", {})
        action = getattr(view, "action", None) or request.method.lower()
        required = capability_map.get(action) or capability_map.get(request.method.lower()) or set()
        if not required:
            return True

        user_caps = ROLE_CAPABILITIES.get(resolve_role(request.user), set())
        return all(cap in user_caps for cap in required)
