from rest_framework.permissions import BasePermission, SAFE_METHODS


def _is_superuser(user):
    return bool(getattr(user, "is_superuser", False))


def _is_admin(user):
    return _is_superuser(user) or bool(getattr(user, "is_admin", lambda: False)())


def _is_manager(user):
    return bool(getattr(user, "is_manager", lambda: False)())


def can_manage_medicines(user):
    return _is_admin(user) or _is_manager(user)


def can_manage_inventory(user):
    return _is_admin(user) or _is_manager(user)


def can_delete_batches(user):
    return _is_admin(user)


class MedicineRolePermission(BasePermission):
    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if request.method in SAFE_METHODS:
            return True
        return can_manage_medicines(user)


class BatchRolePermission(BasePermission):
    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if request.method in SAFE_METHODS:
            return True

        if getattr(view, "action", None) == "destroy":
            return can_delete_batches(user)
        return can_manage_inventory(user)


class DiscardRolePermission(BasePermission):
    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if request.method in SAFE_METHODS:
            return True
        return can_manage_inventory(user)
