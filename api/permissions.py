# api/permissions.py
from __future__ import annotations

from rest_framework.permissions import BasePermission, SAFE_METHODS

from shop.signals import GROUP_OWNERS


def _is_staff_or_superuser(user) -> bool:
    return bool(getattr(user, "is_staff", False) or getattr(user, "is_superuser", False))


def _in_group(user, name: str) -> bool:
    return bool(
        getattr(user, "is_authenticated", False)
        and user.groups.filter(name=name).exists()
    )


class IsOwner(BasePermission):
    """Writes are for store owners (and staff); reads are open."""

    def has_permission(self, request, view) -> bool:
        if request.method in SAFE_METHODS:
            return True
        user = getattr(request, "user", None)
        if _is_staff_or_superuser(user):
            return True
        return _in_group(user, GROUP_OWNERS)


class OwnersOnly(BasePermission):
    """Store owners (and staff) only, reads included."""

    def has_permission(self, request, view) -> bool:
        user = getattr(request, "user", None)
        if _is_staff_or_superuser(user):
            return True
        return _in_group(user, GROUP_OWNERS)


def _store_of(obj):
    """The store an object belongs to (the object itself for a Store)."""
    if hasattr(obj, "owner_id") and not hasattr(obj, "store_id"):
        return obj
    return getattr(obj, "store", None)


class IsStoreOwnerOrReadOnly(BasePermission):
    def has_object_permission(self, request, view, obj) -> bool:
        if request.method in SAFE_METHODS:
            return True

        user = getattr(request, "user", None)
        if not getattr(user, "is_authenticated", False):
            return False
        if _is_staff_or_superuser(user):
            return True

        store = _store_of(obj)
        if store is None:
            return False

        owner = getattr(store, "owner", None)
        if owner is not None:
            return getattr(owner, "id", None) == getattr(user, "id", None)

        owner_id = getattr(store, "owner_id", None)
        return owner_id == getattr(user, "id", None)
