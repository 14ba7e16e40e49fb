# hc_core/common/permissions.py

from __future__ import annotations

from typing import Iterable, Set

from rest_framework.permissions import BasePermission, SAFE_METHODS

# Group/role names (Django auth Group names recommended)
ROLE_ADMIN = "ADMIN"
ROLE_COORDINATOR = "COORDINATOR"  # office scheduler
ROLE_CAREGIVER = "CAREGIVER"  # field staff using mobile check-in/out
ROLE_BILLING = "BILLING"
ROLE_AUDITOR = "AUDITOR"  # back-office visit verification
ROLE_READONLY = "READONLY"

ALL_ROLES = {ROLE_ADMIN, ROLE_COORDINATOR, ROLE_CAREGIVER, ROLE_BILLING, ROLE_AUDITOR, ROLE_READONLY}


def user_roles(user) -> Set[str]:
    """
    Resolve roles from:
    1) Django groups: user.groups (recommended)
    2) Optional user.role attribute (if the user model has it)

    Authenticated users without roles/groups are treated as READONLY.
    """
    roles: Set[str] = set()

    if not user or not getattr(user, "is_authenticated", False):
        return roles

    # Superuser treated as admin
    if getattr(user, "is_superuser", False):
        roles.add(ROLE_ADMIN)
        return roles

    if hasattr(user, "groups"):
        roles.update(user.groups.values_list("name", flat=True))

    if hasattr(user, "role") and user.role:
        roles.add(str(user.role))

    if not roles:
        roles.add(ROLE_READONLY)

    return roles


def user_has_any_role(user, allowed: Iterable[str]) -> bool:
    roles = user_roles(user)
    return ROLE_ADMIN in roles or bool(roles & set(allowed))


class BaseRolePermission(BasePermission):
    """
    Base permission class for role-based access control.

    - ADMIN bypass.
    - Uses allowed_roles_per_action for strict RBAC.
    - If action is unknown and request is SAFE, fall back to list/retrieve.
    """
    message = "You do not have permission to perform this action."

    allowed_roles_per_action = {
        "list": ALL_ROLES,
        "retrieve": ALL_ROLES,
        "create": {ROLE_ADMIN},
        "update": {ROLE_ADMIN},
        "partial_update": {ROLE_ADMIN},
        "destroy": {ROLE_ADMIN},
    }

    def _infer_action(self, request, view) -> str | None:
        action = getattr(view, "action", None)
        if action:
            return action

        kwargs = getattr(view, "kwargs", {}) or {}
        is_detail = "pk" in kwargs or "id" in kwargs

        method = request.method.upper()
        if method in ("GET", "HEAD", "OPTIONS"):
            return "retrieve" if is_detail else "list"
        if method == "POST":
            return "create"
        if method == "PUT":
            return "update"
        if method == "PATCH":
            return "partial_update"
        if method == "DELETE":
            return "destroy"
        return None

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not user or not getattr(user, "is_authenticated", False):
            return False

        roles = user_roles(user)

        if ROLE_ADMIN in roles:
            return True

        action = self._infer_action(request, view)
        allowed = self.allowed_roles_per_action.get(action)

        if allowed is None and request.method in SAFE_METHODS:
            kwargs = getattr(view, "kwargs", {}) or {}
            is_detail = "pk" in kwargs or "id" in kwargs
            allowed = self.allowed_roles_per_action.get("retrieve" if is_detail else "list")

        if allowed is not None:
            return bool(roles & allowed)

        # Unknown action => deny by default
        return False

    def has_object_permission(self, request, view, obj) -> bool:
        return self.has_permission(request, view)


class AuthorizationPermission(BaseRolePermission):
    """Authorizations are maintained upstream; this API only reads them."""
    allowed_roles_per_action = {
        "list": ALL_ROLES,
        "retrieve": ALL_ROLES,
        "available_units": ALL_ROLES,
        "reservations": {ROLE_COORDINATOR, ROLE_BILLING, ROLE_AUDITOR},
    }


class TemplatePermission(BaseRolePermission):
    allowed_roles_per_action = {
        "list": {ROLE_COORDINATOR, ROLE_BILLING, ROLE_AUDITOR, ROLE_READONLY},
        "retrieve": {ROLE_COORDINATOR, ROLE_BILLING, ROLE_AUDITOR, ROLE_READONLY},
        "create": {ROLE_COORDINATOR},
        "weeks": {ROLE_COORDINATOR},
        "remove_week": {ROLE_COORDINATOR},
        "events": {ROLE_COORDINATOR},
        "event_detail": {ROLE_COORDINATOR},
        "set_status": {ROLE_COORDINATOR},
        "generate": {ROLE_COORDINATOR},
    }


class ScheduleEventPermission(BaseRolePermission):
    """
    transition is open to every operational role here; the view narrows it
    per state-machine action with TRANSITION_ROLES.
    """
    allowed_roles_per_action = {
        "list": ALL_ROLES,
        "retrieve": ALL_ROLES,
        "create": {ROLE_COORDINATOR},
        "partial_update": {ROLE_COORDINATOR},
        "transition": {ROLE_COORDINATOR, ROLE_CAREGIVER, ROLE_AUDITOR},
    }


TRANSITION_ROLES = {
    "plan": {ROLE_COORDINATOR},
    "confirm": {ROLE_COORDINATOR, ROLE_CAREGIVER},
    "check_in": {ROLE_COORDINATOR, ROLE_CAREGIVER},
    "check_out": {ROLE_COORDINATOR, ROLE_CAREGIVER},
    "cancel": {ROLE_COORDINATOR},
    "adjust_times": {ROLE_COORDINATOR, ROLE_AUDITOR},
    "verify": {ROLE_AUDITOR},
}


class VisitPermission(BaseRolePermission):
    allowed_roles_per_action = {
        "list": {ROLE_COORDINATOR, ROLE_BILLING, ROLE_AUDITOR, ROLE_READONLY},
        "retrieve": {ROLE_COORDINATOR, ROLE_BILLING, ROLE_AUDITOR, ROLE_READONLY},
        "unscheduled": {ROLE_COORDINATOR},
    }
