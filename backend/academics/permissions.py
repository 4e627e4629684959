from rest_framework import permissions
from rest_framework.exceptions import PermissionDenied

from accounts.models import User

MANAGER_ROLES = (User.Role.ADMIN, User.Role.PRINCIPAL, User.Role.HOD)
INSTITUTION_ROLES = (User.Role.ADMIN, User.Role.PRINCIPAL)


def is_institution_wide(user) -> bool:
    return bool(user and user.is_authenticated and (user.is_superuser or user.role in INSTITUTION_ROLES))


def can_manage_department(user, department) -> bool:
    """Admins and principals manage every department; an HOD only their own, while the term lasts."""
    if not user or not user.is_authenticated:
        return False
    if is_institution_wide(user):
        return True
    return (
        user.role == User.Role.HOD
        and user.is_hod_term_active
        and department is not None
        and user.department_id == department.pk
    )


def can_view_department(user, department) -> bool:
    if can_manage_department(user, department):
        return True
    return (
        user.is_authenticated
        and user.role == User.Role.FACULTY
        and department is not None
        and user.department_id == department.pk
    )


def require_manage(user, department):
    if not can_manage_department(user, department):
        raise PermissionDenied('You do not have permission to manage this department.')


def require_view(user, department):
    if not can_view_department(user, department):
        raise PermissionDenied('You do not have permission to view this department.')


class IsLedgerManager(permissions.BasePermission):
    """Reads need an authenticated user; writes need an admin, principal or HOD.

    Department scope is checked by the view once it knows which department
    the request touches.
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if request.method in permissions.SAFE_METHODS:
            return True
        return user.is_superuser or user.role in MANAGER_ROLES


class IsInstitutionAdmin(permissions.BasePermission):

    def has_permission(self, request, view):
        return is_institution_wide(request.user)
