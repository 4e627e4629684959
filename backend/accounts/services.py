import logging
from typing import Optional, Tuple

from django.conf import settings
from django.utils import timezone

from .models import User

logger = logging.getLogger(__name__)


def get_or_create_identity(email: str, name: str = '', role: str = User.Role.STUDENT, department=None,
                           password: Optional[str] = None, mobile_no: str = '', created_by=None) -> Tuple[User, bool]:
    """Return the identity for `email`, creating it when none exists.

    Idempotent on email (case-insensitive): a retry after a partially failed
    write finds and reuses the identity created by the earlier attempt.
    Returns `(user, created)`.
    """
    existing = User.objects.get_by_email(email)
    if existing is not None:
        return existing, False

    if password is None:
        password = getattr(settings, 'CLASS_LEDGER_DEFAULT_STUDENT_PASSWORD', '') or None

    user = User.objects.create_identity(
        email=email,
        name=name,
        role=role,
        department=department,
        password=password,
        mobile_no=mobile_no or '',
    )
    logger.info('Identity created: user=%s role=%s department=%s actor=%s',
                user.pk, role, getattr(department, 'code', None), getattr(created_by, 'pk', None))
    return user, True


def active_department_owner(department) -> Optional[User]:
    """Return the HOD currently owning `department`, or None.

    HODs whose `hod_expiry` has passed are skipped.
    """
    if department is None:
        return None
    today = timezone.localdate()
    candidates = User.objects.filter(
        role=User.Role.HOD,
        department=department,
        status=User.Status.ACTIVE,
        is_active=True,
    ).order_by('-date_joined')
    for hod in candidates:
        if hod.hod_expiry is None or hod.hod_expiry >= today:
            return hod
    return None


def deactivate_user(user, status: Optional[str] = None, reason: Optional[str] = None, actor: Optional[object] = None):
    """Deactivate an identity without deleting any data.

    - sets `user.is_active = False`
    - sets `user.status` to the provided `status` or 'inactive'
    - mirrors the status onto the faculty profile when present

    Student records are archived through
    `academics.services.student_reconciliation.archive_student`, not here.
    """
    if user is None:
        raise ValueError('user is required')

    final_status = status or User.Status.INACTIVE
    if final_status not in User.Status.values or final_status == User.Status.ACTIVE:
        final_status = User.Status.INACTIVE

    user.is_active = False
    user.status = final_status
    user.save(update_fields=['is_active', 'status'])

    profile = getattr(user, 'faculty_profile', None)
    if profile is not None:
        profile.status = 'inactive'
        profile.save(update_fields=['status'])

    logger.info('User deactivated: user=%s actor=%s reason=%s status=%s time=%s',
                user.pk, getattr(actor, 'pk', None) if actor else None, reason, final_status, timezone.now())
    return True
