"""Class assignment ledger.

The ledger (`ClassAssignment`) is the source of truth for which faculty
member advises which class. Two invariants hold for every role:

- per (department, class_key) at most one ACTIVE entry
- per faculty at most one ACTIVE entry

`assign_advisor` keeps them by deactivating conflicting entries before it
inserts the new one; the partial unique constraints on the model reject an
insert that raced past the conflict query, which surfaces as `Conflict` and
means the whole reassignment should be retried.

`FacultyProfile.current_assignment_summary`, `is_class_advisor` and the
profile's assigned classes are a cache of the ledger. They are updated by
`assign_advisor` and `remove_assignment`; `deactivate_assignment` leaves them
alone and `repair_assignments` rebuilds them from the ledger.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from accounts.services import active_department_owner
from academics.exceptions import Conflict, InvalidState, NotFound, store_errors
from academics.models import (
    ClassAssignment,
    ClassAssignmentStatusChange,
    Department,
    FacultyAssignedClass,
    FacultyProfile,
)
from academics.services import class_identity, notification_service
from academics.services.faculty_resolution import resolve_faculty

logger = logging.getLogger(__name__)

ACTIVE = ClassAssignment.Status.ACTIVE
INACTIVE = ClassAssignment.Status.INACTIVE
CLASS_ADVISOR = ClassAssignment.AssignmentRole.CLASS_ADVISOR

SUPERSEDED_REASON = 'superseded by new advisor assignment'
REASSIGNED_REASON = 'faculty reassigned to a different class'
DEACTIVATED_REASON = 'deactivated by administrator'
REPAIR_REASON = 'multiple active assignments detected by repair'
INITIAL_REASON = 'initial assignment'

MAX_NOTES_LENGTH = 500


@dataclass
class AssignmentResult:
    assignment: ClassAssignment
    deactivated: List[ClassAssignment] = field(default_factory=list)
    # faculty who held the class before (not the faculty's own prior class)
    replaced_advisor: Optional[object] = None
    created: bool = True
    notices: list = field(default_factory=list)


@dataclass
class RepairReport:
    deactivated: List[int] = field(default_factory=list)
    fixed_groups: List[Dict] = field(default_factory=list)
    profiles_updated: int = 0
    dry_run: bool = False


def resolve_department(department) -> Department:
    """Accept a Department, a department code or a primary key."""
    if isinstance(department, Department):
        return department
    value = str(department or '').strip()
    if not value:
        raise NotFound('Department is required')
    dept = Department.objects.filter(code__iexact=value).first()
    if dept is None and value.isdigit():
        dept = Department.objects.filter(pk=int(value)).first()
    if dept is None:
        raise NotFound(f'Department not found: {value}', department=value)
    return dept


def get_assignment(assignment_id) -> ClassAssignment:
    assignment = (
        ClassAssignment.objects
        .select_related('faculty', 'department', 'assigned_by', 'deactivated_by', 'department_owner')
        .filter(pk=assignment_id)
        .first()
    )
    if assignment is None:
        raise NotFound('Class assignment not found', assignment=assignment_id)
    return assignment


def _active_for_class(department, key, role):
    return list(
        ClassAssignment.objects
        .select_related('faculty')
        .filter(department=department, class_key=key, role=role, status=ACTIVE)
    )


def _active_for_faculty(faculty, role):
    return ClassAssignment.objects.filter(faculty=faculty, role=role, status=ACTIVE).first()


def _mark_inactive(assignment: ClassAssignment, actor, reason: str) -> bool:
    """Move one entry from ACTIVE to INACTIVE.

    The conditional update is the only write, so a concurrent deactivation
    of the same entry is detected rather than overwritten. Returns False
    when the entry was no longer active.
    """
    now = timezone.now()
    updated = ClassAssignment.objects.filter(pk=assignment.pk, status=ACTIVE).update(
        status=INACTIVE,
        deactivated_date=now,
        deactivated_by=actor,
        deactivation_reason=reason,
    )
    if not updated:
        return False

    assignment.status = INACTIVE
    assignment.deactivated_date = now
    assignment.deactivated_by = actor
    assignment.deactivation_reason = reason
    ClassAssignmentStatusChange.objects.create(
        assignment=assignment, status=INACTIVE, changed_at=now, changed_by=actor, reason=reason,
    )
    logger.info('Class assignment deactivated: assignment=%s faculty=%s class=%s actor=%s reason=%s',
                assignment.pk, assignment.faculty_id, assignment.class_key, getattr(actor, 'pk', None), reason)
    return True


def _class_filter(source) -> Dict:
    return {'batch': source.batch, 'year': source.year, 'semester': source.semester, 'section': source.section}


def _denormalize_new_holder(profile: FacultyProfile, assignment: ClassAssignment, deactivated):
    for prior in deactivated:
        if prior.faculty_id == profile.user_id:
            profile.assigned_classes.filter(is_active=True, **_class_filter(prior)).update(is_active=False)

    profile.assigned_classes.filter(**_class_filter(assignment)).delete()
    FacultyAssignedClass.objects.create(
        faculty_profile=profile,
        assigned_by=assignment.assigned_by,
        assigned_date=assignment.assigned_date,
        is_active=True,
        **_class_filter(assignment),
    )
    profile.current_assignment_summary = assignment.class_display
    profile.is_class_advisor = True
    profile.save(update_fields=['current_assignment_summary', 'is_class_advisor'])


def _clear_profile(faculty_id, source: ClassAssignment):
    profile = FacultyProfile.objects.filter(user_id=faculty_id).first()
    if profile is None:
        return
    profile.assigned_classes.filter(is_active=True, **_class_filter(source)).update(is_active=False)
    profile.current_assignment_summary = ''
    profile.is_class_advisor = False
    profile.save(update_fields=['current_assignment_summary', 'is_class_advisor'])


def validate_assignment_input(batch, year, semester, section, notes='', role=CLASS_ADVISOR) -> Dict[str, str]:
    errors = class_identity.validate_class_fields(batch, year, semester, section)
    if notes and len(notes) > MAX_NOTES_LENGTH:
        errors['notes'] = f'Notes cannot exceed {MAX_NOTES_LENGTH} characters'
    if role not in ClassAssignment.AssignmentRole.values:
        errors['role'] = 'Role must be one of: ' + ', '.join(ClassAssignment.AssignmentRole.values)
    return errors


def assign_advisor(faculty, department, batch, year, semester, section, assigned_by, notes='',
                   role=CLASS_ADVISOR) -> AssignmentResult:
    """Make `faculty` the active holder of a class.

    Order of work: validate -> find the class's active holder and the
    faculty's own active entry -> deactivate them -> insert the new entry ->
    update faculty profiles -> emit notices.

    Assigning a faculty member to the class they already hold is a no-op that
    returns the existing entry with `created=False`. Student enrollments are
    never touched: a reassignment only changes who owns the class from now on.
    """
    notes = (notes or '').strip()
    errors = validate_assignment_input(batch, year, semester, section, notes, role)
    if assigned_by is None:
        errors['assigned_by'] = 'Assigning actor is required'
    if errors:
        raise ValidationError(errors)
    semester = int(semester)

    dept = resolve_department(department)
    user, profile = resolve_faculty(faculty)
    problems = {}
    if not profile.is_assignable:
        problems['faculty'] = 'Cannot assign inactive faculty as class advisor'
    if user.department_id != dept.pk or profile.department_id != dept.pk:
        problems['department'] = 'Faculty must belong to the department of the class'
    if problems:
        raise ValidationError(problems)

    key = class_identity.class_key(batch, year, semester, section)

    with store_errors('An active assignment already exists for this class or faculty; retry the reassignment'):
        with transaction.atomic():
            holders = _active_for_class(dept, key, role)
            if len(holders) > 1:
                logger.error('Multiple active assignments for one class: department=%s class=%s role=%s ids=%s',
                             dept.code, key, role, [h.pk for h in holders])
                raise Conflict('Multiple active assignments found for this class; run the repair job',
                               assignments=[h.pk for h in holders])
            prior_class_holder = holders[0] if holders else None
            prior_faculty_assignment = _active_for_faculty(user, role)

            if prior_class_holder is not None and prior_class_holder.faculty_id == user.pk:
                logger.info('Class assignment unchanged: faculty=%s already holds class=%s', user.pk, key)
                return AssignmentResult(assignment=prior_class_holder, created=False)

            deactivated = []
            replaced_advisor = None
            if prior_class_holder is not None:
                replaced_advisor = prior_class_holder.faculty
                if _mark_inactive(prior_class_holder, assigned_by, SUPERSEDED_REASON):
                    deactivated.append(prior_class_holder)
            if prior_faculty_assignment is not None and prior_faculty_assignment.pk != getattr(prior_class_holder, 'pk', None):
                if _mark_inactive(prior_faculty_assignment, assigned_by, REASSIGNED_REASON):
                    deactivated.append(prior_faculty_assignment)

            owner = active_department_owner(dept) or assigned_by
            assignment = ClassAssignment.objects.create(
                faculty=user,
                department=dept,
                department_owner=owner,
                assigned_by=assigned_by,
                role=role,
                batch=batch,
                year=year,
                semester=semester,
                section=section,
                notes=notes,
                status=ACTIVE,
            )
            ClassAssignmentStatusChange.objects.create(
                assignment=assignment, status=ACTIVE, changed_at=assignment.assigned_date,
                changed_by=assigned_by, reason=INITIAL_REASON,
            )

            if role == CLASS_ADVISOR:
                _denormalize_new_holder(profile, assignment, deactivated)
                if replaced_advisor is not None:
                    _clear_profile(replaced_advisor.pk, prior_class_holder)

    logger.info('Class advisor assigned: assignment=%s faculty=%s department=%s class=%s replaced=%s deactivated=%s actor=%s',
                assignment.pk, user.pk, dept.code, key, getattr(replaced_advisor, 'pk', None),
                [a.pk for a in deactivated], assigned_by.pk)

    notices = notification_service.build_assignment_notices(assignment, user, owner, replaced_advisor, deactivated)
    notification_service.emit_notices(notices, assignment=assignment)

    return AssignmentResult(
        assignment=assignment,
        deactivated=deactivated,
        replaced_advisor=replaced_advisor,
        created=True,
        notices=notices,
    )


def deactivate_assignment(assignment_id, actor, reason: str = DEACTIVATED_REASON) -> ClassAssignment:
    """Deactivate one ledger entry.

    Faculty profile summaries are not touched; run `repair_assignments` (or
    reassign the class) to bring them back in line.
    """
    assignment = get_assignment(assignment_id)
    if assignment.status != ACTIVE:
        raise InvalidState('Assignment is already inactive', assignment=assignment.pk)
    with store_errors(), transaction.atomic():
        if not _mark_inactive(assignment, actor, reason or DEACTIVATED_REASON):
            raise InvalidState('Assignment is already inactive', assignment=assignment.pk)
    return assignment


def remove_assignment(assignment_id, actor) -> Dict:
    """Delete a ledger entry and its faculty-profile counterpart.

    Works from either status. Student enrollments referencing the faculty are
    historical and stay as they are. Returns a snapshot of the removed entry.
    """
    assignment = get_assignment(assignment_id)
    snapshot = {
        'id': assignment.pk,
        'faculty_id': assignment.faculty_id,
        'department_id': assignment.department_id,
        'batch': assignment.batch,
        'year': assignment.year,
        'semester': assignment.semester,
        'section': assignment.section,
        'status': assignment.status,
        'class_display': assignment.class_display,
    }
    was_active = assignment.is_active

    with store_errors(), transaction.atomic():
        assignment.delete()
        profile = FacultyProfile.objects.filter(user_id=snapshot['faculty_id']).first()
        # One assigned-class row per class: it belongs to the live entry when
        # the faculty holds this class again.
        still_held = not was_active and ClassAssignment.objects.filter(
            faculty_id=snapshot['faculty_id'], class_key=assignment.class_key, role=assignment.role, status=ACTIVE,
        ).exists()
        if profile is not None and assignment.role == CLASS_ADVISOR and not still_held:
            remaining = profile.assigned_classes.filter(**_class_filter(assignment)).delete()[0]
            if was_active:
                profile.current_assignment_summary = ''
                profile.is_class_advisor = False
                profile.save(update_fields=['current_assignment_summary', 'is_class_advisor'])
            logger.debug('Removed %s assigned class row(s) from profile %s', remaining, profile.pk)

    logger.info('Class assignment removed: assignment=%s faculty=%s class=%s status=%s actor=%s',
                snapshot['id'], snapshot['faculty_id'], assignment.class_key, snapshot['status'], getattr(actor, 'pk', None))
    return snapshot


def current_advisor(department, batch, year, semester, section, role=CLASS_ADVISOR) -> Optional[ClassAssignment]:
    dept = resolve_department(department)
    key = class_identity.class_key(batch, year, semester, section)
    return (
        ClassAssignment.objects
        .select_related('faculty', 'faculty__faculty_profile')
        .filter(department=dept, class_key=key, role=role, status=ACTIVE)
        .first()
    )


def holds_class(faculty, department, batch, year, semester, section) -> bool:
    """True when `faculty` is the active holder of the class in any role."""
    semester = class_identity.semester_number(semester)
    if semester is None or faculty is None:
        return False
    for role in ClassAssignment.AssignmentRole.values:
        holder = current_advisor(department, batch, year, semester, section, role=role)
        if holder is not None and holder.faculty_id == faculty.pk:
            return True
    return False


def assignments_for_faculty(faculty, include_inactive=False, role=None):
    user, _profile = resolve_faculty(faculty)
    qs = ClassAssignment.objects.select_related('assigned_by', 'deactivated_by').filter(faculty=user)
    if not include_inactive:
        qs = qs.filter(status=ACTIVE)
    if role:
        qs = qs.filter(role=role)
    return qs.order_by('-assigned_date', '-id')


def assignments_for_department(department, status=ACTIVE):
    """`status` may be 'ACTIVE', 'INACTIVE' or 'all'."""
    dept = resolve_department(department)
    qs = ClassAssignment.objects.select_related('faculty', 'assigned_by', 'deactivated_by').filter(department=dept)
    if status and str(status).lower() != 'all':
        qs = qs.filter(status=str(status).upper())
    return qs.order_by('-assigned_date', '-id')


def _sync_profile(profile: FacultyProfile, active: Optional[ClassAssignment], dry_run=False) -> bool:
    """Make one profile's cached fields match its active ledger entry."""
    changed = False
    summary = active.class_display if active is not None else ''
    flag = active is not None
    if profile.current_assignment_summary != summary or profile.is_class_advisor != flag:
        changed = True
        if not dry_run:
            profile.current_assignment_summary = summary
            profile.is_class_advisor = flag
            profile.save(update_fields=['current_assignment_summary', 'is_class_advisor'])

    found = False
    for row in profile.assigned_classes.all():
        should_be_active = active is not None and row.class_key == active.class_key
        found = found or should_be_active
        if row.is_active != should_be_active:
            changed = True
            if not dry_run:
                row.is_active = should_be_active
                row.save(update_fields=['is_active'])

    if active is not None and not found:
        changed = True
        if not dry_run:
            FacultyAssignedClass.objects.create(
                faculty_profile=profile,
                assigned_by=active.assigned_by,
                assigned_date=active.assigned_date,
                is_active=True,
                **_class_filter(active),
            )
    return changed


def plan_repair(active_entries):
    """Pick the entries to deactivate from ACTIVE entries ordered newest first.

    Faculty groups are collapsed first, then class groups among what is
    left. Returns `(doomed, fixed_groups)` where `doomed` maps pk -> entry.
    """
    doomed = {}
    fixed_groups = []

    def _collapse(entries, grouping, label):
        groups = defaultdict(list)
        for entry in entries:
            groups[grouping(entry)].append(entry)
        for key, group in groups.items():
            if len(group) < 2:
                continue
            newest, older = group[0], group[1:]
            for entry in older:
                doomed[entry.pk] = entry
            fixed_groups.append({
                'group': label,
                'key': [str(k) for k in key],
                'kept': newest.pk,
                'deactivated': [e.pk for e in older],
            })

    _collapse(active_entries, lambda a: (a.faculty_id, a.role), 'faculty')
    _collapse([a for a in active_entries if a.pk not in doomed], lambda a: (a.department_id, a.class_key, a.role), 'class')
    return doomed, fixed_groups


def repair_assignments(actor=None, dry_run=False) -> RepairReport:
    """Restore both ledger invariants and rebuild faculty profile caches.

    1. For every faculty/role and every class/role group holding more than
       one ACTIVE entry, keep the most recently assigned and deactivate the rest.
    2. Rebuild each faculty profile's summary, advisor flag and assigned
       classes from the surviving ACTIVE class-advisor entries.

    Running it twice in a row changes nothing the second time.
    """
    report = RepairReport(dry_run=dry_run)
    active = list(ClassAssignment.objects.filter(status=ACTIVE).order_by('-assigned_date', '-id'))
    doomed, report.fixed_groups = plan_repair(active)

    with store_errors(), transaction.atomic():
        for entry in doomed.values():
            if dry_run or _mark_inactive(entry, actor, REPAIR_REASON):
                report.deactivated.append(entry.pk)

        survivors = {
            a.faculty_id: a for a in active
            if a.pk not in doomed and a.role == CLASS_ADVISOR
        }
        for profile in FacultyProfile.objects.prefetch_related('assigned_classes'):
            if _sync_profile(profile, survivors.get(profile.user_id), dry_run=dry_run):
                report.profiles_updated += 1

    if report.fixed_groups:
        logger.error('Repair found duplicate active assignments: %s', report.fixed_groups)
    logger.info('Class assignment repair finished: deactivated=%s profiles_updated=%s dry_run=%s',
                report.deactivated, report.profiles_updated, dry_run)
    return report
