"""Single entry point for creating students and advancing their enrollments.

A student is looked up by email OR roll number. The match decides what
happens to the request:

    no match                          -> create identity + record + first enrollment
    same (batch, section, department) -> append an enrollment, or report a duplicate
    different cohort                  -> reject with the conflicting values

Writes always go identity first, then the student record. If the record
write fails the identity is left behind; identity creation is idempotent on
email, so a retry picks it up again.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date

from accounts.models import User
from accounts.services import deactivate_user, get_or_create_identity
from academics.exceptions import Conflict, InvalidState, LedgerError, NotFound, store_errors
from academics.models import SemesterEnrollment, StudentRecord
from academics.services import class_identity
from academics.services.assignment_ledger import resolve_department
from academics.services.faculty_resolution import resolve_faculty

logger = logging.getLogger(__name__)

CREATE = 'create'
UPDATE = 'update'
DUPLICATE = 'duplicate'
REJECT = 'reject'

CLASS_CONTEXT_FIELDS = ('department', 'batch_year', 'section', 'semester_name', 'year')
ARCHIVE_STATUSES = ('inactive', 'alumni')


@dataclass
class ReconcileResult:
    action: str
    student: Optional[StudentRecord] = None
    enrollment: Optional[SemesterEnrollment] = None
    reason: str = ''
    conflict_details: Optional[Dict[str, str]] = None
    identity_created: bool = False

    @property
    def ok(self) -> bool:
        return self.action in (CREATE, UPDATE)


@dataclass
class EnrolledStudent:
    """A student together with the one enrollment that matched the query."""
    student: StudentRecord
    enrollment: SemesterEnrollment


@dataclass
class AcademicHistory:
    student: StudentRecord
    enrollments: List[SemesterEnrollment] = field(default_factory=list)


def _text(data, key) -> str:
    value = (data or {}).get(key)
    return '' if value is None else str(value).strip()


def _date_of_birth(data) -> Optional[date]:
    """Parse an optional ISO date; raises ValueError for anything else."""
    value = (data or {}).get('date_of_birth')
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = '' if value is None else str(value).strip()
    if not text:
        return None
    parsed = parse_date(text)
    if parsed is None:
        raise ValueError(value)
    return parsed


def validate_student_data(student_data, class_context) -> Dict[str, str]:
    """Return field -> message for every violation in one request."""
    errors = {}
    name = _text(student_data, 'name')
    if len(name) < 2:
        errors['name'] = 'Name must be at least 2 characters'
    if not class_identity.is_valid_email(_text(student_data, 'email')):
        errors['email'] = 'Enter a valid email address'
    if not _text(student_data, 'roll_number'):
        errors['roll_number'] = 'Roll number is required'
    try:
        _date_of_birth(student_data)
    except ValueError:
        errors['date_of_birth'] = 'Date of birth must be a valid date in YYYY-MM-DD format'

    context = class_context or {}
    for key in CLASS_CONTEXT_FIELDS:
        if not _text(context, key):
            errors[key] = f'Class context field {key} is required'
    if 'batch_year' not in errors and not class_identity.is_valid_batch(_text(context, 'batch_year')):
        errors['batch_year'] = 'Batch must be in format YYYY-YYYY (e.g., 2022-2026)'
    if 'section' not in errors and _text(context, 'section') not in class_identity.SECTIONS:
        errors['section'] = 'Section must be one of: ' + ', '.join(class_identity.SECTIONS)
    if 'semester_name' not in errors and _text(context, 'semester_name') not in class_identity.SEMESTER_NAMES:
        errors['semester_name'] = 'Semester must be one of: ' + ', '.join(class_identity.SEMESTER_NAMES)
    if 'year' not in errors and _text(context, 'year') not in class_identity.YEARS:
        errors['year'] = 'Year must be one of: ' + ', '.join(class_identity.YEARS)
    return errors


def _class_id(context) -> str:
    return class_identity.class_id(
        _text(context, 'batch_year'), _text(context, 'year'), _text(context, 'semester_name'), _text(context, 'section'),
    )


def _new_enrollment(student, context, faculty, created_by) -> SemesterEnrollment:
    return SemesterEnrollment.objects.create(
        student=student,
        semester_name=_text(context, 'semester_name'),
        year=_text(context, 'year'),
        class_id=_class_id(context),
        faculty=faculty,
        status=SemesterEnrollment.Status.ACTIVE,
        created_by=created_by,
    )


def find_existing_student(email, roll_number) -> Optional[StudentRecord]:
    """Either key matching counts as the same student; an email match wins."""
    matches = list(
        StudentRecord.objects
        .select_related('user', 'department')
        .filter(Q(user__email__iexact=email) | Q(roll_number=roll_number))[:2]
    )
    for record in matches:
        if record.user.email.lower() == email.lower():
            return record
    return matches[0] if matches else None


def reconcile(student_data, class_context, faculty, created_by=None) -> ReconcileResult:
    """Create a student or extend their enrollment history.

    Raises ValidationError (all violations), NotFound for an unknown
    department or faculty, and Conflict when a write hits a uniqueness
    constraint. A rejected cohort mismatch is returned, not raised.
    """
    errors = validate_student_data(student_data, class_context)
    if errors:
        raise ValidationError(errors)

    department = resolve_department(class_context['department'])
    faculty_user, _profile = resolve_faculty(faculty)

    email = _text(student_data, 'email').lower()
    roll_number = _text(student_data, 'roll_number')
    batch_year = _text(class_context, 'batch_year')
    section = _text(class_context, 'section')
    class_id = _class_id(class_context)

    existing = find_existing_student(email, roll_number)
    if existing is not None:
        if (existing.batch_year, existing.section, existing.department_id) != (batch_year, section, department.pk):
            details = {
                'existing_batch': existing.batch_year,
                'existing_section': existing.section,
                'existing_department': existing.department.code,
                'requested_batch': batch_year,
                'requested_section': section,
                'requested_department': department.code,
            }
            logger.info('Student reconcile rejected: student=%s roll=%s details=%s', existing.pk, existing.roll_number, details)
            return ReconcileResult(
                action=REJECT,
                student=existing,
                reason='Student already exists in another batch, section, or department',
                conflict_details=details,
            )

        if existing.semesters.filter(class_id=class_id, faculty=faculty_user).exists():
            logger.info('Student reconcile duplicate: student=%s class=%s faculty=%s', existing.pk, class_id, faculty_user.pk)
            return ReconcileResult(action=DUPLICATE, student=existing, reason='Student already enrolled in this semester')

        with store_errors('Student is already enrolled in this class with this faculty'), transaction.atomic():
            enrollment = _new_enrollment(existing, class_context, faculty_user, created_by)
        logger.info('Student reconcile update: student=%s class=%s faculty=%s enrollment=%s',
                    existing.pk, class_id, faculty_user.pk, enrollment.pk)
        return ReconcileResult(action=UPDATE, student=existing, enrollment=enrollment,
                               reason='Student semester added successfully')

    with store_errors('An identity with this email already exists'), transaction.atomic():
        identity, identity_created = get_or_create_identity(
            email=email,
            name=_text(student_data, 'name'),
            role=User.Role.STUDENT,
            department=department,
            password=(student_data or {}).get('password') or None,
            mobile_no=_text(student_data, 'mobile'),
            created_by=created_by,
        )
    if identity.role != User.Role.STUDENT:
        raise Conflict('Email belongs to a non-student identity', email=email, role=identity.role)

    with store_errors('A student with this roll number or email already exists'), transaction.atomic():
        student = StudentRecord.objects.create(
            user=identity,
            roll_number=roll_number,
            department=department,
            batch_year=batch_year,
            section=section,
            mobile=_text(student_data, 'mobile'),
            parent_contact=_text(student_data, 'parent_contact'),
            address=_text(student_data, 'address'),
            date_of_birth=_date_of_birth(student_data),
            created_by=created_by,
        )
        enrollment = _new_enrollment(student, class_context, faculty_user, created_by)

    logger.info('Student reconcile create: student=%s roll=%s identity=%s identity_created=%s class=%s faculty=%s',
                student.pk, roll_number, identity.pk, identity_created, class_id, faculty_user.pk)
    return ReconcileResult(action=CREATE, student=student, enrollment=enrollment,
                           reason='Student created successfully', identity_created=identity_created)


def reconcile_many(rows, class_context, faculty, created_by=None) -> Dict:
    """Reconcile rows one after another; one bad row never stops the batch.

    Every row lands in exactly one of `successful`, `skipped` or `failed`,
    tagged with its original index.
    """
    report = {
        'successful': [],
        'skipped': [],
        'failed': [],
        'summary': {'total': len(rows), 'created': 0, 'updated': 0, 'skipped': 0, 'failed': 0},
    }
    summary = report['summary']

    for index, row in enumerate(rows):
        try:
            result = reconcile(row, class_context, faculty, created_by)
        except ValidationError as exc:
            errors = exc.message_dict if hasattr(exc, 'error_dict') else {'non_field_errors': exc.messages}
            report['failed'].append({'index': index, 'error': 'Validation failed', 'errors': errors, 'details': None})
            summary['failed'] += 1
            continue
        except LedgerError as exc:
            report['failed'].append({'index': index, 'error': exc.message, 'errors': None, 'details': exc.details or None})
            summary['failed'] += 1
            continue
        except Exception as exc:
            logger.exception('Unexpected error reconciling row %s', index)
            report['failed'].append({'index': index, 'error': str(exc), 'errors': None, 'details': None})
            summary['failed'] += 1
            continue

        if result.action == CREATE:
            report['successful'].append({'index': index, 'action': result.action, 'student_id': result.student.pk, 'message': result.reason})
            summary['created'] += 1
        elif result.action == UPDATE:
            report['successful'].append({'index': index, 'action': result.action, 'student_id': result.student.pk, 'message': result.reason})
            summary['updated'] += 1
        elif result.action == DUPLICATE:
            report['skipped'].append({'index': index, 'student_id': result.student.pk, 'message': result.reason})
            summary['skipped'] += 1
        else:
            report['failed'].append({'index': index, 'error': result.reason, 'errors': None, 'details': result.conflict_details})
            summary['failed'] += 1

    logger.info('Bulk student reconcile finished: %s', summary)
    return report


def enrollments_for_faculty(faculty, class_context) -> List[EnrolledStudent]:
    """Active students of one class taught by `faculty`, with the matching enrollment only."""
    faculty_user, _profile = resolve_faculty(faculty)
    department = resolve_department(class_context['department'])
    enrollments = (
        SemesterEnrollment.objects
        .select_related('student', 'student__user', 'student__department')
        .filter(
            student__department=department,
            student__batch_year=_text(class_context, 'batch_year'),
            student__section=_text(class_context, 'section'),
            student__status='active',
            semester_name=_text(class_context, 'semester_name'),
            year=_text(class_context, 'year'),
            faculty=faculty_user,
            class_id=_class_id(class_context),
            status=SemesterEnrollment.Status.ACTIVE,
        )
        .order_by('student__roll_number')
    )
    return [EnrolledStudent(student=e.student, enrollment=e) for e in enrollments]


def get_student(student_id) -> StudentRecord:
    student = StudentRecord.objects.select_related('user', 'department').filter(pk=student_id).first()
    if student is None:
        raise NotFound('Student not found', student=student_id)
    return student


def academic_history(student_id) -> AcademicHistory:
    student = get_student(student_id)
    enrollments = sorted(
        student.semesters.select_related('faculty'),
        key=lambda e: class_identity.history_sort_key(e.year, e.semester_name),
    )
    return AcademicHistory(student=student, enrollments=enrollments)


def archive_student(student_id, actor, status='inactive') -> StudentRecord:
    """Take a student out of the active roster, keeping every enrollment.

    The record gets `status`, all enrollments are marked archived and the
    identity is deactivated.
    """
    if status not in ARCHIVE_STATUSES:
        raise ValidationError({'status': 'Status must be one of: ' + ', '.join(ARCHIVE_STATUSES)})
    student = get_student(student_id)
    with store_errors(), transaction.atomic():
        student.status = status
        student.save(update_fields=['status'])
        archived = student.semesters.filter(status=SemesterEnrollment.Status.ACTIVE).update(
            status=SemesterEnrollment.Status.ARCHIVED,
        )
        deactivate_user(student.user, reason=f'student archived as {status}', actor=actor)
    logger.info('Student archived: student=%s status=%s enrollments_archived=%s actor=%s time=%s',
                student.pk, status, archived, getattr(actor, 'pk', None), timezone.now())
    return student


def archive_enrollment(student_id, class_id, faculty, actor) -> SemesterEnrollment:
    """Archive one (student, class, faculty) enrollment; the rest of the history stays as it is."""
    student = get_student(student_id)
    faculty_user, _profile = resolve_faculty(faculty)
    enrollment = student.semesters.filter(class_id=class_id, faculty=faculty_user).first()
    if enrollment is None:
        raise NotFound('Enrollment not found', student=student.pk, class_id=class_id, faculty=faculty_user.pk)
    if enrollment.status != SemesterEnrollment.Status.ACTIVE:
        raise InvalidState('Enrollment is already archived', enrollment=enrollment.pk)

    with store_errors(), transaction.atomic():
        updated = SemesterEnrollment.objects.filter(
            pk=enrollment.pk, status=SemesterEnrollment.Status.ACTIVE,
        ).update(status=SemesterEnrollment.Status.ARCHIVED)
    if not updated:
        raise InvalidState('Enrollment is already archived', enrollment=enrollment.pk)

    enrollment.status = SemesterEnrollment.Status.ARCHIVED
    logger.info('Enrollment archived: student=%s class=%s faculty=%s enrollment=%s actor=%s',
                student.pk, class_id, faculty_user.pk, enrollment.pk, getattr(actor, 'pk', None))
    return enrollment
