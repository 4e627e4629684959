from django.db import models
from django.db.models import Q
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator, RegexValidator
from django.utils import timezone

from academics.services import class_identity


batch_validator = RegexValidator(
    regex=class_identity.BATCH_PATTERN,
    message='Batch must be in format YYYY-YYYY (e.g., 2022-2026)',
)


class Department(models.Model):
    code = models.CharField(max_length=16, unique=True)
    name = models.CharField(max_length=128)
    # Short form for display (abbreviation) e.g. 'CSE', 'EEE'
    short_name = models.CharField(max_length=32, blank=True)

    class Meta:
        ordering = ('code',)

    def __str__(self):
        display = self.short_name or self.name
        return f"{self.code} - {display}"


PROFILE_STATUS_CHOICES = (
    ('active', 'Active'),
    ('inactive', 'Inactive'),
)


class FacultyProfile(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='faculty_profile'
    )
    employee_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    department = models.ForeignKey(Department, on_delete=models.PROTECT, related_name='faculty')
    position = models.CharField(max_length=128, blank=True)
    status = models.CharField(max_length=16, choices=PROFILE_STATUS_CHOICES, default='active')
    # Denormalized view of the ledger; rebuilt by the repair pass.
    current_assignment_summary = models.CharField(max_length=255, blank=True, default='')
    is_class_advisor = models.BooleanField(default=False)

    class Meta:
        verbose_name = 'Faculty Profile'
        verbose_name_plural = 'Faculty Profiles'

    def __str__(self):
        return f"Faculty {self.employee_id or self.pk} ({self.user.email})"

    @property
    def is_assignable(self) -> bool:
        return self.status == 'active' and self.user.status == 'active' and self.user.is_active

    def clean(self):
        user = self.user
        if user.role != 'faculty':
            raise ValidationError({'user': 'Faculty profiles can only belong to faculty identities.'})
        if getattr(user, 'student_record', None) is not None:
            raise ValidationError('User already has a student record; cannot create a faculty profile.')
        if self.department_id != user.department_id:
            raise ValidationError({'department': "Faculty department must match the identity's department."})

    def save(self, *args, **kwargs):
        if not kwargs.get('update_fields'):
            self.full_clean()
        super().save(*args, **kwargs)


class FacultyAssignedClass(models.Model):
    """Per-profile record of the classes a faculty member has advised.

    Owned by FacultyProfile; written only by the assignment ledger service.
    """
    faculty_profile = models.ForeignKey(FacultyProfile, on_delete=models.CASCADE, related_name='assigned_classes')
    batch = models.CharField(max_length=9)
    year = models.CharField(max_length=16)
    semester = models.PositiveSmallIntegerField()
    section = models.CharField(max_length=1)
    assigned_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    assigned_date = models.DateTimeField(default=timezone.now)
    is_active = models.BooleanField(default=True)

    class Meta:
        verbose_name = 'Faculty Assigned Class'
        verbose_name_plural = 'Faculty Assigned Classes'
        ordering = ('-assigned_date', '-id')

    def __str__(self):
        return class_identity.class_display(self.batch, self.year, self.semester, self.section)

    @property
    def class_key(self):
        return class_identity.class_key(self.batch, self.year, self.semester, self.section)


class ClassAssignment(models.Model):
    """Ledger entry binding a faculty member to one class in a role.

    Active entries are the authoritative bindings. Entries move
    Active -> Inactive only, and are removed by deletion.
    """

    class Status(models.TextChoices):
        ACTIVE = 'ACTIVE', 'Active'
        INACTIVE = 'INACTIVE', 'Inactive'

    class AssignmentRole(models.TextChoices):
        CLASS_ADVISOR = 'CLASS_ADVISOR', 'Class Advisor'
        SUBJECT_FACULTY = 'SUBJECT_FACULTY', 'Subject Faculty'

    faculty = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='class_assignments')
    department = models.ForeignKey(Department, on_delete=models.PROTECT, related_name='class_assignments')
    department_owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='owned_class_assignments')
    assigned_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='made_class_assignments')
    role = models.CharField(max_length=16, choices=AssignmentRole.choices, default=AssignmentRole.CLASS_ADVISOR, db_index=True)
    batch = models.CharField(max_length=9, validators=[batch_validator])
    year = models.CharField(max_length=16, choices=[(y, y) for y in class_identity.YEARS])
    semester = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(8)])
    section = models.CharField(max_length=1, choices=[(s, s) for s in class_identity.SECTIONS])
    class_key = models.CharField(max_length=64, editable=False, db_index=True)
    status = models.CharField(max_length=8, choices=Status.choices, default=Status.ACTIVE, db_index=True)
    assigned_date = models.DateTimeField(default=timezone.now)
    deactivated_date = models.DateTimeField(null=True, blank=True)
    deactivated_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    deactivation_reason = models.CharField(max_length=300, blank=True, default='')
    notes = models.TextField(max_length=500, blank=True, default='')

    class Meta:
        verbose_name = 'Class Assignment'
        verbose_name_plural = 'Class Assignments'
        ordering = ('-assigned_date', '-id')
        constraints = [
            # Store-level backstop for the query->insert race in assign_advisor
            models.UniqueConstraint(fields=['department', 'class_key', 'role'], condition=Q(status='ACTIVE'), name='unique_active_assignment_per_class'),
            models.UniqueConstraint(fields=['faculty', 'role'], condition=Q(status='ACTIVE'), name='unique_active_assignment_per_faculty'),
        ]
        indexes = [
            models.Index(fields=['department', 'status', 'role'], name='class_assign_dept_status_idx'),
            models.Index(fields=['faculty', 'status', 'role'], name='class_assign_fac_status_idx'),
        ]

    def __str__(self):
        return f"{self.class_display} -> {self.faculty_id} ({self.get_status_display()})"

    @property
    def is_active(self) -> bool:
        return self.status == self.Status.ACTIVE

    @property
    def class_display(self) -> str:
        return class_identity.class_display(self.batch, self.year, self.semester, self.section)

    def save(self, *args, **kwargs):
        self.class_key = class_identity.class_key(self.batch, self.year, self.semester, self.section)
        super().save(*args, **kwargs)


class ClassAssignmentStatusChange(models.Model):
    """Audit trail of ledger transitions."""
    assignment = models.ForeignKey(ClassAssignment, on_delete=models.CASCADE, related_name='status_history')
    status = models.CharField(max_length=8, choices=ClassAssignment.Status.choices)
    changed_at = models.DateTimeField(default=timezone.now)
    changed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    reason = models.CharField(max_length=300, blank=True, default='')

    class Meta:
        ordering = ('changed_at', 'id')

    def __str__(self):
        return f"{self.assignment_id}: {self.status} ({self.reason})"


STUDENT_STATUS_CHOICES = (
    ('active', 'Active'),
    ('inactive', 'Inactive'),
    ('alumni', 'Alumni'),
)


class StudentRecord(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='student_record'
    )
    roll_number = models.CharField(max_length=64, unique=True, db_index=True)
    department = models.ForeignKey(Department, on_delete=models.PROTECT, related_name='students')
    batch_year = models.CharField(max_length=9, validators=[batch_validator])
    section = models.CharField(max_length=1, choices=[(s, s) for s in class_identity.SECTIONS])
    status = models.CharField(max_length=16, choices=STUDENT_STATUS_CHOICES, default='active', db_index=True)
    mobile = models.CharField(max_length=32, blank=True, default='')
    parent_contact = models.CharField(max_length=32, blank=True, default='')
    address = models.TextField(blank=True, default='')
    date_of_birth = models.DateField(null=True, blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Student Record'
        verbose_name_plural = 'Student Records'
        ordering = ('roll_number',)

    def __str__(self):
        return f"Student {self.roll_number} ({self.user.email})"

    @property
    def cohort(self):
        return (self.batch_year, self.section, self.department.code)

    def save(self, *args, **kwargs):
        # roll number and cohort are fixed after creation
        if self.pk:
            old = StudentRecord.objects.filter(pk=self.pk).values('roll_number', 'batch_year', 'section', 'department_id').first()
            if old and (old['roll_number'], old['batch_year'], old['section'], old['department_id']) != (
                    self.roll_number, self.batch_year, self.section, self.department_id):
                raise ValidationError('Student roll number, batch, section and department are immutable.')
        super().save(*args, **kwargs)


class SemesterEnrollment(models.Model):
    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        ARCHIVED = 'archived', 'Archived'

    student = models.ForeignKey(StudentRecord, on_delete=models.CASCADE, related_name='semesters')
    semester_name = models.CharField(max_length=8, choices=[(s, s) for s in class_identity.SEMESTER_NAMES])
    year = models.CharField(max_length=16, choices=[(y, y) for y in class_identity.YEARS])
    class_id = models.CharField(max_length=64, db_index=True)
    faculty = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='student_enrollments')
    status = models.CharField(max_length=8, choices=Status.choices, default=Status.ACTIVE)
    enrolled_on = models.DateTimeField(default=timezone.now)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')

    class Meta:
        verbose_name = 'Semester Enrollment'
        verbose_name_plural = 'Semester Enrollments'
        # insertion order is the enrollment order
        ordering = ('id',)
        constraints = [
            models.UniqueConstraint(fields=['student', 'class_id', 'faculty'], name='unique_enrollment_per_class_faculty'),
        ]

    def __str__(self):
        return f"{self.student.roll_number} {self.class_id} ({self.status})"
