from django.db import models
from django.contrib.auth.models import AbstractUser, UserManager
from django.core.exceptions import ValidationError
from django.core.validators import RegexValidator
from django.utils import timezone


class UsernameValidator(RegexValidator):
    """Custom validator that allows spaces in usernames."""
    regex = r'^[\w\s.@+-]+$'
    message = 'Enter a valid username. This value may contain letters, numbers, spaces, and @/./+/-/_ characters.'
    flags = 0


class IdentityManager(UserManager):

    def get_by_email(self, email):
        """Case-insensitive email lookup; returns None when absent."""
        if not email:
            return None
        return self.filter(email__iexact=str(email).strip()).first()

    def create_identity(self, email, name='', role='student', department=None, password=None, **extra):
        """Create an identity keyed on its email (the username mirrors the email)."""
        email = self.normalize_email(str(email).strip()).lower()
        user = self.model(username=email, email=email, name=name, role=role, department=department, **extra)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user


class User(AbstractUser):
    """
    Identity record.
    Every admin, principal, HOD, faculty member and student is a User;
    the `role` decides which profile (if any) hangs off it.
    """

    class Role(models.TextChoices):
        ADMIN = 'admin', 'Admin'
        PRINCIPAL = 'principal', 'Principal'
        HOD = 'hod', 'Head of Department'
        FACULTY = 'faculty', 'Faculty'
        STUDENT = 'student', 'Student'

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        INACTIVE = 'inactive', 'Inactive'
        SUSPENDED = 'suspended', 'Suspended'

    username = models.CharField(
        max_length=150,
        unique=True,
        validators=[UsernameValidator()],
        error_messages={
            'unique': 'A user with that username already exists.',
        },
    )
    email = models.EmailField(
        unique=True,
        error_messages={
            'unique': 'An identity with that email already exists.',
        },
    )
    name = models.CharField(max_length=100, blank=True, default='')
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.STUDENT, db_index=True)
    department = models.ForeignKey(
        'academics.Department',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='identities',
    )
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE, db_index=True)
    # Only meaningful for role=hod; an expired HOD no longer owns the department.
    hod_expiry = models.DateField(null=True, blank=True)
    mobile_no = models.CharField('Mobile no', max_length=32, blank=True, default='')

    objects = IdentityManager()

    def __str__(self):
        return self.name or self.email or self.username

    @property
    def is_hod_term_active(self) -> bool:
        if self.role != self.Role.HOD:
            return False
        if self.hod_expiry is None:
            return True
        return self.hod_expiry >= timezone.localdate()

    def clean(self):
        super().clean()
        errors = {}
        if self.role in (self.Role.HOD, self.Role.FACULTY, self.Role.STUDENT) and self.department_id is None:
            errors['department'] = f'Department is required for role {self.role}.'
        if self.hod_expiry is not None and self.role != self.Role.HOD:
            errors['hod_expiry'] = 'Expiry date is only meaningful for HOD identities.'
        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        # email is unique case-insensitively: store it lower-cased
        if self.email:
            self.email = self.email.strip().lower()
        if not self.username and self.email:
            self.username = self.email
        super().save(*args, **kwargs)
