from datetime import timedelta

from django.core.exceptions import ValidationError
from django.test import TestCase, override_settings
from django.utils import timezone

from accounts.models import User
from accounts.services import active_department_owner, deactivate_user, get_or_create_identity
from academics.models import Department, FacultyProfile


class IdentityServiceTests(TestCase):
    def setUp(self):
        self.cse = Department.objects.create(code='CSE', name='Computer Science')

    def test_get_or_create_is_idempotent_on_email(self):
        user, created = get_or_create_identity('Priya@College.edu', name='Priya', department=self.cse)
        again, created_again = get_or_create_identity('priya@college.edu', name='Someone Else')

        self.assertTrue(created)
        self.assertFalse(created_again)
        self.assertEqual(user.pk, again.pk)
        self.assertEqual(user.email, 'priya@college.edu')
        self.assertEqual(user.username, 'priya@college.edu')
        self.assertEqual(User.objects.count(), 1)

    def test_new_identity_without_default_password_cannot_log_in(self):
        user, _ = get_or_create_identity('nopass@college.edu', department=self.cse)
        self.assertFalse(user.has_usable_password())

    @override_settings(CLASS_LEDGER_DEFAULT_STUDENT_PASSWORD='Welcome@123')
    def test_default_password_from_settings(self):
        user, _ = get_or_create_identity('withpass@college.edu', department=self.cse)
        self.assertTrue(user.check_password('Welcome@123'))

    def test_role_specific_field_rules(self):
        hod_less = User(email='fac@college.edu', role=User.Role.FACULTY)
        with self.assertRaises(ValidationError) as ctx:
            hod_less.full_clean()
        self.assertIn('department', ctx.exception.message_dict)

        misplaced = User(email='f2@college.edu', role=User.Role.FACULTY, department=self.cse,
                         hod_expiry=timezone.localdate())
        with self.assertRaises(ValidationError) as ctx:
            misplaced.full_clean()
        self.assertIn('hod_expiry', ctx.exception.message_dict)

    def test_active_department_owner_skips_expired_hod(self):
        yesterday = timezone.localdate() - timedelta(days=1)
        User.objects.create_identity('old.hod@college.edu', role=User.Role.HOD, department=self.cse, hod_expiry=yesterday)
        self.assertIsNone(active_department_owner(self.cse))

        current = User.objects.create_identity('hod@college.edu', role=User.Role.HOD, department=self.cse)
        self.assertEqual(active_department_owner(self.cse), current)
        self.assertTrue(current.is_hod_term_active)
        self.assertIsNone(active_department_owner(None))

    def test_deactivate_user_marks_faculty_profile_inactive(self):
        user = User.objects.create_identity('fac@college.edu', role=User.Role.FACULTY, department=self.cse)
        profile = FacultyProfile.objects.create(user=user, department=self.cse)

        deactivate_user(user, status='suspended', reason='left college')

        user.refresh_from_db()
        profile.refresh_from_db()
        self.assertFalse(user.is_active)
        self.assertEqual(user.status, 'suspended')
        self.assertEqual(profile.status, 'inactive')
        self.assertFalse(profile.is_assignable)

    def test_faculty_profile_requires_matching_department(self):
        ece = Department.objects.create(code='ECE', name='Electronics')
        user = User.objects.create_identity('x@college.edu', role=User.Role.FACULTY, department=self.cse)
        with self.assertRaises(ValidationError):
            FacultyProfile.objects.create(user=user, department=ece)
