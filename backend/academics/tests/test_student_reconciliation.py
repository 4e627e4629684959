from unittest import mock

from django.core.exceptions import ValidationError
from django.db import IntegrityError
from django.test import TestCase

from accounts.models import User
from academics.exceptions import Conflict, InvalidState, NotFound
from academics.models import SemesterEnrollment, StudentRecord
from academics.services import student_reconciliation as recon
from academics.tests.helpers import (
    class_context,
    make_department,
    make_faculty,
    make_hod,
    make_identity,
    student_row,
)


class ReconcileTests(TestCase):
    def setUp(self):
        self.cse = make_department('CSE')
        self.hod = make_hod(self.cse)
        self.faculty, self.profile = make_faculty(self.cse)
        self.ctx = class_context(self.cse)

    def test_create_then_duplicate(self):
        row = student_row('S001', mobile='9876543210')

        first = recon.reconcile(row, self.ctx, self.faculty, self.hod)
        second = recon.reconcile(row, self.ctx, self.faculty, self.hod)

        self.assertEqual(first.action, recon.CREATE)
        self.assertTrue(first.identity_created)
        self.assertEqual(first.enrollment.class_id, '2023-2027|2nd Year|Sem 3|A')
        self.assertEqual(first.student.user.role, User.Role.STUDENT)
        self.assertEqual(first.student.mobile, '9876543210')
        self.assertEqual(second.action, recon.DUPLICATE)
        self.assertEqual(second.student.pk, first.student.pk)
        self.assertEqual(StudentRecord.objects.count(), 1)
        self.assertEqual(SemesterEnrollment.objects.count(), 1)

    def test_next_semester_appends_enrollment(self):
        row = student_row('S002')
        created = recon.reconcile(row, self.ctx, self.faculty, self.hod)
        later = class_context(self.cse, semester_name='Sem 4')

        result = recon.reconcile(row, later, self.faculty, self.hod)

        self.assertEqual(result.action, recon.UPDATE)
        self.assertEqual(result.student.pk, created.student.pk)
        self.assertEqual(list(result.student.semesters.values_list('semester_name', flat=True)), ['Sem 3', 'Sem 4'])

    def test_same_class_with_another_faculty_is_not_a_duplicate(self):
        other, _ = make_faculty(self.cse)
        row = student_row('S003')
        recon.reconcile(row, self.ctx, self.faculty, self.hod)

        result = recon.reconcile(row, self.ctx, other, self.hod)

        self.assertEqual(result.action, recon.UPDATE)
        self.assertEqual(result.student.semesters.count(), 2)

    def test_roll_number_match_counts_as_same_student(self):
        recon.reconcile(student_row('S004'), self.ctx, self.faculty, self.hod)
        renamed = student_row('S004', email='new.address@students.college.edu')

        result = recon.reconcile(renamed, class_context(self.cse, semester_name='Sem 4'), self.faculty, self.hod)

        self.assertEqual(result.action, recon.UPDATE)
        self.assertEqual(StudentRecord.objects.count(), 1)

    def test_different_cohort_is_rejected_without_changes(self):
        recon.reconcile(student_row('S001'), self.ctx, self.faculty, self.hod)
        moved = class_context(self.cse, batch_year='2024-2028')

        result = recon.reconcile(student_row('S001'), moved, self.faculty, self.hod)

        self.assertEqual(result.action, recon.REJECT)
        self.assertFalse(result.ok)
        self.assertEqual(result.conflict_details['existing_batch'], '2023-2027')
        self.assertEqual(result.conflict_details['requested_batch'], '2024-2028')
        self.assertEqual(result.conflict_details['existing_section'], 'A')
        self.assertEqual(SemesterEnrollment.objects.count(), 1)
        self.assertEqual(StudentRecord.objects.get().batch_year, '2023-2027')

    def test_validation_lists_all_violations(self):
        bad = {'name': 'A', 'email': 'not-an-email', 'roll_number': '  '}
        ctx = dict(self.ctx, section='Z', semester_name='')

        with self.assertRaises(ValidationError) as cm:
            recon.reconcile(bad, ctx, self.faculty, self.hod)

        self.assertEqual(set(cm.exception.message_dict), {'name', 'email', 'roll_number', 'section', 'semester_name'})

    def test_bad_date_of_birth_is_a_field_error_before_any_write(self):
        for dob in ('12/05/2005', '2005-13-40'):
            with self.subTest(dob=dob):
                with self.assertRaises(ValidationError) as cm:
                    recon.reconcile(student_row('S010', date_of_birth=dob), self.ctx, self.faculty, self.hod)
                self.assertEqual(set(cm.exception.message_dict), {'date_of_birth'})
        self.assertIsNone(User.objects.get_by_email('s010@students.college.edu'))
        self.assertFalse(StudentRecord.objects.exists())

    def test_date_of_birth_is_stored_as_date(self):
        result = recon.reconcile(student_row('S011', date_of_birth='2005-05-12'), self.ctx, self.faculty, self.hod)
        result.student.refresh_from_db()
        self.assertEqual(result.student.date_of_birth.isoformat(), '2005-05-12')

    def test_unknown_faculty(self):
        with self.assertRaises(NotFound):
            recon.reconcile(student_row('S005'), self.ctx, 987654, self.hod)

    def test_existing_student_identity_is_reused(self):
        identity = make_identity(User.Role.STUDENT, department=self.cse, email='walkin@students.college.edu')

        result = recon.reconcile(student_row('S006', email='Walkin@Students.College.edu'), self.ctx, self.faculty, self.hod)

        self.assertEqual(result.action, recon.CREATE)
        self.assertFalse(result.identity_created)
        self.assertEqual(result.student.user, identity)

    def test_email_of_non_student_identity_conflicts(self):
        with self.assertRaises(Conflict):
            recon.reconcile(student_row('S007', email=self.faculty.email), self.ctx, self.faculty, self.hod)
        self.assertFalse(StudentRecord.objects.exists())

    def test_failed_record_write_leaves_identity_for_retry(self):
        row = student_row('S008')
        with mock.patch.object(StudentRecord.objects, 'create', side_effect=IntegrityError('roll_number')):
            with self.assertRaises(Conflict):
                recon.reconcile(row, self.ctx, self.faculty, self.hod)

        orphan = User.objects.get_by_email(row['email'])
        self.assertIsNotNone(orphan)
        self.assertFalse(StudentRecord.objects.exists())

        retry = recon.reconcile(row, self.ctx, self.faculty, self.hod)
        self.assertEqual(retry.action, recon.CREATE)
        self.assertFalse(retry.identity_created)
        self.assertEqual(retry.student.user, orphan)

    def test_profile_reference_is_stored_as_identity(self):
        result = recon.reconcile(student_row('S009'), self.ctx, f'profile:{self.profile.pk}', self.hod)
        self.assertEqual(result.enrollment.faculty, self.faculty)


class ReconcileManyTests(TestCase):
    def setUp(self):
        self.cse = make_department('CSE')
        self.hod = make_hod(self.cse)
        self.faculty, _ = make_faculty(self.cse)
        self.ctx = class_context(self.cse)

    def test_bad_row_is_reported_by_index(self):
        rows = [student_row(f'R{i}') for i in range(5)]
        rows[3]['email'] = 'broken-email'

        report = recon.reconcile_many(rows, self.ctx, self.faculty, self.hod)

        self.assertEqual(report['summary'], {'total': 5, 'created': 4, 'updated': 0, 'skipped': 0, 'failed': 1})
        self.assertEqual([f['index'] for f in report['failed']], [3])
        self.assertIn('email', report['failed'][0]['errors'])
        self.assertEqual([s['index'] for s in report['successful']], [0, 1, 2, 4])

    def test_every_row_is_accounted_for(self):
        recon.reconcile(student_row('R1'), self.ctx, self.faculty, self.hod)
        recon.reconcile(student_row('R2'), class_context(self.cse, section='B'), self.faculty, self.hod)
        rows = [student_row('R1'), student_row('R2'), student_row('R3'), student_row('R3')]

        report = recon.reconcile_many(rows, self.ctx, self.faculty, self.hod)

        summary = report['summary']
        self.assertEqual((summary['created'], summary['skipped'], summary['failed']), (1, 2, 1))
        self.assertEqual([s['index'] for s in report['skipped']], [0, 3])
        self.assertEqual(report['failed'][0]['index'], 1)
        self.assertEqual(report['failed'][0]['details']['existing_section'], 'B')
        indices = sorted(e['index'] for key in ('successful', 'skipped', 'failed') for e in report[key])
        self.assertEqual(indices, [0, 1, 2, 3])

    def test_unexpected_error_does_not_abort_batch(self):
        rows = [student_row('U1'), student_row('U2')]
        real = recon.reconcile

        def flaky(row, *args, **kwargs):
            if row['roll_number'] == 'U1':
                raise RuntimeError('boom')
            return real(row, *args, **kwargs)

        with mock.patch.object(recon, 'reconcile', side_effect=flaky):
            with self.assertLogs('academics.services.student_reconciliation', level='ERROR'):
                report = recon.reconcile_many(rows, self.ctx, self.faculty, self.hod)

        self.assertEqual(report['summary']['failed'], 1)
        self.assertEqual(report['summary']['created'], 1)


class RosterQueryTests(TestCase):
    def setUp(self):
        self.cse = make_department('CSE')
        self.hod = make_hod(self.cse)
        self.faculty, _ = make_faculty(self.cse)
        self.other, _ = make_faculty(self.cse)
        self.sem3 = class_context(self.cse)
        self.sem4 = class_context(self.cse, semester_name='Sem 4')

    def test_enrollments_for_faculty_projects_matching_enrollment(self):
        b = recon.reconcile(student_row('B002'), self.sem3, self.faculty).student
        a = recon.reconcile(student_row('A001'), self.sem3, self.faculty).student
        recon.reconcile(student_row('A001'), self.sem4, self.faculty)
        recon.reconcile(student_row('C003'), self.sem3, self.other)

        results = recon.enrollments_for_faculty(self.faculty, self.sem3)

        self.assertEqual([r.student.pk for r in results], [a.pk, b.pk])
        self.assertTrue(all(r.enrollment.semester_name == 'Sem 3' for r in results))
        self.assertTrue(all(r.enrollment.faculty_id == self.faculty.pk for r in results))

    def test_archived_students_are_left_out(self):
        student = recon.reconcile(student_row('D004'), self.sem3, self.faculty).student
        recon.archive_student(student.pk, self.hod)
        self.assertEqual(recon.enrollments_for_faculty(self.faculty, self.sem3), [])

    def test_academic_history_is_ordered_by_year_and_semester(self):
        first_year = lambda sem: class_context(self.cse, semester_name=sem, year='1st Year')
        row = student_row('H001')
        student = recon.reconcile(row, self.sem4, self.faculty).student
        recon.reconcile(row, first_year('Sem 2'), self.faculty)
        recon.reconcile(row, self.sem3, self.faculty)
        recon.reconcile(row, first_year('Sem 1'), self.faculty)

        history = recon.academic_history(student.pk)

        self.assertEqual(
            [(e.year, e.semester_name) for e in history.enrollments],
            [('1st Year', 'Sem 1'), ('1st Year', 'Sem 2'), ('2nd Year', 'Sem 3'), ('2nd Year', 'Sem 4')],
        )

    def test_academic_history_of_missing_student(self):
        with self.assertRaises(NotFound):
            recon.academic_history(31337)

    def test_archive_keeps_history(self):
        row = student_row('E005')
        student = recon.reconcile(row, self.sem3, self.faculty).student
        recon.reconcile(row, self.sem4, self.faculty)

        archived = recon.archive_student(student.pk, self.hod, status='alumni')

        self.assertEqual(archived.status, 'alumni')
        self.assertEqual(set(archived.semesters.values_list('status', flat=True)), {'archived'})
        self.assertEqual(archived.semesters.count(), 2)
        archived.user.refresh_from_db()
        self.assertFalse(archived.user.is_active)

    def test_archive_rejects_unknown_status(self):
        student = recon.reconcile(student_row('F006'), self.sem3, self.faculty).student
        with self.assertRaises(ValidationError):
            recon.archive_student(student.pk, self.hod, status='expelled')

    def test_cohort_is_immutable(self):
        student = recon.reconcile(student_row('G007'), self.sem3, self.faculty).student
        student.section = 'B'
        with self.assertRaises(ValidationError):
            student.save()

    def test_archive_enrollment_touches_only_that_enrollment(self):
        row = student_row('J010')
        student = recon.reconcile(row, self.sem3, self.faculty).student
        recon.reconcile(row, self.sem4, self.faculty)
        sem3_id = '2023-2027|2nd Year|Sem 3|A'

        archived = recon.archive_enrollment(student.pk, sem3_id, self.faculty, self.hod)

        self.assertEqual(archived.status, 'archived')
        statuses = dict(student.semesters.values_list('semester_name', 'status'))
        self.assertEqual(statuses, {'Sem 3': 'archived', 'Sem 4': 'active'})
        student.refresh_from_db()
        self.assertEqual(student.status, 'active')
        self.assertEqual(recon.enrollments_for_faculty(self.faculty, self.sem3), [])
        self.assertEqual(len(recon.academic_history(student.pk).enrollments), 2)

        with self.assertRaises(InvalidState):
            recon.archive_enrollment(student.pk, sem3_id, self.faculty, self.hod)

    def test_archive_enrollment_needs_matching_faculty_and_class(self):
        student = recon.reconcile(student_row('K011'), self.sem3, self.faculty).student
        sem3_id = '2023-2027|2nd Year|Sem 3|A'
        with self.assertRaises(NotFound):
            recon.archive_enrollment(student.pk, sem3_id, self.other, self.hod)
        with self.assertRaises(NotFound):
            recon.archive_enrollment(student.pk, '2023-2027|2nd Year|Sem 5|A', self.faculty, self.hod)
        with self.assertRaises(NotFound):
            recon.archive_enrollment(424242, sem3_id, self.faculty, self.hod)
