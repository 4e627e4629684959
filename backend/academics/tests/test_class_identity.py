import io
from unittest import mock

from django.test import SimpleTestCase, TestCase
from openpyxl import Workbook

from academics.exceptions import NotFound
from academics.services import class_identity, roster_import
from academics.services.faculty_resolution import FacultyRef, resolve_faculty
from academics.tests.helpers import make_department, make_faculty, make_hod


class ClassIdentityTests(SimpleTestCase):
    def test_keys_and_display(self):
        self.assertEqual(class_identity.class_key('2023-2027', '2nd Year', 3, 'A'), '2023-2027|2nd Year|3|A')
        self.assertEqual(class_identity.class_id('2023-2027', '2nd Year', 'Sem 3', 'A'), '2023-2027|2nd Year|Sem 3|A')
        self.assertEqual(class_identity.class_display('2023-2027', '2nd Year', 3, 'A'), '2023-2027 | 2nd Year | Sem 3 | Sec A')
        self.assertEqual(
            class_identity.parse_class_id('2023-2027|2nd Year|Sem 3|A'),
            {'batch': '2023-2027', 'year': '2nd Year', 'semester_name': 'Sem 3', 'section': 'A'},
        )
        self.assertIsNone(class_identity.parse_class_id('2023-2027_2nd Year'))

    def test_normalizers(self):
        self.assertEqual(class_identity.normalize_batch('2022_2026'), '2022-2026')
        self.assertEqual(class_identity.normalize_batch('2024'), '2024-2028')
        self.assertEqual(class_identity.normalize_year('2'), '2nd Year')
        self.assertEqual(class_identity.normalize_year('3rd'), '3rd Year')
        self.assertEqual(class_identity.normalize_year('1ST  year'), '1st Year')
        self.assertEqual(class_identity.normalize_semester_name(5), 'Sem 5')
        self.assertEqual(class_identity.normalize_semester_name('semester 7'), 'Sem 7')
        self.assertEqual(class_identity.semester_number('Sem 8'), 8)
        self.assertIsNone(class_identity.semester_number('spring'))
        self.assertEqual(class_identity.normalize_section(' b '), 'B')

    def test_validate_class_fields(self):
        self.assertEqual(class_identity.validate_class_fields('2023-2027', '4th Year', '8', 'C'), {})
        errors = class_identity.validate_class_fields('23-27', '5th Year', 0, 'a')
        self.assertEqual(set(errors), {'batch', 'year', 'semester', 'section'})
        self.assertIn('semester', class_identity.validate_class_fields('2023-2027', '1st Year', '3.5', 'A'))

    def test_history_sort_key_puts_unknown_labels_last(self):
        keys = sorted([('2nd Year', 'Sem 3'), ('Lateral', 'Sem 1'), ('1st Year', 'Sem 2')],
                      key=lambda k: class_identity.history_sort_key(*k))
        self.assertEqual(keys[-1], ('Lateral', 'Sem 1'))
        self.assertEqual(keys[0], ('1st Year', 'Sem 2'))


class FacultyResolutionTests(TestCase):
    def setUp(self):
        self.cse = make_department('CSE')
        self.user, self.profile = make_faculty(self.cse)

    def test_parse_forms(self):
        self.assertEqual(FacultyRef.parse('12'), FacultyRef(FacultyRef.IDENTITY, 12))
        self.assertEqual(FacultyRef.parse('profile:7'), FacultyRef(FacultyRef.PROFILE, 7))
        self.assertEqual(FacultyRef.parse({'kind': 'Profile', 'id': '3'}), FacultyRef(FacultyRef.PROFILE, 3))

    def test_every_reference_kind_resolves_to_same_identity(self):
        for ref in (self.user, self.profile, self.user.pk, str(self.user.pk),
                    FacultyRef.profile(self.profile.pk), f'identity:{self.user.pk}'):
            with self.subTest(ref=ref):
                self.assertEqual(resolve_faculty(ref), (self.user, self.profile))

    def test_non_faculty_and_garbage_references(self):
        hod = make_hod(self.cse)
        for ref in (hod, 'profile:999', 'staff:1', 'abc', 555555):
            with self.subTest(ref=ref):
                with self.assertRaises(NotFound):
                    resolve_faculty(ref)


class RosterImportTests(SimpleTestCase):
    def test_csv_headers_are_matched_loosely(self):
        data = (
            'Roll No,Student Name,Email ID,Mobile Number,DOB\n'
            '21CS001,Asha Rao,asha@college.edu,9876543210,2004-05-01\n'
            ',,,,\n'
            '21CS002,Ravi Kumar,ravi@college.edu,,\n'
        ).encode('utf-8')

        rows = roster_import.read_csv(io.BytesIO(data))

        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0], {
            'roll_number': '21CS001', 'name': 'Asha Rao', 'email': 'asha@college.edu',
            'mobile': '9876543210', 'date_of_birth': '2004-05-01',
        })
        self.assertNotIn('date_of_birth', rows[1])

    def test_xlsx_numeric_cells_become_text(self):
        wb = Workbook()
        ws = wb.active
        ws.append(['RollNumber', 'Name', 'Email', 'Parent Contact'])
        ws.append([1001, 'Meena', 'meena@college.edu', 9123456789])
        buf = io.BytesIO()
        wb.save(buf)
        buf.seek(0)

        rows = roster_import.read_xlsx(buf)

        self.assertEqual(rows, [{
            'roll_number': '1001', 'name': 'Meena', 'email': 'meena@college.edu', 'parent_contact': '9123456789',
        }])

    def test_roster_over_row_limit_is_refused(self):
        data = 'Roll No,Name,Email\n' + ''.join(f'R{i},Name {i},r{i}@college.edu\n' for i in range(4))

        with mock.patch.object(roster_import, 'MAX_ROWS', 4):
            self.assertEqual(len(roster_import.read_csv(data.encode('utf-8'))), 4)
            with self.assertRaises(ValueError):
                roster_import.read_csv((data + 'R9,Extra Row,r9@college.edu\n').encode('utf-8'))
