"""
Bulk-reconcile a student roster into one class.
Usage: python manage.py import_students --file rows.xlsx --department CSE --batch-year 2023-2027 \
    --section A --semester 3 --year "2nd Year" --faculty 12 --created-by hod@college.edu
"""
from django.core.management.base import BaseCommand, CommandError

from accounts.models import User
from academics.exceptions import LedgerError
from academics.services import class_identity, roster_import, student_reconciliation
from academics.services.assignment_ledger import resolve_department
from academics.services.faculty_resolution import resolve_faculty


class Command(BaseCommand):
    help = 'Create or extend student records from a CSV/XLSX roster'

    def add_arguments(self, parser):
        parser.add_argument('--file', required=True, help='Path to a .csv or .xlsx roster')
        parser.add_argument('--department', required=True, help='Department code')
        parser.add_argument('--batch-year', required=True, help='Batch, e.g. 2023-2027')
        parser.add_argument('--section', required=True)
        parser.add_argument('--semester', required=True, help='Semester number or label, e.g. 3 or "Sem 3"')
        parser.add_argument('--year', required=True, help='Year label, e.g. "2nd Year" or 2')
        parser.add_argument('--faculty', required=True, help='Faculty reference: identity id or profile:<id>')
        parser.add_argument('--created-by', dest='created_by', help='Email of the acting identity')

    def handle(self, *args, **options):
        try:
            rows = roster_import.read_roster(options['file'])
        except (OSError, ValueError) as exc:
            raise CommandError(str(exc))

        created_by = None
        if options.get('created_by'):
            created_by = User.objects.get_by_email(options['created_by'])
            if created_by is None:
                raise CommandError(f"No identity with email {options['created_by']}")

        try:
            context = {
                'department': resolve_department(options['department']),
                'batch_year': class_identity.normalize_batch(options['batch_year']),
                'section': class_identity.normalize_section(options['section']),
                'semester_name': class_identity.normalize_semester_name(options['semester']),
                'year': class_identity.normalize_year(options['year']),
            }
            faculty, _profile = resolve_faculty(options['faculty'])
        except LedgerError as exc:
            raise CommandError(exc.message)

        self.stdout.write(f'Reconciling {len(rows)} row(s) into {class_identity.class_id(context["batch_year"], context["year"], context["semester_name"], context["section"])}')
        report = student_reconciliation.reconcile_many(rows, context, faculty, created_by)
        summary = report['summary']

        self.stdout.write(self.style.SUCCESS(
            f"total={summary['total']} created={summary['created']} updated={summary['updated']} "
            f"skipped={summary['skipped']} failed={summary['failed']}"
        ))
        for entry in report['skipped']:
            self.stdout.write(f"  skipped row {entry['index']}: {entry['message']}")
        for entry in report['failed']:
            detail = entry.get('errors') or entry.get('details') or ''
            self.stdout.write(self.style.WARNING(f"  failed row {entry['index']}: {entry['error']} {detail}"))
