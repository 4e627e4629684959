"""
Collapse duplicate active class assignments and rebuild faculty summaries.
Usage: python manage.py repair_class_assignments [--dry-run]
"""
from django.core.management.base import BaseCommand

from academics.services.assignment_ledger import repair_assignments


class Command(BaseCommand):
    help = 'Keep the newest active assignment per class and per faculty, then rebuild faculty profile summaries'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report what would change without writing',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        report = repair_assignments(dry_run=dry_run)

        prefix = '[dry run] ' if dry_run else ''
        if not report.fixed_groups:
            self.stdout.write(self.style.SUCCESS(f'{prefix}No duplicate active assignments found.'))
        for group in report.fixed_groups:
            self.stdout.write(self.style.WARNING(
                f"{prefix}{group['group']} {'|'.join(group['key'])}: kept {group['kept']}, deactivated {group['deactivated']}"
            ))
        self.stdout.write(f'{prefix}Profiles updated: {report.profiles_updated}')
