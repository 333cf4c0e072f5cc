from django.core.management.base import BaseCommand, CommandError

from finance_core.models import JournalEntry
from finance_core.services.ledger import find_ledger_inconsistencies


class Command(BaseCommand):
    help = "Check that every journal entry is balanced and its totals match its lines."

    def add_arguments(self, parser):
        parser.add_argument(
            "--fail", action="store_true",
            help="Exit with an error when problems are found (for CI / cron).")

    def handle(self, *args, **options):
        self.stdout.write(f"Validating {JournalEntry.objects.count()} journal entries...")
        problems = find_ledger_inconsistencies()

        for problem in problems:
            details = ", ".join(f"{k}={v}" for k, v in problem.items() if k not in ("entry", "problem"))
            self.stdout.write(self.style.ERROR(
                f"Entry {problem['entry']}: {problem['problem']} {details}".rstrip()))

        if not problems:
            self.stdout.write(self.style.SUCCESS("All journal entries are balanced!"))
            return
        message = f"Found {len(problems)} ledger problem(s)"
        if options["fail"]:
            raise CommandError(message)
        self.stdout.write(self.style.WARNING(message))
