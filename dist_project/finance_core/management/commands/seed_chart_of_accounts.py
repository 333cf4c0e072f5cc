from django.core.management.base import BaseCommand

from finance_core.services.chart import DEFAULT_CHART, seed_chart_of_accounts


class Command(BaseCommand):
    help = "Create the default chart of accounts (existing codes are left alone)."

    def handle(self, *args, **options):
        created = seed_chart_of_accounts()
        self.stdout.write(self.style.SUCCESS(
            f"Chart of accounts ready: {created} created, "
            f"{len(DEFAULT_CHART) - created} already present."))
