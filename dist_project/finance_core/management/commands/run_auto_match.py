from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from finance_core.collaborators import acting_as
from finance_core.services.reconciliation import MatchPolicy, run_auto_match


class Command(BaseCommand):
    help = "Match unmatched bank statement lines against recorded cash movements."

    # Define command-line arguments
    def add_arguments(self, parser):
        parser.add_argument(
            "--username", help="Run as this user (stamped as matched_by).")
        parser.add_argument(
            "--matched-threshold", type=int,
            help="Override the score needed for an automatic match.")
        parser.add_argument(
            "--review-threshold", type=int,
            help="Override the score needed for a review suggestion.")

    def handle(self, *args, **options):
        overrides = {}
        if options["matched_threshold"] is not None:
            overrides["matched_threshold"] = options["matched_threshold"]
        if options["review_threshold"] is not None:
            overrides["review_threshold"] = options["review_threshold"]
        try:
            policy = MatchPolicy.from_settings(**overrides)
        except ValueError as e:
            raise CommandError(str(e))

        user = None
        if options["username"]:
            user = get_user_model().objects.filter(username=options["username"]).first()
            if user is None:
                raise CommandError(f"No user named {options['username']!r}.")

        with acting_as(user):
            counts = run_auto_match(policy=policy, user=user)

        self.stdout.write(self.style.SUCCESS(
            f"Matched {counts['matched_count']}, suggested {counts['suggested_count']}, "
            f"skipped {counts['skipped_count']}."))
