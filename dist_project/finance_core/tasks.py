import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task  # register this function as a Celery task
def run_auto_match_task():
    # import services lazily to avoid circular imports at module import time
    from .services.reconciliation import run_auto_match

    counts = run_auto_match()
    logger.info("Scheduled auto-match finished: %s", counts)
    return counts


@shared_task
def verify_ledger_balance_task():
    """Nightly check that every journal entry is balanced and in sync with its lines."""
    from .models import JournalEntry
    from .services.ledger import find_ledger_inconsistencies

    problems = find_ledger_inconsistencies()
    if problems:
        logger.error("Ledger check found %s problem(s): %s", len(problems), problems)
    else:
        logger.info("Ledger check passed")
    return {"checked": JournalEntry.objects.count(), "problems": problems}


@shared_task(ignore_result=True)
def deliver_notification(user_id, kind, payload):
    """
    Default notifier. Delivery channels (email, push) belong to the
    surrounding application; point FINANCE_CORE["NOTIFIER"] at them.
    """
    from django.contrib.auth import get_user_model

    user = get_user_model().objects.filter(pk=user_id).first()
    if user is None:
        logger.warning("Notification %s for unknown user %s dropped", kind, user_id)
        return
    logger.info("Notify %s about %s: %s", user, kind, payload)
