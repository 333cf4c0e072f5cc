"""
Bank reconciliation: pair imported bank statement lines with recorded
cash movements.

Debit lines (money out) are compared with bank-channel outflows, credit
lines (money in) with bank-channel inflows. A line that already points at
a record is never a candidate again, and a cash movement can be claimed by
one line only; the claim is re-checked under a row lock at write time.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, models, transaction
from django.utils import timezone
from django.utils.dateparse import parse_date

from ..collaborators import ensure_writable, resolve_actor, store_document
from ..conf import finance_setting
from ..exceptions import ConcurrencyConflict, ConsistencyError, NotFoundError
from ..models import (BankAccount, BankStatementLine, BankStatementUpload,
                      CashMovement, JournalEntry)
from .audit_helper import log_action

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
PENDING_STATUSES = {"suggested", "needs_review"}


@dataclass
class MatchPolicy:
    """
    Scoring rules for automatic matching.

    Score = amount tier points + date tier points + bank account bonus.
    A score at or above ``matched_threshold`` is matched outright, at or
    above ``review_threshold`` it is parked with ``review_status``.
    """

    amount_tolerance: Decimal
    date_window_days: int
    amount_tiers: list
    amount_fallback_points: int
    date_tiers: list
    date_fallback_points: int
    bank_account_bonus: int
    matched_threshold: int
    review_threshold: int
    review_status: str = "needs_review"

    def __post_init__(self):
        if self.review_status not in PENDING_STATUSES:
            raise ValueError(f"review_status must be one of {sorted(PENDING_STATUSES)}")
        if self.review_threshold > self.matched_threshold:
            raise ValueError("review_threshold cannot be above matched_threshold")
        self.amount_tolerance = Decimal(str(self.amount_tolerance))
        self.date_window_days = int(self.date_window_days)
        self.amount_tiers = [(Decimal(str(limit)), points) for limit, points in self.amount_tiers]
        self.date_tiers = list(self.date_tiers)

    @classmethod
    def from_settings(cls, **overrides):
        values = finance_setting("MATCH_POLICY")
        values.update(overrides)
        return cls(**values)

    def amount_points(self, difference):
        # first band that fits wins
        for limit, points in self.amount_tiers:
            if difference <= limit:
                return points
        return self.amount_fallback_points

    def date_points(self, days_apart):
        for limit, points in self.date_tiers:
            if days_apart <= limit:
                return points
        return self.date_fallback_points

    def status_for(self, score):
        if score >= self.matched_threshold:
            return "matched"
        if score >= self.review_threshold:
            return self.review_status
        return None


# ----------------------------
# Statement import
# ----------------------------
def _line_amounts(row):
    """Separate debit/credit columns, or one signed ``amount`` (negative = money out)."""
    if "amount" in row:
        amount = Decimal(str(row["amount"]))
        return (-amount, ZERO) if amount < 0 else (ZERO, amount)
    return (Decimal(str(row.get("debit_amount") or 0)),
            Decimal(str(row.get("credit_amount") or 0)))


def import_bank_statement(bank_account_id, lines, document=None, filename=None, user=None):
    """
    Store a parsed statement: one upload plus its lines, all or nothing.

    A line already on file for the same bank account (same date, amounts
    and description) is skipped and counted in ``upload.skipped_duplicates``,
    so importing an overlapping statement twice does not create twin lines.
    """
    ensure_writable()
    if not lines:
        raise ValidationError("A bank statement needs at least one line.")
    user = resolve_actor(user)
    try:
        bank_account = BankAccount.objects.get(pk=bank_account_id)
    except BankAccount.DoesNotExist:
        raise NotFoundError(f"Bank account {bank_account_id} does not exist.")

    parsed = []
    for row in lines:
        debit, credit = _line_amounts(row)
        tx_date = row["transaction_date"]
        if isinstance(tx_date, str):
            tx_date = parse_date(tx_date)
        line = BankStatementLine(
            bank_account=bank_account,
            transaction_date=tx_date,
            description=row.get("description"),
            reference=row.get("reference"),
            debit_amount=debit,
            credit_amount=credit,
        )
        line.full_clean(exclude=["upload", "transaction_hash"])
        line.transaction_hash = line.compute_transaction_hash()
        parsed.append(line)

    with transaction.atomic():
        on_file = set(
            BankStatementLine.objects.filter(
                transaction_hash__in=[line.transaction_hash for line in parsed])
            .values_list("transaction_hash", flat=True)
        )
        rows = []
        for line in parsed:
            if line.transaction_hash in on_file:
                continue
            on_file.add(line.transaction_hash)
            rows.append(line)

        upload = BankStatementUpload.objects.create(
            bank_account=bank_account,
            file_url=store_document(document, filename) if document is not None else None,
            period_start=min(line.transaction_date for line in parsed),
            period_end=max(line.transaction_date for line in parsed),
            skipped_duplicates=len(parsed) - len(rows),
            uploaded_by=user if user is not None and user.pk else None,
        )
        for line in rows:
            line.upload = upload
        try:
            with transaction.atomic():
                BankStatementLine.objects.bulk_create(rows)
        except IntegrityError as exc:
            raise ConcurrencyConflict(
                f"Statement lines for {bank_account} were imported concurrently.") from exc

    if upload.skipped_duplicates:
        logger.warning("Skipped %s duplicate statement line(s) for %s",
                       upload.skipped_duplicates, bank_account)
    logger.info("Imported %s statement lines for %s", len(rows), bank_account)
    return upload


# ----------------------------
# Scoring
# ----------------------------
def score_candidate(line, movement, policy=None):
    policy = policy or MatchPolicy.from_settings()
    difference = abs(line.amount - movement.amount)
    days_apart = abs((line.transaction_date - movement.movement_date).days)
    score = policy.amount_points(difference) + policy.date_points(days_apart)
    if line.bank_account_id and line.bank_account_id == movement.bank_account_id:
        score += policy.bank_account_bonus
    return score


def find_candidates(line, policy=None, include_claimed=False):
    """Cash movements that could be the bank's record of ``line``."""
    policy = policy or MatchPolicy.from_settings()
    window = timedelta(days=policy.date_window_days)
    candidates = CashMovement.objects.bank_channel().filter(
        amount__gte=line.amount - policy.amount_tolerance,
        amount__lte=line.amount + policy.amount_tolerance,
        movement_date__gte=line.transaction_date - window,
        movement_date__lte=line.transaction_date + window,
    )
    candidates = candidates.outflows() if line.is_outflow else candidates.inflows()
    if line.bank_account_id:
        candidates = candidates.filter(
            models.Q(bank_account_id=line.bank_account_id) | models.Q(bank_account__isnull=True))
    if not include_claimed:
        candidates = candidates.unclaimed()
    return candidates


def _best_candidate(line, candidates, policy):
    # highest score, then closest date, then oldest record
    scored = [
        (score_candidate(line, movement, policy),
         abs((line.transaction_date - movement.movement_date).days),
         movement.pk, movement)
        for movement in candidates
    ]
    scored.sort(key=lambda row: (-row[0], row[1], row[2]))
    score, _, _, movement = scored[0]
    return score, movement


# ----------------------------
# Claiming
# ----------------------------
def _lock_line(line_id):
    try:
        return BankStatementLine.objects.select_for_update().get(pk=line_id)
    except BankStatementLine.DoesNotExist:
        raise NotFoundError(f"Bank statement line {line_id} does not exist.")


def _lock_unclaimed_movement(movement_id):
    """Lock the cash movement row and make sure no line holds it yet."""
    try:
        movement = CashMovement.objects.select_for_update().get(pk=movement_id)
    except CashMovement.DoesNotExist:
        raise NotFoundError(f"Cash movement {movement_id} does not exist.")
    if BankStatementLine.objects.filter(matched_cash_movement=movement).exists():
        raise ConcurrencyConflict(
            f"{movement.voucher_number} is already claimed by another bank line.")
    return movement


def _claim(line, status, movement=None, journal_entry=None, score=None, user=None):
    """Point an unmatched line at its target; loses cleanly to a concurrent claim."""
    confirmed = status == "matched"
    try:
        with transaction.atomic():
            updated = BankStatementLine.objects.unmatched().filter(pk=line.pk).update(
                reconciliation_status=status,
                matched_cash_movement=movement,
                matched_journal_entry=journal_entry,
                match_score=score,
                matched_at=timezone.now() if confirmed else None,
                matched_by=user if confirmed and user is not None and user.pk else None,
            )
    except IntegrityError as exc:
        raise ConcurrencyConflict(f"Bank line {line.pk} could not be claimed: {exc}") from exc
    if not updated:
        raise ConcurrencyConflict(f"Bank line {line.pk} was matched by someone else.")
    line.refresh_from_db()
    return line


def _release(line):
    BankStatementLine.objects.filter(pk=line.pk).update(
        reconciliation_status="unmatched",
        matched_cash_movement=None,
        matched_journal_entry=None,
        match_score=None,
        matched_at=None,
        matched_by=None,
    )
    line.refresh_from_db()
    return line


# ----------------------------
# Auto match
# ----------------------------
def _auto_match_line(line_id, policy, user):
    """Returns "matched", "suggested", "skipped" or None (nothing to do)."""
    line = _lock_line(line_id)
    if line.has_match_target or line.reconciliation_status != "unmatched":
        return None

    candidates = list(find_candidates(line, policy))
    if not candidates:
        # someone else already holds the only plausible record
        if find_candidates(line, policy, include_claimed=True).exists():
            return "skipped"
        return None

    score, movement = _best_candidate(line, candidates, policy)
    status = policy.status_for(score)
    if status is None:
        return None

    movement = _lock_unclaimed_movement(movement.pk)
    _claim(line, status, movement=movement, score=score, user=user)
    return "matched" if status == "matched" else "suggested"


def run_auto_match(policy=None, user=None):
    """
    Try every unmatched bank line once.

    Each line is handled in its own savepoint: a failure on one line is
    logged and counted as skipped, the rest of the batch carries on.
    Running it again without new data matches and suggests nothing.
    """
    ensure_writable()
    policy = policy or MatchPolicy.from_settings()
    user = resolve_actor(user)
    counts = {"matched_count": 0, "suggested_count": 0, "skipped_count": 0}

    line_ids = list(
        BankStatementLine.objects.unmatched()
        .order_by("transaction_date", "id").values_list("id", flat=True)
    )
    for line_id in line_ids:
        try:
            with transaction.atomic():
                outcome = _auto_match_line(line_id, policy, user)
        except (ConcurrencyConflict, ConsistencyError, NotFoundError,
                ValidationError, DatabaseError) as exc:
            logger.warning("Auto-match skipped bank line %s: %s", line_id, exc)
            counts["skipped_count"] += 1
            continue
        if outcome is not None:
            counts[f"{outcome}_count"] += 1

    logger.info("Auto-match over %s line(s): %s", len(line_ids), counts)
    return counts


# ----------------------------
# Manual review
# ----------------------------
def confirm_match(line_id, user=None):
    """Accept a suggested / needs-review pairing."""
    ensure_writable()
    user = resolve_actor(user)
    with transaction.atomic():
        line = _lock_line(line_id)
        if line.reconciliation_status not in PENDING_STATUSES or not line.has_match_target:
            raise ValidationError(f"Bank line {line.pk} has no pending match to confirm.")
        BankStatementLine.objects.filter(pk=line.pk).update(
            reconciliation_status="matched",
            matched_at=timezone.now(),
            matched_by=user if user is not None and user.pk else None,
        )
        line.refresh_from_db()
        log_action(action="confirm_match", instance=line, user=user,
                   changes={"cash_movement": line.matched_cash_movement_id,
                            "score": line.match_score})
    return line


def reject_match(line_id, user=None):
    """Drop a suggested / needs-review pairing; the line is unmatched again."""
    ensure_writable()
    user = resolve_actor(user)
    with transaction.atomic():
        line = _lock_line(line_id)
        if line.reconciliation_status not in PENDING_STATUSES:
            raise ValidationError(f"Bank line {line.pk} has no pending match to reject.")
        rejected = line.matched_cash_movement_id
        _release(line)
        log_action(action="reject_match", instance=line, user=user,
                   changes={"cash_movement": rejected})
    return line


def match_line_manually(line_id, cash_movement_id=None, journal_entry_id=None, user=None):
    """Pair a line with a cash movement or a journal entry chosen by hand."""
    ensure_writable()
    if bool(cash_movement_id) == bool(journal_entry_id):
        raise ValidationError("Match a bank line to exactly one cash movement or journal entry.")
    user = resolve_actor(user)
    with transaction.atomic():
        line = _lock_line(line_id)
        if line.has_match_target:
            raise ConcurrencyConflict(f"Bank line {line.pk} is already matched.")
        movement = entry = None
        if cash_movement_id:
            movement = _lock_unclaimed_movement(cash_movement_id)
        else:
            try:
                entry = JournalEntry.objects.get(pk=journal_entry_id)
            except JournalEntry.DoesNotExist:
                raise NotFoundError(f"Journal entry {journal_entry_id} does not exist.")
        _claim(line, "matched", movement=movement, journal_entry=entry, user=user)
        log_action(action="match", instance=line, user=user,
                   changes={"cash_movement": cash_movement_id,
                            "journal_entry": journal_entry_id})
    return line


def unmatch_line(line_id, user=None):
    ensure_writable()
    user = resolve_actor(user)
    with transaction.atomic():
        line = _lock_line(line_id)
        if not line.has_match_target:
            raise ValidationError(f"Bank line {line.pk} is not matched.")
        before = {"status": line.reconciliation_status,
                  "cash_movement": line.matched_cash_movement_id,
                  "journal_entry": line.matched_journal_entry_id}
        _release(line)
        log_action(action="unmatch", instance=line, user=user, changes=before)
    return line
