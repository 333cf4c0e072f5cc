import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import IntegrityError, models, transaction
from django.db.models.functions import Coalesce
from django.utils import timezone

from ..collaborators import ensure_writable, resolve_actor
from ..conf import finance_setting
from ..exceptions import (AlreadyPostedDifferentPayload, ConsistencyError,
                          NotFoundError, UnbalancedJournalError)
from ..models import Account, Batch, Customer, JournalEntry, JournalLine, Supplier
from .audit_helper import log_action

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
MONEY = models.DecimalField(max_digits=18, decimal_places=2)

DIMENSIONS = {
    "customer": Customer,
    "supplier": Supplier,
    "batch": Batch,
}


# ----------------------------
# Line normalisation helpers
# ----------------------------
def _resolve_account(ref):
    """Accept an Account or its code."""
    if isinstance(ref, Account):
        return ref
    try:
        return Account.objects.get(code=str(ref))
    except Account.DoesNotExist:
        raise ValidationError(f"Unknown account {ref!r}.")


def _resolve_dimension(name, value):
    if value is None or isinstance(value, DIMENSIONS[name]):
        return value
    try:
        return DIMENSIONS[name].objects.get(pk=value)
    except DIMENSIONS[name].DoesNotExist:
        raise ValidationError(f"Unknown {name} {value!r} on journal line.")


def _split_amount(line):
    """Signed "amount" (positive = debit) or explicit debit/credit pair."""
    if "amount" in line:
        amount = Decimal(str(line["amount"])).quantize(CENT)
        if amount >= 0:
            return amount, ZERO
        return ZERO, -amount
    debit = Decimal(str(line.get("debit") or 0)).quantize(CENT)
    credit = Decimal(str(line.get("credit") or 0)).quantize(CENT)
    return debit, credit


def _normalize_lines(lines):
    """
    Turn caller line dicts into validated rows.
    Raises ValidationError before anything is written.
    """
    if not lines:
        raise ValidationError("A journal entry needs at least one line.")

    normalized = []
    for number, line in enumerate(lines, start=1):
        if "account" not in line:
            raise ValidationError(f"Line {number} has no account.")
        account = _resolve_account(line["account"])
        if not account.is_active:
            raise ValidationError(
                f"Account {account.code} is inactive and cannot be posted to.")
        debit, credit = _split_amount(line)
        if debit < 0 or credit < 0:
            raise ValidationError(f"Line {number}: debit and credit must be >= 0.")
        if debit > 0 and credit > 0:
            raise ValidationError(f"Line {number}: cannot carry both a debit and a credit.")
        if debit == 0 and credit == 0:
            raise ValidationError(f"Line {number}: amount must not be zero.")
        row = {
            "line_number": number,
            "account": account,
            "debit": debit,
            "credit": credit,
            "description": line.get("description"),
        }
        for name in DIMENSIONS:
            row[name] = _resolve_dimension(name, line.get(name))
        normalized.append(row)
    return normalized


def _check_balance(normalized):
    total_debit = sum((row["debit"] for row in normalized), ZERO)
    total_credit = sum((row["credit"] for row in normalized), ZERO)
    if abs(total_debit - total_credit) >= finance_setting("BALANCE_TOLERANCE"):
        raise UnbalancedJournalError(
            f"Journal is not balanced: debit {total_debit} != credit {total_credit}")
    return total_debit, total_credit


def _fingerprint(entry_date, normalized):
    return JournalEntry.build_fingerprint(
        entry_date,
        [(row["account"].pk, row["debit"], row["credit"]) for row in normalized],
    )


def _build_lines(entry, normalized, start=1):
    return [
        JournalLine(
            entry=entry,
            line_number=start + offset,
            account=row["account"],
            description=row["description"],
            debit=row["debit"],
            credit=row["credit"],
            customer=row["customer"],
            supplier=row["supplier"],
            batch=row["batch"],
        )
        for offset, row in enumerate(normalized)
    ]


def _get_entry_for_update(entry_id):
    try:
        return JournalEntry.objects.select_for_update().get(pk=entry_id)
    except JournalEntry.DoesNotExist:
        raise NotFoundError(f"Journal entry {entry_id} does not exist.")


def _get_line_for_update(line_id):
    try:
        return JournalLine.objects.select_for_update().get(pk=line_id)
    except JournalLine.DoesNotExist:
        raise NotFoundError(f"Journal line {line_id} does not exist.")


def _existing_for_fingerprint(source_module, reference_id, fingerprint):
    existing = (
        JournalEntry.objects.for_source(source_module, reference_id)
        .select_for_update().first()
    )
    if existing is None:
        return None
    if existing.posting_fingerprint == fingerprint:
        return existing
    raise AlreadyPostedDifferentPayload(
        f"{source_module} {reference_id} was already posted with different lines "
        f"(entry {existing.entry_number}).")


# ----------------------------
# Posting
# ----------------------------
def post_journal_entry(source_module, reference_id, entry_date, lines,
                       description=None, reference_number=None, user=None):
    """
    Create one balanced, posted journal entry with its lines.

    All-or-nothing: validation and balance are checked before any write and
    the insert runs in a single transaction. Posting the same source document
    again with identical lines returns the existing entry.
    """
    ensure_writable()
    normalized = _normalize_lines(lines)
    total_debit, total_credit = _check_balance(normalized)
    fingerprint = _fingerprint(entry_date, normalized)
    reference_id = str(reference_id) if reference_id is not None else None
    user = resolve_actor(user)

    with transaction.atomic():
        if reference_id is not None:
            existing = _existing_for_fingerprint(source_module, reference_id, fingerprint)
            if existing is not None:
                logger.info("Journal %s already posted for %s %s",
                            existing.entry_number, source_module, reference_id)
                return existing
        try:
            with transaction.atomic():
                entry = JournalEntry(
                    entry_date=entry_date,
                    source_module=source_module,
                    reference_id=reference_id,
                    reference_number=reference_number,
                    description=description,
                    total_debit=total_debit,
                    total_credit=total_credit,
                    is_posted=True,
                    posted_at=timezone.now(),
                    posting_fingerprint=fingerprint,
                    created_by=user,
                )
                entry.save()
                JournalLine.objects.bulk_create(_build_lines(entry, normalized))
                entry.entry_number = f"JE{entry_date:%y%m}-{entry.pk:06d}"
                JournalEntry.objects.filter(pk=entry.pk).update(
                    entry_number=entry.entry_number)
        except IntegrityError as exc:
            # Lost a race for the same source document, or a DB check fired
            if reference_id is not None:
                existing = _existing_for_fingerprint(source_module, reference_id, fingerprint)
                if existing is not None:
                    return existing
            raise ConsistencyError(f"Journal entry rejected by the database: {exc}") from exc

    logger.info("Posted journal %s (%s %s) for %s",
                entry.entry_number, source_module, reference_id, total_debit)
    return entry


# ----------------------------
# Totals recompute
# ----------------------------
def _line_sum(field):
    return Coalesce(
        models.Subquery(
            JournalLine.objects.filter(entry=models.OuterRef("pk"))
            .order_by()
            .values("entry")
            .annotate(total=models.Sum(field))
            .values("total")
        ),
        models.Value(ZERO),
        output_field=MONEY,
    )


def recompute_entry_totals(entry_id):
    """
    The only writer of JournalEntry.total_debit / total_credit.
    Sums are computed by the database from the current lines; an unbalanced
    result is refused by the entry's check constraint.
    """
    with transaction.atomic():
        try:
            with transaction.atomic():
                updated = JournalEntry.objects.filter(pk=entry_id).update(
                    total_debit=_line_sum("debit"),
                    total_credit=_line_sum("credit"),
                )
        except IntegrityError as exc:
            debit, credit = JournalEntry(pk=entry_id).compute_totals()
            raise UnbalancedJournalError(
                f"Journal {entry_id} would become unbalanced: "
                f"debit {debit} != credit {credit}") from exc
        if not updated:
            raise NotFoundError(f"Journal entry {entry_id} does not exist.")

        entry = JournalEntry.objects.get(pk=entry_id)
        fingerprint = entry.fingerprint()
        if fingerprint != entry.posting_fingerprint:
            JournalEntry.objects.filter(pk=entry_id).update(posting_fingerprint=fingerprint)
            entry.posting_fingerprint = fingerprint
    return entry


# ----------------------------
# Line amendments
# ----------------------------
def add_entry_line(entry_id, line, user=None):
    ensure_writable()
    normalized = _normalize_lines([line])
    with transaction.atomic():
        entry = _get_entry_for_update(entry_id)
        last = entry.lines.aggregate(n=models.Max("line_number"))["n"] or 0
        (new_line,) = JournalLine.objects.bulk_create(
            _build_lines(entry, normalized, start=last + 1))
        recompute_entry_totals(entry.pk)
        log_action(
            action="add_line", instance=entry, user=user,
            changes={"line": new_line.pk, "account": new_line.account.code,
                     "debit": str(new_line.debit), "credit": str(new_line.credit)},
        )
    return new_line


def update_entry_line(line_id, user=None, **changes):
    """Change amount/account/description of one line, then recompute totals."""
    ensure_writable()
    with transaction.atomic():
        line = _get_line_for_update(line_id)
        _get_entry_for_update(line.entry_id)
        before = {"account": line.account.code, "debit": str(line.debit),
                  "credit": str(line.credit)}
        if "account" in changes:
            line.account = _resolve_account(changes.pop("account"))
        if {"amount", "debit", "credit"} & set(changes):
            line.debit, line.credit = _split_amount(changes)
            for key in ("amount", "debit", "credit"):
                changes.pop(key, None)
        if "description" in changes:
            line.description = changes.pop("description")
        if changes:
            raise ValidationError(f"Unsupported line fields: {', '.join(sorted(changes))}")
        try:
            with transaction.atomic():
                line.save()
        except IntegrityError as exc:
            raise ConsistencyError(f"Journal line rejected by the database: {exc}") from exc
        entry = recompute_entry_totals(line.entry_id)
        log_action(
            action="update_line", instance=entry, user=user,
            changes={"line": line.pk, "before": before,
                     "after": {"account": line.account.code, "debit": str(line.debit),
                               "credit": str(line.credit)}},
        )
    return line


def remove_entry_line(line_id, user=None):
    ensure_writable()
    with transaction.atomic():
        line = _get_line_for_update(line_id)
        entry = _get_entry_for_update(line.entry_id)
        snapshot = {"line": line.pk, "account": line.account.code,
                    "debit": str(line.debit), "credit": str(line.credit)}
        JournalLine.objects.filter(pk=line.pk).delete()
        recompute_entry_totals(entry.pk)
        log_action(action="remove_line", instance=entry, user=user, changes=snapshot)


def replace_entry_lines(entry_id, lines, user=None):
    """Swap every line of an entry for a new balanced set."""
    ensure_writable()
    normalized = _normalize_lines(lines)
    _check_balance(normalized)
    with transaction.atomic():
        entry = _get_entry_for_update(entry_id)
        before = list(entry.lines.values("account__code", "debit", "credit"))
        JournalLine.objects.filter(entry=entry).delete()
        JournalLine.objects.bulk_create(_build_lines(entry, normalized))
        entry = recompute_entry_totals(entry.pk)
        log_action(
            action="replace_lines", instance=entry, user=user,
            changes={
                "before": [
                    {"account": r["account__code"], "debit": str(r["debit"]),
                     "credit": str(r["credit"])} for r in before
                ],
                "after_total": str(entry.total_debit),
            },
        )
    logger.info("Replaced lines of journal %s", entry.entry_number)
    return entry


# ----------------------------
# Void
# ----------------------------
def void_journal_entry(entry_id, user=None, reason=""):
    """
    Compensating operation: delete the lines, then the entry, in one transaction.
    Entries a bank line is reconciled against must be unmatched first.
    """
    ensure_writable()
    with transaction.atomic():
        entry = _get_entry_for_update(entry_id)
        if entry.matched_bank_lines.exists():
            raise ValidationError(
                "Journal entry is reconciled with a bank line; unmatch it first.")
        log_action(
            action="void", instance=entry, user=user,
            changes={
                "entry_number": entry.entry_number,
                "source_module": entry.source_module,
                "reference_id": entry.reference_id,
                "total": str(entry.total_debit),
                "reason": reason,
            },
        )
        JournalLine.objects.filter(entry_id=entry.pk).delete()
        JournalEntry.objects.filter(pk=entry.pk).delete()
    logger.info("Voided journal %s (%s)", entry.entry_number, reason or "no reason given")


# ----------------------------
# Queries
# ----------------------------
def account_balance(account, as_of=None):
    """Balance of an account over posted entries, signed by its normal balance."""
    account = _resolve_account(account)
    lines = JournalLine.objects.filter(account=account, entry__is_posted=True)
    if as_of is not None:
        lines = lines.filter(entry__entry_date__lte=as_of)
    agg = lines.aggregate(debit=models.Sum("debit"), credit=models.Sum("credit"))
    balance = (agg["debit"] or ZERO) - (agg["credit"] or ZERO)
    if account.normal_balance == "credit":
        balance = -balance
    return balance


def find_ledger_inconsistencies():
    """
    Entries whose stored totals are unbalanced or disagree with their lines.
    Returns a list of dicts; an empty list means the ledger is consistent.
    """
    tolerance = finance_setting("BALANCE_TOLERANCE")
    problems = []
    for entry in JournalEntry.objects.unbalanced(tolerance):
        problems.append({"entry": entry.entry_number or entry.pk,
                         "problem": "unbalanced", "difference": str(entry.difference)})

    drifted = (
        JournalEntry.objects
        .annotate(
            line_debit=Coalesce(models.Sum("lines__debit"), models.Value(ZERO), output_field=MONEY),
            line_credit=Coalesce(models.Sum("lines__credit"), models.Value(ZERO), output_field=MONEY),
        )
        .exclude(line_debit=models.F("total_debit"), line_credit=models.F("total_credit"))
    )
    for entry in drifted:
        problems.append({"entry": entry.entry_number or entry.pk,
                         "problem": "totals_out_of_sync",
                         "stored": [str(entry.total_debit), str(entry.total_credit)],
                         "lines": [str(entry.line_debit), str(entry.line_credit)]})

    for entry in JournalEntry.objects.posted().filter(lines__isnull=True):
        problems.append({"entry": entry.entry_number or entry.pk, "problem": "no_lines"})
    return problems
