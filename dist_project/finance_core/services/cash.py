import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from ..collaborators import ensure_writable, resolve_actor, store_document
from ..exceptions import ConcurrencyConflict, NotFoundError
from ..models import BankAccount, BankStatementLine, CashMovement
from .audit_helper import log_action
from .ledger import void_journal_entry
from .posting import post_cash_movement, repost_cash_movement

logger = logging.getLogger(__name__)

MOVE_DIRECTIONS = {
    # direction: (kind it must currently be, kind it becomes)
    "to_petty_cash": ("expense", "petty_cash"),
    "to_tracker": ("petty_cash", "expense"),
}

# Fields the bank statement was matched on
RECONCILED_FIELDS = {"amount", "movement_date", "bank_account", "bank_account_id", "channel"}


def _lock_movement(movement_id):
    try:
        return CashMovement.objects.select_for_update().get(pk=movement_id)
    except CashMovement.DoesNotExist:
        raise NotFoundError(f"Cash movement {movement_id} does not exist.")


def _is_reconciled(movement):
    return BankStatementLine.objects.filter(matched_cash_movement=movement).exists()


def record_cash_movement(user=None, document=None, filename=None, **fields):
    """
    Validate, store and post one cash movement.
    ``document`` (bytes) is handed to document storage and linked by URL.
    """
    ensure_writable()
    user = resolve_actor(user)
    with transaction.atomic():
        movement = CashMovement(**fields)
        if user is not None and user.pk:
            movement.created_by = user
        if document is not None:
            movement.attachment_url = store_document(document, filename)
        # save() runs full_clean(), so bad input is refused before any write
        movement.save()
        post_cash_movement(movement, user=user)

    logger.info("Recorded %s %s for %s", movement.kind, movement.voucher_number,
                movement.amount)
    return movement


def update_cash_movement(movement_id, user=None, **changes):
    """Edit a movement and re-post its journal entry."""
    ensure_writable()
    if "kind" in changes:
        raise ValidationError("Use move_cash_movement() to change where an expense is kept.")
    user = resolve_actor(user)
    with transaction.atomic():
        movement = _lock_movement(movement_id)
        if RECONCILED_FIELDS & set(changes) and _is_reconciled(movement):
            raise ValidationError(
                f"{movement.voucher_number} is reconciled with a bank line; unmatch it first.")
        for field, value in changes.items():
            setattr(movement, field, value)
        movement.save()
        repost_cash_movement(movement, user=user)
    return movement


def delete_cash_movement(movement_id, user=None):
    ensure_writable()
    user = resolve_actor(user)
    with transaction.atomic():
        movement = _lock_movement(movement_id)
        if _is_reconciled(movement):
            raise ValidationError(
                f"{movement.voucher_number} is reconciled with a bank line; unmatch it first.")
        if movement.allocations.exists():
            raise ValidationError(
                f"{movement.voucher_number} is allocated to invoices and cannot be deleted.")
        entry_id = movement.journal_entry_id
        voucher = movement.voucher_number
        if entry_id:
            CashMovement.objects.filter(pk=movement.pk).update(journal_entry=None)
            void_journal_entry(entry_id, user=user, reason=f"delete {voucher}")
        # post_delete re-runs the container rollup where needed
        movement.delete()
    logger.info("Deleted cash movement %s", voucher)


def move_cash_movement(movement_id, direction, bank_account_id=None, user=None):
    """
    Move an expense between the expense tracker and petty cash.

    The movement keeps its id; its kind, channel and voucher prefix change
    and its journal entry is re-posted against the new money account.
    Moving to the tracker with ``bank_account_id`` makes it a bank expense,
    without one it stays a cash expense. Returns the movement id.
    """
    ensure_writable()
    if direction not in MOVE_DIRECTIONS:
        raise ValidationError(f"Unknown move direction {direction!r}.")
    source_kind, target_kind = MOVE_DIRECTIONS[direction]
    user = resolve_actor(user)

    with transaction.atomic():
        movement = _lock_movement(movement_id)
        if movement.kind == target_kind:
            raise ConcurrencyConflict(
                f"{movement.voucher_number} has already been moved ({direction}).")
        if movement.kind != source_kind:
            raise ValidationError(f"A {movement.kind} movement cannot be moved {direction}.")
        if _is_reconciled(movement):
            raise ValidationError(
                f"{movement.voucher_number} is reconciled with a bank line and cannot be moved.")

        old_voucher = movement.voucher_number
        movement.kind = target_kind
        if target_kind == "petty_cash":
            movement.channel = "cash"
            movement.bank_account = None
        elif bank_account_id is not None:
            try:
                movement.bank_account = BankAccount.objects.get(pk=bank_account_id)
            except BankAccount.DoesNotExist:
                raise NotFoundError(f"Bank account {bank_account_id} does not exist.")
            movement.channel = "bank"
        else:
            movement.channel = "cash"
        movement.voucher_number = movement.build_voucher_number()
        movement.save()
        repost_cash_movement(movement, user=user)

        log_action(
            action="move", instance=movement, user=user,
            changes={"direction": direction, "from": source_kind, "to": target_kind,
                     "old_voucher": old_voucher, "new_voucher": movement.voucher_number},
        )

    logger.info("Moved %s -> %s (%s)", old_voucher, movement.voucher_number, direction)
    return movement.pk
