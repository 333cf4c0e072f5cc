from ..collaborators import resolve_actor
from ..models import AuditLog


def log_action(
    *,
    action: str,
    instance,
    user=None,
    changes: dict | None = None,
):
    """
    Central audit logger.
    Safe to call multiple times (caller ensures idempotency).
    Falls back to the current actor when no user is passed.
    """

    user = resolve_actor(user)
    return AuditLog.objects.create(
        user=user if user is not None and user.pk else None,
        action=action,
        object_type=instance.__class__.__name__,
        object_id=str(instance.pk),
        changes=changes,
    )
