from django.conf import settings  # To access global project settings
from django.db import models


# ---------- Audit / Event log ----------
class AuditLog(models.Model):
    """Trail of corrective and administrative actions (voids, restores, moves)."""

    # Nullable in case the action was automated (Celery task, import script)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL
    )
    # e.g. void, restore, move, match, unmatch
    action = models.CharField(max_length=50)
    # e.g. "JournalEntry", "StockReservation"
    object_type = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    # before/after details
    changes = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["object_type", "object_id"], name="audit_object_idx"),
            models.Index(fields=["created_at"], name="audit_created_idx"),
        ]

    def __str__(self):
        return f"{self.created_at:%Y-%m-%d %H:%M} {self.user} {self.action} {self.object_type}#{self.object_id}"
