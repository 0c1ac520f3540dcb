from django.conf import settings  # To access global project settings
from django.db import models
from ..managers import TenantManager
from .firm import Firm


# ---------- Audit / Event log ----------
# Append-only record under the delete-and-recreate updates
class AuditLog(models.Model):
    firm = models.ForeignKey(
        Firm,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
    )
    # Nullable in case the action was automated (celery task, import script)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL
    )
    # create, update, cancel, delete, reverse
    action = models.CharField(max_length=50)
    # "Bill", "Voucher", "JournalEntry", "StockItem"
    object_type = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    # JSON-safe snapshot of what changed
    changes = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["firm", "user"], name="audit_firm_user_idx"),
            models.Index(fields=["firm", "created_at"], name="audit_firm_created_idx"),
        ]

    def __str__(self):
        return f"[{self.created_at:%Y-%m-%d %H:%M}] {self.user} {self.action} {self.object_type}({self.object_id})"
