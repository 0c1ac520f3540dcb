from typing import Optional
from ..models import AuditLog, Firm


def log_action(
    *,
    action: str,
    instance=None,
    user=None,
    firm: Optional[Firm] = None,
    object_type: str | None = None,
    object_id=None,
    changes: dict | None = None,
):
    """
    Central audit logger.
    Vouchers and journals have no row of their own, so callers pass
    object_type/object_id instead of an instance.
    """

    if not firm:
        firm = getattr(instance, "firm", None)

    AuditLog.objects.create(
        firm=firm,
        user=user,
        action=action,
        object_type=object_type or instance.__class__.__name__,
        object_id=str(object_id if object_id is not None else instance.pk),
        changes=changes,
    )
