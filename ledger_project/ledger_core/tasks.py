import logging

from celery import shared_task
from django.contrib.auth import get_user_model

logger = logging.getLogger(__name__)


@shared_task  # register this function as a Celery task
def bulk_cancel_bills_task(firm_id, bill_ids, user_id=None, reason=""):
    # import lazily to avoid circular imports at module import time
    from .models import Firm
    from .services.billing import bulk_cancel_bills

    firm = Firm.objects.get(pk=firm_id)
    user = get_user_model().objects.filter(pk=user_id).first() if user_id else None
    result = bulk_cancel_bills(firm, bill_ids, reason=reason, user=user)
    if result["failed"]:
        logger.warning("Bulk cancel for firm=%s: %s of %s bills failed",
                       firm_id, len(result["failed"]), len(bill_ids))
    # plain ids and strings only, so the json result backend can store it
    return result


@shared_task
def reconcile_stock_aggregates_task(firm_id):
    from .models import Firm
    from .services.stock import reconcile_stock_aggregates

    firm = Firm.objects.get(pk=firm_id)
    return reconcile_stock_aggregates(firm)
