from django.core.exceptions import ObjectDoesNotExist, PermissionDenied, ValidationError
from django.db.models import ProtectedError

from ..exceptions import LedgerRuleError

# failures that belong to one item and must not stop the batch
ITEM_ERRORS = (LedgerRuleError, ValidationError, PermissionDenied, ObjectDoesNotExist, ProtectedError)


def error_message(exc):
    if isinstance(exc, ValidationError):
        return "; ".join(exc.messages)
    return str(exc)


def collect_each(ids, func):
    """
    Run func(id) for every id, each in its own transaction (func is expected
    to be atomic), and return {"succeeded": [...], "failed": [{"id", "error"}]}.
    """
    result = {"succeeded": [], "failed": []}
    for item_id in ids:
        try:
            func(item_id)
        except ITEM_ERRORS as exc:
            result["failed"].append({"id": item_id, "error": error_message(exc)})
        else:
            result["succeeded"].append(item_id)
    return result
