import datetime

from django.core.exceptions import ValidationError
from django.core.paginator import EmptyPage, Paginator
from django.utils import timezone
from django.utils.dateparse import parse_date


# ------------------------------------
# Input coercion shared by the services
# ------------------------------------
def as_date(value, field_name, *, required=True, default_today=False):
    """
    Accept a date, a datetime or an ISO "YYYY-MM-DD..." string.
    Missing values raise unless default_today or not required.
    """
    if value in (None, ""):
        if default_today:
            return timezone.localdate()
        if required:
            raise ValidationError(f"{field_name} is required")
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    parsed = parse_date(str(value)[:10])
    if parsed is None:
        raise ValidationError(f"{field_name} must be a date (YYYY-MM-DD), got {value!r}")
    return parsed


def as_flag(value):
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def paginate(rows, page=1, limit=10):
    """
    Slice an ordered queryset (or list) into one page.

    Returns {"rows", "total", "page", "limit", "total_pages"}; a page past
    the end comes back empty rather than raising.
    """
    try:
        page, limit = int(page), int(limit)
    except (TypeError, ValueError):
        raise ValidationError("Invalid pagination parameters")
    if page <= 0 or limit <= 0:
        raise ValidationError("Invalid pagination parameters")

    paginator = Paginator(rows, limit)
    try:
        current = list(paginator.page(page).object_list)
    except EmptyPage:
        current = []
    return {
        "rows": current,
        "total": paginator.count,
        "page": page,
        "limit": limit,
        "total_pages": paginator.num_pages if paginator.count else 0,
    }
