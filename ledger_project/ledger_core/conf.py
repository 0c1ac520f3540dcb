from decimal import Decimal

from django.conf import settings

# Fallbacks for keys missing from settings.LEDGER_CORE
DEFAULTS = {
    "CANCELLATION_POSTING": "reverse",
    "BALANCE_TOLERANCE": "0.01",
    "DEFAULT_UOM": "PCS",
    "SUGGESTION_LIMIT": 20,
}

CANCELLATION_MODES = ("reverse", "delete")


def get_setting(name):
    overrides = getattr(settings, "LEDGER_CORE", None) or {}
    return overrides.get(name, DEFAULTS[name])


def cancellation_mode():
    mode = str(get_setting("CANCELLATION_POSTING")).lower()
    if mode not in CANCELLATION_MODES:
        raise ValueError(
            f"LEDGER_CORE['CANCELLATION_POSTING'] must be one of {CANCELLATION_MODES}, got {mode!r}"
        )
    return mode


def balance_tolerance() -> Decimal:
    return Decimal(str(get_setting("BALANCE_TOLERANCE")))
