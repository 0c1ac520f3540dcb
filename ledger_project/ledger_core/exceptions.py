class LedgerRuleError(Exception):
    """Base class for business-rule violations raised by the ledger core."""
    pass


class UnbalancedJournalError(LedgerRuleError):
    """Raised when a group of ledger lines fails the double-entry balance check."""
    pass


class InsufficientStockError(LedgerRuleError):
    """Raised when a batch holds less than the quantity requested from it."""

    def __init__(self, message, *, stock=None, batch_label=None, available=None, requested=None):
        super().__init__(message)
        self.stock = stock
        self.batch_label = batch_label
        self.available = available
        self.requested = requested


class BatchNotFoundError(LedgerRuleError):
    """Raised when a cart line names a batch the stock item does not have."""
    pass


class ImmutableNumberError(LedgerRuleError):
    """Raised when an update tries to change an issued bill or voucher number."""
    pass


class BillCancelledError(LedgerRuleError):
    """Raised when a cancelled bill is cancelled again or edited."""
    pass


class GroupRetiredError(LedgerRuleError):
    """Raised when a voucher or journal that was already reversed is touched again."""
    pass


class SequenceGenerationError(Exception):
    """Raised when the counter increment fails; the whole posting must abort."""
    pass
