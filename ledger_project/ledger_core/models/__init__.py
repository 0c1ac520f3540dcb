from .auditlog import AuditLog
from .bill import Bill
from .firm import BankAccount, Firm, Party
from .ledger import AccountType, LedgerEntry
from .sequence import SequenceCounter, VoucherIdCounter
from .stock import StockBatch, StockItem, StockMovement
