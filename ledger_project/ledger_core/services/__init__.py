from .billing import (bulk_cancel_bills, cancel_bill, create_bill, get_bill,
                      list_bills, update_bill)
from .journal import (create_journal_entry, delete_journal_entry,
                      get_journal_entry, journal_summary,
                      list_journal_entries, update_journal_entry)
from .reports import (get_account_balance, get_account_statement,
                      get_account_suggestions, get_account_type_summaries,
                      get_ledger_accounts, get_party_balance,
                      get_party_item_history, get_trial_balance)
from .sequence import (allocate_group, financial_year, next_number,
                       preview_number)
from .stock import (bulk_delete_stock, consume_stock, create_or_merge_stock,
                    delete_stock, get_stock_batches, list_stock_movements,
                    reconcile_stock_aggregates, record_stock_movement,
                    restore_movement, stock_movements_for, update_stock)
from .totals import compute_totals
from .vouchers import (create_voucher, delete_voucher, get_voucher,
                       list_vouchers, update_voucher, vouchers_for_party,
                       vouchers_summary)
