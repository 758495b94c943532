from .ledger import Ledger
from .posting import PostingEngine
from .reconciliation import RecalculationResult, recalculate_account_balances

__all__ = ["Ledger", "PostingEngine", "RecalculationResult", "recalculate_account_balances"]
