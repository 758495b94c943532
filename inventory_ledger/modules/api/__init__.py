from .handlers import GENERIC_ERROR, LedgerApi

__all__ = ["GENERIC_ERROR", "LedgerApi"]
