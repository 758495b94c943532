"""Double-entry ledger and batch inventory engine for the desktop inventory app."""

__version__ = "1.0.0"
