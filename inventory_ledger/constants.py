APP_NAME = "Inventory Ledger"

DATA_DIR = "data"
DB_FILE_NAME = "ledger.db"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.0.0"

# money columns are TEXT decimals with this many places (DECIMAL(19,4))
MONEY_PLACES = 4

EXPIRING_SOON_DAYS = 30

# well-known chart of accounts codes
CASH_ACCOUNT = "1000"
BANK_ACCOUNT = "1050"
RECEIVABLE_ACCOUNT = "1100"
INVENTORY_ACCOUNT = "1200"
PAYABLE_ACCOUNT = "2000"
EQUITY_ACCOUNT = "3000"
SALES_REVENUE_ACCOUNT = "4000"
COGS_ACCOUNT = "5000"

DEFAULT_ACCOUNTS = (
    # (code, name, type, parent code)
    ("1000", "Cash", "asset", None),
    ("1050", "Bank", "asset", None),
    ("1100", "Accounts Receivable", "asset", None),
    ("1200", "Inventory", "asset", None),
    ("2000", "Accounts Payable", "liability", None),
    ("3000", "Owner's Equity", "equity", None),
    ("3100", "Retained Earnings", "equity", "3000"),
    ("4000", "Sales Revenue", "income", None),
    ("4100", "Other Income", "income", None),
    ("5000", "Cost of Goods Sold", "expense", None),
    ("6000", "Operating Expenses", "expense", None),
)

TRANSACTION_PREFIX = "TXN-"
SALE_PREFIX = "SALE-"
PURCHASE_PREFIX = "PURCH-"
BATCH_PREFIX = "BATCH-"
