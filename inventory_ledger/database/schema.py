from pathlib import Path
import sqlite3
import sys

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== CORE TABLES ======================== */

/* -------- companies -------- */
CREATE TABLE IF NOT EXISTS companies (
    company_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    name        TEXT NOT NULL,
    created_at  TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

/* -------- chart of accounts -------- */
CREATE TABLE IF NOT EXISTS accounts (
    account_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    company_id   INTEGER NOT NULL,
    code         TEXT NOT NULL,
    name         TEXT NOT NULL,
    type         TEXT NOT NULL CHECK (type IN ('asset','liability','equity','income','expense')),
    parent_id    INTEGER,
    balance      TEXT NOT NULL DEFAULT '0.0000',
    description  TEXT,
    created_at   TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (company_id, code),
    CHECK (parent_id IS NULL OR parent_id <> account_id),
    FOREIGN KEY (company_id) REFERENCES companies(company_id),
    FOREIGN KEY (parent_id)  REFERENCES accounts(account_id)
);
CREATE INDEX IF NOT EXISTS idx_accounts_company ON accounts(company_id);
CREATE INDEX IF NOT EXISTS idx_accounts_parent  ON accounts(parent_id);

/* -------- parties -------- */
CREATE TABLE IF NOT EXISTS vendors (
    vendor_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    company_id  INTEGER NOT NULL,
    name        TEXT NOT NULL,
    email       TEXT,
    phone       TEXT,
    address     TEXT,
    created_at  TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (company_id) REFERENCES companies(company_id)
);
CREATE INDEX IF NOT EXISTS idx_vendors_company ON vendors(company_id);

CREATE TABLE IF NOT EXISTS customers (
    customer_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    company_id   INTEGER NOT NULL,
    name         TEXT NOT NULL,
    email        TEXT,
    phone        TEXT,
    address      TEXT,
    area_code    TEXT,
    created_at   TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (company_id) REFERENCES companies(company_id)
);
CREATE INDEX IF NOT EXISTS idx_customers_company ON customers(company_id);

/* -------- products & batches -------- */
CREATE TABLE IF NOT EXISTS products (
    product_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    company_id   INTEGER NOT NULL,
    sku          TEXT NOT NULL,
    name         TEXT NOT NULL,
    description  TEXT,
    category     TEXT,
    vendor_id    INTEGER,
    created_at   TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (company_id, sku),
    FOREIGN KEY (company_id) REFERENCES companies(company_id),
    FOREIGN KEY (vendor_id)  REFERENCES vendors(vendor_id) ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS idx_products_company ON products(company_id);

CREATE TABLE IF NOT EXISTS batches (
    batch_id            INTEGER PRIMARY KEY AUTOINCREMENT,
    company_id          INTEGER NOT NULL,
    product_id          INTEGER NOT NULL,
    batch_number        TEXT NOT NULL,
    quantity            INTEGER NOT NULL CHECK (quantity > 0),
    available_quantity  INTEGER NOT NULL,
    manufacturing_date  TEXT,
    expiry_date         TEXT,
    purchase_price      TEXT NOT NULL DEFAULT '0.0000' CHECK (CAST(purchase_price AS REAL) >= 0),
    notes               TEXT,
    /* posting that valued stock entered outside a purchase */
    opening_transaction_id INTEGER,
    created_at          TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (product_id, batch_number),
    CHECK (available_quantity >= 0 AND available_quantity <= quantity),
    FOREIGN KEY (company_id) REFERENCES companies(company_id),
    FOREIGN KEY (product_id) REFERENCES products(product_id),
    FOREIGN KEY (opening_transaction_id) REFERENCES transactions(transaction_id)
);
CREATE INDEX IF NOT EXISTS idx_batches_product ON batches(product_id);
CREATE INDEX IF NOT EXISTS idx_batches_company ON batches(company_id);

/* -------- purchases -------- */
CREATE TABLE IF NOT EXISTS purchases (
    purchase_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    company_id       INTEGER NOT NULL,
    purchase_number  TEXT NOT NULL,
    vendor_id        INTEGER NOT NULL,
    purchase_date    TEXT NOT NULL,
    total_amount     TEXT NOT NULL CHECK (CAST(total_amount AS REAL) >= 0),
    paid_amount      TEXT NOT NULL DEFAULT '0.0000' CHECK (CAST(paid_amount AS REAL) >= 0),
    status           TEXT NOT NULL DEFAULT 'completed' CHECK (status IN ('pending','completed','cancelled')),
    payment_type     TEXT NOT NULL CHECK (payment_type IN ('cash','bank','credit')),
    notes            TEXT,
    created_at       TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (company_id, purchase_number),
    CHECK (CAST(paid_amount AS REAL) <= CAST(total_amount AS REAL) + 1e-9),
    FOREIGN KEY (company_id) REFERENCES companies(company_id),
    FOREIGN KEY (vendor_id)  REFERENCES vendors(vendor_id)
);
CREATE INDEX IF NOT EXISTS idx_purchases_company ON purchases(company_id);
CREATE INDEX IF NOT EXISTS idx_purchases_vendor  ON purchases(vendor_id);

CREATE TABLE IF NOT EXISTS purchase_items (
    item_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    purchase_id  INTEGER NOT NULL,
    product_id   INTEGER NOT NULL,
    batch_id     INTEGER UNIQUE,
    quantity     INTEGER NOT NULL CHECK (quantity > 0),
    unit_price   TEXT NOT NULL CHECK (CAST(unit_price AS REAL) > 0),
    total_price  TEXT NOT NULL,
    FOREIGN KEY (purchase_id) REFERENCES purchases(purchase_id) ON DELETE CASCADE,
    FOREIGN KEY (product_id)  REFERENCES products(product_id),
    FOREIGN KEY (batch_id)    REFERENCES batches(batch_id) ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS idx_purchase_items_purchase ON purchase_items(purchase_id);
CREATE INDEX IF NOT EXISTS idx_purchase_items_product  ON purchase_items(product_id);

CREATE TABLE IF NOT EXISTS purchase_payments (
    payment_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    purchase_id   INTEGER NOT NULL,
    amount        TEXT NOT NULL CHECK (CAST(amount AS REAL) > 0),
    payment_date  TEXT NOT NULL,
    payment_type  TEXT NOT NULL CHECK (payment_type IN ('cash','bank')),
    notes         TEXT,
    created_at    TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (purchase_id) REFERENCES purchases(purchase_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_purchase_payments_purchase ON purchase_payments(purchase_id);

/* -------- sales -------- */
CREATE TABLE IF NOT EXISTS sales (
    sale_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    company_id       INTEGER NOT NULL,
    sale_number      TEXT NOT NULL,
    customer_id      INTEGER,
    sale_date        TEXT NOT NULL,
    total_amount     TEXT NOT NULL CHECK (CAST(total_amount AS REAL) >= 0),
    returned_amount  TEXT NOT NULL DEFAULT '0.0000' CHECK (CAST(returned_amount AS REAL) >= 0),
    paid_amount      TEXT NOT NULL DEFAULT '0.0000' CHECK (CAST(paid_amount AS REAL) >= 0),
    status           TEXT NOT NULL DEFAULT 'completed'
                     CHECK (status IN ('in_progress','completed','returned','partial_return')),
    payment_type     TEXT NOT NULL CHECK (payment_type IN ('cash','bank','cod')),
    notes            TEXT,
    revenue_transaction_id INTEGER,
    cost_transaction_id    INTEGER,
    created_at       TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (company_id, sale_number),
    CHECK (CAST(returned_amount AS REAL) <= CAST(total_amount AS REAL) + 1e-9),
    FOREIGN KEY (company_id)  REFERENCES companies(company_id),
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id),
    FOREIGN KEY (revenue_transaction_id) REFERENCES transactions(transaction_id),
    FOREIGN KEY (cost_transaction_id)    REFERENCES transactions(transaction_id)
);
CREATE INDEX IF NOT EXISTS idx_sales_company  ON sales(company_id);
CREATE INDEX IF NOT EXISTS idx_sales_customer ON sales(customer_id);

CREATE TABLE IF NOT EXISTS sale_items (
    item_id            INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_id            INTEGER NOT NULL,
    product_id         INTEGER NOT NULL,
    quantity           INTEGER NOT NULL CHECK (quantity > 0),
    returned_quantity  INTEGER NOT NULL DEFAULT 0,
    unit_price         TEXT NOT NULL CHECK (CAST(unit_price AS REAL) >= 0),
    total_price        TEXT NOT NULL,
    CHECK (returned_quantity >= 0 AND returned_quantity <= quantity),
    FOREIGN KEY (sale_id)    REFERENCES sales(sale_id) ON DELETE CASCADE,
    FOREIGN KEY (product_id) REFERENCES products(product_id)
);
CREATE INDEX IF NOT EXISTS idx_sale_items_sale    ON sale_items(sale_id);
CREATE INDEX IF NOT EXISTS idx_sale_items_product ON sale_items(product_id);

/* which batch supplied which units of a sale line */
CREATE TABLE IF NOT EXISTS sale_item_allocations (
    allocation_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id            INTEGER NOT NULL,
    batch_id           INTEGER NOT NULL,
    quantity           INTEGER NOT NULL CHECK (quantity > 0),
    returned_quantity  INTEGER NOT NULL DEFAULT 0,
    unit_cost          TEXT NOT NULL DEFAULT '0.0000',
    CHECK (returned_quantity >= 0 AND returned_quantity <= quantity),
    FOREIGN KEY (item_id)  REFERENCES sale_items(item_id) ON DELETE CASCADE,
    FOREIGN KEY (batch_id) REFERENCES batches(batch_id)
);
CREATE INDEX IF NOT EXISTS idx_allocations_item  ON sale_item_allocations(item_id);
CREATE INDEX IF NOT EXISTS idx_allocations_batch ON sale_item_allocations(batch_id);

CREATE TABLE IF NOT EXISTS sale_payments (
    payment_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_id       INTEGER NOT NULL,
    amount        TEXT NOT NULL CHECK (CAST(amount AS REAL) > 0),
    payment_date  TEXT NOT NULL,
    payment_type  TEXT NOT NULL CHECK (payment_type IN ('cash','bank')),
    notes         TEXT,
    transaction_id INTEGER,
    created_at    TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (sale_id) REFERENCES sales(sale_id) ON DELETE CASCADE,
    FOREIGN KEY (transaction_id) REFERENCES transactions(transaction_id)
);
CREATE INDEX IF NOT EXISTS idx_sale_payments_sale ON sale_payments(sale_id);

CREATE TABLE IF NOT EXISTS sale_returns (
    return_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_id       INTEGER NOT NULL,
    return_date   TEXT NOT NULL,
    kind          TEXT NOT NULL CHECK (kind IN ('full','partial')),
    amount        TEXT NOT NULL,
    cost_amount   TEXT NOT NULL DEFAULT '0.0000',
    notes         TEXT,
    created_at    TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (sale_id) REFERENCES sales(sale_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS sale_return_items (
    return_item_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    return_id       INTEGER NOT NULL,
    allocation_id   INTEGER NOT NULL,
    quantity        INTEGER NOT NULL CHECK (quantity > 0),
    FOREIGN KEY (return_id)     REFERENCES sale_returns(return_id) ON DELETE CASCADE,
    FOREIGN KEY (allocation_id) REFERENCES sale_item_allocations(allocation_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_sale_returns_sale ON sale_returns(sale_id);

/* -------- document numbering -------- */
/* last number handed out per company and document kind; never moves back */
CREATE TABLE IF NOT EXISTS document_counters (
    company_id  INTEGER NOT NULL,
    kind        TEXT NOT NULL,
    last_value  INTEGER NOT NULL CHECK (last_value >= 0),
    PRIMARY KEY (company_id, kind),
    FOREIGN KEY (company_id) REFERENCES companies(company_id)
);

/* -------- ledger -------- */
CREATE TABLE IF NOT EXISTS transactions (
    transaction_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    company_id              INTEGER NOT NULL,
    transaction_number      TEXT NOT NULL,
    description             TEXT NOT NULL,
    amount                  TEXT NOT NULL CHECK (CAST(amount AS REAL) > 0),
    transaction_date        TEXT NOT NULL,
    debit_account_id        INTEGER NOT NULL,
    credit_account_id       INTEGER NOT NULL,
    sale_id                 INTEGER,
    purchase_id             INTEGER,
    reverses_transaction_id INTEGER UNIQUE,
    created_at              TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (company_id, transaction_number),
    CHECK (debit_account_id <> credit_account_id),
    FOREIGN KEY (company_id)              REFERENCES companies(company_id),
    FOREIGN KEY (debit_account_id)        REFERENCES accounts(account_id),
    FOREIGN KEY (credit_account_id)       REFERENCES accounts(account_id),
    FOREIGN KEY (sale_id)                 REFERENCES sales(sale_id) ON DELETE SET NULL,
    FOREIGN KEY (purchase_id)             REFERENCES purchases(purchase_id) ON DELETE SET NULL,
    FOREIGN KEY (reverses_transaction_id) REFERENCES transactions(transaction_id)
);
CREATE INDEX IF NOT EXISTS idx_transactions_company ON transactions(company_id, transaction_date);
CREATE INDEX IF NOT EXISTS idx_transactions_debit   ON transactions(debit_account_id);
CREATE INDEX IF NOT EXISTS idx_transactions_credit  ON transactions(credit_account_id);
CREATE INDEX IF NOT EXISTS idx_transactions_sale     ON transactions(sale_id);
CREATE INDEX IF NOT EXISTS idx_transactions_purchase ON transactions(purchase_id);

/* ======================== LEDGER INTEGRITY TRIGGERS ======================== */

/* posted transactions are append-only; only the origin links may be cleared */
DROP TRIGGER IF EXISTS trg_transactions_no_delete;
CREATE TRIGGER trg_transactions_no_delete
BEFORE DELETE ON transactions
FOR EACH ROW
BEGIN
  SELECT RAISE(ABORT, 'Ledger transactions are immutable; post a reversal instead');
END;

DROP TRIGGER IF EXISTS trg_transactions_no_update;
CREATE TRIGGER trg_transactions_no_update
BEFORE UPDATE OF company_id, transaction_number, description, amount, transaction_date,
                 debit_account_id, credit_account_id, reverses_transaction_id
ON transactions
FOR EACH ROW
BEGIN
  SELECT RAISE(ABORT, 'Ledger transactions are immutable; post a reversal instead');
END;

DROP TRIGGER IF EXISTS trg_transactions_same_company;
CREATE TRIGGER trg_transactions_same_company
BEFORE INSERT ON transactions
FOR EACH ROW
BEGIN
  SELECT CASE
    WHEN (SELECT company_id FROM accounts WHERE account_id = NEW.debit_account_id)  <> NEW.company_id
      OR (SELECT company_id FROM accounts WHERE account_id = NEW.credit_account_id) <> NEW.company_id
    THEN RAISE(ABORT, 'Posting accounts must belong to the transaction company')
    ELSE 1
  END;
END;

DROP TRIGGER IF EXISTS trg_transactions_no_reverse_of_reversal;
CREATE TRIGGER trg_transactions_no_reverse_of_reversal
BEFORE INSERT ON transactions
FOR EACH ROW
WHEN NEW.reverses_transaction_id IS NOT NULL
BEGIN
  SELECT CASE
    WHEN (SELECT reverses_transaction_id FROM transactions
          WHERE transaction_id = NEW.reverses_transaction_id) IS NOT NULL
    THEN RAISE(ABORT, 'A reversal cannot itself be reversed')
    ELSE 1
  END;
END;

/* ======================== BATCH INTEGRITY TRIGGERS ======================== */

DROP TRIGGER IF EXISTS trg_batches_quantity_immutable;
CREATE TRIGGER trg_batches_quantity_immutable
BEFORE UPDATE OF quantity, product_id ON batches
FOR EACH ROW
WHEN NEW.quantity <> OLD.quantity OR NEW.product_id <> OLD.product_id
BEGIN
  SELECT RAISE(ABORT, 'Batch quantity and product are fixed once created');
END;

DROP TRIGGER IF EXISTS trg_batches_no_delete_consumed;
CREATE TRIGGER trg_batches_no_delete_consumed
BEFORE DELETE ON batches
FOR EACH ROW
WHEN OLD.available_quantity <> OLD.quantity
BEGIN
  SELECT RAISE(ABORT, 'Cannot delete a batch that has been consumed');
END;

/* ======================== ACCOUNT INTEGRITY TRIGGERS ======================== */

DROP TRIGGER IF EXISTS trg_accounts_type_locked;
CREATE TRIGGER trg_accounts_type_locked
BEFORE UPDATE OF type ON accounts
FOR EACH ROW
WHEN NEW.type <> OLD.type AND EXISTS (
  SELECT 1 FROM transactions
  WHERE debit_account_id = OLD.account_id OR credit_account_id = OLD.account_id
)
BEGIN
  SELECT RAISE(ABORT, 'Account type cannot change once the account has postings');
END;
"""


def init_schema(db_path: Path | str = "ledger.db") -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        # Apply (idempotent) schema
        conn.executescript(SQL)
        conn.commit()
    conn.close()


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else Path(__file__).resolve().parents[2] / "data" / "ledger.db"
    init_schema(target)
    print(f"Schema applied to {target}")
