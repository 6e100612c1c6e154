import contextlib
import secrets
import sqlite3
from datetime import datetime, timezone
from typing import Iterable, List

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection
        self._tx_depth = 0

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, params or ())

    def executescript(self, sql: str):
        if self.backend != "postgres":
            return self._conn.executescript(sql)
        for statement in _split_sql_statements(sql):
            if statement.strip():
                self.execute(statement)

    @contextlib.contextmanager
    def transaction(self):
        """Commit on success, roll back on any exception. Nested calls join the outer transaction."""
        outermost = self._tx_depth == 0
        if outermost and self.backend == "postgres":
            self._conn.autocommit = False
        self._tx_depth += 1
        try:
            yield self
        except Exception:
            self._tx_depth -= 1
            if outermost:
                self._conn.rollback()
                self._restore_autocommit()
            raise
        self._tx_depth -= 1
        if outermost:
            self._conn.commit()
            self._restore_autocommit()

    def _restore_autocommit(self) -> None:
        if self.backend == "postgres":
            self._conn.autocommit = True

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def _split_sql_statements(sql: str) -> List[str]:
    statements = []
    current = []
    in_single = False
    for ch in sql:
        if ch == "'":
            in_single = not in_single
        elif ch == ";" and not in_single:
            statements.append("".join(current))
            current = []
            continue
        current.append(ch)
    if current:
        statements.append("".join(current))
    return statements


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def _connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 is not installed.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path, timeout=30.0)
    conn.row_factory = sqlite3.Row
    return Database("sqlite", conn)


def get_db() -> Database:
    if "db" not in g:
        g.db = _connect_database(current_app.config["DB_PATH"])
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_id() -> str:
    return secrets.token_hex(10)


def init_db():
    db = get_db()
    if db.backend == "postgres":
        _init_db_postgres(db)
    else:
        _init_db_sqlite(db)
    db.commit()


SCHEMA_TABLES = [
    "feedback_messages",
    "feedback_threads",
    "tasks",
    "status_events",
    "invoices",
    "stock_request_bids",
    "stock_requests",
    "order_history",
    "orders",
    "bulk_order_requests",
    "shipping_rates",
    "shipping_methods",
    "shipping_regions",
    "products",
    "customization_groups",
    "users",
]


_SCHEMA_TEMPLATE = """
CREATE TABLE IF NOT EXISTS users (
    uid TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT,
    display_name TEXT,
    first_name TEXT,
    last_name TEXT,
    phone TEXT,
    county TEXT,
    town TEXT,
    role TEXT NOT NULL DEFAULT 'Customer',
    status TEXT NOT NULL DEFAULT 'pending',
    rejection_reason TEXT,
    disabled INTEGER NOT NULL DEFAULT 0,
    disabled_at TEXT,
    current_lat {real},
    current_lng {real},
    location_updated_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS customization_groups (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    options_json TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS products (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    price {real} NOT NULL,
    supplier_price {real},
    published INTEGER NOT NULL DEFAULT 1,
    image_url TEXT,
    stock INTEGER NOT NULL DEFAULT 0,
    categories_json TEXT NOT NULL DEFAULT '[]',
    supplier TEXT,
    customization_options_json TEXT NOT NULL DEFAULT '[]',
    customization_group_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS shipping_regions (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    county TEXT NOT NULL DEFAULT '',
    towns_json TEXT NOT NULL DEFAULT '[]',
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS shipping_methods (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    duration TEXT NOT NULL DEFAULT '',
    base_price {real} NOT NULL,
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS shipping_rates (
    id TEXT PRIMARY KEY,
    region_id TEXT NOT NULL,
    method_id TEXT NOT NULL,
    custom_price {real} NOT NULL,
    notes TEXT,
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS bulk_order_requests (
    id TEXT PRIMARY KEY,
    requester_id TEXT NOT NULL,
    requester_name TEXT,
    requester_email TEXT,
    requester_phone TEXT,
    company_name TEXT,
    desired_delivery_date TEXT,
    items_json TEXT NOT NULL DEFAULT '[]',
    status TEXT NOT NULL DEFAULT 'pending_review',
    admin_notes TEXT,
    converted_order_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS orders (
    id TEXT PRIMARY KEY,
    customer_id TEXT,
    customer_name TEXT NOT NULL DEFAULT '',
    customer_email TEXT NOT NULL DEFAULT '',
    customer_phone TEXT NOT NULL DEFAULT '',
    items_json TEXT NOT NULL DEFAULT '[]',
    sub_total {real} NOT NULL DEFAULT 0,
    shipping_cost {real} NOT NULL DEFAULT 0,
    total_amount {real} NOT NULL DEFAULT 0,
    status TEXT NOT NULL,
    payment_status TEXT NOT NULL DEFAULT 'pending',
    payment_method TEXT,
    transaction_id TEXT,
    shipping_address_json TEXT,
    shipping_region_id TEXT,
    shipping_method_id TEXT,
    shipping_method_name TEXT,
    rider_id TEXT,
    rider_name TEXT,
    delivery_lat {real},
    delivery_lng {real},
    delivery_notes TEXT,
    color TEXT,
    rating_value INTEGER,
    rating_comment TEXT,
    rated_at TEXT,
    rated_by TEXT,
    is_gift INTEGER NOT NULL DEFAULT 0,
    gift_details_json TEXT,
    is_bulk_order INTEGER NOT NULL DEFAULT 0,
    bulk_order_request_id TEXT,
    customer_notes TEXT,
    estimated_delivery_time TEXT,
    actual_delivery_time TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS order_history (
    id {pk},
    order_id TEXT NOT NULL REFERENCES orders(id),
    status TEXT NOT NULL,
    occurred_at TEXT NOT NULL,
    notes TEXT,
    actor_id TEXT,
    lat {real},
    lng {real}
);

CREATE TABLE IF NOT EXISTS stock_requests (
    id TEXT PRIMARY KEY,
    product_id TEXT NOT NULL,
    product_name TEXT NOT NULL,
    requested_quantity INTEGER NOT NULL,
    requester_id TEXT NOT NULL,
    requester_name TEXT,
    notes TEXT,
    status TEXT NOT NULL DEFAULT 'pending_bids',
    winning_bid_id INTEGER,
    supplier_price {real},
    supplier_id TEXT,
    supplier_name TEXT,
    finance_manager_id TEXT,
    finance_manager_name TEXT,
    finance_notes TEXT,
    finance_action_at TEXT,
    fulfilled_quantity INTEGER,
    supplier_notes TEXT,
    supplier_action_at TEXT,
    invoice_id TEXT,
    received_quantity INTEGER,
    received_by_id TEXT,
    received_by_name TEXT,
    received_at TEXT,
    receipt_notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS stock_request_bids (
    id {pk},
    stock_request_id TEXT NOT NULL REFERENCES stock_requests(id),
    supplier_id TEXT NOT NULL,
    supplier_name TEXT,
    price_per_unit {real} NOT NULL,
    tax_rate {real},
    notes TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS invoices (
    id TEXT PRIMARY KEY,
    invoice_number TEXT NOT NULL UNIQUE,
    supplier_id TEXT,
    supplier_name TEXT,
    client_name TEXT NOT NULL,
    invoice_date TEXT NOT NULL,
    due_date TEXT NOT NULL,
    items_json TEXT NOT NULL DEFAULT '[]',
    sub_total {real} NOT NULL,
    tax_rate {real} NOT NULL DEFAULT 0,
    tax_amount {real} NOT NULL DEFAULT 0,
    total_amount {real} NOT NULL,
    status TEXT NOT NULL,
    notes TEXT,
    stock_request_id TEXT,
    payment_method TEXT,
    payment_transaction_id TEXT,
    paid_at TEXT,
    finance_manager_id TEXT,
    finance_manager_name TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS status_events (
    id {pk},
    entity TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    from_status TEXT,
    to_status TEXT NOT NULL,
    reason TEXT,
    actor_id TEXT,
    occurred_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    order_id TEXT,
    item_name TEXT,
    task_type TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    assignee_id TEXT,
    assignee_name TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    customizations_json TEXT,
    proof_of_work_url TEXT,
    service_manager_notes TEXT,
    due_date TEXT,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS feedback_threads (
    id TEXT PRIMARY KEY,
    subject TEXT NOT NULL,
    sender_id TEXT NOT NULL,
    sender_name TEXT,
    sender_email TEXT,
    sender_role TEXT,
    target_role TEXT NOT NULL,
    target_user_id TEXT,
    target_user_name TEXT,
    status TEXT NOT NULL DEFAULT 'open',
    last_message_snippet TEXT NOT NULL DEFAULT '',
    last_replier_role TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS feedback_messages (
    id {pk},
    thread_id TEXT NOT NULL REFERENCES feedback_threads(id),
    sender_id TEXT NOT NULL,
    sender_name TEXT,
    sender_role TEXT,
    message TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);
CREATE INDEX IF NOT EXISTS idx_orders_customer ON orders(customer_id);
CREATE INDEX IF NOT EXISTS idx_orders_rider ON orders(rider_id);
CREATE INDEX IF NOT EXISTS idx_order_history_order ON order_history(order_id, id);
CREATE INDEX IF NOT EXISTS idx_stock_requests_status ON stock_requests(status);
CREATE INDEX IF NOT EXISTS idx_bids_request ON stock_request_bids(stock_request_id, id);
CREATE INDEX IF NOT EXISTS idx_invoices_supplier ON invoices(supplier_id);
CREATE INDEX IF NOT EXISTS idx_status_events_entity ON status_events(entity, entity_id);
CREATE INDEX IF NOT EXISTS idx_tasks_order ON tasks(order_id);
CREATE INDEX IF NOT EXISTS idx_feedback_messages_thread ON feedback_messages(thread_id, id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_shipping_rates_pair ON shipping_rates(region_id, method_id)
"""


def _init_db_sqlite(db) -> None:
    db.executescript(_SCHEMA_TEMPLATE.format(pk="INTEGER PRIMARY KEY AUTOINCREMENT", real="REAL"))


def _init_db_postgres(db) -> None:
    db.executescript(_SCHEMA_TEMPLATE.format(pk="SERIAL PRIMARY KEY", real="DOUBLE PRECISION"))
