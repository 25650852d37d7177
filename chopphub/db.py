import contextlib
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Iterable, List

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g


INTEGRITY_ERRORS = (sqlite3.IntegrityError,) + ((psycopg2.IntegrityError,) if psycopg2 is not None else ())


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
        """Group several writes; commits on success, rolls back on any error."""
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield self
            finally:
                self._tx_depth -= 1
            return

        if self.backend == "postgres":
            self._conn.autocommit = False
        self._tx_depth = 1
        try:
            yield self
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise
        finally:
            self._tx_depth = 0
            if self.backend == "postgres":
                self._conn.autocommit = True

    def commit(self):
        if self._tx_depth:
            return
        self._conn.commit()

    def rollback(self):
        if self._tx_depth:
            return
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
        if ch == ";" and not in_single:
            statements.append("".join(current))
            current = []
            continue
        current.append(ch)
    if current:
        statements.append("".join(current))
    return statements


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 nao instalado.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = _connect_database(db_path)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db():
    db = get_db()
    apply_schema(db)


def apply_schema(db) -> None:
    for statement in SCHEMA_STATEMENTS:
        db.execute(statement)
    for statement in INDEX_STATEMENTS:
        db.execute(statement)
    db.commit()


def drop_schema(db) -> None:
    for table in reversed(TABLES):
        db.execute(f"DROP TABLE IF EXISTS {table}")
    db.commit()


TABLES = (
    "companies",
    "users",
    "company_users",
    "password_resets",
    "customers",
    "suppliers",
    "products",
    "equipments",
    "orders",
    "order_items",
    "financial_records",
    "equipment_loans",
    "equipment_returns",
    "stock_movements",
    "fiscal_operations",
    "invoices",
    "company_integrations",
    "nfe_credentials",
    "email_credentials",
    "notifications",
    "payment_methods",
)


# Portable DDL: the same statements run on SQLite and Postgres.
SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS companies (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        corporate_name TEXT,
        trade_name TEXT,
        document TEXT,
        state_registration TEXT,
        regime_tributario INTEGER,
        email TEXT,
        phone TEXT,
        address TEXT,
        number TEXT,
        complement TEXT,
        neighborhood TEXT,
        city TEXT,
        state TEXT,
        zip_code TEXT,
        logo_url TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT,
        display_name TEXT,
        is_blocked INTEGER NOT NULL DEFAULT 0,
        last_sign_in_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS company_users (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        user_id TEXT NOT NULL REFERENCES users(id),
        role TEXT NOT NULL DEFAULT 'member' CHECK (role IN ('admin','member')),
        created_at TEXT NOT NULL,
        UNIQUE (company_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS password_resets (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id),
        token_hash TEXT NOT NULL UNIQUE,
        expires_at TEXT NOT NULL,
        used_at TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS customers (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        name TEXT NOT NULL,
        fantasy_name TEXT,
        type TEXT NOT NULL DEFAULT 'PJ',
        document TEXT,
        state_registration TEXT,
        email TEXT,
        phone TEXT,
        mobile_phone TEXT,
        address TEXT,
        number TEXT,
        complement TEXT,
        neighborhood TEXT,
        city TEXT,
        state TEXT,
        zip_code TEXT,
        emit_nf INTEGER NOT NULL DEFAULT 0,
        price_table_id TEXT,
        asaas_customer_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS suppliers (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        name TEXT NOT NULL,
        fantasy_name TEXT,
        type TEXT,
        document TEXT NOT NULL,
        state_registration TEXT,
        email TEXT,
        phone TEXT,
        address TEXT,
        number TEXT,
        complement TEXT,
        neighborhood TEXT,
        city TEXT,
        state TEXT,
        zip_code TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS products (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        code TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        unit TEXT,
        ncm TEXT,
        cest TEXT,
        standard_price DOUBLE PRECISION NOT NULL DEFAULT 0,
        stock DOUBLE PRECISION NOT NULL DEFAULT 0,
        manufacturer TEXT,
        material_class TEXT,
        material_origin TEXT,
        loan_product_code TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS equipments (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        code TEXT,
        name TEXT NOT NULL,
        type TEXT NOT NULL,
        description TEXT,
        value DOUBLE PRECISION,
        stock INTEGER NOT NULL DEFAULT 0,
        status TEXT,
        is_available INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        customer_id TEXT REFERENCES customers(id),
        customer TEXT NOT NULL,
        phone TEXT,
        products TEXT NOT NULL DEFAULT '',
        amount DOUBLE PRECISION NOT NULL DEFAULT 0,
        note_number TEXT NOT NULL,
        document_type TEXT NOT NULL DEFAULT 'internal',
        payment_method TEXT,
        payment_status TEXT NOT NULL DEFAULT 'Unpaid',
        days_ticket INTEGER NOT NULL DEFAULT 1,
        total DOUBLE PRECISION NOT NULL DEFAULT 0,
        freight DOUBLE PRECISION NOT NULL DEFAULT 0,
        total_payed DOUBLE PRECISION NOT NULL DEFAULT 0,
        delivery_status TEXT,
        appointment_date TEXT,
        appointment_hour TEXT,
        appointment_local TEXT,
        issue_date TEXT,
        due_date TEXT,
        text_note TEXT,
        driver_id TEXT,
        route_number INTEGER,
        boleto_id TEXT,
        boleto_url TEXT,
        boleto_barcode_number TEXT,
        boleto_digitable_line TEXT,
        boleto_expiration_date TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS order_items (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        order_id TEXT NOT NULL REFERENCES orders(id),
        product_id TEXT REFERENCES products(id),
        quantity DOUBLE PRECISION NOT NULL,
        price DOUBLE PRECISION NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS financial_records (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        type TEXT NOT NULL CHECK (type IN ('input','output')),
        issue_date TEXT NOT NULL,
        due_date TEXT NOT NULL,
        supplier TEXT NOT NULL,
        supplier_id TEXT,
        description TEXT,
        category TEXT,
        amount DOUBLE PRECISION NOT NULL,
        total_payed DOUBLE PRECISION NOT NULL DEFAULT 0,
        status TEXT NOT NULL DEFAULT 'Unpaid' CHECK (status IN ('Paid','Unpaid')),
        payment_method TEXT,
        invoice_number TEXT,
        notes TEXT,
        bank_account_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS equipment_loans (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        customer_id TEXT NOT NULL REFERENCES customers(id),
        customer_name TEXT,
        equipment_id TEXT NOT NULL REFERENCES equipments(id),
        loan_date TEXT NOT NULL,
        note_number TEXT,
        note_date TEXT,
        quantity INTEGER NOT NULL CHECK (quantity > 0),
        returned_quantity INTEGER NOT NULL DEFAULT 0 CHECK (returned_quantity >= 0),
        status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active','partially_returned','returned')),
        return_date TEXT,
        condition_on_loan TEXT,
        condition_on_return TEXT,
        notes TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        CHECK (returned_quantity <= quantity)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS equipment_returns (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        loan_id TEXT REFERENCES equipment_loans(id),
        customer_id TEXT NOT NULL,
        equipment_id TEXT,
        quantity INTEGER NOT NULL DEFAULT 0,
        return_date TEXT NOT NULL,
        condition TEXT,
        notes TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stock_movements (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        product_id TEXT REFERENCES products(id),
        type TEXT NOT NULL CHECK (type IN ('input','output','return','adjustment')),
        quantity DOUBLE PRECISION NOT NULL,
        reason TEXT,
        note_id TEXT,
        created_by TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS fiscal_operations (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        operation_id INTEGER NOT NULL DEFAULT 0,
        name TEXT NOT NULL,
        natureza_operacao TEXT NOT NULL,
        cfop TEXT NOT NULL,
        tipo_documento TEXT NOT NULL DEFAULT '1',
        finalidade_emissao TEXT NOT NULL DEFAULT '1',
        presenca_comprador TEXT NOT NULL DEFAULT '1',
        icms_origem TEXT NOT NULL DEFAULT '0',
        icms_situacao_tributaria TEXT NOT NULL DEFAULT '102',
        pis_situacao_tributaria TEXT NOT NULL DEFAULT '07',
        cofins_situacao_tributaria TEXT NOT NULL DEFAULT '07',
        aliquota_pis DOUBLE PRECISION,
        aliquota_cofins DOUBLE PRECISION,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invoices (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        order_id TEXT,
        ref TEXT NOT NULL UNIQUE,
        status TEXT,
        numero TEXT,
        serie TEXT,
        chave_nfe TEXT,
        xml_url TEXT,
        danfe_url TEXT,
        data_emissao TEXT,
        natureza_operacao TEXT,
        note_number TEXT,
        customer_name TEXT,
        valor_total DOUBLE PRECISION,
        mensagem_sefaz TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS company_integrations (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        provider TEXT NOT NULL CHECK (provider IN ('asaas','mercado_pago')),
        access_token TEXT NOT NULL,
        env TEXT,
        webhook_token TEXT UNIQUE,
        created_at TEXT NOT NULL,
        UNIQUE (company_id, provider)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS nfe_credentials (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL UNIQUE REFERENCES companies(id),
        focus_token TEXT NOT NULL,
        environment TEXT NOT NULL DEFAULT 'homologacao' CHECK (environment IN ('homologacao','producao')),
        cnpj TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS email_credentials (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL UNIQUE REFERENCES companies(id),
        sendgrid_api_key TEXT NOT NULL,
        sender_email TEXT NOT NULL,
        sender_name TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        type TEXT,
        title TEXT NOT NULL,
        description TEXT,
        meta TEXT,
        is_read INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS payment_methods (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES companies(id),
        name TEXT NOT NULL,
        code TEXT NOT NULL,
        enabled INTEGER NOT NULL DEFAULT 1,
        default_days INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (company_id, code)
    )
    """,
)


INDEX_STATEMENTS = (
    "CREATE INDEX IF NOT EXISTS idx_customers_company ON customers (company_id, name)",
    "CREATE INDEX IF NOT EXISTS idx_orders_company_customer ON orders (company_id, customer_id)",
    "CREATE INDEX IF NOT EXISTS idx_orders_boleto ON orders (company_id, boleto_id)",
    "CREATE INDEX IF NOT EXISTS idx_order_items_order ON order_items (order_id)",
    "CREATE INDEX IF NOT EXISTS idx_financial_company_invoice ON financial_records (company_id, invoice_number)",
    "CREATE INDEX IF NOT EXISTS idx_loans_company_customer ON equipment_loans (company_id, customer_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_returns_loan ON equipment_returns (loan_id)",
    "CREATE INDEX IF NOT EXISTS idx_invoices_company_ref ON invoices (company_id, ref)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_company ON notifications (company_id, is_read)",
)
