"""
Record store for priced products.

SQLite by default; PostgreSQL when DATABASE_URL is set and psycopg2 is
installed. The products table is rebuilt at the start of every run and
rows are upserted on (product_id, pcs).
"""

import os
import sqlite3
import time
from dataclasses import asdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .config import get_postgres_url
from .models import PricedRecord, StoreError

# Optional PostgreSQL support
try:
    import psycopg2
    HAS_POSTGRES = True
except ImportError:
    HAS_POSTGRES = False


TABLE_NAME = "products"

# (column, record attribute); product_id and pcs form the natural key
COLUMNS = [
    ('nm_id', 'nm_id'),
    ('vendor_code', 'vendor_code'),
    ('title', 'title'),
    ('width', 'width'),
    ('height', 'height'),
    ('length', 'length'),
    ('pcs', 'pack_count'),
    ('product_id', 'product_id'),
    ('skus', 'sku'),
    ('price', 'wb_price'),
    ('discounted_price', 'wb_discounted_price'),
    ('club_discounted_price', 'wb_loyalty_price'),
    ('available_count', 'stock_count'),
    ('cost', 'cost'),
    ('tariff', 'tariff'),
    ('commission_pct', 'commission_pct'),
    ('commission', 'commission'),
    ('ok_price', 'ok_price'),
    ('new_price', 'display_price'),
    ('new_discount', 'display_discount'),
]
KEY_COLUMNS = ('product_id', 'pcs')

_COLUMN_TYPES = '''
    nm_id INTEGER,
    vendor_code TEXT,
    title TEXT,
    width INTEGER,
    height INTEGER,
    length INTEGER,
    pcs INTEGER NOT NULL,
    product_id TEXT NOT NULL,
    skus TEXT,
    price REAL,
    discounted_price REAL,
    club_discounted_price REAL,
    available_count INTEGER,
    cost INTEGER,
    tariff REAL,
    commission_pct REAL,
    commission REAL,
    ok_price REAL,
    new_price INTEGER,
    new_discount INTEGER,
    updated_at TEXT,
    UNIQUE (product_id, pcs)
'''

SQLITE_SCHEMA = f'''CREATE TABLE {TABLE_NAME} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,{_COLUMN_TYPES})'''

POSTGRES_SCHEMA = f'''CREATE TABLE {TABLE_NAME} (
    id SERIAL PRIMARY KEY,{_COLUMN_TYPES.replace('REAL', 'DOUBLE PRECISION')})'''


class DatabaseConnection:
    """
    Wrapper for database connection that handles automatic reconnection.
    Detects closed connections and reconnects transparently.
    """

    def __init__(self, db_path: str = "ue.db", postgres_url: Optional[str] = None):
        self.db_path = db_path
        self.postgres_url = postgres_url
        self._conn = None
        self._is_postgres = False

    @property
    def connection(self):
        """Get the underlying database connection."""
        return self._conn

    def connect(self):
        """Establish database connection. PostgreSQL if configured, else SQLite."""
        if self.postgres_url is None:
            self.postgres_url = get_postgres_url()
        if HAS_POSTGRES and self.postgres_url:
            try:
                self._conn = psycopg2.connect(self.postgres_url)
                self._is_postgres = True
                print("  Connected to PostgreSQL", flush=True)
                return self._conn
            except Exception as e:
                raise StoreError(f"PostgreSQL connection failed: {e}")

        if self.postgres_url and not HAS_POSTGRES:
            print("  (psycopg2 not installed, using SQLite)", flush=True)
        try:
            self._conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open SQLite database {self.db_path}: {e}")
        self._conn.row_factory = sqlite3.Row
        self._is_postgres = False
        print(f"  Connected to SQLite: {self.db_path}", flush=True)
        return self._conn

    def reconnect(self):
        """Reconnect to database after connection loss."""
        print("  Reconnecting to database...", flush=True)
        self.close()
        if self._is_postgres:
            self._conn = psycopg2.connect(self.postgres_url)
            print("  Database reconnected (PostgreSQL)", flush=True)
        else:
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
            print(f"  Database reconnected (SQLite: {self.db_path})", flush=True)
        return self._conn

    def close(self):
        """Close the database connection."""
        if self._conn:
            try:
                self._conn.close()
            except Exception as e:
                print(f"  Database close error: {e}", flush=True)
            self._conn = None

    def is_connection_error(self, error: Exception) -> bool:
        """Check if exception is a connection-related error."""
        error_str = str(error).lower()
        connection_errors = [
            'connection already closed',
            'connection is closed',
            'server closed the connection',
            'could not receive data',
            'ssl syscall error',
            'operation timed out',
            'connection refused',
            'connection reset',
            'broken pipe',
            'network is unreachable',
            'cannot operate on a closed database',
        ]
        return any(err in error_str for err in connection_errors)

    def execute_with_retry(self, func, *args, max_retries: int = 3, **kwargs):
        """
        Execute a database function with automatic reconnection on failure.

        Args:
            func: Function to execute (takes conn as first argument)
            *args: Additional arguments to pass to func
            max_retries: Maximum number of reconnection attempts
            **kwargs: Keyword arguments to pass to func

        Returns:
            Result of func
        """
        for attempt in range(max_retries):
            try:
                return func(self._conn, *args, **kwargs)
            except Exception as e:
                if self.is_connection_error(e) and attempt < max_retries - 1:
                    print(f"  Database error: {e}", flush=True)
                    self.reconnect()
                    time.sleep(1)
                else:
                    raise

    def commit(self):
        if self._conn:
            self._conn.commit()


def is_postgres(conn) -> bool:
    """Check if connection is PostgreSQL."""
    return HAS_POSTGRES and hasattr(conn, 'info')


def db_placeholder(conn) -> str:
    """Return the correct placeholder for the database type."""
    return '%s' if is_postgres(conn) else '?'


def init_products_table(conn) -> None:
    """Drop and recreate the products table (full refresh every run)."""
    cursor = conn.cursor()
    try:
        cursor.execute(f'DROP TABLE IF EXISTS {TABLE_NAME}')
        cursor.execute(POSTGRES_SCHEMA if is_postgres(conn) else SQLITE_SCHEMA)
        conn.commit()
    except Exception as e:
        conn.rollback()
        raise StoreError(f"Cannot create {TABLE_NAME} table: {e}")
    print(f"  Table {TABLE_NAME} recreated", flush=True)


def record_to_row(record: PricedRecord) -> Dict:
    data = asdict(record)
    return {column: data[attr] for column, attr in COLUMNS}


def upsert_priced_record(conn, record: PricedRecord) -> None:
    """
    Insert the record, or overwrite every non-key column of the existing
    row with the same (product_id, pcs).
    """
    ph = db_placeholder(conn)
    row = record_to_row(record)
    row['updated_at'] = datetime.now().isoformat()

    columns = list(row.keys())
    updates = ',\n            '.join(
        f'{c} = excluded.{c}' for c in columns if c not in KEY_COLUMNS
    )
    cursor = conn.cursor()
    cursor.execute(
        f'''INSERT INTO {TABLE_NAME} ({', '.join(columns)})
        VALUES ({', '.join([ph] * len(columns))})
        ON CONFLICT (product_id, pcs) DO UPDATE SET
            {updates}''',
        tuple(row[c] for c in columns)
    )


def count_products(conn) -> int:
    cursor = conn.cursor()
    cursor.execute(f'SELECT COUNT(*) FROM {TABLE_NAME}')
    return cursor.fetchone()[0]


def save_to_csv(records: Iterable[PricedRecord], output_dir: str = "output") -> str:
    """Save priced records to a timestamped CSV file."""
    rows: List[Dict] = [record_to_row(r) for r in records]
    if not rows:
        print("No data to save")
        return ""

    os.makedirs(output_dir, exist_ok=True)
    df = pd.DataFrame(rows, columns=[column for column, _ in COLUMNS])
    df = df.sort_values(['product_id', 'pcs'])

    timestamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
    filepath = os.path.join(output_dir, f"priced_products_{timestamp}.csv")
    df.to_csv(filepath, index=False)
    print(f"\nSaved {len(df)} rows to {filepath}")
    return filepath
