from contextlib import contextmanager

import psycopg2

from courier.config import DATABASE_URL
from courier.exceptions import StoreError

SCHEMA = """
CREATE TABLE IF NOT EXISTS orders (
    id TEXT PRIMARY KEY,
    client_id TEXT NOT NULL,
    driver_id TEXT,
    status TEXT NOT NULL,
    payload JSONB NOT NULL,
    created_at BIGINT NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS orders_client_id_idx ON orders (client_id);
CREATE INDEX IF NOT EXISTS orders_driver_id_idx ON orders (driver_id);
CREATE INDEX IF NOT EXISTS orders_status_idx ON orders (status);

CREATE TABLE IF NOT EXISTS stock (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL DEFAULT 'Unnamed',
    category TEXT NOT NULL DEFAULT 'Uncategorized',
    quantity INTEGER NOT NULL DEFAULT 0 CHECK (quantity >= 0),
    unit TEXT NOT NULL DEFAULT '',
    price NUMERIC NOT NULL DEFAULT 0,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


@contextmanager
def db_conn(dsn: str | None = None):
    """
    One connection per unit of work: commit on success, rollback on error,
    always closed. Driver errors surface as ``StoreError``.
    """
    try:
        conn = psycopg2.connect(dsn or DATABASE_URL)
    except psycopg2.Error as e:
        raise StoreError(f"connect failed: {e}") from e
    try:
        with conn:
            yield conn
    except psycopg2.Error as e:
        raise StoreError(str(e)) from e
    finally:
        conn.close()


def init_db(dsn: str | None = None):
    with db_conn(dsn) as conn:
        with conn.cursor() as cur:
            cur.execute(SCHEMA)
