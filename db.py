# db.py
# Record store adapter: SQLite for local use, pooled MySQL when configured.
# Every entity goes through the same select/insert/update/delete surface.

import os
import re
import sqlite3
import time
from contextlib import contextmanager

from mysql.connector import Error, errorcode
from mysql.connector.pooling import MySQLConnectionPool

import config
from loggers import get_logger

log = get_logger("billing.db")


class StoreError(Exception):
    """A read or write the record store refused or could not complete."""


class ConflictError(StoreError):
    """Insert rejected because the key (or another unique column) already exists."""


class SchemaMismatchError(StoreError):
    """Write rejected because the table lacks one of the columns sent."""


# table -> ordered (column, sqlite type, mysql type)
SCHEMA = {
    "products": [
        ("id", "TEXT PRIMARY KEY", "VARCHAR(64) PRIMARY KEY"),
        ("name", "TEXT NOT NULL", "VARCHAR(255) NOT NULL"),
        ("price", "TEXT NOT NULL", "VARCHAR(32) NOT NULL"),
        ("date_added", "TEXT", "VARCHAR(40)"),
    ],
    "clients": [
        ("id", "TEXT PRIMARY KEY", "VARCHAR(64) PRIMARY KEY"),
        ("name", "TEXT NOT NULL", "VARCHAR(255) NOT NULL"),
        ("email", "TEXT", "VARCHAR(255)"),
        ("phone", "TEXT", "VARCHAR(40)"),
        ("address", "TEXT", "TEXT"),
        ("gstin", "TEXT", "VARCHAR(15)"),
        ("fssai", "TEXT", "VARCHAR(20)"),
        ("bank_account", "TEXT", "VARCHAR(64)"),
        ("date_added", "TEXT", "VARCHAR(40)"),
    ],
    "bank_details": [
        ("id", "TEXT PRIMARY KEY", "VARCHAR(64) PRIMARY KEY"),
        ("business_name", "TEXT", "VARCHAR(255)"),
        ("address", "TEXT", "TEXT"),
        ("fssai_no", "TEXT", "VARCHAR(20)"),
        ("gstin", "TEXT", "VARCHAR(15)"),
        ("phone", "TEXT", "VARCHAR(40)"),
        ("email", "TEXT", "VARCHAR(255)"),
        ("bank_name", "TEXT", "VARCHAR(255)"),
        ("account_number", "TEXT", "VARCHAR(64)"),
        ("ifsc_code", "TEXT", "VARCHAR(20)"),
        ("branch_name", "TEXT", "VARCHAR(255)"),
        ("pan_no", "TEXT", "VARCHAR(10)"),
    ],
    "bills": [
        ("id", "TEXT PRIMARY KEY", "VARCHAR(64) PRIMARY KEY"),
        ("bill_number", "TEXT NOT NULL", "VARCHAR(64) NOT NULL"),
        ("place", "TEXT", "VARCHAR(255)"),
        ("date", "TEXT NOT NULL", "VARCHAR(10) NOT NULL"),
        ("due_date", "TEXT", "VARCHAR(10)"),
        ("client_id", "TEXT", "VARCHAR(64)"),
        ("client_name", "TEXT", "VARCHAR(255)"),
        ("items", "TEXT NOT NULL", "LONGTEXT NOT NULL"),
        ("sub_total", "TEXT", "VARCHAR(32)"),
        ("cgst_rate", "TEXT", "VARCHAR(16)"),
        ("sgst_rate", "TEXT", "VARCHAR(16)"),
        ("igst_rate", "TEXT", "VARCHAR(16)"),
        ("cgst", "TEXT", "VARCHAR(32)"),
        ("sgst", "TEXT", "VARCHAR(32)"),
        ("igst", "TEXT", "VARCHAR(32)"),
        ("total_amount", "TEXT", "VARCHAR(32)"),
        ("watermark", "INTEGER DEFAULT 1", "TINYINT DEFAULT 1"),
        ("created_at", "TEXT", "VARCHAR(40)"),
    ],
}

_IDENT = re.compile(r"^[a-z_][a-z0-9_]*$")


def _ident(name):
    # table and column names cannot be bound as parameters
    if not _IDENT.match(str(name)):
        raise StoreError(f"Invalid identifier: {name!r}")
    return name


class RecordStore:
    """
    Generic per-table CRUD over a DB-API connection.

    Subclasses provide the connection, the parameter placeholder and the
    mapping from driver errors to ConflictError / SchemaMismatchError.
    """

    placeholder = "?"
    dialect = "sqlite"

    @contextmanager
    def connection(self):
        raise NotImplementedError

    def _cursor(self, conn):
        return conn.cursor()

    def _classify(self, exc):
        return StoreError

    def _rows(self, cursor):
        cols = [d[0] for d in cursor.description]
        return [dict(zip(cols, r)) for r in cursor.fetchall()]

    def _where(self, filters=None, like=None):
        clauses, params = [], []
        for col, val in (filters or {}).items():
            clauses.append(f"{_ident(col)} = {self.placeholder}")
            params.append(val)
        for col, pattern in (like or {}).items():
            clauses.append(f"{_ident(col)} LIKE {self.placeholder}")
            params.append(pattern)
        sql = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        return sql, params

    def _execute(self, sql, params=(), fetch=False):
        try:
            with self.connection() as conn:
                cursor = self._cursor(conn)
                try:
                    cursor.execute(sql, tuple(params))
                    if fetch:
                        return self._rows(cursor)
                    conn.commit()
                    return cursor.rowcount
                finally:
                    cursor.close()
        except StoreError:
            raise
        except Exception as e:
            kind = self._classify(e)
            log.error("%s on %r: %s", kind.__name__, sql.split(" ")[0], e)
            raise kind(str(e)) from e

    # ---------------- CRUD ----------------
    def select(self, table, filters=None, order=None, desc=False, limit=None, like=None, columns=None):
        """
        Return matching rows as a list of dicts.

        Args:
            table: table name
            filters: {column: value} equality filters, AND-ed
            order: column to order by
            desc: descending order
            limit: maximum number of rows
            like: {column: pattern} LIKE filters, AND-ed
            columns: subset of columns to fetch (default all)
        """
        cols = ", ".join(_ident(c) for c in columns) if columns else "*"
        where, params = self._where(filters, like)
        sql = f"SELECT {cols} FROM {_ident(table)}{where}"
        if order:
            sql += f" ORDER BY {_ident(order)}{' DESC' if desc else ''}"
        if limit:
            sql += f" LIMIT {int(limit)}"
        return self._execute(sql, params, fetch=True)

    def insert(self, table, row):
        cols = [_ident(c) for c in row]
        marks = ", ".join([self.placeholder] * len(cols))
        sql = f"INSERT INTO {_ident(table)} ({', '.join(cols)}) VALUES ({marks})"
        self._execute(sql, list(row.values()))
        return row

    def update(self, table, row, key):
        """Update the rows matching `key` ({column: value}); returns affected row count."""
        if not key:
            raise StoreError("update without a key filter")
        sets = ", ".join(f"{_ident(c)} = {self.placeholder}" for c in row)
        where, params = self._where(key)
        sql = f"UPDATE {_ident(table)} SET {sets}{where}"
        return self._execute(sql, list(row.values()) + params)

    def delete(self, table, key):
        if not key:
            raise StoreError("delete without a key filter")
        where, params = self._where(key)
        return self._execute(f"DELETE FROM {_ident(table)}{where}", params)

    def count(self, table):
        rows = self._execute(f"SELECT COUNT(*) AS n FROM {_ident(table)}", fetch=True)
        return int(rows[0]["n"]) if rows else 0

    # ---------------- Schema ----------------
    def existing_columns(self, table):
        raise NotImplementedError

    def init_db(self):
        """Create tables if they don't exist, then add any columns missing from older tables."""
        col_index = 1 if self.dialect == "sqlite" else 2
        for table, columns in SCHEMA.items():
            body = ",\n    ".join(f"{c[0]} {c[col_index]}" for c in columns)
            sql = f"CREATE TABLE IF NOT EXISTS {table} (\n    {body}\n)"
            if self.dialect == "mysql":
                sql += " ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci"
            self._execute(sql)
        self.migrate_db_add_columns()

    def migrate_db_add_columns(self):
        col_index = 1 if self.dialect == "sqlite" else 2
        for table, columns in SCHEMA.items():
            existing = set(self.existing_columns(table))
            for column in columns:
                if column[0] in existing:
                    continue
                col_type = column[col_index].replace(" PRIMARY KEY", "").replace(" NOT NULL", "")
                log.info("Adding column %s.%s", table, column[0])
                self._execute(f"ALTER TABLE {table} ADD COLUMN {column[0]} {col_type}")


class SqliteStore(RecordStore):
    placeholder = "?"
    dialect = "sqlite"

    def __init__(self, path=None):
        self.path = path or config.DB_PATH
        folder = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(folder, exist_ok=True)

    @contextmanager
    def connection(self):
        conn = sqlite3.connect(self.path)
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _classify(self, exc):
        msg = str(exc).lower()
        if isinstance(exc, sqlite3.IntegrityError) and "unique" in msg:
            return ConflictError
        if isinstance(exc, sqlite3.OperationalError) and ("no column" in msg or "no such column" in msg):
            return SchemaMismatchError
        return StoreError

    def existing_columns(self, table):
        rows = self._execute(f"PRAGMA table_info({_ident(table)})", fetch=True)
        return [r["name"] for r in rows]


class MySQLStore(RecordStore):
    """Hosted MySQL with a lazily created connection pool and reconnect on checkout."""

    placeholder = "%s"
    dialect = "mysql"
    max_retries = 3
    retry_delay = 1

    def __init__(self, settings):
        self.settings = settings
        self._pool = None

    def get_pool(self):
        if self._pool is None:
            s = self.settings
            try:
                self._pool = MySQLConnectionPool(
                    host=s["host"],
                    port=int(s.get("port", 3306)),
                    user=s["user"],
                    password=s["password"],
                    database=s["database"],
                    charset="utf8mb4",
                    collation="utf8mb4_unicode_ci",
                    autocommit=False,
                    pool_name=s.get("pool_name", "billing_pool"),
                    pool_size=int(s.get("pool_size", 5)),
                    pool_reset_session=s.get("pool_reset_session", True),
                )
            except KeyError as e:
                raise StoreError(f"Missing MySQL configuration in secrets: {e}") from e
            except Error as e:
                raise StoreError(f"Error creating connection pool: {e}") from e
        return self._pool

    def get_connection(self):
        for attempt in range(self.max_retries):
            try:
                conn = self.get_pool().get_connection()
                if not conn.is_connected():
                    conn.reconnect(attempts=3, delay=1)
                return conn
            except Error as e:
                if attempt < self.max_retries - 1:
                    log.warning("MySQL connection attempt %d failed: %s", attempt + 1, e)
                    time.sleep(self.retry_delay * (attempt + 1))
                    self._pool = None
                else:
                    raise StoreError(
                        f"Failed to get database connection after {self.max_retries} attempts: {e}"
                    ) from e

    @contextmanager
    def connection(self):
        conn = self.get_connection()
        try:
            yield conn
        except Exception:
            if conn.is_connected():
                conn.rollback()
            raise
        finally:
            if conn.is_connected():
                conn.close()

    def _cursor(self, conn):
        return conn.cursor(dictionary=True)

    def _rows(self, cursor):
        return list(cursor.fetchall())

    def _classify(self, exc):
        errno = getattr(exc, "errno", None)
        if errno == errorcode.ER_DUP_ENTRY:
            return ConflictError
        if errno == errorcode.ER_BAD_FIELD_ERROR:
            return SchemaMismatchError
        return StoreError

    def existing_columns(self, table):
        rows = self._execute(f"SHOW COLUMNS FROM {_ident(table)}", fetch=True)
        return [r["Field"] for r in rows]


_store = None


def get_store():
    """Module-wide store (singleton): MySQL when [mysql] secrets exist, else SQLite."""
    global _store
    if _store is None:
        settings = config.get_section("mysql")
        if settings:
            log.info("Using MySQL record store at %s", settings.get("host"))
            _store = MySQLStore(settings)
        else:
            log.info("Using SQLite record store at %s", config.DB_PATH)
            _store = SqliteStore(config.DB_PATH)
        _store.init_db()
    return _store
