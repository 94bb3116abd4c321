"""
Service: Database Service. Purpose: SQLite connections, schema and the
process-wide write lock.
"""

import logging
import os
import sqlite3
import threading

# @tweakable database configuration parameters
DATABASE_PATH = os.getenv("DATABASE_PATH", "vacaytracker.db")
MAX_DB_RETRIES = 3
DB_CONNECTION_TIMEOUT = 30
DEFAULT_VACATION_DAYS = 25

# Database lock for thread safety
# Use RLock to allow the same thread to re-acquire the lock safely
db_lock = threading.RLock()


def get_db_connection(database_path=None):
    """Get database connection with retry logic"""
    path = database_path or DATABASE_PATH
    last_error = None
    for attempt in range(MAX_DB_RETRIES):
        try:
            conn = sqlite3.connect(path, timeout=DB_CONNECTION_TIMEOUT, check_same_thread=False)
            conn.execute('PRAGMA foreign_keys = ON')
            conn.row_factory = sqlite3.Row  # Enable dict-like access
            return conn
        except sqlite3.Error as e:
            last_error = e
            logging.warning("Database connection attempt %s/%s failed: %s", attempt + 1, MAX_DB_RETRIES, e)
    raise ConnectionError(f"Could not open database {path}: {last_error}") from last_error


def init_database(database_path=None):
    """Initialize SQLite database with required tables"""
    path = database_path or DATABASE_PATH

    with db_lock:
        conn = get_db_connection(path)
        try:
            _create_tables(conn)
            _create_indexes(conn)
            _create_triggers(conn)
            conn.execute("INSERT OR IGNORE INTO settings (id) VALUES ('settings')")
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


def _create_tables(conn):
    """Create all database tables"""
    conn.execute(f'''
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT UNIQUE NOT NULL,
            name TEXT NOT NULL,
            role TEXT NOT NULL DEFAULT 'employee' CHECK (role IN ('admin', 'employee')),
            vacation_balance INTEGER NOT NULL DEFAULT {DEFAULT_VACATION_DAYS} CHECK (vacation_balance >= 0),
            start_date TEXT,
            email_preferences TEXT NOT NULL DEFAULT '{{"vacationUpdates":true,"weeklyDigest":false,"teamNotifications":true}}',
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
            updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
        )
    ''')

    _create_vacation_tables(conn)
    _create_balance_tables(conn)
    _create_settings_table(conn)


def _create_vacation_tables(conn):
    """Create vacation request table"""
    conn.execute('''
        CREATE TABLE IF NOT EXISTS vacation_requests (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            start_date TEXT NOT NULL,
            end_date TEXT NOT NULL,
            total_days INTEGER NOT NULL CHECK (total_days >= 1),
            reason TEXT,
            status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'approved', 'rejected')),
            reviewed_by TEXT,
            reviewed_at TEXT,
            rejection_reason TEXT,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
            updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
            FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE,
            FOREIGN KEY (reviewed_by) REFERENCES users (id) ON DELETE SET NULL
        )
    ''')


def _create_balance_tables(conn):
    """Create balance audit table"""
    conn.execute('''
        CREATE TABLE IF NOT EXISTS balance_history (
            id TEXT PRIMARY KEY,
            employee_id TEXT NOT NULL,
            request_id TEXT,
            change_amount INTEGER NOT NULL,
            previous_balance INTEGER NOT NULL,
            new_balance INTEGER NOT NULL,
            reason TEXT,
            changed_by TEXT DEFAULT 'SYSTEM',
            created_at TEXT NOT NULL,
            FOREIGN KEY (employee_id) REFERENCES users (id) ON DELETE CASCADE,
            FOREIGN KEY (request_id) REFERENCES vacation_requests (id) ON DELETE SET NULL
        )
    ''')


def _create_settings_table(conn):
    """Create the singleton settings table"""
    conn.execute('''
        CREATE TABLE IF NOT EXISTS settings (
            id TEXT PRIMARY KEY DEFAULT 'settings',
            weekend_policy TEXT NOT NULL DEFAULT '{"excludeWeekends":true,"excludedDays":[0,6]}',
            newsletter TEXT NOT NULL DEFAULT '{"enabled":false,"frequency":"monthly","dayOfMonth":1}',
            default_vacation_days INTEGER NOT NULL DEFAULT 25,
            vacation_reset_month INTEGER NOT NULL DEFAULT 1,
            updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
        )
    ''')


def _create_indexes(conn):
    """Create database indexes for better performance"""
    conn.execute('CREATE INDEX IF NOT EXISTS idx_vacation_requests_user_id ON vacation_requests(user_id)')
    conn.execute('CREATE INDEX IF NOT EXISTS idx_vacation_requests_status ON vacation_requests(status)')
    conn.execute('CREATE INDEX IF NOT EXISTS idx_users_role ON users(role)')
    conn.execute('CREATE INDEX IF NOT EXISTS idx_balance_history_employee ON balance_history(employee_id)')


def _create_triggers(conn):
    """Keep updated_at current on every row update"""
    for table in ('users', 'vacation_requests', 'settings'):
        conn.execute(f'''
            CREATE TRIGGER IF NOT EXISTS {table}_updated_at
                AFTER UPDATE ON {table}
                FOR EACH ROW
            BEGIN
                UPDATE {table} SET updated_at = strftime('%Y-%m-%dT%H:%M:%SZ', 'now') WHERE id = NEW.id;
            END
        ''')
