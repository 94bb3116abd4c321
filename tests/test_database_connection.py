import os
import sqlite3

import pytest

from vacaytracker import database_service


def test_get_db_connection_failure(tmp_path, monkeypatch):
    # Use a path in a non-existent directory to force connection failure
    invalid_db_path = tmp_path / "nonexistent" / "db.sqlite"
    monkeypatch.setattr(database_service, "DATABASE_PATH", str(invalid_db_path))
    with pytest.raises(ConnectionError):
        database_service.get_db_connection()


def test_init_database_creates_schema_and_settings_row(db_path):
    conn = database_service.get_db_connection(db_path)
    try:
        tables = {
            row['name']
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        }
        settings = conn.execute("SELECT * FROM settings WHERE id = 'settings'").fetchone()
    finally:
        conn.close()

    assert {'users', 'vacation_requests', 'balance_history', 'settings'} <= tables
    assert settings is not None
    assert settings['default_vacation_days'] == 25


def test_init_database_is_repeatable(db_path, tmp_path):
    database_service.init_database(db_path)
    database_service.init_database(db_path)

    conn = database_service.get_db_connection(db_path)
    try:
        count = conn.execute("SELECT COUNT(*) FROM settings").fetchone()[0]
    finally:
        conn.close()
    assert count == 1
    assert [p.name for p in tmp_path.iterdir()] == [os.path.basename(db_path)]


def test_schema_rejects_negative_balance(db_path):
    conn = database_service.get_db_connection(db_path)
    try:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO users (id, email, name, vacation_balance) VALUES ('u1', 'u1@example.com', 'U', -1)"
            )
    finally:
        conn.close()
