import os
import sys
from datetime import datetime, timezone

import pytest


PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

for key, value in (
    ("SMTP_SERVER", "smtp.test"),
    ("SMTP_PORT", "2525"),
    ("SMTP_USERNAME", "user@test"),
    ("SMTP_PASSWORD", "secret"),
):
    os.environ.setdefault(key, value)

from vacaytracker import database_service  # noqa: E402
from vacaytracker.storage import SQLiteStorage  # noqa: E402

# Requests in the tests are filed for June 2027 or later.
FIXED_NOW = datetime(2027, 6, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / 'vacaytracker_test.db')
    database_service.init_database(path)
    return path


@pytest.fixture
def sqlite_storage(db_path):
    return SQLiteStorage(db_path)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
