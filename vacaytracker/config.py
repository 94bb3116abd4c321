"""Configuration and logging setup.

Settings are read from the environment. A ``.env`` file next to the project
(or in the working directory) is loaded first without overriding variables
that are already set.
"""
from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parent.parent
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def load_env(path: str = ".env") -> Optional[Path]:
    """Populate ``os.environ`` from a ``.env`` file if it exists."""

    env_path = Path(path)
    search_paths = []

    if env_path.is_absolute():
        search_paths.append(env_path)
    else:
        base_candidate = PROJECT_ROOT / env_path
        search_paths.append(base_candidate)

        cwd_candidate = Path.cwd() / env_path
        if cwd_candidate != base_candidate:
            search_paths.append(cwd_candidate)

    for candidate in search_paths:
        if candidate.exists():
            with candidate.open() as env_file:
                for raw_line in env_file:
                    line = raw_line.strip()
                    if not line or line.startswith("#"):
                        continue
                    key, _, value = line.partition("=")
                    os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))
            return candidate

    logging.debug(
        "Environment file %s not found. Looked in: %s",
        path,
        ", ".join(str(candidate) for candidate in search_paths) or str(env_path),
    )
    return None


def require_env(name: str) -> str:
    """Return the value of ``name`` from the environment, failing fast when absent."""

    value = os.getenv(name)
    if value is None:
        raise RuntimeError(f"{name} environment variable is required")
    if not value.strip():
        raise RuntimeError(f"{name} environment variable must not be empty")
    # Preserve any intentional whitespace for secrets while normalising identifiers.
    if name.endswith("_PASSWORD"):
        return value
    return value.strip()


def _optional_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value if name.endswith("_PASSWORD") else value.strip()


def _int_env(name: str, default: Optional[int]) -> Optional[int]:
    value = _optional_env(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer") from exc


@dataclass(frozen=True)
class Config:
    database_path: str = "vacaytracker.db"
    app_url: str = "http://localhost:3000"
    log_file: str = "vacaytracker.log"
    log_level: str = "INFO"
    # @tweakable seconds between newsletter schedule checks
    newsletter_check_interval: int = 3600
    smtp_server: Optional[str] = None
    smtp_port: Optional[int] = None
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    email_from_address: Optional[str] = None
    admin_email: Optional[str] = None
    admin_name: str = "Admin"
    admin_vacation_days: int = 25

    @property
    def email_enabled(self) -> bool:
        # Credentials are optional; login is skipped when they are unset.
        return bool(self.smtp_server and self.smtp_port)


def load_config() -> Config:
    """Build a :class:`Config` from the current environment."""

    interval = _int_env("NEWSLETTER_CHECK_INTERVAL", 3600)
    if interval <= 0:
        raise RuntimeError("NEWSLETTER_CHECK_INTERVAL must be positive")

    smtp_username = _optional_env("SMTP_USERNAME")
    return Config(
        database_path=os.getenv("DATABASE_PATH", "vacaytracker.db"),
        app_url=os.getenv("APP_URL", "http://localhost:3000").rstrip("/"),
        log_file=os.getenv("LOG_FILE", "vacaytracker.log"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        newsletter_check_interval=interval,
        smtp_server=_optional_env("SMTP_SERVER"),
        smtp_port=_int_env("SMTP_PORT", None),
        smtp_username=smtp_username,
        smtp_password=_optional_env("SMTP_PASSWORD"),
        email_from_address=_optional_env("EMAIL_FROM_ADDRESS") or smtp_username,
        admin_email=(_optional_env("ADMIN_EMAIL") or "").lower() or None,
        admin_name=os.getenv("ADMIN_NAME", "Admin"),
        admin_vacation_days=_int_env("ADMIN_VACATION_DAYS", 25),
    )


def configure_logging(config: Config) -> None:
    """Configure logging to write to ``config.log_file`` and the console.

    If creating the log file fails (e.g. due to permissions issues), fall
    back to logging to ``stderr`` so the process can still run.
    """

    level = getattr(logging, config.log_level, logging.INFO)
    try:
        handlers = [logging.FileHandler(config.log_file), logging.StreamHandler()]
    except OSError as log_err:
        logging.basicConfig(stream=sys.stderr, level=level, format=LOG_FORMAT, force=True)
        logging.warning(
            "Falling back to stderr logging because %s could not be opened: %s",
            config.log_file,
            log_err,
        )
        return

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
