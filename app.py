"""Run the vacation tracker services: database, notifications and the newsletter scheduler."""
import logging
import threading
from dataclasses import dataclass

from vacaytracker.config import configure_logging, load_config, load_env
from vacaytracker.database_service import init_database
from vacaytracker.employee_service import ensure_admin
from vacaytracker.newsletter_service import NewsletterService
from vacaytracker.notification_service import EmailNotifier, NullNotifier
from vacaytracker.scheduler import NewsletterScheduler
from vacaytracker.storage import SQLiteStorage
from vacaytracker.vacation_service import VacationService


@dataclass
class Services:
    storage: SQLiteStorage
    vacations: VacationService
    newsletter: NewsletterService
    scheduler: NewsletterScheduler


def build_services(config):
    """Initialise the database and wire the services together."""
    logging.info("Initializing database...")
    init_database(config.database_path)
    storage = SQLiteStorage(config.database_path)

    if config.admin_email:
        ensure_admin(storage, config.admin_email, config.admin_name, config.admin_vacation_days)

    if config.email_enabled:
        notifier = EmailNotifier(storage, config)
    else:
        logging.warning("SMTP is not fully configured; email notifications are disabled")
        notifier = NullNotifier()

    newsletter = NewsletterService(storage, notifier, app_url=config.app_url)
    return Services(
        storage=storage,
        vacations=VacationService(storage, notifier),
        newsletter=newsletter,
        scheduler=NewsletterScheduler(storage, newsletter, interval=config.newsletter_check_interval),
    )


def main():
    load_env()
    config = load_config()
    configure_logging(config)

    services = build_services(config)
    services.scheduler.start()
    logging.info("VacayTracker running; press Ctrl+C to stop")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logging.info("Shutting down...")
    finally:
        services.scheduler.stop(timeout=5)


if __name__ == "__main__":
    main()
