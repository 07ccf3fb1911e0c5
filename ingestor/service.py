"""Object graph wiring and the long-running sync process."""
import logging
import signal
import threading
from typing import Optional

from ingestor.config import IngestorConfig
from ingestor.log_config import setup_logging
from ingestor.reconciler import Reconciler
from ingestor.run_controller import RunController
from ingestor.scheduler import Scheduler, bind_ingestor
from notifier.email_notifier import EmailNotifier
from processor.event_processor import EventProcessor
from processor.mock_generator import MockEventGenerator
from scraper.browser_driver import BrowserDriver
from storage.event_store import EventStore
from storage.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)


def build_controller(config: IngestorConfig) -> RunController:
    """
    Build a RunController and its collaborators from configuration.

    Args:
        config: Ingestor configuration

    Returns:
        RunController ready to run
    """
    store = EventStore(table_name=config.table_name)
    notifier = EmailNotifier(
        subscriptions=SubscriptionStore(table_name=config.subscriptions_table_name),
        sender_email=config.sender_email,
        base_url=config.base_url,
    )
    reconciler = Reconciler(
        store=store,
        notifier=notifier,
        request_delay_ms=config.request_delay_ms,
        refresh_unclaimed=config.refresh_unclaimed,
        system_user_id=config.system_user_id,
    )
    driver = BrowserDriver(config, processor=EventProcessor())

    return RunController(
        config=config,
        store=store,
        reconciler=reconciler,
        driver=driver,
        mock_generator=MockEventGenerator(),
    )


def main(config: Optional[IngestorConfig] = None) -> None:
    """Run the scheduler until SIGINT or SIGTERM."""
    config = config or IngestorConfig.from_env()
    setup_logging(config.log_level)

    controller = build_controller(config)
    scheduler = Scheduler()
    bind_ingestor(scheduler, controller, controller.store, config)

    stop = threading.Event()

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    logger.info(
        "Carnival sync service started",
        extra={
            'sync_enabled': config.sync_enabled,
            'use_mock_data': config.use_mock_data,
            'environment': config.environment,
            'next_run': scheduler.next_fire_time(config.sync_cron).isoformat(),
        }
    )

    stop.wait()
    scheduler.shutdown()


if __name__ == '__main__':
    main()
