"""Guarded entry point for ingestion runs."""
import logging
import threading
import time
from typing import Callable, List, Optional

from ingestor.config import ConfigurationError, IngestorConfig
from processor.models import NormalisedEvent, RunResult, RunStatus

logger = logging.getLogger(__name__)


class RunController:
    """
    Owner of the run state.

    At most one run executes at a time in the process: a second caller gets
    an "already running" result instead of waiting. Nothing raised by the
    browser driver, store, reconciler or notifier escapes ``run``.
    """

    def __init__(
        self,
        config: IngestorConfig,
        store,
        reconciler,
        driver,
        mock_generator,
        clock: Callable[[], float] = time.time
    ):
        self.config = config
        self.store = store
        self.reconciler = reconciler
        self.driver = driver
        self.mock_generator = mock_generator
        self.clock = clock

        self._lock = threading.Lock()
        self._is_running = False
        self.last_run_at: Optional[float] = None
        self.last_result: Optional[RunResult] = None

    @property
    def is_running(self) -> bool:
        return self._is_running

    def run(self, trigger: str = 'scheduled') -> RunResult:
        """
        Execute one ingestion run unless disabled or already running.

        Args:
            trigger: Label of what started the run, for logs and status

        Returns:
            RunResult describing the outcome
        """
        if not self.config.sync_enabled:
            logger.info("Sync disabled, skipping run", extra={'trigger': trigger})
            return RunResult(success=True, processed=0, message='disabled', trigger=trigger)

        if not self._lock.acquire(blocking=False):
            logger.warning("Run requested while another is in progress", extra={'trigger': trigger})
            return RunResult(success=False, message='already running', trigger=trigger)

        started = self.clock()
        self._is_running = True
        logger.info("Ingestion run started", extra={'trigger': trigger})

        try:
            try:
                result = self._execute()
            except Exception as e:
                logger.error(
                    f"Ingestion run failed: {e}",
                    extra={'trigger': trigger, 'error_type': type(e).__name__},
                    exc_info=True
                )
                result = RunResult(success=False, error=str(e))

            finished = self.clock()
            result.trigger = trigger
            result.duration_seconds = round(finished - started, 2)
            self.last_result = result
            if result.success:
                self.last_run_at = finished

            logger.info(
                "Ingestion run finished",
                extra={
                    'trigger': trigger,
                    'success': result.success,
                    'processed': result.processed,
                    'events_created': result.created,
                    'events_updated': result.updated,
                    'error': result.error,
                    'duration_seconds': result.duration_seconds,
                }
            )
            return result
        finally:
            self._is_running = False
            self._lock.release()

    def trigger_manual(self) -> RunResult:
        """Run on administrator request; identical to run() apart from the label."""
        return self.run(trigger='manual')

    def status(self) -> RunStatus:
        """
        Snapshot of the run state with store counts.

        Store failures leave the count fields empty.
        """
        total_imported = None
        sync_percentage = None
        try:
            counts = self.store.counts()
            total_imported = counts.imported
            sync_percentage = (
                round(counts.imported / counts.total * 100, 1) if counts.total else 0.0
            )
        except Exception as e:
            logger.warning(f"Failed to read store counts: {e}")

        return RunStatus(
            is_running=self._is_running,
            sync_enabled=self.config.sync_enabled,
            last_run_at=self.last_run_at,
            last_result=self.last_result,
            total_imported=total_imported,
            sync_percentage=sync_percentage,
        )

    def _execute(self) -> RunResult:
        try:
            self.config.validate()
        except ConfigurationError as e:
            logger.error(f"Ingestor misconfigured: {e}")
            return RunResult(success=False, error='misconfigured', message=str(e))

        events = self._fetch_events()

        if self.config.deactivate_past_events:
            self.store.deactivate_past_events()

        sync_result = self.reconciler.reconcile(events)
        message = f'{sync_result.processed} events processed'
        if sync_result.errors:
            message += f', {len(sync_result.errors)} failed'

        return RunResult(
            success=True,
            processed=sync_result.processed,
            created=sync_result.created,
            updated=sync_result.updated,
            message=message,
            error=sync_result.errors[-1] if sync_result.errors else None,
        )

    def _fetch_events(self) -> List[NormalisedEvent]:
        if self.config.use_mock_data:
            logger.info("Using mock event data")
            return self.mock_generator.generate()

        if not self.config.enable_scraping:
            logger.info("Scraping disabled by configuration")
            return []

        events = self.driver.fetch_events()
        logger.info(f"Browser driver returned {len(events)} events")

        if not events and self.config.mock_on_failure:
            logger.info("No events scraped, falling back to mock event data")
            return self.mock_generator.generate()

        return events
