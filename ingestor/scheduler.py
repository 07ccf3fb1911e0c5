"""Cron-style triggers binding the run controller to wall-clock time."""
import logging
import threading
import time
from datetime import datetime
from typing import Callable, Optional, Set

from croniter import croniter

from ingestor.retry import RetryPolicy
from processor.models import RunResult

logger = logging.getLogger(__name__)


BOOTSTRAP_DELAY_MS = 2000
BOOTSTRAP_RETRY_DELAY_MS = 3000
FRESHNESS_WINDOW_SECONDS = 24 * 60 * 60


class Scheduler:
    """Timer-backed scheduler for periodic (cron) and one-shot callbacks."""

    def __init__(self, now: Callable[[], datetime] = datetime.now):
        """
        Initialize the scheduler.

        Args:
            now: Source of local wall-clock time used to evaluate cron expressions
        """
        self._now = now
        self._timers: Set[threading.Timer] = set()
        self._lock = threading.Lock()
        self._stopped = False

    def schedule_periodic(self, cron_expression: str, fn: Callable[[], object]) -> None:
        """
        Invoke fn at every firing of a cron expression, in local time.

        Args:
            cron_expression: Five-field cron expression, e.g. "0 3 * * *"
            fn: Callable invoked without arguments

        Raises:
            ValueError: If the expression is not a valid cron expression
        """
        if not croniter.is_valid(cron_expression):
            raise ValueError(f"Invalid cron expression: '{cron_expression}'")
        schedule = croniter(cron_expression, self._now())
        logger.info(f"Scheduled periodic trigger '{cron_expression}'")
        self._arm_periodic(schedule, fn)

    def schedule_once(self, delay_ms: int, fn: Callable[[], object]) -> None:
        """Invoke fn once after delay_ms milliseconds."""
        self._start_timer(max(0, delay_ms) / 1000, self._invoke, fn)

    def next_fire_time(self, cron_expression: str) -> datetime:
        """Return the next local time a cron expression fires."""
        return croniter(cron_expression, self._now()).get_next(datetime)

    def shutdown(self) -> None:
        """Cancel every pending timer; no callback fires afterwards."""
        with self._lock:
            self._stopped = True
            timers = list(self._timers)
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        logger.info("Scheduler shut down")

    def _arm_periodic(self, schedule: croniter, fn: Callable[[], object]) -> None:
        next_fire = schedule.get_next(datetime)
        delay = max(0.0, (next_fire - self._now()).total_seconds())
        logger.debug(f"Next periodic trigger at {next_fire.isoformat()}")
        self._start_timer(delay, self._fire_periodic, schedule, fn)

    def _fire_periodic(self, schedule: croniter, fn: Callable[[], object]) -> None:
        try:
            self._invoke(fn)
        finally:
            if not self._stopped:
                self._arm_periodic(schedule, fn)

    def _invoke(self, fn: Callable[[], object]) -> None:
        try:
            fn()
        except Exception as e:
            logger.error(f"Scheduled callback failed: {e}", exc_info=True)

    def _start_timer(self, delay_seconds: float, target, *args) -> None:
        with self._lock:
            if self._stopped:
                return
            timer = threading.Timer(delay_seconds, self._run_timer, args=(target,) + args)
            timer.daemon = True
            self._timers.add(timer)
        timer.start()

    def _run_timer(self, target, *args) -> None:
        with self._lock:
            self._timers.discard(threading.current_thread())
            if self._stopped:
                return
        target(*args)


def run_bootstrap_sync(
    controller,
    store,
    config,
    clock: Callable[[], float] = time.time
) -> Optional[RunResult]:
    """
    Run once at startup unless production data is already fresh.

    The store's imported-record counts are read once and then retried up to
    ``retry_attempts`` times, 3 s apart, in case the store is not ready yet.
    In production a run is skipped when an imported record was synced within
    the last 24 hours.

    Args:
        controller: RunController to trigger
        store: Record store exposing counts()
        config: IngestorConfig
        clock: Source of epoch seconds

    Returns:
        RunResult of the triggered run, or None when skipped
    """
    policy = RetryPolicy(
        attempts=config.retry_attempts + 1, delay_ms=BOOTSTRAP_RETRY_DELAY_MS
    )
    try:
        counts = policy.call(store.counts)
    except Exception as e:
        logger.error(f"Record store not ready, running bootstrap sync anyway: {e}")
        counts = None

    last_imported_at = counts.last_imported_at if counts else None
    is_fresh = (
        last_imported_at is not None
        and clock() - last_imported_at <= FRESHNESS_WINDOW_SECONDS
    )

    if is_fresh and config.is_production:
        logger.info(
            "Skipping bootstrap sync, imported data is fresh",
            extra={'last_imported_at': last_imported_at}
        )
        return None

    logger.info("Running bootstrap sync")
    return controller.run(trigger='bootstrap')


def bind_ingestor(scheduler: Scheduler, controller, store, config) -> None:
    """
    Register the daily sync and the startup bootstrap sync.

    Args:
        scheduler: Scheduler receiving the triggers
        controller: RunController invoked by both triggers
        store: Record store consulted by the bootstrap freshness check
        config: IngestorConfig with the cron expression and retry attempts
    """
    scheduler.schedule_periodic(config.sync_cron, lambda: controller.run(trigger='scheduled'))
    scheduler.schedule_once(
        BOOTSTRAP_DELAY_MS, lambda: run_bootstrap_sync(controller, store, config)
    )
    logger.info(
        "Ingestor triggers registered",
        extra={'sync_cron': config.sync_cron, 'bootstrap_delay_ms': BOOTSTRAP_DELAY_MS}
    )
