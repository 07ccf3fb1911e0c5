"""Headless browser driver fetching carnival candidates from the source site."""
import logging
import time
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from ingestor.retry import RetryPolicy
from processor.event_processor import EventProcessor
from processor.models import NormalisedEvent, ScrapedRaw
from scraper.strategies import NavigationStrategy, default_strategies

logger = logging.getLogger(__name__)


LAUNCH_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-web-security',
    '--disable-features=VizDisplayCompositor',
]

USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)
VIEWPORT = {'width': 1366, 'height': 768}
DEFAULT_OPERATION_TIMEOUT_MS = 180000

BLOCKED_URL_PATTERNS = (
    'google-analytics.com',
    'googletagmanager.com',
    'doubleclick.net',
    'google.com/analytics',
    'google.com/ccm/collect',
    'google.com/g/collect',
    'facebook.com/tr',
    'connect.facebook.net',
    'hotjar.com',
    'fullstory.com',
    'mixpanel.com',
    'segment.com',
    'amplitude.com',
    'intercom.io',
    'zendesk.com',
    'googlesyndication.com',
    'adsystem.com',
    'twitter.com/widgets',
    'instagram.com/embed',
    'youtube.com/embed',
    '/collect?',
    '/track?',
    '/pixel?',
    '/beacon?',
    '/analytics?',
)
BLOCKED_RESOURCE_TYPES = ('font', 'media')


def should_block(url: str, resource_type: str) -> bool:
    """Return True for tracking hosts and resource types not needed to read the page."""
    if resource_type in BLOCKED_RESOURCE_TYPES:
        return True
    return any(pattern in url for pattern in BLOCKED_URL_PATTERNS)


def _route_request(route) -> None:
    request = route.request
    if should_block(request.url, request.resource_type):
        logger.debug(f"Blocked {request.resource_type} request: {request.url[:100]}")
        route.abort()
    else:
        route.continue_()


class BrowserDriver:
    """Driver rendering the search page and returning normalized events."""

    STRATEGY_PAUSE_SECONDS = 5

    def __init__(
        self,
        config,
        processor: Optional[EventProcessor] = None,
        strategies: Optional[Sequence[NavigationStrategy]] = None
    ):
        """
        Initialize the driver.

        Args:
            config: IngestorConfig with source URL, timeout and headless flag
            processor: Normaliser applied to the collected candidates
            strategies: Navigation strategies, tried in order
        """
        self.config = config
        self.processor = processor or EventProcessor()
        self._strategies = strategies

    @property
    def strategies(self) -> List[NavigationStrategy]:
        if self._strategies is not None:
            return list(self._strategies)
        return default_strategies(
            self.config.source_url,
            self.config.site_root_url,
            self.config.request_timeout_ms,
            RetryPolicy(attempts=2, delay_ms=5000, retry_on=(PlaywrightError,)),
        )

    def fetch_events(self) -> List[NormalisedEvent]:
        """
        Render the search page and return its normalized events.

        Never raises: launch failures and strategy exhaustion both produce
        an empty list.

        Returns:
            List of NormalisedEvent objects in candidate rank order
        """
        try:
            candidates = self._collect()
        except Exception as e:
            logger.error(
                f"Browser session failed: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return []

        if not candidates:
            logger.info("No candidates found on the search page")
            return []

        return self.processor.process_events(candidates)

    def _collect(self) -> List[ScrapedRaw]:
        strategies = self.strategies

        with self.browser_page() as page:
            for index, strategy in enumerate(strategies):
                logger.info(
                    f"Trying strategy {index + 1}/{len(strategies)}: {strategy.name}"
                )
                try:
                    candidates = strategy.attempt(page)
                except Exception as e:
                    logger.warning(
                        f"Strategy {strategy.name} failed: {e}",
                        extra={'strategy': strategy.name, 'error_type': type(e).__name__}
                    )
                    candidates = []

                if candidates:
                    logger.info(
                        f"Strategy {strategy.name} found {len(candidates)} candidates"
                    )
                    return candidates

                if index < len(strategies) - 1:
                    time.sleep(self.STRATEGY_PAUSE_SECONDS)

        logger.warning("All navigation strategies exhausted")
        return []

    @contextmanager
    def browser_page(self) -> Iterator:
        """
        Yield a configured page, closing page, context and browser on exit.

        Cleanup errors are logged and swallowed so they never mask the
        outcome of the run.
        """
        with sync_playwright() as playwright:
            browser = None
            context = None
            page = None
            try:
                browser = playwright.chromium.launch(
                    headless=self.config.headless, args=LAUNCH_ARGS
                )
                context = browser.new_context(
                    user_agent=USER_AGENT,
                    viewport=VIEWPORT,
                    locale='en-AU',
                )
                page = context.new_page()
                page.set_default_timeout(DEFAULT_OPERATION_TIMEOUT_MS)
                page.set_default_navigation_timeout(DEFAULT_OPERATION_TIMEOUT_MS)
                page.route('**/*', _route_request)
                yield page
            finally:
                for name, resource in (('page', page), ('context', context), ('browser', browser)):
                    if resource is None:
                        continue
                    try:
                        resource.close()
                    except Exception as e:
                        logger.warning(f"Failed to close {name}: {e}")
