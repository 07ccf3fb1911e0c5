"""Navigation strategies for reaching a rendered, content-bearing search page."""
import logging
from typing import Callable, List, Optional

from playwright.sync_api import Error as PlaywrightError

from ingestor.retry import RetryPolicy
from processor.models import ScrapedRaw
from scraper.candidates import collect_candidates

logger = logging.getLogger(__name__)


RESULT_CONTAINER_SELECTORS = [
    '.el-card.is-always-shadow',
    '[id^="clubsearch_"]',
    '.el-card__body',
    '.search-results',
    '.result-item',
    '.club-item',
    '.search-item',
    '.results-container',
    '[data-testid*="result"]',
    '.MuiGrid-container',
    '.list-group',
    'table tbody',
]

PAGE_STRUCTURE_SCRIPT = "() => document.querySelectorAll('*').length >= 50"

JS_INITIALISED_SCRIPT = """
() => {
    const interactive = document.querySelectorAll('button, input, select, a').length;
    const text = document.body ? document.body.innerText.trim().length : 0;
    const scripts = document.querySelectorAll('script').length;
    return interactive >= 5 && text >= 500 && scripts > 0;
}
"""

BODY_LENGTH_SCRIPT = "() => document.body ? document.body.innerText.length : 0"

RELEVANT_RESULTS_SCRIPT = """
(selectors) => {
    const keywords = ['masters', 'rugby', 'league', 'club', 'tournament', 'competition'];
    let matches = 0;
    for (const selector of selectors) {
        for (const el of document.querySelectorAll(selector)) {
            const text = (el.innerText || '').toLowerCase();
            if (keywords.some((keyword) => text.includes(keyword))) {
                matches++;
            }
        }
    }
    return matches >= 3;
}
"""

CONTENT_VALID_SCRIPT = """
() => {
    const text = document.body ? document.body.innerText : '';
    const hasTitle = document.title && document.title.length > 0;
    const hasLandmarks = document.querySelectorAll('nav, header, .el-card, .card, .search-result').length > 0;
    return hasTitle && text.length > 500 && hasLandmarks;
}
"""

MEANINGFUL_CONTENT_SCRIPT = """
() => {
    const text = document.body ? document.body.innerText : '';
    const structural = document.querySelectorAll('div, section, article, main').length;
    return text.length > 2000 && structural >= 30;
}
"""


class NavigationStrategy:
    """
    Base class for one way of reaching the search results.

    Subclasses implement ``_navigate``; ``attempt`` then collects candidates
    from whatever the page shows. Navigation errors propagate so the driver
    can move to the next strategy. Failures of individual waiting stages are
    logged and the strategy carries on.
    """

    name = 'base'

    def __init__(
        self,
        source_url: str,
        site_root_url: Optional[str] = None,
        timeout_ms: int = 60000,
        navigation_retry: Optional[RetryPolicy] = None
    ):
        self.source_url = source_url
        self.site_root_url = site_root_url
        self.timeout_ms = timeout_ms
        self.navigation_retry = navigation_retry or RetryPolicy(
            attempts=1, delay_ms=0, retry_on=(PlaywrightError,)
        )

    def attempt(self, page) -> List[ScrapedRaw]:
        """
        Navigate and collect candidates.

        Args:
            page: Playwright page owned by the current run

        Returns:
            Ranked candidates, possibly empty
        """
        logger.info(f"Starting {self.name} navigation")
        self._navigate(page)
        return collect_candidates(page)

    def _navigate(self, page) -> None:
        raise NotImplementedError

    def _goto(self, page, url: str) -> None:
        logger.info(f"Navigating to {url}")
        self.navigation_retry.call(
            page.goto, url, wait_until='networkidle', timeout=self.timeout_ms
        )

    def _stage(self, name: str, wait: Callable[[], None]) -> bool:
        try:
            wait()
            logger.debug(f"Stage '{name}' complete")
            return True
        except PlaywrightError as e:
            logger.warning(f"Stage '{name}' did not complete: {e}")
            return False

    def _wait_until(self, page, script: str, timeout_ms: int, arg=None) -> None:
        page.wait_for_function(script, arg=arg, timeout=timeout_ms)

    @staticmethod
    def _body_length(page) -> int:
        return int(page.evaluate(BODY_LENGTH_SCRIPT) or 0)


class ComprehensiveNavigation(NavigationStrategy):
    """Navigate once, then wait through five progressively stricter stages."""

    name = 'comprehensive'

    STABILITY_SAMPLES = 10
    STABLE_CHECKS_REQUIRED = 3
    STABILITY_INTERVAL_MS = 3000
    STABILITY_MIN_LENGTH = 1000
    SELECTOR_TIMEOUT_MS = 8000

    def _navigate(self, page) -> None:
        self._goto(page, self.source_url)

        self._stage('page structure', lambda: self._wait_until(
            page, PAGE_STRUCTURE_SCRIPT, 45000
        ))
        self._stage('javascript initialisation', lambda: self._wait_until(
            page, JS_INITIALISED_SCRIPT, 60000
        ))
        self._stage('dynamic content', lambda: self._wait_for_stable_content(page))
        self._stage('search results', lambda: self._wait_for_search_results(page))
        self._stage('content validation', lambda: self._wait_until(
            page, CONTENT_VALID_SCRIPT, 30000
        ))

    def _wait_for_stable_content(self, page) -> None:
        previous_length = -1
        stable_checks = 0

        for sample in range(self.STABILITY_SAMPLES):
            current_length = self._body_length(page)
            logger.debug(f"Content sample {sample + 1}: {current_length} characters")

            if current_length == previous_length and current_length > self.STABILITY_MIN_LENGTH:
                stable_checks += 1
                if stable_checks >= self.STABLE_CHECKS_REQUIRED:
                    logger.info("Page content is stable")
                    return
            else:
                stable_checks = 0

            previous_length = current_length
            page.wait_for_timeout(self.STABILITY_INTERVAL_MS)

    def _wait_for_search_results(self, page) -> None:
        for selector in RESULT_CONTAINER_SELECTORS:
            try:
                page.wait_for_selector(
                    selector, state='visible', timeout=self.SELECTOR_TIMEOUT_MS
                )
                logger.info(f"Result container visible: {selector}")
                break
            except PlaywrightError:
                continue

        self._wait_until(page, RELEVANT_RESULTS_SCRIPT, 45000, arg=RESULT_CONTAINER_SELECTORS)


class StepByStepNavigation(NavigationStrategy):
    """Establish a session on the site root before loading the search page."""

    name = 'step-by-step'

    SESSION_PAUSE_MS = 5000
    STABILITY_SAMPLES = 15
    STABLE_CHECKS_REQUIRED = 4
    STABILITY_INTERVAL_MS = 2000
    STABILITY_TOLERANCE = 100
    STABILITY_MIN_LENGTH = 1000

    def _navigate(self, page) -> None:
        if self.site_root_url:
            self._goto(page, self.site_root_url)
            page.wait_for_timeout(self.SESSION_PAUSE_MS)
        self._goto(page, self.source_url)
        self._stage('content stabilisation', lambda: self._wait_for_stabilisation(page))

    def _wait_for_stabilisation(self, page) -> None:
        previous_length = 0
        stable_checks = 0

        for _ in range(self.STABILITY_SAMPLES):
            current_length = self._body_length(page)
            if (abs(current_length - previous_length) < self.STABILITY_TOLERANCE
                    and current_length > self.STABILITY_MIN_LENGTH):
                stable_checks += 1
                if stable_checks >= self.STABLE_CHECKS_REQUIRED:
                    logger.info("Page content stabilised")
                    return
            else:
                stable_checks = 0
            previous_length = current_length
            page.wait_for_timeout(self.STABILITY_INTERVAL_MS)

        logger.info("Content stabilisation window elapsed")


class DirectNavigation(NavigationStrategy):
    """Navigate, wait a fixed interval and poll for meaningful content."""

    name = 'direct'

    SETTLE_MS = 30000

    def _navigate(self, page) -> None:
        self._goto(page, self.source_url)
        page.wait_for_timeout(self.SETTLE_MS)
        self._stage('meaningful content', lambda: self._wait_until(
            page, MEANINGFUL_CONTENT_SCRIPT, 45000
        ))


def default_strategies(
    source_url: str,
    site_root_url: Optional[str] = None,
    timeout_ms: int = 60000,
    navigation_retry: Optional[RetryPolicy] = None
) -> List[NavigationStrategy]:
    """Return the strategies in the order they are tried."""
    return [
        strategy_class(source_url, site_root_url, timeout_ms, navigation_retry)
        for strategy_class in (
            ComprehensiveNavigation, StepByStepNavigation, DirectNavigation
        )
    ]
