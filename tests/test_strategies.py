"""Unit tests for the navigation strategies."""
from unittest.mock import MagicMock, call

import pytest
from playwright.sync_api import Error as PlaywrightError

from ingestor.retry import RetryPolicy
from scraper.strategies import (
    BODY_LENGTH_SCRIPT,
    ComprehensiveNavigation,
    DirectNavigation,
    StepByStepNavigation,
    default_strategies,
)


SOURCE_URL = 'https://src.example/search?type=masters'
SITE_ROOT = 'https://src.example'

ELEMENT = {
    'selector': '.el-card.is-always-shadow',
    'text': 'NSW Masters Carnival\nAt Leichhardt Oval\n15 July 2025',
    'html': '',
    'href': 'https://src.example/event/9142',
    'hasLinkOrButton': True,
}


def _page(body_length=1500, elements=None):
    """A mock page whose evaluate answers body length and candidate queries."""
    page = MagicMock()
    elements = [ELEMENT] if elements is None else elements

    def evaluate(script, arg=None):
        if script == BODY_LENGTH_SCRIPT:
            return body_length
        return elements

    page.evaluate.side_effect = evaluate
    return page


class TestDirectNavigation:
    """Test cases for DirectNavigation."""

    def test_attempt_collects_candidates(self):
        page = _page()

        candidates = DirectNavigation(SOURCE_URL).attempt(page)

        assert len(candidates) == 1
        assert candidates[0].candidate_href == 'https://src.example/event/9142'
        page.goto.assert_called_once_with(SOURCE_URL, wait_until='networkidle', timeout=60000)
        page.wait_for_timeout.assert_called_once_with(30000)

    def test_stage_timeout_does_not_abort(self):
        page = _page()
        page.wait_for_function.side_effect = PlaywrightError('Timeout 45000ms exceeded')

        candidates = DirectNavigation(SOURCE_URL).attempt(page)

        assert len(candidates) == 1

    def test_navigation_failure_propagates_after_retries(self):
        page = _page()
        page.goto.side_effect = PlaywrightError('net::ERR_CONNECTION_RESET')
        strategy = DirectNavigation(
            SOURCE_URL,
            navigation_retry=RetryPolicy(attempts=2, delay_ms=0, retry_on=(PlaywrightError,)),
        )

        with pytest.raises(PlaywrightError):
            strategy.attempt(page)

        assert page.goto.call_count == 2


class TestStepByStepNavigation:
    """Test cases for StepByStepNavigation."""

    def test_visits_site_root_first(self):
        page = _page()

        StepByStepNavigation(SOURCE_URL, SITE_ROOT, timeout_ms=1000).attempt(page)

        assert page.goto.call_args_list == [
            call(SITE_ROOT, wait_until='networkidle', timeout=1000),
            call(SOURCE_URL, wait_until='networkidle', timeout=1000),
        ]

    def test_stabilises_after_four_checks(self):
        page = _page(body_length=2000)

        StepByStepNavigation(SOURCE_URL).attempt(page)

        # first sample moves away from zero, the next four are stable
        assert page.wait_for_timeout.call_count == 4


class TestComprehensiveNavigation:
    """Test cases for ComprehensiveNavigation."""

    def test_runs_all_stages(self):
        page = _page()

        candidates = ComprehensiveNavigation(SOURCE_URL).attempt(page)

        assert len(candidates) == 1
        # structure, initialisation, relevant results and validation
        assert page.wait_for_function.call_count == 4
        page.wait_for_selector.assert_called_once()
        assert page.wait_for_timeout.call_count == 3

    def test_short_content_never_stable(self):
        page = _page(body_length=200)

        ComprehensiveNavigation(SOURCE_URL).attempt(page)

        assert page.wait_for_timeout.call_count == ComprehensiveNavigation.STABILITY_SAMPLES

    def test_tries_next_result_selector(self):
        page = _page()
        page.wait_for_selector.side_effect = [PlaywrightError('hidden'), None]

        ComprehensiveNavigation(SOURCE_URL).attempt(page)

        assert page.wait_for_selector.call_count == 2


class TestDefaultStrategies:
    """Test cases for the strategy order."""

    def test_order(self):
        strategies = default_strategies(SOURCE_URL, SITE_ROOT)

        assert [s.name for s in strategies] == ['comprehensive', 'step-by-step', 'direct']
        assert all(s.source_url == SOURCE_URL for s in strategies)
