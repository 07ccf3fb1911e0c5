"""Unit tests for BrowserDriver."""
from unittest.mock import MagicMock, patch

import pytest

from processor.models import ScrapedRaw
from scraper.browser_driver import (
    LAUNCH_ARGS,
    USER_AGENT,
    BrowserDriver,
    _route_request,
    should_block,
)


LEICHHARDT = ScrapedRaw(
    raw_text=(
        "NSW Masters Carnival\n"
        "At Leichhardt Oval\n"
        "15 July 2025\n"
        "Register at https://src.example/event/9142"
    ),
    relevance_score=13,
)


def _strategy(name, result=None, error=None):
    strategy = MagicMock()
    strategy.name = name
    if error is not None:
        strategy.attempt.side_effect = error
    else:
        strategy.attempt.return_value = result or []
    return strategy


@pytest.fixture
def playwright_mocks():
    """Patch sync_playwright and return the mocked browser objects."""
    with patch('scraper.browser_driver.sync_playwright') as mock_sync_playwright:
        playwright = MagicMock()
        browser = MagicMock()
        context = MagicMock()
        page = MagicMock()
        mock_sync_playwright.return_value.__enter__.return_value = playwright
        playwright.chromium.launch.return_value = browser
        browser.new_context.return_value = context
        context.new_page.return_value = page
        yield {
            'playwright': playwright,
            'browser': browser,
            'context': context,
            'page': page,
        }


class TestShouldBlock:
    """Test cases for request blocking."""

    @pytest.mark.parametrize('url,resource_type,expected', [
        ('https://www.google-analytics.com/analytics.js', 'script', True),
        ('https://connect.facebook.net/en_US/fbevents.js', 'script', True),
        ('https://src.example/fonts/roboto.woff2', 'font', True),
        ('https://src.example/intro.mp4', 'media', True),
        ('https://src.example/api/collect?id=1', 'xhr', True),
        ('https://src.example/search?type=masters', 'document', False),
        ('https://src.example/app.js', 'script', False),
        ('https://src.example/logo.png', 'image', False),
    ])
    def test_should_block(self, url, resource_type, expected):
        assert should_block(url, resource_type) is expected

    def test_route_request(self):
        route = MagicMock()
        route.request.url = 'https://www.googletagmanager.com/gtm.js'
        route.request.resource_type = 'script'
        _route_request(route)
        route.abort.assert_called_once()
        route.continue_.assert_not_called()

        route = MagicMock()
        route.request.url = 'https://src.example/search'
        route.request.resource_type = 'document'
        _route_request(route)
        route.continue_.assert_called_once()
        route.abort.assert_not_called()


class TestBrowserDriver:
    """Test cases for BrowserDriver class."""

    @patch('scraper.browser_driver.time.sleep')
    def test_first_successful_strategy_wins(self, mock_sleep, config, playwright_mocks):
        first = _strategy('comprehensive', [LEICHHARDT])
        second = _strategy('direct', [LEICHHARDT])
        driver = BrowserDriver(config, strategies=[first, second])

        events = driver.fetch_events()

        assert len(events) == 1
        assert events[0].external_id == '9142'
        second.attempt.assert_not_called()
        mock_sleep.assert_not_called()

    @patch('scraper.browser_driver.time.sleep')
    def test_falls_back_through_strategies(self, mock_sleep, config, playwright_mocks):
        first = _strategy('comprehensive', error=RuntimeError('navigation timeout'))
        second = _strategy('step-by-step', [])
        third = _strategy('direct', [LEICHHARDT])
        driver = BrowserDriver(config, strategies=[first, second, third])

        events = driver.fetch_events()

        assert [event.title for event in events] == ['NSW Masters Carnival']
        third.attempt.assert_called_once_with(playwright_mocks['page'])
        assert mock_sleep.call_count == 2
        mock_sleep.assert_called_with(5)

    @patch('scraper.browser_driver.time.sleep')
    def test_all_strategies_fail(self, mock_sleep, config, playwright_mocks):
        strategies = [
            _strategy('comprehensive', error=RuntimeError('timeout')),
            _strategy('step-by-step', error=RuntimeError('timeout')),
            _strategy('direct', []),
        ]
        driver = BrowserDriver(config, strategies=strategies)

        assert driver.fetch_events() == []
        # no pause after the last strategy
        assert mock_sleep.call_count == 2

    def test_launch_failure_returns_empty(self, config, playwright_mocks):
        playwright_mocks['playwright'].chromium.launch.side_effect = RuntimeError(
            'Executable does not exist'
        )
        driver = BrowserDriver(config, strategies=[_strategy('direct', [LEICHHARDT])])

        assert driver.fetch_events() == []

    def test_browser_configuration_and_cleanup(self, config, playwright_mocks):
        driver = BrowserDriver(config, strategies=[_strategy('direct', [LEICHHARDT])])

        driver.fetch_events()

        playwright_mocks['playwright'].chromium.launch.assert_called_once_with(
            headless=True, args=LAUNCH_ARGS
        )
        playwright_mocks['browser'].new_context.assert_called_once_with(
            user_agent=USER_AGENT,
            viewport={'width': 1366, 'height': 768},
            locale='en-AU',
        )
        page = playwright_mocks['page']
        page.route.assert_called_once_with('**/*', _route_request)
        page.close.assert_called_once()
        playwright_mocks['context'].close.assert_called_once()
        playwright_mocks['browser'].close.assert_called_once()

    def test_cleanup_errors_are_swallowed(self, config, playwright_mocks):
        playwright_mocks['page'].close.side_effect = RuntimeError('already closed')
        driver = BrowserDriver(config, strategies=[_strategy('direct', [LEICHHARDT])])

        events = driver.fetch_events()

        assert len(events) == 1
        playwright_mocks['browser'].close.assert_called_once()

    def test_no_candidates_skips_processing(self, config, playwright_mocks):
        processor = MagicMock()
        processor.process_events.side_effect = AssertionError('not reached')
        driver = BrowserDriver(config, processor=processor, strategies=[])

        assert driver.fetch_events() == []
        processor.process_events.assert_not_called()
        playwright_mocks['browser'].close.assert_called_once()

    def test_default_strategies_from_config(self, config):
        driver = BrowserDriver(config)

        strategies = driver.strategies

        assert [s.name for s in strategies] == ['comprehensive', 'step-by-step', 'direct']
        assert strategies[0].source_url == config.source_url
        assert strategies[1].site_root_url == 'https://src.example'
        assert strategies[0].navigation_retry.attempts == 2
        assert strategies[0].navigation_retry.delay_ms == 5000
