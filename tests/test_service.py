"""Unit tests for the object graph wiring."""
from ingestor.reconciler import Reconciler
from ingestor.service import build_controller
from notifier.email_notifier import EmailNotifier
from scraper.browser_driver import BrowserDriver
from storage.event_store import EventStore


class TestBuildController:
    """Test cases for build_controller."""

    def test_wires_collaborators(self, aws, config):
        controller = build_controller(config)

        assert isinstance(controller.store, EventStore)
        assert controller.store.table_name == 'test-carnivals'
        assert isinstance(controller.reconciler, Reconciler)
        assert controller.reconciler.store is controller.store
        assert controller.reconciler.request_delay_ms == 0
        assert isinstance(controller.reconciler.notifier, EmailNotifier)
        assert controller.reconciler.notifier.base_url == 'https://oldmanfooty.example'
        assert isinstance(controller.driver, BrowserDriver)
        assert controller.driver.config is config

    def test_status_on_empty_table(self, aws, config):
        status = build_controller(config).status()

        assert status.total_imported == 0
        assert status.sync_percentage == 0.0
        assert status.is_running is False
