"""Unit tests for IngestorConfig."""
import pytest

from ingestor.config import ConfigurationError, IngestorConfig


class TestIngestorConfig:
    """Test cases for IngestorConfig class."""

    def test_defaults(self):
        config = IngestorConfig.from_env({})

        assert config.sync_enabled is False
        assert config.use_mock_data is True
        assert config.enable_scraping is True
        assert config.source_url is None
        assert config.request_timeout_ms == 60000
        assert config.retry_attempts == 3
        assert config.request_delay_ms == 2000
        assert config.headless is True
        assert config.mock_on_failure is False
        assert config.sync_cron == '0 3 * * *'
        assert config.environment == 'development'
        assert config.is_production is False

    def test_mock_defaults_off_outside_development(self):
        assert IngestorConfig.from_env({'ENVIRONMENT': 'production'}).use_mock_data is False

    def test_parses_values(self):
        config = IngestorConfig.from_env({
            'MYSIDELINE_SYNC_ENABLED': 'TRUE',
            'MYSIDELINE_USE_MOCK': '0',
            'MYSIDELINE_URL': 'https://src.example/search?type=masters',
            'MYSIDELINE_REQUEST_TIMEOUT': '90000',
            'MYSIDELINE_RETRY_ATTEMPTS': '5',
            'MYSIDELINE_REQUEST_DELAY': '0',
            'MYSIDELINE_HEADLESS': 'no',
            'MYSIDELINE_REFRESH_UNCLAIMED': 'yes',
            'MYSIDELINE_SYNC_CRON': '30 2 * * 1',
            'ENVIRONMENT': 'Production',
            'TABLE_NAME': 'prod-carnivals',
            'BASE_URL': 'https://oldmanfooty.au/',
        })

        assert config.sync_enabled is True
        assert config.use_mock_data is False
        assert config.site_root_url == 'https://src.example'
        assert config.request_timeout_ms == 90000
        assert config.retry_attempts == 5
        assert config.request_delay_ms == 0
        assert config.headless is False
        assert config.refresh_unclaimed is True
        assert config.sync_cron == '30 2 * * 1'
        assert config.is_production is True
        assert config.table_name == 'prod-carnivals'
        assert config.base_url == 'https://oldmanfooty.au'

    def test_explicit_site_root(self):
        config = IngestorConfig.from_env({
            'MYSIDELINE_URL': 'https://src.example/search',
            'MYSIDELINE_SITE_URL': 'https://www.src.example',
        })

        assert config.site_root_url == 'https://www.src.example'

    @pytest.mark.parametrize('name,value', [
        ('MYSIDELINE_SYNC_ENABLED', 'maybe'),
        ('MYSIDELINE_RETRY_ATTEMPTS', 'three'),
        ('MYSIDELINE_REQUEST_DELAY', '-1'),
    ])
    def test_malformed_values(self, name, value):
        with pytest.raises(ConfigurationError):
            IngestorConfig.from_env({name: value})

    def test_validate_requires_source_url_when_scraping(self):
        with pytest.raises(ConfigurationError):
            IngestorConfig(use_mock_data=False, enable_scraping=True).validate()

    def test_validate_rejects_relative_url(self):
        with pytest.raises(ConfigurationError):
            IngestorConfig(source_url='/search?type=masters').validate()

    def test_validate_rejects_zero_timeout(self):
        with pytest.raises(ConfigurationError):
            IngestorConfig(source_url='https://src.example', request_timeout_ms=0).validate()

    def test_validate_ignores_url_in_mock_mode(self):
        IngestorConfig(use_mock_data=True).validate()
        IngestorConfig(enable_scraping=False).validate()
