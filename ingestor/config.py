"""Environment-driven configuration for the carnival ingestor."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlparse


class ConfigurationError(Exception):
    """Raised when the ingestor configuration is unusable."""


TRUE_VALUES = ('true', '1', 'yes')
FALSE_VALUES = ('false', '0', 'no')


def _parse_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = environ.get(name)
    if value is None or value.strip() == '':
        return default
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got '{value}'")


def _parse_int(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if value is None or value.strip() == '':
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{value}'")
    if parsed < 0:
        raise ConfigurationError(f"{name} must not be negative, got {parsed}")
    return parsed


def _site_root(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f'{parsed.scheme}://{parsed.netloc}'


@dataclass
class IngestorConfig:
    """Feature flags and tunables read from the environment."""
    sync_enabled: bool = False
    use_mock_data: bool = False
    enable_scraping: bool = True
    source_url: Optional[str] = None
    site_root_url: Optional[str] = None
    request_timeout_ms: int = 60000
    retry_attempts: int = 3
    request_delay_ms: int = 2000
    headless: bool = True
    mock_on_failure: bool = False
    refresh_unclaimed: bool = False
    deactivate_past_events: bool = False
    sync_cron: str = '0 3 * * *'
    system_user_id: str = 'system'
    environment: str = 'development'
    table_name: str = 'carnivals'
    subscriptions_table_name: str = 'email-subscriptions'
    sender_email: str = 'noreply@oldmanfooty.au'
    base_url: str = 'http://localhost:3000'
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'IngestorConfig':
        """
        Build the configuration from environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            IngestorConfig instance

        Raises:
            ConfigurationError: If a boolean or integer option is malformed
        """
        environ = os.environ if environ is None else environ
        environment = environ.get('ENVIRONMENT', 'development').strip().lower()
        source_url = environ.get('MYSIDELINE_URL', '').strip() or None

        return cls(
            sync_enabled=_parse_bool(environ, 'MYSIDELINE_SYNC_ENABLED', False),
            use_mock_data=_parse_bool(
                environ, 'MYSIDELINE_USE_MOCK', environment == 'development'
            ),
            enable_scraping=_parse_bool(environ, 'MYSIDELINE_ENABLE_SCRAPING', True),
            source_url=source_url,
            site_root_url=(
                environ.get('MYSIDELINE_SITE_URL', '').strip() or _site_root(source_url)
            ),
            request_timeout_ms=_parse_int(environ, 'MYSIDELINE_REQUEST_TIMEOUT', 60000),
            retry_attempts=_parse_int(environ, 'MYSIDELINE_RETRY_ATTEMPTS', 3),
            request_delay_ms=_parse_int(environ, 'MYSIDELINE_REQUEST_DELAY', 2000),
            headless=_parse_bool(environ, 'MYSIDELINE_HEADLESS', True),
            mock_on_failure=_parse_bool(environ, 'MYSIDELINE_MOCK_ON_FAILURE', False),
            refresh_unclaimed=_parse_bool(environ, 'MYSIDELINE_REFRESH_UNCLAIMED', False),
            deactivate_past_events=_parse_bool(environ, 'MYSIDELINE_DEACTIVATE_PAST', False),
            sync_cron=environ.get('MYSIDELINE_SYNC_CRON', '0 3 * * *').strip(),
            system_user_id=environ.get('MYSIDELINE_SYSTEM_USER_ID', 'system').strip(),
            environment=environment,
            table_name=environ.get('TABLE_NAME', 'carnivals'),
            subscriptions_table_name=environ.get(
                'SUBSCRIPTIONS_TABLE_NAME', 'email-subscriptions'
            ),
            sender_email=environ.get('NOTIFY_FROM_EMAIL', 'noreply@oldmanfooty.au'),
            base_url=environ.get('BASE_URL', 'http://localhost:3000').rstrip('/'),
            log_level=environ.get('LOG_LEVEL', 'INFO'),
        )

    @property
    def is_production(self) -> bool:
        return self.environment == 'production'

    @property
    def requires_source_url(self) -> bool:
        return self.enable_scraping and not self.use_mock_data

    def validate(self) -> None:
        """
        Check the options a run depends on.

        Raises:
            ConfigurationError: If scraping is configured without a usable URL
        """
        if not self.requires_source_url:
            return
        if not self.source_url:
            raise ConfigurationError('MYSIDELINE_URL is required when scraping is enabled')
        if not _site_root(self.source_url):
            raise ConfigurationError(f"MYSIDELINE_URL is not an absolute URL: '{self.source_url}'")
        if self.request_timeout_ms <= 0:
            raise ConfigurationError('MYSIDELINE_REQUEST_TIMEOUT must be positive')
