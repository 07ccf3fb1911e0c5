"""Unit tests for JSON logging."""
import json
import logging
import sys

from ingestor.log_config import JsonFormatter


def _record(msg='Reconciliation complete', extra=None, exc_info=None):
    logger = logging.getLogger('ingestor.test')
    return logger.makeRecord(
        logger.name, logging.INFO, __file__, 10, msg, (), exc_info, extra=extra
    )


class TestJsonFormatter:
    """Test cases for JsonFormatter class."""

    def test_base_fields(self):
        data = json.loads(JsonFormatter().format(_record()))

        assert data['level'] == 'INFO'
        assert data['message'] == 'Reconciliation complete'
        assert data['logger'] == 'ingestor.test'
        assert 'timestamp' in data
        assert 'lineno' not in data

    def test_extra_fields_included(self):
        record = _record(extra={'events_created': 2, 'fields': ['external_id']})

        data = json.loads(JsonFormatter().format(record))

        assert data['events_created'] == 2
        assert data['fields'] == ['external_id']

    def test_exception_included(self):
        try:
            raise ValueError('bad row')
        except ValueError:
            record = _record(exc_info=sys.exc_info())

        data = json.loads(JsonFormatter().format(record))

        assert 'ValueError: bad row' in data['exception']
