"""Integration tests for Lambda handler."""
import json
import os
from unittest.mock import Mock, patch

import pytest

import lambda_function
from lambda_function import lambda_handler
from processor.models import RunResult, RunStatus


@pytest.fixture
def mock_env():
    """Set up environment variables for testing."""
    env_vars = {
        'TABLE_NAME': 'test-carnivals',
        'LOG_LEVEL': 'INFO',
        'ENVIRONMENT': 'test',
        'MYSIDELINE_SYNC_ENABLED': 'true',
        'MYSIDELINE_URL': 'https://src.example/search?type=masters',
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def mock_context():
    """Create a mock Lambda context."""
    context = Mock()
    context.function_name = 'test-function'
    context.memory_limit_in_mb = 1024
    context.invoked_function_arn = 'arn:aws:lambda:ap-southeast-2:123456789012:function:test-function'
    context.aws_request_id = 'test-request-id'
    return context


@pytest.fixture(autouse=True)
def reset_controller():
    lambda_function._controller = None
    yield
    lambda_function._controller = None


@pytest.fixture
def mock_build():
    with patch('lambda_function.build_controller') as mock_build:
        yield mock_build


class TestLambdaHandler:
    """Test cases for Lambda handler."""

    def test_scheduled_run(self, mock_env, mock_context, mock_build):
        """Test a scheduled EventBridge invocation."""
        controller = mock_build.return_value
        controller.run.return_value = RunResult(
            success=True, processed=4, created=2, updated=1,
            message='4 events processed', trigger='scheduled', duration_seconds=1.5,
        )

        response = lambda_handler({'source': 'aws.events'}, mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['success'] is True
        assert body['processed'] == 4
        assert body['created'] == 2
        assert body['trigger'] == 'scheduled'
        assert 'duration_seconds' in body
        controller.run.assert_called_once_with(trigger='scheduled')

        config = mock_build.call_args[0][0]
        assert config.table_name == 'test-carnivals'
        assert config.sync_enabled is True

    def test_controller_reused_across_invocations(self, mock_env, mock_context, mock_build):
        mock_build.return_value.run.return_value = RunResult(success=True)

        lambda_handler({}, mock_context)
        lambda_handler({}, mock_context)

        mock_build.assert_called_once()

    def test_manual_trigger(self, mock_env, mock_context, mock_build):
        controller = mock_build.return_value
        controller.trigger_manual.return_value = RunResult(success=True, trigger='manual')

        response = lambda_handler({'action': 'trigger'}, mock_context)

        assert response['statusCode'] == 200
        controller.trigger_manual.assert_called_once()
        controller.run.assert_not_called()

    def test_already_running_is_conflict(self, mock_env, mock_context, mock_build):
        mock_build.return_value.trigger_manual.return_value = RunResult(
            success=False, message='already running', trigger='manual'
        )

        response = lambda_handler({'action': 'trigger'}, mock_context)

        assert response['statusCode'] == 409
        assert json.loads(response['body'])['message'] == 'already running'

    def test_failed_run(self, mock_env, mock_context, mock_build):
        mock_build.return_value.run.return_value = RunResult(success=False, error='misconfigured')

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 500
        assert json.loads(response['body'])['error'] == 'misconfigured'

    def test_status(self, mock_env, mock_context, mock_build):
        mock_build.return_value.status.return_value = RunStatus(
            is_running=False, sync_enabled=True, last_run_at=None,
            last_result=None, total_imported=3, sync_percentage=37.5,
        )

        response = lambda_handler({'action': 'status'}, mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['total_imported'] == 3
        assert body['sync_percentage'] == 37.5
        assert body['last_run_at'] is None

    @patch('lambda_function.run_bootstrap_sync')
    def test_bootstrap_skipped(self, mock_bootstrap, mock_env, mock_context, mock_build):
        mock_bootstrap.return_value = None

        response = lambda_handler({'action': 'bootstrap'}, mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['trigger'] == 'bootstrap'
        assert body['message'].startswith('skipped')

    @patch('lambda_function.run_bootstrap_sync')
    def test_bootstrap_runs(self, mock_bootstrap, mock_env, mock_context, mock_build):
        mock_bootstrap.return_value = RunResult(success=True, processed=3, trigger='bootstrap')

        response = lambda_handler({'action': 'bootstrap'}, mock_context)

        assert response['statusCode'] == 200
        assert json.loads(response['body'])['processed'] == 3
        controller = mock_build.return_value
        mock_bootstrap.assert_called_once()
        assert mock_bootstrap.call_args[0][:2] == (controller, controller.store)

    def test_invalid_configuration(self, mock_env, mock_context, mock_build):
        with patch.dict(os.environ, {'MYSIDELINE_RETRY_ATTEMPTS': 'lots'}):
            response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 500
        assert json.loads(response['body'])['error_type'] == 'ConfigurationError'
        mock_build.assert_not_called()

    def test_unexpected_error(self, mock_env, mock_context, mock_build):
        mock_build.side_effect = Exception("Unexpected error")

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['message'] == 'Sync failed'
        assert body['error'] == 'Unexpected error'
        assert body['error_type'] == 'Exception'
