"""AWS Lambda handler for the Masters carnival sync."""
import json
import logging
import time
from typing import Any, Dict, Optional

from ingestor.config import ConfigurationError, IngestorConfig
from ingestor.log_config import setup_logging
from ingestor.run_controller import RunController
from ingestor.scheduler import run_bootstrap_sync
from ingestor.service import build_controller
from processor.models import RunResult

# Reused across warm invocations so run state survives between them
_controller: Optional[RunController] = None


def get_controller(config: IngestorConfig) -> RunController:
    """Return the cached RunController, building it on first use."""
    global _controller
    if _controller is None:
        _controller = build_controller(config)
    return _controller


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body, default=str)}


def _run_response(result: RunResult, duration: float) -> Dict[str, Any]:
    if result.success:
        status_code = 200
    elif result.message == 'already running':
        status_code = 409
    else:
        status_code = 500

    body = result.to_dict()
    body['duration_seconds'] = round(duration, 2)
    return _response(status_code, body)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler for the carnival sync.

    Supported payloads: ``{"action": "status"}``, ``{"action": "trigger"}``
    (manual run) and ``{"action": "bootstrap"}`` (run unless fresh).
    Anything else, such as an EventBridge scheduled event, performs a
    scheduled run.

    Args:
        event: Invocation payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    start_time = time.time()
    event = event or {}
    action = event.get('action', 'scheduled') if isinstance(event, dict) else 'scheduled'

    try:
        config = IngestorConfig.from_env()
    except ConfigurationError as e:
        setup_logging()
        logging.getLogger(__name__).error(f"Invalid configuration: {e}")
        return _response(500, {
            'message': 'Invalid configuration',
            'error': str(e),
            'error_type': type(e).__name__,
        })

    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)
    logger.info(
        "Lambda execution started",
        extra={
            'action': action,
            'table_name': config.table_name,
            'sync_enabled': config.sync_enabled,
            'use_mock_data': config.use_mock_data,
        }
    )

    try:
        controller = get_controller(config)

        if action == 'status':
            return _response(200, controller.status().to_dict())

        if action == 'trigger':
            result = controller.trigger_manual()
        elif action == 'bootstrap':
            result = run_bootstrap_sync(controller, controller.store, config)
            if result is None:
                return _response(200, {
                    'success': True,
                    'message': 'skipped, imported data is fresh',
                    'trigger': 'bootstrap',
                })
        else:
            result = controller.run(trigger='scheduled')

        duration = time.time() - start_time
        logger.info(
            "Lambda execution completed",
            extra={
                'action': action,
                'success': result.success,
                'processed': result.processed,
                'duration_seconds': round(duration, 2),
            }
        )
        return _run_response(result, duration)

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'message': 'Sync failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
