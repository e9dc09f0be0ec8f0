"""
Logging configuration for the Messente client

The library itself only emits records through module loggers. Applications
(and the bundled CLI) call setup_logging() to route them somewhere.
"""

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone


def setup_logging(log_level=None, log_file=None, max_bytes=10*1024*1024, backup_count=5):
    """
    Set up logging for the Messente client.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (if None, logs to stderr)
        max_bytes: Maximum size of log file before rotation (default 10MB)
        backup_count: Number of backup log files to keep (default 5)
    """

    if log_level is None:
        log_level = os.environ.get('LOG_LEVEL', 'WARNING')
    log_level = log_level.upper()

    if log_file is None:
        log_file = os.environ.get('LOG_FILE')

    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.WARNING))

    root_logger.handlers.clear()

    if log_file:
        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count
        )
    else:
        # stdout is reserved for command output
        handler = logging.StreamHandler(sys.stderr)

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logger = logging.getLogger(__name__)
    logger.debug(f"Logging initialized - Level: {log_level}, Output: {log_file or 'stderr'}")

    return logger


def get_logger(name):
    return logging.getLogger(name)


def log_sms_event(event_type, message_id=None, to_number=None, from_number=None,
                  success=True, error=None):
    """
    Log SMS-related events with structured information.

    Args:
        event_type: Type of SMS event (e.g., 'sms_sent', 'sms_failed', 'dlr_polled')
        message_id: Gateway message ID
        to_number: Recipient phone number
        from_number: Sender ID
        success: Whether the operation was successful
        error: Error message if applicable
    """
    logger = logging.getLogger('messente.sms')

    log_data = {
        'event_type': event_type,
        'success': success,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }

    if message_id:
        log_data['message_id'] = message_id
    if to_number:
        log_data['to_number'] = to_number
    if from_number:
        log_data['from_number'] = from_number
    if error:
        log_data['error'] = error

    # key=value pairs for easy parsing
    log_message = ' '.join([f"{k}={v}" for k, v in log_data.items()])

    if success:
        logger.info(f"SMS: {log_message}")
    else:
        logger.warning(f"SMS: {log_message}")
