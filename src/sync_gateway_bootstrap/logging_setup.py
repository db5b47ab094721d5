import os
import json
import logging
from logging.handlers import RotatingFileHandler

class StructuredFormatter(logging.Formatter):
    """
    Custom formatter that outputs JSON for structured logging.
    """
    def format(self, record):
        # Check if this is a structured log entry
        if hasattr(record, 'json_fields') and record.json_fields.get('structured_event'):
            # One JSON object per line for structured events
            return json.dumps(record.json_fields, separators=(',', ':'), default=str)
        else:
            # Use standard formatting for regular log messages
            return super().format(record)

class StructuredFilter(logging.Filter):
    """
    Filter that only allows structured log events to pass through.
    """
    def filter(self, record):
        return (hasattr(record, 'json_fields') and
                record.json_fields.get('structured_event', False))

class NonStructuredFilter(logging.Filter):
    """
    Filter that only allows non-structured log events to pass through.
    """
    def filter(self, record):
        return not (hasattr(record, 'json_fields') and
                   record.json_fields.get('structured_event', False))

def setup_logger(name: str, level: str, log_file: str | None, max_bytes: int, backup_count: int,
                enable_structured_console: bool = False, enable_structured_file: bool = False,
                structured_log_file: str | None = None):
    """
    Logger setup with human-readable console/file output and optional JSON lines
    for structured events.

    Calling this twice for the same name replaces the previous handlers, so the
    bootstrap can be re-run in-process without duplicated output.

    Args:
        name (str): Logger name shared by every module of the package.
        level (str): Level name, e.g. "INFO".
        log_file (str): Rotating log file for regular messages, or None.
        max_bytes (int): Rotation size for both files.
        backup_count (int): Rotated backups to keep.
        enable_structured_console (bool): Output JSON to console for structured events
        enable_structured_file (bool): Output JSON to separate structured log file
        structured_log_file (str): Path to structured JSON log file
    """
    logger_name = name or os.getenv("LOGGER_NAME", "SYNC_GATEWAY_BOOTSTRAP")
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, level, logging.INFO))

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    regular_formatter = logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s')
    structured_formatter = StructuredFormatter()

    # Set up console (stream) logging
    ch = logging.StreamHandler()
    ch.setLevel(getattr(logging, level, logging.INFO))

    if enable_structured_console:
        ch.setFormatter(structured_formatter)
        ch.addFilter(StructuredFilter())
    else:
        ch.setFormatter(regular_formatter)
        ch.addFilter(NonStructuredFilter())

    logger.addHandler(ch)
    if enable_structured_console:
        logger.info("Console structured logging enabled (JSON output for structured events only)")

    # Set up regular file logging (non-structured events only)
    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            fh = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
            fh.setLevel(getattr(logging, level, logging.INFO))
            fh.setFormatter(regular_formatter)
            fh.addFilter(NonStructuredFilter())
            logger.addHandler(fh)
            logger.debug(f"Regular file logging enabled: {log_file}")
        except Exception as e:
            logger.warning(f"Could not setup regular file logging at {log_file}: {e}")

    # Set up structured JSON file logging (structured events only)
    if enable_structured_file and structured_log_file:
        try:
            structured_dir = os.path.dirname(structured_log_file)
            if structured_dir:
                os.makedirs(structured_dir, exist_ok=True)
            sfh = RotatingFileHandler(structured_log_file, maxBytes=max_bytes, backupCount=backup_count)
            sfh.setLevel(getattr(logging, level, logging.INFO))
            sfh.setFormatter(structured_formatter)
            sfh.addFilter(StructuredFilter())
            logger.addHandler(sfh)
            logger.debug(f"Structured JSON file logging enabled: {structured_log_file}")
        except Exception as e:
            logger.warning(f"Could not setup structured file logging at {structured_log_file}: {e}")

    return logger
