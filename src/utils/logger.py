"""
Enhanced Logging Utilities

Provides structured logging with:
- JSON formatting for production
- Timing of analysis passes
- Analytics-specific log helpers (signals, risk alerts)
"""

import logging
import json
import sys
import time
from datetime import datetime
from typing import Optional
from pathlib import Path
from contextlib import contextmanager


EXTRA_FIELDS = (
    'correlation_id',
    'symbol',
    'timeframe',
    'analysis',
    'signal',
    'confidence',
    'alert_type',
    'severity',
    'execution_time',
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        for field_name in EXTRA_FIELDS:
            if hasattr(record, field_name):
                log_entry[field_name] = getattr(record, field_name)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class PerformanceLogger:
    """Logger for tracking how long analysis passes take."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    @contextmanager
    def timer(self, operation: str, **context):
        """Context manager for timing operations."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            execution_time = time.perf_counter() - start_time
            extra = {'execution_time': execution_time, **context}
            self.logger.debug(
                f"Operation completed: {operation} ({execution_time * 1000:.2f}ms)",
                extra=extra
            )


class AnalyticsLogger:
    """Specialized logger for analytics results."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.performance = PerformanceLogger(self.logger)

    def signal(self, symbol: str, analysis: str, signal: str, confidence: float, **context):
        """Log a derived signal (sentiment, trend, bias)."""
        extra = {
            'symbol': symbol,
            'analysis': analysis,
            'signal': signal,
            'confidence': confidence,
            **context
        }
        self.logger.info(
            f"{analysis}: {signal} for {symbol} (confidence={confidence})",
            extra=extra
        )

    def risk_alert(self, alert_type: str, severity: str, message: str, **context):
        """Log risk management alerts."""
        extra = {
            'alert_type': alert_type,
            'severity': severity,
            **context
        }
        if severity.lower() in ['high', 'critical']:
            self.logger.error(f"Risk Alert [{alert_type}]: {message}", extra=extra)
        else:
            self.logger.warning(f"Risk Alert [{alert_type}]: {message}", extra=extra)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = True,
    correlation_id: Optional[str] = None
) -> logging.Logger:
    """
    Setup logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        json_format: Use JSON formatting
        correlation_id: Optional correlation ID for request tracking

    Returns:
        Configured root logger
    """
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level.upper()))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if correlation_id:
        old_factory = logging.getLogRecordFactory()

        def record_factory(*args, **kwargs):
            record = old_factory(*args, **kwargs)
            record.correlation_id = correlation_id
            return record

        logging.setLogRecordFactory(record_factory)

    return logger


def get_analytics_logger(name: str) -> AnalyticsLogger:
    """Get an analytics-specific logger instance."""
    return AnalyticsLogger(name)
