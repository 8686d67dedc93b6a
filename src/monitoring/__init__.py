"""
Monitoring infrastructure for ChapterIP.

This package provides:
- Engine metrics (counters, gauges, histograms)
- Structured logging with JSON output and redaction

Usage:
    from monitoring import metrics, get_logger

    metrics.increment("derivative_registrations_total", labels={"outcome": "success"})

    logger = get_logger(__name__)
    logger.info("Registered derivative", extra={"ip_id": ip_id})
"""

from monitoring.logging import LoggingContext, configure_logging, get_logger
from monitoring.metrics import MetricsCollector, metrics

__all__ = [
    "LoggingContext",
    "MetricsCollector",
    "configure_logging",
    "get_logger",
    "metrics",
]
