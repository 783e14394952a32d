"""Observability for camera-hub: structured logging and acquisition stats.

Example:
    from camera_hub.observability import AcquisitionStats, LogContext, get_logger

    logger = get_logger(__name__)

    with LogContext(camera_id=0):
        logger.info("Feed started", subscription="1718000000000")

    stats = AcquisitionStats()
    camera = Camera(config, stats=stats)
"""

from camera_hub.observability.logging import (
    JSONFormatter,
    LogContext,
    StructuredFormatter,
    StructuredLogger,
    configure_logging,
    get_logger,
    reset_logging,
)
from camera_hub.observability.stats import (
    AcquisitionStats,
    StatsSummary,
)

__all__ = [
    # Logging
    "JSONFormatter",
    "LogContext",
    "StructuredFormatter",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
    # Statistics
    "AcquisitionStats",
    "StatsSummary",
]
