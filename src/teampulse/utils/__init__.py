"""TeamPulse utility modules."""

from teampulse.utils.logging import (
    LogMode,
    TeamPulseLogger,
    configure_from_cli,
    get_logger,
    log_progress_event,
    setup_logging,
)

__all__ = [
    "LogMode",
    "TeamPulseLogger",
    "configure_from_cli",
    "get_logger",
    "log_progress_event",
    "setup_logging",
]
