"""
Utility modules for NWHA.

This package provides common utilities:
- logger: Structured logging
- helpers: Helper functions
"""

from nwha.utils.logger import (
    setup_logging,
    log_invocation,
    log_transition,
    LogLevel,
)
from nwha.utils.helpers import (
    slugify,
    truncate_string,
    format_bytes,
    format_duration,
)

__all__ = [
    # Logger
    "setup_logging",
    "log_invocation",
    "log_transition",
    "LogLevel",
    # Helpers
    "slugify",
    "truncate_string",
    "format_bytes",
    "format_duration",
]
