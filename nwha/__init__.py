"""
NWHA - autonomous coding-agent sessions over an interactive terminal.

Drives bounded agent loops against a project: each session owns one
pseudo-terminal and obtains its instructions from an external AI command
line tool, falling back to a secondary tool when the primary one fails.
"""

__version__ = "0.1.0"
__author__ = "NWHA Team"
__license__ = "MIT"

from nwha.models.config import NwhaConfig

__all__ = [
    "__version__",
    "NwhaConfig",
]
