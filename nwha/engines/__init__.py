"""
Engines package.

Runs external AI command line tools and coordinates the primary/secondary
fallback between them.
"""

from nwha.engines.invoker import CommandInvoker
from nwha.engines.fallback import FallbackCoordinator

__all__ = [
    "CommandInvoker",
    "FallbackCoordinator",
]
