"""
Dependency Advisor

Tells whether declared npm dependencies have newer or safer versions available.
"""

__version__ = "0.1.0"

from .cli import main

__all__ = ["main"]
