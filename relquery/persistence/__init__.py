"""
relquery Persistence Module

Explicit unit of work used to store entities before querying them.
"""

from .session import Session

__all__ = ["Session"]
