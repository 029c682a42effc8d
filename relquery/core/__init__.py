"""
Core Components

Configuration shared by the metamodel, planner and execution engine.
"""

from relquery.core.config import Settings, settings, get_settings

__all__ = [
    "Settings",
    "settings",
    "get_settings",
]
