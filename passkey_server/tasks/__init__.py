"""
Background tasks module for challenge store maintenance.
"""

from .scheduler import BackgroundTaskScheduler, ScheduledTask

__all__ = [
    "BackgroundTaskScheduler",
    "ScheduledTask",
]
