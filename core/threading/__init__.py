"""
TECHRUN Threading Module
"""

from .frame_scheduler import (
    FrameScheduler,
    ScheduledRequest,
    ContentionPolicy,
    DispatchMode,
    QueueFull,
    monotonic_ms
)

__all__ = [
    'FrameScheduler',
    'ScheduledRequest',
    'ContentionPolicy',
    'DispatchMode',
    'QueueFull',
    'monotonic_ms'
]
