"""
Library modules for screen recorder logging and event dispatch.
"""

from .event_queue import EventQueue, QueueShutdownError

__all__ = [
    'EventQueue',
    'QueueShutdownError',
]
