"""
Event broadcasting for the client
"""

from .event_bus import event_bus, EventTypes, SystemEvent

__all__ = ['event_bus', 'EventTypes', 'SystemEvent']
