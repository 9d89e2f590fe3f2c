"""
MQTT Publishers
==============

Bounded Context: Message Production

Design:
- BasePublisher: Abstract base with connection management
- RegionEventPublisher: Publishes region-entered notifications
- Separation of concerns: Publishers format, broker publishes

Public API
----------
    BasePublisher: Abstract publisher (for custom publishers)
    RegionEventPublisher: Region-entered notification publisher
    event_topic: Per-device event topic helper
"""

from .base import BasePublisher
from .region_event import RegionEventPublisher, event_topic

__all__ = [
    'BasePublisher',
    'RegionEventPublisher',
    'event_topic',
]
