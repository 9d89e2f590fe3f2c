"""
statetrack Schemas
==================

Bounded Context: Data Structures

Immutable, typed data structures exchanged with the remote store and the
notification dispatcher.

Design:
- Frozen dataclasses (immutability)
- to_dict() for JSON serialization
- from_dict() for deserialization (raises ValueError)
- Schema versioning for evolution

Public API
----------
Common Types:
    Timestamp: ISO 8601 timestamp wrapper
    unique_regions, union_regions: order-keeping set helpers

Record Types:
    VisitedRecord: Remote copy of the visited-region set

Notification Types:
    RegionEnteredMessage: Allowed "you entered region X" event
"""

from .common import Timestamp, unique_regions, union_regions
from .visited_record import VisitedRecord
from .region_event import RegionEnteredMessage

__all__ = [
    'Timestamp',
    'unique_regions',
    'union_regions',
    'VisitedRecord',
    'RegionEnteredMessage',
]
