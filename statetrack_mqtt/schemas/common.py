"""
Common Schema Types
==================

Bounded Context: Shared Data Structures

Types shared by the remote record and the region-entered message.

Design Principles:
- Immutability: frozen=True prevents accidental mutation
- Type Safety: All fields explicitly typed
- Serialization: to_dict() for JSON export
- Validation: Constructor validates invariants
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Tuple


@dataclass(frozen=True)
class Timestamp:
    """
    Immutable ISO 8601 timestamp wrapper.

    Attributes:
        value: ISO 8601 formatted timestamp string

    Example:
        >>> ts = Timestamp.now()
        >>> ts.value
        '2025-10-24T15:30:45.123456+00:00'
    """
    value: str

    @classmethod
    def now(cls) -> 'Timestamp':
        """Create timestamp from current UTC time."""
        return cls(value=datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_datetime(cls, dt: datetime) -> 'Timestamp':
        """Create timestamp from datetime object."""
        return cls(value=dt.isoformat())

    @classmethod
    def from_epoch(cls, seconds: float) -> 'Timestamp':
        """Create timestamp from Unix epoch seconds."""
        return cls(value=datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat())

    def to_datetime(self) -> datetime:
        """Parse to datetime object.

        Raises:
            ValueError: If timestamp format invalid
        """
        try:
            return datetime.fromisoformat(self.value)
        except ValueError as e:
            raise ValueError(f"Invalid ISO timestamp: {self.value}") from e

    def to_dict(self) -> str:
        """Serialize to JSON (as string)."""
        return self.value


def unique_regions(regions: Iterable[str]) -> Tuple[str, ...]:
    """
    Drop duplicates while keeping first-seen order.

    Raises:
        ValueError: If an entry is not a non-empty string
    """
    seen = {}
    for region in regions:
        if not isinstance(region, str) or not region:
            raise ValueError(f"Region names must be non-empty strings, got {region!r}")
        seen.setdefault(region, None)
    return tuple(seen)


def union_regions(first: Iterable[str], second: Iterable[str]) -> Tuple[str, ...]:
    """Merge-by-union: members of ``first`` in order, then new members of ``second``."""
    return unique_regions(list(first) + list(second))
