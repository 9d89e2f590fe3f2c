"""
Visited Record Schema
=====================

Bounded Context: Remote Synchronization Record

The single logical record mirrored to the remote store. One record per
user, keyed by a fixed identifier, carrying the visited regions and an
optimistic-concurrency version.

Wire format:
    {
        "schema_version": "1.0",
        "record_id": "VisitedStates",
        "states": ["California", "Nevada"],
        "lastUpdated": "2025-10-24T15:30:45.123456+00:00",
        "version": 3
    }
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Tuple

from .common import Timestamp, unique_regions

SCHEMA_VERSION = "1.0"


@dataclass(frozen=True)
class VisitedRecord:
    """
    Remote copy of the visited-region set.

    Attributes:
        record_id: Fixed identifier of the logical record
        states: Visited region names (duplicates removed, order kept)
        last_updated: Time of the last write
        version: Monotonic write counter used for conflict detection
        schema_version: Wire schema version

    Invariants:
        - version >= 1
        - states contains no duplicates
    """
    record_id: str
    states: Tuple[str, ...]
    last_updated: Timestamp
    version: int = 1
    schema_version: str = SCHEMA_VERSION

    def __post_init__(self):
        """Validate invariants and normalise states."""
        if not self.record_id:
            raise ValueError("record_id cannot be empty")
        if self.version < 1:
            raise ValueError(f"Record version must be >= 1, got {self.version}")
        object.__setattr__(self, 'states', unique_regions(self.states))

    @classmethod
    def create(
        cls,
        record_id: str,
        states: Iterable[str],
        version: int = 1
    ) -> 'VisitedRecord':
        """Build a record stamped with the current time."""
        return cls(
            record_id=record_id,
            states=tuple(states),
            last_updated=Timestamp.now(),
            version=version
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            'schema_version': self.schema_version,
            'record_id': self.record_id,
            'states': list(self.states),
            'lastUpdated': self.last_updated.to_dict(),
            'version': self.version
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VisitedRecord':
        """Deserialize from dict.

        Raises:
            ValueError: If required fields missing or invalid
        """
        try:
            states = data['states']
            if not isinstance(states, list):
                raise ValueError(f"'states' must be a list, got {type(states).__name__}")
            timestamp = Timestamp(value=str(data['lastUpdated']))
            timestamp.to_datetime()
            return cls(
                record_id=str(data['record_id']),
                states=tuple(states),
                last_updated=timestamp,
                version=int(data.get('version', 1)),
                schema_version=str(data.get('schema_version', SCHEMA_VERSION))
            )
        except KeyError as e:
            raise ValueError(f"Missing required VisitedRecord field: {e}")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid VisitedRecord data: {e}")

    @property
    def state_count(self) -> int:
        """Number of regions in this record."""
        return len(self.states)
