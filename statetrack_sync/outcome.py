"""
Sync outcome: the tagged result of a push or pull.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class SyncStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    MERGED = "merged"


@dataclass(frozen=True)
class SyncOutcome:
    """
    Result of a sync operation.

    Attributes:
        status: SUCCEEDED, FAILED or MERGED
        states: Resulting region set (the merged set for MERGED)
        version: Remote version after the operation, when known
        error: Cause of a FAILED outcome
    """

    status: SyncStatus
    states: Tuple[str, ...] = ()
    version: Optional[int] = None
    error: Optional[BaseException] = None

    @classmethod
    def succeeded(cls, states=(), version: Optional[int] = None) -> 'SyncOutcome':
        return cls(status=SyncStatus.SUCCEEDED, states=tuple(states), version=version)

    @classmethod
    def merged(cls, states, version: Optional[int] = None) -> 'SyncOutcome':
        return cls(status=SyncStatus.MERGED, states=tuple(states), version=version)

    @classmethod
    def failed(cls, error: BaseException) -> 'SyncOutcome':
        return cls(status=SyncStatus.FAILED, error=error)

    @property
    def ok(self) -> bool:
        return self.status != SyncStatus.FAILED

    @property
    def is_merged(self) -> bool:
        return self.status == SyncStatus.MERGED

    def __str__(self) -> str:
        if self.status == SyncStatus.FAILED:
            return f"FAILED({type(self.error).__name__}: {self.error})"
        return f"{self.status.name}({len(self.states)} regions, version={self.version})"
