"""
Merge-Sync Engine
=================

Bounded Context: Reconciling the local visited set with the remote copy

Protocol:
- Single-flight: a push/pull issued while another operation is in flight
  resolves immediately to FAILED(SyncInProgressError); nothing is queued
- Conflict: a stale save is resolved by saving remote ∪ local against the
  current remote version (up to ``max_conflict_rounds`` rounds) -> MERGED
- Transient failure: the same push is retried after ``retry_delay_s``,
  at most ``max_retries`` times
- Auth / malformed payload: surfaced as FAILED without retry
- Every remote call is bounded by ``operation_timeout_s``

Threading Model:
- Serial Thread: single-thread executor owning the in-flight flag and the
  known remote version; every write of either happens there
- Worker Thread: runs one operation chain (push with retries, or pull)
  inside a keep-running lease
- Remote Call Threads: run individual remote calls so they can be bounded
  by a timeout

A finished chain posts its completion back to the serial thread, which
clears the in-flight flag and only then resolves the caller's future.

Usage:
    engine = MergeSyncEngine(remote_store)
    outcome = engine.push(["Colorado", "Utah"]).result()
    if outcome.is_merged:
        store.add_all(outcome.states)
    engine.close()
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Iterable, Optional, Tuple

from statetrack_mqtt.logging import LogEvent, StructuredLogger, create_logger
from statetrack_mqtt.schemas import union_regions, unique_regions

from statetrack_sync.errors import (
    NetworkTransientError,
    RemoteConflictError,
    RemoteStoreError,
    SyncClosedError,
    SyncInProgressError,
    SyncTimeoutError,
)
from statetrack_sync.lease import LeaseProvider, NullLeaseProvider, keep_running
from statetrack_sync.outcome import SyncOutcome
from statetrack_sync.remote import RemoteStore

PUSH = "push"
PULL = "pull"


class MergeSyncEngine:
    """
    Single-flight push/pull of the visited set with union merge.

    Attributes:
        remote: Remote store holding the shared record
        operation_timeout_s: Bound on every remote call
        retry_delay_s: Fixed delay before retrying a transient failure
        max_retries: Transient retries per push
        max_conflict_rounds: Merge rounds per push attempt
    """

    def __init__(
        self,
        remote: RemoteStore,
        logger: Optional[StructuredLogger] = None,
        lease_provider: Optional[LeaseProvider] = None,
        operation_timeout_s: float = 10.0,
        retry_delay_s: float = 5.0,
        max_retries: int = 3,
        max_conflict_rounds: int = 3
    ):
        if operation_timeout_s <= 0:
            raise ValueError(f"operation_timeout_s must be positive, got {operation_timeout_s}")
        if max_retries < 0 or max_conflict_rounds < 0:
            raise ValueError("max_retries and max_conflict_rounds must be >= 0")

        self.remote = remote
        self.logger = logger or create_logger("sync")
        self.lease_provider = lease_provider or NullLeaseProvider()
        self.operation_timeout_s = operation_timeout_s
        self.retry_delay_s = retry_delay_s
        self.max_retries = max_retries
        self.max_conflict_rounds = max_conflict_rounds

        self._serial = ThreadPoolExecutor(max_workers=1, thread_name_prefix="SyncSerial")
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="SyncWorker")
        self._calls = ThreadPoolExecutor(max_workers=4, thread_name_prefix="SyncRemoteCall")

        # Owned by the serial thread
        self._in_flight = False
        self._known_version: Optional[int] = None
        self._closed = False

        self._stop_event = threading.Event()
        self._close_lock = threading.Lock()
        self._close_requested = False

    # ─────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────

    def push(self, local_states: Iterable[str]) -> 'Future[SyncOutcome]':
        """
        Write the local set to the remote, merging on conflict.

        Raises:
            ValueError: If a region name is empty or not a string
        """
        return self._submit(PUSH, unique_regions(local_states))

    def pull(self, local_states: Iterable[str] = ()) -> 'Future[SyncOutcome]':
        """
        Read the remote set and return MERGED(remote ∪ local).

        Never writes to the remote or to any local store; the caller
        decides whether to apply the merged set.
        """
        return self._submit(PULL, unique_regions(local_states))

    @property
    def known_version(self) -> Optional[int]:
        """Last remote version observed (snapshot, may be stale)."""
        return self._known_version

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def close(self) -> None:
        """
        Reject new operations, interrupt pending retry delays and wait for
        the in-flight operation to finish.
        """
        with self._close_lock:
            if self._close_requested:
                return
            self._close_requested = True

        self._serial.submit(self._mark_closed).result()
        self._stop_event.set()
        self._worker.shutdown(wait=True)
        self._serial.shutdown(wait=True)
        self._calls.shutdown(wait=False)
        self.logger.info(event=LogEvent.SYNC_CLOSED, message="Sync engine closed")

    # ─────────────────────────────────────────────────────────────────────
    # Serial thread
    # ─────────────────────────────────────────────────────────────────────

    def _submit(self, operation: str, states: Tuple[str, ...]) -> 'Future[SyncOutcome]':
        result: 'Future[SyncOutcome]' = Future()
        try:
            self._serial.submit(self._begin, operation, states, result)
        except RuntimeError:
            result.set_result(SyncOutcome.failed(SyncClosedError("Sync engine is closed")))
        return result

    def _mark_closed(self) -> None:
        self._closed = True

    def _begin(
        self,
        operation: str,
        states: Tuple[str, ...],
        result: 'Future[SyncOutcome]'
    ) -> None:
        if self._closed:
            result.set_result(SyncOutcome.failed(SyncClosedError("Sync engine is closed")))
            return

        if self._in_flight:
            self.logger.info(
                event=LogEvent.SYNC_REJECTED,
                message=f"Rejected {operation}: another operation is in flight"
            )
            result.set_result(SyncOutcome.failed(
                SyncInProgressError(f"Cannot {operation}: sync already in progress")
            ))
            return

        self._in_flight = True
        known_version = self._known_version
        self.logger.info(
            event=LogEvent.SYNC_STARTED,
            message=f"Starting {operation}",
            metadata={'state_count': len(states), 'known_version': known_version}
        )
        self._worker.submit(self._run, operation, states, known_version, result)

    def _finish(self, outcome: SyncOutcome, result: 'Future[SyncOutcome]') -> None:
        self._in_flight = False
        if outcome.ok:
            self._known_version = outcome.version
        result.set_result(outcome)

    # ─────────────────────────────────────────────────────────────────────
    # Worker thread
    # ─────────────────────────────────────────────────────────────────────

    def _run(
        self,
        operation: str,
        states: Tuple[str, ...],
        known_version: Optional[int],
        result: 'Future[SyncOutcome]'
    ) -> None:
        with keep_running(self.lease_provider, f"visited-{operation}"):
            try:
                if operation == PUSH:
                    outcome = self._push_with_retry(states, known_version)
                else:
                    outcome = self._pull_once(states)
            except Exception as e:
                self.logger.error(
                    event=LogEvent.SYNC_FAILED,
                    message=f"Unexpected error during {operation}",
                    exc_info=e
                )
                outcome = SyncOutcome.failed(e)

        self._serial.submit(self._finish, outcome, result)

    def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        """
        Run one remote call bounded by operation_timeout_s.

        A call that times out keeps running in the call pool; stores
        serialise their own saves, so a retry waits for it to finish.
        """
        future = self._calls.submit(fn, *args)
        try:
            return future.result(timeout=self.operation_timeout_s)
        except FutureTimeoutError:
            future.cancel()
            raise SyncTimeoutError(
                f"Remote {getattr(fn, '__name__', 'call')} exceeded "
                f"{self.operation_timeout_s:.1f}s"
            )

    def _push_with_retry(
        self,
        states: Tuple[str, ...],
        known_version: Optional[int]
    ) -> SyncOutcome:
        retries = 0
        while True:
            try:
                outcome = self._push_once(states, known_version)
            except NetworkTransientError as e:
                if retries >= self.max_retries or self._stop_event.is_set():
                    return self._failed(PUSH, e, retries)
                retries += 1
                self.logger.warning(
                    event=LogEvent.SYNC_RETRY,
                    message=f"Transient failure, retrying push in {self.retry_delay_s:.1f}s",
                    metadata={'attempt': retries, 'error': str(e)}
                )
                if self._stop_event.wait(self.retry_delay_s):
                    return self._failed(PUSH, e, retries)
                continue
            except RemoteStoreError as e:
                return self._failed(PUSH, e, retries)

            event = LogEvent.SYNC_PUSH_MERGED if outcome.is_merged else LogEvent.SYNC_PUSH_SUCCESS
            self.logger.info(
                event=event,
                message=f"Push {outcome.status.value}",
                metadata={'version': outcome.version, 'state_count': len(outcome.states)}
            )
            return outcome

    def _push_once(
        self,
        states: Tuple[str, ...],
        expected_version: Optional[int]
    ) -> SyncOutcome:
        to_save = states
        merged = False
        rounds = 0
        while True:
            try:
                record = self._call(self.remote.save, to_save, expected_version)
            except RemoteConflictError as e:
                if rounds >= self.max_conflict_rounds:
                    raise
                rounds += 1
                current = e.current if e.current is not None else self._call(self.remote.fetch)
                remote_states = current.states if current is not None else ()
                expected_version = current.version if current is not None else None
                to_save = union_regions(remote_states, states)
                merged = True
                self.logger.info(
                    event=LogEvent.REMOTE_CONFLICT,
                    message="Remote changed, merging by union",
                    metadata={
                        'round': rounds,
                        'remote_version': expected_version,
                        'merged_count': len(to_save)
                    }
                )
                continue

            if merged:
                return SyncOutcome.merged(record.states, record.version)
            return SyncOutcome.succeeded(record.states, record.version)

    def _pull_once(self, states: Tuple[str, ...]) -> SyncOutcome:
        try:
            record = self._call(self.remote.fetch)
        except RemoteStoreError as e:
            return self._failed(PULL, e, 0)

        remote_states = record.states if record is not None else ()
        version = record.version if record is not None else None
        outcome = SyncOutcome.merged(union_regions(remote_states, states), version)
        self.logger.info(
            event=LogEvent.SYNC_PULL_SUCCESS,
            message="Pulled remote record",
            metadata={'version': version, 'remote_count': len(remote_states)}
        )
        return outcome

    def _failed(self, operation: str, error: Exception, retries: int) -> SyncOutcome:
        self.logger.error(
            event=LogEvent.SYNC_FAILED,
            message=f"{operation} failed: {type(error).__name__}",
            metadata={'error': str(error), 'retries': retries}
        )
        return SyncOutcome.failed(error)
