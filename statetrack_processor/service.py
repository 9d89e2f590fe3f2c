"""
Region Tracking Service - Main orchestrator.

This module provides the RegionTrackingService class which wires the
detection, notification, persistence and sync components together.

Data flow:

    observe(fix) ─► FixFilter ─► RegionDetector ─► event_queue
                                                     │
                              Dispatch Thread ◄──────┘
                                 │
                                 ├─► NotificationGate ─► notifier
                                 ├─► VisitedRegionStore
                                 └─► MergeSyncEngine ─► RemoteStore

Threading Model:
- Caller Thread(s): observe(), serialised by a lock around the detector
- Dispatch Thread (our thread): gate, store and push requests, in
  observation order
- Sync threads (MergeSyncEngine internal): remote calls and completion
  callbacks
"""

import logging
import queue
import threading
import time
from concurrent.futures import Future
from typing import Callable, Optional

from statetrack_mqtt.logging import create_logger
from statetrack_mqtt.publishers import BasePublisher, RegionEventPublisher
from statetrack_mqtt.schemas import RegionEnteredMessage, Timestamp
from statetrack_notify import CooldownLedger, NotificationGate, NotificationPolicy
from statetrack_processor.config import TrackerConfig
from statetrack_store import JsonFileStorage, KeyValueStorage, MemoryStorage, VisitedRegionStore
from statetrack_sync import (
    InMemoryRemoteStore,
    LeaseProvider,
    MergeSyncEngine,
    MqttRemoteStore,
    NullLeaseProvider,
    RemoteStore,
    SyncClosedError,
    SyncInProgressError,
    SyncOutcome,
    keep_running,
)
from statetrack_zone import BoundaryIndex, FixFilter, GeoFix, RegionChangeEvent, RegionDetector

logger = logging.getLogger(__name__)

Notifier = Callable[[RegionEnteredMessage], object]

SCHEMA_VERSION = "1.0"


class RegionTrackingService:
    """
    Region tracking service.

    Thread Safety:
    - detector: only touched under _detect_lock
    - event_queue: Thread-safe queue.Queue
    - gate, store: only touched from the Dispatch Thread (store reads
      are snapshot-based and safe from any thread)
    - sync bookkeeping (_sync_busy, _sync_dirty): protected by _sync_lock

    Usage:
        config = TrackerConfig.from_yaml("config/tracker.example.yaml")
        service = RegionTrackingService.from_config(config)

        service.start()
        service.observe(GeoFix(latitude=39.0, longitude=-105.5, timestamp=time.time()))
        ...
        service.stop()
    """

    def __init__(
        self,
        config: TrackerConfig,
        boundary_index: BoundaryIndex,
        storage: KeyValueStorage,
        remote_store: RemoteStore,
        notifier: Optional[Notifier] = None,
        lease_provider: Optional[LeaseProvider] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize region tracking service.

        Args:
            config: Tracker configuration
            boundary_index: Loaded region geometry
            storage: Local key-value storage (visited set and cooldown ledger)
            remote_store: Remote copy of the visited set
            notifier: Callable receiving allowed RegionEnteredMessage values
            lease_provider: Host keep-running lease hook
            clock: Wall clock used by the notification cooldown
        """
        self.config = config
        self.boundary_index = boundary_index
        self.storage = storage
        self.notifier = notifier
        self.lease_provider = lease_provider or NullLeaseProvider()
        self.clock = clock

        detection = config.detection_config
        self.detector = RegionDetector(
            boundary_index,
            discontinuity_distance_m=detection.discontinuity_distance_m,
            discontinuity_window_s=detection.discontinuity_window_s,
            failure_threshold=detection.failure_threshold,
            search_radii_deg=detection.search_radii_deg,
            nearby_distance_m=detection.nearby_distance_m,
            nearby_window_s=detection.nearby_window_s,
        )

        fix_filter = config.fix_filter_config
        self.fix_filter = FixFilter(
            max_altitude_m=fix_filter.max_altitude_m,
            max_speed_mps=fix_filter.max_speed_mps,
            max_accuracy_m=fix_filter.max_accuracy_m,
        )

        notification = config.notification_config
        self.policy = NotificationPolicy(
            notify_only_new_regions=notification.notify_only_new_regions,
            notifications_enabled=notification.notifications_enabled,
        )
        self.gate = NotificationGate(
            CooldownLedger(storage),
            cooldown_s=notification.cooldown_s,
            clock=clock,
        )

        self.store = VisitedRegionStore(storage)

        sync = config.sync_config
        self.engine = MergeSyncEngine(
            remote_store,
            logger=create_logger("sync", context={'device_id': config.device_id}),
            lease_provider=self.lease_provider,
            operation_timeout_s=sync.operation_timeout_s,
            retry_delay_s=sync.retry_delay_s,
            max_retries=sync.max_retries,
            max_conflict_rounds=sync.max_conflict_rounds,
        )

        # Region-change channel
        self.event_queue = queue.Queue(maxsize=config.event_queue_size)
        self.enqueue_timeout_s = 5.0
        self.dispatch_thread = None
        self.stop_event = threading.Event()

        self._detect_lock = threading.Lock()
        self._sync_lock = threading.Lock()
        self._sync_busy = False
        self._sync_dirty = False
        self._sync_idle = threading.Event()
        self._sync_idle.set()
        self._last_outcome: Optional[SyncOutcome] = None
        self._running = False

        logger.info(
            f"RegionTrackingService initialized: device={config.device_id}, "
            f"regions={len(boundary_index)}"
        )

    @classmethod
    def from_config(
        cls,
        config: TrackerConfig,
        notifier: Optional[Notifier] = None,
        lease_provider: Optional[LeaseProvider] = None
    ) -> "RegionTrackingService":
        """
        Build the service and its collaborators from configuration.

        Raises:
            DatasetLoadError: If the boundary dataset cannot be loaded
        """
        boundary_index = BoundaryIndex.from_file(
            config.dataset_path, name_property=config.name_property
        )

        if config.storage_path is not None:
            storage = JsonFileStorage(config.storage_path)
        else:
            storage = MemoryStorage()

        mqtt = config.mqtt_config
        sync = config.sync_config
        if sync.backend == "mqtt":
            remote_store = MqttRemoteStore(
                broker_host=mqtt.broker,
                broker_port=mqtt.port,
                record_id=sync.record_id,
                client_id=f"statetrack_sync_{config.device_id}",
                username=mqtt.username,
                password=mqtt.password,
                topic_prefix=mqtt.sync_topic_prefix,
                connect_timeout_s=min(5.0, sync.operation_timeout_s),
                ack_timeout_s=min(5.0, sync.operation_timeout_s),
            )
        else:
            remote_store = InMemoryRemoteStore(record_id=sync.record_id)

        if notifier is None and mqtt.publish_events:
            notifier = RegionEventPublisher(
                broker_host=mqtt.broker,
                broker_port=mqtt.port,
                device_id=config.device_id,
                logger=create_logger("notifier", context={'device_id': config.device_id}),
                username=mqtt.username,
                password=mqtt.password,
                qos=mqtt.qos,
                topic_prefix=mqtt.event_topic_prefix,
            )

        return cls(
            config=config,
            boundary_index=boundary_index,
            storage=storage,
            remote_store=remote_store,
            notifier=notifier,
            lease_provider=lease_provider,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def start(self) -> None:
        """
        Start the service.

        Lifecycle:
        1. Restore the detector from the last visited region
        2. Connect the notifier (if it is an MQTT publisher)
        3. Start the Dispatch Thread
        4. Initial pull (one retry after a delay), merged into the store
        """
        if self._running:
            logger.warning("Service already running")
            return

        logger.info("Starting region tracking service")

        self.detector.restore(self.store.last_added())

        if isinstance(self.notifier, BasePublisher) and not self.notifier.is_connected():
            if not self.notifier.connect(timeout=5.0):
                logger.warning("Notifier not connected, region events will not be published")

        self.stop_event.clear()
        self.dispatch_thread = threading.Thread(
            target=self._dispatch_loop,
            name="RegionDispatchThread",
            daemon=True
        )
        self.dispatch_thread.start()
        self._running = True

        self._initial_sync()
        logger.info("Region tracking service started")

    def stop(self) -> None:
        """
        Stop the service gracefully.

        Drains the event channel, then closes the sync engine (which waits
        for the in-flight operation) and disconnects MQTT clients.
        """
        if not self._running:
            logger.warning("Service not running")
            return

        logger.info("Stopping region tracking service")

        self.stop_event.set()
        if self.dispatch_thread:
            self.dispatch_thread.join(timeout=5.0)
            logger.info("Dispatch thread stopped")

        self.engine.close()

        remote = self.engine.remote
        if isinstance(remote, BasePublisher) and remote.is_connected():
            remote.disconnect()
        if isinstance(self.notifier, BasePublisher) and self.notifier.is_connected():
            self.notifier.disconnect()

        self._running = False
        logger.info("Region tracking service stopped")

    @property
    def running(self) -> bool:
        return self._running

    # ─────────────────────────────────────────────────────────────────────
    # Fix intake (Caller Thread)
    # ─────────────────────────────────────────────────────────────────────

    def observe(self, fix: GeoFix) -> Optional[RegionChangeEvent]:
        """
        Feed one position fix.

        Returns:
            The region-change event queued for dispatch, if any
        """
        if not self.fix_filter.accept(fix):
            return None

        with keep_running(self.lease_provider, "region-fix"):
            with self._detect_lock:
                previous = self.detector.last_confirmed_region
                event = self.detector.observe(fix)

            if event is not None:
                try:
                    self.event_queue.put(event, timeout=self.enqueue_timeout_s)
                except queue.Full:
                    # Roll back so the next fix in this region emits again
                    with self._detect_lock:
                        if self.detector.last_confirmed_region == event.region:
                            self.detector.restore(previous)
                    logger.error(f"Event queue full, dropping region change to {event.region}")
                    return None

        return event

    # ─────────────────────────────────────────────────────────────────────
    # Dispatch (Dispatch Thread)
    # ─────────────────────────────────────────────────────────────────────

    def _dispatch_loop(self):
        """Handle region changes in observation order until stopped and drained."""
        logger.info("Dispatch loop started")

        while not (self.stop_event.is_set() and self.event_queue.empty()):
            try:
                event = self.event_queue.get(timeout=0.1)
            except queue.Empty:
                continue

            try:
                self._handle_event(event)
            except Exception as e:
                logger.error(f"Error handling region change to {event.region}: {e}", exc_info=True)
            finally:
                self.event_queue.task_done()

        logger.info("Dispatch loop stopped")

    def _handle_event(self, event: RegionChangeEvent) -> None:
        region = event.region
        if region not in self.boundary_index:
            logger.warning(f"Region {region} is not in the boundary dataset")

        # Novelty is judged against the set before this visit is recorded
        visited = self.store.snapshot()
        if self.gate.should_notify(region, self.policy, visited):
            self._notify(event, first_visit=region not in visited)
            self.gate.record_notified(region)

        if self.store.add(region):
            self.request_sync()

    def _notify(self, event: RegionChangeEvent, first_visit: bool) -> None:
        if self.notifier is None:
            logger.info(f"Entered {event.region} (no notifier configured)")
            return

        message = RegionEnteredMessage(
            schema_version=SCHEMA_VERSION,
            timestamp=Timestamp.from_epoch(event.fix.timestamp),
            device_id=self.config.device_id,
            region=event.region,
            latitude=event.fix.latitude,
            longitude=event.fix.longitude,
            first_visit=first_visit,
            method=event.method.value,
        )
        try:
            self.notifier(message)
        except Exception as e:
            logger.error(f"Notifier failed for {event.region}: {e}", exc_info=True)

    # ─────────────────────────────────────────────────────────────────────
    # Sync
    # ─────────────────────────────────────────────────────────────────────

    def request_sync(self) -> Optional["Future[SyncOutcome]"]:
        """
        Push the current visited set.

        While a service-initiated sync is running, the request is folded
        into a single follow-up push issued when that sync completes.

        Returns:
            The push future, or None if the request was deferred
        """
        with self._sync_lock:
            if self._sync_busy:
                self._sync_dirty = True
                return None
            self._sync_busy = True
            self._sync_idle.clear()

        future = self.engine.push(self.store.snapshot())
        future.add_done_callback(self._on_sync_done)
        return future

    def sync_now(self) -> Optional["Future[SyncOutcome]"]:
        """Explicit user-triggered sync."""
        return self.request_sync()

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        """Block until no service-initiated sync is running."""
        return self._sync_idle.wait(timeout)

    @property
    def last_sync_outcome(self) -> Optional[SyncOutcome]:
        return self._last_outcome

    def _apply(self, outcome: SyncOutcome) -> None:
        self._last_outcome = outcome
        if outcome.is_merged:
            added = self.store.add_all(outcome.states)
            if added:
                logger.info(f"Merged {len(added)} regions from remote: {', '.join(added)}")
        elif not outcome.ok:
            if isinstance(outcome.error, SyncInProgressError):
                logger.info("Sync already in progress, request dropped")
            elif isinstance(outcome.error, SyncClosedError):
                logger.debug("Sync engine closed, request dropped")
            else:
                logger.warning(f"Sync failed, local set left untouched: {outcome}")

    def _on_sync_done(self, future: "Future[SyncOutcome]") -> None:
        outcome = future.result()
        self._apply(outcome)

        with self._sync_lock:
            self._sync_busy = False
            repush = self._sync_dirty and not isinstance(outcome.error, SyncClosedError)
            self._sync_dirty = False
            if not repush:
                self._sync_idle.set()

        if repush:
            self.request_sync()

    def _initial_sync(self) -> None:
        """Launch-time pull with one retry, merged into the local store."""
        with self._sync_lock:
            self._sync_busy = True
            self._sync_idle.clear()

        try:
            outcome = self.engine.pull(self.store.snapshot()).result()
            if not outcome.ok and not self.stop_event.is_set():
                delay = self.config.sync_config.initial_pull_retry_delay_s
                logger.info(f"Initial pull failed, retrying once in {delay:.1f}s")
                self.stop_event.wait(delay)
                outcome = self.engine.pull(self.store.snapshot()).result()
            self._apply(outcome)
        finally:
            with self._sync_lock:
                self._sync_busy = False
                self._sync_dirty = False
                self._sync_idle.set()

        # Upload anything only this device knows about
        if len(self.store) > 0:
            self.request_sync()
