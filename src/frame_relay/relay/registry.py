"""
Stream Registry
===============

Presence tracking for producer clients.

The registry maps each ClientId to the set of stream kinds it currently has
open. It stores presence only, never frames. An entry exists exactly while
at least one kind is active for that client; it is removed the moment the
last active kind goes false.

Design Rules:
    - Mutated only by producer sessions via set_active()
    - Every mutation is one atomic step under the registry lock
    - Listeners get the post-mutation snapshot, called outside the lock
    - Snapshots carry a sequence number; one older than the last delivered
      is dropped, so listeners never see presence go backwards
    - The raw mapping is never handed out
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

from frame_relay.models.messages import StreamEntry
from frame_relay.models.stream import StreamKind


logger = logging.getLogger(__name__)


PresenceListener = Callable[[List[StreamEntry]], None]


class StreamRegistry:
    """
    Shared ClientId -> {StreamKind -> active} mapping.

    Example:
        registry = StreamRegistry()
        registry.subscribe(broadcaster.publish_presence)

        registry.set_active("abc", StreamKind.SCREEN, True)
        registry.snapshot()
        # [StreamEntry(client_id='abc', has_screen=True, has_webcam=False)]
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # dicts keep insertion order, which is the snapshot order
        self._streams: Dict[str, Dict[StreamKind, bool]] = {}
        self._listeners: List[PresenceListener] = []
        self._version = 0
        # serializes delivery; reentrant so a listener may read or mutate
        self._notify_lock = threading.RLock()
        self._delivered = 0

    def subscribe(self, listener: PresenceListener) -> None:
        """Register a callback invoked with the snapshot after every change."""
        self._listeners.append(listener)

    def set_active(self, client_id: str, kind: StreamKind, active: bool) -> None:
        """
        Mark one stream kind of a client active or inactive.

        Activating creates the entry if absent (all kinds inactive).
        Deactivating removes the entry once no kind is active. Either way
        a presence-changed event is fired.

        Args:
            client_id: Producer-supplied session identifier
            kind: Stream kind of the connection
            active: New state for that kind
        """
        with self._lock:
            if active:
                kinds = self._streams.get(client_id)
                if kinds is None:
                    kinds = {k: False for k in StreamKind}
                    self._streams[client_id] = kinds
                kinds[kind] = True
            else:
                kinds = self._streams.get(client_id)
                if kinds is not None:
                    kinds[kind] = False
                    if not any(kinds.values()):
                        del self._streams[client_id]
            self._version += 1
            version = self._version
            snapshot = self._snapshot_locked()

        logger.debug(
            f"Presence {client_id}/{kind.value} -> {active} "
            f"({len(snapshot)} active clients)"
        )
        self._notify(version, snapshot)

    def snapshot(self) -> List[StreamEntry]:
        """Full current presence, in insertion order."""
        with self._lock:
            return self._snapshot_locked()

    def get(self, client_id: str) -> Optional[StreamEntry]:
        """Presence of one client, or None if it has no active stream."""
        with self._lock:
            kinds = self._streams.get(client_id)
            if kinds is None:
                return None
            return self._entry(client_id, kinds)

    def __contains__(self, client_id: object) -> bool:
        with self._lock:
            return client_id in self._streams

    def __len__(self) -> int:
        with self._lock:
            return len(self._streams)

    def _snapshot_locked(self) -> List[StreamEntry]:
        return [self._entry(cid, kinds) for cid, kinds in self._streams.items()]

    @staticmethod
    def _entry(client_id: str, kinds: Dict[StreamKind, bool]) -> StreamEntry:
        return StreamEntry(
            client_id=client_id,
            has_screen=kinds[StreamKind.SCREEN],
            has_webcam=kinds[StreamKind.WEBCAM],
        )

    def _notify(self, version: int, snapshot: List[StreamEntry]) -> None:
        with self._notify_lock:
            if version <= self._delivered:
                logger.debug(f"Dropping stale presence snapshot #{version}")
                return
            self._delivered = version
            for listener in list(self._listeners):
                try:
                    listener(snapshot)
                except Exception as e:
                    logger.error(f"Presence listener failed: {e}")
