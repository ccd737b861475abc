from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List

from loguru import logger

from features.sub_manager.domain.models import Severity

from .node_collection import NodeCollection
from .ports import SnapshotStoreFactory
from .subscription_collection import SubscriptionCollection


@dataclass(frozen=True)
class Notice:
    message: str
    severity: Severity


@dataclass
class Workspace:
    """Both collections plus the store their persist signal writes to."""

    nodes: NodeCollection
    subscriptions: SubscriptionCollection
    store_factory: SnapshotStoreFactory
    notices: Deque[Notice] = field(default_factory=lambda: deque(maxlen=50))
    dirty: bool = False
    _save_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def load(self) -> None:
        """Pull the stored snapshot into both collections."""
        store = self.store_factory()
        try:
            nodes = store.load_nodes()
            subs = store.load_subscriptions()
        finally:
            store.close()
        self.nodes.load_snapshot(nodes)
        self.subscriptions.load_snapshot(subs)
        self.dirty = False
        logger.info("Loaded {} nodes and {} subscriptions", len(nodes), len(subs))

    def persist(self) -> None:
        """Write both collections; may run in a worker thread, saves are serialized."""
        nodes = list(self.nodes.items)
        subs = list(self.subscriptions.items)
        with self._save_lock:
            store = self.store_factory()
            try:
                store.save_nodes(nodes)
                store.save_subscriptions(subs)
            finally:
                store.close()
        self.dirty = False

    def mark_changed(self) -> None:
        self.dirty = True

    def notify(self, message: str, severity: Severity) -> None:
        self.notices.append(Notice(message=message, severity=severity))
        if severity is Severity.ERROR:
            logger.warning(message)
        else:
            logger.info(message)

    def drain_notices(self) -> List[Notice]:
        drained = list(self.notices)
        self.notices.clear()
        return drained

    def stats(self) -> Dict[str, int]:
        return {
            "nodes": self.nodes.total_count,
            "enabled_nodes": self.nodes.enabled_count,
            "subscriptions": self.subscriptions.total_count,
            "enabled_subscriptions": self.subscriptions.enabled_count,
        }
