from __future__ import annotations

from typing import Optional

from features.sub_manager.application.node_collection import NodeCollection
from features.sub_manager.application.ports import (
    BackgroundSpawner,
    HostSignals,
    RemoteRefresh,
    SnapshotStoreFactory,
    TaskSpawner,
)
from features.sub_manager.application.region_classifier import RegionClassifier
from features.sub_manager.application.services import Workspace
from features.sub_manager.application.subscription_collection import SubscriptionCollection

from .remote_refresh import RequestsRemoteRefresh
from .repository import SnapshotRepository


def _store_factory() -> SnapshotRepository:
    return SnapshotRepository()


class _Deferred:
    """Forwards host signals to a workspace that is created after the collections."""

    workspace: Optional[Workspace] = None

    def persist(self) -> None:
        if self.workspace is not None:
            self.workspace.persist()

    def mark_changed(self) -> None:
        if self.workspace is not None:
            self.workspace.mark_changed()

    def notify(self, message, severity) -> None:
        if self.workspace is not None:
            self.workspace.notify(message, severity)


def build_workspace(
    *,
    remote: Optional[RemoteRefresh] = None,
    store_factory: Optional[SnapshotStoreFactory] = None,
    spawner: Optional[TaskSpawner] = None,
    autosave: bool = True,
) -> Workspace:
    deferred = _Deferred()
    spawner = spawner or BackgroundSpawner()
    signals = HostSignals(
        persist=deferred.persist if autosave else None,
        mark_changed=deferred.mark_changed,
        notify_user=deferred.notify,
        spawner=spawner,
    )
    nodes = NodeCollection(signals, classifier=RegionClassifier())
    subscriptions = SubscriptionCollection(remote or RequestsRemoteRefresh(), signals, spawner=spawner)
    workspace = Workspace(
        nodes=nodes,
        subscriptions=subscriptions,
        store_factory=store_factory or _store_factory,
    )
    deferred.workspace = workspace
    return workspace
