from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Dict, List, Optional, Protocol, Sequence, Set

from loguru import logger

from features.sub_manager.domain.models import (
    BatchRefreshResult,
    MutationOutcome,
    Node,
    NodeCountResult,
    Severity,
    Subscription,
)


class RemoteRefresh(Protocol):
    async def fetch_node_count(self, url: str) -> NodeCountResult:
        """Resolve a subscription URL into its node count and user info."""

    async def batch_update_nodes(self, ids: Sequence[str]) -> BatchRefreshResult:
        """Refresh many subscriptions server-side in one call."""


PersistHandler = Callable[[], None]
ChangeMarker = Callable[[], None]
UserNotifier = Callable[[str, Severity], None]
TaskSpawner = Callable[[Coroutine[Any, Any, Any]], Any]


def _noop() -> None:
    return None


def _log_notice(message: str, severity: Severity) -> None:
    logger.debug("[{}] {}", severity.value, message)


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


@dataclass
class BackgroundSpawner:
    """Schedules coroutines on the running loop and keeps them referenced until done."""

    _tasks: Set["asyncio.Task[Any]"] = field(default_factory=set, init=False)

    def __call__(self, coro: Coroutine[Any, Any, Any]) -> Optional["asyncio.Task[Any]"]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running event loop; background refresh left to the host")
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


@dataclass
class HostSignals:
    """Outbound side effects a collection asks its host to perform.

    With a spawner and a running event loop the persist handler runs in a
    worker thread and the mutation returns without waiting for it.
    """

    persist: Optional[PersistHandler] = None
    mark_changed: ChangeMarker = _noop
    notify_user: UserNotifier = _log_notice
    spawner: Optional[TaskSpawner] = None

    def notify(self, message: str, severity: Severity = Severity.SUCCESS) -> None:
        try:
            self.notify_user(message, severity)
        except Exception:
            logger.exception("User notification failed: {}", message)

    def change(self) -> MutationOutcome:
        try:
            self.mark_changed()
        except Exception:
            logger.exception("Change marker failed")
        return MutationOutcome.CHANGE_MARKED

    def request_persist(self, message: Optional[str] = None) -> MutationOutcome:
        """Ask the host to save; without a persist handler fall back to marking the change."""
        if self.persist is None:
            return self.change()
        if message:
            self.notify(message, Severity.SUCCESS)
        if self.spawner is not None and _loop_running():
            self.spawner(asyncio.to_thread(self._run_persist))
        else:
            self._run_persist()
        return MutationOutcome.PERSIST_REQUESTED

    def _run_persist(self) -> None:
        try:
            self.persist()
        except Exception as exc:
            logger.exception("Persist handler failed")
            self.notify(f"Save failed: {exc}", Severity.ERROR)


class SnapshotStore(Protocol):
    def save_nodes(self, nodes: Sequence[Node]) -> int:
        """Replace the stored node snapshot."""

    def save_subscriptions(self, subs: Sequence[Subscription]) -> int:
        """Replace the stored subscription snapshot."""

    def load_nodes(self) -> List[Dict[str, Any]]:
        """Return stored nodes in display order."""

    def load_subscriptions(self) -> List[Dict[str, Any]]:
        """Return stored subscriptions in display order."""

    def close(self) -> None:
        """Release underlying resources."""


SnapshotStoreFactory = Callable[[], SnapshotStore]
