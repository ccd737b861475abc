import asyncio
import os
import tempfile
from typing import Any, Dict, List, Optional

import pytest

os.environ.setdefault("SUBMANAGER_DB", os.path.join(tempfile.mkdtemp(prefix="submanager-"), "test.db"))

from features.sub_manager.application.ports import HostSignals  # noqa: E402
from features.sub_manager.domain.models import (  # noqa: E402
    BatchRefreshResult,
    NodeCountResult,
    Severity,
)


class Recorder:
    def __init__(self) -> None:
        self.persisted = 0
        self.changed = 0
        self.notices: List[tuple] = []

    def persist(self) -> None:
        self.persisted += 1

    def mark_changed(self) -> None:
        self.changed += 1

    def notify(self, message: str, severity: Severity) -> None:
        self.notices.append((message, severity))

    def signals(self, with_persist: bool = True) -> HostSignals:
        return HostSignals(
            persist=self.persist if with_persist else None,
            mark_changed=self.mark_changed,
            notify_user=self.notify,
        )

    def messages(self, severity: Optional[Severity] = None) -> List[str]:
        return [m for m, s in self.notices if severity is None or s is severity]


class FakeRemote:
    """Scripted RemoteRefresh; a url mapped to an Exception raises it."""

    def __init__(self, counts: Optional[Dict[str, Any]] = None, batch: Any = None) -> None:
        self.counts = dict(counts or {})
        self.batch = batch
        self.fetched: List[str] = []
        self.batched: List[List[str]] = []
        self.gates: Dict[str, asyncio.Event] = {}

    async def fetch_node_count(self, url: str) -> NodeCountResult:
        self.fetched.append(url)
        gate = self.gates.get(url)
        if gate is not None:
            await gate.wait()
        value = self.counts.get(url, NodeCountResult(count=0))
        if isinstance(value, Exception):
            raise value
        return value

    async def batch_update_nodes(self, ids) -> BatchRefreshResult:
        self.batched.append(list(ids))
        if isinstance(self.batch, Exception):
            raise self.batch
        return self.batch


class MemoryStore:
    def __init__(self) -> None:
        self.nodes: List[Dict[str, Any]] = []
        self.subscriptions: List[Dict[str, Any]] = []
        self.saves = 0

    def save_nodes(self, nodes) -> int:
        self.nodes = [n.to_dict() for n in nodes]
        self.saves += 1
        return len(self.nodes)

    def save_subscriptions(self, subs) -> int:
        self.subscriptions = [s.to_dict() for s in subs]
        return len(self.subscriptions)

    def load_nodes(self):
        return list(self.nodes)

    def load_subscriptions(self):
        return list(self.subscriptions)

    def close(self) -> None:
        pass


class CollectingSpawner:
    def __init__(self) -> None:
        self.pending: list = []

    def __call__(self, coro) -> None:
        self.pending.append(coro)

    async def run_all(self) -> None:
        while self.pending:
            await self.pending.pop(0)

    def discard(self) -> None:
        for coro in self.pending:
            coro.close()
        self.pending.clear()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def spawner():
    collected = CollectingSpawner()
    yield collected
    collected.discard()
