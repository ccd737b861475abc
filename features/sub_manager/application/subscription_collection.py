from __future__ import annotations

import itertools
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from loguru import logger

from features.sub_manager.application.ports import (
    BackgroundSpawner,
    HostSignals,
    RemoteRefresh,
    TaskSpawner,
)
from features.sub_manager.domain.models import (
    UNCHANGED,
    BatchRefreshResult,
    IdGenerator,
    MutationResult,
    RefreshTrigger,
    Severity,
    Subscription,
    generate_id,
)
from features.sub_manager.domain.pagination import Pager


SUBSCRIPTIONS_PER_PAGE = 6

_HTTP_URL = re.compile(r"^https?://")

SubscriptionInput = Union[Subscription, Mapping[str, Any]]


def is_http_url(url: Optional[str]) -> bool:
    return bool(url) and _HTTP_URL.match(url) is not None


class SubscriptionCollection:
    """Subscriptions with pagination and remote node-count refresh.

    Mutations are synchronous. Remote refreshes are the only await points; a
    refresh re-reads its target by id when it completes, so a subscription
    deleted in the meantime is simply skipped.
    """

    def __init__(
        self,
        remote: RemoteRefresh,
        signals: Optional[HostSignals] = None,
        *,
        id_factory: IdGenerator = generate_id,
        spawner: Optional[TaskSpawner] = None,
        page_size: int = SUBSCRIPTIONS_PER_PAGE,
    ) -> None:
        self._remote = remote
        self._signals = signals or HostSignals()
        self._id_factory = id_factory
        self._spawn = spawner if spawner is not None else BackgroundSpawner()
        self._pager = Pager(page_size=page_size)
        self._subs: List[Subscription] = []
        self._generations: Dict[str, int] = {}
        self._refresh_seq = itertools.count(1)
        self._snapshot: Optional[List[Any]] = None

    def _ingest(self, item: SubscriptionInput) -> Subscription:
        if isinstance(item, Subscription):
            if not item.id:
                item.id = self._id_factory()
            return item
        return Subscription.from_dict(item, self._id_factory)

    def initialize(self, items: Optional[Iterable[SubscriptionInput]]) -> None:
        subs = [self._ingest(item) for item in (items or [])]
        for sub in subs:
            sub.is_updating = False
        self._subs = subs
        self._pager.clamp(len(self._subs))

    def load_snapshot(self, items: Optional[Sequence[Mapping[str, Any]]]) -> bool:
        snapshot = [dict(item) for item in (items or [])]
        if snapshot == self._snapshot:
            return False
        self._snapshot = snapshot
        self.initialize(snapshot)
        return True

    @property
    def items(self) -> List[Subscription]:
        return list(self._subs)

    @property
    def current_page(self) -> int:
        return self._pager.current

    @property
    def total_pages(self) -> int:
        return self._pager.total_pages(len(self._subs))

    @property
    def paginated(self) -> List[Subscription]:
        return self._pager.window(self._subs)

    @property
    def total_count(self) -> int:
        return len(self._subs)

    @property
    def enabled_count(self) -> int:
        return sum(1 for sub in self._subs if sub.enabled)

    def get(self, sub_id: str) -> Optional[Subscription]:
        return next((sub for sub in self._subs if sub.id == sub_id), None)

    def _index_of(self, sub_id: str) -> int:
        for index, sub in enumerate(self._subs):
            if sub.id == sub_id:
                return index
        return -1

    def change_page(self, page: int) -> bool:
        return self._pager.change(page, len(self._subs))

    # mutations

    def _dispatch(self, trigger: RefreshTrigger) -> None:
        self._spawn(self.run_trigger(trigger))

    def add(self, sub: SubscriptionInput) -> MutationResult:
        added = self._ingest(sub)
        self._subs.insert(0, added)
        self._pager.after_prepend(self._subs)
        trigger = RefreshTrigger(ids=(added.id,))
        outcome = self._signals.request_persist()
        self._dispatch(trigger)
        return MutationResult(outcome, refresh=trigger)

    def update(self, sub: SubscriptionInput) -> MutationResult:
        updated = self._ingest(sub)
        index = self._index_of(updated.id)
        if index == -1:
            return UNCHANGED
        trigger = None
        if self._subs[index].url != updated.url:
            updated.node_count = 0
            trigger = RefreshTrigger(ids=(updated.id,))
        else:
            updated.is_updating = self._subs[index].is_updating
        self._subs[index] = updated
        outcome = self._signals.change()
        if trigger is not None:
            self._dispatch(trigger)
        return MutationResult(outcome, refresh=trigger)

    def delete(self, sub_id: str) -> MutationResult:
        index = self._index_of(sub_id)
        if index == -1:
            return UNCHANGED
        del self._subs[index]
        self._pager.after_remove(self._subs)
        return MutationResult(self._signals.request_persist(), removed=1)

    def delete_all(self) -> MutationResult:
        removed = len(self._subs)
        self._subs.clear()
        self._pager.reset()
        return MutationResult(self._signals.request_persist(), removed=removed)

    def add_bulk(self, subs: Iterable[SubscriptionInput]) -> MutationResult:
        added = [self._ingest(sub) for sub in subs]
        self._subs[:0] = added
        self._pager.reset()
        outcome = self._signals.request_persist()
        refreshable = tuple(sub.id for sub in added if is_http_url(sub.url))
        if not refreshable:
            self._signals.notify("Bulk import complete!", Severity.SUCCESS)
            return MutationResult(outcome)
        trigger = RefreshTrigger(ids=refreshable, batch=True)
        self._dispatch(trigger)
        return MutationResult(outcome, refresh=trigger)

    # remote refresh

    async def run_trigger(self, trigger: RefreshTrigger) -> None:
        if trigger.batch:
            await self.refresh_batch(trigger.ids)
            return
        for sub_id in trigger.ids:
            await self.refresh_one(sub_id)

    async def refresh_one(self, sub_id: str, is_initial_load: bool = False) -> bool:
        """Refresh one subscription's node count; returns True when new data was applied.

        Overlapping refreshes of the same id are resolved in favour of the most
        recently started one: older results are discarded on arrival.
        """
        sub = self.get(sub_id)
        if sub is None or not is_http_url(sub.url):
            return False

        generation = next(self._refresh_seq)
        self._generations[sub_id] = generation
        label = sub.name or "Subscription"
        if not is_initial_load:
            sub.is_updating = True

        try:
            data = await self._remote.fetch_node_count(sub.url)
        except Exception as exc:
            logger.error("Failed to fetch node count for {}: {}", label, exc)
            if not is_initial_load:
                self._signals.notify(f"{label} update failed", Severity.ERROR)
            return False
        else:
            current = self.get(sub_id)
            if current is None:
                logger.debug("Subscription {} removed before its refresh completed", sub_id)
                return False
            if self._generations.get(sub_id) != generation:
                logger.debug("Discarding stale refresh result for {}", sub_id)
                return False
            current.node_count = data.count or 0
            current.user_info = data.user_info or None
            if not is_initial_load:
                self._signals.notify(f"{label} updated", Severity.SUCCESS)
                self._signals.change()
            return True
        finally:
            if self._generations.get(sub_id) == generation:
                del self._generations[sub_id]
                current = self.get(sub_id)
                if current is not None:
                    current.is_updating = False

    async def refresh_batch(self, sub_ids: Sequence[str]) -> int:
        """Refresh many subscriptions in one remote call, degrading to one-by-one updates.

        Returns the number of subscriptions that received new data.
        """
        ids = [sub_id for sub_id in sub_ids if is_http_url(getattr(self.get(sub_id), "url", None))]
        if not ids:
            return 0
        self._signals.notify(f"Batch updating {len(ids)} subscriptions...", Severity.SUCCESS)
        try:
            result = await self._remote.batch_update_nodes(ids)
        except Exception:
            logger.exception("Batch update failed")
            self._signals.notify("Batch update failed, falling back to one-by-one updates...", Severity.ERROR)
            return await self._refresh_sequentially(ids)

        if not result.success:
            self._signals.notify(f"Batch update failed: {result.message}", Severity.ERROR)
            self._signals.notify("Falling back to one-by-one updates...", Severity.INFO)
            return await self._refresh_sequentially(ids)

        applied = self._merge_batch(result)
        self._signals.notify(
            f"Batch update complete! Updated {result.succeeded}/{len(ids)} subscriptions",
            Severity.SUCCESS,
        )
        if applied:
            self._signals.change()
        return applied

    def _merge_batch(self, result: BatchRefreshResult) -> int:
        by_id = {sub.id: sub for sub in self._subs}
        applied = 0
        for item in result.results:
            if not item.success:
                continue
            sub = by_id.get(item.id)
            if sub is None:
                continue
            if isinstance(item.node_count, int) and not isinstance(item.node_count, bool):
                sub.node_count = item.node_count
            if item.user_info:
                sub.user_info = item.user_info
            applied += 1
        return applied

    async def _refresh_sequentially(self, sub_ids: Sequence[str]) -> int:
        applied = 0
        for sub_id in sub_ids:
            if await self.refresh_one(sub_id):
                applied += 1
        return applied

    async def refresh_all(self, is_initial_load: bool = True) -> int:
        """Reconcile every http(s) subscription, silently by default."""
        applied = 0
        for sub_id in [sub.id for sub in self._subs if is_http_url(sub.url)]:
            if await self.refresh_one(sub_id, is_initial_load=is_initial_load):
                applied += 1
        return applied
