from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from loguru import logger

from features.sub_manager.application.ports import HostSignals
from features.sub_manager.application.region_classifier import RegionClassifier
from features.sub_manager.domain.canonical_key import canonical_key
from features.sub_manager.domain.models import (
    UNCHANGED,
    IdGenerator,
    MutationResult,
    Node,
    Severity,
    generate_id,
)
from features.sub_manager.domain.pagination import Pager
from features.sub_manager.domain.regions import COUNTRY_ALIASES


NODES_PER_PAGE = 24

NodeInput = Union[Node, Mapping[str, Any]]


class NodeCollection:
    """Manually entered nodes with search, pagination, dedup and region sort."""

    def __init__(
        self,
        signals: Optional[HostSignals] = None,
        *,
        id_factory: IdGenerator = generate_id,
        classifier: Optional[RegionClassifier] = None,
        page_size: int = NODES_PER_PAGE,
    ) -> None:
        self._signals = signals or HostSignals()
        self._id_factory = id_factory
        self._classifier = classifier or RegionClassifier()
        self._pager = Pager(page_size=page_size)
        self._nodes: List[Node] = []
        self._search_term = ""
        self._snapshot: Optional[List[Any]] = None

    # ingestion

    def _ingest(self, item: NodeInput) -> Node:
        if isinstance(item, Node):
            if not item.id:
                item.id = self._id_factory()
            return item
        return Node.from_dict(item, self._id_factory)

    def initialize(self, items: Optional[Iterable[NodeInput]]) -> None:
        self._nodes = [self._ingest(item) for item in (items or [])]
        self._pager.clamp(len(self.filtered))

    def load_snapshot(self, items: Optional[Sequence[Mapping[str, Any]]]) -> bool:
        """Re-initialize from a host snapshot unless it equals the previous one."""
        snapshot = [dict(item) for item in (items or [])]
        if snapshot == self._snapshot:
            return False
        self._snapshot = snapshot
        self.initialize(snapshot)
        return True

    # derived views

    @property
    def items(self) -> List[Node]:
        return list(self._nodes)

    @property
    def search_term(self) -> str:
        return self._search_term

    @property
    def current_page(self) -> int:
        return self._pager.current

    @property
    def page_size(self) -> int:
        return self._pager.page_size

    @property
    def filtered(self) -> List[Node]:
        if not self._search_term:
            return list(self._nodes)
        needle = self._search_term.lower()
        aliases = [alias.lower() for alias in COUNTRY_ALIASES.get(needle, ())]

        def matches(node: Node) -> bool:
            name = (node.name or "").lower()
            return needle in name or any(alias in name for alias in aliases)

        return [node for node in self._nodes if matches(node)]

    @property
    def total_pages(self) -> int:
        return self._pager.total_pages(len(self.filtered))

    @property
    def paginated(self) -> List[Node]:
        return self._pager.window(self.filtered)

    @property
    def total_count(self) -> int:
        return len(self._nodes)

    @property
    def enabled_count(self) -> int:
        return sum(1 for node in self._nodes if node.enabled)

    def get(self, node_id: str) -> Optional[Node]:
        return next((node for node in self._nodes if node.id == node_id), None)

    def _index_of(self, node_id: str) -> int:
        for index, node in enumerate(self._nodes):
            if node.id == node_id:
                return index
        return -1

    # operations

    def search(self, term: Optional[str]) -> None:
        self._search_term = term or ""
        self._pager.reset()

    def change_page(self, page: int) -> bool:
        return self._pager.change(page, len(self.filtered))

    def add(self, node: NodeInput) -> MutationResult:
        self._nodes.insert(0, self._ingest(node))
        self._pager.after_prepend(self.filtered)
        return MutationResult(self._signals.request_persist("Node added, saving..."))

    def update(self, node: NodeInput) -> MutationResult:
        updated = self._ingest(node)
        index = self._index_of(updated.id)
        if index == -1:
            return UNCHANGED
        self._nodes[index] = updated
        self._pager.clamp(len(self.filtered))
        return MutationResult(self._signals.change())

    def delete(self, node_id: str) -> MutationResult:
        index = self._index_of(node_id)
        if index == -1:
            return UNCHANGED
        del self._nodes[index]
        self._pager.after_remove(self.filtered)
        return MutationResult(
            self._signals.request_persist("Node deleted, saving and refreshing..."),
            removed=1,
        )

    def delete_all(self) -> MutationResult:
        removed = len(self._nodes)
        self._nodes.clear()
        self._pager.reset()
        self._search_term = ""
        return MutationResult(
            self._signals.request_persist("All manual nodes cleared, refreshing..."),
            removed=removed,
        )

    def add_bulk(self, nodes: Iterable[NodeInput]) -> MutationResult:
        self._nodes[:0] = [self._ingest(node) for node in nodes]
        self._pager.reset()
        return MutationResult(self._signals.request_persist("Bulk import succeeded, saving..."))

    def deduplicate(self) -> MutationResult:
        seen = set()
        unique: List[Node] = []
        for node in self._nodes:
            key = canonical_key(node.url or "")
            if key in seen:
                continue
            seen.add(key)
            unique.append(node)
        removed = len(self._nodes) - len(unique)
        if removed == 0:
            self._signals.notify("No duplicate nodes found.", Severity.INFO)
            return UNCHANGED
        self._nodes = unique
        self._pager.clamp(len(self.filtered))
        logger.info("Removed {} duplicate nodes", removed)
        return MutationResult(
            self._signals.request_persist(f"Removed {removed} duplicate nodes, saving..."),
            removed=removed,
        )

    def auto_sort(self) -> MutationResult:
        self._nodes = self._classifier.sort(self._nodes, lambda node: node.name)
        return MutationResult(self._signals.request_persist("Nodes sorted, saving..."))
