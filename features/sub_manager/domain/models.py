from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple


IdGenerator = Callable[[], str]


def generate_id() -> str:
    return str(uuid.uuid4())


_NODE_KEYS = {"id", "name", "url", "enabled"}
_SUBSCRIPTION_KEYS = _NODE_KEYS | {"nodeCount", "isUpdating", "userInfo", "exclude"}


@dataclass
class Node:
    id: str
    name: str = ""
    url: str = ""
    enabled: bool = True
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], id_factory: IdGenerator = generate_id) -> "Node":
        enabled = data.get("enabled")
        return cls(
            id=data.get("id") or id_factory(),
            name=data.get("name") or "",
            url=data.get("url") or "",
            enabled=True if enabled is None else bool(enabled),
            extra={k: v for k, v in data.items() if k not in _NODE_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        out = dict(self.extra)
        out.update(id=self.id, name=self.name, url=self.url, enabled=self.enabled)
        return out


@dataclass
class Subscription:
    id: str
    name: str = ""
    url: str = ""
    enabled: bool = True
    node_count: int = 0
    is_updating: bool = False  # transient, never persisted
    user_info: Optional[Dict[str, Any]] = None
    exclude: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], id_factory: IdGenerator = generate_id) -> "Subscription":
        enabled = data.get("enabled")
        return cls(
            id=data.get("id") or id_factory(),
            name=data.get("name") or "",
            url=data.get("url") or "",
            enabled=True if enabled is None else bool(enabled),
            node_count=data.get("nodeCount") or 0,
            user_info=data.get("userInfo") or None,
            exclude=data.get("exclude") or "",
            extra={k: v for k, v in data.items() if k not in _SUBSCRIPTION_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        out = dict(self.extra)
        out.update(
            id=self.id,
            name=self.name,
            url=self.url,
            enabled=self.enabled,
            nodeCount=self.node_count,
            userInfo=self.user_info,
            exclude=self.exclude,
        )
        return out


class Severity(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


class MutationOutcome(str, Enum):
    PERSIST_REQUESTED = "persist_requested"
    CHANGE_MARKED = "change_marked"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class RefreshTrigger:
    """Asynchronous follow-up a mutation asks the host to run."""

    ids: Tuple[str, ...]
    batch: bool = False


@dataclass(frozen=True)
class MutationResult:
    outcome: MutationOutcome
    removed: int = 0
    refresh: Optional[RefreshTrigger] = None


UNCHANGED = MutationResult(outcome=MutationOutcome.UNCHANGED)


@dataclass(frozen=True)
class NodeCountResult:
    count: int = 0
    user_info: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class BatchRefreshItem:
    id: str
    success: bool
    node_count: Optional[int] = None
    user_info: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class BatchRefreshResult:
    success: bool
    results: List[BatchRefreshItem] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.results if item.success)
