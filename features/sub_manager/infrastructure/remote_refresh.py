from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests

from features.sub_manager.application.ports import RemoteRefresh
from features.sub_manager.domain.models import BatchRefreshItem, BatchRefreshResult, NodeCountResult

from .settings import api_base_url, http_timeout, tls_verify


class RemoteRefreshError(RuntimeError):
    """Raised when the backend cannot produce a node count or batch result."""


def _optional_dict(value: Any) -> Optional[Dict[str, Any]]:
    return dict(value) if isinstance(value, Mapping) and value else None


def _whole(value: Any) -> Any:
    return int(value) if isinstance(value, float) and value.is_integer() else value


def parse_node_count(payload: Any) -> NodeCountResult:
    if not isinstance(payload, Mapping):
        raise RemoteRefreshError("node count response is not a JSON object")
    count = _whole(payload.get("count") or 0)
    if not isinstance(count, int) or isinstance(count, bool):
        raise RemoteRefreshError(f"invalid node count: {count!r}")
    return NodeCountResult(count=count, user_info=_optional_dict(payload.get("userInfo")))


def parse_batch_result(payload: Any) -> BatchRefreshResult:
    if not isinstance(payload, Mapping):
        raise RemoteRefreshError("batch response is not a JSON object")
    items: List[BatchRefreshItem] = []
    for raw in payload.get("results") or []:
        if not isinstance(raw, Mapping) or raw.get("id") is None:
            continue
        items.append(
            BatchRefreshItem(
                id=str(raw["id"]),
                success=bool(raw.get("success")),
                node_count=_whole(raw.get("nodeCount")),
                user_info=_optional_dict(raw.get("userInfo")),
            )
        )
    return BatchRefreshResult(
        success=bool(payload.get("success")),
        results=items,
        message=payload.get("message"),
    )


@dataclass
class RequestsRemoteRefresh(RemoteRefresh):
    """Talks to the host backend; blocking calls run in a worker thread."""

    base_url: str = ""
    timeout: float = 0.0
    verify_tls: Optional[bool] = None
    headers: Optional[Dict[str, str]] = None

    def __post_init__(self):
        self.base_url = (self.base_url or api_base_url()).rstrip("/")
        self.timeout = self.timeout or http_timeout()
        self._session = requests.Session()
        self._session.verify = tls_verify() if self.verify_tls is None else self.verify_tls
        if self.headers:
            self._session.headers.update(self.headers)

    def _post(self, path: str, body: Mapping[str, Any]) -> Any:
        try:
            response = self._session.post(f"{self.base_url}{path}", json=body, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise RemoteRefreshError(f"{path} request failed: {exc}") from exc
        except ValueError as exc:
            raise RemoteRefreshError(f"{path} returned malformed JSON") from exc

    def fetch_node_count_sync(self, url: str) -> NodeCountResult:
        return parse_node_count(self._post("/node_count", {"url": url}))

    def batch_update_nodes_sync(self, ids: Sequence[str]) -> BatchRefreshResult:
        return parse_batch_result(self._post("/batch_update_nodes", {"subscriptionIds": list(ids)}))

    async def fetch_node_count(self, url: str) -> NodeCountResult:
        return await asyncio.to_thread(self.fetch_node_count_sync, url)

    async def batch_update_nodes(self, ids: Sequence[str]) -> BatchRefreshResult:
        return await asyncio.to_thread(self.batch_update_nodes_sync, list(ids))

    def close(self) -> None:
        self._session.close()
