from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict

from ..application.services import Workspace
from ..domain.models import MutationResult, Node, Subscription
from ..infrastructure.bulk_import import parse_node_lines, parse_subscription_lines
from ..infrastructure.db import init_db
from ..infrastructure.workspace_factory import build_workspace


router = APIRouter()

_workspace: Optional[Workspace] = None


def get_workspace() -> Workspace:
    global _workspace
    if _workspace is None:
        init_db()
        _workspace = build_workspace()
        _workspace.load()
    return _workspace


class NodeIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: str = ""
    url: str
    enabled: bool = True


class NodeOut(BaseModel):
    id: str
    name: str
    url: str
    enabled: bool


class SubscriptionIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: str = ""
    url: str
    enabled: bool = True
    nodeCount: int = 0
    userInfo: Optional[Dict[str, Any]] = None
    exclude: str = ""


class SubscriptionOut(BaseModel):
    id: str
    name: str
    url: str
    enabled: bool
    node_count: int
    is_updating: bool
    user_info: Optional[Dict[str, Any]]
    exclude: str


class NodePage(BaseModel):
    items: List[NodeOut]
    page: int
    total_pages: int
    total: int
    enabled: int
    search: str


class SubscriptionPage(BaseModel):
    items: List[SubscriptionOut]
    page: int
    total_pages: int
    total: int
    enabled: int


class MutationOut(BaseModel):
    outcome: str
    removed: int = 0
    refresh_ids: List[str] = []


class BulkText(BaseModel):
    text: str


class RefreshOut(BaseModel):
    id: str
    updated: bool


class NoticeOut(BaseModel):
    message: str
    severity: str


def _node_out(node: Node) -> NodeOut:
    return NodeOut(id=node.id, name=node.name, url=node.url, enabled=node.enabled)


def _subscription_out(sub: Subscription) -> SubscriptionOut:
    return SubscriptionOut(
        id=sub.id,
        name=sub.name,
        url=sub.url,
        enabled=sub.enabled,
        node_count=sub.node_count,
        is_updating=sub.is_updating,
        user_info=sub.user_info,
        exclude=sub.exclude,
    )


def _mutation_out(result: MutationResult) -> MutationOut:
    return MutationOut(
        outcome=result.outcome.value,
        removed=result.removed,
        refresh_ids=list(result.refresh.ids) if result.refresh else [],
    )


@router.get("/nodes", response_model=NodePage)
async def list_nodes(
    page: Optional[int] = Query(None, ge=1),
    search: Optional[str] = None,
    ws: Workspace = Depends(get_workspace),
):
    nodes = ws.nodes
    if search is not None and search != nodes.search_term:
        nodes.search(search)
    if page is not None:
        nodes.change_page(page)
    return NodePage(
        items=[_node_out(n) for n in nodes.paginated],
        page=nodes.current_page,
        total_pages=nodes.total_pages,
        total=nodes.total_count,
        enabled=nodes.enabled_count,
        search=nodes.search_term,
    )


@router.post("/nodes", response_model=MutationOut)
async def add_node(body: NodeIn, ws: Workspace = Depends(get_workspace)):
    return _mutation_out(ws.nodes.add(body.model_dump()))


@router.put("/nodes/{node_id}", response_model=MutationOut)
async def update_node(node_id: str, body: NodeIn, ws: Workspace = Depends(get_workspace)):
    data = body.model_dump()
    data["id"] = node_id
    return _mutation_out(ws.nodes.update(data))


@router.delete("/nodes/{node_id}", response_model=MutationOut)
async def delete_node(node_id: str, ws: Workspace = Depends(get_workspace)):
    return _mutation_out(ws.nodes.delete(node_id))


@router.delete("/nodes", response_model=MutationOut)
async def delete_all_nodes(ws: Workspace = Depends(get_workspace)):
    return _mutation_out(ws.nodes.delete_all())


@router.post("/nodes/bulk", response_model=MutationOut)
async def bulk_add_nodes(body: BulkText, ws: Workspace = Depends(get_workspace)):
    return _mutation_out(ws.nodes.add_bulk(parse_node_lines(body.text)))


@router.post("/nodes/deduplicate", response_model=MutationOut)
async def deduplicate_nodes(ws: Workspace = Depends(get_workspace)):
    return _mutation_out(ws.nodes.deduplicate())


@router.post("/nodes/sort", response_model=MutationOut)
async def sort_nodes(ws: Workspace = Depends(get_workspace)):
    return _mutation_out(ws.nodes.auto_sort())


@router.get("/subscriptions", response_model=SubscriptionPage)
async def list_subscriptions(
    page: Optional[int] = Query(None, ge=1),
    ws: Workspace = Depends(get_workspace),
):
    subs = ws.subscriptions
    if page is not None:
        subs.change_page(page)
    return SubscriptionPage(
        items=[_subscription_out(s) for s in subs.paginated],
        page=subs.current_page,
        total_pages=subs.total_pages,
        total=subs.total_count,
        enabled=subs.enabled_count,
    )


@router.post("/subscriptions", response_model=MutationOut)
async def add_subscription(body: SubscriptionIn, ws: Workspace = Depends(get_workspace)):
    return _mutation_out(ws.subscriptions.add(body.model_dump()))


@router.put("/subscriptions/{sub_id}", response_model=MutationOut)
async def update_subscription(sub_id: str, body: SubscriptionIn, ws: Workspace = Depends(get_workspace)):
    data = body.model_dump()
    data["id"] = sub_id
    return _mutation_out(ws.subscriptions.update(data))


@router.delete("/subscriptions/{sub_id}", response_model=MutationOut)
async def delete_subscription(sub_id: str, ws: Workspace = Depends(get_workspace)):
    return _mutation_out(ws.subscriptions.delete(sub_id))


@router.delete("/subscriptions", response_model=MutationOut)
async def delete_all_subscriptions(ws: Workspace = Depends(get_workspace)):
    return _mutation_out(ws.subscriptions.delete_all())


@router.post("/subscriptions/bulk", response_model=MutationOut)
async def bulk_add_subscriptions(body: BulkText, ws: Workspace = Depends(get_workspace)):
    return _mutation_out(ws.subscriptions.add_bulk(parse_subscription_lines(body.text)))


@router.post("/subscriptions/{sub_id}/refresh", response_model=RefreshOut)
async def refresh_subscription(sub_id: str, ws: Workspace = Depends(get_workspace)):
    updated = await ws.subscriptions.refresh_one(sub_id)
    return RefreshOut(id=sub_id, updated=updated)


@router.post("/save")
async def save(ws: Workspace = Depends(get_workspace)):
    ws.persist()
    return {"saved": True, **ws.stats()}


@router.get("/notices", response_model=List[NoticeOut])
async def notices(ws: Workspace = Depends(get_workspace)):
    return [NoticeOut(message=n.message, severity=n.severity.value) for n in ws.drain_notices()]
