from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .db import ManualNodeORM, SessionLocal, SubscriptionORM
from ..domain.models import Node, Subscription


class SnapshotRepository:
    """Stores the latest snapshot of each collection, replacing it wholesale on save."""

    def __init__(self, session: Optional[Session] = None) -> None:
        self._session = session or SessionLocal()

    def __enter__(self) -> SnapshotRepository:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    def save_nodes(self, nodes: Sequence[Node]) -> int:
        rows = [
            ManualNodeORM(
                id=node.id,
                position=position,
                name=node.name,
                url=node.url,
                enabled=node.enabled,
                extra=dict(node.extra),
            )
            for position, node in enumerate(nodes)
        ]
        return self._replace(ManualNodeORM, rows)

    def save_subscriptions(self, subs: Sequence[Subscription]) -> int:
        rows = [
            SubscriptionORM(
                id=sub.id,
                position=position,
                name=sub.name,
                url=sub.url,
                enabled=sub.enabled,
                node_count=sub.node_count,
                user_info=sub.user_info,
                exclude=sub.exclude,
                extra=dict(sub.extra),
            )
            for position, sub in enumerate(subs)
        ]
        return self._replace(SubscriptionORM, rows)

    def _replace(self, model, rows: List[Any]) -> int:
        self._session.expunge_all()
        try:
            self._session.execute(delete(model))
            self._session.add_all(rows)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return len(rows)

    def load_nodes(self) -> List[Dict[str, Any]]:
        rows = self._session.execute(select(ManualNodeORM).order_by(ManualNodeORM.position.asc())).scalars().all()
        return [self._node_to_dict(row) for row in rows]

    def load_subscriptions(self) -> List[Dict[str, Any]]:
        rows = self._session.execute(select(SubscriptionORM).order_by(SubscriptionORM.position.asc())).scalars().all()
        return [self._subscription_to_dict(row) for row in rows]

    def _node_to_dict(self, orm: ManualNodeORM) -> Dict[str, Any]:
        return Node(
            id=orm.id,
            name=orm.name,
            url=orm.url,
            enabled=orm.enabled,
            extra=dict(orm.extra or {}),
        ).to_dict()

    def _subscription_to_dict(self, orm: SubscriptionORM) -> Dict[str, Any]:
        return Subscription(
            id=orm.id,
            name=orm.name,
            url=orm.url,
            enabled=orm.enabled,
            node_count=orm.node_count,
            user_info=orm.user_info,
            exclude=orm.exclude,
            extra=dict(orm.extra or {}),
        ).to_dict()
