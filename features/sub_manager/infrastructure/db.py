from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .settings import database_path


engine = create_engine(f"sqlite:///{database_path()}", connect_args={"check_same_thread": False})
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()


class ManualNodeORM(Base):
    __tablename__ = "manual_nodes"
    id = Column(String(64), primary_key=True)
    position = Column(Integer, nullable=False, index=True)
    name = Column(String(512), nullable=False, default="")
    url = Column(Text, nullable=False, default="")
    enabled = Column(Boolean, nullable=False, default=True)
    extra = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class SubscriptionORM(Base):
    __tablename__ = "subscriptions"
    id = Column(String(64), primary_key=True)
    position = Column(Integer, nullable=False, index=True)
    name = Column(String(512), nullable=False, default="")
    url = Column(Text, nullable=False, default="")
    enabled = Column(Boolean, nullable=False, default=True)
    node_count = Column(Integer, nullable=False, default=0)
    user_info = Column(JSON, nullable=True)
    exclude = Column(Text, nullable=False, default="")
    extra = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


def init_db(bind=None) -> None:
    Base.metadata.create_all(bind=bind or engine)
