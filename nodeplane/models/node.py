from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nodeplane.db.base import Base, JSONVariant
from nodeplane.models.host import Blockchain, Host


class Node(Base):
    __tablename__ = "nodes"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    org_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid(), nullable=False, index=True)
    # Null until the scheduler has placed the node on a host.
    host_id: Mapped[uuid.UUID | None] = mapped_column(
        sa.Uuid(), sa.ForeignKey("hosts.id", ondelete="SET NULL"), nullable=True, index=True
    )
    blockchain_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), sa.ForeignKey("blockchains.id"), nullable=False
    )
    node_type: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    version: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)
    status: Mapped[str] = mapped_column(
        sa.String(32), server_default="provisioning_pending", nullable=False
    )

    allow_ips: Mapped[list[Any]] = mapped_column(JSONVariant, default=list, nullable=False)
    deny_ips: Mapped[list[Any]] = mapped_column(JSONVariant, default=list, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.text("NOW()")
    )

    host: Mapped[Host | None] = relationship(Host)
    blockchain: Mapped[Blockchain] = relationship(Blockchain)
