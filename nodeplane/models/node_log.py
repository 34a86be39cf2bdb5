from __future__ import annotations

import enum
import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from nodeplane.db.base import Base


class NodeLogEvent(str, enum.Enum):
    # A NodeCreate command was queued for a host.
    CREATED = "created"
    # The agent confirmed the create.
    SUCCEEDED = "succeeded"
    # The agent reported a failed create.
    FAILED = "failed"
    # The node was torn down.
    CANCELED = "canceled"


class NodeLog(Base):
    """Append-only record of node lifecycle events.

    Blockchain name, node type and version are copied in so the log stays
    meaningful after the node row is deleted; for the same reason node_id
    carries no foreign key.
    """

    __tablename__ = "node_logs"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid.uuid4)
    host_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid(), nullable=False)
    node_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid(), nullable=False, index=True)
    event: Mapped[NodeLogEvent] = mapped_column(
        sa.Enum(
            NodeLogEvent,
            name="node_log_event",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )
    blockchain_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    node_type: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    version: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    message: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.text("NOW()"), index=True
    )
