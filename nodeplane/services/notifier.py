from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

log = logging.getLogger(__name__)


def host_commands_topic(host_id: object) -> str:
    return f"/hosts/{host_id}/commands"


def node_commands_topic(node_id: object) -> str:
    return f"/nodes/{node_id}/commands"


class Publisher(Protocol):
    def publish(self, topic: str, message: dict[str, Any]) -> None: ...


class LogPublisher:
    """Default publisher when no broker client is wired in."""

    def publish(self, topic: str, message: dict[str, Any]) -> None:
        log.info(f"notify {topic}: {message.get('event')} {message.get('command', {}).get('id')}")


@dataclass
class Outbox:
    """Messages queued inside a transaction, published only after commit."""

    publisher: Publisher
    pending: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def queue(self, topic: str, message: dict[str, Any]) -> None:
        self.pending.append((topic, message))

    def discard(self) -> None:
        self.pending.clear()

    def flush(self) -> int:
        sent = 0
        messages, self.pending = self.pending, []
        for topic, message in messages:
            try:
                self.publisher.publish(topic, message)
                sent += 1
            except Exception as e:
                # Already committed; agents still see the change on their next poll.
                log.warning(f"Failed to publish to {topic}: {e}")
        return sent
