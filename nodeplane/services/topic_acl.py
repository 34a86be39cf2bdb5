"""Broker topic ACL decisions.

One interface, two policies picked per endpoint:

* ``host``: a host token may use ``/hosts/<its host id>/...``.
* ``user``: a user token may use ``/nodes/<node id>/...`` when the node
  belongs to the token's org.

Every failure (bad token, malformed topic, unknown node, store error) is a
plain denial; the reason only goes to the log.
"""

from __future__ import annotations

import enum
import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError

from nodeplane.auth import InvalidToken, TokenCodec
from nodeplane.errors import CommandError
from nodeplane.services.nodes import NodeDirectory

log = logging.getLogger(__name__)


class TopicPolicy(str, enum.Enum):
    HOST = "host"
    USER = "user"


class _Denied(Exception):
    pass


class TopicAcl:
    def __init__(self, policy: TopicPolicy, codec: TokenCodec, nodes: NodeDirectory | None = None):
        if policy == TopicPolicy.USER and nodes is None:
            raise ValueError("user topic policy needs a node directory")
        self.policy = policy
        self.codec = codec
        self.nodes = nodes

    def allow(self, token: str, topic: str) -> bool:
        try:
            if self.policy == TopicPolicy.HOST:
                self._check_host(token, topic)
            else:
                self._check_user(token, topic)
        except (_Denied, InvalidToken, CommandError, SQLAlchemyError) as e:
            log.info(f"{self.policy.value} ACL denied {topic!r}: {type(e).__name__}: {e}")
            return False
        log.debug(f"{self.policy.value} ACL allowed {topic!r}")
        return True

    def _check_host(self, token: str, topic: str) -> None:
        principal = self.codec.principal_of(token)
        if not principal.is_host:
            raise _Denied("not a host token")
        segments = topic.split("/")
        if len(segments) < 3 or segments[0] != "" or segments[1] != "hosts":
            raise _Denied("not a host topic")
        try:
            host_id = uuid.UUID(segments[2])
        except ValueError as e:
            raise _Denied(f"{segments[2]!r} is not a host id") from e
        if host_id != principal.host_id:
            raise _Denied(f"topic host {host_id} is not {principal.host_id}")

    def _check_user(self, token: str, topic: str) -> None:
        principal = self.codec.principal_of(token)
        if not principal.is_user:
            raise _Denied("not a user token")
        if principal.org_id is None:
            raise _Denied("token has no org claim")
        segments = topic.split("/")
        if len(segments) < 3 or segments[0] != "" or segments[1] != "nodes":
            raise _Denied("not a node topic")
        try:
            node_id = uuid.UUID(segments[2])
        except ValueError as e:
            raise _Denied(f"{segments[2]!r} is not a node id") from e

        node = self.nodes.by_id(node_id)  # type: ignore[union-attr]
        if node.org_id != principal.org_id:
            raise _Denied(f"node {node_id} is not in org {principal.org_id}")
