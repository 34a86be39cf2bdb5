"""Command dispatch: create, pending queue, ack reconciliation.

Agents pull. A command stays in its host's pending queue, in creation order,
until the agent acks it; fetching never leases, so an agent that crashes
between fetch and ack simply sees the command again. Acks are at-least-once:
replaying the stored outcome is a no-op, a different outcome is rejected.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from nodeplane.auth import Principal
from nodeplane.clock import Clock, SystemClock
from nodeplane.db.session import transaction
from nodeplane.errors import Forbidden, InvalidPayload, NotFound
from nodeplane.models.command import Command, CommandKind, ExitCode
from nodeplane.models.node_log import NodeLog, NodeLogEvent
from nodeplane.services import command_factory, command_store, lifecycle
from nodeplane.services.nodes import NodeDirectory, SqlNodeDirectory
from nodeplane.services.notifier import LogPublisher, Outbox, host_commands_topic
from nodeplane.services.wire import command_summary

log = logging.getLogger(__name__)

DEFAULT_EXIT_MESSAGE_MAX_LENGTH = 1024


class Commands:
    def __init__(
        self,
        db: Session,
        *,
        nodes: NodeDirectory | None = None,
        clock: Clock | None = None,
        outbox: Outbox | None = None,
        exit_message_max_length: int = DEFAULT_EXIT_MESSAGE_MAX_LENGTH,
    ):
        self.db = db
        self.nodes = nodes if nodes is not None else SqlNodeDirectory(db)
        self.clock = clock or SystemClock()
        self.outbox = outbox if outbox is not None else Outbox(LogPublisher())
        self.exit_message_max_length = exit_message_max_length

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        try:
            with transaction(self.db):
                yield
        except BaseException:
            self.outbox.discard()
            raise
        self.outbox.flush()

    def _require_org(self, principal: Principal, org_id: uuid.UUID, what: str) -> None:
        if not principal.is_user or principal.org_id != org_id:
            log.warning(f"{principal.kind} principal {principal.user_id} denied on {what}")
            raise Forbidden(f"{what} belongs to another org")

    def _require_host(self, principal: Principal, host_id: uuid.UUID, what: str) -> None:
        if not principal.is_host or principal.host_id != host_id:
            log.warning(f"{principal.kind} principal {principal.host_id} denied on {what}")
            raise Forbidden(f"{what} belongs to host {host_id}")

    def _queued(self, command: Command) -> None:
        self.outbox.queue(
            host_commands_topic(command.host_id),
            {"event": "command_created", "command": command_summary(command)},
        )

    def create(
        self, principal: Principal, node_id: uuid.UUID, kind: CommandKind | str
    ) -> Command:
        kind = command_factory.parse_kind(kind)
        with self._unit_of_work():
            node = self.nodes.by_id(node_id)
            self._require_org(principal, node.org_id, f"node {node_id}")
            draft = command_factory.for_node(self.db, self.nodes, node_id, kind)
            command = command_store.insert(self.db, draft, self.clock)
            if kind == CommandKind.NODE_CREATE:
                created = lifecycle.node_log_draft(node, NodeLogEvent.CREATED)
                created.host_id = command.host_id
                command_store.append_log(self.db, created, self.clock)
            self._queued(command)
        log.info(f"Queued {kind.value} {command.id} for node {node_id} on host {command.host_id}")
        return command

    def create_for_host(
        self, principal: Principal, host_id: uuid.UUID, kind: CommandKind | str
    ) -> Command:
        kind = command_factory.parse_kind(kind)
        with self._unit_of_work():
            host = command_store.get_host(self.db, host_id)
            if host is None:
                raise NotFound(f"Host {host_id} not found")
            self._require_org(principal, host.org_id, f"host {host_id}")
            draft = command_factory.for_host(self.db, host_id, kind)
            command = command_store.insert(self.db, draft, self.clock)
            self._queued(command)
        log.info(f"Queued {kind.value} {command.id} for host {host_id}")
        return command

    def pending(
        self,
        principal: Principal,
        host_id: uuid.UUID,
        kind: CommandKind | str | None = None,
    ) -> list[Command]:
        self._require_host(principal, host_id, f"pending queue of host {host_id}")
        filter_kind = command_factory.parse_kind(kind) if kind is not None else None
        if command_store.get_host(self.db, host_id) is None:
            raise NotFound(f"Host {host_id} not found")
        return command_store.pending_for_host(self.db, host_id, filter_kind)

    def by_id(self, principal: Principal, command_id: uuid.UUID) -> Command:
        command = command_store.get(self.db, command_id)
        if principal.is_host:
            self._require_host(principal, command.host_id, f"command {command_id}")
        else:
            host = command_store.get_host(self.db, command.host_id)
            if host is None:
                raise NotFound(f"Host {command.host_id} not found")
            self._require_org(principal, host.org_id, f"command {command_id}")
        return command

    def node_logs(self, principal: Principal, node_id: uuid.UUID) -> list[NodeLog]:
        node = self.nodes.by_id(node_id)
        self._require_org(principal, node.org_id, f"node {node_id}")
        return command_store.logs_for_node(self.db, node_id)

    def normalize_outcome(
        self,
        exit_code: ExitCode | str | None,
        exit_message: str | None,
        retry_hint_seconds: int | None,
    ) -> tuple[ExitCode, str | None, int | None]:
        if exit_code is None:
            raise InvalidPayload("exit_code", "exit_code is required to ack a command")
        if not isinstance(exit_code, ExitCode):
            try:
                exit_code = ExitCode(exit_code)
            except ValueError as e:
                raise InvalidPayload("exit_code", f"Unknown exit code: {exit_code!r}") from e

        if exit_message is not None:
            # Overlong messages are cut, not rejected.
            exit_message = exit_message.strip()[: self.exit_message_max_length] or None

        if retry_hint_seconds is not None:
            if exit_code == ExitCode.OK:
                raise InvalidPayload("retry_hint_seconds", "retry hint is only allowed on failure")
            if retry_hint_seconds < 0:
                raise InvalidPayload("retry_hint_seconds", "retry hint must be non-negative")

        return exit_code, exit_message, retry_hint_seconds

    def ack(
        self,
        principal: Principal,
        command_id: uuid.UUID,
        exit_code: ExitCode | str | None,
        exit_message: str | None = None,
        retry_hint_seconds: int | None = None,
    ) -> Command:
        with self._unit_of_work():
            command = command_store.get(self.db, command_id, for_update=True)
            self._require_host(principal, command.host_id, f"command {command_id}")

            outcome = self.normalize_outcome(exit_code, exit_message, retry_hint_seconds)
            command, newly_acked = command_store.update_outcome(
                self.db, command.id, *outcome, clock=self.clock
            )
            if not newly_acked:
                log.warning(f"Duplicate ack for command {command.id}")
                return command

            if command.node_id is not None:
                apply_outcome = getattr(self.nodes, "apply_outcome", None)
                if apply_outcome is not None:
                    apply_outcome(command)
            lifecycle.dispatch(self.db, command, self.nodes, self.clock, self.outbox)

        code = command.exit_code.value if command.exit_code else None
        log.info(f"Acked {command.kind.value} {command.id} on host {command.host_id}: {code}")
        return command
