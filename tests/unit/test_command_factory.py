import uuid

import pytest

from nodeplane.errors import (
    HostUnreachable,
    InvalidKindForScope,
    InvalidPayload,
    NodeNotFound,
    NotFound,
)
from nodeplane.models.command import CommandKind
from nodeplane.services import command_factory
from nodeplane.services.nodes import SqlNodeDirectory


class TestParseKind:
    def test_wire_value(self):
        assert command_factory.parse_kind("node_upgrade") == CommandKind.NODE_UPGRADE

    def test_enum_passes_through(self):
        assert command_factory.parse_kind(CommandKind.HOST_PENDING) is CommandKind.HOST_PENDING

    def test_unknown_value_names_field(self):
        with pytest.raises(InvalidPayload) as exc:
            command_factory.parse_kind("NodeCreate", field="filter")
        assert exc.value.field == "filter"


class TestForNode:
    def test_node_create_payload(self, sync_db_session, node, host, blockchain):
        draft = command_factory.for_node(
            sync_db_session, SqlNodeDirectory(sync_db_session), node.id, CommandKind.NODE_CREATE
        )

        assert draft.host_id == host.id
        assert draft.node_id == node.id
        assert draft.payload == {
            "name": "node-1",
            "blockchain": "ethereum",
            "blockchain_id": str(blockchain.id),
            "node_type": "validator",
            "version": "1.2.3",
        }

    def test_node_create_without_version_uses_latest(self, sync_db_session, make_node):
        unversioned = make_node(version=None)

        draft = command_factory.for_node(
            sync_db_session,
            SqlNodeDirectory(sync_db_session),
            unversioned.id,
            CommandKind.NODE_CREATE,
        )

        assert draft.payload["version"] == "latest"

    def test_upgrade_payload(self, sync_db_session, make_node):
        target = make_node(version="2.0.0", node_type="archive")

        draft = command_factory.for_node(
            sync_db_session, SqlNodeDirectory(sync_db_session), target.id, CommandKind.NODE_UPGRADE
        )

        assert draft.payload == {"blockchain": "ethereum", "node_type": "archive", "version": "2.0.0"}

    def test_simple_kinds_have_empty_payload(self, sync_db_session, node):
        nodes = SqlNodeDirectory(sync_db_session)
        for kind in (
            CommandKind.NODE_START,
            CommandKind.NODE_STOP,
            CommandKind.NODE_RESTART,
            CommandKind.NODE_DELETE,
        ):
            assert command_factory.for_node(sync_db_session, nodes, node.id, kind).payload == {}

    def test_host_kind_drops_node(self, sync_db_session, node, host):
        draft = command_factory.for_node(
            sync_db_session, SqlNodeDirectory(sync_db_session), node.id, CommandKind.HOST_PENDING
        )

        assert draft.host_id == host.id
        assert draft.node_id is None

    def test_missing_node(self, sync_db_session):
        with pytest.raises(NodeNotFound):
            command_factory.for_node(
                sync_db_session,
                SqlNodeDirectory(sync_db_session),
                uuid.uuid4(),
                CommandKind.NODE_START,
            )

    def test_node_without_host(self, sync_db_session, make_node):
        unplaced = make_node(host_id=None)

        with pytest.raises(HostUnreachable):
            command_factory.for_node(
                sync_db_session,
                SqlNodeDirectory(sync_db_session),
                unplaced.id,
                CommandKind.NODE_START,
            )


class TestForHost:
    def test_host_restart(self, sync_db_session, host):
        draft = command_factory.for_host(sync_db_session, host.id, CommandKind.HOST_RESTART)

        assert draft.host_id == host.id
        assert draft.node_id is None
        assert draft.payload == {}

    def test_node_kind_is_rejected(self, sync_db_session, host):
        with pytest.raises(InvalidKindForScope):
            command_factory.for_host(sync_db_session, host.id, CommandKind.NODE_DELETE)

    def test_missing_host(self, sync_db_session):
        with pytest.raises(NotFound):
            command_factory.for_host(sync_db_session, uuid.uuid4(), CommandKind.HOST_RESTART)
