from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from nodeplane.auth import Principal
from nodeplane.authz import authorize
from nodeplane.db.session import get_db
from nodeplane.errors import InvalidPayload
from nodeplane.services.commands import Commands
from nodeplane.services.notifier import Outbox
from nodeplane.services.wire import command_summary, node_log_to_dict

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["commands"], dependencies=[Depends(authorize)])


def get_commands(request: Request, db: Session = Depends(get_db)) -> Commands:
    state = request.app.state
    return Commands(
        db,
        clock=state.clock,
        outbox=Outbox(state.publisher),
        exit_message_max_length=state.settings.exit_message_max_length,
    )


class CreateCommandRequest(BaseModel):
    kind: str


class AckRequest(BaseModel):
    id: str
    exit_code: str | None = None
    exit_message: str | None = None
    retry_hint_seconds: int | None = None


@router.post("/nodes/{node_id}/commands", status_code=201)
def create_node_command(
    node_id: uuid.UUID,
    payload: CreateCommandRequest,
    principal: Principal = Depends(authorize),
    commands: Commands = Depends(get_commands),
):
    command = commands.create(principal, node_id, payload.kind)
    return {"ok": True, "command": command_summary(command)}


@router.post("/hosts/{host_id}/commands", status_code=201)
def create_host_command(
    host_id: uuid.UUID,
    payload: CreateCommandRequest,
    principal: Principal = Depends(authorize),
    commands: Commands = Depends(get_commands),
):
    command = commands.create_for_host(principal, host_id, payload.kind)
    return {"ok": True, "command": command_summary(command)}


@router.get("/hosts/{host_id}/commands/pending")
def pending_commands(
    host_id: uuid.UUID,
    kind: str | None = Query(default=None),
    principal: Principal = Depends(authorize),
    commands: Commands = Depends(get_commands),
):
    pending = commands.pending(principal, host_id, kind)
    return {"ok": True, "commands": [command_summary(c) for c in pending]}


@router.post("/commands/ack")
def ack_command(
    payload: AckRequest,
    principal: Principal = Depends(authorize),
    commands: Commands = Depends(get_commands),
):
    try:
        command_id = uuid.UUID(payload.id)
    except ValueError as e:
        raise InvalidPayload("id", "Command id is not a uuid") from e

    command = commands.ack(
        principal,
        command_id,
        payload.exit_code,
        payload.exit_message,
        payload.retry_hint_seconds,
    )
    return {"ok": True, "command": command_summary(command)}


@router.get("/commands/{command_id}")
def get_command(
    command_id: uuid.UUID,
    principal: Principal = Depends(authorize),
    commands: Commands = Depends(get_commands),
):
    command = commands.by_id(principal, command_id)
    return {"ok": True, "command": command_summary(command)}


@router.get("/nodes/{node_id}/logs")
def node_logs(
    node_id: uuid.UUID,
    principal: Principal = Depends(authorize),
    commands: Commands = Depends(get_commands),
):
    logs = commands.node_logs(principal, node_id)
    return {"ok": True, "logs": [node_log_to_dict(entry) for entry in logs]}
