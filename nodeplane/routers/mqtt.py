from __future__ import annotations

import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from nodeplane.db.session import get_db
from nodeplane.services.nodes import SqlNodeDirectory
from nodeplane.services.topic_acl import TopicAcl, TopicPolicy

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/mqtt", tags=["mqtt"])


class AclRequest(BaseModel):
    operation: Literal["publish", "subscribe"]
    # The broker passes the bearer token as the MQTT username.
    username: str
    topic: str


def _decide(acl: TopicAcl, payload: AclRequest) -> JSONResponse:
    if acl.allow(payload.username, payload.topic):
        return JSONResponse({"result": "allow"})
    return JSONResponse({"result": "deny"}, status_code=403)


@router.post("/auth")
def auth(payload: dict[str, Any]):
    # Tokens are checked per topic by the ACL endpoints.
    log.debug(f"MQTT auth payload keys: {sorted(payload)}")
    return {"ok": True}


@router.post("/hosts/acl")
def host_acl(payload: AclRequest, request: Request):
    acl = TopicAcl(TopicPolicy.HOST, request.app.state.codec)
    return _decide(acl, payload)


@router.post("/users/acl")
def user_acl(payload: AclRequest, request: Request, db: Session = Depends(get_db)):
    acl = TopicAcl(TopicPolicy.USER, request.app.state.codec, SqlNodeDirectory(db))
    return _decide(acl, payload)
