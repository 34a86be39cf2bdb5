"""Authorization for the JSON API.

Every protected route is listed once in ROUTE_PERMISSIONS, by route name, as
the (resource, action) pair it needs. ``authorize`` runs as a router-level
dependency after routing: it looks up the matched route, authenticates the
bearer token, checks the caller's role and returns the Principal. Ownership
checks (which host, which org) stay with the services, which know the rows.
"""

from __future__ import annotations

import logging

from fastapi import Header, HTTPException, Request

from nodeplane.auth import HOST, USER, InvalidToken, Principal, bearer_token
from nodeplane.errors import Forbidden

log = logging.getLogger(__name__)

ROUTE_PERMISSIONS: dict[str, tuple[str, str]] = {
    "create_node_command": ("command", "create"),
    "create_host_command": ("command", "create"),
    "pending_commands": ("command", "pending"),
    "ack_command": ("command", "ack"),
    "get_command": ("command", "get"),
    "node_logs": ("node_log", "list"),
}

ROLE_PERMISSIONS: dict[str, set[tuple[str, str]]] = {
    HOST: {
        ("command", "pending"),
        ("command", "ack"),
        ("command", "get"),
    },
    USER: {
        ("command", "create"),
        ("command", "get"),
        ("node_log", "list"),
    },
}


def route_name(request: Request) -> str | None:
    endpoint = request.scope.get("endpoint")
    return getattr(endpoint, "__name__", None)


def authorize(
    request: Request,
    authorization: str | None = Header(default=None),
) -> Principal:
    name = route_name(request)
    required = ROUTE_PERMISSIONS.get(name or "")
    if required is None:
        log.error(f"No permission declared for route {name!r}; denying")
        raise Forbidden(f"route {name!r} has no declared permission")

    token = bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    try:
        principal = request.app.state.codec.principal_of(token)
    except InvalidToken as e:
        log.info(f"Rejected token on {name}: {e}")
        raise HTTPException(status_code=401, detail="Invalid bearer token") from e

    if required not in ROLE_PERMISSIONS.get(principal.kind, set()):
        log.warning(f"{principal.kind} principal lacks {required[0]}:{required[1]} on {name}")
        raise Forbidden(f"{principal.kind} may not {required[1]} {required[0]}")

    request.state.principal = principal
    return principal
