from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from itsdangerous import BadSignature, URLSafeTimedSerializer

TOKEN_SALT = "nodeplane-token"

HOST = "host"
USER = "user"
PRINCIPAL_KINDS = {HOST, USER}


class InvalidToken(Exception):
    pass


@dataclass(frozen=True)
class Principal:
    """Who is calling: a host agent or a user acting for an org."""

    kind: str
    host_id: uuid.UUID | None = None
    org_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None

    @property
    def is_host(self) -> bool:
        return self.kind == HOST

    @property
    def is_user(self) -> bool:
        return self.kind == USER

    def claims(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind}
        for key in ("host_id", "org_id", "user_id"):
            val = getattr(self, key)
            if val is not None:
                data[key] = str(val)
        return data


def _parse_uuid(claims: dict[str, Any], key: str) -> uuid.UUID | None:
    val = claims.get(key)
    if val is None:
        return None
    try:
        return uuid.UUID(str(val))
    except ValueError as e:
        raise InvalidToken(f"claim {key} is not a uuid") from e


class TokenCodec:
    """Signs and verifies bearer tokens carrying principal claims."""

    def __init__(self, secret_key: str, max_age_seconds: int):
        self._serializer = URLSafeTimedSerializer(secret_key, salt=TOKEN_SALT)
        self.max_age_seconds = max_age_seconds

    def issue(self, principal: Principal) -> str:
        return self._serializer.dumps(principal.claims())

    def principal_of(self, token: str) -> Principal:
        try:
            claims = self._serializer.loads(token, max_age=self.max_age_seconds)
        except BadSignature as e:
            # SignatureExpired is a BadSignature too.
            raise InvalidToken(str(e)) from e

        if not isinstance(claims, dict) or claims.get("kind") not in PRINCIPAL_KINDS:
            raise InvalidToken("unknown principal kind")

        principal = Principal(
            kind=claims["kind"],
            host_id=_parse_uuid(claims, "host_id"),
            org_id=_parse_uuid(claims, "org_id"),
            user_id=_parse_uuid(claims, "user_id"),
        )
        if principal.is_host and principal.host_id is None:
            raise InvalidToken("host token without host_id")
        if principal.is_user and principal.user_id is None:
            raise InvalidToken("user token without user_id")
        return principal


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()

