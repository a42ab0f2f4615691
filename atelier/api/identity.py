import logging
from dataclasses import dataclass
from enum import StrEnum

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from atelier.infra.auth import decode_access_token
from atelier.infra.logging import update_log_context
from atelier.settings import settings

logger = logging.getLogger(__name__)

bearer_security = HTTPBearer(auto_error=False)


class Role(StrEnum):
    CUSTOMER = "customer"
    DESIGNER = "designer"
    ADMIN = "admin"

    @classmethod
    def from_any_case(cls, value: object) -> "Role":
        if isinstance(value, cls):
            return value
        return cls(str(value or "").strip().lower())


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: Role
    name: str | None = None


def identity_from_claims(payload: dict) -> Identity:
    subject = str(payload.get("sub") or "").strip()
    if not subject:
        raise ValueError("token subject is empty")
    name = payload.get("name")
    return Identity(
        user_id=subject,
        role=Role.from_any_case(payload.get("role")),
        name=str(name) if name else None,
    )


def _secret_for(request: Request) -> str:
    app_settings = getattr(request.app.state, "app_settings", None) or settings
    return app_settings.auth_secret_key


async def require_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_security),
) -> Identity:
    cached: Identity | None = getattr(request.state, "identity", None)
    if cached is not None:
        return cached
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    try:
        payload = decode_access_token(credentials.credentials, _secret_for(request))
    except jwt.InvalidTokenError:
        logger.info("access_token_invalid")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid bearer token")
    try:
        identity = identity_from_claims(payload)
    except ValueError:
        logger.info("access_token_payload_invalid")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid bearer token payload")

    request.state.identity = identity
    update_log_context(user_id=identity.user_id, role=identity.role.value)
    return identity


def require_role(*roles: Role):
    async def _require(identity: Identity = Depends(require_identity)) -> Identity:
        if roles and identity.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return identity

    return _require


require_customer = require_role(Role.CUSTOMER)
require_designer = require_role(Role.DESIGNER)
