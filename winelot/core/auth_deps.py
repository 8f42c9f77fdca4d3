#winelot/core/auth_deps.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from winelot.core.config import Settings, get_settings
from winelot.core.errors import Forbidden, Unauthorized
from winelot.core.security import decode_token

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class ServicePrincipal:
    subject: str
    role: str


def require_service_caller(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    settings: Settings = Depends(get_settings),
) -> Optional[ServicePrincipal]:
    """
    Gate for tokenization mutations.

    - Disabled (service_auth_enabled=False): open, returns None
    - Enabled: bearer JWT must verify and carry role == settings.service_role
    """
    if not settings.service_auth_enabled:
        return None

    if creds is None:
        raise Unauthorized("Missing Authorization bearer token.")

    try:
        payload = decode_token(settings, creds.credentials)
    except JWTError as exc:
        raise Unauthorized("Invalid or expired token.") from exc

    role = payload.get("role")
    subject = payload.get("sub")
    if not subject or not role:
        raise Unauthorized("Token missing required claims.", details={"required": ["sub", "role"]})
    if role != settings.service_role:
        raise Forbidden("Service role required.", details={"role": str(role)})

    principal = ServicePrincipal(subject=str(subject), role=str(role))
    request.state.principal = principal
    return principal
