from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Iterable

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.db.session import get_db
from app.db.models.auth import User

bearer = HTTPBearer(auto_error=False)

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALG = os.getenv("JWT_ALG", "HS256")
JWT_TTL_MIN = int(os.getenv("JWT_TTL_MIN", "30"))  # 30m default

IAM_ISSUER = os.getenv("IAM_ISSUER", "hotel-iam")
IAM_AUDIENCE = os.getenv("IAM_AUDIENCE", "hotel-billing")

ANONYMOUS = "anonymous"


@dataclass
class Principal:
    user_id: str | None = None
    username: str = ANONYMOUS
    roles: list[str] = field(default_factory=list)

    def has_role(self, role: str) -> bool:
        return role in self.roles


def create_access_token(user: User) -> str:
    """Mint a bearer token for a known user. Login itself lives outside this service."""
    now = utcnow()
    payload = {
        "iss": IAM_ISSUER,
        "aud": IAM_AUDIENCE,
        "sub": user.id,
        "email": user.email,
        "name": user.full_name,
        "roles": list(user.roles or []),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=JWT_TTL_MIN)).timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def get_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> Principal:
    if not creds or not creds.credentials:
        # Anonymous
        return Principal()

    try:
        payload = jwt.decode(
            creds.credentials,
            JWT_SECRET,
            algorithms=[JWT_ALG],
            audience=IAM_AUDIENCE,
            issuer=IAM_ISSUER,
        )
    except JWTError:
        return Principal()

    user_id = payload.get("sub")
    # Tokens for deactivated users identify nobody
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        return Principal()
    username = payload.get("name") or payload.get("email") or user.email
    roles = [str(r) for r in (payload.get("roles") or [])]
    return Principal(user_id=user_id, username=username, roles=roles)


def require_roles(required: Iterable[str]) -> Callable:
    required_set = set(required)

    def _dep(principal: Principal = Depends(get_principal)) -> Principal:
        if not principal.user_id:
            raise HTTPException(status_code=401, detail="Not authenticated")
        missing = [r for r in required_set if not principal.has_role(r)]
        if missing:
            raise HTTPException(status_code=403, detail={"error": "missing_roles", "missing": sorted(missing)})
        return principal

    return _dep
