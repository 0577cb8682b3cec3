from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt, JWTError

from settings import settings


ROLE_ADMIN = "admin"
ROLE_CREATOR = "creator"
ROLES = (ROLE_ADMIN, ROLE_CREATOR)


# -----------------------
# Access tokens (JWT)
# Sessions are issued by the admin console / creator bot; this service only
# verifies them. create_access_token exists for tooling and tests.
# -----------------------
def create_access_token(sub: str, role: str, minutes: Optional[int] = None) -> str:
    exp_minutes = minutes or settings.JWT_ACCESS_MINUTES
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        return {}
