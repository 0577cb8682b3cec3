# deps/auth.py
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from security import ROLES, decode_token

bearer = HTTPBearer(auto_error=False)


class CurrentPrincipal:
    def __init__(self, subject: str, role: str):
        self.subject = subject
        self.role = role


def get_current_principal(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> CurrentPrincipal:
    if not creds:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    # must be "Bearer"
    if (creds.scheme or "").lower() != "bearer":
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    payload = decode_token(creds.credentials)
    sub = payload.get("sub")
    role = payload.get("role")
    if not sub or role not in ROLES:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")
    return CurrentPrincipal(subject=str(sub), role=str(role))
