# deps/admin.py
from fastapi import Depends, HTTPException, status

from deps.auth import CurrentPrincipal, get_current_principal
from security import ROLE_ADMIN


def require_admin(principal: CurrentPrincipal = Depends(get_current_principal)) -> CurrentPrincipal:
    if principal.role != ROLE_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="ADMIN_REQUIRED",
        )
    return principal
