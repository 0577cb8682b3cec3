# deps/creator.py
from uuid import UUID

from fastapi import Depends, HTTPException, status

from deps.auth import CurrentPrincipal, get_current_principal
from security import ROLE_CREATOR


class CurrentCreator:
    def __init__(self, partner_id: UUID):
        self.partner_id = partner_id


def require_creator(principal: CurrentPrincipal = Depends(get_current_principal)) -> CurrentCreator:
    """Creator tokens carry the referral partner id as `sub`."""
    if principal.role != ROLE_CREATOR:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="CREATOR_REQUIRED",
        )
    try:
        partner_id = UUID(principal.subject)
    except ValueError:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")
    return CurrentCreator(partner_id=partner_id)
