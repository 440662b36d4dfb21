"""
Caller identity dependencies for FastAPI routes.

Authentication happens upstream; the authenticated member id arrives in the
X-Member-Id header.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlmodel import Session

from app.database import get_session
from app.models.member import Member


def get_current_member(
    x_member_id: Optional[int] = Header(default=None),
    session: Session = Depends(get_session),
) -> Member:
    """
    Resolve the calling member.

    Raises:
        HTTPException 401: header missing, or member unknown/inactive
    """
    if x_member_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-Member-Id header is required")

    member = session.get(Member, x_member_id)
    if member is None or not member.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Member not found")
    return member


def require_admin(member: Member = Depends(get_current_member)) -> Member:
    """Resolve the calling member and require an administrator account."""
    if not member.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="FORBIDDEN: Administrator privileges required")
    return member
