from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Session, select

from app.auth_dependencies import get_current_member, require_admin
from app.database import get_session
from app.models.member import Member
from app.services.notification_service import format_e164

router = APIRouter()


def _check_phone(v):
    if v is None or not v.strip():
        return None
    format_e164(v)  # raises ValueError for an unusable number
    return v.strip()


class MemberCreate(BaseModel):
    name: str
    phone: Optional[str] = None
    employee_id: Optional[str] = None
    department: Optional[str] = None
    is_admin: bool = False

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return _check_phone(v)


class MemberUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    is_admin: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return _check_phone(v)


class MemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    phone: Optional[str] = None
    employee_id: Optional[str] = None
    department: Optional[str] = None
    is_admin: bool
    is_active: bool
    avg_score: Optional[int] = None
    recent_score: Optional[int] = None
    created_at: datetime


@router.get("/members/me", response_model=MemberResponse)
def get_me(member: Member = Depends(get_current_member)):
    return member


@router.get("/members", response_model=List[MemberResponse])
def list_members(
    include_inactive: bool = False,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """List members by name"""
    query = select(Member)
    if not include_inactive:
        query = query.where(Member.is_active == True)  # noqa: E712
    return session.exec(query.order_by(Member.name)).all()


@router.post("/members", response_model=MemberResponse, status_code=201)
def create_member(
    member_data: MemberCreate,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    if member_data.employee_id:
        existing = session.exec(select(Member).where(Member.employee_id == member_data.employee_id)).first()
        if existing:
            raise HTTPException(status_code=409, detail=f"Employee id {member_data.employee_id} is already registered")

    member = Member(**member_data.model_dump())
    session.add(member)
    session.commit()
    session.refresh(member)
    return member


@router.get("/members/{member_id}", response_model=MemberResponse)
def get_member(
    member_id: int,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    member = session.get(Member, member_id)
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")
    return member


@router.patch("/members/{member_id}", response_model=MemberResponse)
def update_member(
    member_id: int,
    member_data: MemberUpdate,
    admin: Member = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Update a member; set is_active=false to retire them without losing history"""
    member = session.get(Member, member_id)
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")

    for key, value in member_data.model_dump(exclude_unset=True).items():
        setattr(member, key, value)
    session.add(member)
    session.commit()
    session.refresh(member)
    return member
