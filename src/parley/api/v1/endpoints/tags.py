"""Tag catalogue endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select

from parley.models import Tag
from parley.schemas.chat import TagCreate, TagResponse

from ..dependencies import CurrentUserDep, SessionDep

router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("", response_model=list[TagResponse])
async def list_tags(current_user: CurrentUserDep, db: SessionDep) -> list[Tag]:
    return list(db.scalars(select(Tag).order_by(Tag.name)))


@router.post("", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
async def create_tag(payload: TagCreate, current_user: CurrentUserDep, db: SessionDep) -> Tag:
    name = payload.name.strip()
    if db.scalars(select(Tag.id).where(Tag.name == name)).first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Tag already exists",
        )
    tag = Tag(
        name=name,
        description=payload.description,
        color=payload.color,
        created_by=current_user.id,
    )
    db.add(tag)
    db.commit()
    db.refresh(tag)
    return tag
