"""Tag operations scoped to a single user."""
from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from vibevault.extensions import db
from vibevault.models import DEFAULT_TAG_COLOR, LinkTag, Tag
from vibevault.services.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    require_user,
)


def clean_tag_name(name) -> str:
    cleaned = (name or "").strip() if isinstance(name, str) else ""
    if not cleaned:
        raise ValidationError("tag name is required")
    return cleaned


def _name_taken(user_id: int, name: str, exclude_id: int | None = None) -> bool:
    query = Tag.query.filter_by(user_id=user_id, name=name)
    if exclude_id is not None:
        query = query.filter(Tag.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def _commit_or_conflict(name: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(f"tag '{name}' already exists") from exc


def get_user_tag(user_id: int, tag_id: int) -> Tag | None:
    return Tag.query.filter_by(id=tag_id, user_id=user_id).first()


def list_tags(user_id: int | None) -> list[tuple[Tag, int]]:
    """Return ``(tag, usage_count)`` pairs ordered by tag name."""
    if user_id is None:
        return []

    rows = (
        db.session.query(Tag, func.count(LinkTag.link_id))
        .outerjoin(LinkTag, LinkTag.tag_id == Tag.id)
        .filter(Tag.user_id == user_id)
        .group_by(Tag.id)
        .order_by(Tag.name.asc())
        .all()
    )
    return [(tag, count) for tag, count in rows]


def create_tag(user_id: int | None, name, color: str | None = None) -> Tag:
    user_id = require_user(user_id)
    name = clean_tag_name(name)
    if _name_taken(user_id, name):
        raise ConflictError(f"tag '{name}' already exists")

    tag = Tag(user_id=user_id, name=name, color=color or DEFAULT_TAG_COLOR)
    db.session.add(tag)
    _commit_or_conflict(name)
    return tag


def update_tag(user_id: int | None, tag_id: int, name, color: str | None = None) -> Tag:
    user_id = require_user(user_id)
    name = clean_tag_name(name)
    tag = get_user_tag(user_id, tag_id)
    if not tag:
        raise NotFoundError("tag not found")
    if _name_taken(user_id, name, exclude_id=tag.id):
        raise ConflictError(f"tag '{name}' already exists")

    tag.name = name
    tag.color = color or DEFAULT_TAG_COLOR
    _commit_or_conflict(name)
    return tag


def delete_tag(user_id: int | None, tag_id: int) -> None:
    user_id = require_user(user_id)
    owned_ids = select(Tag.id).where(Tag.id == tag_id, Tag.user_id == user_id)
    # Association rows go first so no LinkTag ever points at a missing tag.
    LinkTag.query.filter(LinkTag.tag_id.in_(owned_ids)).delete(
        synchronize_session=False
    )
    Tag.query.filter_by(id=tag_id, user_id=user_id).delete(synchronize_session=False)
    db.session.commit()
