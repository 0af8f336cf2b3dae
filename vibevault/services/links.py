"""Link operations scoped to a single user."""
from __future__ import annotations

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from vibevault.extensions import db
from vibevault.models import (
    LINK_STATUS_INBOX,
    LINK_STATUSES,
    METADATA_PENDING,
    Link,
    LinkTag,
    Tag,
    utcnow,
)
from vibevault.services.collections import get_user_collection
from vibevault.services.common import parse_link_url, to_bool
from vibevault.services.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    require_user,
)
from vibevault.services.tags import get_user_tag


SORT_COLUMNS = {
    "createdAt": Link.created_at,
    "updatedAt": Link.updated_at,
    "lastVisitedAt": Link.last_visited_at,
    "domain": Link.domain,
    "title": Link.title,
}

UPDATABLE_TEXT_FIELDS = ("title", "description", "note")


def normalize_status(value) -> str:
    status = str(value or "").strip().upper()
    if status not in LINK_STATUSES:
        raise ValidationError(f"unknown status: {value}")
    return status


def _text_field(field: str, value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip()


def _coerce_id(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_link(user_id: int | None, link_id: int) -> Link:
    user_id = require_user(user_id)
    link = Link.query.filter_by(id=link_id, user_id=user_id).first()
    if not link:
        raise NotFoundError("link not found")
    return link


def create_link(
    user_id: int | None,
    url,
    title: str | None = None,
    note: str | None = None,
    tag_ids=None,
    collection_id: int | None = None,
) -> Link:
    user_id = require_user(user_id)
    url = (url or "").strip() if isinstance(url, str) else ""
    if not url:
        raise ValidationError("url is required")
    try:
        normalized_url, domain = parse_link_url(url)
    except ValueError as exc:
        raise ValidationError("invalid URL format") from exc
    title = _text_field("title", title) or ""
    note = _text_field("note", note) or ""

    if Link.query.filter_by(user_id=user_id, url=url).first():
        raise ConflictError("link already saved")
    if collection_id is not None and not get_user_collection(user_id, collection_id):
        raise NotFoundError("collection not found")

    link = Link(
        user_id=user_id,
        collection_id=collection_id,
        url=url,
        normalized_url=normalized_url,
        domain=domain,
        title=title,
        note=note,
        status=LINK_STATUS_INBOX,
        metadata_status=METADATA_PENDING,
    )
    db.session.add(link)
    db.session.flush()

    # Unknown or foreign tag ids are skipped rather than failing the create.
    wanted = {tid for tid in (_coerce_id(raw) for raw in tag_ids or []) if tid}
    if wanted:
        owned = Tag.query.filter(Tag.user_id == user_id, Tag.id.in_(wanted)).all()
        for tag in sorted(owned, key=lambda row: row.id):
            db.session.add(LinkTag(link=link, tag=tag))
        if len(owned) != len(wanted):
            current_app.logger.debug(
                "Skipped %d unknown tag ids for link %s",
                len(wanted) - len(owned),
                link.id,
            )

    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("link already saved") from exc
    return link


def list_links(
    user_id: int | None,
    status: str | None = None,
    tag_id: int | None = None,
    sort_field: str = "createdAt",
    page: int = 1,
    page_size: int | None = None,
) -> tuple[list[Link], int]:
    if user_id is None:
        return [], 0

    column = SORT_COLUMNS.get(sort_field or "createdAt")
    if column is None:
        raise ValidationError(f"unknown sort field: {sort_field}")

    max_page_size = current_app.config["LINKS_MAX_PAGE_SIZE"]
    page_size = page_size or current_app.config["LINKS_PAGE_SIZE"]
    page_size = max(1, min(int(page_size), max_page_size))
    page = max(1, int(page or 1))

    query = Link.query.filter(Link.user_id == user_id)
    if status:
        query = query.filter(Link.status == normalize_status(status))
    if tag_id:
        query = query.filter(
            Link.id.in_(select(LinkTag.link_id).where(LinkTag.tag_id == tag_id))
        )

    total = query.count()
    items = (
        query.order_by(column.desc(), Link.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return items, total


def update_link(user_id: int | None, link_id: int, fields: dict) -> Link:
    link = get_link(user_id, link_id)

    for field in UPDATABLE_TEXT_FIELDS:
        if field in fields:
            value = _text_field(field, fields.get(field))
            if field == "title":
                value = value or ""
            setattr(link, field, value)
    if "favorite" in fields:
        link.favorite = to_bool(fields.get("favorite"))
    if "status" in fields:
        link.status = normalize_status(fields.get("status"))
    if "collectionId" in fields:
        collection_id = fields.get("collectionId")
        if collection_id is None:
            link.collection_id = None
        elif get_user_collection(link.user_id, collection_id):
            link.collection_id = collection_id
        else:
            raise NotFoundError("collection not found")

    db.session.commit()
    return link


def add_tag_to_link(user_id: int | None, link_id: int, tag_id: int) -> None:
    user_id = require_user(user_id)
    tag = get_user_tag(user_id, tag_id)
    if not tag:
        raise NotFoundError("tag not found")
    link = get_link(user_id, link_id)

    if db.session.get(LinkTag, (link.id, tag.id)) is None:
        db.session.add(LinkTag(link=link, tag=tag))
    db.session.commit()


def remove_tag_from_link(user_id: int | None, link_id: int, tag_id: int) -> None:
    user_id = require_user(user_id)
    owned_links = select(Link.id).where(Link.id == link_id, Link.user_id == user_id)
    owned_tags = select(Tag.id).where(Tag.id == tag_id, Tag.user_id == user_id)
    LinkTag.query.filter(
        LinkTag.link_id.in_(owned_links), LinkTag.tag_id.in_(owned_tags)
    ).delete(synchronize_session=False)
    db.session.commit()


def delete_link(user_id: int | None, link_id: int) -> None:
    link = get_link(user_id, link_id)
    # The link_tags cascade deletes the association rows ahead of the link.
    db.session.delete(link)
    db.session.commit()


def record_visit(user_id: int | None, link_id: int) -> Link:
    link = get_link(user_id, link_id)
    link.last_visited_at = utcnow()
    db.session.commit()
    return link
