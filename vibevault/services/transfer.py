"""Full-account export and conflict-skipping import."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from dateutil import parser as dt_parser
from flask import current_app
from sqlalchemy.exc import DataError, IntegrityError

from vibevault.extensions import db
from vibevault.models import (
    DEFAULT_TAG_COLOR,
    LINK_STATUS_INBOX,
    METADATA_PENDING,
    METADATA_STATUSES,
    Collection,
    Link,
    LinkTag,
    Tag,
    utcnow,
)
from vibevault.services.collections import clean_collection_name
from vibevault.services.common import parse_link_url, to_bool
from vibevault.services.errors import ServiceError, ValidationError, require_user
from vibevault.services.links import normalize_status
from vibevault.services.tags import clean_tag_name


EXPORT_VERSION = "1.0.0"

# Failures that only disqualify the item being imported.
ITEM_ERRORS = (IntegrityError, DataError, ValueError, TypeError, ServiceError)


@dataclass
class ImportReport:
    imported_links: int = 0
    imported_tags: int = 0
    skipped_links: int = 0
    skipped_tags: int = 0
    imported_collections: int = 0
    skipped_collections: int = 0

    def as_dict(self):
        return {
            "importedLinks": self.imported_links,
            "importedTags": self.imported_tags,
            "skippedLinks": self.skipped_links,
            "skippedTags": self.skipped_tags,
            "importedCollections": self.imported_collections,
            "skippedCollections": self.skipped_collections,
        }


def export_data(user_id: int | None) -> dict:
    user_id = require_user(user_id)
    links = Link.query.filter_by(user_id=user_id).order_by(Link.id.asc()).all()
    tags = Tag.query.filter_by(user_id=user_id).order_by(Tag.id.asc()).all()
    collections = (
        Collection.query.filter_by(user_id=user_id).order_by(Collection.id.asc()).all()
    )

    current_app.logger.info(
        "Exported %d links, %d tags, %d collections for user %s",
        len(links),
        len(tags),
        len(collections),
        user_id,
    )
    return {
        "version": EXPORT_VERSION,
        "createdAt": utcnow().isoformat(),
        "userId": str(user_id),
        "links": [link.as_dict() for link in links],
        "tags": [tag.as_dict() for tag in tags],
        "collections": [collection.as_dict() for collection in collections],
    }


def _section(document: dict, key: str) -> list:
    items = document.get(key)
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError(f"'{key}' must be a list")
    return items


def _require_object(item, kind: str) -> dict:
    if not isinstance(item, dict):
        raise ValidationError(f"{kind} entry must be an object")
    return item


def _text(value) -> str | None:
    return value if isinstance(value, str) else None


def _timestamp(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = dt_parser.isoparse(value)
    if not isinstance(value, datetime):
        raise TypeError(f"unsupported timestamp: {value!r}")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value


def _upsert_tag(user_id: int, item) -> Tag:
    item = _require_object(item, "tag")
    name = clean_tag_name(item.get("name"))
    color = _text(item.get("color"))

    tag = Tag.query.filter_by(user_id=user_id, name=name).first()
    if tag:
        if color:
            tag.color = color
    else:
        tag = Tag(user_id=user_id, name=name, color=color or DEFAULT_TAG_COLOR)
        db.session.add(tag)
    db.session.flush()
    return tag


def _upsert_collection(user_id: int, item) -> Collection:
    item = _require_object(item, "collection")
    name = clean_collection_name(item.get("name"))

    collection = Collection.query.filter_by(user_id=user_id, name=name).first()
    if not collection:
        collection = Collection(user_id=user_id, name=name)
        db.session.add(collection)
        db.session.flush()
    return collection


def _document_tag_names(item: dict) -> list[str]:
    names: list[str] = []
    link_tags = item.get("linkTags")
    for entry in link_tags if isinstance(link_tags, list) else []:
        tag = entry.get("tag") if isinstance(entry, dict) else None
        if isinstance(tag, dict):
            names.append(tag.get("name"))
    tags = item.get("tags")
    for entry in tags if isinstance(tags, list) else []:
        names.append(entry.get("name") if isinstance(entry, dict) else entry)

    cleaned = []
    for name in names:
        if isinstance(name, str) and name.strip() and name.strip() not in cleaned:
            cleaned.append(name.strip())
    return cleaned


def _create_link(user_id: int, item, collection_map: dict[str, int]) -> Link | None:
    """Create a link from a document entry; ``None`` when the URL is saved already."""
    item = _require_object(item, "link")
    url = (_text(item.get("url")) or "").strip()
    if not url:
        raise ValidationError("url is required")
    if Link.query.filter_by(user_id=user_id, url=url).first():
        return None

    normalized_url = _text(item.get("normalizedUrl"))
    domain = _text(item.get("domain"))
    if not normalized_url or not domain:
        derived_url, derived_domain = parse_link_url(url)
        normalized_url = normalized_url or derived_url
        domain = domain or derived_domain

    status = item.get("status")
    metadata_status = str(item.get("metadataStatus") or METADATA_PENDING).upper()
    if metadata_status not in METADATA_STATUSES:
        raise ValidationError(f"unknown metadata status: {metadata_status}")

    raw_collection = item.get("collectionId")
    created_at = _timestamp(item.get("createdAt")) or utcnow()
    published_time = item.get("publishedTime")

    link = Link(
        user_id=user_id,
        # Only collections imported for this user can be referenced.
        collection_id=collection_map.get(str(raw_collection))
        if raw_collection is not None
        else None,
        url=url,
        normalized_url=normalized_url,
        domain=domain,
        title=_text(item.get("title")) or "",
        description=_text(item.get("description")),
        note=_text(item.get("note")),
        og_image=_text(item.get("ogImage")),
        favicon=_text(item.get("favicon")),
        site_name=_text(item.get("siteName")),
        published_time=str(published_time) if published_time is not None else None,
        status=normalize_status(status) if status else LINK_STATUS_INBOX,
        favorite=to_bool(item.get("favorite")),
        metadata_status=metadata_status,
        metadata_error=_text(item.get("metadataError")),
        created_at=created_at,
        updated_at=_timestamp(item.get("updatedAt")) or created_at,
        last_visited_at=_timestamp(item.get("lastVisitedAt")),
    )
    db.session.add(link)

    for name in _document_tag_names(item):
        tag = Tag.query.filter_by(user_id=user_id, name=name).first()
        if tag:
            db.session.add(LinkTag(link=link, tag=tag))
    db.session.flush()
    return link


def import_data(user_id: int | None, document) -> ImportReport:
    """Restore an exported document into the acting user's account.

    Runs as one transaction. Each tag, collection and link is written inside
    its own savepoint so a bad item is counted as skipped while the rest of
    the batch goes through; any other failure rolls the whole import back.
    """
    user_id = require_user(user_id)
    if not isinstance(document, dict):
        raise ValidationError("import document must be an object")
    tags_in = _section(document, "tags")
    collections_in = _section(document, "collections")
    links_in = _section(document, "links")

    report = ImportReport()
    collection_map: dict[str, int] = {}
    logger = current_app.logger

    try:
        for item in tags_in:
            try:
                with db.session.begin_nested():
                    _upsert_tag(user_id, item)
                report.imported_tags += 1
            except ITEM_ERRORS as exc:
                report.skipped_tags += 1
                logger.warning("Skipped tag during import: %s", exc)

        for item in collections_in:
            try:
                with db.session.begin_nested():
                    collection = _upsert_collection(user_id, item)
                if item.get("id") is not None:
                    collection_map[str(item["id"])] = collection.id
                report.imported_collections += 1
            except ITEM_ERRORS as exc:
                report.skipped_collections += 1
                logger.warning("Skipped collection during import: %s", exc)

        for item in links_in:
            try:
                with db.session.begin_nested():
                    link = _create_link(user_id, item, collection_map)
            except ITEM_ERRORS as exc:
                report.skipped_links += 1
                logger.warning("Skipped link during import: %s", exc)
                continue
            if link is None:
                report.skipped_links += 1
            else:
                report.imported_links += 1

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Imported %d links (%d skipped), %d tags (%d skipped) for user %s",
        report.imported_links,
        report.skipped_links,
        report.imported_tags,
        report.skipped_tags,
        user_id,
    )
    return report
