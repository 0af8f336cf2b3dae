from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from vibevault.extensions import db
from vibevault.models import Collection, Link
from vibevault.services.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    require_user,
)


def clean_collection_name(name) -> str:
    cleaned = (name or "").strip() if isinstance(name, str) else ""
    if not cleaned:
        raise ValidationError("collection name is required")
    return cleaned


def _commit_or_conflict(name: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(f"collection '{name}' already exists") from exc


def get_user_collection(user_id: int, collection_id: int) -> Collection | None:
    return Collection.query.filter_by(id=collection_id, user_id=user_id).first()


def list_collections(user_id: int | None) -> list[Collection]:
    if user_id is None:
        return []
    return (
        Collection.query.filter_by(user_id=user_id)
        .order_by(Collection.name.asc())
        .all()
    )


def create_collection(user_id: int | None, name) -> Collection:
    user_id = require_user(user_id)
    name = clean_collection_name(name)
    if Collection.query.filter_by(user_id=user_id, name=name).first():
        raise ConflictError(f"collection '{name}' already exists")

    collection = Collection(user_id=user_id, name=name)
    db.session.add(collection)
    _commit_or_conflict(name)
    return collection


def rename_collection(user_id: int | None, collection_id: int, name) -> Collection:
    user_id = require_user(user_id)
    name = clean_collection_name(name)
    collection = get_user_collection(user_id, collection_id)
    if not collection:
        raise NotFoundError("collection not found")

    clash = Collection.query.filter_by(user_id=user_id, name=name).first()
    if clash and clash.id != collection.id:
        raise ConflictError(f"collection '{name}' already exists")

    collection.name = name
    _commit_or_conflict(name)
    return collection


def delete_collection(user_id: int | None, collection_id: int) -> None:
    user_id = require_user(user_id)
    collection = get_user_collection(user_id, collection_id)
    if not collection:
        raise NotFoundError("collection not found")

    Link.query.filter_by(user_id=user_id, collection_id=collection.id).update(
        {Link.collection_id: None}, synchronize_session=False
    )
    db.session.delete(collection)
    db.session.commit()
