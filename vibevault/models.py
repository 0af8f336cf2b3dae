import hashlib
import secrets
from datetime import datetime, timezone

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from vibevault.extensions import db, login_manager


LINK_STATUS_INBOX = "INBOX"
LINK_STATUS_READING = "READING"
LINK_STATUS_ARCHIVED = "ARCHIVED"
LINK_STATUSES = (LINK_STATUS_INBOX, LINK_STATUS_READING, LINK_STATUS_ARCHIVED)

METADATA_PENDING = "PENDING"
METADATA_READY = "READY"
METADATA_FAILED = "FAILED"
METADATA_STATUSES = (METADATA_PENDING, METADATA_READY, METADATA_FAILED)

DEFAULT_TAG_COLOR = "#8b5cf6"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: datetime | None) -> str | None:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    links = db.relationship("Link", backref="user", lazy=True)
    tags = db.relationship("Tag", backref="user", lazy=True)
    collections = db.relationship("Collection", backref="user", lazy=True)

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)


@login_manager.user_loader
def load_user(user_id: str):
    return db.session.get(User, int(user_id))


class Collection(db.Model):
    __tablename__ = "collections"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "name", name="uq_collection_user_name"),
    )

    def as_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class Tag(db.Model):
    __tablename__ = "tags"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    name = db.Column(db.String(64), nullable=False)
    color = db.Column(db.String(32), nullable=False, default=DEFAULT_TAG_COLOR)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    link_tags = db.relationship("LinkTag", back_populates="tag", lazy=True)

    __table_args__ = (db.UniqueConstraint("user_id", "name", name="uq_tag_user_name"),)

    def as_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "color": self.color,
        }


class LinkTag(db.Model):
    __tablename__ = "link_tags"

    link_id = db.Column(db.Integer, db.ForeignKey("links.id"), primary_key=True)
    tag_id = db.Column(
        db.Integer, db.ForeignKey("tags.id"), primary_key=True, index=True
    )

    link = db.relationship("Link", back_populates="link_tags")
    tag = db.relationship("Tag", back_populates="link_tags")


class Link(db.Model):
    __tablename__ = "links"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    collection_id = db.Column(
        db.Integer, db.ForeignKey("collections.id"), nullable=True, index=True
    )

    url = db.Column(db.Text, nullable=False)
    normalized_url = db.Column(db.Text, nullable=False, index=True)
    domain = db.Column(db.String(255), nullable=False, default="")
    title = db.Column(db.String(512), nullable=False, default="")
    description = db.Column(db.Text, nullable=True)
    note = db.Column(db.Text, nullable=True)
    og_image = db.Column(db.Text, nullable=True)
    favicon = db.Column(db.Text, nullable=True)
    site_name = db.Column(db.String(255), nullable=True)
    published_time = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=LINK_STATUS_INBOX)
    favorite = db.Column(db.Boolean, nullable=False, default=False)
    metadata_status = db.Column(
        db.String(16), nullable=False, default=METADATA_PENDING
    )
    metadata_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
    last_visited_at = db.Column(db.DateTime(timezone=True), nullable=True)

    collection = db.relationship("Collection", backref="links")
    link_tags = db.relationship(
        "LinkTag",
        back_populates="link",
        lazy=True,
        order_by="LinkTag.tag_id",
        cascade="all",
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "url", name="uq_link_user_url"),
        db.Index("ix_link_user_created", "user_id", "created_at"),
        db.Index("ix_link_user_status", "user_id", "status"),
    )

    @property
    def tags(self) -> list[Tag]:
        return [link_tag.tag for link_tag in self.link_tags]

    def as_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "url": self.url,
            "normalizedUrl": self.normalized_url,
            "domain": self.domain,
            "title": self.title,
            "description": self.description,
            "note": self.note,
            "ogImage": self.og_image,
            "favicon": self.favicon,
            "siteName": self.site_name,
            "publishedTime": self.published_time,
            "status": self.status,
            "favorite": self.favorite,
            "collectionId": self.collection_id,
            "metadataStatus": self.metadata_status,
            "metadataError": self.metadata_error,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
            "lastVisitedAt": isoformat(self.last_visited_at),
            "linkTags": [{"tag": link_tag.tag.as_dict()} for link_tag in self.link_tags],
        }


class ApiToken(db.Model):
    __tablename__ = "api_tokens"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    name = db.Column(db.String(120), nullable=False)
    token_hash = db.Column(db.String(128), nullable=False, unique=True)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User", backref="api_tokens")

    @staticmethod
    def issue_token(prefix="vv"):
        token = f"{prefix}_{secrets.token_urlsafe(32)}"
        token_hash = hashlib.sha256(token.encode("utf-8")).hexdigest()
        return token, token_hash
