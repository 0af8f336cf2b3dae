import pytest

from vibevault.extensions import db
from vibevault.models import DEFAULT_TAG_COLOR, Link, LinkTag, Tag, User
from vibevault.services.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from vibevault.services.links import create_link, list_links
from vibevault.services.tags import create_tag, delete_tag, list_tags, update_tag


def _create_user(email: str):
    user = User(email=email, name=email.split("@")[0], is_active=True)
    user.set_password("secret")
    db.session.add(user)
    db.session.commit()
    return user


def test_create_tag_rejects_duplicate_name(app):
    with app.app_context():
        user = _create_user("a@example.com")
        create_tag(user.id, "Work", "#fff")

        with pytest.raises(ConflictError):
            create_tag(user.id, "Work", "#000")

        assert Tag.query.filter_by(user_id=user.id).count() == 1
        assert Tag.query.filter_by(user_id=user.id).one().color == "#fff"


def test_create_tag_validates_and_defaults(app):
    with app.app_context():
        user = _create_user("a@example.com")

        with pytest.raises(ValidationError):
            create_tag(user.id, "   ")
        with pytest.raises(AuthenticationError):
            create_tag(None, "Work")

        tag = create_tag(user.id, "  Reading  ")
        assert tag.name == "Reading"
        assert tag.color == DEFAULT_TAG_COLOR


def test_same_tag_name_allowed_for_different_users(app):
    with app.app_context():
        first = _create_user("a@example.com")
        second = _create_user("b@example.com")
        create_tag(first.id, "Work")
        create_tag(second.id, "Work")

        assert Tag.query.filter_by(name="Work").count() == 2


def test_list_tags_counts_usage_and_sorts_by_name(app):
    with app.app_context():
        user = _create_user("a@example.com")
        other = _create_user("b@example.com")
        zeta = create_tag(user.id, "zeta")
        create_tag(user.id, "alpha")
        create_tag(other.id, "foreign")
        create_link(user.id, "https://example.com/1", tag_ids=[zeta.id])
        create_link(user.id, "https://example.com/2", tag_ids=[zeta.id])

        rows = list_tags(user.id)
        assert [(tag.name, count) for tag, count in rows] == [("alpha", 0), ("zeta", 2)]
        assert list_tags(None) == []


def test_update_tag_scoped_to_owner(app):
    with app.app_context():
        owner = _create_user("a@example.com")
        intruder = _create_user("b@example.com")
        tag = create_tag(owner.id, "Work", "#123456")
        create_tag(owner.id, "Home")

        with pytest.raises(NotFoundError):
            update_tag(intruder.id, tag.id, "Hijacked")
        with pytest.raises(ConflictError):
            update_tag(owner.id, tag.id, "Home")

        updated = update_tag(owner.id, tag.id, "Office")
        assert updated.name == "Office"
        # An omitted color falls back to the default.
        assert updated.color == DEFAULT_TAG_COLOR

        same = update_tag(owner.id, tag.id, "Office", "#abcdef")
        assert same.color == "#abcdef"


def test_delete_tag_removes_associations(app):
    with app.app_context():
        user = _create_user("a@example.com")
        tag = create_tag(user.id, "Work")
        tag_id = tag.id
        for index in range(3):
            create_link(user.id, f"https://example.com/{index}", tag_ids=[tag_id])

        delete_tag(user.id, tag_id)

        assert LinkTag.query.filter_by(tag_id=tag_id).count() == 0
        assert all(name != "Work" for name in (t.name for t, _ in list_tags(user.id)))
        items, total = list_links(user.id, tag_id=tag_id)
        assert items == []
        assert total == 0
        assert Link.query.filter_by(user_id=user.id).count() == 3


def test_delete_tag_ignores_foreign_and_missing_tags(app):
    with app.app_context():
        owner = _create_user("a@example.com")
        intruder = _create_user("b@example.com")
        tag = create_tag(owner.id, "Work")
        tag_id = tag.id
        create_link(owner.id, "https://example.com/1", tag_ids=[tag_id])

        delete_tag(intruder.id, tag_id)
        delete_tag(owner.id, 9999)

        assert db.session.get(Tag, tag_id) is not None
        assert LinkTag.query.filter_by(tag_id=tag_id).count() == 1
