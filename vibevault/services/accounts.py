from __future__ import annotations

from flask import current_app

from vibevault.extensions import db
from vibevault.models import ApiToken, User
from vibevault.services.errors import ValidationError


def authenticate(email, password) -> User | None:
    """Return the user for these credentials, creating it on first sign-in.

    Returns ``None`` when the email is known but the password does not match
    or the account is disabled.
    """
    email = (email or "").strip().lower() if isinstance(email, str) else ""
    if not email or not password:
        raise ValidationError("email and password are required")

    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, name=email.split("@")[0], is_active=True)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        current_app.logger.info("Created user %s on first sign-in", user.id)
        return user

    if not user.is_active or not user.check_password(password):
        return None
    return user


def issue_api_token(user: User, name: str) -> str:
    token, token_hash = ApiToken.issue_token()
    db.session.add(ApiToken(user_id=user.id, name=name, token_hash=token_hash))
    db.session.commit()
    return token
