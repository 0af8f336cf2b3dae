from flask import jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from vibevault.auth import auth_bp
from vibevault.services.accounts import authenticate
from vibevault.services.errors import ValidationError


@auth_bp.route("/login", methods=["POST"])
def login():
    if current_user.is_authenticated:
        return jsonify({"status": "ok", "user_id": current_user.id})

    payload = request.get_json(silent=True) or request.form
    try:
        user = authenticate(payload.get("email"), payload.get("password") or "")
    except ValidationError as exc:
        return jsonify({"error": exc.message}), 400
    if not user:
        return jsonify({"error": "invalid credentials"}), 401

    login_user(user)
    return jsonify({"status": "ok", "user_id": user.id})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"status": "logged_out"})
