from __future__ import annotations

import json

from flask import current_app, g, jsonify, request

from vibevault.api import api_bp
from vibevault.services.accounts import authenticate, issue_api_token
from vibevault.services.collections import (
    create_collection,
    delete_collection,
    list_collections,
    rename_collection,
)
from vibevault.services.common import to_bool
from vibevault.services.errors import ServiceError, ValidationError
from vibevault.services.graph import build_link_graph
from vibevault.services.links import (
    add_tag_to_link,
    create_link,
    delete_link,
    get_link,
    list_links,
    record_visit,
    remove_tag_from_link,
    update_link,
)
from vibevault.services.metadata import refresh_link_metadata
from vibevault.services.search import search_and_sort
from vibevault.services.security import api_auth_required
from vibevault.services.tags import create_tag, delete_tag, list_tags, update_tag
from vibevault.services.transfer import export_data, import_data


def _payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _tag_ids(raw) -> list:
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str):
        return [part.strip() for part in raw.split(",") if part.strip()]
    return []


def _import_document():
    upload = request.files.get("file")
    if upload:
        try:
            return json.loads(upload.read().decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValidationError("file is not a JSON export") from exc

    payload = request.get_json(silent=True)
    if isinstance(payload, dict) and "version" not in payload and "data" in payload:
        # Accept the export response envelope as-is.
        return payload["data"]
    return payload


@api_bp.errorhandler(ServiceError)
def handle_service_error(exc: ServiceError):
    return jsonify({"error": exc.message}), exc.status_code


@api_bp.route("/health")
def health():
    return jsonify({"status": "ok", "service": "VibeVault"})


@api_bp.route("/auth/token", methods=["POST"])
def create_token_with_credentials():
    payload = _payload()
    token_name = (payload.get("token_name") or "VibeVault API Token").strip()

    user = authenticate(payload.get("email"), payload.get("password") or "")
    if not user:
        return jsonify({"error": "invalid credentials"}), 401

    token = issue_api_token(user, token_name)
    return jsonify({"token": token, "token_name": token_name, "user_id": user.id})


@api_bp.route("/tags", methods=["GET"])
@api_auth_required(anonymous_result={"items": []})
def tags_list():
    rows = list_tags(g.api_user.id)
    return jsonify(
        {"items": [{**tag.as_dict(), "usageCount": count} for tag, count in rows]}
    )


@api_bp.route("/tags", methods=["POST"])
@api_auth_required()
def tags_create():
    payload = _payload()
    tag = create_tag(g.api_user.id, payload.get("name"), payload.get("color"))
    return jsonify(tag.as_dict()), 201


@api_bp.route("/tags/<int:tag_id>", methods=["PATCH"])
@api_auth_required()
def tags_update(tag_id: int):
    payload = _payload()
    tag = update_tag(g.api_user.id, tag_id, payload.get("name"), payload.get("color"))
    return jsonify(tag.as_dict())


@api_bp.route("/tags/<int:tag_id>", methods=["DELETE"])
@api_auth_required()
def tags_delete(tag_id: int):
    delete_tag(g.api_user.id, tag_id)
    return jsonify({"status": "deleted"})


@api_bp.route("/links", methods=["GET"])
@api_auth_required(anonymous_result={"items": [], "total": 0, "page": 1, "limit": 20})
def links_list():
    sort_by = request.args.get("sortBy") or "createdAt"
    page = max(1, request.args.get("page", type=int) or 1)
    limit = request.args.get("limit", type=int) or current_app.config["LINKS_PAGE_SIZE"]
    limit = max(1, min(limit, current_app.config["LINKS_MAX_PAGE_SIZE"]))

    items, total = list_links(
        g.api_user.id,
        status=request.args.get("status"),
        tag_id=request.args.get("tag", type=int),
        sort_field=sort_by,
        page=page,
        page_size=limit,
    )
    items = search_and_sort(items, request.args.get("search"), sort_by)
    return jsonify(
        {
            "items": [item.as_dict() for item in items],
            "total": total,
            "page": page,
            "limit": limit,
        }
    )


@api_bp.route("/links", methods=["POST"])
@api_auth_required()
def links_create():
    user = g.api_user
    payload = _payload()
    link = create_link(
        user.id,
        payload.get("url"),
        title=payload.get("title"),
        note=payload.get("note"),
        tag_ids=_tag_ids(payload.get("tagIds")),
        collection_id=payload.get("collectionId"),
    )
    if to_bool(payload.get("fetchMetadata"), default=False):
        link = refresh_link_metadata(user.id, link.id)
    return jsonify(link.as_dict()), 201


@api_bp.route("/links/<int:link_id>", methods=["GET"])
@api_auth_required()
def links_get(link_id: int):
    return jsonify(get_link(g.api_user.id, link_id).as_dict())


@api_bp.route("/links/<int:link_id>", methods=["PATCH"])
@api_auth_required()
def links_update(link_id: int):
    link = update_link(g.api_user.id, link_id, _payload())
    return jsonify(link.as_dict())


@api_bp.route("/links/<int:link_id>", methods=["DELETE"])
@api_auth_required()
def links_delete(link_id: int):
    delete_link(g.api_user.id, link_id)
    return jsonify({"status": "deleted"})


@api_bp.route("/links/<int:link_id>/tags/<int:tag_id>", methods=["POST"])
@api_auth_required()
def links_add_tag(link_id: int, tag_id: int):
    add_tag_to_link(g.api_user.id, link_id, tag_id)
    return jsonify({"status": "ok"})


@api_bp.route("/links/<int:link_id>/tags/<int:tag_id>", methods=["DELETE"])
@api_auth_required()
def links_remove_tag(link_id: int, tag_id: int):
    remove_tag_from_link(g.api_user.id, link_id, tag_id)
    return jsonify({"status": "ok"})


@api_bp.route("/links/<int:link_id>/visit", methods=["POST"])
@api_auth_required()
def links_visit(link_id: int):
    return jsonify(record_visit(g.api_user.id, link_id).as_dict())


@api_bp.route("/links/<int:link_id>/metadata", methods=["POST"])
@api_auth_required()
def links_refresh_metadata(link_id: int):
    return jsonify(refresh_link_metadata(g.api_user.id, link_id).as_dict())


@api_bp.route("/collections", methods=["GET"])
@api_auth_required(anonymous_result={"items": []})
def collections_list():
    items = list_collections(g.api_user.id)
    return jsonify({"items": [item.as_dict() for item in items]})


@api_bp.route("/collections", methods=["POST"])
@api_auth_required()
def collections_create():
    collection = create_collection(g.api_user.id, _payload().get("name"))
    return jsonify(collection.as_dict()), 201


@api_bp.route("/collections/<int:collection_id>", methods=["PATCH"])
@api_auth_required()
def collections_update(collection_id: int):
    collection = rename_collection(
        g.api_user.id, collection_id, _payload().get("name")
    )
    return jsonify(collection.as_dict())


@api_bp.route("/collections/<int:collection_id>", methods=["DELETE"])
@api_auth_required()
def collections_delete(collection_id: int):
    delete_collection(g.api_user.id, collection_id)
    return jsonify({"status": "deleted"})


@api_bp.route("/graph", methods=["GET"])
@api_auth_required(anonymous_result={"nodes": [], "edges": []})
def graph_api():
    links, _ = list_links(
        g.api_user.id, page_size=current_app.config["GRAPH_LINK_LIMIT"]
    )
    return jsonify(build_link_graph(links))


@api_bp.route("/export", methods=["GET"])
@api_auth_required()
def export_api():
    return jsonify({"success": True, "data": export_data(g.api_user.id)})


@api_bp.route("/import", methods=["POST"])
@api_auth_required()
def import_api():
    user = g.api_user
    document = _import_document()
    try:
        report = import_data(user.id, document)
    except ServiceError:
        raise
    except Exception:
        current_app.logger.exception("Import failed for user %s", user.id)
        return jsonify({"success": False, "error": "import failed"}), 500
    return jsonify({"success": True, **report.as_dict()})
