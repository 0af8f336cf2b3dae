import io
import json

from vibevault.extensions import db
from vibevault.models import User


def _create_user(email: str, password: str):
    user = User(email=email, name=email.split("@")[0], is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def _token(client, email: str, password: str):
    response = client.post(
        "/api/v1/auth/token",
        json={"email": email, "password": password, "token_name": "pytest"},
    )
    assert response.status_code == 200
    return response.get_json()["token"]


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_token_creates_user_on_first_sign_in(client, app):
    token = _token(client, "New@Example.com", "secret")
    assert token.startswith("vv_")

    with app.app_context():
        user = User.query.filter_by(email="new@example.com").one()
        assert user.name == "new"

    response = client.post(
        "/api/v1/auth/token", json={"email": "new@example.com", "password": "wrong"}
    )
    assert response.status_code == 401

    response = client.post("/api/v1/auth/token", json={"email": "new@example.com"})
    assert response.status_code == 400


def test_anonymous_reads_are_empty_and_writes_rejected(client):
    assert client.get("/api/v1/links").get_json()["items"] == []
    assert client.get("/api/v1/tags").get_json() == {"items": []}
    assert client.get("/api/v1/graph").get_json() == {"nodes": [], "edges": []}

    response = client.post("/api/v1/links", json={"url": "https://example.com"})
    assert response.status_code == 401
    response = client.post("/api/v1/tags", json={"name": "work"})
    assert response.status_code == 401
    assert client.get("/api/v1/export").status_code == 401

    response = client.get(
        "/api/v1/links", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.get_json()["items"] == []


def test_tag_and_link_flow(client, app):
    with app.app_context():
        _create_user("a@example.com", "secret")
    headers = _auth(_token(client, "a@example.com", "secret"))

    response = client.post("/api/v1/tags", headers=headers, json={"name": "Work"})
    assert response.status_code == 201
    tag_id = response.get_json()["id"]
    response = client.post("/api/v1/tags", headers=headers, json={"name": "Work"})
    assert response.status_code == 409
    response = client.post("/api/v1/tags", headers=headers, json={"name": ""})
    assert response.status_code == 400

    response = client.post(
        "/api/v1/links",
        headers=headers,
        json={"url": "https://Example.com/page#frag", "tagIds": f"{tag_id}"},
    )
    assert response.status_code == 201
    link = response.get_json()
    assert link["domain"] == "example.com"
    assert link["normalizedUrl"] == "https://example.com/page"
    assert [entry["tag"]["name"] for entry in link["linkTags"]] == ["Work"]

    response = client.post(
        "/api/v1/links", headers=headers, json={"url": "https://Example.com/page#frag"}
    )
    assert response.status_code == 409
    response = client.post("/api/v1/links", headers=headers, json={"url": "nope"})
    assert response.status_code == 400

    response = client.get("/api/v1/tags", headers=headers)
    assert response.get_json()["items"][0]["usageCount"] == 1

    response = client.patch(
        f"/api/v1/links/{link['id']}",
        headers=headers,
        json={"status": "archived", "favorite": True},
    )
    assert response.status_code == 200
    assert response.get_json()["status"] == "ARCHIVED"

    response = client.get("/api/v1/links?status=archived&tag=%d" % tag_id, headers=headers)
    payload = response.get_json()
    assert payload["total"] == 1
    assert payload["items"][0]["favorite"] is True

    response = client.get("/api/v1/links?sortBy=popularity", headers=headers)
    assert response.status_code == 400

    response = client.post(f"/api/v1/links/{link['id']}/visit", headers=headers)
    assert response.get_json()["lastVisitedAt"] is not None

    response = client.delete(f"/api/v1/links/{link['id']}/tags/{tag_id}", headers=headers)
    assert response.status_code == 200
    response = client.get(f"/api/v1/links/{link['id']}", headers=headers)
    assert response.get_json()["linkTags"] == []

    response = client.delete(f"/api/v1/links/{link['id']}", headers=headers)
    assert response.status_code == 200
    response = client.get(f"/api/v1/links/{link['id']}", headers=headers)
    assert response.status_code == 404


def test_search_and_sort_query_parameters(client, app):
    with app.app_context():
        _create_user("a@example.com", "secret")
    headers = _auth(_token(client, "a@example.com", "secret"))

    for url, title in (
        ("https://docs.python.org/", "Python docs"),
        ("https://go.dev/", "Go language"),
        ("https://www.python.org/", "Python home"),
    ):
        client.post("/api/v1/links", headers=headers, json={"url": url, "title": title})

    response = client.get("/api/v1/links?search=python&sortBy=title", headers=headers)
    titles = [item["title"] for item in response.get_json()["items"]]
    assert titles == ["Python home", "Python docs"]


def test_cross_user_access_is_not_found(client, app):
    with app.app_context():
        _create_user("a@example.com", "secret")
        _create_user("b@example.com", "secret")
    owner = _auth(_token(client, "a@example.com", "secret"))
    intruder = _auth(_token(client, "b@example.com", "secret"))

    link_id = client.post(
        "/api/v1/links", headers=owner, json={"url": "https://example.com/private"}
    ).get_json()["id"]
    tag_id = client.post("/api/v1/tags", headers=owner, json={"name": "secret"}).get_json()[
        "id"
    ]

    assert client.get(f"/api/v1/links/{link_id}", headers=intruder).status_code == 404
    assert client.delete(f"/api/v1/links/{link_id}", headers=intruder).status_code == 404
    response = client.patch(f"/api/v1/tags/{tag_id}", headers=intruder, json={"name": "x"})
    assert response.status_code == 404
    assert client.get("/api/v1/links", headers=intruder).get_json()["total"] == 0


def test_collections_and_graph(client, app):
    with app.app_context():
        _create_user("a@example.com", "secret")
    headers = _auth(_token(client, "a@example.com", "secret"))

    response = client.post("/api/v1/collections", headers=headers, json={"name": "Later"})
    assert response.status_code == 201
    collection_id = response.get_json()["id"]
    assert (
        client.post("/api/v1/collections", headers=headers, json={"name": "Later"}).status_code
        == 409
    )

    tag_id = client.post("/api/v1/tags", headers=headers, json={"name": "work"}).get_json()[
        "id"
    ]
    client.post(
        "/api/v1/links",
        headers=headers,
        json={"url": "https://example.com/a", "tagIds": [tag_id], "collectionId": collection_id},
    )
    client.post("/api/v1/links", headers=headers, json={"url": "https://example.com/b"})

    graph = client.get("/api/v1/graph", headers=headers).get_json()
    tag_nodes = {node["id"] for node in graph["nodes"] if node["type"] == "tag"}
    assert tag_nodes == {f"tag-{tag_id}", "tag-untagged"}
    assert len(graph["edges"]) == 2

    response = client.delete(f"/api/v1/collections/{collection_id}", headers=headers)
    assert response.status_code == 200
    items = client.get("/api/v1/links", headers=headers).get_json()["items"]
    assert all(item["collectionId"] is None for item in items)


def test_export_and_import_round_trip(client, app):
    with app.app_context():
        _create_user("a@example.com", "secret")
        _create_user("b@example.com", "secret")
    source = _auth(_token(client, "a@example.com", "secret"))
    target = _auth(_token(client, "b@example.com", "secret"))

    tag_id = client.post("/api/v1/tags", headers=source, json={"name": "work"}).get_json()[
        "id"
    ]
    client.post(
        "/api/v1/links",
        headers=source,
        json={"url": "https://example.com/a", "tagIds": [tag_id]},
    )

    exported = client.get("/api/v1/export", headers=source).get_json()
    assert exported["success"] is True
    assert exported["data"]["version"] == "1.0.0"

    # The response envelope is accepted as-is.
    response = client.post("/api/v1/import", headers=target, json=exported)
    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["importedLinks"] == 1
    assert body["importedTags"] == 1

    upload = io.BytesIO(json.dumps(exported["data"]).encode("utf-8"))
    response = client.post(
        "/api/v1/import",
        headers=target,
        data={"file": (upload, "export.json")},
        content_type="multipart/form-data",
    )
    body = response.get_json()
    assert body["importedLinks"] == 0
    assert body["skippedLinks"] == 1

    response = client.post(
        "/api/v1/import",
        headers=target,
        data={"file": (io.BytesIO(b"not json"), "export.json")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 400


def test_session_login_and_logout(client, app):
    with app.app_context():
        _create_user("a@example.com", "secret")

    response = client.post("/login", json={"email": "a@example.com", "password": "bad"})
    assert response.status_code == 401

    response = client.post("/login", json={"email": "a@example.com", "password": "secret"})
    assert response.status_code == 200
    response = client.post("/api/v1/tags", json={"name": "from-session"})
    assert response.status_code == 201

    assert client.post("/logout").status_code == 200
    assert client.get("/api/v1/tags").get_json() == {"items": []}


def test_non_string_title_is_a_validation_error(client, app):
    with app.app_context():
        _create_user("a@example.com", "secret")
    headers = _auth(_token(client, "a@example.com", "secret"))

    response = client.post(
        "/api/v1/links", headers=headers, json={"url": "https://example.com/a", "title": 5}
    )
    assert response.status_code == 400

    link_id = client.post(
        "/api/v1/links", headers=headers, json={"url": "https://example.com/a"}
    ).get_json()["id"]
    response = client.patch(f"/api/v1/links/{link_id}", headers=headers, json={"title": 5})
    assert response.status_code == 400
