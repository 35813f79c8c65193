import uuid

import pytest
from fastapi.testclient import TestClient

from libraryapi import create_app


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as client:
        yield client


def login(client, username, password):
    resp = client.post("/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture
def admin(client):
    return login(client, "root", "rootpassword")


@pytest.fixture
def member(client):
    resp = client.post(
        "/auth/register",
        json={"username": "erin", "email": "erin@example.com", "password": "erinpassword"},
    )
    assert resp.status_code == 201, resp.text
    assert "password_hash" not in resp.json()
    return login(client, "erin", "erinpassword")


@pytest.fixture
def book_id(client, admin):
    resp = client.post(
        "/books",
        json={"title": "SICP", "author": "Abelson", "published_year": 1985},
        headers=admin,
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["version"] == 1
    return resp.json()["id"]


def test_health(client):
    assert client.get("/healthz").json() == {"status": "healthy"}
    assert client.get("/readyz").json() == {"status": "ready"}


def test_request_id_is_echoed(client):
    resp = client.get("/healthz", headers={"X-Request-ID": "abc-123"})
    assert resp.headers["X-Request-ID"] == "abc-123"
    assert client.get("/healthz").headers["X-Request-ID"]


def test_protected_routes_need_a_session(client):
    assert client.get("/users/me").status_code == 401
    resp = client.get("/users/me", headers={"Authorization": f"Bearer {uuid.uuid4()}"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Unauthorized"


def test_me(client, member):
    resp = client.get("/users/me", headers=member)
    assert resp.status_code == 200
    assert resp.json()["username"] == "erin"
    assert resp.json()["role"] == "user"


def test_login_cookie(client, member):
    resp = client.post(
        "/auth/login", json={"username": "erin", "password": "erinpassword"}
    )
    assert "session_id" in resp.cookies
    assert client.get("/users/me").status_code == 200


def test_logout(client, member):
    assert client.post("/auth/logout", headers=member).status_code == 204
    assert client.get("/users/me", headers=member).status_code == 401


def test_duplicate_registration(client, member):
    resp = client.post(
        "/auth/register",
        json={"username": "erin", "email": "x@example.com", "password": "erinpassword"},
    )
    assert resp.status_code == 409


def test_catalog_is_admin_only(client, member):
    resp = client.post("/books", json={"title": "x", "author": "y"}, headers=member)
    assert resp.status_code == 403


def test_catalog_crud(client, admin, book_id):
    assert client.get(f"/books/{book_id}").json()["title"] == "SICP"
    assert len(client.get("/books").json()) == 1

    resp = client.put(
        f"/books/{book_id}", json={"title": "SICP 2e", "version": 1}, headers=admin
    )
    assert resp.status_code == 200
    assert resp.json()["version"] == 2
    assert resp.json()["author"] == "Abelson"

    stale = client.put(
        f"/books/{book_id}", json={"title": "lost", "version": 1}, headers=admin
    )
    assert stale.status_code == 409
    assert client.get(f"/books/{book_id}").json()["title"] == "SICP 2e"

    assert client.delete(f"/books/{book_id}", headers=admin).status_code == 204
    assert client.get(f"/books/{book_id}").status_code == 404


def test_pagination_bounds(client):
    assert client.get("/books", params={"limit": 0}).status_code == 422
    assert client.get("/books", params={"limit": 101}).status_code == 422
    assert client.get("/books", params={"offset": -1}).status_code == 422
    assert client.get("/books", params={"limit": 100}).status_code == 200


def test_borrow_and_return(client, admin, member, book_id):
    resp = client.post(
        "/bookings", json={"book_id": book_id, "borrow_days": 14}, headers=member
    )
    assert resp.status_code == 201, resp.text
    booking = resp.json()
    assert booking["status"] == "ACTIVE"

    again = client.post(
        "/bookings", json={"book_id": book_id, "borrow_days": 14}, headers=member
    )
    assert again.status_code == 409

    mine = client.get("/bookings", headers=member).json()
    assert [b["id"] for b in mine] == [booking["id"]]
    assert client.get(f"/bookings/{booking['id']}", headers=admin).status_code == 200

    resp = client.post(f"/bookings/{booking['id']}/return", headers=member)
    assert resp.status_code == 200
    assert resp.json()["status"] == "RETURNED"
    assert resp.json()["returned_at"] is not None

    twice = client.post(f"/bookings/{booking['id']}/return", headers=member)
    assert twice.status_code == 409


@pytest.mark.parametrize("days", [0, 31])
def test_borrow_days_out_of_range(client, member, book_id, days):
    resp = client.post(
        "/bookings", json={"book_id": book_id, "borrow_days": days}, headers=member
    )
    assert resp.status_code == 400
    assert "between 1 and 30" in resp.json()["message"]


def test_borrow_unknown_book(client, member):
    resp = client.post(
        "/bookings", json={"book_id": str(uuid.uuid4()), "borrow_days": 3}, headers=member
    )
    assert resp.status_code == 404


def test_bookings_are_private(client, admin, member, book_id):
    booking = client.post(
        "/bookings", json={"book_id": book_id, "borrow_days": 3}, headers=admin
    ).json()
    assert client.get(f"/bookings/{booking['id']}", headers=member).status_code == 403
    resp = client.post(f"/bookings/{booking['id']}/return", headers=member)
    assert resp.status_code == 403


def test_admin_routes(client, admin, member, book_id):
    client.post("/bookings", json={"book_id": book_id, "borrow_days": 3}, headers=member)
    assert client.get("/admin/bookings", headers=member).status_code == 403
    assert len(client.get("/admin/bookings", headers=admin).json()) == 1
    assert client.post("/admin/bookings/overdue", headers=admin).json() == {
        "updated": 0
    }

    users = client.get("/admin/users", headers=admin).json()
    assert {u["username"] for u in users} == {"root", "erin"}
    erin = next(u for u in users if u["username"] == "erin")
    assert client.get(f"/admin/users/{erin['id']}", headers=admin).status_code == 200

    resp = client.post(
        "/admin/users",
        json={"username": "frank", "email": "frank@example.com", "password": "frankpassword"},
        headers=admin,
    )
    assert resp.status_code == 201
    assert resp.json()["role"] == "admin"

    assert client.delete(f"/admin/users/{erin['id']}", headers=admin).status_code == 204
    assert client.get(f"/admin/users/{erin['id']}", headers=admin).status_code == 404


def test_empty_update_of_unknown_book_is_not_found(client, admin):
    resp = client.put(f"/books/{uuid.uuid4()}", json={}, headers=admin)
    assert resp.status_code == 404
