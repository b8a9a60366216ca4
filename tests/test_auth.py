from storefront.app.models import Account

from conftest import PASSWORD, login


def test_register_login_me_logout(client):
    r = client.post(
        "/api/users",
        json={"email": "New@Example.com", "password": "secret123", "first_name": "New", "last_name": "User"},
    )
    assert r.status_code == 201
    assert r.json["email"] == "new@example.com"
    assert r.json["is_admin"] is False

    r = client.post("/api/users", json={"email": "new@example.com", "password": "secret123",
                                        "first_name": "Dup", "last_name": "User"})
    assert r.status_code == 409

    assert client.get("/api/users/me").status_code == 401

    r = login(client, "new@example.com", "secret123")
    assert r.status_code == 200
    assert r.json["message"] == "logged_in"

    r = client.get("/api/users/me")
    assert r.status_code == 200
    assert r.json["first_name"] == "New"

    assert client.post("/api/auth/logout").json["message"] == "logged_out"
    assert client.get("/api/users/me").status_code == 401


def test_register_validation(client):
    r = client.post("/api/users", json={"email": "x@example.com"})
    assert r.status_code == 400
    assert set(r.json["error"]["details"]["missing"]) == {"password", "first_name", "last_name"}

    r = client.post("/api/users", json={"email": "nope", "password": "secret123", "first_name": "A", "last_name": "B"})
    assert r.json["error"]["message"] == "Please provide a valid email address."

    r = client.post("/api/users", json={"email": "a@b.co", "password": "short", "first_name": "A", "last_name": "B"})
    assert r.json["error"]["message"] == "Password must be at least 8 characters."
    assert Account.query.filter_by(email="a@b.co").first() is None


def test_login_rejects_bad_password(client):
    r = login(client, password="wrong")
    assert r.status_code == 401
    assert r.json["error"]["code"] == "unauthorized"

    r = client.post("/api/auth/login", data={"email": "test@test.com"})
    assert r.status_code == 400
    assert r.json["error"]["code"] == "invalid_json"


def test_login_page(client):
    assert client.get("/login?next=/cart").status_code == 200

    r = client.post("/login", data={"email": "test@test.com", "password": "wrong"})
    assert r.status_code == 401
    assert b"Invalid email or password" in r.data
    assert b'value="test@test.com"' in r.data

    r = client.post("/login", data={"email": "TEST@test.com", "password": PASSWORD, "next": "/cart"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/cart")

    r = client.get("/cart")
    assert b"Welcome back, Test!" in r.data


def test_login_page_ignores_offsite_next(client):
    r = client.post("/login", data={"email": "test@test.com", "password": PASSWORD, "next": "https://evil.example/"})
    assert r.status_code == 302
    assert "evil" not in r.headers["Location"]


def test_logout_page(client):
    login(client)
    r = client.get("/logout")
    assert r.status_code == 302
    with client.session_transaction() as sess:
        assert "user_id" not in sess
