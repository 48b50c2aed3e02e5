from datetime import timedelta

from conftest import PASSWORD, register

from storefront import auth, models


def test_register_sets_session_cookie(client):
    user = register(client, "Carol@Example.com")
    assert user["email"] == "carol@example.com"
    assert "password_hash" not in user
    assert client.get("/api/auth/user").json()["id"] == user["id"]


def test_duplicate_registration_is_409(client, make_client):
    register(client, "dave@example.com")
    response = make_client().post("/api/auth/register", json={"email": "DAVE@example.com", "password": PASSWORD})
    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"


def test_short_password_rejected(client):
    response = client.post("/api/auth/register", json={"email": "erin@example.com", "password": "short"})
    assert response.status_code == 400
    assert response.json()["field"] == "password"


def test_login_and_logout(make_client, db):
    register(make_client(), "frank@example.com")

    laptop, phone = make_client(), make_client()
    for device in (laptop, phone):
        response = device.post("/api/auth/login", json={"email": "frank@example.com", "password": PASSWORD})
        assert response.status_code == 200
        assert "sid" in response.cookies

    assert laptop.post("/api/auth/logout").status_code == 200
    # logout ends every session of the user
    assert laptop.get("/api/auth/user").status_code == 401
    assert phone.get("/api/auth/user").status_code == 401


def test_wrong_password_is_401(client):
    register(client, "gina@example.com")
    response = client.post("/api/auth/login", json={"email": "gina@example.com", "password": "not the password"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"


def test_password_hashing():
    hashed = auth.hash_password("s3cret-pass", rounds=4)
    assert hashed != "s3cret-pass"
    assert auth.verify_password("s3cret-pass", hashed)
    assert not auth.verify_password("other", hashed)
    assert not auth.verify_password("s3cret-pass", "not-a-bcrypt-hash")


def test_expired_sessions_are_ignored_and_swept(db):
    live = auth.create_session(db, "user-1", ttl_hours=1)
    stale = auth.create_session(db, "user-1", ttl_hours=1)
    stale.expire = auth.utcnow() - timedelta(minutes=1)
    db.commit()

    assert auth.load_session(db, live.sid) is not None
    assert auth.load_session(db, stale.sid) is None

    assert auth.clear_expired_sessions(db) == 1
    assert db.query(models.LoginSession).count() == 1
