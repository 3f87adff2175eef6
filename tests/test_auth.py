from datetime import timedelta

from conftest import auth_header, make_account
from database import utcnow


def register(client, email="new@example.com", password="secret123"):
    return client.post(
        "/api/users/register-user",
        json={"username": "newbie", "email": email, "password": password},
    )


def test_register_sends_otp_and_returns_token(client, db, outbox):
    r = register(client)

    assert r.status_code == 200
    body = r.json()
    assert body["token"]
    assert body["is_verified"] is False
    stored = db.users.find_one({"email": "new@example.com"})
    assert stored["password"] != "secret123"
    assert stored["otp"] in outbox[0]["html"]


def test_register_duplicate_email(client):
    register(client)
    r = register(client)

    assert r.status_code == 409
    assert r.json()["message"] == "Email already exists!"


def test_login(client):
    register(client)

    ok = client.post("/api/users/login-user", json={"email": "new@example.com", "password": "secret123"})
    wrong = client.post("/api/users/login-user", json={"email": "new@example.com", "password": "nope123"})
    unknown = client.post("/api/users/login-user", json={"email": "who@example.com", "password": "secret123"})

    assert ok.status_code == 200 and ok.json()["token"]
    assert wrong.status_code == 401
    assert wrong.json()["message"] == "Invalid password"
    assert unknown.status_code == 404
    assert unknown.json()["message"] == "Invalid Email"


def test_verify_otp(client, db):
    token = register(client).json()["token"]
    headers = {"Authorization": f"Bearer {token}"}
    otp = db.users.find_one({"email": "new@example.com"})["otp"]

    empty = client.post("/api/users/verify-otp", json={}, headers=headers)
    wrong = client.post("/api/users/verify-otp", json={"otp": "000000" if otp != "000000" else "111111"}, headers=headers)
    ok = client.post("/api/users/verify-otp", json={"otp": otp}, headers=headers)

    assert empty.json()["message"] == "Please enter the OTP"
    assert wrong.json()["message"] == "Invalid OTP"
    assert ok.json()["is_verified"] is True
    assert db.users.find_one({"email": "new@example.com"})["otp"] is None


def test_expired_otp(client, db):
    token = register(client).json()["token"]
    stored = db.users.find_one({"email": "new@example.com"})
    db.users.update_one({"_id": stored["_id"]}, {"$set": {"otp_expires_at": utcnow() - timedelta(minutes=1)}})

    r = client.post("/api/users/verify-otp", json={"otp": stored["otp"]}, headers={"Authorization": f"Bearer {token}"})

    assert r.status_code == 401
    assert r.json()["message"] == "OTP has expired"


def test_me_requires_valid_token(client, user, user_headers):
    assert client.get("/api/users/me", headers=user_headers).json()["email"] == "shopper@example.com"
    bad = client.get("/api/users/me", headers={"Authorization": "Bearer garbage"})
    assert bad.status_code == 401
    assert bad.json()["message"] == "Not authorized, token failed"


def test_open_admin_registration_gets_user_role(client, db):
    r = client.post(
        "/api/admins/register-admin",
        json={"username": "staff", "email": "staff@example.com", "password": "secret123", "role": "admin"},
    )
    plain = client.post(
        "/api/admins/register-admin",
        json={"username": "staff", "email": "staff@example.com", "password": "secret123"},
    )

    assert r.status_code == 403
    assert r.json()["message"] == "Only superadmin can create admin or superadmin accounts"
    assert plain.json()["role"] == "user"
    assert db.admins.count_documents({}) == 1


def test_superadmin_creates_admins(client, db, superadmin_headers, admin_headers):
    payload = {"username": "boss", "email": "boss@example.com", "password": "secret123", "role": "superadmin"}

    elevated = client.post("/api/admins/register-admin", json=payload, headers=superadmin_headers)
    created = client.post(
        "/api/admins/create-admin",
        json={"username": "ops", "email": "ops@example.com", "password": "secret123"},
        headers=superadmin_headers,
    )
    denied = client.post(
        "/api/admins/create-admin",
        json={"username": "ops2", "email": "ops2@example.com", "password": "secret123"},
        headers=admin_headers,
    )

    assert elevated.json()["role"] == "superadmin"
    assert created.json()["role"] == "admin"
    assert denied.status_code == 403


def test_admin_login_uses_admin_accounts(client, db):
    make_account(db, "admin", "ops@example.com", password="secret123")

    r = client.post("/api/admins/login-admin", json={"email": "ops@example.com", "password": "secret123"})
    as_user = client.post("/api/users/login-user", json={"email": "ops@example.com", "password": "secret123"})

    assert r.status_code == 200
    assert r.json()["role"] == "admin"
    assert as_user.status_code == 404


def test_all_users_is_admin_only(client, user, user_headers, admin_headers):
    assert client.get("/api/users/all-users", headers=user_headers).status_code == 403

    r = client.get("/api/users/all-users", headers=admin_headers)

    assert [u["email"] for u in r.json()] == ["shopper@example.com"]
    assert "password" not in r.json()[0]


def test_token_for_deleted_account_is_rejected(client, db, user):
    headers = auth_header(user)
    db.users.delete_one({"_id": user["_id"]})

    assert client.get("/api/users/me", headers=headers).status_code == 401
