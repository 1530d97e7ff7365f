import jwt

from conftest import BUYER_ID, SELLER_ID, auth_headers


def test_me_returns_profile_and_admin_flag(client):
    response = client.get("/auth/me", headers=auth_headers(SELLER_ID, is_admin=True))

    assert response.status_code == 200
    body = response.json()
    assert body["auth"] == {"id": SELLER_ID, "email": f"{SELLER_ID}@campus.test", "is_admin": True}
    assert body["profile"]["username"] == "sam"


def test_tampered_token_is_rejected(client):
    token = jwt.encode({"sub": BUYER_ID}, "not-the-secret-but-long-enough-anyway", algorithm="HS256")

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_register_rejects_taken_username(client, fake_db):
    response = client.post(
        "/auth/register",
        json={"email": "x@campus.test", "name": "X", "username": "sam", "password": "longenough"},
    )

    assert response.status_code == 409
    assert ("auth", "sign_up") not in fake_db.calls


def test_register_creates_profile(client, fake_db):
    response = client.post(
        "/auth/register",
        json={
            "email": "new@campus.test",
            "name": "Nina New",
            "username": "Nina",
            "password": "longenough",
        },
    )

    assert response.status_code == 201
    assert response.json()["username"] == "nina"
    profile = next(p for p in fake_db.tables["profiles"] if p["username"] == "nina")
    assert profile["name"] == "Nina New"


def test_logout_clears_cookie(client, fake_db):
    response = client.post("/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"logged_out": True}
    assert ("auth", "sign_out") in fake_db.calls
