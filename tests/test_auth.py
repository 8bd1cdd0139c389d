"""
Tests for credential login, the session endpoints and the user profile.
"""
import pytest

from helpers import PASSWORD, login, make_org, make_user
from newsradar.auth import hash_password, verify_password


@pytest.fixture
def org(db):
    return make_org(db, "Acme")


@pytest.fixture
def alice(db, org):
    return make_user(db, org, "alice", full_name="Alice A.", email="alice@acme.com")


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

class TestPasswords:
    def test_round_trip(self):
        hashed = hash_password("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed)
        assert not verify_password("wrong", hashed)

    def test_non_bcrypt_hash_does_not_verify(self):
        assert verify_password("anything", "plaintext") is False


# ---------------------------------------------------------------------------
# Login / session
# ---------------------------------------------------------------------------

class TestLogin:
    def test_success_returns_session_user(self, client, alice, org):
        body = login(client, "alice").json()
        assert body == {"id": alice.id, "username": "alice", "organizationId": org.id, "isAdmin": False}

    def test_stamps_last_login(self, client, db, alice):
        login(client, "alice")
        db.refresh(alice)
        assert alice.last_login is not None

    def test_wrong_password_is_401(self, client, alice):
        response = client.post("/api/auth/login", json={"username": "alice", "password": "nope"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid username or password"}

    def test_unknown_user_is_401(self, client):
        response = client.post("/api/auth/login", json={"username": "nobody", "password": PASSWORD})
        assert response.status_code == 401

    def test_disabled_user_is_401(self, client, db, alice):
        alice.is_active = False
        db.commit()
        response = client.post("/api/auth/login", json={"username": "alice", "password": PASSWORD})
        assert response.status_code == 401

    def test_missing_password_is_400(self, client):
        response = client.post("/api/auth/login", json={"username": "alice"})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid password")

    def test_session_endpoint(self, client, alice):
        assert client.get("/api/auth/session").status_code == 401
        login(client, "alice")
        assert client.get("/api/auth/session").json()["username"] == "alice"

    def test_admin_flag(self, client, db, org):
        make_user(db, org, "admin")
        assert login(client, "admin").json()["isAdmin"] is True


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

class TestProfile:
    def test_get(self, client, alice):
        login(client, "alice")
        body = client.get("/api/user/profile").json()
        assert body["fullName"] == "Alice A."
        assert body["organizationName"] == "Acme"

    def test_update(self, client, db, alice):
        login(client, "alice")
        response = client.put("/api/user/profile", json={"fullName": "Alice B.", "email": "b@acme.com"})

        assert response.status_code == 200
        db.refresh(alice)
        assert alice.full_name == "Alice B."
        assert alice.email == "b@acme.com"

    def test_invalid_email_is_400(self, client, alice):
        login(client, "alice")
        response = client.put("/api/user/profile", json={"fullName": "Alice", "email": "not-an-email"})
        assert response.status_code == 400

    def test_email_with_empty_domain_label_is_400(self, client, alice):
        login(client, "alice")
        response = client.put("/api/user/profile", json={"fullName": "Alice", "email": "a@b..c"})
        assert response.status_code == 400

    def test_dashboard_visit(self, client, db, alice):
        login(client, "alice")
        response = client.post("/api/user/dashboard-visit")

        assert response.json()["success"] is True
        db.refresh(alice)
        assert alice.last_dashboard_visit is not None

    def test_requires_login(self, client):
        assert client.get("/api/user/profile").status_code == 401
