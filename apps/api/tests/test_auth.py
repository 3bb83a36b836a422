"""
Tests for authentication endpoints.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from portal_auth.routers import auth as auth_router
from portal_auth.services import otp as otp_service
from portal_auth.core.errors import INVALID_SESSION_BODY, StoreUnavailable
from portal_auth.models.user import User

from helpers import TEST_PASSWORD, login, session_header


def fresh_token(client: TestClient, email: str = "testuser@example.com") -> str:
    """Log in and drop the cookie so the token is only sent when asked."""
    token = login(client, email).json()["session_token"]
    client.cookies.clear()
    return token


class TestLogin:
    """Tests for POST /api/auth/login."""

    def test_login_success(self, client: TestClient, test_user: User):
        response = login(client)

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["id"] == test_user.id
        assert data["user"]["role"] == "client"
        assert "self:dashboard" in data["user"]["permissions"]
        assert len(data["csrf_token"]) == 64
        assert response.cookies.get("sessionToken") == data["session_token"]

        set_cookie = response.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=strict" in set_cookie

    def test_login_stamps_last_login(self, client: TestClient, test_user: User, db: Session):
        login(client)

        db.expire_all()
        assert db.query(User).filter(User.id == test_user.id).first().last_login is not None

    def test_login_wrong_password(self, client: TestClient, test_user: User):
        response = client.post(
            "/api/auth/login",
            json={"email": "testuser@example.com", "password": "wrongpassword"}
        )

        assert response.status_code == 401
        assert "invalid" in response.json()["detail"].lower()

    def test_login_nonexistent_user(self, client: TestClient):
        response = login(client, "nobody@example.com")

        assert response.status_code == 401

    def test_login_inactive_user(self, client: TestClient, make_user):
        make_user(email="gone@example.com", is_active=False)

        assert login(client, "gone@example.com").status_code == 401

    def test_login_invalid_email(self, client: TestClient):
        response = client.post(
            "/api/auth/login",
            json={"email": "not-an-email", "password": TEST_PASSWORD}
        )

        assert response.status_code == 422


class TestMe:
    """Tests for GET /api/auth/me."""

    def test_me_with_cookie(self, client: TestClient, test_user: User):
        login(client)

        response = client.get("/api/auth/me")

        assert response.status_code == 200
        assert response.json()["email"] == test_user.email

    def test_me_with_session_header(self, client: TestClient, test_user: User):
        token = fresh_token(client)

        response = client.get("/api/auth/me", headers=session_header(token))

        assert response.status_code == 200
        assert response.json()["id"] == test_user.id

    def test_bearer_scheme_not_accepted(self, client: TestClient, test_user: User):
        token = fresh_token(client)

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_me_unauthenticated(self, client: TestClient):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.json() == INVALID_SESSION_BODY

    def test_failures_are_indistinguishable(self, client: TestClient, test_user: User):
        """Unknown, revoked and hijacked tokens all get the same answer."""
        revoked = fresh_token(client)
        client.post("/api/auth/logout", headers=session_header(revoked))
        hijacked = fresh_token(client)

        responses = [
            client.get("/api/auth/me", headers=session_header("made-up-token")),
            client.get("/api/auth/me", headers=session_header(revoked)),
            client.get("/api/auth/me", headers={**session_header(hijacked), "User-Agent": "curl/8.5"}),
        ]

        assert {r.status_code for r in responses} == {401}
        assert all(r.json() == INVALID_SESSION_BODY for r in responses)

    def test_user_agent_change_kills_session(self, client: TestClient, test_user: User):
        token = fresh_token(client)

        other_browser = client.get("/api/auth/me", headers={**session_header(token), "User-Agent": "Firefox/128.0"})
        previous = client.get("/api/auth/me", headers=session_header(token))

        assert other_browser.status_code == 401
        assert previous.status_code == 401

    def test_deactivated_user_loses_session(self, client: TestClient, test_user: User, db: Session):
        token = fresh_token(client)
        test_user.is_active = False
        db.commit()

        assert client.get("/api/auth/me", headers=session_header(token)).status_code == 401

        test_user.is_active = True
        db.commit()

        assert client.get("/api/auth/me", headers=session_header(token)).status_code == 401

    def test_store_outage_is_a_server_error(self, client: TestClient, monkeypatch):
        async def unavailable(*args, **kwargs):
            raise StoreUnavailable("database is down")

        durable = client.app.state.session_manager.store.durable
        monkeypatch.setattr(durable, "get_active", unavailable)

        response = client.get("/api/auth/me", headers=session_header("not-cached"))

        assert response.status_code == 500
        assert response.json()["error"] == "auth_system_error"


class TestLogout:
    """Tests for POST /api/auth/logout."""

    def test_logout_success(self, client: TestClient, test_user: User):
        token = fresh_token(client)

        response = client.post("/api/auth/logout", headers=session_header(token))

        assert response.status_code == 200
        assert "logged out" in response.json()["message"].lower()
        assert client.get("/api/auth/me", headers=session_header(token)).status_code == 401

    def test_logout_twice(self, client: TestClient, test_user: User):
        token = fresh_token(client)

        client.post("/api/auth/logout", headers=session_header(token))
        response = client.post("/api/auth/logout", headers=session_header(token))

        assert response.status_code == 200

    def test_logout_without_token(self, client: TestClient):
        assert client.post("/api/auth/logout").status_code == 401

    def test_logout_with_unknown_tokens_records_nothing(self, client: TestClient):
        for i in range(200):
            response = client.post("/api/auth/logout", headers=session_header(f"junk-{i}"))
            assert response.status_code == 200

        assert len(client.app.state.session_manager.revocations) == 0


class TestRotate:
    """Tests for POST /api/auth/rotate."""

    def test_rotate_issues_new_token(self, client: TestClient, test_user: User):
        old = fresh_token(client)

        response = client.post("/api/auth/rotate", headers=session_header(old))
        client.cookies.clear()

        assert response.status_code == 200
        new = response.json()["session_token"]
        assert new != old
        assert client.get("/api/auth/me", headers=session_header(old)).status_code == 401
        assert client.get("/api/auth/me", headers=session_header(new)).status_code == 200


class TestSessions:
    """Tests for the session management endpoints."""

    def test_list_sessions(self, client: TestClient, test_user: User):
        first = fresh_token(client)
        fresh_token(client)

        response = client.get("/api/auth/sessions", headers=session_header(first))

        assert response.status_code == 200
        sessions = response.json()
        assert len(sessions) == 2
        assert sum(s["current"] for s in sessions) == 1
        assert all(s["id"].endswith("...") and len(s["id"]) < 12 for s in sessions)

    def test_revoke_other_sessions(self, client: TestClient, test_user: User):
        current = fresh_token(client)
        other = fresh_token(client)

        response = client.post("/api/auth/sessions/revoke-others", headers=session_header(current))

        assert response.status_code == 200
        assert response.json()["revoked"] == 1
        assert client.get("/api/auth/me", headers=session_header(other)).status_code == 401
        assert client.get("/api/auth/me", headers=session_header(current)).status_code == 200


class TestChangePassword:
    """Tests for POST /api/auth/change-password."""

    def test_change_password_signs_out_other_devices(self, client: TestClient, test_user: User):
        current = fresh_token(client)
        other = fresh_token(client)

        response = client.post(
            "/api/auth/change-password",
            json={"current_password": TEST_PASSWORD, "new_password": "a-new-password"},
            headers=session_header(current),
        )

        assert response.status_code == 200
        assert response.json()["revoked"] == 1
        assert client.get("/api/auth/me", headers=session_header(other)).status_code == 401
        assert client.get("/api/auth/me", headers=session_header(current)).status_code == 200

        relogin = client.post(
            "/api/auth/login",
            json={"email": test_user.email, "password": "a-new-password"},
        )
        assert relogin.status_code == 200

    def test_wrong_current_password(self, client: TestClient, test_user: User):
        current = fresh_token(client)
        other = fresh_token(client)

        response = client.post(
            "/api/auth/change-password",
            json={"current_password": "not-it", "new_password": "a-new-password"},
            headers=session_header(current),
        )

        assert response.status_code == 400
        assert client.get("/api/auth/me", headers=session_header(other)).status_code == 200


class TestAdminRevoke:
    """Tests for POST /api/admin/users/{user_id}/sessions/revoke."""

    def test_client_is_forbidden(self, client: TestClient, test_user: User):
        token = fresh_token(client)

        response = client.post(
            f"/api/admin/users/{test_user.id}/sessions/revoke",
            headers=session_header(token),
        )

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_admin_signs_user_out(self, client: TestClient, test_user: User, make_user):
        make_user(email="admin@example.com", role="admin")
        target = fresh_token(client)
        admin = fresh_token(client, "admin@example.com")

        response = client.post(
            f"/api/admin/users/{test_user.id}/sessions/revoke",
            headers=session_header(admin),
        )

        assert response.status_code == 200
        assert response.json()["revoked"] == 1
        assert client.get("/api/auth/me", headers=session_header(target)).status_code == 401
        assert client.get("/api/auth/me", headers=session_header(admin)).status_code == 200


class TestVerifySession:
    """Tests for POST /api/auth/verify-session."""

    def test_valid_token(self, client: TestClient, test_user: User):
        token = fresh_token(client)

        response = client.post("/api/auth/verify-session", json={"session_token": token})

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["user"]["id"] == test_user.id

    def test_unknown_token(self, client: TestClient):
        response = client.post("/api/auth/verify-session", json={"session_token": "made-up-token"})

        assert response.status_code == 401
        assert response.json() == INVALID_SESSION_BODY

    def test_empty_token_rejected(self, client: TestClient):
        assert client.post("/api/auth/verify-session", json={"session_token": ""}).status_code == 422

    def test_other_user_agent_revokes(self, client: TestClient, test_user: User):
        token = fresh_token(client)

        response = client.post(
            "/api/auth/verify-session",
            json={"session_token": token},
            headers={"User-Agent": "Firefox/128.0"},
        )

        assert response.status_code == 401
        assert client.get("/api/auth/me", headers=session_header(token)).status_code == 401


class TestClientOtp:
    """Tests for the client one-time code login."""

    @pytest.fixture(autouse=True)
    def fixed_code(self, monkeypatch):
        monkeypatch.setattr(otp_service, "generate_otp", lambda: "482913")

    def test_send_and_verify(self, client: TestClient, test_user: User):
        sent = client.post("/api/auth/client/send-otp", json={"email": test_user.email})

        assert sent.status_code == 200
        assert sent.json()["otp"] is None

        response = client.post(
            "/api/auth/client/verify-otp",
            json={"email": test_user.email, "otp": "482913"},
        )

        assert response.status_code == 200
        token = response.json()["session_token"]
        assert response.cookies.get("sessionToken") == token
        client.cookies.clear()
        assert client.get("/api/auth/me", headers=session_header(token)).status_code == 200

    def test_code_echoed_in_debug(self, client: TestClient, test_user: User, monkeypatch):
        monkeypatch.setattr(auth_router.settings, "DEBUG", True)

        sent = client.post("/api/auth/client/send-otp", json={"email": test_user.email})

        assert sent.json()["otp"] == "482913"

    def test_unregistered_email(self, client: TestClient):
        response = client.post("/api/auth/client/send-otp", json={"email": "nobody@example.com"})

        assert response.status_code == 404

    def test_staff_must_use_password(self, client: TestClient, make_user):
        staff = make_user(email="agent@example.com", role="agent")

        response = client.post("/api/auth/client/send-otp", json={"email": staff.email})

        assert response.status_code == 403

    def test_wrong_code_then_lockout(self, client: TestClient, test_user: User):
        client.post("/api/auth/client/send-otp", json={"email": test_user.email})
        guess = {"email": test_user.email, "otp": "111111"}

        first = client.post("/api/auth/client/verify-otp", json=guess)
        second = client.post("/api/auth/client/verify-otp", json=guess)
        third = client.post("/api/auth/client/verify-otp", json=guess)
        correct = client.post("/api/auth/client/verify-otp", json={**guess, "otp": "482913"})

        assert first.status_code == 400
        assert first.json()["detail"]["remaining_attempts"] == 2
        assert second.json()["detail"]["remaining_attempts"] == 1
        assert third.status_code == 429
        assert correct.status_code == 400

    def test_malformed_code(self, client: TestClient, test_user: User):
        response = client.post(
            "/api/auth/client/verify-otp",
            json={"email": test_user.email, "otp": "12ab"},
        )

        assert response.status_code == 422
