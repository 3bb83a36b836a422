"""
Shared helpers for the test suite.
"""
import asyncio
from datetime import datetime, timedelta

from fastapi.testclient import TestClient

TEST_PASSWORD = "testpassword123"
BROWSER_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/126.0"
PHONE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) Safari/604.1"


def run(coro):
    """Drive an async session-layer call from a synchronous test."""
    return asyncio.run(coro)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def login(client: TestClient, email: str = "testuser@example.com", **kwargs):
    return client.post(
        "/api/auth/login",
        json={"email": email, "password": TEST_PASSWORD},
        **kwargs,
    )


def session_header(token: str) -> dict:
    return {"Authorization": f"Session {token}"}
