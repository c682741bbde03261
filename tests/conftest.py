"""
Shared pytest fixtures for the City Services Portal test suite.

Each test gets a fresh in-memory MongoDB (mongomock) seeded by the importer,
an httpx AsyncClient bound to the app in-process, and pre-authenticated
headers for each role.
"""

import os

# Must be set before the portal package reads its configuration
os.environ.setdefault("JWT_SECRET", "test-secret-for-the-portal-suite-0123456789abcdef")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import httpx
import mongomock
import pytest
import pytest_asyncio

from portal.app import app, lifespan, limiter
from portal.importer import seed

CITIZEN1 = ("maria.lopez@email.com", "citizen123")
CITIZEN2 = ("daniel.okafor@email.com", "citizen123")
CITIZEN3 = ("ingrid.larsen@email.com", "citizen123")
ADMIN = ("admin@cityhall.gov", "admin123")


@pytest.fixture
def mongo(monkeypatch):
    """Point the app's MongoClient at a throwaway mongomock server."""
    monkeypatch.setattr("portal.app.MongoClient", mongomock.MongoClient)


@pytest_asyncio.fixture
async def user_ids(mongo):
    """Run the app lifespan over a freshly seeded database. Yields {key: profile id}."""
    # Disable rate limiting during tests so login fixtures aren't throttled
    limiter.enabled = False
    async with lifespan(app):
        yield await seed(app.state.store, app.state.auth)


@pytest.fixture
def store(user_ids):
    return app.state.store


@pytest.fixture
def auth(user_ids):
    return app.state.auth


@pytest_asyncio.fixture
async def client(user_ids):
    """In-process httpx AsyncClient."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


async def _login(client: httpx.AsyncClient, email: str, password: str) -> dict:
    """Log in and return Authorization headers dict."""
    resp = await client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, f"Login failed for {email}: {resp.text}"
    token = resp.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def citizen_headers(client):
    """Auth headers for the seeded citizen1 account."""
    return await _login(client, *CITIZEN1)


@pytest_asyncio.fixture
async def citizen2_headers(client):
    """Auth headers for the seeded citizen2 account."""
    return await _login(client, *CITIZEN2)


@pytest_asyncio.fixture
async def admin_headers(client):
    """Auth headers for the seeded admin account."""
    return await _login(client, *ADMIN)
