"""
Session provider tests: sign-up/sign-in against the credential store, token
lookup, sign-out, and the per-request SessionContext lifecycle.
"""

import asyncio

import pytest
from jose import jwt

from conftest import CITIZEN1
from portal.auth import (AuthError, SessionContext, create_access_token, hash_password,
                         verify_password)
from portal.config import JWT_ALGORITHM, JWT_SECRET
from portal.models import Role, SignUp
from portal.routing import Screen
from portal.store import BackendError, SelectResult

pytestmark = pytest.mark.asyncio


class TestPasswords:
    async def test_hash_and_verify(self):
        hashed = hash_password("secret123")
        assert hashed != "secret123"
        assert verify_password("secret123", hashed)
        assert not verify_password("wrong", hashed)

    async def test_password_over_72_bytes_rejected(self):
        with pytest.raises(ValueError):
            hash_password("x" * 73)


class TestAuthService:
    async def test_sign_up_creates_profile_keyed_by_identity(self, auth, store):
        profile = await auth.sign_up(SignUp(email="New@Example.com", password="secret1",
                                            full_name="New Person"))
        assert profile.email == "new@example.com"
        assert profile.role is Role.CITIZEN
        user = await auth.users.get(profile.id)
        assert user["email"] == "new@example.com"
        assert "secret1" not in user["hashed_password"]
        assert (await store.profiles.get(profile.id))["full_name"] == "New Person"

    async def test_sign_up_duplicate(self, auth):
        with pytest.raises(AuthError, match="User already registered"):
            await auth.sign_up(SignUp(email=CITIZEN1[0], password="secret1", full_name="Dup"))

    async def test_sign_in_returns_token_for_identity(self, auth, user_ids):
        token = await auth.sign_in(*CITIZEN1)
        identity = auth.get_session(token)
        assert identity.id == user_ids["citizen1"]
        assert identity.email == CITIZEN1[0]

    async def test_sign_in_wrong_password(self, auth):
        with pytest.raises(AuthError, match="Invalid login credentials"):
            await auth.sign_in(CITIZEN1[0], "nope")

    async def test_expired_token_has_no_session(self, auth):
        token = jwt.encode({"sub": "u1", "exp": 0}, JWT_SECRET, algorithm=JWT_ALGORITHM)
        assert auth.get_session(token) is None

    async def test_token_without_subject(self, auth):
        assert auth.get_session(create_access_token({"email": "x@y.z"})) is None

    async def test_sign_out_revokes(self, auth):
        token = await auth.sign_in(*CITIZEN1)
        auth.sign_out(token)
        assert auth.get_session(token) is None

    async def test_revocation_survives_many_sign_outs(self, auth):
        token = await auth.sign_in(*CITIZEN1)
        auth.sign_out(token)
        for i in range(10001):
            auth.sign_out(create_access_token({"sub": f"other-{i}", "email": "x@y.z"}))
            auth.sign_out(f"garbage-{i}")
        assert auth.get_session(token) is None

    async def test_sign_out_leaves_other_tokens_valid(self, auth, user_ids):
        kept = await auth.sign_in(*CITIZEN1)
        auth.sign_out(await auth.sign_in(*CITIZEN1))
        assert auth.get_session(kept).id == user_ids["citizen1"]

    async def test_failed_profile_insert_removes_user(self, auth, store, monkeypatch):
        async def fail(*args, **kwargs):
            raise BackendError("write timeout")
        data = SignUp(email="flaky@example.com", password="secret1", full_name="Flaky")

        with monkeypatch.context() as m:
            m.setattr(store.profiles, "insert", fail)
            with pytest.raises(BackendError):
                await auth.sign_up(data)
        assert (await auth.users.select({"email": "flaky@example.com"})).rows == []

        profile = await auth.sign_up(data)
        assert (await store.profiles.get(profile.id))["email"] == "flaky@example.com"

    async def test_concurrent_duplicate_sign_up(self, auth, monkeypatch):
        async def nobody_yet(*args, **kwargs):
            return SelectResult([])
        # The existence check misses a row another request has just written
        monkeypatch.setattr(auth.users, "select", nobody_yet)
        with pytest.raises(AuthError, match="User already registered"):
            await auth.sign_up(SignUp(email=CITIZEN1[0], password="secret1", full_name="Twin"))


class TestSessionContext:
    async def test_starts_loading(self, auth):
        session = SessionContext(auth, None)
        assert session.loading
        assert session.screen is Screen.SPINNER

    async def test_no_token_routes_to_login(self, auth):
        session = await SessionContext(auth, None).open()
        assert not session.loading
        assert session.identity is None
        assert session.screen is Screen.LOGIN

    async def test_citizen_session(self, auth, user_ids):
        session = await SessionContext(auth, await auth.sign_in(*CITIZEN1)).open()
        assert session.profile.id == user_ids["citizen1"]
        assert session.screen is Screen.CITIZEN_DASHBOARD

    async def test_admin_session(self, auth):
        session = await SessionContext(auth, await auth.sign_in("admin@cityhall.gov", "admin123")).open()
        assert session.profile.is_admin
        assert session.screen is Screen.ADMIN_DASHBOARD

    async def test_missing_profile_routes_to_login(self, auth, store, user_ids):
        token = await auth.sign_in(*CITIZEN1)
        await store.profiles.delete(user_ids["citizen1"])
        session = await SessionContext(auth, token).open()
        assert session.identity is not None
        assert session.profile is None
        assert session.screen is Screen.LOGIN

    async def test_profile_fetch_failure_routes_to_login(self, auth, store, monkeypatch):
        async def fail(*args):
            raise BackendError("timeout")
        monkeypatch.setattr(store.profiles, "get", fail)
        session = await SessionContext(auth, await auth.sign_in(*CITIZEN1)).open()
        assert session.profile is None
        assert not session.loading
        assert session.screen is Screen.LOGIN

    async def test_close_cancels_profile_fetch(self, auth, store, monkeypatch):
        started = asyncio.Event()

        async def slow_get(row_id):
            started.set()
            await asyncio.sleep(10)
            return {"id": row_id, "email": "late@example.com", "full_name": "Late"}

        monkeypatch.setattr(store.profiles, "get", slow_get)
        session = SessionContext(auth, await auth.sign_in(*CITIZEN1))
        opening = asyncio.ensure_future(session.open())
        await started.wait()
        session.close()
        await opening
        assert session.profile is None
        assert not session.loading

    async def test_sign_out_clears_state(self, auth):
        token = await auth.sign_in(*CITIZEN1)
        session = await SessionContext(auth, token).open()
        session.sign_out()
        assert session.identity is None
        assert session.profile is None
        assert session.screen is Screen.LOGIN
        assert auth.get_session(token) is None
