# Auth service (credentials + session tokens) and the per-request session context

import heapq
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set, Tuple

from fastapi import Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import (JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRE_HOURS, BCRYPT_ROUNDS,
                     SESSION_COOKIE)
from .models import Identity, Profile, Role, SignUp
from .routing import Screen, choose_screen
from .store import BackendError, ConflictError, Store, Table, new_id
from .views import ViewScope

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__default_rounds=BCRYPT_ROUNDS)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


class AuthError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ---------------------------------------------------------------------------
# Auth Helpers
# ---------------------------------------------------------------------------
def hash_password(password: str) -> str:
    if len(password.encode("utf-8")) > 72:
        raise ValueError("Password cannot exceed 72 bytes")
    return pwd_context.hash(password)

def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)

def create_access_token(data: dict) -> str:
    to_encode = data.copy()
    to_encode["jti"] = new_id()
    to_encode["exp"] = datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRE_HOURS)
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)


class AuthService:
    """
    Sign-up, sign-in and session lookup over the ``users`` credential collection.

    Sign-up also creates the matching citizen profile, so every identity has
    exactly one profile keyed by the identity's id.
    """

    def __init__(self, store: Store):
        self.store = store
        self.users = Table(store.db.users)
        # jti of every signed-out token, dropped once the token expires
        self._revoked: Set[str] = set()
        self._expiries: List[Tuple[datetime, str]] = []

    async def sign_up(self, data: SignUp, role: Role = Role.CITIZEN) -> Profile:
        existing = await self.users.select({"email": data.email})
        if existing.rows:
            raise AuthError("User already registered")
        try:
            user = await self.users.insert({
                "email": data.email,
                "hashed_password": hash_password(data.password),
            })
        except ConflictError:
            # Lost a race with a concurrent sign-up for the same email
            raise AuthError("User already registered")
        try:
            row = await self.store.profiles.insert({
                "email": data.email, "full_name": data.full_name,
                "role": role.value, "phone": data.phone,
            }, key=user["id"])
        except BackendError as e:
            logger.error("Error creating profile for %s: %s", data.email, e)
            await self._drop_user(user["id"])
            raise
        logger.info("Signed up %s (%s)", data.email, role.value)
        return Profile(**row)

    async def _drop_user(self, user_id: str):
        # An identity must never outlive a failed profile insert
        try:
            await self.users.delete(user_id)
        except BackendError as e:
            logger.error("Could not remove user %s after failed sign-up: %s", user_id, e)

    async def sign_in(self, email: str, password: str) -> str:
        found = await self.users.select({"email": email.strip().lower()})
        user = found.rows[0] if found.rows else None
        if not user or not verify_password(password, user["hashed_password"]):
            raise AuthError("Invalid login credentials")
        return create_access_token({"sub": user["id"], "email": user["email"]})

    def _decode(self, token: str) -> Optional[dict]:
        try:
            return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        except JWTError:
            return None

    def get_session(self, token: Optional[str]) -> Optional[Identity]:
        payload = self._decode(token) if token else None
        if not payload or not payload.get("sub"):
            return None
        if (payload.get("jti") or token) in self._revoked:
            return None
        return Identity(id=payload["sub"], email=payload.get("email", ""))

    def sign_out(self, token: Optional[str]):
        payload = self._decode(token) if token else None
        # Invalid or already expired tokens have no session to revoke
        if not payload:
            return
        now = datetime.now(timezone.utc)
        while self._expiries and self._expiries[0][0] <= now:
            self._revoked.discard(heapq.heappop(self._expiries)[1])
        if "exp" in payload:
            expires = datetime.fromtimestamp(payload["exp"], timezone.utc)
        else:
            expires = now + timedelta(hours=JWT_EXPIRE_HOURS)
        key = payload.get("jti") or token
        self._revoked.add(key)
        heapq.heappush(self._expiries, (expires, key))


class SessionContext:
    """
    The signed-in identity and its profile for one request.

    ``open()`` checks the session and then fetches the profile; ``loading``
    stays true until both are done. ``close()`` cancels a profile fetch that
    is still in flight. A profile that cannot be loaded leaves ``profile``
    as None, which routes to the login screen.
    """

    def __init__(self, auth: AuthService, token: Optional[str]):
        self._auth = auth
        self._scope = ViewScope()
        self.token = token
        self.identity: Optional[Identity] = None
        self.profile: Optional[Profile] = None
        self.loading = True

    async def open(self) -> "SessionContext":
        self.identity = self._auth.get_session(self.token)
        if self.identity is not None:
            self.profile = await self._scope.run(self._fetch_profile(self.identity.id))
        self.loading = False
        return self

    async def _fetch_profile(self, identity_id: str) -> Optional[Profile]:
        try:
            row = await self._auth.store.profiles.get(identity_id)
        except BackendError as e:
            logger.error("Error loading profile: %s", e)
            return None
        if row is None:
            logger.warning("No profile for identity %s", identity_id)
            return None
        return Profile(**row)

    def close(self):
        self._scope.close()

    def sign_out(self):
        self._auth.sign_out(self.token)
        self.identity = None
        self.profile = None

    @property
    def screen(self) -> Screen:
        return choose_screen(self.loading, self.identity, self.profile)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_token(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> Optional[str]:
    return token or request.cookies.get(SESSION_COOKIE)

async def get_session(request: Request, token: Optional[str] = Depends(get_token)):
    session = SessionContext(request.app.state.auth, token)
    await session.open()
    try:
        yield session
    finally:
        session.close()

async def get_current_profile(session: SessionContext = Depends(get_session)) -> Profile:
    if session.identity is None or session.profile is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return session.profile

def require_role(*roles: Role):
    async def role_checker(profile: Profile = Depends(get_current_profile)):
        if profile.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return profile
    return role_checker
