from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt, JWTError
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import SECRET_KEY, ALGORITHM, TOKEN_EXPIRE_DAYS
from db import get_db
from errors import Forbidden, Unauthenticated
from models import Role
from users import get_user, public_user

# Missing credentials are reported by the verifier, not by the scheme
bearer_scheme = HTTPBearer(auto_error=False)


# Create JWT. Only the subject is encoded; role is looked up on every request.
def create_access_token(user_id: str, now: Optional[datetime] = None):
    issued_at = now or datetime.now(timezone.utc)
    to_encode = {
        "user_id": user_id,
        "iat": issued_at,
        "exp": issued_at + timedelta(days=TOKEN_EXPIRE_DAYS),
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


class TokenVerifier:
    """Verify a bearer token and resolve it to a live principal.

    ``lookup`` is an async callable mapping a user id to a user document (or
    ``None``). There is no revocation list, so a token is only as good as its
    subject: a deleted user, or one whose role changed, is seen on the very
    next request.
    """

    def __init__(self, lookup):
        self.lookup = lookup

    async def verify(self, token) -> dict:
        if not token:
            raise Unauthenticated("Authentication required")

        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except JWTError:
            raise Unauthenticated("Invalid or expired token")

        user_id = payload.get("user_id")
        if not user_id:
            raise Unauthenticated("Invalid or expired token")

        user = await self.lookup(user_id)
        if not user:
            raise Unauthenticated("User not found")

        return public_user(user)


def bearer_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)):
    return credentials.credentials if credentials else None


def get_verifier(db=Depends(get_db)):
    async def lookup(user_id):
        return await get_user(db, user_id)

    return TokenVerifier(lookup)


# Verify token & get the current principal
async def get_current_user(
    token=Depends(bearer_token), verifier: TokenVerifier = Depends(get_verifier)
):
    return await verifier.verify(token)


def is_admin(user: dict) -> bool:
    return user.get("role") == Role.ADMIN.value


def require_admin(user: dict = Depends(get_current_user)):
    if not is_admin(user):
        raise Forbidden("Admin access required")
    return user


def ensure_owner(user: dict, owner_id: str):
    if not is_admin(user) and user["id"] != owner_id:
        raise Forbidden("Not authorized")
