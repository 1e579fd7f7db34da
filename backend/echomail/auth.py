"""
Request authentication and record ownership checks.

Users sign in with Google on the frontend. API requests carry either:
- the frontend's session JWT (HS256, signed with SESSION_JWT_SECRET) whose
  claims hold the user's ``email`` and Google ``access_token``, or
- a raw Google OAuth access token, which is resolved to an address through
  the Gmail profile endpoint.

The local JWT path needs no network call and is used whenever
SESSION_JWT_SECRET is configured.
"""

import os
from typing import Optional

from fastapi import HTTPException, Header
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel

from echomail.services.gmail import GmailAPIError, GmailClient, GmailTimeoutError
from echomail.services.store import SupabaseStore

SESSION_JWT_SECRET: Optional[str] = os.environ.get("SESSION_JWT_SECRET") or None


class SessionUser(BaseModel):
    email: str
    access_token: Optional[str] = None


async def get_current_user(authorization: Optional[str] = Header(None)) -> SessionUser:
    """
    Extract and verify the bearer credential from the Authorization header.

    Raises:
        HTTPException: 401 if the credential is missing, malformed, invalid or expired
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Not authenticated")

    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    token = parts[1]

    # Session JWTs have three dot-separated segments; Google access tokens do not.
    if SESSION_JWT_SECRET and token.count(".") == 2:
        return _verify_session_locally(token)

    return await _verify_google_token(token)


def _verify_session_locally(token: str) -> SessionUser:
    try:
        payload = jwt.decode(
            token,
            SESSION_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    email: Optional[str] = payload.get("email")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token")

    return SessionUser(email=email.lower(), access_token=payload.get("access_token"))


async def _verify_google_token(token: str) -> SessionUser:
    """Resolve a Google access token to its Gmail address."""
    try:
        async with GmailClient(token) as gmail:
            email = await gmail.get_profile_email()
    except GmailTimeoutError:
        raise HTTPException(status_code=503, detail="Could not reach Google to verify credentials")
    except GmailAPIError:
        raise HTTPException(status_code=401, detail="Invalid token")

    return SessionUser(email=email.lower(), access_token=token)


async def verify_record_ownership(store: SupabaseStore, record_id: str, user_email: str) -> dict:
    """
    Verify that ``user_email`` owns the record and return the row.

    Raises:
        HTTPException: 404 if not found, 403 if owned by someone else, 500 on database error
    """
    try:
        record = store.get(record_id)

        if not record:
            raise HTTPException(status_code=404, detail="Record not found")

        if (record.get(store.owner_field) or "").lower() != user_email.lower():
            raise HTTPException(status_code=403, detail="You are not authorized to access this record")

        return record

    except HTTPException:
        raise
    except Exception:
        raise HTTPException(status_code=500, detail="Failed to verify ownership")
