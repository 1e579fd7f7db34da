"""
Gmail REST API client.

Only the two calls the send pipeline needs: read the authenticated user's
address (it becomes the ``From`` header) and submit a raw message. Every
request is bounded by a fixed timeout; a timeout is reported like any other
API failure so the caller can record it against the one recipient.
"""

import logging
import os
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

GMAIL_API_BASE = os.getenv("GMAIL_API_BASE", "https://gmail.googleapis.com")
GMAIL_TIMEOUT_SECONDS = 30.0


class GmailAPIError(Exception):
    """Non-success response (or no response) from the Gmail API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GmailAuthError(GmailAPIError):
    """The access token was rejected."""


class GmailTimeoutError(GmailAPIError):
    """No response within the timeout."""


class GmailClient:
    """
    Thin async wrapper over the Gmail API.

    Use as an async context manager so the connection pool is shared by all
    sends of one campaign::

        async with GmailClient(access_token) as gmail:
            sender = await gmail.get_profile_email()
            await gmail.send_raw(raw)
    """

    def __init__(
        self,
        access_token: str,
        timeout: float = GMAIL_TIMEOUT_SECONDS,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=base_url or GMAIL_API_BASE,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "GmailClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException:
            raise GmailTimeoutError(f"Request timeout after {self.timeout:g}s")
        except httpx.HTTPError as e:
            raise GmailAPIError(f"Gmail API request failed: {e}")

        if response.status_code == 401:
            raise GmailAuthError(f"Gmail API error (401): {response.text}", status_code=401)
        if response.is_error:
            raise GmailAPIError(
                f"Gmail API error ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        return response

    async def get_profile_email(self) -> str:
        """Address of the account the access token belongs to."""
        response = await self._request("GET", "/gmail/v1/users/me/profile")
        email = response.json().get("emailAddress")
        if not email:
            raise GmailAPIError("Gmail profile did not include an email address")
        return email

    async def send_raw(self, raw: str) -> dict:
        """Submit a base64url-encoded message. Returns Gmail's message resource."""
        response = await self._request("POST", "/gmail/v1/users/me/messages/send", json={"raw": raw})
        data = response.json()
        logger.info(f"Gmail accepted message id={data.get('id')}")
        return data
