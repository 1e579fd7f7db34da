"""
Attachment resolution for outgoing messages.

The compose UI sends attachments either inline (base64 ``data``) or as a
link to a previously uploaded / cloud-hosted file. Gmail only accepts
inline data, so links are downloaded and encoded here, before the MIME
builder runs. Share links from Google Drive, OneDrive and Dropbox are
rewritten to their direct-download form first.

A resolver instance lives for one campaign and caches downloads by URL, so
a file attached to every recipient is fetched once.
"""

import base64
import binascii
import logging
import re
from typing import Dict, Optional
from urllib.parse import unquote, urlparse

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from echomail.models.email import AttachmentData

logger = logging.getLogger(__name__)

ATTACHMENT_TIMEOUT_SECONDS = 30.0
MAX_FETCH_ATTEMPTS = 3
INITIAL_RETRY_DELAY_SECONDS = 1.0
USER_AGENT = "Mozilla/5.0 (compatible; EchoMail/1.0)"


class AttachmentError(Exception):
    """An attachment could not be turned into base64 data."""

    def __init__(self, message: str, source_url: Optional[str] = None):
        super().__init__(message)
        self.source_url = source_url


def _google_download_url(url: str) -> Optional[str]:
    patterns = (
        (r"/file/d/([\w-]+)", "https://drive.google.com/uc?export=download&id={}"),
        (r"[?&]id=([\w-]+)", "https://drive.google.com/uc?export=download&id={}"),
        (r"/document/d/([\w-]+)", "https://docs.google.com/document/d/{}/export?format=pdf"),
        (r"/spreadsheets/d/([\w-]+)", "https://docs.google.com/spreadsheets/d/{}/export?format=pdf"),
        (r"/presentation/d/([\w-]+)", "https://docs.google.com/presentation/d/{}/export/pdf"),
    )
    for pattern, template in patterns:
        match = re.search(pattern, url)
        if match:
            return template.format(match.group(1))
    return None


def _onedrive_download_url(url: str) -> str:
    if "1drv.ms" in url:
        return f"{url}{'&' if '?' in url else '?'}download=1"

    url = url.replace("/embed", "/download")
    url = url.replace("action=view", "action=download").replace("action=embed", "action=download")
    if "download=1" not in url and "action=download" not in url:
        url = f"{url}{'&' if '?' in url else '?'}download=1"
    return url


def get_direct_download_url(url: str) -> str:
    """Rewrite cloud-storage share links to URLs that return the file bytes."""
    url = url.strip()
    host = urlparse(url).netloc.lower()

    if host.endswith(("drive.google.com", "docs.google.com")):
        return _google_download_url(url) or url
    if host.endswith(("1drv.ms", "onedrive.live.com", "sharepoint.com")):
        return _onedrive_download_url(url)
    if host.endswith("dropbox.com"):
        return url.replace("dl=0", "dl=1").replace("www.dropbox.com", "dl.dropboxusercontent.com")
    return url


def filename_from_response(url: str, content_disposition: Optional[str], fallback: str) -> str:
    """Prefer the server's Content-Disposition filename, then the URL path, then ``fallback``."""
    if content_disposition:
        match = re.search(r"""filename\*?=(?:UTF-8'')?["']?([^"';\n]+)["']?""", content_disposition, re.IGNORECASE)
        if match:
            return unquote(match.group(1).strip())

    last_segment = urlparse(url).path.rsplit("/", 1)[-1]
    if "." in last_segment:
        return unquote(last_segment)
    return fallback


def is_remote(data: str) -> bool:
    return data.strip().lower().startswith(("http://", "https://"))


class AttachmentResolver:
    """Turns every attachment into inline base64 data, downloading links once per campaign."""

    def __init__(
        self,
        timeout: float = ATTACHMENT_TIMEOUT_SECONDS,
        max_attempts: int = MAX_FETCH_ATTEMPTS,
        retry_delay: float = INITIAL_RETRY_DELAY_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._transport = transport
        self._cache: Dict[str, AttachmentData] = {}

    async def resolve(self, attachment: AttachmentData) -> AttachmentData:
        """
        Return ``attachment`` with base64 ``data``.

        Raises:
            AttachmentError: invalid inline data, or a link that could not be downloaded
        """
        if not is_remote(attachment.data):
            compact = "".join(attachment.data.split())
            try:
                base64.b64decode(compact, validate=True)
            except (binascii.Error, ValueError):
                raise AttachmentError(f"Attachment {attachment.name!r} does not contain valid base64 data")
            return attachment.model_copy(update={"data": compact})

        url = attachment.data.strip()
        if url not in self._cache:
            self._cache[url] = await self._download(url, attachment)
        return self._cache[url]

    async def _download(self, url: str, attachment: AttachmentData) -> AttachmentData:
        direct_url = get_direct_download_url(url)
        response = await self._fetch_with_retry(direct_url, source_url=url)

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        name = attachment.name or filename_from_response(
            direct_url, response.headers.get("content-disposition"), "attachment"
        )
        mime_type = attachment.mime_type
        if (not mime_type or mime_type == "application/octet-stream") and content_type:
            mime_type = content_type

        logger.info(f"Downloaded attachment {name!r} ({len(response.content)} bytes) from {url}")
        return AttachmentData(
            name=name,
            mime_type=mime_type or "application/octet-stream",
            data=base64.b64encode(response.content).decode("ascii"),
        )

    def _log_retry(self, state: RetryCallState, source_url: str) -> None:
        logger.warning(
            f"Attachment fetch attempt {state.attempt_number}/{self.max_attempts} failed "
            f"for {source_url}: {state.outcome.exception()}; retrying in {state.next_action.sleep:g}s"
        )

    async def _fetch_with_retry(self, url: str, source_url: str) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=self._transport,
        ) as client:
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.max_attempts),
                    wait=wait_exponential(multiplier=self.retry_delay),
                    retry=retry_if_exception_type(httpx.HTTPError),
                    before_sleep=lambda state: self._log_retry(state, source_url),
                    reraise=True,
                ):
                    with attempt:
                        response = await client.get(url)
                        response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"Giving up on attachment {source_url}: {e}")
                raise AttachmentError(
                    f"Failed to download attachment from {source_url}: {e}", source_url=source_url
                ) from e
        return response
