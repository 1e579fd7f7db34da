"""
Supabase Storage service for campaign attachments.
Handles upload and public URL generation.
"""

import os
import re
from uuid import uuid4
from urllib.parse import urlparse, urlunparse

from echomail.db import supabase_admin

ATTACHMENTS_BUCKET = os.getenv("ATTACHMENTS_BUCKET", "attachments")


def sanitize_filename(filename: str) -> str:
    return re.sub(r'[^\w\-.]', '_', filename) or "attachment"


def _rewrite_public_url_host(url: str) -> str:
    """
    Swap the host of a storage URL for ``SUPABASE_PUBLIC_URL`` when set.

    Inside Docker the backend reaches Supabase via an internal hostname that
    Gmail (and the browser) cannot resolve; attachment links must point at
    the public origin.
    """
    public_url = os.getenv("SUPABASE_PUBLIC_URL", "").strip()
    if not public_url:
        return url

    parsed = urlparse(url)
    public = urlparse(public_url)
    return urlunparse((public.scheme, public.netloc, parsed.path, parsed.params, parsed.query, parsed.fragment))


def upload_attachment(
    file_content: bytes,
    user_email: str,
    filename: str,
    content_type: str | None = None,
) -> dict:
    """
    Upload one attachment to Supabase Storage.

    Storage path: attachments/{user_email}/{uuid}_{sanitized_filename}.
    The UUID prefix keeps two uploads with the same name apart.

    Returns:
        {"url", "public_id", "fileName", "fileSize"}

    Raises:
        Exception: If upload fails
    """
    if not supabase_admin:
        raise ValueError("SUPABASE_SERVICE_KEY is required for storage operations")

    owner = sanitize_filename(user_email)
    storage_path = f"attachments/{owner}/{uuid4().hex}_{sanitize_filename(filename)}"

    try:
        bucket = supabase_admin.storage.from_(ATTACHMENTS_BUCKET)
        bucket.upload(
            storage_path,
            file_content,
            {"content-type": content_type or "application/octet-stream"},
        )
        url = bucket.get_public_url(storage_path)
    except Exception as e:
        raise Exception(f"Failed to upload attachment to storage: {str(e)}")

    return {
        "url": _rewrite_public_url_host(url.rstrip("?")),
        "public_id": storage_path,
        "fileName": filename,
        "fileSize": len(file_content),
    }
