"""
RFC 2822 message assembly for the Gmail ``messages.send`` API.

Messages are always ``multipart/mixed`` with one ``text/html`` part followed
by zero or more base64 attachment parts. Subjects and attachment filenames
are always sent as UTF-8 encoded-words, ASCII included, so every client
decodes them the same way.
"""

import base64
import binascii
import secrets
import string
from dataclasses import dataclass, field
from typing import List

from echomail.models.email import AttachmentData

CRLF = "\r\n"
BASE64_LINE_LENGTH = 76
BOUNDARY_PREFIX = "boundary_"
BOUNDARY_TOKEN_LENGTH = 24
_BOUNDARY_ALPHABET = string.ascii_letters + string.digits


class MimeError(ValueError):
    """Raised when message parts cannot be assembled into a valid message."""


@dataclass
class MimeParts:
    sender: str
    to: str
    subject: str
    html_body: str
    attachments: List[AttachmentData] = field(default_factory=list)


def encode_header_value(value: str) -> str:
    """``Café`` -> ``=?UTF-8?B?Q2Fmw6k=?=``."""
    encoded = base64.b64encode(value.encode("utf-8")).decode("ascii")
    return f"=?UTF-8?B?{encoded}?="


def generate_boundary(*contents: str) -> str:
    """Random multipart boundary guaranteed not to occur in any of ``contents``."""
    while True:
        token = "".join(secrets.choice(_BOUNDARY_ALPHABET) for _ in range(BOUNDARY_TOKEN_LENGTH))
        boundary = f"{BOUNDARY_PREFIX}{token}"
        if not any(boundary in content for content in contents):
            return boundary


def _check_header(name: str, value: str) -> str:
    if "\r" in value or "\n" in value:
        raise MimeError(f"{name} header must not contain line breaks")
    return value


def _wrap_base64(data: str) -> List[str]:
    """Validate base64 attachment data and re-wrap it at 76 columns."""
    compact = "".join(data.split())
    try:
        base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError):
        raise MimeError("Attachment data is not valid base64")
    return [compact[i:i + BASE64_LINE_LENGTH] for i in range(0, len(compact), BASE64_LINE_LENGTH)]


def build_mime_message(parts: MimeParts) -> str:
    """
    Assemble the full message text.

    Attachment data must already be base64; remote attachments are resolved
    by the caller before this runs.

    Raises:
        MimeError: header injection attempt or invalid attachment data
    """
    sender = _check_header("From", parts.sender)
    to = _check_header("To", parts.to)

    attachment_lines = []
    for attachment in parts.attachments:
        mime_type = _check_header("Content-Type", attachment.mime_type or "application/octet-stream")
        filename = encode_header_value(attachment.name or "attachment")
        attachment_lines.append(
            (
                [
                    f'Content-Type: {mime_type}; name="{filename}"',
                    f'Content-Disposition: attachment; filename="{filename}"',
                    "Content-Transfer-Encoding: base64",
                    "",
                ],
                _wrap_base64(attachment.data),
            )
        )

    boundary = generate_boundary(
        parts.html_body,
        *("".join(body) for _, body in attachment_lines),
    )

    lines = [
        f"From: {sender}",
        f"To: {to}",
        f"Subject: {encode_header_value(parts.subject)}",
        "MIME-Version: 1.0",
        f'Content-Type: multipart/mixed; boundary="{boundary}"',
        "",
        f"--{boundary}",
        "Content-Type: text/html; charset=utf-8",
        "Content-Transfer-Encoding: 8bit",
        "",
        parts.html_body,
    ]
    for headers, body in attachment_lines:
        lines.append(f"--{boundary}")
        lines.extend(headers)
        lines.extend(body)
    lines.append(f"--{boundary}--")

    return CRLF.join(lines)


def encode_for_transport(message: str) -> str:
    """base64url without padding, as the Gmail API expects in the ``raw`` field."""
    return base64.urlsafe_b64encode(message.encode("utf-8")).decode("ascii").rstrip("=")
