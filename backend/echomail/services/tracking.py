"""
Open/click tracking and unsubscribe links for outgoing messages.

Tracking is injected per recipient after placeholder substitution:
  - a 1x1 pixel pointing at ``/track-open``
  - every http(s) link rewritten through ``/track-click``
  - an unsubscribe footer, unless the message is transactional or already
    carries its own unsubscribe link
"""

import base64
import html
import os
import re
import secrets
import string
import uuid
from dataclasses import dataclass
from urllib.parse import urlencode

# 1x1 transparent GIF
TRACKING_PIXEL = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")

TRACK_OPEN_PATH = "/track-open"
TRACK_CLICK_PATH = "/track-click"
UNSUBSCRIBE_PATH = "/unsubscribe"

_LINK_RE = re.compile(r"""<a\b([^>]*?)\shref\s*=\s*"([^"]*)"([^>]*)>""", re.IGNORECASE)
_LINK_ID_ATTR_RE = re.compile(r'\s*data-link-id\s*=\s*"([^"]*)"', re.IGNORECASE)


def get_base_url() -> str:
    return os.getenv("APP_BASE_URL", "http://localhost:8000").rstrip("/")


def generate_campaign_id() -> str:
    return f"camp_{uuid.uuid4().hex[:20]}"


def generate_recipient_id(email: str) -> str:
    """Short stable id for a recipient: ``r-`` + first 8 hex chars of the address bytes."""
    return "r-" + email.strip().lower().encode("utf-8").hex()[:8]


def generate_link_id() -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "l-" + "".join(secrets.choice(alphabet) for _ in range(5))


@dataclass
class TrackingContext:
    campaign_id: str
    recipient_email: str
    user_email: str
    is_transactional: bool = False
    base_url: str = ""

    def __post_init__(self):
        if not self.base_url:
            self.base_url = get_base_url()

    @property
    def recipient_id(self) -> str:
        return generate_recipient_id(self.recipient_email)


def _url(ctx: TrackingContext, path: str, params: dict) -> str:
    return f"{ctx.base_url}{path}?{urlencode(params)}"


def open_tracking_url(ctx: TrackingContext) -> str:
    return _url(ctx, TRACK_OPEN_PATH, {
        "c": ctx.campaign_id, "e": ctx.recipient_email, "u": ctx.user_email, "r": ctx.recipient_id,
    })


def click_tracking_url(ctx: TrackingContext, target_url: str, link_id: str) -> str:
    return _url(ctx, TRACK_CLICK_PATH, {
        "url": target_url,
        "c": ctx.campaign_id,
        "e": ctx.recipient_email,
        "u": ctx.user_email,
        "r": ctx.recipient_id,
        "l": link_id,
    })


def unsubscribe_url(ctx: TrackingContext) -> str:
    return _url(ctx, UNSUBSCRIBE_PATH, {"e": ctx.recipient_email, "u": ctx.user_email})


def _append(body: str, fragment: str) -> str:
    if "</body>" in body:
        return body.replace("</body>", f"{fragment}</body>", 1)
    return f"{body}{fragment}"


def _wrap_links(body: str, ctx: TrackingContext) -> str:
    def _rewrite(match: re.Match) -> str:
        before, href, after = match.groups()
        target = html.unescape(href)
        if not target.lower().startswith(("http://", "https://")):
            return match.group(0)
        if TRACK_CLICK_PATH in target or UNSUBSCRIBE_PATH in target:
            return match.group(0)

        link_id_match = _LINK_ID_ATTR_RE.search(before + after)
        link_id = link_id_match.group(1) if link_id_match else generate_link_id()
        before = _LINK_ID_ATTR_RE.sub("", before)
        after = _LINK_ID_ATTR_RE.sub("", after)

        tracked = html.escape(click_tracking_url(ctx, target, link_id), quote=True)
        return f'<a{before} href="{tracked}"{after}>'

    return _LINK_RE.sub(_rewrite, body)


def inject_tracking(body: str, ctx: TrackingContext) -> str:
    """Add the open pixel, tracked links and (for marketing mail) an unsubscribe footer."""
    if not body:
        return ""

    result = _wrap_links(body, ctx)

    pixel = (
        f'<img src="{html.escape(open_tracking_url(ctx), quote=True)}" width="1" height="1" alt="" '
        'style="display:none !important;visibility:hidden !important;opacity:0 !important">'
    )
    result = _append(result, pixel)

    if not ctx.is_transactional and "unsubscribe" not in result.lower():
        footer = (
            '<div style="margin-top:40px;padding-top:20px;border-top:1px solid #eeeeee;'
            'text-align:center;font-size:12px;color:#999999">'
            "<div>You are receiving this email because you are on our mailing list.</div>"
            f'<div><a href="{html.escape(unsubscribe_url(ctx), quote=True)}" '
            'style="color:#999999;text-decoration:underline">Unsubscribe</a> from this list.</div>'
            "</div>"
        )
        result = _append(result, footer)

    return result
