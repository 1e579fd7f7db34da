"""
Email body formatting pipeline.

    compose HTML -> emoji images to Unicode -> sanitize -> inline styles -> Gmail wrapper

Formatting must never stop a campaign from going out: any failure falls back
to the original HTML inside the Gmail wrapper.
"""

import logging
import re
from typing import Optional

from echomail.models.formatting import FormatterOptions, FormattingResult
from echomail.services.emoji import convert_emojis_to_unicode
from echomail.services.inline_styles import apply_inline_styles, wrap_for_gmail
from echomail.services.sanitizer import sanitize_html, validate_email_content

logger = logging.getLogger(__name__)

_EMOJI_IMG_RE = re.compile(r"<img[^>]*emoji[^>]*>", re.IGNORECASE)


def _run_pipeline(html: str, opts: FormatterOptions) -> str:
    result = html
    if opts.convert_emojis:
        result = convert_emojis_to_unicode(result)
    if opts.sanitize:
        result = sanitize_html(result)
    if opts.inline_styles:
        result = apply_inline_styles(result)
    if opts.wrap_for_gmail:
        result = wrap_for_gmail(result)
    return result


def format_for_email(html: str, options: Optional[FormatterOptions] = None) -> str:
    """Turn editor HTML into Gmail-style inline-styled HTML."""
    opts = options or FormatterOptions()
    try:
        return _run_pipeline(html or "", opts)
    except Exception as e:
        logger.error(f"Email formatting failed, sending wrapped original: {e}")
        return wrap_for_gmail(html or "")


def format_for_email_with_details(html: str, options: Optional[FormatterOptions] = None) -> FormattingResult:
    """
    Same as ``format_for_email`` but also reports validation warnings and
    a few counters, for the compose preview.
    """
    opts = options or FormatterOptions()
    html = html or ""
    try:
        emojis_converted = len(_EMOJI_IMG_RE.findall(html)) if opts.convert_emojis else 0
        validation = validate_email_content(convert_emojis_to_unicode(html))
        formatted = _run_pipeline(html, opts)
    except Exception as e:
        logger.error(f"Email formatting failed: {e}")
        return FormattingResult(
            html=wrap_for_gmail(html),
            success=False,
            warnings=[f"Formatting failed: {e}"],
        )

    return FormattingResult(
        html=formatted,
        success=True,
        emoji_converted=emojis_converted > 0,
        warnings=validation.errors + validation.warnings,
        debug={
            "original_length": len(html),
            "formatted_length": len(formatted),
            "emojis_converted": emojis_converted,
        },
    )


def format_for_preview(html: str, pre_format: bool = True) -> str:
    """Email body inside a neutral preview card."""
    content = format_for_email(html) if pre_format else html
    return (
        '<div style="max-width:600px;margin:0 auto;font-family:Arial, sans-serif">'
        '<div style="background:#f5f5f5;padding:20px;border-radius:8px;margin:20px 0">'
        '<h3 style="margin:0 0 10px 0;color:#666">Email Preview</h3>'
        '<div style="background:white;padding:20px;border-radius:4px;border:1px solid #ddd">'
        f"{content}"
        "</div></div></div>"
    )
