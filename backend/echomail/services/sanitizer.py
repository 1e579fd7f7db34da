"""
HTML sanitization for outbound email and in-app preview.

Pasted and forwarded content is cleaned with independent regex rules rather
than a DOM parse, so malformed fragments degrade instead of failing:

  1. Gmail-forwarded table layouts collapse to ``<div>`` blocks.
  2. Script blocks, ``on*=`` handlers and ``javascript:``/``vbscript:`` URLs
     are removed.
  3. Editor-only class names are removed (the elements stay).
  4. Whitespace is normalized.

A rule that raises is logged and skipped. The rule set is re-run until the
output stops changing, which makes ``sanitize_html`` idempotent even when
removing one construct exposes another.
"""

import logging
import re
from typing import Callable, List

from echomail.models.formatting import ValidationResult

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 100_000
_MAX_PASSES = 10

EDITOR_CLASS_PREFIXES = ("ProseMirror", "editor-")
EDITOR_CLASSES = {"code-block", "blockquote", "hr", "email-table", "selectedCell", "prose", "max-w-none"}

_CLASS_ATTR_RE = re.compile(r"""\s+class\s*=\s*(?:"([^"]*)"|'([^']*)')""", re.IGNORECASE)
_GMAIL_CLASS_TOKEN_RE = re.compile(r"^m_-?\d+")
_TABLE_OPEN_RE = re.compile(r"<table\b[^>]*>", re.IGNORECASE)
_TABLE_PART_OPEN_RE = re.compile(r"<(?:table|thead|tbody|tfoot|tr|td|th)\b[^>]*>", re.IGNORECASE)
_TABLE_PART_CLOSE_RE = re.compile(r"</(?:table|thead|tbody|tfoot|tr|td|th)\s*>", re.IGNORECASE)

_SCRIPT_BLOCK_RE = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
_SCRIPT_TAG_RE = re.compile(r"</?script\b[^>]*>", re.IGNORECASE)
_SCRIPT_FRAGMENT_RE = re.compile(r"<(/?)(script)", re.IGNORECASE)
_TAG_RE = re.compile(r"""<([a-zA-Z][^\s/>"']*(?=[\s/>]))((?:"[^"]*"|'[^']*'|[^'">])*)>""")
_ATTR_RE = re.compile(r"""([\s/]*)([^\s"'>/=]+)(\s*=\s*(?:"[^"]*"|'[^']*'|[^\s"'>]*))?""")
# Any attribute name ending in on<letters>, so prefixed forms like data-onclick go too.
_HANDLER_NAME_RE = re.compile(r"on[a-z]+$", re.IGNORECASE)
# Leftover "onfoo=" in text or attribute values; &#61; renders as "=" but is inert.
_HANDLER_TEXT_RE = re.compile(r"(on[a-z]+\s*)=", re.IGNORECASE)
_SCRIPT_URL_RE = re.compile(r"(?:java|vb)script\s*:", re.IGNORECASE)
_CSS_EXPRESSION_RE = re.compile(r"expression\s*\([^)]*\)", re.IGNORECASE)

_HORIZONTAL_WS_RE = re.compile(r"[ \t]+")
_EXCESS_NEWLINES_RE = re.compile(r"\n\s*\n\s*\n+")


def _is_editor_class(token: str) -> bool:
    return token.startswith(EDITOR_CLASS_PREFIXES) or token in EDITOR_CLASSES


def _filter_class_tokens(html: str, drop: Callable[[str], bool]) -> str:
    """Remove class tokens matching ``drop``; drop the attribute if it empties."""

    def _rewrite(match: re.Match) -> str:
        value = match.group(1) if match.group(1) is not None else match.group(2)
        kept = [token for token in value.split() if not drop(token)]
        if not kept:
            return ""
        return f' class="{" ".join(kept)}"'

    return _CLASS_ATTR_RE.sub(_rewrite, html)


def _class_tokens(tag: str) -> List[str]:
    tokens: List[str] = []
    for dq, sq in re.findall(r"""class\s*=\s*(?:"([^"]*)"|'([^']*)')""", tag, re.IGNORECASE):
        tokens.extend((dq or sq).split())
    return tokens


def has_complex_tables(html: str) -> bool:
    """True for forwarded-mail layout tables: styled ``<table>`` tags or ``m_<digits>`` classes."""
    for tag in _TABLE_OPEN_RE.findall(html):
        if any(not _is_editor_class(token) for token in _class_tokens(tag)):
            return True
    return any(
        _GMAIL_CLASS_TOKEN_RE.match(token)
        for dq, sq in re.findall(r"""class\s*=\s*(?:"([^"]*)"|'([^']*)')""", html, re.IGNORECASE)
        for token in (dq or sq).split()
    )


def simplify_complex_tables(html: str) -> str:
    if not has_complex_tables(html):
        return html
    html = _TABLE_PART_OPEN_RE.sub("<div>", html)
    html = _TABLE_PART_CLOSE_RE.sub("</div>", html)
    return _filter_class_tokens(html, lambda token: bool(_GMAIL_CLASS_TOKEN_RE.match(token)))


def _strip_handler_attributes(match: re.Match) -> str:
    attrs = _ATTR_RE.sub(
        lambda attr: "" if _HANDLER_NAME_RE.search(attr.group(2)) else attr.group(0),
        match.group(2),
    )
    return f"<{match.group(1)}{attrs}>"


def strip_dangerous_content(html: str) -> str:
    """Remove scripts, inline handlers and script URLs until nothing is left to remove."""
    for _ in range(_MAX_PASSES):
        cleaned = _SCRIPT_BLOCK_RE.sub("", html)
        cleaned = _SCRIPT_TAG_RE.sub("", cleaned)
        cleaned = _TAG_RE.sub(_strip_handler_attributes, cleaned)
        cleaned = _HANDLER_TEXT_RE.sub(r"\1&#61;", cleaned)
        cleaned = _SCRIPT_URL_RE.sub("", cleaned)
        cleaned = _CSS_EXPRESSION_RE.sub("", cleaned)
        if cleaned == html:
            break
        html = cleaned
    # Unterminated fragments such as "<script src=x" at the end of input.
    return _SCRIPT_FRAGMENT_RE.sub(r"&lt;\1\2", html)


def strip_editor_classes(html: str) -> str:
    return _filter_class_tokens(html, _is_editor_class)


def normalize_whitespace(html: str) -> str:
    html = _HORIZONTAL_WS_RE.sub(" ", html)
    html = _EXCESS_NEWLINES_RE.sub("\n\n", html)
    return html.strip()


_RULES = (
    simplify_complex_tables,
    strip_dangerous_content,
    strip_editor_classes,
    normalize_whitespace,
)


def _apply_rule(rule: Callable[[str], str], html: str) -> str:
    try:
        return rule(html)
    except Exception as exc:
        logger.warning(f"Sanitizer rule {rule.__name__} failed, skipping: {exc}")
        return html


def sanitize_html(html: str) -> str:
    """
    Make arbitrary HTML safe to embed in an outbound email.

    Never raises. Output never contains ``<script``, inline event handlers
    or ``javascript:`` URLs, and ``sanitize_html(sanitize_html(x)) ==
    sanitize_html(x)``.
    """
    if not html:
        return ""

    result = html
    for _ in range(_MAX_PASSES):
        previous = result
        for rule in _RULES:
            result = _apply_rule(rule, result)
        if result == previous:
            break
    return result


def validate_email_content(html: str) -> ValidationResult:
    """Check compose content for blocking problems (errors) and rendering risks (warnings)."""
    errors: List[str] = []
    warnings: List[str] = []

    if not html or not html.strip():
        return ValidationResult(is_valid=False, errors=["Email content is empty"])

    if re.search(r"<script", html, re.IGNORECASE):
        errors.append("Script tags are not allowed in email content")
    if re.search(r"javascript:", html, re.IGNORECASE):
        errors.append("JavaScript URLs are not allowed in email content")
    if re.search(r"\son\w+\s*=", html, re.IGNORECASE):
        warnings.append("Event handlers will be removed from email content")
    if re.search(r"<iframe", html, re.IGNORECASE):
        warnings.append("Iframes are not supported in most email clients")
    if re.search(r"<form", html, re.IGNORECASE):
        warnings.append("Forms are not supported in most email clients")
    if re.search(r"<video|<audio", html, re.IGNORECASE):
        warnings.append("Video and audio elements are not supported in most email clients")
    if len(html) > MAX_CONTENT_LENGTH:
        warnings.append("Email content is very large and may be truncated by some email clients")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
