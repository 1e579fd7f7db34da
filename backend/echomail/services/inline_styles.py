"""
Inline CSS for email clients.

Mail clients drop ``<style>`` blocks and linked stylesheets, so each
structural tag gets its look as an inline ``style`` attribute. The values
mirror Gmail's own compose output, which keeps campaigns visually identical
to a hand-written Gmail message.
"""

import re
from typing import List, Optional, Tuple

Style = List[Tuple[str, str]]

COLORS = {
    "text": "#222222",
    "text_secondary": "#666666",
    "bg_code": "#f5f5f5",
    "bg_code_inline": "#f1f5f9",
    "bg_highlight": "#fef08a",
    "bg_table_header": "#f3f4f6",
    "border_light": "#e5e7eb",
    "border_medium": "#d1d5db",
    "border_blockquote": "#cccccc",
    "link": "#2563eb",
    "code_text": "#e11d48",
}

GMAIL_WRAPPER_STYLE: Style = [
    ("font-family", "Arial, sans-serif"),
    ("font-size", "14px"),
    ("line-height", "1.5"),
    ("color", COLORS["text"]),
]

ELEMENT_STYLES = {
    "p": [("margin", "0"), ("padding", "0 0 0.5em 0"), ("line-height", "1.5")],
    "spacer": [("margin", "0"), ("padding", "0"), ("min-height", "1.5em"), ("line-height", "1.5")],
    "h1": [("font-size", "2em"), ("font-weight", "bold"), ("margin", "0.67em 0")],
    "h2": [("font-size", "1.5em"), ("font-weight", "bold"), ("margin", "0.75em 0")],
    "h3": [("font-size", "1.17em"), ("font-weight", "bold"), ("margin", "0.83em 0")],
    "h4": [("font-size", "1em"), ("font-weight", "bold"), ("margin", "1em 0")],
    "blockquote": [
        ("border-left", f"3px solid {COLORS['border_blockquote']}"),
        ("margin", "1em 0"),
        ("padding-left", "1em"),
        ("color", COLORS["text_secondary"]),
        ("font-style", "italic"),
    ],
    "pre": [
        ("background", COLORS["bg_code"]),
        ("color", "#333"),
        ("font-family", "monospace"),
        ("padding", "12px 16px"),
        ("border-radius", "8px"),
        ("overflow-x", "auto"),
        ("margin", "1em 0"),
        ("white-space", "pre-wrap"),
        ("word-wrap", "break-word"),
    ],
    "code": [
        ("background", COLORS["bg_code_inline"]),
        ("color", COLORS["code_text"]),
        ("padding", "0.2em 0.4em"),
        ("border-radius", "0.25em"),
        ("font-family", "monospace"),
        ("font-size", "0.9em"),
    ],
    "hr": [("border", "none"), ("border-top", f"2px solid {COLORS['border_light']}"), ("margin", "1.5em 0")],
    "ul": [("padding-left", "1.5em"), ("margin", "0.5em 0"), ("list-style-type", "disc")],
    "ol": [("padding-left", "1.5em"), ("margin", "0.5em 0"), ("list-style-type", "decimal")],
    "li": [("margin", "0.25em 0")],
    "table": [("border-collapse", "collapse"), ("margin", "1em 0"), ("width", "100%")],
    "th": [
        ("border", f"1px solid {COLORS['border_medium']}"),
        ("padding", "8px"),
        ("background", COLORS["bg_table_header"]),
        ("font-weight", "bold"),
        ("text-align", "left"),
    ],
    "td": [("border", f"1px solid {COLORS['border_medium']}"), ("padding", "8px"), ("vertical-align", "top")],
    "a": [("color", COLORS["link"]), ("text-decoration", "underline")],
    "img": [("max-width", "100%"), ("height", "auto")],
    "mark": [("border-radius", "0.25em"), ("padding", "0.1em 0.2em")],
}

# Block tags whose existing inline style is kept after the defaults.
_MERGE_TAGS = ("h1", "h2", "h3", "h4", "blockquote", "hr", "ul", "ol", "li", "table", "th", "td")
# Tags left alone when the author already styled them.
_SKIP_IF_STYLED_TAGS = ("a", "img", "code")

_STYLE_ATTR_RE = re.compile(r"""\s+style\s*=\s*(?:"([^"]*)"|'([^']*)')""", re.IGNORECASE)
_EMPTY_PARAGRAPH_RE = re.compile(
    r"<p(?:\s[^>]*)?>\s*(?:<br\s*/?>\s*)?</p\s*>|<div>\s*(?:<br\s*/?>\s*)?</div>", re.IGNORECASE
)
_P_CLOSE_RE = re.compile(r"</p\s*>", re.IGNORECASE)
_PRE_BLOCK_RE = re.compile(r"(<pre\b.*?</pre\s*>)", re.IGNORECASE | re.DOTALL)
_DATA_COLOR_RE = re.compile(r"""data-color\s*=\s*["']([#\w(),.%\s-]+)["']""", re.IGNORECASE)


def css(style: Style) -> str:
    """Render ``[("margin", "0"), ...]`` as compact inline CSS: ``margin:0;...``."""
    return ";".join(f"{prop}:{value}" for prop, value in style)


def _tag_re(tag: str) -> re.Pattern:
    # Lookahead keeps <th> from matching <thead> and <p> from matching <pre>.
    return re.compile(rf"<{tag}(?=[\s>/])([^>]*?)(\s*/)?>", re.IGNORECASE)


def _split_style(attrs: str) -> Tuple[str, Optional[str]]:
    match = _STYLE_ATTR_RE.search(attrs)
    if not match:
        return attrs, None
    existing = match.group(1) if match.group(1) is not None else match.group(2)
    return attrs[: match.start()] + attrs[match.end():], existing


def _style_tag(
    html: str,
    tag: str,
    style: Style,
    rename: Optional[str] = None,
    skip_if_styled: bool = False,
) -> str:
    out_tag = rename or tag

    def _rewrite(match: re.Match) -> str:
        attrs, existing = _split_style(match.group(1) or "")
        if existing is not None and skip_if_styled:
            return match.group(0)
        rendered = css(style)
        if existing and existing.strip(" ;"):
            rendered = f"{rendered};{existing.strip(' ;')}"
        closing = " /" if match.group(2) else ""
        return f'<{out_tag}{attrs} style="{rendered}"{closing}>'

    return _tag_re(tag).sub(_rewrite, html)


def _style_links(html: str) -> str:
    def _rewrite(match: re.Match) -> str:
        attrs = match.group(1) or ""
        if not re.search(r"\shref\s*=", attrs, re.IGNORECASE) or _STYLE_ATTR_RE.search(attrs):
            return match.group(0)
        if not re.search(r"\starget\s*=", attrs, re.IGNORECASE):
            attrs += ' target="_blank"'
        return f'<a{attrs} style="{css(ELEMENT_STYLES["a"])}">'

    return _tag_re("a").sub(_rewrite, html)


def _style_marks(html: str) -> str:
    def _rewrite(match: re.Match) -> str:
        attrs, existing = _split_style(match.group(1) or "")
        color = _DATA_COLOR_RE.search(attrs)
        style = [("background-color", color.group(1).strip() if color else COLORS["bg_highlight"])]
        rendered = css(style + ELEMENT_STYLES["mark"])
        if existing and existing.strip(" ;"):
            rendered = f"{rendered};{existing.strip(' ;')}"
        return f'<mark{attrs} style="{rendered}">'

    return _tag_re("mark").sub(_rewrite, html)


def _style_outside_pre(segment: str) -> str:
    segment = _EMPTY_PARAGRAPH_RE.sub(f'<div style="{css(ELEMENT_STYLES["spacer"])}">&nbsp;</div>', segment)
    segment = _style_tag(segment, "p", ELEMENT_STYLES["p"], rename="div")
    segment = _P_CLOSE_RE.sub("</div>", segment)
    segment = _style_tag(segment, "code", ELEMENT_STYLES["code"], skip_if_styled=True)
    return segment


def apply_inline_styles(html: str) -> str:
    """
    Give every structural tag an explicit inline style.

    ``<p>`` becomes a styled ``<div>``. Empty paragraphs become ``&nbsp;``
    spacers so clients do not collapse blank lines. ``<code>`` inside
    ``<pre>`` is left alone since the block already carries the monospace
    styling.
    """
    if not html:
        return ""

    parts = _PRE_BLOCK_RE.split(html)
    result = "".join(
        part if index % 2 else _style_outside_pre(part)
        for index, part in enumerate(parts)
    )

    result = _style_tag(result, "pre", ELEMENT_STYLES["pre"])
    for tag in _MERGE_TAGS:
        result = _style_tag(result, tag, ELEMENT_STYLES[tag])
    result = _style_links(result)
    result = _style_tag(result, "img", ELEMENT_STYLES["img"], skip_if_styled=True)
    result = _style_marks(result)
    return result.strip()


_WRAPPER_OPEN = f'<div dir="ltr" style="{css(GMAIL_WRAPPER_STYLE)}">'


def wrap_for_gmail(html: str) -> str:
    """Wrap content in Gmail's ``<div dir="ltr">`` container. Already-wrapped content is returned as is."""
    if html.startswith(_WRAPPER_OPEN):
        return html
    return f"{_WRAPPER_OPEN}{html}</div>"
