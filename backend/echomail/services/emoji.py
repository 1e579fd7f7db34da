"""
Emoji image normalization.

Rich-text editors insert emoji as ``<img>`` tags (twemoji CDN images,
``data-emoji`` spans, named sprite files). Mail clients render those as
broken images or attachments, so every emoji image is turned back into the
Unicode character before the HTML leaves the server.

Detection, per ``<img>`` tag:
  - a ``data-emoji`` attribute
  - ``emoji`` anywhere in the ``class`` attribute
  - ``emoji`` anywhere in the ``src`` URL
  - a filename that encodes code points (``1f600.png``, ``u1f600.svg``,
    ``1f1fa-1f1f8.svg``)

Resolution order: ``alt`` text, ``data-emoji`` value, code points in the
filename, then the named-emoji table. Emoji images that resolve to nothing
are dropped rather than left as broken references.
"""

import re
from typing import Dict, Optional

EMOJI_NAME_MAP: Dict[str, str] = {
    # Faces
    "smile": "😊",
    "grin": "😀",
    "laugh": "😂",
    "joy": "😂",
    "wink": "😉",
    "blush": "😊",
    "heart_eyes": "😍",
    "love": "😍",
    "cool": "😎",
    "sunglasses": "😎",
    "thinking": "🤔",
    "neutral": "😐",
    "unamused": "😒",
    "sweat": "😅",
    "worried": "😟",
    "cry": "😢",
    "sob": "😭",
    "angry": "😠",
    "rage": "😡",
    "scream": "😱",
    "flushed": "😳",
    "mask": "😷",
    "ghost": "👻",
    "robot": "🤖",
    # Gestures
    "thumbs_up": "👍",
    "thumbsup": "👍",
    "+1": "👍",
    "thumbs_down": "👎",
    "thumbsdown": "👎",
    "-1": "👎",
    "clap": "👏",
    "wave": "👋",
    "ok_hand": "👌",
    "raised_hands": "🙌",
    "pray": "🙏",
    "handshake": "🤝",
    "muscle": "💪",
    "point_right": "👉",
    "point_left": "👈",
    # Hearts and symbols
    "heart": "❤️",
    "red_heart": "❤️",
    "blue_heart": "💙",
    "green_heart": "💚",
    "purple_heart": "💜",
    "broken_heart": "💔",
    "sparkling_heart": "💖",
    "two_hearts": "💕",
    "star": "⭐",
    "stars": "🌟",
    "sparkles": "✨",
    # Objects
    "fire": "🔥",
    "check": "✅",
    "white_check_mark": "✅",
    "x": "❌",
    "warning": "⚠️",
    "question": "❓",
    "exclamation": "❗",
    "rocket": "🚀",
    "email": "📧",
    "envelope": "✉️",
    "tada": "🎉",
    "party": "🎉",
    "confetti": "🎊",
    "gift": "🎁",
    "trophy": "🏆",
    "gem": "💎",
    "moneybag": "💰",
    "bulb": "💡",
    "memo": "📝",
    "calendar": "📅",
    "hourglass": "⏳",
    "phone": "📱",
    "computer": "💻",
    # Nature and food
    "sunny": "☀️",
    "sun": "☀️",
    "moon": "🌙",
    "rainbow": "🌈",
    "zap": "⚡",
    "earth": "🌍",
    "flower": "🌸",
    "rose": "🌹",
    "coffee": "☕",
    "beer": "🍺",
    "pizza": "🍕",
    "cake": "🎂",
}

_IMG_TAG_RE = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_ATTR_RE = re.compile(r"""([\w:-]+)\s*=\s*(?:"([^"]*)"|'([^']*)')""")

# At least one digit so words like "face.png" or "cafe.svg" are not code points.
_CODEPOINT_FILE_RE = re.compile(
    r"[/\\]u?((?=[0-9a-f-]*\d)[0-9a-f]{4,6}(?:-[0-9a-f]{4,6})*)\.(?:png|svg|gif)(?:[?#]|$)",
    re.IGNORECASE,
)
_NAMED_FILE_RE = re.compile(r"[/\\]([^/\\?#]+)\.(?:png|svg|gif)(?:[?#]|$)", re.IGNORECASE)


def _parse_attrs(tag: str) -> Dict[str, str]:
    attrs: Dict[str, str] = {}
    for name, dq, sq in _ATTR_RE.findall(tag):
        attrs.setdefault(name.lower(), dq if dq or not sq else sq)
    return attrs


def _codepoints_to_text(sequence: str) -> str:
    """Turn ``1f1fa-1f1f8`` into the characters; invalid code points give ``""``."""
    chars = []
    for part in sequence.split("-"):
        value = int(part, 16)
        if value > 0x10FFFF or 0xD800 <= value <= 0xDFFF:
            return ""
        chars.append(chr(value))
    return "".join(chars)


def _lookup_name(stem: str) -> Optional[str]:
    name = stem.lower()
    return EMOJI_NAME_MAP.get(name.replace("-", "_")) or EMOJI_NAME_MAP.get(name)


def _replace_emoji_img(match: re.Match) -> str:
    tag = match.group(0)
    attrs = _parse_attrs(tag)
    src = attrs.get("src", "")
    codepoints = _CODEPOINT_FILE_RE.search(src)

    is_emoji = (
        "data-emoji" in attrs
        or "emoji" in attrs.get("class", "").lower()
        or "emoji" in src.lower()
        or codepoints is not None
    )
    if not is_emoji:
        return tag

    if attrs.get("alt", "").strip():
        return attrs["alt"]
    if attrs.get("data-emoji", "").strip():
        return attrs["data-emoji"]
    if codepoints:
        return _codepoints_to_text(codepoints.group(1))

    named = _NAMED_FILE_RE.search(src)
    if named:
        return _lookup_name(named.group(1)) or ""
    return ""


def convert_emojis_to_unicode(html: str) -> str:
    """Replace emoji ``<img>`` tags with their Unicode characters."""
    if not html:
        return html or ""
    return _IMG_TAG_RE.sub(_replace_emoji_img, html)
