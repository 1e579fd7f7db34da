"""
Per-recipient placeholder substitution.

Templates use ``{{field}}`` (spaces inside the braces are tolerated) and,
for drafts written before double braces were introduced, ``{field}``.
Lookups try the key as written and then lowercased, since CSV headers
arrive as ``Email``/``EMAIL``/``email``. Unknown placeholders are left in
place so a typo stays visible instead of silently producing a blank.
"""

import html
import re
from typing import Any, Dict, Mapping, Optional

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([\w.-]+)\s*\}\}|\{([\w.-]+)\}")


def _lookup(data: Mapping[str, Any], key: str) -> Optional[str]:
    for candidate in (key, key.lower()):
        if candidate in data and data[candidate] is not None:
            return str(data[candidate])
    return None


def replace_placeholders(template: str, data: Mapping[str, Any], escape: bool = False) -> str:
    """
    Substitute ``{{key}}`` / ``{key}`` tokens from ``data``.

    Args:
        template: Subject line or body.
        data: Recipient record.
        escape: HTML-escape substituted values (use for HTML bodies).
    """
    if not template:
        return template or ""

    def _substitute(match: re.Match) -> str:
        key = match.group(1) or match.group(2)
        value = _lookup(data, key)
        if value is None:
            return match.group(0)
        return html.escape(value, quote=True) if escape else value

    return _PLACEHOLDER_RE.sub(_substitute, template)


def build_recipient_record(row: Mapping[str, Any], email: Optional[str] = None) -> Dict[str, str]:
    """
    Build the lookup record for one recipient.

    Original keys are kept; a lowercased copy of each key is added unless it
    already exists. ``email`` is always present.
    """
    record: Dict[str, str] = {}
    for key, value in row.items():
        if key is None:
            continue
        record[str(key)] = "" if value is None else str(value).strip()
    for key, value in list(record.items()):
        record.setdefault(key.lower(), value)

    if email:
        record["email"] = email.strip()
    record.setdefault("email", "")
    return record
