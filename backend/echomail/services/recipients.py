"""
Recipient list parsing.

Recipients come from an uploaded CSV, manual entry, or saved contacts. All
three end up as the same record shape used for placeholder substitution:
the original columns, lowercased copies of their names, and ``email``.
"""

import csv
import io
import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from echomail.services.placeholders import build_recipient_record

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
EMAIL_COLUMN_NAMES = ("email", "e-mail", "email address", "email_address", "mail")


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value.strip()))


def detect_email_column(headers: List[str]) -> Optional[str]:
    """Pick the email column: an exact well-known name first, then any header containing 'email'."""
    normalized = {h.strip().lower(): h for h in headers if h}
    for name in EMAIL_COLUMN_NAMES:
        if name in normalized:
            return normalized[name]
    for lowered, original in normalized.items():
        if "email" in lowered:
            return original
    return None


def parse_recipients_csv(content: bytes) -> List[Dict[str, str]]:
    """
    Parse an uploaded CSV into recipient records.

    Rows without a valid address in the email column are skipped.

    Raises:
        ValueError: the file is not UTF-8, is empty, or has no email column
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValueError("CSV file must be UTF-8 encoded")

    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ValueError("CSV file is empty")

    email_column = detect_email_column(list(reader.fieldnames))
    if not email_column:
        raise ValueError("CSV file has no email column")

    records: List[Dict[str, str]] = []
    skipped = 0
    for row in reader:
        address = (row.get(email_column) or "").strip()
        if not is_valid_email(address):
            skipped += 1
            continue
        records.append(build_recipient_record(row, email=address))

    if skipped:
        logger.info(f"Skipped {skipped} CSV row(s) without a valid email address")
    return records


def recipient_from_contact(contact: Mapping[str, Any]) -> Dict[str, str]:
    """Saved contact -> recipient record (tags and bookkeeping columns are dropped)."""
    row = {
        key: contact.get(key)
        for key in ("email", "name", "company", "phone")
        if contact.get(key) is not None
    }
    return build_recipient_record(row, email=contact.get("email"))


def find_row_for_email(rows: List[Mapping[str, Any]], email: str) -> Optional[Mapping[str, Any]]:
    """The row whose email column matches ``email``, ignoring case and surrounding spaces."""
    target = email.strip().lower()
    for row in rows:
        column = detect_email_column([str(key) for key in row.keys()])
        if column and str(row.get(column) or "").strip().lower() == target:
            return row
    return None
