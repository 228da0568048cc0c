"""Notion identifier handling.

Notion ids are 128-bit values written either as 32 hex characters
(``c969c9455d7c4dd79c7f860f3ace6429``) or hyphenated 8-4-4-4-12
(``c969c945-5d7c-4dd7-9c7f-860f3ace6429``). Every id that enters the engine is
normalized to the lowercase hyphenated form, which is also what the API expects.
"""

import re
from typing import Optional

HEX_DIGITS = frozenset('0123456789abcdef')

DASH_ID_LEN = len("2131b10c-ebf6-4938-a127-7089ff02dbe4")
NO_DASH_ID_LEN = len("2131b10cebf64938a1277089ff02dbe4")

NOTION_URL_PATTERN = re.compile(
    r'https?://(?:www\.)?notion\.(?:so|site)/(?:[^/]+/)?([^?#]+)',
    re.IGNORECASE
)
NOTION_HOST_URL = "https://www.notion.so"


def normalize_id(id_str: str) -> str:
    """Normalize a Notion id to the hyphenated lowercase form.

    Args:
        id_str: Id with or without dashes, any case.

    Returns:
        Id in format xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx

    Raises:
        ValueError: If input is not a valid id (wrong length or invalid chars).
    """
    if not isinstance(id_str, str):
        raise ValueError(f"Invalid id type: {type(id_str).__name__}")
    # Remove any existing dashes and lowercase
    clean = id_str.strip().replace('-', '').lower()
    if len(clean) != NO_DASH_ID_LEN:
        raise ValueError(f"Invalid id length: {id_str}")
    if not all(c in HEX_DIGITS for c in clean):
        raise ValueError(f"Invalid id characters: {id_str}")
    # Insert dashes at standard positions
    return f"{clean[:8]}-{clean[8:12]}-{clean[12:16]}-{clean[16:20]}-{clean[20:]}"


def is_valid_dash_id(id_str: str) -> bool:
    """Return True if id_str is a hyphenated id (dashes in the right places)."""
    if not isinstance(id_str, str) or len(id_str) != DASH_ID_LEN:
        return False
    if any(id_str[i] != '-' for i in (8, 13, 18, 23)):
        return False
    return all(c in HEX_DIGITS for c in id_str.replace('-', '').lower())


def is_valid_no_dash_id(id_str: str) -> bool:
    """Return True if id_str is 32 hex characters."""
    if not isinstance(id_str, str) or len(id_str) != NO_DASH_ID_LEN:
        return False
    return all(c in HEX_DIGITS for c in id_str.lower())


def is_valid_id(id_str: str) -> bool:
    """Return True if id_str is an id in either accepted form."""
    return is_valid_dash_id(id_str) or is_valid_no_dash_id(id_str)


def to_no_dash_id(id_str: str) -> str:
    """Convert an id to the 32-char form, or return "" if it isn't an id."""
    try:
        return normalize_id(id_str).replace('-', '')
    except ValueError:
        return ""


def extract_id_from_url(url: str) -> Optional[str]:
    """Extract a Notion id from a URL or a bare id.

    Handles formats like:
    - https://www.notion.so/Advanced-web-spidering-ea07db1b9bff415ab180b0525f3898f6
    - https://notion.so/workspace/Page-Title-abc123def456...
    - https://notion.so/abc123def456...#block-anchor
    - c969c945-5d7c-4dd7-9c7f-860f3ace6429

    Returns:
        Normalized id or None if not found.
    """
    url = url.strip()
    if is_valid_id(url):
        return normalize_id(url)

    match = NOTION_URL_PATTERN.match(url)
    if not match:
        return None

    # Only the last path segment can carry the id
    last_segment = match.group(1).rstrip('/').split('/')[-1]
    # Hyphenated ids are tried first since the title part also uses dashes
    uuid_match = re.search(r'([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})$',
                           last_segment, re.IGNORECASE)
    if uuid_match:
        return normalize_id(uuid_match.group(1))
    candidate = last_segment.split('-')[-1]
    if is_valid_no_dash_id(candidate):
        return normalize_id(candidate)
    return None


def notion_url(id_str: str) -> str:
    """Return the notion.so URL of the page with the given id."""
    return f"{NOTION_HOST_URL}/{to_no_dash_id(id_str)}"
