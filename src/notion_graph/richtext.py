"""Minimal reading of Notion's rich-text property values.

A text property is a list of segments, each ``[text]`` or
``[text, [[attr, ...], ...]]``::

    [["Hello "], ["world", [["b"]]], ["‣", [["p", "<page id>"]]]]

Full span decoding (bold, links, dates, ...) belongs to the renderers. The
download engine only needs the plain text and the ``p`` (page mention)
attributes, which point at other blocks that must be fetched.
"""

import logging
from typing import Any, Iterator

from .ids import normalize_id

logger = logging.getLogger("notion-graph")

ATTR_PAGE = "p"


def _segments(value: Any) -> Iterator[list]:
    if not isinstance(value, list):
        return
    for segment in value:
        if isinstance(segment, list) and segment:
            yield segment


def plain_text(value: Any) -> str:
    """Flatten a rich-text value to its text, ignoring all attributes."""
    return "".join(
        segment[0] for segment in _segments(value) if isinstance(segment[0], str)
    )


def iter_attributes(value: Any) -> Iterator[list]:
    """Yield every attribute list (e.g. ``["a", url]``) of every segment."""
    for segment in _segments(value):
        if len(segment) < 2 or not isinstance(segment[1], list):
            continue
        for attr in segment[1]:
            if isinstance(attr, list) and attr:
                yield attr


def page_references(value: Any) -> list[str]:
    """Return normalized ids of pages mentioned inline, in order of appearance.

    Malformed page ids are logged and dropped.
    """
    refs = []
    for attr in iter_attributes(value):
        if attr[0] != ATTR_PAGE or len(attr) < 2:
            continue
        try:
            refs.append(normalize_id(attr[1]))
        except ValueError:
            logger.debug(f"Ignoring malformed inline page reference: {attr[1]!r}")
    return refs
