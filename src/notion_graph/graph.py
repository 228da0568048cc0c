"""Graph resolution: derived display fields, child links and parent links."""

import logging
from urllib.parse import quote

from .entities import EntitySet
from .errors import MissingEntityError
from .records import (
    BLOCK_AUDIO,
    BLOCK_BOOKMARK,
    BLOCK_BULLETED_LIST,
    BLOCK_CALLOUT,
    BLOCK_CODE,
    BLOCK_CODEPEN,
    BLOCK_COLLECTION_VIEW_PAGE,
    BLOCK_DRIVE,
    BLOCK_EMBED,
    BLOCK_EQUATION,
    BLOCK_FACTORY,
    BLOCK_FIGMA,
    BLOCK_FILE,
    BLOCK_GIST,
    BLOCK_HEADER,
    BLOCK_IMAGE,
    BLOCK_MAPS,
    BLOCK_NUMBERED_LIST,
    BLOCK_PAGE,
    BLOCK_PDF,
    BLOCK_QUOTE,
    BLOCK_SUB_HEADER,
    BLOCK_SUB_SUB_HEADER,
    BLOCK_TEXT,
    BLOCK_TODO,
    BLOCK_TOGGLE,
    BLOCK_TWEET,
    BLOCK_VIDEO,
    TABLE_BLOCK,
    TABLE_COLLECTION,
    TABLE_SPACE,
    Block,
)
from .richtext import plain_text

logger = logging.getLogger("notion-graph")

# Block types whose "title" property is their text
TEXT_BLOCK_TYPES = frozenset({
    BLOCK_PAGE, BLOCK_COLLECTION_VIEW_PAGE, BLOCK_TEXT,
    BLOCK_HEADER, BLOCK_SUB_HEADER, BLOCK_SUB_SUB_HEADER,
    BLOCK_BULLETED_LIST, BLOCK_NUMBERED_LIST, BLOCK_TOGGLE, BLOCK_TODO,
    BLOCK_QUOTE, BLOCK_CALLOUT, BLOCK_CODE, BLOCK_BOOKMARK, BLOCK_EQUATION,
    BLOCK_FACTORY,
})

# Block types that point at external content through "source"
SOURCE_BLOCK_TYPES = frozenset({
    BLOCK_IMAGE, BLOCK_VIDEO, BLOCK_AUDIO, BLOCK_FILE, BLOCK_PDF,
    BLOCK_EMBED, BLOCK_GIST, BLOCK_TWEET, BLOCK_MAPS, BLOCK_DRIVE,
    BLOCK_FIGMA, BLOCK_CODEPEN, BLOCK_BOOKMARK,
})

NOTION_IMAGE_PROXY = "https://www.notion.so/image/"


def _first_text(block: Block, name: str) -> str:
    return plain_text(block.get_property(name))


def proxy_image_url(uri: str) -> str:
    """Rewrite notion-hosted image URLs to the publicly reachable proxy."""
    if not uri or "//www.notion.so/image/" in uri:
        return uri
    if uri.startswith("/images/"):
        return "https://www.notion.so" + uri
    if "amazonaws.com/secure.notion-static.com" in uri or "prod-files-secure" in uri:
        return NOTION_IMAGE_PROXY + quote(uri, safe="")
    return uri


def derive_fields(block: Block) -> None:
    """Fill the block's display fields from its property and format bags."""
    if block.type in TEXT_BLOCK_TYPES:
        title = block.get_property("title")
        block.title_full = title if isinstance(title, list) else []
        block.title = plain_text(title)

    if block.type == BLOCK_TODO:
        block.is_checked = _first_text(block, "checked").strip().lower() == "yes"

    if block.type in SOURCE_BLOCK_TYPES:
        block.source = _first_text(block, "source")
        block.caption = _first_text(block, "caption")
        display_source = block.format.get("display_source")
        if not block.source and isinstance(display_source, str):
            block.source = display_source

    if block.type == BLOCK_BOOKMARK:
        block.link = _first_text(block, "link")
        block.description = _first_text(block, "description")

    if block.type == BLOCK_FILE:
        block.file_size = _first_text(block, "size")

    if block.type == BLOCK_IMAGE:
        block.image_url = proxy_image_url(block.source)

    if block.type == BLOCK_CODE:
        block.code = block.title
        block.code_language = _first_text(block, "language")


def _link_children(entities: EntitySet, block: Block) -> None:
    # children that never arrived are left out rather than failing the page
    content = []
    for child_id in block.content_ids:
        child = entities.blocks.get(child_id)
        if child is None:
            logger.debug(f"Block {block.id} references missing child {child_id}")
            continue
        content.append(child)
    block.content = content


def resolve_block(entities: EntitySet, block: Block) -> None:
    """Resolve a block and everything under it, each block at most once."""
    stack = [block]
    while stack:
        current = stack.pop()
        if current.is_resolved:
            continue
        # marked before any work so a cycle back to it stops here
        current.is_resolved = True
        derive_fields(current)
        _link_children(entities, current)
        stack.extend(reversed(current.content))


def _link_parent(entities: EntitySet, block: Block) -> None:
    if block.parent_table in (TABLE_SPACE, TABLE_COLLECTION):
        block.parent = None
        return
    if block.parent_table != TABLE_BLOCK:
        logger.debug(f"Unsupported parent table '{block.parent_table}' of block {block.id}")
        block.parent = None
        return

    parent = entities.blocks.get(block.parent_id) if block.parent_id else None
    if parent is None and block.is_page:
        # the root page, or a page linked from here whose parent is elsewhere
        block.parent = None
        return
    if parent is None:
        raise MissingEntityError(
            block.parent_id or "",
            "parent",
            f"could not find parent '{block.parent_id}' of block '{block.id}'"
        )
    block.parent = parent


def resolve(entities: EntitySet) -> EntitySet:
    """Resolve every live block of the set in place.

    Starts from the root so content is visited in document order, then
    covers blocks not reachable from it. Safe to call repeatedly.

    Raises:
        MissingEntityError: A non-page block's parent block is absent.
    """
    root = entities.root()
    if root is not None:
        resolve_block(entities, root)
    for block in entities.live_blocks():
        resolve_block(entities, block)
    for block in entities.live_blocks():
        _link_parent(entities, block)
    return entities
