"""Acquisition: paginated chunk loading, missing-reference fetching and the
activity and user records that go with a page."""

import logging
from typing import Optional

from .api import Cursor, get_block_records, iter_activity_log, load_page_chunk, load_user_content
from .entities import EntitySet
from .ids import normalize_id
from .records import BLOCK_PAGE, TABLE_ACTIVITY, TABLE_NOTION_USER, TABLE_SPACE, Block
from .richtext import page_references
from .transport import Transport

logger = logging.getLogger("notion-graph")


# =============================================================================
# Chunk Loader
# =============================================================================

def load_document(
    transport: Transport,
    root_id: str,
    entities: Optional[EntitySet] = None
) -> EntitySet:
    """Load every chunk of a page into an entity set.

    Follows the cursor until the server returns an empty stack. There is no
    upper bound on the number of chunks; wrap the call if one is needed.

    Args:
        transport: Transport of the current session.
        root_id: Id of the page to load.
        entities: Set to merge into; a new one is created when omitted.

    Returns:
        The entity set, with dead blocks in its skip set.

    Raises:
        ValueError: root_id is invalid or isn't the root of ``entities``.
    """
    if entities is None:
        entities = EntitySet(root_id)
    elif normalize_id(root_id) != entities.root_id:
        raise ValueError(f"{root_id} is not the root of the entity set ({entities.root_id})")
    chunk_no = 0
    cursor: Optional[Cursor] = None
    while True:
        chunk = load_page_chunk(transport, entities.root_id, chunk_no, cursor)
        chunk_no += 1
        entities.merge_record_map(chunk.record_map)
        logger.debug(
            f"Chunk {chunk_no} of {entities.root_id}: "
            f"{sum(len(r) for r in chunk.record_map.values())} records"
        )
        if chunk.cursor.is_exhausted:
            break
        cursor = chunk.cursor
    return entities


# =============================================================================
# Missing-Reference Resolver
# =============================================================================

def find_inline_page_references(block: Block) -> list[str]:
    """Ids of pages mentioned in the block's title text."""
    return page_references(block.get_property("title"))


def find_missing_blocks(entities: EntitySet) -> list[str]:
    """Ids referenced by live non-page blocks that are neither live nor skipped.

    References of page blocks are not followed: a page block's content is a
    separate document, and pulling it in would download unrelated subtrees.
    """
    missing = set()
    for block in entities.blocks.values():
        if not block.alive or block.type == BLOCK_PAGE:
            continue
        for block_id in block.content_ids:
            if not entities.is_known(block_id):
                missing.add(block_id)
        for block_id in find_inline_page_references(block):
            if not entities.is_known(block_id):
                missing.add(block_id)
    return sorted(missing)


def _is_view_inside_page(entities: EntitySet, block: Block) -> bool:
    """False when every view of the block belongs to another page.

    This happens for blocks pulled in through a relation column. Blocks
    without views always count as inside.
    """
    if not block.view_ids:
        return True
    inside = False
    for view_id in block.view_ids:
        if view_id in entities.collection_views:
            inside = True
        else:
            logger.debug(f"collection view {view_id} of block {block.id} is outside of page")
    return inside


def _store_batch(entities: EntitySet, requested: list[str], records: list) -> None:
    for record in records:
        block = record.entity
        if block is None:
            continue
        if not block.alive:
            entities.skip.add(block.id)
        elif _is_view_inside_page(entities, block):
            entities.blocks[block.id] = block
        else:
            entities.skip.add(block.id)

    # Whatever we asked for and didn't get is unreachable. Matching by id
    # rather than by result position keeps this correct if results are
    # reordered or cut short.
    for block_id in requested:
        if block_id not in entities.blocks:
            if block_id not in entities.skip:
                logger.debug(f"Block {block_id} not returned, skipping it")
            entities.skip.add(block_id)


def resolve_missing(transport: Transport, entities: EntitySet) -> EntitySet:
    """Fetch referenced blocks until no reference is left unresolved.

    Each round asks for every currently missing id, split into batches of at
    most ``max_records_per_request``. After a round every requested id is
    either live or skipped, so the loop ends once no new ids are discovered.
    """
    batch_size = transport.config.max_records_per_request
    round_no = 0
    while True:
        missing = find_missing_blocks(entities)
        if not missing:
            break
        round_no += 1
        logger.debug(f"{len(missing)} missing blocks in iteration {round_no}")
        for start in range(0, len(missing), batch_size):
            batch = missing[start:start + batch_size]
            records = get_block_records(transport, batch)
            _store_batch(entities, batch, records)
    return entities


# =============================================================================
# Supplementary Records
# =============================================================================

def load_activity(
    transport: Transport,
    entities: EntitySet,
    max_pages: Optional[int] = None
) -> EntitySet:
    """Add the root page's activity log (and the users it names) to the set.

    Needs the root block, for its space id. Other tables in the log's record
    maps are ignored so the page's own blocks stay as loaded.
    """
    root = entities.root()
    if root is None or not root.space_id:
        logger.debug(f"No space id for {entities.root_id}, not loading its activity")
        return entities
    for log in iter_activity_log(transport, root.space_id, entities.root_id, max_pages=max_pages):
        entities.merge_record_map({
            table: records for table, records in log.record_map.items()
            if table in (TABLE_ACTIVITY, TABLE_NOTION_USER)
        })
    logger.debug(f"{len(entities.activities)} activities for {entities.root_id}")
    return entities


def load_user_records(transport: Transport, entities: EntitySet) -> EntitySet:
    """Add the logged-in user's user and space records to the set."""
    record_map = load_user_content(transport)
    entities.merge_record_map({
        table: records for table, records in record_map.items()
        if table in (TABLE_NOTION_USER, TABLE_SPACE)
    })
    return entities
