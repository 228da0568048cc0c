"""Per-download entity set (the "page" context)."""

import logging
from typing import Callable, Iterator, Optional

from .errors import DecodeError
from .ids import normalize_id, notion_url
from .records import (
    TABLE_ACTIVITY,
    TABLE_BLOCK,
    TABLE_COLLECTION,
    TABLE_COLLECTION_VIEW,
    TABLE_COMMENT,
    TABLE_DISCUSSION,
    TABLE_NOTION_USER,
    TABLE_SPACE,
    Block,
    Record,
    RecordMap,
)

logger = logging.getLogger("notion-graph")


class EntitySet:
    """Every entity fetched for one page download, keyed by normalized id.

    Live blocks go to ``blocks``; ids known to be dead or unreachable go to
    ``skip`` and are never fetched again. Keys are added while loading and
    never removed; graph resolution only rewrites block bodies in place.
    """

    def __init__(self, root_id: str):
        self.root_id = normalize_id(root_id)
        self.blocks: dict[str, Block] = {}
        self.collections: dict = {}
        self.collection_views: dict = {}
        self.comments: dict = {}
        self.discussions: dict = {}
        self.users: dict = {}
        self.spaces: dict = {}
        self.activities: dict = {}
        # not alive, or the server didn't return a value for this id
        self.skip: set[str] = set()
        # filled by the collection query stage
        self.table_views: list = []

        self._partitions = {
            TABLE_COLLECTION: self.collections,
            TABLE_COLLECTION_VIEW: self.collection_views,
            TABLE_COMMENT: self.comments,
            TABLE_DISCUSSION: self.discussions,
            TABLE_NOTION_USER: self.users,
            TABLE_SPACE: self.spaces,
            TABLE_ACTIVITY: self.activities,
        }

    def add_block(self, block: Block) -> None:
        """Add a block to the live set or, when dead, to the skip set."""
        if block.alive:
            self.blocks[block.id] = block
            self.skip.discard(block.id)
        else:
            self.blocks.pop(block.id, None)
            self.skip.add(block.id)

    def add_record(self, record: Record, requested_id: Optional[str] = None) -> None:
        """Store a decoded record in the partition of its table.

        A record with no value is recorded in the skip set under
        ``requested_id`` when one is given (only blocks are tracked there).

        Raises:
            DecodeError: requested_id is needed but isn't an id.
        """
        entity = record.entity
        if entity is None:
            if record.table == TABLE_BLOCK and requested_id:
                try:
                    self.skip.add(normalize_id(requested_id))
                except ValueError as e:
                    raise DecodeError(TABLE_BLOCK, f"record key '{requested_id}' is not an id") from e
            return
        if record.table == TABLE_BLOCK:
            self.add_block(entity)
            return
        self._partitions[record.table][entity.id] = entity

    def merge_record_map(self, record_map: RecordMap) -> None:
        for table, records in record_map.items():
            for record_id, record in records.items():
                self.add_record(record, requested_id=record_id)

    def block_by_id(self, block_id: str) -> Optional[Block]:
        """Look up a live block by id in either form."""
        try:
            return self.blocks.get(normalize_id(block_id))
        except ValueError:
            return None

    def root(self) -> Optional[Block]:
        return self.blocks.get(self.root_id)

    def is_known(self, block_id: str) -> bool:
        """True if the id is live or already in the skip set."""
        return block_id in self.blocks or block_id in self.skip

    def live_blocks(self) -> list[Block]:
        """Live blocks sorted by id, for deterministic traversal."""
        return [self.blocks[block_id] for block_id in sorted(self.blocks)]

    def iter_blocks(self) -> Iterator[Block]:
        """Depth-first walk of resolved content starting at the root.

        Each block is yielded once even if it is reachable through several
        parents.
        """
        root = self.root()
        if root is None:
            return
        seen: set[str] = set()
        stack = [root]
        while stack:
            block = stack.pop()
            if block.id in seen:
                continue
            seen.add(block.id)
            yield block
            stack.extend(reversed(block.content))

    def for_each_block(self, cb: Callable[[Block], None]) -> None:
        for block in self.iter_blocks():
            cb(block)

    def sub_page_ids(self) -> list[str]:
        """Ids of page blocks reachable from the root, excluding the root."""
        return sorted(
            block.id for block in self.iter_blocks()
            if block.is_page and block.id != self.root_id
        )

    def notion_url(self) -> str:
        return notion_url(self.root_id)

    def __len__(self) -> int:
        return len(self.blocks)

    def __contains__(self, block_id: str) -> bool:
        return self.block_by_id(block_id) is not None
