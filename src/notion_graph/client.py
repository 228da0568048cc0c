"""Page download: the whole pipeline behind one call."""

import logging
from typing import Any, Optional

import httpx

from .api import (
    ActivityLog,
    Cursor,
    PageChunk,
    QueryResult,
    get_activity_log,
    get_block_records,
    get_signed_file_urls,
    load_page_chunk,
    load_user_content,
    query_collection,
    sync_record_values,
)
from .config import ClientConfig
from .entities import EntitySet
from .errors import PageNotFoundError
from .graph import resolve
from .ids import extract_id_from_url, notion_url
from .loader import load_activity, load_document, load_user_records, resolve_missing
from .records import Block, Record, RecordMap
from .tables import query_collection_views
from .transport import RequestCache, Transport

logger = logging.getLogger("notion-graph")


def _page_id_from_ref(ref: str) -> str:
    page_id = extract_id_from_url(ref)
    if page_id is None:
        raise ValueError(f"{ref} is not a valid Notion page id")
    return page_id


def _needs_user_records(transport: Transport, entities: EntitySet) -> bool:
    if not transport.config.token or entities.users:
        return False
    return any(block.is_collection_view for block in entities.blocks.values())


def download_page(transport: Transport, page_ref: str, with_activity: bool = False) -> EntitySet:
    """Download a page and everything it references, fully resolved.

    Args:
        transport: Transport of the current session.
        page_ref: Page id in either form, or a notion.so URL.
        with_activity: Also load the page's activity log into ``activities``.

    Returns:
        The page's entity set; ``root()`` is the page block.

    Raises:
        ValueError: page_ref holds no valid id.
        PageNotFoundError: The server returns no live record for the page.
        TransportError, DecodeError, MissingEntityError: The download failed.
    """
    page_id = _page_id_from_ref(page_ref)
    entities = EntitySet(page_id)

    # the root record first: a page we can't see has no value here
    records = get_block_records(transport, [page_id])
    root = records[0].entity if records else None
    if root is None or not root.alive:
        raise PageNotFoundError(page_id)
    entities.add_block(root)

    load_document(transport, page_id, entities)
    resolve_missing(transport, entities)
    resolve(entities)
    if _needs_user_records(transport, entities):
        # queries run in the user's time zone
        load_user_records(transport, entities)
    query_collection_views(transport, entities)
    if with_activity:
        load_activity(transport, entities)
    logger.info(
        f"Downloaded page {page_id}: {len(entities.blocks)} blocks, "
        f"{len(entities.skip)} skipped, {len(entities.table_views)} table views "
        f"in {transport.request_count} requests"
    )
    return entities


class NotionClient:
    """Session object: a configured transport plus the download pipeline."""

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        http_client: Optional[httpx.Client] = None,
        cache: Optional[RequestCache] = None
    ):
        self.config = config or ClientConfig()
        self.transport = Transport(self.config, http_client=http_client, cache=cache)

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> "NotionClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def download_page(self, page_ref: str, with_activity: bool = False) -> EntitySet:
        return download_page(self.transport, page_ref, with_activity=with_activity)

    def get_block_records(self, ids: list[str]) -> list[Record]:
        return get_block_records(self.transport, ids)

    def load_page_chunk(self, page_id: str, chunk_no: int = 0, cursor: Optional[Cursor] = None) -> PageChunk:
        return load_page_chunk(self.transport, page_id, chunk_no, cursor)

    def sync_record_values(self, pointers: list[tuple[str, str]]) -> RecordMap:
        return sync_record_values(self.transport, pointers)

    def get_activity_log(self, space_id: str, starting_after_id: str = "", **kwargs: Any) -> ActivityLog:
        return get_activity_log(self.transport, space_id, starting_after_id, **kwargs)

    def load_user_content(self) -> RecordMap:
        return load_user_content(self.transport)

    def get_signed_file_urls(self, urls: list[str], block: Block) -> list[str]:
        return get_signed_file_urls(self.transport, urls, block)

    def query_collection(self, collection_id: str, collection_view_id: str, **kwargs: Any) -> QueryResult:
        return query_collection(self.transport, collection_id, collection_view_id, **kwargs)

    def page_url(self, page_ref: str) -> str:
        """notion.so URL of a page, from any id form or URL."""
        return notion_url(_page_id_from_ref(page_ref))
