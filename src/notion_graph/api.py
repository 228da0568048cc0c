"""Raw Notion v3 API calls.

Each function is one POST to one endpoint. Responses are decoded into records
but otherwise returned as the server sent them; stitching them into a page is
the loader's job.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from .config import ACTIVITY_LOG_LIMIT, DEFAULT_TIME_ZONE, QUERY_ROW_LIMIT
from .errors import DecodeError
from .ids import normalize_id
from .records import TABLE_BLOCK, Block, Record, RecordMap, parse_record, parse_record_map
from .transport import Transport

logger = logging.getLogger("notion-graph")

API_LOAD_PAGE_CHUNK = "/api/v3/loadCachedPageChunk"
API_GET_RECORD_VALUES = "/api/v3/getRecordValues"
API_QUERY_COLLECTION = "/api/v3/queryCollection"
API_SYNC_RECORD_VALUES = "/api/v3/syncRecordValues"
API_GET_ACTIVITY_LOG = "/api/v3/getActivityLog"
API_LOAD_USER_CONTENT = "/api/v3/loadUserContent"
API_GET_SIGNED_FILE_URLS = "/api/v3/getSignedFileUrls"


# =============================================================================
# loadCachedPageChunk
# =============================================================================

@dataclass
class Cursor:
    """Pagination token of loadCachedPageChunk.

    ``stack`` is a list of position stacks, each a list of
    ``{"table", "id", "index"}`` markers. The server owns its meaning; an empty
    stack means there are no more chunks.
    """
    stack: list = field(default_factory=list)

    @property
    def is_exhausted(self) -> bool:
        return len(self.stack) == 0

    def to_json(self) -> dict:
        return {"stack": self.stack}

    @classmethod
    def from_json(cls, raw: Any) -> "Cursor":
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise DecodeError("cursor", f"should be an object, got {type(raw).__name__}")
        stack = raw.get("stack")
        if stack is None:
            return cls()
        if not isinstance(stack, list):
            raise DecodeError("cursor", "stack should be an array")
        return cls(stack=stack)


@dataclass
class PageChunk:
    """One page of loadCachedPageChunk results."""
    record_map: RecordMap
    cursor: Cursor
    raw: dict = field(default_factory=dict, repr=False)


def load_page_chunk(
    transport: Transport,
    page_id: str,
    chunk_no: int,
    cursor: Optional[Cursor] = None
) -> PageChunk:
    """Fetch one chunk of a page.

    The web client sends an empty stack and a larger limit on the first call;
    we do the same (``cursor=None`` marks the first call).
    """
    config = transport.config
    limit = config.chunk_limit
    if cursor is None:
        cursor = Cursor()
        limit = config.first_chunk_limit
    request = {
        "page": {"id": normalize_id(page_id)},
        "chunkNumber": chunk_no,
        "limit": limit,
        "cursor": cursor.to_json(),
        "verticalColumns": False,
    }
    rsp = transport.post(API_LOAD_PAGE_CHUNK, request)
    return PageChunk(
        record_map=parse_record_map(rsp.get("recordMap")),
        cursor=Cursor.from_json(rsp.get("cursor")),
        raw=rsp,
    )


# =============================================================================
# getRecordValues
# =============================================================================

def get_record_values(transport: Transport, requests: list[tuple[str, str]]) -> list[Record]:
    """Fetch records by ``(table, id)``.

    Results are decoded with the table of the matching request. A missing or
    null result becomes an empty Record.

    Raises:
        ValueError: If any id is invalid.
    """
    normalized = [(table, normalize_id(id_)) for table, id_ in requests]
    body = {"requests": [{"table": table, "id": id_} for table, id_ in normalized]}
    rsp = transport.post(API_GET_RECORD_VALUES, body)
    results = rsp.get("results")
    if results is None:
        results = []
    if not isinstance(results, list):
        raise DecodeError(API_GET_RECORD_VALUES, "results should be an array")
    if len(results) != len(normalized):
        logger.warning(
            f"getRecordValues returned {len(results)} results for {len(normalized)} requests"
        )

    records = []
    for (table, _), raw in zip(normalized, results):
        records.append(parse_record(table, raw))
    return records


# =============================================================================
# syncRecordValues
# =============================================================================

def sync_record_values(transport: Transport, pointers: list[tuple[str, str]]) -> RecordMap:
    """Fetch records by ``(table, id)`` pointers, at their latest version.

    The answer is a record map, so callers look records up by id; the server
    may leave out ids it won't return.

    Raises:
        ValueError: If any id is invalid.
    """
    body = {
        "requests": [
            {"pointer": {"table": table, "id": normalize_id(id_)}, "version": -1}
            for table, id_ in pointers
        ]
    }
    rsp = transport.post(API_SYNC_RECORD_VALUES, body)
    return parse_record_map(rsp.get("recordMap"))


def get_block_records(transport: Transport, ids: list[str]) -> list[Record]:
    """Fetch block records for the given ids (either id form), in request order.

    An id the server didn't return comes back as an empty Record.
    """
    normalized = [normalize_id(id_) for id_ in ids]
    record_map = sync_record_values(transport, [(TABLE_BLOCK, id_) for id_ in normalized])
    blocks = record_map.get(TABLE_BLOCK, {})
    return [blocks.get(id_) or Record(table=TABLE_BLOCK) for id_ in normalized]


# =============================================================================
# getActivityLog
# =============================================================================

@dataclass
class ActivityLog:
    """One page of getActivityLog results.

    ``next_id`` is the last activity id of the page, to be passed back as
    ``starting_after_id``; empty when the page has no activities.
    """
    activity_ids: list[str]
    record_map: RecordMap
    next_id: str = ""
    raw: dict = field(default_factory=dict, repr=False)


def get_activity_log(
    transport: Transport,
    space_id: str,
    starting_after_id: str = "",
    navigable_block_id: str = "",
    limit: int = ACTIVITY_LOG_LIMIT
) -> ActivityLog:
    """Fetch one page of a space's activity log, newest first.

    An empty ``starting_after_id`` starts at the most recent entry. With
    ``navigable_block_id`` only activity of that page is returned.
    """
    request: dict = {
        "spaceId": normalize_id(space_id),
        "navigableBlock": {"id": normalize_id(navigable_block_id) if navigable_block_id else ""},
        "limit": limit,
    }
    if starting_after_id:
        request["startingAfterId"] = starting_after_id
    rsp = transport.post(API_GET_ACTIVITY_LOG, request)
    activity_ids = rsp.get("activityIds") or []
    if not isinstance(activity_ids, list) or not all(isinstance(i, str) for i in activity_ids):
        raise DecodeError(API_GET_ACTIVITY_LOG, "activityIds should be an array of strings")
    return ActivityLog(
        activity_ids=activity_ids,
        record_map=parse_record_map(rsp.get("recordMap")),
        next_id=activity_ids[-1] if activity_ids else "",
        raw=rsp,
    )


def iter_activity_log(
    transport: Transport,
    space_id: str,
    navigable_block_id: str = "",
    limit: int = ACTIVITY_LOG_LIMIT,
    max_pages: Optional[int] = None
) -> Iterator[ActivityLog]:
    """Page through the activity log until it runs out.

    Stops on an empty page, when the server hands back the cursor it was
    given, or after ``max_pages`` pages.
    """
    starting_after_id = ""
    pages = 0
    while max_pages is None or pages < max_pages:
        log = get_activity_log(transport, space_id, starting_after_id, navigable_block_id, limit)
        pages += 1
        yield log
        if not log.next_id or log.next_id == starting_after_id:
            return
        starting_after_id = log.next_id


# =============================================================================
# loadUserContent
# =============================================================================

def load_user_content(transport: Transport) -> RecordMap:
    """Records of the logged-in user: their user record, spaces and top pages.

    Only meaningful with a token; anonymous sessions get an empty map.
    """
    rsp = transport.post(API_LOAD_USER_CONTENT, {})
    return parse_record_map(rsp.get("recordMap"))


# =============================================================================
# getSignedFileUrls
# =============================================================================

def get_signed_file_urls(transport: Transport, urls: list[str], block: Block) -> list[str]:
    """Exchange file URLs attached to a block for signed, downloadable ones.

    The block is the permission record the server checks access against.
    Signed URLs come back in request order.
    """
    permission = {"id": block.id, "table": block.parent_table, "spaceId": block.space_id or ""}
    request = {"urls": [{"url": url, "permissionRecord": permission} for url in urls]}
    rsp = transport.post(API_GET_SIGNED_FILE_URLS, request)
    signed = rsp.get("signedUrls") or []
    if not isinstance(signed, list) or not all(isinstance(u, str) for u in signed):
        raise DecodeError(API_GET_SIGNED_FILE_URLS, "signedUrls should be an array of strings")
    if len(signed) != len(urls):
        logger.warning(f"getSignedFileUrls returned {len(signed)} urls for {len(urls)} requests")
    return signed


# =============================================================================
# queryCollection
# =============================================================================

@dataclass
class QueryResult:
    """Decoded queryCollection response."""
    block_ids: list[str]
    aggregations: list[dict]
    total: int
    record_map: RecordMap
    raw: dict = field(default_factory=dict, repr=False)


def make_loader(
    sort: Optional[list] = None,
    filter_obj: Optional[dict] = None,
    limit: int = QUERY_ROW_LIMIT,
    time_zone: str = DEFAULT_TIME_ZONE,
    aggregations: Optional[list] = None
) -> dict:
    """Build the "reducer" loader the web client sends with queryCollection.

    Each aggregation of the view (``{"property", "aggregator"}``, or the older
    ``aggregation_type`` key) becomes its own reducer named
    ``"<property>:<aggregator>"``.
    """
    loader: dict = {
        "type": "reducer",
        "reducers": {
            "collection_group_results": {"type": "results", "limit": limit},
        },
        "searchQuery": "",
        "userTimeZone": time_zone,
    }
    if sort:
        loader["sort"] = sort
    if filter_obj:
        loader["filter"] = filter_obj
    for agg in aggregations or []:
        if not isinstance(agg, dict):
            continue
        prop = agg.get("property")
        aggregator = agg.get("aggregator") or agg.get("aggregation_type")
        if not prop or not aggregator:
            logger.debug(f"Ignoring aggregation without property or aggregator: {agg}")
            continue
        loader["reducers"][f"{prop}:{aggregator}"] = {
            "type": "aggregation",
            "aggregation": {"property": prop, "aggregator": aggregator},
        }
    return loader


def _decode_query_result(result: Any) -> tuple[list[str], list[dict], int]:
    if not isinstance(result, dict):
        raise DecodeError(API_QUERY_COLLECTION, "result should be an object")
    # reducer shape first, then the older flat shape
    reducers = result.get("reducerResults")
    group = reducers.get("collection_group_results") if isinstance(reducers, dict) else None
    source = group if isinstance(group, dict) else result
    raw_ids = source.get("blockIds") or []
    if not isinstance(raw_ids, list):
        raise DecodeError(API_QUERY_COLLECTION, "blockIds should be an array")
    try:
        block_ids = [normalize_id(i) for i in raw_ids]
    except ValueError as e:
        raise DecodeError(API_QUERY_COLLECTION, f"blockIds: {e}") from e
    aggregations = result.get("aggregationResults") or []
    if not aggregations and isinstance(reducers, dict):
        aggregations = [
            dict(value, name=name) for name, value in reducers.items()
            if isinstance(value, dict) and value.get("type") == "aggregation"
        ]
    if not isinstance(aggregations, list):
        raise DecodeError(API_QUERY_COLLECTION, "aggregationResults should be an array")
    total = source.get("total")
    if not isinstance(total, int) or isinstance(total, bool):
        total = len(block_ids)
    return block_ids, aggregations, total


def query_collection(
    transport: Transport,
    collection_id: str,
    collection_view_id: str,
    space_id: Optional[str] = None,
    loader: Optional[dict] = None
) -> QueryResult:
    """Query the rows of one collection as seen through one of its views."""
    request = {
        "collection": {"id": normalize_id(collection_id)},
        "collectionView": {"id": normalize_id(collection_view_id)},
        "loader": loader if loader is not None else make_loader(),
    }
    if space_id:
        request["collection"]["spaceId"] = space_id
        request["collectionView"]["spaceId"] = space_id
    rsp = transport.post(API_QUERY_COLLECTION, request)
    block_ids, aggregations, total = _decode_query_result(rsp.get("result") or {})
    return QueryResult(
        block_ids=block_ids,
        aggregations=aggregations,
        total=total,
        record_map=parse_record_map(rsp.get("recordMap")),
        raw=rsp,
    )
