"""Download a Notion page and everything it references as one resolved graph."""

from .api import (
    ActivityLog,
    Cursor,
    PageChunk,
    QueryResult,
    get_activity_log,
    get_block_records,
    get_record_values,
    get_signed_file_urls,
    iter_activity_log,
    load_page_chunk,
    load_user_content,
    query_collection,
    sync_record_values,
)
from .client import NotionClient, download_page
from .config import ClientConfig, load_token
from .entities import EntitySet
from .errors import (
    ConfigError,
    DecodeError,
    MissingEntityError,
    NotionGraphError,
    PageNotFoundError,
    RateLimitError,
    TransportError,
)
from .graph import derive_fields, resolve
from .ids import extract_id_from_url, is_valid_id, normalize_id, notion_url, to_no_dash_id
from .loader import find_missing_blocks, load_activity, load_document, load_user_records, resolve_missing
from .records import (
    Activity,
    Block,
    Collection,
    CollectionView,
    ColumnSchema,
    Comment,
    Discussion,
    Record,
    Space,
    TableProperty,
    User,
    decode_record,
    parse_record,
    parse_record_map,
)
from .tables import ColumnInfo, TableRow, TableView, query_collection_views
from .transport import MemoryRequestCache, RequestCache, Transport

__version__ = "0.1.0"

__all__ = [
    "Activity",
    "ActivityLog",
    "Block",
    "ClientConfig",
    "Collection",
    "CollectionView",
    "ColumnInfo",
    "ColumnSchema",
    "Comment",
    "ConfigError",
    "Cursor",
    "DecodeError",
    "Discussion",
    "EntitySet",
    "MemoryRequestCache",
    "MissingEntityError",
    "NotionClient",
    "NotionGraphError",
    "PageChunk",
    "PageNotFoundError",
    "QueryResult",
    "RateLimitError",
    "Record",
    "RequestCache",
    "Space",
    "TableProperty",
    "TableRow",
    "TableView",
    "Transport",
    "TransportError",
    "User",
    "decode_record",
    "derive_fields",
    "download_page",
    "extract_id_from_url",
    "find_missing_blocks",
    "get_activity_log",
    "get_block_records",
    "get_record_values",
    "get_signed_file_urls",
    "is_valid_id",
    "iter_activity_log",
    "load_activity",
    "load_document",
    "load_page_chunk",
    "load_token",
    "load_user_content",
    "load_user_records",
    "normalize_id",
    "notion_url",
    "parse_record",
    "parse_record_map",
    "query_collection",
    "query_collection_views",
    "resolve",
    "resolve_missing",
    "sync_record_values",
    "to_no_dash_id",
]
