"""Record decoding: tagged JSON payloads into typed entities.

The v3 API returns every entity in the same envelope, ``{"role": ..., "value":
{...}}``. Which kind of entity the value holds is known only from the request
(or from the record map key it arrived under), so the table tag is always
supplied by the caller.

The typed projection is deliberately partial. Each entity keeps the payload it
was decoded from in ``raw`` so fields we don't model are still reachable.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from .errors import DecodeError
from .ids import normalize_id
from .richtext import plain_text

logger = logging.getLogger("notion-graph")

# =============================================================================
# Tables and Block Types
# =============================================================================

TABLE_ACTIVITY = "activity"
TABLE_BLOCK = "block"
TABLE_COLLECTION = "collection"
TABLE_COLLECTION_VIEW = "collection_view"
TABLE_COMMENT = "comment"
TABLE_DISCUSSION = "discussion"
TABLE_NOTION_USER = "notion_user"
TABLE_SPACE = "space"

BLOCK_PAGE = "page"
BLOCK_TEXT = "text"
BLOCK_HEADER = "header"
BLOCK_SUB_HEADER = "sub_header"
BLOCK_SUB_SUB_HEADER = "sub_sub_header"
BLOCK_BULLETED_LIST = "bulleted_list"
BLOCK_NUMBERED_LIST = "numbered_list"
BLOCK_TOGGLE = "toggle"
BLOCK_TODO = "to_do"
BLOCK_QUOTE = "quote"
BLOCK_CALLOUT = "callout"
BLOCK_CODE = "code"
BLOCK_DIVIDER = "divider"
BLOCK_EQUATION = "equation"
BLOCK_BOOKMARK = "bookmark"
BLOCK_IMAGE = "image"
BLOCK_VIDEO = "video"
BLOCK_AUDIO = "audio"
BLOCK_FILE = "file"
BLOCK_PDF = "pdf"
BLOCK_EMBED = "embed"
BLOCK_GIST = "gist"
BLOCK_TWEET = "tweet"
BLOCK_MAPS = "maps"
BLOCK_DRIVE = "drive"
BLOCK_FIGMA = "figma"
BLOCK_CODEPEN = "codepen"
BLOCK_COLUMN_LIST = "column_list"
BLOCK_COLUMN = "column"
BLOCK_TABLE_OF_CONTENTS = "table_of_contents"
BLOCK_BREADCRUMB = "breadcrumb"
BLOCK_FACTORY = "factory"
BLOCK_COLLECTION_VIEW = "collection_view"
BLOCK_COLLECTION_VIEW_PAGE = "collection_view_page"

# Blocks that stand for a whole page (embedded or linked)
PAGE_BLOCK_TYPES = frozenset({BLOCK_PAGE, BLOCK_COLLECTION_VIEW_PAGE})

# Blocks that render a collection through one or more views
COLLECTION_VIEW_BLOCK_TYPES = frozenset({BLOCK_COLLECTION_VIEW, BLOCK_COLLECTION_VIEW_PAGE})

# =============================================================================
# Field Reading
# =============================================================================

Number = Union[int, float]


class _FieldReader:
    """Typed access to one payload; wrong JSON types raise DecodeError.

    Absent and null fields return the default.
    """

    def __init__(self, table: str, payload: dict):
        self.table = table
        self.payload = payload

    def _get(self, key: str, expected: tuple, type_name: str) -> Any:
        value = self.payload.get(key)
        if value is None:
            return None
        # bool is an int subclass but never a valid number here
        if not isinstance(value, expected) or (isinstance(value, bool) and bool not in expected):
            raise DecodeError(
                self.table,
                f"field '{key}' should be {type_name}, got {type(value).__name__}"
            )
        return value

    def string(self, key: str, default: str = "") -> str:
        value = self._get(key, (str,), "a string")
        return default if value is None else value

    def flag(self, key: str, default: bool = False) -> bool:
        value = self._get(key, (bool,), "a boolean")
        return default if value is None else value

    def number(self, key: str, default: Number = 0) -> Number:
        value = self._get(key, (int, float), "a number")
        return default if value is None else value

    def mapping(self, key: str) -> dict:
        value = self._get(key, (dict,), "an object")
        return {} if value is None else value

    def array(self, key: str) -> list:
        value = self._get(key, (list,), "an array")
        return [] if value is None else value

    def required_id(self, key: str) -> str:
        value = self.optional_id(key)
        if value is None:
            raise DecodeError(self.table, f"missing required field '{key}'")
        return value

    def optional_id(self, key: str) -> Optional[str]:
        value = self._get(key, (str,), "a string")
        if not value:
            return None
        try:
            return normalize_id(value)
        except ValueError as e:
            raise DecodeError(self.table, f"field '{key}': {e}") from e

    def id_list(self, key: str) -> list[str]:
        ids = []
        for item in self.array(key):
            if not isinstance(item, str):
                raise DecodeError(self.table, f"field '{key}' should hold strings, got {type(item).__name__}")
            try:
                ids.append(normalize_id(item))
            except ValueError as e:
                raise DecodeError(self.table, f"field '{key}': {e}") from e
        return ids


def _millis_to_datetime(ms: Number) -> Optional[datetime]:
    if not ms:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


# =============================================================================
# Entities
# =============================================================================

@dataclass(eq=False)
class Block:
    """Atomic unit of content.

    Fields up to ``raw`` come from the server. Display fields (title, source,
    ...) are derived during graph resolution, as are ``parent`` and
    ``content`` which link blocks of the same download together. Equality is
    identity: the graph may contain cycles.
    """
    id: str
    type: str = ""
    alive: bool = False
    content_ids: list[str] = field(default_factory=list)
    parent_id: Optional[str] = None
    parent_table: str = ""
    version: int = 0
    properties: dict = field(default_factory=dict, repr=False)
    format: dict = field(default_factory=dict, repr=False)
    view_ids: list[str] = field(default_factory=list)
    collection_id: Optional[str] = None
    space_id: Optional[str] = None
    created_by: str = ""
    created_time: Number = 0
    last_edited_by: str = ""
    last_edited_time: Number = 0
    discussion_ids: list[str] = field(default_factory=list, repr=False)
    file_ids: list[str] = field(default_factory=list, repr=False)
    copied_from: Optional[str] = None
    raw: dict = field(default_factory=dict, repr=False)

    # derived from properties/format
    title: str = ""
    title_full: list = field(default_factory=list, repr=False)
    is_checked: bool = False
    source: str = ""
    caption: str = ""
    link: str = ""
    description: str = ""
    file_size: str = ""
    image_url: str = ""
    code: str = ""
    code_language: str = ""

    # graph links, owned by the EntitySet
    parent: Optional["Block"] = field(default=None, repr=False)
    content: list["Block"] = field(default_factory=list, repr=False)
    table_views: list = field(default_factory=list, repr=False)
    # set once the block went through graph resolution
    is_resolved: bool = field(default=False, repr=False)

    @property
    def is_page(self) -> bool:
        return self.type in PAGE_BLOCK_TYPES

    @property
    def is_collection_view(self) -> bool:
        return self.type in COLLECTION_VIEW_BLOCK_TYPES

    @property
    def created_on(self) -> Optional[datetime]:
        return _millis_to_datetime(self.created_time)

    @property
    def updated_on(self) -> Optional[datetime]:
        return _millis_to_datetime(self.last_edited_time)

    def get_property(self, name: str) -> Any:
        """Raw value of a property (rich-text list for most), None if unset."""
        return self.properties.get(name)


@dataclass
class ColumnSchema:
    """One column of a collection schema."""
    property_id: str
    name: str
    type: str
    options: list = field(default_factory=list, repr=False)
    raw: dict = field(default_factory=dict, repr=False)


@dataclass
class Collection:
    """A database: schema shared by its rows."""
    id: str
    version: int = 0
    name: str = ""
    name_full: list = field(default_factory=list, repr=False)
    description: str = ""
    icon: str = ""
    parent_id: Optional[str] = None
    parent_table: str = ""
    alive: bool = True
    schema: dict[str, ColumnSchema] = field(default_factory=dict)
    raw: dict = field(default_factory=dict, repr=False)


@dataclass
class TableProperty:
    """Placement of one column in a view."""
    property: str
    visible: bool = True
    width: Number = 0


@dataclass
class CollectionView:
    """A named view of a collection: column order, sort and filter."""
    id: str
    version: int = 0
    type: str = ""
    name: str = ""
    parent_id: Optional[str] = None
    parent_table: str = ""
    alive: bool = True
    table_properties: list[TableProperty] = field(default_factory=list)
    query: dict = field(default_factory=dict, repr=False)
    page_sort: list[str] = field(default_factory=list, repr=False)
    format: dict = field(default_factory=dict, repr=False)
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def sort(self) -> list:
        value = self.query.get("sort")
        return value if isinstance(value, list) else []

    @property
    def filter(self) -> dict:
        value = self.query.get("filter")
        return value if isinstance(value, dict) else {}

    @property
    def aggregations(self) -> list:
        value = self.query.get("aggregations") or self.query.get("aggregate")
        return value if isinstance(value, list) else []


@dataclass
class Comment:
    id: str
    version: int = 0
    alive: bool = True
    parent_id: Optional[str] = None
    parent_table: str = ""
    text: list = field(default_factory=list, repr=False)
    created_by: str = ""
    created_time: Number = 0
    last_edited_time: Number = 0
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def plain_text(self) -> str:
        return plain_text(self.text)


@dataclass
class Discussion:
    id: str
    version: int = 0
    parent_id: Optional[str] = None
    parent_table: str = ""
    resolved: bool = False
    comment_ids: list[str] = field(default_factory=list)
    raw: dict = field(default_factory=dict, repr=False)


@dataclass
class Space:
    """A workspace."""
    id: str
    version: int = 0
    name: str = ""
    domain: str = ""
    icon: str = ""
    page_ids: list[str] = field(default_factory=list, repr=False)
    created_by: str = ""
    created_time: Number = 0
    raw: dict = field(default_factory=dict, repr=False)


@dataclass
class User:
    id: str
    version: int = 0
    email: str = ""
    given_name: str = ""
    family_name: str = ""
    locale: str = ""
    time_zone: str = ""
    profile_photo: str = ""
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def display_name(self) -> str:
        name = " ".join(n for n in (self.given_name, self.family_name) if n)
        return name or self.id


@dataclass
class Activity:
    """An entry of a page's activity log."""
    id: str
    version: int = 0
    type: str = ""
    space_id: Optional[str] = None
    parent_id: Optional[str] = None
    parent_table: str = ""
    start_time: str = ""
    end_time: str = ""
    navigable_block_id: Optional[str] = None
    collection_id: Optional[str] = None
    collection_row_id: Optional[str] = None
    edits: list = field(default_factory=list, repr=False)
    index: int = 0
    invalid: bool = False
    raw: dict = field(default_factory=dict, repr=False)


Entity = Union[Block, Collection, CollectionView, Comment, Discussion, Space, User, Activity]

# =============================================================================
# Per-table Decoders
# =============================================================================


def _decode_block(r: _FieldReader) -> Block:
    fmt = r.mapping("format")
    collection_id = r.optional_id("collection_id")
    if collection_id is None:
        # newer payloads keep the collection in format.collection_pointer
        pointer = fmt.get("collection_pointer")
        if isinstance(pointer, dict) and pointer.get("id"):
            collection_id = _FieldReader(TABLE_BLOCK, pointer).optional_id("id")
    return Block(
        id=r.required_id("id"),
        type=r.string("type"),
        alive=r.flag("alive"),
        content_ids=r.id_list("content"),
        parent_id=r.optional_id("parent_id"),
        parent_table=r.string("parent_table"),
        version=r.number("version"),
        properties=r.mapping("properties"),
        format=fmt,
        view_ids=r.id_list("view_ids"),
        collection_id=collection_id,
        space_id=r.optional_id("space_id"),
        created_by=r.string("created_by"),
        created_time=r.number("created_time"),
        last_edited_by=r.string("last_edited_by"),
        last_edited_time=r.number("last_edited_time"),
        discussion_ids=r.id_list("discussions"),
        file_ids=[f for f in r.array("file_ids") if isinstance(f, str)],
        copied_from=r.optional_id("copied_from"),
        raw=r.payload,
    )


def _decode_schema(r: _FieldReader) -> dict[str, ColumnSchema]:
    schema = {}
    for prop_id, column in r.mapping("schema").items():
        if not isinstance(column, dict):
            raise DecodeError(r.table, f"schema column '{prop_id}' should be an object")
        c = _FieldReader(r.table, column)
        schema[prop_id] = ColumnSchema(
            property_id=prop_id,
            name=c.string("name"),
            type=c.string("type"),
            options=c.array("options"),
            raw=column,
        )
    return schema


def _decode_collection(r: _FieldReader) -> Collection:
    name = r.array("name")
    icon = r.payload.get("icon")
    return Collection(
        id=r.required_id("id"),
        version=r.number("version"),
        name=plain_text(name),
        name_full=name,
        description=plain_text(r.array("description")),
        icon=icon if isinstance(icon, str) else "",
        parent_id=r.optional_id("parent_id"),
        parent_table=r.string("parent_table"),
        alive=r.flag("alive", default=True),
        schema=_decode_schema(r),
        raw=r.payload,
    )


def _decode_collection_view(r: _FieldReader) -> CollectionView:
    fmt = r.mapping("format")
    table_properties = []
    raw_props = fmt.get("table_properties") or []
    if not isinstance(raw_props, list):
        raise DecodeError(r.table, "format.table_properties should be an array")
    for prop in raw_props:
        if not isinstance(prop, dict):
            raise DecodeError(r.table, "table property should be an object")
        p = _FieldReader(r.table, prop)
        table_properties.append(TableProperty(
            property=p.string("property"),
            visible=p.flag("visible", default=True),
            width=p.number("width"),
        ))
    # query2 replaced query in later API versions
    query = r.mapping("query2") or r.mapping("query")
    return CollectionView(
        id=r.required_id("id"),
        version=r.number("version"),
        type=r.string("type"),
        name=r.string("name"),
        parent_id=r.optional_id("parent_id"),
        parent_table=r.string("parent_table"),
        alive=r.flag("alive", default=True),
        table_properties=table_properties,
        query=query,
        page_sort=r.id_list("page_sort"),
        format=fmt,
        raw=r.payload,
    )


def _decode_comment(r: _FieldReader) -> Comment:
    return Comment(
        id=r.required_id("id"),
        version=r.number("version"),
        alive=r.flag("alive", default=True),
        parent_id=r.optional_id("parent_id"),
        parent_table=r.string("parent_table"),
        text=r.array("text"),
        created_by=r.string("created_by"),
        created_time=r.number("created_time"),
        last_edited_time=r.number("last_edited_time"),
        raw=r.payload,
    )


def _decode_discussion(r: _FieldReader) -> Discussion:
    return Discussion(
        id=r.required_id("id"),
        version=r.number("version"),
        parent_id=r.optional_id("parent_id"),
        parent_table=r.string("parent_table"),
        resolved=r.flag("resolved"),
        comment_ids=r.id_list("comments"),
        raw=r.payload,
    )


def _decode_space(r: _FieldReader) -> Space:
    return Space(
        id=r.required_id("id"),
        version=r.number("version"),
        name=r.string("name"),
        domain=r.string("domain"),
        icon=r.string("icon"),
        page_ids=r.id_list("pages"),
        created_by=r.string("created_by"),
        created_time=r.number("created_time"),
        raw=r.payload,
    )


def _decode_user(r: _FieldReader) -> User:
    return User(
        id=r.required_id("id"),
        version=r.number("version"),
        email=r.string("email"),
        given_name=r.string("given_name"),
        family_name=r.string("family_name"),
        locale=r.string("locale"),
        time_zone=r.string("time_zone"),
        profile_photo=r.string("profile_photo"),
        raw=r.payload,
    )


def _decode_activity(r: _FieldReader) -> Activity:
    return Activity(
        id=r.required_id("id"),
        version=r.number("version"),
        type=r.string("type"),
        space_id=r.optional_id("space_id"),
        parent_id=r.optional_id("parent_id"),
        parent_table=r.string("parent_table"),
        start_time=str(r.payload.get("start_time") or ""),
        end_time=str(r.payload.get("end_time") or ""),
        navigable_block_id=r.optional_id("navigable_block_id"),
        collection_id=r.optional_id("collection_id"),
        collection_row_id=r.optional_id("collection_row_id"),
        edits=r.array("edits"),
        index=r.number("index"),
        invalid=r.flag("invalid"),
        raw=r.payload,
    )


_DECODERS: dict[str, Callable[[_FieldReader], Entity]] = {
    TABLE_ACTIVITY: _decode_activity,
    TABLE_BLOCK: _decode_block,
    TABLE_COLLECTION: _decode_collection,
    TABLE_COLLECTION_VIEW: _decode_collection_view,
    TABLE_COMMENT: _decode_comment,
    TABLE_DISCUSSION: _decode_discussion,
    TABLE_NOTION_USER: _decode_user,
    TABLE_SPACE: _decode_space,
}

TABLES = frozenset(_DECODERS)


def _unwrap(payload: dict) -> dict:
    """Strip the extra ``{"value": {...}, "role": ...}`` layer newer servers add."""
    inner = payload.get("value")
    if "id" not in payload and isinstance(inner, dict):
        return inner
    return payload


def decode_record(table: str, payload: Any) -> Optional[Entity]:
    """Decode one entity payload for the given table.

    Returns:
        The typed entity, or None when the server sent no value (a record
        we have no access to, or one that doesn't exist).

    Raises:
        DecodeError: Unknown table or a payload of the wrong shape.
    """
    decoder = _DECODERS.get(table)
    if decoder is None:
        raise DecodeError(table, "unsupported table")
    if payload is None or payload == {}:
        return None
    if not isinstance(payload, dict):
        raise DecodeError(table, f"value should be an object, got {type(payload).__name__}")
    payload = _unwrap(payload)
    if not payload:
        return None
    return decoder(_FieldReader(table, payload))


# =============================================================================
# Records and Record Maps
# =============================================================================

@dataclass
class Record:
    """One ``{role, value}`` envelope together with its decoded entity."""
    table: str
    role: str = ""
    value: Optional[dict] = field(default=None, repr=False)
    entity: Optional[Entity] = None

    @property
    def id(self) -> Optional[str]:
        return self.entity.id if self.entity is not None else None


def parse_record(table: str, raw: Any) -> Record:
    """Decode a ``{role, value}`` envelope. A null envelope yields an empty Record."""
    if raw is None:
        return Record(table=table)
    if not isinstance(raw, dict):
        raise DecodeError(table, f"record should be an object, got {type(raw).__name__}")
    value = raw.get("value")
    role = raw.get("role")
    if isinstance(value, dict) and "id" not in value and isinstance(value.get("value"), dict):
        role = value.get("role", role)
        value = value["value"]
    return Record(
        table=table,
        role=role if isinstance(role, str) else "",
        value=value if isinstance(value, dict) else None,
        entity=decode_record(table, value),
    )


RecordMap = dict[str, dict[str, Record]]


def parse_record_map(raw: Any) -> RecordMap:
    """Decode a ``recordMap`` object into ``{table: {id: Record}}``.

    Tables we don't model are skipped. Records are keyed by their normalized
    id; records with no value keep the (normalized) key they arrived under.

    Raises:
        DecodeError: A table or record has the wrong JSON type, or a record
            with no value sits under a key that isn't an id.
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise DecodeError("recordMap", f"should be an object, got {type(raw).__name__}")
    result: RecordMap = {}
    for table, records in raw.items():
        if table not in TABLES:
            if isinstance(records, dict):
                logger.debug(f"Skipping {len(records)} records of unmodeled table '{table}'")
            continue
        if not isinstance(records, dict):
            raise DecodeError(table, "record map entry should be an object")
        by_id = {}
        for key, raw_record in records.items():
            record = parse_record(table, raw_record)
            record_id = record.id
            if record_id is None:
                try:
                    record_id = normalize_id(key)
                except ValueError as e:
                    raise DecodeError(table, f"record key '{key}' is not an id") from e
            by_id[record_id] = record
        result[table] = by_id
    return result
