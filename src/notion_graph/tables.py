"""Collection view materialization: rows and columns for every table view."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .api import QueryResult, make_loader, query_collection
from .entities import EntitySet
from .errors import MissingEntityError
from .graph import resolve_block
from .records import Block, Collection, CollectionView, ColumnSchema, TableProperty
from .transport import Transport

logger = logging.getLogger("notion-graph")


@dataclass
class ColumnInfo:
    """A visible column: its position, view placement and schema."""
    index: int
    property: TableProperty
    schema: Optional[ColumnSchema]

    @property
    def name(self) -> str:
        return self.schema.name if self.schema else self.property.property

    @property
    def type(self) -> str:
        return self.schema.type if self.schema else ""


@dataclass
class TableRow:
    """One row (a page block) with a raw cell value per column."""
    block: Block
    cells: list[Any] = field(default_factory=list)


@dataclass
class TableView:
    """A collection seen through one view, with its rows queried."""
    collection_view: CollectionView
    collection: Collection
    columns: list[ColumnInfo] = field(default_factory=list)
    rows: list[TableRow] = field(default_factory=list)
    aggregations: list[dict] = field(default_factory=list)
    total: int = 0
    # the query's own entities (row blocks and whatever came with them)
    entities: Optional[EntitySet] = field(default=None, repr=False)


def build_columns(view: CollectionView, collection: Collection) -> list[ColumnInfo]:
    """Visible columns in view order.

    A view with no column layout shows every schema property, title first.
    """
    props = view.table_properties
    if not props:
        ordered = sorted(collection.schema.values(), key=lambda s: (s.type != "title", s.name))
        props = [TableProperty(property=s.property_id) for s in ordered]
    columns = []
    for idx, prop in enumerate(props):
        if not prop.visible:
            continue
        schema = collection.schema.get(prop.property)
        if schema is None:
            logger.debug(f"View {view.id} shows property '{prop.property}' missing from schema")
        columns.append(ColumnInfo(index=idx, property=prop, schema=schema))
    return columns


def build_table_view(
    root_id: str,
    view: CollectionView,
    collection: Collection,
    result: QueryResult
) -> TableView:
    """Turn a query result into rows and columns.

    Raises:
        MissingEntityError: A row id of the result is absent from its record map.
    """
    rows_set = EntitySet(root_id)
    rows_set.merge_record_map(result.record_map)

    table = TableView(
        collection_view=view,
        collection=collection,
        columns=build_columns(view, collection),
        aggregations=result.aggregations,
        total=result.total,
        entities=rows_set,
    )
    for block_id in result.block_ids:
        block = rows_set.blocks.get(block_id)
        if block is None:
            raise MissingEntityError(
                block_id,
                "row",
                f"didn't find block with id '{block_id}' for collection view with id '{view.id}'"
            )
        resolve_block(rows_set, block)
        cells = [block.get_property(col.property.property) for col in table.columns]
        table.rows.append(TableRow(block=block, cells=cells))
    return table


def _user_time_zone(entities: EntitySet, default: str) -> str:
    for user_id in sorted(entities.users):
        time_zone = entities.users[user_id].time_zone
        if time_zone:
            return time_zone
    return default


def query_collection_views(transport: Transport, entities: EntitySet) -> EntitySet:
    """Query every view of every live collection-view block.

    Results are attached to the block's ``table_views`` and to the entity
    set's ``table_views``.

    Raises:
        MissingEntityError: A collection-view block without views, or a view,
            collection or row block that can't be found.
    """
    config = transport.config
    time_zone = _user_time_zone(entities, config.default_time_zone)
    for block in entities.live_blocks():
        if not block.is_collection_view:
            continue
        if not block.view_ids:
            raise MissingEntityError(block.id, "collection_view", f"collection_view block '{block.id}' has no view ids")
        collection = entities.collections.get(block.collection_id) if block.collection_id else None
        if collection is None:
            raise MissingEntityError(
                block.collection_id or "",
                "collection",
                f"didn't find collection '{block.collection_id}' of block '{block.id}'"
            )
        block.table_views = []
        for view_id in block.view_ids:
            view = entities.collection_views.get(view_id)
            if view is None:
                raise MissingEntityError(view_id, "collection_view", f"didn't find collection_view with id '{view_id}'")
            loader = make_loader(
                sort=view.sort,
                filter_obj=view.filter,
                limit=config.query_row_limit,
                time_zone=time_zone,
                aggregations=view.aggregations,
            )
            result = query_collection(transport, collection.id, view.id, space_id=block.space_id, loader=loader)
            table = build_table_view(entities.root_id, view, collection, result)
            logger.debug(f"View {view.id} of block {block.id}: {len(table.rows)} rows")
            block.table_views.append(table)
            entities.table_views.append(table)
    return entities
