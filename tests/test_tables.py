"""Tests for notion_graph.tables and the queryCollection call."""

import pytest

from notion_fakes import block_payload, nid, record_map
from notion_graph.api import API_QUERY_COLLECTION, make_loader
from notion_graph.entities import EntitySet
from notion_graph.errors import DecodeError, MissingEntityError
from notion_graph.records import decode_record
from notion_graph.tables import build_columns, query_collection_views

ROOT = nid(1)
TABLE_BLOCK_ID = nid(2)
COLLECTION_ID = nid(10)
VIEW_ID = nid(20)
SPACE_ID = nid(30)

COLLECTION = {
    "id": COLLECTION_ID,
    "name": [["Tasks"]],
    "schema": {
        "title": {"name": "Name", "type": "title"},
        "d0ne": {"name": "Done", "type": "checkbox"},
        "n0te": {"name": "Notes", "type": "text"},
    },
}

VIEW = {
    "id": VIEW_ID,
    "type": "table",
    "format": {"table_properties": [
        {"property": "title", "visible": True},
        {"property": "n0te", "visible": False},
        {"property": "d0ne", "visible": True},
    ]},
    "query2": {"sort": [{"property": "d0ne", "direction": "descending"}]},
}


def _row(n, name, done):
    return block_payload(
        nid(n), type="page", parent_table="collection", parent_id=COLLECTION_ID,
        properties={"title": [[name]], "d0ne": [[done]]},
    )


def _query_response(*rows, block_ids=None):
    ids = block_ids if block_ids is not None else [r["id"] for r in rows]
    return {
        "result": {
            "type": "reducer",
            "reducerResults": {
                "collection_group_results": {"type": "results", "blockIds": ids, "total": len(ids)},
            },
            "aggregationResults": [],
        },
        "recordMap": record_map(*rows),
    }


def _entities(view_ids=(VIEW_ID,), with_collection=True, with_view=True):
    entities = EntitySet(ROOT)
    entities.add_block(decode_record("block", block_payload(ROOT, type="page", content=[TABLE_BLOCK_ID], parent_table="space")))
    entities.add_block(decode_record("block", block_payload(
        TABLE_BLOCK_ID, type="collection_view", parent_id=ROOT,
        view_ids=list(view_ids), collection_id=COLLECTION_ID, space_id=SPACE_ID,
    )))
    if with_collection:
        entities.collections[COLLECTION_ID] = decode_record("collection", COLLECTION)
    if with_view:
        entities.collection_views[VIEW_ID] = decode_record("collection_view", VIEW)
    return entities


class TestBuildColumns:
    """Tests for build_columns function."""

    def test_view_order_and_visibility(self):
        collection = decode_record("collection", COLLECTION)
        view = decode_record("collection_view", VIEW)
        columns = build_columns(view, collection)
        assert [c.name for c in columns] == ["Name", "Done"]
        assert [c.index for c in columns] == [0, 2]
        assert columns[1].type == "checkbox"

    def test_no_layout_shows_schema_title_first(self):
        collection = decode_record("collection", COLLECTION)
        view = decode_record("collection_view", {"id": VIEW_ID})
        names = [c.name for c in build_columns(view, collection)]
        assert names[0] == "Name"
        assert sorted(names) == ["Done", "Name", "Notes"]


class TestQueryCollectionViews:
    """Tests for query_collection_views function."""

    def test_rows_and_cells(self, fake):
        fake.queries[VIEW_ID] = _query_response(_row(100, "Write tests", "Yes"), _row(101, "Ship", "No"))
        entities = _entities()
        query_collection_views(fake.transport(), entities)

        block = entities.blocks[TABLE_BLOCK_ID]
        assert len(block.table_views) == 1
        table = block.table_views[0]
        assert entities.table_views == [table]
        assert table.collection.name == "Tasks"
        assert [r.block.id for r in table.rows] == [nid(100), nid(101)]
        assert table.rows[0].cells == [[["Write tests"]], [["Yes"]]]
        assert table.rows[0].block.title == "Write tests"
        assert table.total == 2

    def test_request_shape(self, fake):
        fake.queries[VIEW_ID] = _query_response()
        query_collection_views(fake.transport(), _entities())

        (body,) = fake.bodies(API_QUERY_COLLECTION)
        assert body["collection"] == {"id": COLLECTION_ID, "spaceId": SPACE_ID}
        assert body["collectionView"] == {"id": VIEW_ID, "spaceId": SPACE_ID}
        loader = body["loader"]
        assert loader["type"] == "reducer"
        assert loader["reducers"]["collection_group_results"] == {"type": "results", "limit": 50}
        assert loader["sort"] == [{"property": "d0ne", "direction": "descending"}]
        assert loader["searchQuery"] == ""
        assert loader["userTimeZone"] == "America/Los_Angeles"

    def test_user_time_zone_used(self, fake):
        fake.queries[VIEW_ID] = _query_response()
        entities = _entities()
        entities.users[nid(40)] = decode_record("notion_user", {"id": nid(40), "time_zone": "Europe/Paris"})
        query_collection_views(fake.transport(), entities)
        (body,) = fake.bodies(API_QUERY_COLLECTION)
        assert body["loader"]["userTimeZone"] == "Europe/Paris"

    def test_aggregations_requested_and_returned(self, fake):
        row = _row(100, "Write tests", "Yes")
        response = _query_response(row)
        response["result"]["aggregationResults"] = []
        response["result"]["reducerResults"]["title:count"] = {
            "type": "aggregation",
            "aggregationResult": {"type": "number", "value": 1},
        }
        fake.queries[VIEW_ID] = response
        entities = _entities()
        view = dict(VIEW, query2=dict(VIEW["query2"], aggregations=[{"property": "title", "aggregator": "count"}]))
        entities.collection_views[VIEW_ID] = decode_record("collection_view", view)
        query_collection_views(fake.transport(), entities)

        (body,) = fake.bodies(API_QUERY_COLLECTION)
        assert body["loader"]["reducers"]["title:count"] == {
            "type": "aggregation",
            "aggregation": {"property": "title", "aggregator": "count"},
        }
        (agg,) = entities.table_views[0].aggregations
        assert agg["name"] == "title:count"
        assert agg["aggregationResult"]["value"] == 1

    def test_flat_result_shape(self, fake):
        row = _row(100, "Old", "No")
        fake.queries[VIEW_ID] = {
            "result": {"type": "table", "blockIds": [row["id"]], "total": 1},
            "recordMap": record_map(row),
        }
        entities = query_collection_views(fake.transport(), _entities())
        assert [r.block.id for r in entities.table_views[0].rows] == [nid(100)]

    def test_missing_row_raises(self, fake):
        fake.queries[VIEW_ID] = _query_response(_row(100, "Here", "No"), block_ids=[nid(100), nid(101)])
        with pytest.raises(MissingEntityError, match=nid(101)):
            query_collection_views(fake.transport(), _entities())

    def test_missing_collection_raises(self, fake):
        with pytest.raises(MissingEntityError) as exc_info:
            query_collection_views(fake.transport(), _entities(with_collection=False))
        assert exc_info.value.kind == "collection"
        assert fake.requests == []

    def test_missing_view_raises(self, fake):
        with pytest.raises(MissingEntityError) as exc_info:
            query_collection_views(fake.transport(), _entities(with_view=False))
        assert exc_info.value.entity_id == VIEW_ID

    def test_block_without_views_raises(self, fake):
        with pytest.raises(MissingEntityError):
            query_collection_views(fake.transport(), _entities(view_ids=()))

    def test_bad_block_ids_raise(self, fake):
        fake.queries[VIEW_ID] = _query_response(block_ids=["nope"])
        with pytest.raises(DecodeError):
            query_collection_views(fake.transport(), _entities())


def test_make_loader_omits_empty_sort_and_filter():
    loader = make_loader(limit=10, time_zone="UTC")
    assert "sort" not in loader
    assert "filter" not in loader
    assert loader["reducers"]["collection_group_results"]["limit"] == 10
    assert loader["userTimeZone"] == "UTC"


def test_make_loader_older_aggregation_keys():
    aggregate = [
        {"property": "d0ne", "aggregation_type": "checked"},
        {"property": "n0te"},
        "junk",
    ]
    loader = make_loader(aggregations=aggregate)
    assert sorted(loader["reducers"]) == ["collection_group_results", "d0ne:checked"]
