"""Tests for notion_graph.graph - derived fields, child and parent links."""

import pytest

import notion_graph.graph as graph
from notion_fakes import block_payload, nid
from notion_graph.entities import EntitySet
from notion_graph.errors import MissingEntityError
from notion_graph.graph import derive_fields, proxy_image_url, resolve, resolve_block
from notion_graph.records import decode_record

ROOT = nid(1)


def _block(payload):
    return decode_record("block", payload)


def _entities(*payloads):
    entities = EntitySet(ROOT)
    for payload in payloads:
        entities.add_block(_block(payload))
    return entities


# =============================================================================
# Derived fields
# =============================================================================

class TestDeriveFields:
    """Tests for derive_fields function."""

    def test_title(self):
        block = _block(block_payload(nid(2), properties={"title": [["Hello "], ["world", [["b"]]]]}))
        derive_fields(block)
        assert block.title == "Hello world"
        assert block.title_full == [["Hello "], ["world", [["b"]]]]

    def test_todo_checked(self):
        block = _block(block_payload(nid(2), type="to_do", properties={"checked": [["Yes"]]}))
        derive_fields(block)
        assert block.is_checked is True

    def test_todo_unchecked(self):
        block = _block(block_payload(nid(2), type="to_do", title="task"))
        derive_fields(block)
        assert block.is_checked is False
        assert block.title == "task"

    def test_code(self):
        block = _block(block_payload(
            nid(2), type="code",
            properties={"title": [["print(1)"]], "language": [["Python"]]},
        ))
        derive_fields(block)
        assert block.code == "print(1)"
        assert block.code_language == "Python"

    def test_bookmark(self):
        block = _block(block_payload(
            nid(2), type="bookmark",
            properties={"link": [["https://example.com"]], "description": [["An example"]]},
        ))
        derive_fields(block)
        assert block.link == "https://example.com"
        assert block.description == "An example"

    def test_image_source_and_url(self):
        source = "https://s3-us-west-2.amazonaws.com/secure.notion-static.com/a/b.png"
        block = _block(block_payload(
            nid(2), type="image",
            properties={"source": [[source]], "caption": [["A picture"]]},
        ))
        derive_fields(block)
        assert block.source == source
        assert block.caption == "A picture"
        assert block.image_url.startswith("https://www.notion.so/image/https%3A%2F%2F")

    def test_source_from_format(self):
        block = _block(block_payload(nid(2), type="embed", format={"display_source": "https://x.test"}))
        derive_fields(block)
        assert block.source == "https://x.test"

    def test_file_size(self):
        block = _block(block_payload(nid(2), type="file", properties={"size": [["2.1MB"]]}))
        derive_fields(block)
        assert block.file_size == "2.1MB"


class TestProxyImageUrl:
    """Tests for proxy_image_url function."""

    def test_relative_notion_image(self):
        assert proxy_image_url("/images/page-cover/a.jpg") == "https://www.notion.so/images/page-cover/a.jpg"

    def test_external_image_unchanged(self):
        assert proxy_image_url("https://example.com/a.png") == "https://example.com/a.png"

    def test_already_proxied(self):
        url = "https://www.notion.so/image/abc"
        assert proxy_image_url(url) == url


# =============================================================================
# Child links
# =============================================================================

class TestResolveBlock:
    """Tests for resolve_block function."""

    def test_children_in_order(self):
        entities = _entities(
            block_payload(ROOT, type="page", content=[nid(3), nid(2)], parent_table="space"),
            block_payload(nid(2), parent_id=ROOT),
            block_payload(nid(3), parent_id=ROOT),
        )
        resolve_block(entities, entities.root())
        assert [b.id for b in entities.root().content] == [nid(3), nid(2)]

    def test_missing_children_left_out(self):
        entities = _entities(
            block_payload(ROOT, type="page", content=[nid(2), nid(3), nid(4)], parent_table="space"),
            block_payload(nid(2), parent_id=ROOT),
            block_payload(nid(4), parent_id=ROOT),
        )
        entities.skip.add(nid(3))
        resolve_block(entities, entities.root())
        assert [b.id for b in entities.root().content] == [nid(2), nid(4)]

    def test_content_is_shared_not_copied(self):
        entities = _entities(
            block_payload(ROOT, type="page", content=[nid(2)], parent_table="space"),
            block_payload(nid(2), parent_id=ROOT),
        )
        resolve_block(entities, entities.root())
        assert entities.root().content[0] is entities.blocks[nid(2)]

    def test_cycle_terminates_and_resolves_once(self, monkeypatch):
        entities = _entities(
            block_payload(ROOT, type="page", content=[nid(2)], parent_table="space"),
            block_payload(nid(2), type="toggle", content=[nid(3)], parent_id=ROOT),
            block_payload(nid(3), type="toggle", content=[nid(2), ROOT], parent_id=nid(2)),
        )
        calls = []
        original = graph.derive_fields

        def counting(block):
            calls.append(block.id)
            original(block)

        monkeypatch.setattr(graph, "derive_fields", counting)
        resolve_block(entities, entities.root())

        assert sorted(calls) == [ROOT, nid(2), nid(3)]
        assert entities.blocks[nid(3)].content[0] is entities.blocks[nid(2)]

    def test_resolved_block_not_redone(self, monkeypatch):
        entities = _entities(block_payload(ROOT, type="page", parent_table="space"))
        resolve_block(entities, entities.root())

        calls = []
        monkeypatch.setattr(graph, "derive_fields", calls.append)
        resolve_block(entities, entities.root())
        assert calls == []


# =============================================================================
# Whole-set resolution
# =============================================================================

class TestResolve:
    """Tests for resolve function."""

    def test_parents_linked(self):
        entities = _entities(
            block_payload(ROOT, type="page", content=[nid(2)], parent_table="space", parent_id=nid(50)),
            block_payload(nid(2), content=[nid(3)], parent_id=ROOT),
            block_payload(nid(3), parent_id=nid(2)),
        )
        resolve(entities)
        assert entities.root().parent is None
        assert entities.blocks[nid(2)].parent is entities.root()
        assert entities.blocks[nid(3)].parent is entities.blocks[nid(2)]

    def test_unreachable_blocks_resolved_too(self):
        entities = _entities(
            block_payload(ROOT, type="page", parent_table="space"),
            block_payload(nid(2), parent_id=ROOT, title="orphan"),
        )
        resolve(entities)
        assert entities.blocks[nid(2)].is_resolved
        assert entities.blocks[nid(2)].title == "orphan"

    def test_missing_parent_raises(self):
        entities = _entities(
            block_payload(ROOT, type="page", parent_table="space"),
            block_payload(nid(2), parent_id=nid(99)),
        )
        with pytest.raises(MissingEntityError) as exc_info:
            resolve(entities)
        assert exc_info.value.entity_id == nid(99)
        assert exc_info.value.kind == "parent"

    def test_linked_page_without_parent_allowed(self):
        entities = _entities(
            block_payload(ROOT, type="page", content=[nid(2)], parent_table="space"),
            block_payload(nid(2), type="page", parent_id=nid(99)),
        )
        resolve(entities)
        assert entities.blocks[nid(2)].parent is None

    def test_collection_parent_is_none(self):
        entities = _entities(
            block_payload(ROOT, type="page", parent_table="space"),
            block_payload(nid(2), type="page", parent_table="collection", parent_id=nid(40)),
        )
        resolve(entities)
        assert entities.blocks[nid(2)].parent is None

    def test_repeated_resolve_is_harmless(self):
        entities = _entities(
            block_payload(ROOT, type="page", content=[nid(2)], parent_table="space"),
            block_payload(nid(2), parent_id=ROOT),
        )
        resolve(entities)
        resolve(entities)
        assert [b.id for b in entities.root().content] == [nid(2)]
