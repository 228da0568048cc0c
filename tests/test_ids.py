"""Tests for notion_graph.ids - id normalization and URL extraction."""

import pytest

from notion_graph.ids import (
    extract_id_from_url,
    is_valid_dash_id,
    is_valid_id,
    is_valid_no_dash_id,
    normalize_id,
    notion_url,
    to_no_dash_id,
)

DASHED = "c969c945-5d7c-4dd7-9c7f-860f3ace6429"
NO_DASH = "c969c9455d7c4dd79c7f860f3ace6429"


class TestNormalizeId:
    """Tests for normalize_id function."""

    def test_no_dash_gets_dashes(self):
        assert normalize_id(NO_DASH) == DASHED

    def test_dashed_is_unchanged(self):
        assert normalize_id(DASHED) == DASHED

    def test_uppercase_is_lowered(self):
        assert normalize_id(NO_DASH.upper()) == DASHED

    def test_both_forms_are_equal_after_normalizing(self):
        assert normalize_id(NO_DASH) == normalize_id(DASHED)

    def test_idempotent(self):
        assert normalize_id(normalize_id(NO_DASH)) == DASHED

    def test_surrounding_whitespace_ignored(self):
        assert normalize_id(f"  {NO_DASH}\n") == DASHED

    def test_wrong_length_raises(self):
        with pytest.raises(ValueError, match="length"):
            normalize_id("abc123")

    def test_non_hex_raises(self):
        with pytest.raises(ValueError, match="characters"):
            normalize_id("z" * 32)

    def test_non_string_raises(self):
        with pytest.raises(ValueError):
            normalize_id(None)


class TestValidity:
    """Tests for the is_valid_* predicates."""

    def test_dash_form(self):
        assert is_valid_dash_id(DASHED)
        assert not is_valid_dash_id(NO_DASH)

    def test_dashes_in_wrong_places(self):
        shifted = "c969c9455-d7c-4dd7-9c7f-860f3ace6429"
        assert not is_valid_dash_id(shifted)

    def test_no_dash_form(self):
        assert is_valid_no_dash_id(NO_DASH)
        assert not is_valid_no_dash_id(DASHED)

    def test_either_form(self):
        assert is_valid_id(DASHED)
        assert is_valid_id(NO_DASH)
        assert not is_valid_id("not-an-id")

    def test_to_no_dash(self):
        assert to_no_dash_id(DASHED) == NO_DASH
        assert to_no_dash_id("garbage") == ""


class TestExtractIdFromUrl:
    """Tests for extract_id_from_url function."""

    def test_bare_id(self):
        assert extract_id_from_url(NO_DASH) == DASHED

    def test_title_slug_url(self):
        url = f"https://www.notion.so/Advanced-web-spidering-{NO_DASH}"
        assert extract_id_from_url(url) == DASHED

    def test_workspace_url(self):
        url = f"https://notion.so/myworkspace/Some-Page-{NO_DASH}"
        assert extract_id_from_url(url) == DASHED

    def test_anchor_and_query_dropped(self):
        url = f"https://www.notion.so/{NO_DASH}?v=1#block-anchor"
        assert extract_id_from_url(url) == DASHED

    def test_hyphenated_id_in_url(self):
        url = f"https://www.notion.so/Title-{DASHED}"
        assert extract_id_from_url(url) == DASHED

    def test_non_notion_url(self):
        assert extract_id_from_url(f"https://example.com/{NO_DASH}") is None

    def test_url_without_id(self):
        assert extract_id_from_url("https://www.notion.so/just-a-title") is None


def test_notion_url():
    assert notion_url(DASHED) == f"https://www.notion.so/{NO_DASH}"
