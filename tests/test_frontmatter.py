"""Tests for YAML front-matter parsing and rewriting."""

from __future__ import annotations

import pytest

from vault_sync_server.sync.frontmatter import (
    extract_frontmatter,
    frontmatter_tags,
    has_frontmatter,
    render_frontmatter,
    replace_body,
    strip_frontmatter,
    update_frontmatter,
)

DOC = "---\ntitle: Combat\nremote_id: 42\n---\n# Body\n"


class TestExtract:
    def test_basic(self):
        assert extract_frontmatter(DOC) == {"title": "Combat", "remote_id": 42}

    def test_no_block(self):
        assert extract_frontmatter("# Just a body\n") == {}

    def test_empty_block(self):
        assert extract_frontmatter("---\n---\nBody") == {}
        assert has_frontmatter("---\n---\nBody") is False

    def test_crlf(self):
        assert extract_frontmatter("---\r\ntitle: A\r\n---\r\nBody") == {"title": "A"}

    def test_bom(self):
        assert extract_frontmatter("\ufeff" + DOC)["title"] == "Combat"

    def test_invalid_yaml_is_ignored(self):
        content = "---\ntitle: [unclosed\n---\nBody\n"
        assert extract_frontmatter(content) == {}
        assert strip_frontmatter(content) == content

    def test_non_mapping_root_is_ignored(self):
        assert extract_frontmatter("---\n- a\n- b\n---\nBody") == {}

    def test_block_at_end_of_file(self):
        assert extract_frontmatter("---\ntitle: A\n---") == {"title": "A"}


class TestStrip:
    def test_strips_block(self):
        assert strip_frontmatter(DOC) == "# Body\n"

    def test_without_block(self):
        assert strip_frontmatter("plain") == "plain"


class TestUpdate:
    def test_preserves_order_and_adds_keys(self):
        updated = update_frontmatter(DOC, {"synced_at": "now", "title": "Melee"})
        assert updated == "---\ntitle: Melee\nremote_id: 42\nsynced_at: now\n---\n# Body\n"

    def test_none_removes_key(self):
        updated = update_frontmatter(DOC, {"remote_id": None})
        assert extract_frontmatter(updated) == {"title": "Combat"}

    def test_adds_block_to_plain_document(self):
        updated = update_frontmatter("Body\n", {"remote_id": 7})
        assert updated == "---\nremote_id: 7\n---\nBody\n"

    def test_removing_last_key_drops_block(self):
        assert update_frontmatter("---\na: 1\n---\nBody", {"a": None}) == "Body"

    def test_unicode(self):
        updated = update_frontmatter("Body", {"title": "Épée"})
        assert "Épée" in updated


class TestRender:
    def test_empty_data(self):
        assert render_frontmatter({}, "Body") == "Body"


class TestReplaceBody:
    def test_keeps_block_verbatim(self):
        content = "---\ntitle:   Spaced\n---\nold"
        assert replace_body(content, "new") == "---\ntitle:   Spaced\n---\nnew"

    def test_block_without_trailing_newline(self):
        assert replace_body("---\na: 1\n---", "new") == "---\na: 1\n---\nnew"

    def test_plain_document(self):
        assert replace_body("old", "new") == "new"


class TestTags:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (["combat", "#ui"], ["combat", "ui"]),
            ("combat, #ui ,", ["combat", "ui"]),
            ("solo", ["solo"]),
            (None, []),
            ([1, None, "x"], ["1", "x"]),
        ],
    )
    def test_normalisation(self, raw, expected):
        assert frontmatter_tags({"tags": raw}) == expected

    def test_missing(self):
        assert frontmatter_tags({}) == []
