"""Tests for folder/tag mapping and document discovery."""

from __future__ import annotations

from pathlib import Path

from vault_sync_server.config_schema import PairingConfig
from vault_sync_server.sync.mapper import (
    discover_documents,
    document_filename,
    folder_for_type,
    is_excluded,
    relative_document_path,
    resolve_tag_ids,
    resolve_type_id,
)


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


class TestRelativeDocumentPath:
    def test_inside_vault(self, pairing, vault):
        assert relative_document_path(vault / "Design" / "a.md", pairing) == "Design/a.md"

    def test_outside_vault(self, pairing, tmp_path):
        assert relative_document_path(tmp_path / "elsewhere.md", pairing) is None


class TestIsExcluded:
    def test_glob(self, pairing):
        assert is_excluded("Notes/todo.md", pairing) is True
        assert is_excluded("Design/todo.md", pairing) is False


# ---------------------------------------------------------------------------
# Type resolution
# ---------------------------------------------------------------------------


class TestResolveTypeId:
    def test_exact_folder(self, pairing, vault):
        assert resolve_type_id(vault / "Design" / "a.md", pairing) == 9

    def test_nested_folder_uses_ancestor(self, pairing, vault):
        assert resolve_type_id(vault / "Design" / "Combat" / "melee.md", pairing) == 9

    def test_vault_root(self, pairing, vault):
        assert resolve_type_id(vault / "index.md", pairing) == 1

    def test_unmapped_folder(self, pairing, vault):
        assert resolve_type_id(vault / "Art" / "a.md", pairing) is None

    def test_excluded(self, pairing, vault):
        assert resolve_type_id(vault / "Notes" / "a.md", pairing) is None

    def test_outside_vault(self, pairing, tmp_path):
        assert resolve_type_id(tmp_path / "a.md", pairing) is None

    def test_prefix_is_not_a_folder_match(self, vault):
        pairing = PairingConfig(
            container_id=1, vault_path=str(vault), folder_mappings={"Design": 9}
        )
        assert resolve_type_id(vault / "DesignDocs" / "a.md", pairing) is None

    def test_mapping_keys_are_normalised(self, vault):
        pairing = PairingConfig(
            container_id=1, vault_path=str(vault), folder_mappings={"/Design/Combat/": 4}
        )
        assert pairing.folder_mappings == {"Design/Combat": 4}
        assert resolve_type_id(vault / "Design" / "Combat" / "a.md", pairing) == 4

    def test_nearest_ancestor_wins(self, vault):
        pairing = PairingConfig(
            container_id=1,
            vault_path=str(vault),
            folder_mappings={"Design": 1, "Design/Systems": 2},
        )
        assert resolve_type_id(vault / "Design" / "Systems" / "Sub" / "x.md", pairing) == 2
        assert resolve_type_id(vault / "Design" / "Other" / "x.md", pairing) == 1


class TestFolderForType:
    def test_reverse_lookup(self, pairing):
        assert folder_for_type(9, pairing) == "Design"
        assert folder_for_type(1, pairing) == ""
        assert folder_for_type(42, pairing) is None

    def test_first_configured_folder_wins(self, vault):
        pairing = PairingConfig(
            container_id=1,
            vault_path=str(vault),
            folder_mappings={"Design/Combat": 3, "Design/Magic": 3},
        )
        assert folder_for_type(3, pairing) == "Design/Combat"


class TestDocumentFilename:
    def test_plain_name(self):
        assert document_filename("Combat Loop", "record-1") == "Combat Loop.md"

    def test_unsafe_characters_replaced(self):
        assert document_filename("Input/Output: v2?", "record-1") == "Input-Output- v2.md"

    def test_blank_name_uses_fallback(self):
        assert document_filename("  // ", "record-7") == "record-7.md"


class TestResolveTagIds:
    def test_maps_and_drops_unknown(self, pairing):
        assert resolve_tag_ids(["combat", "lore", "ui"], pairing) == [11, 12]

    def test_dedupes(self, pairing):
        assert resolve_tag_ids(["ui", "ui", "combat"], pairing) == [12, 11]


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class TestDiscoverDocuments:
    def test_finds_markdown_sorted(self, vault: Path):
        (vault / "b.md").write_text("b")
        (vault / "Design" / "a.md").write_text("a")
        (vault / "Design" / "image.png").write_bytes(b"\x89PNG")

        found = discover_documents(vault)

        assert found == sorted([(vault / "b.md").resolve(), (vault / "Design" / "a.md").resolve()])

    def test_skips_hidden_directories(self, vault: Path):
        (vault / ".obsidian").mkdir()
        (vault / ".obsidian" / "x.md").write_text("x")
        (vault / "visible.md").write_text("v")

        assert [p.name for p in discover_documents(vault)] == ["visible.md"]

    def test_exclude_patterns(self, vault: Path):
        (vault / "Notes" / "scratch.md").write_text("s")
        (vault / "keep.md").write_text("k")

        assert [p.name for p in discover_documents(vault, ["Notes/*"])] == ["keep.md"]

    def test_missing_vault(self, tmp_path: Path):
        assert discover_documents(tmp_path / "missing") == []
