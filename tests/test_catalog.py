"""Tests for the plant metadata catalog."""

import json

import pytest

from bedpacker.catalog import (
    CATALOG_ENV, DEFAULT_CATALOG, PlantMeta, load_catalog, symmetric_relations,
)
from bedpacker.exceptions import LayoutFileError


class TestDefaultCatalog:

    def test_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_CATALOG["Tomato"] = PlantMeta(spacing=1)

    def test_relations_name_catalog_kinds(self):
        for meta in DEFAULT_CATALOG.values():
            for other in meta.companions + meta.antagonists:
                assert other in DEFAULT_CATALOG

    def test_symmetric_relations(self):
        companions, antagonists = symmetric_relations(DEFAULT_CATALOG, "Fennel")
        # Fennel lists no companions; Tomato names Fennel as an antagonist
        assert companions == frozenset()
        assert {"Tomato", "Bean", "Pepper"} <= antagonists

    def test_unknown_kind_has_no_relations(self):
        assert symmetric_relations(DEFAULT_CATALOG, "Okra") == (frozenset(), frozenset())


class TestLoadCatalog:

    def test_default_without_path(self, monkeypatch):
        monkeypatch.delenv(CATALOG_ENV, raising=False)
        assert load_catalog() is DEFAULT_CATALOG

    def test_file_merges_over_default(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps({
            "Okra": {"spacing": 18, "height": 60, "root": "deep", "companions": ["Pepper"]},
            "Basil": {"spacing": 12, "height": 20},
        }))
        catalog = load_catalog(str(path))
        assert catalog["Okra"].companions == ("Pepper",)
        assert catalog["Basil"].spacing == 12
        assert catalog["Tomato"] == DEFAULT_CATALOG["Tomato"]
        assert "Okra" not in DEFAULT_CATALOG

    def test_env_variable(self, tmp_path, monkeypatch):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps({"Okra": {"spacing": 18}}))
        monkeypatch.setenv(CATALOG_ENV, str(path))
        assert "Okra" in load_catalog()

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text("{not json")
        with pytest.raises(LayoutFileError, match="not valid JSON"):
            load_catalog(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(LayoutFileError, match="Cannot read"):
            load_catalog(str(tmp_path / "missing.json"))

    def test_bad_entry(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps({"Okra": {"spacing": "wide"}}))
        with pytest.raises(LayoutFileError, match="Okra"):
            load_catalog(str(path))

    def test_meta_round_trip(self):
        meta = DEFAULT_CATALOG["Tomato"]
        assert PlantMeta.from_dict(meta.to_dict()) == meta
