import json
from pathlib import Path

import pytest

from interlinear.cache import MetadataCache
from interlinear.errors import PersistenceError
from interlinear.structures import DocumentMetadata, TextUnit


def _document(tmp_path: Path) -> Path:
    path = tmp_path / "model.svg"
    path.write_text("<svg/>", encoding="utf-8")
    return path


def test_metadata_path_is_colocated(tmp_path: Path) -> None:
    cache = MetadataCache()
    document = _document(tmp_path)

    assert cache.metadata_path(document) == tmp_path / "model.svg.meta.json"


def test_missing_metadata_loads_empty(tmp_path: Path) -> None:
    metadata = MetadataCache().load(_document(tmp_path))

    assert metadata.entries == {}
    assert metadata.content_fingerprint is None


def test_corrupt_metadata_loads_empty(tmp_path: Path) -> None:
    cache = MetadataCache()
    document = _document(tmp_path)
    cache.metadata_path(document).write_text("{not json", encoding="utf-8")

    assert cache.load(document).entries == {}


def test_malformed_entry_loads_empty(tmp_path: Path) -> None:
    cache = MetadataCache()
    document = _document(tmp_path)
    cache.metadata_path(document).write_text(
        json.dumps({"translations": {"a": "not an object"}}), encoding="utf-8"
    )

    assert cache.load(document).entries == {}


def test_save_and_load_preserve_entries(tmp_path: Path) -> None:
    cache = MetadataCache()
    document = _document(tmp_path)
    units = [
        TextUnit(unit_id="a", original_text="顧客", translated_text="고객"),
        TextUnit(unit_id="b", original_text="注文"),
    ]
    metadata = DocumentMetadata()
    metadata.rebuild(units)
    cache.stamp(metadata, cache.fingerprint(document))

    cache.save(document, metadata)
    stored = json.loads(cache.metadata_path(document).read_text(encoding="utf-8"))
    loaded = cache.load(document)

    assert set(stored["translations"]) == {"a"}
    assert stored["translations"]["a"] == {
        "id": "a",
        "originalText": "顧客",
        "translatedText": "고객",
    }
    assert loaded.content_fingerprint == cache.fingerprint(document)
    assert loaded.last_modified > 0
    assert loaded.lookup(units[0]) == "고객"


def test_lookup_requires_matching_source_text() -> None:
    metadata = DocumentMetadata()
    metadata.rebuild([TextUnit(unit_id="a", original_text="顧客", translated_text="고객")])

    assert metadata.lookup(TextUnit(unit_id="a", original_text="顧客名")) is None
    assert metadata.lookup(TextUnit(unit_id="z", original_text="顧客")) is None


def test_save_failure_raises_persistence_error(tmp_path: Path) -> None:
    document = tmp_path / "missing" / "model.svg"

    with pytest.raises(PersistenceError):
        MetadataCache().save(document, DocumentMetadata())


def test_fingerprint_changes_with_content(tmp_path: Path) -> None:
    cache = MetadataCache()
    document = _document(tmp_path)
    before = cache.fingerprint(document)
    document.write_text("<svg><text/></svg>", encoding="utf-8")

    assert cache.fingerprint(document) != before
    assert len(before) == 64
