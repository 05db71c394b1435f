import pytest

from lexis_pipes.errors import AggregationConflictError, InputError
from lexis_pipes.extract import discover_documents, read_document


def test_discover_documents_recursively(documents_dir):
    documents = discover_documents(documents_dir)

    assert list(documents) == ["blank", "hymn", "iliad", "odyssey"]
    assert documents["iliad"] == documents_dir / "homer" / "iliad.txt"


def test_discover_with_pattern(documents_dir):
    documents = discover_documents(documents_dir, pattern="*.md")

    assert list(documents) == ["notes"]


def test_duplicate_stems_conflict(documents_dir):
    (documents_dir / "other").mkdir()
    (documents_dir / "other" / "iliad.txt").write_text("ἄλλη Ἰλιάς", encoding="utf-8")

    with pytest.raises(AggregationConflictError, match="iliad"):
        discover_documents(documents_dir)


def test_missing_folder(tmp_path):
    with pytest.raises(InputError, match="not found"):
        discover_documents(tmp_path / "nowhere")


def test_read_document_strips_bom(tmp_path):
    path = tmp_path / "bom.txt"
    path.write_bytes("﻿λόγος".encode("utf-8"))

    assert read_document(path) == "λόγος"


def test_read_document_rejects_invalid_utf8(tmp_path):
    path = tmp_path / "latin1.txt"
    path.write_bytes("café".encode("latin-1"))

    with pytest.raises(InputError, match="UTF-8"):
        read_document(path)


def test_read_missing_document(tmp_path):
    with pytest.raises(InputError, match="Could not read"):
        read_document(tmp_path / "missing.txt")
