import json
import unicodedata

import pytest

from lexis_pipes.corpus import aggregate
from lexis_pipes.errors import AggregationConflictError, InputError
from lexis_pipes.extract import discover_documents
from lexis_pipes.frequency import build_frequency_table
from lexis_pipes.models import Outcome
from lexis_pipes.transform import (
    compute_confidence_intervals,
    compute_corpus,
    compute_corpus_homogeneity,
    compute_document_tables,
    compute_pairwise_homogeneity,
    compute_proportion_tests,
    drop_empty_tables,
    load_frequency_tables,
    normalize_text,
    read_stopwords,
    split_outcomes,
    table_from_dict,
    table_to_dict,
    tokenize,
)


def nfc(words):
    return [unicodedata.normalize("NFC", w) for w in words]


class TestTokenize:
    def test_greek_punctuation_and_digits_are_removed(self):
        tokens = tokenize("Μῆνιν ἄειδε, θεά· δ' ἄρα 12;")

        assert tokens == nfc(["μῆνιν", "ἄειδε", "θεά", "δ’", "ἄρα"])

    def test_grave_becomes_acute(self):
        assert normalize_text("Καὶ τὸν") == unicodedata.normalize("NFC", "καί τόν")
        assert tokenize("καὶ καί") == nfc(["καί", "καί"])

    def test_strip_diacritics(self):
        tokens = tokenize("Λόγος καὶ ἔργον", strip_diacritics=True)

        assert tokens == ["λογος", "και", "εργον"]

    def test_stopwords_are_removed(self):
        tokens = tokenize("ὁ λόγος καὶ τὸ ἔργον", stopwords=read_stopwords())

        assert tokens == nfc(["λόγος", "ἔργον"])

    def test_stopwords_without_diacritics(self):
        stopwords = read_stopwords(strip_diacritics=True)
        tokens = tokenize("ὁ λόγος καὶ τὸ ἔργον", strip_diacritics=True, stopwords=stopwords)

        assert tokens == ["λογος", "εργον"]

    def test_min_length(self):
        assert tokenize("ὁ λόγος ἐν ἀρχῇ", min_length=3) == nfc(["λόγος", "ἀρχῇ"])

    def test_latin_script(self):
        assert tokenize("The cat, the DOG! 2024") == ["the", "cat", "the", "dog"]

    def test_empty_text(self):
        assert tokenize("  · ; 12 ") == []


class TestDocumentTables:
    def test_one_outcome_per_document(self, documents_dir):
        outcomes = compute_document_tables(discover_documents(documents_dir))
        tables, skipped = split_outcomes(outcomes)

        assert [t.document_id for t in tables] == ["blank", "hymn", "iliad", "odyssey"]
        assert skipped == []
        assert tables[0].is_empty

    def test_unreadable_document_is_skipped(self, documents_dir):
        (documents_dir / "broken.txt").write_bytes(b"\xff\xfe\xfa not utf-8")

        outcomes = compute_document_tables(discover_documents(documents_dir))
        tables, skipped = split_outcomes(outcomes)

        assert len(tables) == 4
        assert len(skipped) == 1
        assert skipped[0].stage == "document"
        assert skipped[0].subject == "broken"
        assert "UTF-8" in skipped[0].reason

    def test_empty_documents_can_be_excluded(self, documents_dir):
        outcomes = compute_document_tables(
            discover_documents(documents_dir), include_empty=False
        )
        tables, skipped = split_outcomes(outcomes)

        assert "blank" not in [t.document_id for t in tables]
        assert [(s.subject, s.reason) for s in skipped] == [("blank", "no tokens")]

    def test_drop_empty_tables(self):
        outcomes = [
            Outcome.success(build_frequency_table([], "empty")),
            Outcome.success(build_frequency_table(["a"], "full")),
        ]

        tables, skipped = split_outcomes(drop_empty_tables(outcomes))

        assert [t.document_id for t in tables] == ["full"]
        assert skipped[0].subject == "empty"


class TestStoredTables:
    def test_table_dict_round_trip(self):
        table = build_frequency_table(["λόγος", "καί", "λόγος"], "john")

        assert table_from_dict(json.loads(json.dumps(table_to_dict(table)))) == table

    def test_mismatched_total_is_rejected(self):
        with pytest.raises(InputError, match="does not match"):
            table_from_dict({"document_id": "d", "total": 5, "counts": {"a": 2}})

    def test_missing_counts_are_rejected(self):
        with pytest.raises(InputError, match="Malformed"):
            table_from_dict({"document_id": "d"})

    def test_corrupt_files_are_skipped(self, tmp_path):
        good = build_frequency_table(["a", "b"], "good")
        (tmp_path / "good.json").write_text(json.dumps(table_to_dict(good)), encoding="utf-8")
        (tmp_path / "bad.json").write_text("{not json", encoding="utf-8")

        tables, skipped = split_outcomes(load_frequency_tables(tmp_path))

        assert tables == [good]
        assert [s.subject for s in skipped] == ["bad"]


class TestCorpus:
    def test_skipped_documents_are_reported(self):
        outcomes = [
            Outcome.success(build_frequency_table(["a", "b"], "x")),
            Outcome.failure("document", "y", "unreadable"),
            Outcome.success(build_frequency_table(["b"], "z")),
        ]

        report = compute_corpus(outcomes)

        assert report.corpus.documents == ("x", "z")
        assert report.corpus.row("b") == {"x": 1, "z": 1}
        assert [s.subject for s in report.skipped] == ["y"]

    def test_duplicate_documents_abort(self):
        outcomes = [
            Outcome.success(build_frequency_table(["a"], "x")),
            Outcome.success(build_frequency_table(["b"], "x")),
        ]

        with pytest.raises(AggregationConflictError):
            compute_corpus(outcomes)


@pytest.fixture
def corpus_with_empty():
    return aggregate([
        build_frequency_table(["a"] * 30 + ["b"] * 20 + ["c"] * 10, "x"),
        build_frequency_table(["a"] * 10 + ["b"] * 20 + ["c"] * 30, "y"),
        build_frequency_table([], "empty"),
    ])


class TestComparisons:
    def test_pairwise_homogeneity_skips_empty_documents(self, corpus_with_empty):
        results, skipped = split_outcomes(compute_pairwise_homogeneity(corpus_with_empty, seed=0))

        assert [r.documents for r in results] == [("x", "y")]
        assert results[0].scope == "pair"
        assert results[0].significant
        assert {s.subject for s in skipped} == {"x|empty", "y|empty"}
        assert all(s.stage == "homogeneity" for s in skipped)
        assert all("insufficient data" in s.reason for s in skipped)

    def test_corpus_homogeneity_leaves_out_empty_documents(self, corpus_with_empty):
        outcome = compute_corpus_homogeneity(corpus_with_empty, seed=0)

        assert outcome.ok
        assert outcome.value.documents == ("x", "y")
        assert outcome.value.scope == "corpus"

    def test_corpus_homogeneity_with_one_document_is_skipped(self):
        corpus = aggregate([build_frequency_table(["a", "b"], "only")])

        outcome = compute_corpus_homogeneity(corpus)

        assert not outcome.ok
        assert outcome.skipped.stage == "homogeneity"

    def test_proportion_tests_for_all_pairs(self, corpus_with_empty):
        comparisons, skipped = split_outcomes(compute_proportion_tests(corpus_with_empty))

        assert len(comparisons) == 1
        assert [r.word for r in comparisons[0]][-1] == "b"
        assert {s.subject for s in skipped} == {"x|empty", "y|empty"}

    def test_proportion_tests_for_unknown_document(self, corpus_with_empty):
        outcomes = compute_proportion_tests(corpus_with_empty, pairs=[("x", "nope")])

        assert not outcomes[0].ok
        assert "nope" in outcomes[0].skipped.reason

    def test_confidence_intervals_top_n(self, corpus_with_empty):
        per_document, skipped = split_outcomes(
            compute_confidence_intervals(corpus_with_empty, top_n=2)
        )

        assert [[ci.word for ci in intervals] for intervals in per_document] == [
            ["a", "b"],
            ["c", "b"],
        ]
        assert per_document[0][0].document_id == "x"
        assert per_document[0][0].count == 30
        assert per_document[0][0].total == 60
        assert [(s.subject, s.reason) for s in skipped] == [("empty", "no tokens")]

    @pytest.mark.parametrize("top_n", [0, -3])
    def test_confidence_intervals_reject_non_positive_top_n(self, corpus_with_empty, top_n):
        with pytest.raises(InputError, match="top_n"):
            compute_confidence_intervals(corpus_with_empty, top_n=top_n)
