import unicodedata
from dataclasses import replace

import pytest

from lexis_pipes import db
from lexis_pipes.corpus import aggregate
from lexis_pipes.frequency import build_frequency_table
from lexis_pipes.models import Skipped
from lexis_pipes.statistics import compare_word_proportions, confidence_interval, homogeneity_test
from lexis_pipes.transform import (
    compute_corpus_homogeneity,
    compute_pairwise_homogeneity,
    read_stopwords,
    split_outcomes,
)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "nested" / "analytics.db"


def nfc(words):
    return [unicodedata.normalize("NFC", w) for w in words]


@pytest.fixture
def tables():
    return [
        build_frequency_table(nfc(["ὁ", "λόγος", "λόγος", "ἔργον"]), "zeno"),
        build_frequency_table(nfc(["ἀρετή", "ὁ"]), "anaxagoras"),
        build_frequency_table([], "blank"),
    ]


def test_corpus_round_trip_keeps_order(db_path, tables):
    db.replace_corpus(db_path, tables)

    loaded = db.load_frequency_tables(db_path)

    assert [t.document_id for t in loaded] == ["zeno", "anaxagoras", "blank"]
    assert loaded == tables
    assert aggregate(loaded) == aggregate(tables)


def test_replace_corpus_overwrites(db_path, tables):
    db.replace_corpus(db_path, tables)
    db.replace_corpus(db_path, tables[:1])

    assert [t.document_id for t in db.load_frequency_tables(db_path)] == ["zeno"]


def test_word_counts_and_stopword_flags(db_path, tables):
    db.replace_corpus(db_path, tables, stopwords=read_stopwords())

    with db.get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT word, count, frequency, is_stopword FROM word_count "
            "WHERE document_id = 'zeno' ORDER BY count DESC, word"
        ).fetchall()
        document = conn.execute(
            "SELECT tokens, types, hapax_legomena FROM document WHERE document_id = 'zeno'"
        ).fetchone()

    assert rows[0][:3] == (unicodedata.normalize("NFC", "λόγος"), 2, 0.5)
    assert {row[0]: bool(row[3]) for row in rows}[unicodedata.normalize("NFC", "ὁ")] is True
    assert document == (4, 3, 2)


def test_skipped_are_replaced_per_stage(db_path):
    db.replace_skipped(db_path, "document", [Skipped("document", "a", "unreadable")])
    db.replace_skipped(db_path, "proportion", [Skipped("proportion", "a|b", "no tokens")])
    db.replace_skipped(db_path, "document", [Skipped("document", "c", "no tokens")])

    skipped = db.load_skipped(db_path)

    assert {(s.stage, s.subject) for s in skipped} == {("proportion", "a|b"), ("document", "c")}


def test_proportion_tests_round_trip(db_path, cat_dog_corpus):
    results = compare_word_proportions(cat_dog_corpus, "A", "B")

    db.replace_proportion_tests(db_path, [results])
    loaded = db.load_proportion_tests(db_path)

    assert loaded == results

    with db.get_connection(db_path) as conn:
        ranks = conn.execute("SELECT rank FROM proportion_test ORDER BY rank").fetchall()
    assert [r[0] for r in ranks] == [1, 2, 3, 4, 5]


def test_homogeneity_and_intervals_are_stored(db_path):
    result = homogeneity_test([100, 0, 0], [0, 0, 100])

    db.replace_homogeneity_tests(db_path, [replace(result, documents=("a", "b"))])
    db.replace_confidence_intervals(
        db_path, [replace(confidence_interval(3, 10), word="λόγος", document_id="a")]
    )

    with db.get_connection(db_path) as conn:
        homogeneity = conn.execute(
            "SELECT scope, comparison_id, documents, method, significant FROM homogeneity_test"
        ).fetchone()
        interval = conn.execute(
            "SELECT document_id, word, proportion FROM confidence_interval"
        ).fetchone()

    assert homogeneity == ("pair", "a|b", 2, "asymptotic", 1)
    assert interval == ("a", "λόγος", 0.3)


def test_two_document_corpus_keeps_pairwise_and_corpus_tests(db_path):
    corpus = aggregate([
        build_frequency_table(["a"] * 30 + ["b"] * 20 + ["c"] * 10, "x"),
        build_frequency_table(["a"] * 10 + ["b"] * 20 + ["c"] * 30, "y"),
    ])
    results, _ = split_outcomes(compute_pairwise_homogeneity(corpus, seed=0))
    results.append(compute_corpus_homogeneity(corpus, seed=0).value)

    db.replace_homogeneity_tests(db_path, results)

    with db.get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT scope, comparison_id, p_value FROM homogeneity_test ORDER BY scope"
        ).fetchall()

    assert [row[:2] for row in rows] == [("corpus", "x|y"), ("pair", "x|y")]
    assert rows[0][2] == pytest.approx(rows[1][2])
