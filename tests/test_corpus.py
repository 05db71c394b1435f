import pytest

from lexis_pipes.corpus import CorpusAggregator, aggregate
from lexis_pipes.errors import AggregationConflictError
from lexis_pipes.frequency import build_frequency_table


def test_aggregate_cat_dog(cat_dog_corpus):
    corpus = cat_dog_corpus

    assert corpus.documents == ("A", "B")
    assert set(corpus.words) == {"the", "cat", "sat", "dog", "ran"}
    assert corpus.row("the") == {"A": 1, "B": 1}
    assert corpus.row("cat") == {"A": 1, "B": 0}
    assert corpus.row("dog") == {"A": 0, "B": 1}
    assert corpus.count("ran", "A") == 0
    assert corpus.count("unseen", "A") == 0
    assert corpus.document_total("A") == 3


def test_rows_are_ordered_by_total_then_word(cat_dog_corpus):
    assert cat_dog_corpus.words == ("the", "cat", "dog", "ran", "sat")


def test_every_counted_word_is_a_row(cat_dog_tables, cat_dog_corpus):
    for document_id, table in cat_dog_tables.items():
        for word, count in table.counts.items():
            assert word in cat_dog_corpus.rows
            assert cat_dog_corpus.count(word, document_id) == count


def test_aggregation_is_order_independent():
    ta = build_frequency_table(["a", "b", "b", "c"], "A")
    tb = build_frequency_table(["b", "c", "c", "d"], "B")

    forward = aggregate({"A": ta, "B": tb})
    backward = aggregate({"B": tb, "A": ta})

    assert forward.as_counts() == backward.as_counts()
    assert forward.words == backward.words
    assert forward.row("c") == backward.row("c") == {"A": 1, "B": 2}
    assert forward.documents == ("A", "B")
    assert backward.documents == ("B", "A")


def test_incremental_matches_batch():
    tables = [
        build_frequency_table(["ἀρετή", "καί", "δίκη"], "plato"),
        build_frequency_table(["καί", "καί", "λόγος"], "aristotle"),
        build_frequency_table(["δίκη", "νόμος"], "solon"),
    ]

    aggregator = CorpusAggregator()
    for table in tables:
        aggregator.add(table)
    incremental = aggregator.build()

    batch = aggregate(tables)

    assert incremental == batch
    assert len(aggregator) == 3
    assert "solon" in aggregator


def test_duplicate_document_raises_and_keeps_first():
    aggregator = CorpusAggregator()
    aggregator.add(build_frequency_table(["a"], "doc"))

    with pytest.raises(AggregationConflictError):
        aggregator.add(build_frequency_table(["a", "a", "b"], "doc"))

    corpus = aggregator.build()
    assert corpus.documents == ("doc",)
    assert corpus.row("a") == {"doc": 1}
    assert "b" not in corpus.rows


def test_duplicate_in_iterable_raises():
    tables = [build_frequency_table(["a"], "x"), build_frequency_table(["b"], "x")]

    with pytest.raises(AggregationConflictError):
        aggregate(tables)


def test_no_tables_give_empty_corpus():
    corpus = aggregate({})

    assert corpus.is_empty
    assert corpus.documents == ()
    assert corpus.words == ()
    assert corpus.as_counts() == {}


def test_empty_document_is_a_zero_column():
    corpus = aggregate([
        build_frequency_table(["a", "b"], "full"),
        build_frequency_table([], "empty"),
    ])

    assert corpus.documents == ("full", "empty")
    assert corpus.row("a") == {"full": 1, "empty": 0}
    assert corpus.document_total("empty") == 0
    assert corpus.proportion("a", "empty") == 0.0
    assert corpus.column("empty") == {}


def test_inputs_are_not_mutated():
    table = build_frequency_table(["a", "b", "a"], "doc")
    before = dict(table.counts)

    aggregate({"other": table})

    assert dict(table.counts) == before
    assert table.document_id == "doc"


def test_restrict_drops_words_absent_from_selected_documents(cat_dog_corpus):
    pair = cat_dog_corpus.restrict(["B"])

    assert pair.documents == ("B",)
    assert set(pair.words) == {"the", "dog", "ran"}
    assert pair.document_total("B") == 3


def test_unknown_document_raises_key_error(cat_dog_corpus):
    with pytest.raises(KeyError):
        cat_dog_corpus.count("the", "C")
