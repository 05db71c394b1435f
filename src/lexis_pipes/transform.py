import json
import logging
import re
import unicodedata
from dataclasses import replace
from itertools import combinations
from pathlib import Path
from typing import Iterable, TypeVar

from lexis_pipes.corpus import CorpusAggregator
from lexis_pipes.errors import InputError, LexisError
from lexis_pipes.extract import read_document
from lexis_pipes.frequency import build_frequency_table
from lexis_pipes.models import (
    ConfidenceInterval,
    CorpusTable,
    DocumentFrequencyTable,
    HomogeneityResult,
    Outcome,
    ProportionTestResult,
    RunReport,
    Skipped,
    frequency_order,
)
from lexis_pipes.statistics import (
    DEFAULT_SIMULATIONS,
    compare_word_proportions,
    confidence_interval,
    homogeneity_test,
    table_homogeneity_test,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Letters (with any combining marks left after NFC), optionally joined or
# terminated by an elision mark (δ’, ἀλλ’)
LETTERS = r"(?:[^\W\d_]|[\u0300-\u036f])+"
TOKEN_RE = re.compile(rf"{LETTERS}(?:’{LETTERS})*’?")

# Apostrophe variants used for elision in digital Greek texts
ELISION_MARKS = {"'": "’", "ʼ": "’", "᾽": "’"}

COMBINING_GRAVE = "\u0300"
COMBINING_ACUTE = "\u0301"


def normalize_text(text: str, strip_diacritics: bool = False) -> str:
    """Normalize text for word counting.

    Applies transformations:
    1. Unify elision marks to U+2019: "δ'" → "δ’"
    2. Turn grave accents into acute: "καὶ" → "καί" (the grave only marks
       a word followed by another word, not a different word)
    3. Optionally remove all diacritics: "λόγος" → "λογος"
    4. Recompose to NFC and convert to lowercase

    Args:
        text: Raw text to normalize
        strip_diacritics: Remove accents and breathings

    Returns:
        Normalized text

    Examples:
        >>> normalize_text("Καὶ τὸν Λόγον")
        'καί τόν λόγον'
        >>> normalize_text("Καὶ τὸν Λόγον", strip_diacritics=True)
        'και τον λογον'
    """
    for mark, replacement in ELISION_MARKS.items():
        text = text.replace(mark, replacement)

    decomposed = unicodedata.normalize("NFD", text)
    if strip_diacritics:
        decomposed = "".join(c for c in decomposed if not unicodedata.combining(c))
    else:
        decomposed = decomposed.replace(COMBINING_GRAVE, COMBINING_ACUTE)

    return unicodedata.normalize("NFC", decomposed).lower()


def read_stopwords(strip_diacritics: bool = False) -> set[str]:
    """Read all stopwords from the included txt file.

    Stopwords are normalized the same way as document text, so they match
    tokens produced with the same `strip_diacritics` setting.

    Returns:
        A set of string, each string being a stopword
    """
    package_dir = Path(__file__).parent
    stopwords_path = package_dir / "data" / "stopwords.txt"
    with open(stopwords_path, "r", encoding="utf-8") as f:
        return set(
            normalize_text(line.strip(), strip_diacritics=strip_diacritics)
            for line in f
            if line.strip()
        )


def tokenize(
    text: str,
    *,
    strip_diacritics: bool = False,
    stopwords: set[str] | None = None,
    min_length: int = 1,
) -> list[str]:
    """Split text into normalized word tokens.

    Punctuation (including the Greek ano teleia and question mark) and digits
    are dropped, elided forms keep their apostrophe.

    Args:
        text: Raw document text
        strip_diacritics: Remove accents and breathings before counting
        stopwords: Words to leave out, normalized with the same settings
        min_length: Minimum number of characters for a token to be kept

    Examples:
        >>> tokenize("Μῆνιν ἄειδε, θεά· δ' ἄρα 12")
        ['μῆνιν', 'ἄειδε', 'θεά', 'δ’', 'ἄρα']
    """
    normalized = normalize_text(text, strip_diacritics=strip_diacritics)
    tokens = TOKEN_RE.findall(normalized)

    return [
        token
        for token in tokens
        if len(token) >= min_length and not (stopwords and token in stopwords)
    ]


def table_to_dict(table: DocumentFrequencyTable) -> dict:
    """Serialize a frequency table to a JSON compatible dict."""
    return {
        "document_id": table.document_id,
        "total": table.total,
        "counts": dict(table.counts),
    }


def table_from_dict(data: dict) -> DocumentFrequencyTable:
    """Rebuild a frequency table from `table_to_dict` output.

    Raises:
        InputError: If fields are missing or the stored total does not match
    """
    try:
        table = DocumentFrequencyTable(
            document_id=str(data["document_id"]),
            counts=dict(data["counts"]),
        )
        stored_total = data.get("total", table.total)
    except InputError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise InputError(f"Malformed frequency table: {e}") from e

    if stored_total != table.total:
        raise InputError(
            f"Stored total {stored_total} does not match counts ({table.total}) "
            f"for '{table.document_id}'"
        )
    return table


def compute_document_table(
    document_id: str,
    path: str | Path,
    *,
    strip_diacritics: bool = False,
    stopwords: set[str] | None = None,
    min_length: int = 1,
) -> DocumentFrequencyTable:
    """Read, tokenize and count a single document.

    Raises:
        InputError: If the document cannot be read
    """
    text = read_document(path)
    tokens = tokenize(
        text,
        strip_diacritics=strip_diacritics,
        stopwords=stopwords,
        min_length=min_length,
    )
    return build_frequency_table(tokens, document_id=document_id)


def compute_document_tables(
    documents: dict[str, Path],
    *,
    include_empty: bool = True,
    strip_diacritics: bool = False,
    stopwords: set[str] | None = None,
    min_length: int = 1,
) -> list[Outcome[DocumentFrequencyTable]]:
    """Build frequency tables for all documents, isolating failures.

    A document that cannot be read is reported as skipped and does not stop
    the others. Documents without tokens are kept as empty tables unless
    `include_empty` is False.

    Args:
        documents: Mapping of document id to path (see `discover_documents`)
        include_empty: Keep documents without tokens as all-zero columns

    Returns:
        One Outcome per document, in the order of `documents`
    """
    outcomes: list[Outcome[DocumentFrequencyTable]] = []

    for document_id, path in documents.items():
        try:
            table = compute_document_table(
                document_id,
                path,
                strip_diacritics=strip_diacritics,
                stopwords=stopwords,
                min_length=min_length,
            )
        except InputError as e:
            logger.warning(f"Skipping document '{document_id}': {e}")
            outcomes.append(Outcome.failure("document", document_id, str(e)))
            continue

        if table.is_empty and not include_empty:
            logger.warning(f"Skipping document '{document_id}': no tokens")
            outcomes.append(Outcome.failure("document", document_id, "no tokens"))
            continue

        logger.info(f"Counted {table.total} tokens ({table.types} types) in '{document_id}'")
        outcomes.append(Outcome.success(table))

    return outcomes


def load_frequency_tables(tables_dir: str | Path) -> list[Outcome[DocumentFrequencyTable]]:
    """Load all stored frequency tables ({document_id}.json) from a folder.

    Tables that cannot be parsed are reported as skipped.
    """
    outcomes: list[Outcome[DocumentFrequencyTable]] = []

    for table_file in sorted(Path(tables_dir).glob("*.json")):
        try:
            data = json.loads(table_file.read_text(encoding="utf-8"))
            outcomes.append(Outcome.success(table_from_dict(data)))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, InputError) as e:
            logger.warning(f"Skipping stored table {table_file.name}: {e}")
            outcomes.append(Outcome.failure("document", table_file.stem, str(e)))

    return outcomes


def split_outcomes(outcomes: Iterable[Outcome[T]]) -> tuple[list[T], list[Skipped]]:
    """Separate successful values from skipped items."""
    values: list[T] = []
    skipped: list[Skipped] = []
    for outcome in outcomes:
        if outcome.ok:
            values.append(outcome.value)
        else:
            skipped.append(outcome.skipped)
    return values, skipped


def compute_corpus(outcomes: Iterable[Outcome[DocumentFrequencyTable]]) -> RunReport:
    """Aggregate all successful document tables into a corpus table.

    Raises:
        AggregationConflictError: If two documents share an identifier
    """
    aggregator = CorpusAggregator()
    skipped: list[Skipped] = []

    for outcome in outcomes:
        if not outcome.ok:
            skipped.append(outcome.skipped)
            continue
        aggregator.add(outcome.value)

    corpus = aggregator.build()
    logger.info(
        f"Aggregated {len(corpus.documents)} documents into {len(corpus.words)} words "
        f"({len(skipped)} skipped)"
    )
    return RunReport(corpus=corpus, skipped=skipped)


def compute_pairwise_homogeneity(
    corpus: CorpusTable,
    simulations: int = DEFAULT_SIMULATIONS,
    seed: int | None = None,
) -> list[Outcome[HomogeneityResult]]:
    """Run a chi-square homogeneity test for every pair of documents."""
    outcomes: list[Outcome[HomogeneityResult]] = []

    for document_a, document_b in combinations(corpus.documents, 2):
        subject = f"{document_a}|{document_b}"
        pair = corpus.restrict([document_a, document_b])
        counts_a = [pair.rows[word][0] for word in pair.words]
        counts_b = [pair.rows[word][1] for word in pair.words]

        try:
            result = homogeneity_test(counts_a, counts_b, simulations=simulations, seed=seed)
        except LexisError as e:
            logger.warning(f"Skipping homogeneity test {subject}: {e}")
            outcomes.append(Outcome.failure("homogeneity", subject, str(e)))
            continue

        outcomes.append(Outcome.success(replace(result, documents=(document_a, document_b))))

    return outcomes


def compute_corpus_homogeneity(
    corpus: CorpusTable,
    simulations: int = DEFAULT_SIMULATIONS,
    seed: int | None = None,
) -> Outcome[HomogeneityResult]:
    """Run a single chi-square homogeneity test across all non-empty documents."""
    documents = [d for d in corpus.documents if corpus.document_total(d) > 0]
    excluded = [d for d in corpus.documents if d not in documents]
    if excluded:
        logger.info(f"Leaving empty documents out of corpus-wide test: {excluded}")

    subject = "|".join(documents)
    restricted = corpus.restrict(documents)
    matrix = [
        [restricted.rows[word][i] for word in restricted.words]
        for i in range(len(documents))
    ]

    try:
        result = table_homogeneity_test(matrix, simulations=simulations, seed=seed)
    except LexisError as e:
        logger.warning(f"Skipping corpus-wide homogeneity test: {e}")
        return Outcome.failure("homogeneity", subject or "corpus", str(e))

    return Outcome.success(replace(result, documents=tuple(documents), scope="corpus"))


def compute_proportion_tests(
    corpus: CorpusTable,
    pairs: list[tuple[str, str]] | None = None,
    method: str = "chi_square",
) -> list[Outcome[list[ProportionTestResult]]]:
    """Run per-word proportion tests for document pairs.

    Args:
        corpus: The aggregated corpus
        pairs: Document pairs to compare, all pairs when None
        method: "chi_square" or "fisher"

    Returns:
        One Outcome per pair, each holding results ranked by p-value
    """
    if pairs is None:
        pairs = list(combinations(corpus.documents, 2))

    outcomes: list[Outcome[list[ProportionTestResult]]] = []
    for document_a, document_b in pairs:
        subject = f"{document_a}|{document_b}"
        try:
            results = compare_word_proportions(corpus, document_a, document_b, method=method)
        except LexisError as e:
            logger.warning(f"Skipping proportion tests {subject}: {e}")
            outcomes.append(Outcome.failure("proportion", subject, str(e)))
            continue
        except KeyError as e:
            logger.warning(f"Skipping proportion tests {subject}: {e}")
            outcomes.append(Outcome.failure("proportion", subject, f"unknown document {e}"))
            continue

        outcomes.append(Outcome.success(results))

    return outcomes


def compute_confidence_intervals(
    corpus: CorpusTable,
    top_n: int = 20,
    confidence_level: float = 0.95,
) -> list[Outcome[list[ConfidenceInterval]]]:
    """Compute exact intervals for the most frequent words of each document.

    Raises:
        InputError: If top_n is below 1
    """
    if top_n < 1:
        raise InputError(f"top_n must be at least 1, got {top_n}")

    outcomes: list[Outcome[list[ConfidenceInterval]]] = []

    for document_id in corpus.documents:
        total = corpus.document_total(document_id)
        if total == 0:
            logger.warning(f"Skipping confidence intervals for '{document_id}': no tokens")
            outcomes.append(Outcome.failure("interval", document_id, "no tokens"))
            continue

        top_words = sorted(corpus.column(document_id).items(), key=frequency_order)[:top_n]
        try:
            intervals = [
                replace(
                    confidence_interval(count, total, confidence_level),
                    word=word,
                    document_id=document_id,
                )
                for word, count in top_words
            ]
        except LexisError as e:
            logger.warning(f"Skipping confidence intervals for '{document_id}': {e}")
            outcomes.append(Outcome.failure("interval", document_id, str(e)))
            continue

        outcomes.append(Outcome.success(intervals))

    return outcomes


def drop_empty_tables(
    outcomes: Iterable[Outcome[DocumentFrequencyTable]],
) -> list[Outcome[DocumentFrequencyTable]]:
    """Turn tables without tokens into skipped documents."""
    return [
        Outcome.failure("document", outcome.value.document_id, "no tokens")
        if outcome.ok and outcome.value.is_empty
        else outcome
        for outcome in outcomes
    ]
