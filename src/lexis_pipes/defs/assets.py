from pathlib import Path
from typing import Optional

import dagster as dg
from pydantic import Field

from lexis_pipes.config import EXPORT_DIR
from lexis_pipes.corpus import aggregate
from lexis_pipes.defs.resources import AnalyticsDB, CorpusStore
from lexis_pipes.export import write_corpus_csv, write_proportion_csv, write_skipped_csv
from lexis_pipes.models import CorpusTable, DocumentFrequencyTable
from lexis_pipes.statistics import DEFAULT_SIMULATIONS
from lexis_pipes.transform import (
    compute_confidence_intervals,
    compute_corpus,
    compute_corpus_homogeneity,
    compute_document_table,
    compute_pairwise_homogeneity,
    compute_proportion_tests,
    drop_empty_tables,
    read_stopwords,
    split_outcomes,
)

# Partition Definitions
document_partitions = dg.DynamicPartitionsDefinition(name="documents")


def load_corpus(analytics_db: AnalyticsDB) -> CorpusTable:
    """Rebuild the corpus table from the word counts stored in SQLite."""
    return aggregate(analytics_db.load_frequency_tables())


# ==============================================================================
# Documents Domain: Text files and their per-document frequency tables
# ==============================================================================


class TokenizerConfig(dg.Config):
    """Configuration for turning document text into tokens.

    All documents of a corpus should be materialized with the same settings,
    otherwise their frequency tables are not comparable.
    """

    strip_diacritics: bool = Field(
        default=False,
        description="Remove accents and breathings before counting",
    )
    remove_stopwords: bool = Field(
        default=False,
        description="Leave out the Greek function words in data/stopwords.txt",
    )
    min_length: int = Field(
        default=1,
        description="Minimum number of characters for a token to be counted",
    )


@dg.asset
def documents(context: dg.AssetExecutionContext, corpus_store: CorpusStore) -> list[str]:
    """Discover all documents in the corpus folder.

    Every document becomes a partition of document_frequency. Partitions of
    documents that were removed from the folder are deleted.
    """
    context.log.info(f"Scanning {corpus_store.documents_dir} for documents")
    found = corpus_store.discover_documents()
    context.log.info(f"Found {len(found)} documents")

    current_partitions = set(context.instance.get_dynamic_partitions("documents"))
    new_partitions = [document_id for document_id in found if document_id not in current_partitions]
    removed_partitions = sorted(current_partitions - set(found))

    if new_partitions:
        context.instance.add_dynamic_partitions("documents", new_partitions)
        context.log.info(f"Found {len(new_partitions)} new documents")

    for document_id in removed_partitions:
        context.instance.delete_dynamic_partition("documents", document_id)
        context.log.info(f"Removed partition for missing document '{document_id}'")

    return list(found)


@dg.asset_check(asset=documents)
def documents_found_count(
    _: dg.AssetCheckExecutionContext, documents: list[str]
) -> dg.AssetCheckResult:
    """Check that the corpus folder holds at least two documents to compare."""
    min_documents = 2
    count = len(documents)
    passed = count >= min_documents

    return dg.AssetCheckResult(
        passed=passed,
        description=f"Found {count} documents (minimum: {min_documents})"
        if passed
        else f"Only found {count} documents, expected at least {min_documents}",
        metadata={"count": count, "min_count": min_documents},
    )


@dg.asset(
    partitions_def=document_partitions,
    io_manager_key="frequency_table_io",
    deps=[dg.AssetDep("documents")],
)
def document_frequency(
    context: dg.AssetExecutionContext,
    config: TokenizerConfig,
    corpus_store: CorpusStore,
) -> DocumentFrequencyTable:
    """Tokenize a single document and count its words.

    Stored as {document_id}.json in the tables directory. A document that
    cannot be read fails only its own partition.
    """
    document_id = context.partition_key
    path = corpus_store.document_path(document_id)

    stopwords = (
        read_stopwords(strip_diacritics=config.strip_diacritics)
        if config.remove_stopwords
        else None
    )

    table = compute_document_table(
        document_id,
        path,
        strip_diacritics=config.strip_diacritics,
        stopwords=stopwords,
        min_length=config.min_length,
    )

    if table.is_empty:
        context.log.warning(f"Document '{document_id}' has no tokens")
    else:
        context.log.info(
            f"Counted {table.total} tokens and {table.types} types in '{document_id}' "
            f"(TTR {table.type_token_ratio:.3f}, {len(table.hapax_legomena)} hapax legomena)"
        )

    return table


# ==============================================================================
# Corpus Domain: Aggregated word x document counts
# ==============================================================================


class CorpusConfig(dg.Config):
    """Configuration for aggregating document tables into the corpus."""

    include_empty: bool = Field(
        default=True,
        description="Keep documents without tokens as all-zero columns instead of skipping them",
    )


@dg.asset(
    deps=[dg.AssetDep("document_frequency")],
    automation_condition=dg.AutomationCondition.eager(),
)
def corpus_frequency(
    context: dg.AssetExecutionContext,
    config: CorpusConfig,
    corpus_store: CorpusStore,
    analytics_db: AnalyticsDB,
) -> None:
    """Aggregate all document frequency tables and store them in SQLite.

    Documents whose table is missing or unreadable are skipped and recorded
    in the skipped table; the rest of the corpus is still aggregated. Two
    documents with the same id fail the whole materialization.

    Tables: document, word_count (document_id, word, count, frequency)
    """
    document_ids = list(corpus_store.discover_documents())
    context.log.info(f"Loading frequency tables for {len(document_ids)} documents")

    outcomes = corpus_store.load_tables(document_ids)
    if not config.include_empty:
        outcomes = drop_empty_tables(outcomes)

    report = compute_corpus(outcomes)
    tables, _ = split_outcomes(outcomes)
    context.log.info(
        f"Aggregated {len(report.corpus.documents)} documents into "
        f"{len(report.corpus.words)} distinct words"
    )

    for skipped in report.skipped:
        context.log.warning(f"Skipped document '{skipped.subject}': {skipped.reason}")

    stopwords = read_stopwords() | read_stopwords(strip_diacritics=True)
    analytics_db.replace_corpus(tables, stopwords)
    analytics_db.replace_skipped("document", report.skipped)
    context.log.info(f"Stored corpus to {analytics_db.db_path}")

    if report.corpus.words:
        top = [(word, sum(report.corpus.rows[word])) for word in report.corpus.words[:5]]
        context.log.info(f"Top 5 most frequent words: {top}")


@dg.asset_check(asset=corpus_frequency)
def corpus_counts_consistent(
    _: dg.AssetCheckExecutionContext, analytics_db: AnalyticsDB
) -> dg.AssetCheckResult:
    """Check that stored counts sum to each document's total and frequencies to 1."""
    with analytics_db.get_connection() as conn:
        cursor = conn.execute("SELECT COUNT(*) FROM document")
        document_count = cursor.fetchone()[0]

        cursor = conn.execute(
            """SELECT d.document_id
               FROM document d
               LEFT JOIN word_count w ON d.document_id = w.document_id
               GROUP BY d.document_id
               HAVING d.tokens != COALESCE(SUM(w.count), 0)"""
        )
        mismatched_totals = [row[0] for row in cursor.fetchall()]

        cursor = conn.execute(
            """SELECT document_id
               FROM word_count
               GROUP BY document_id
               HAVING ABS(SUM(frequency) - 1.0) > 1e-9"""
        )
        mismatched_frequencies = [row[0] for row in cursor.fetchall()]

    passed = not mismatched_totals and not mismatched_frequencies

    issues = []
    if mismatched_totals:
        issues.append(f"Counts do not sum to totals for {mismatched_totals[:3]}")
    if mismatched_frequencies:
        issues.append(f"Frequencies do not sum to 1 for {mismatched_frequencies[:3]}")

    return dg.AssetCheckResult(
        passed=passed,
        description=f"All {document_count} documents have consistent counts"
        if passed
        else "; ".join(issues),
        metadata={
            "document_count": document_count,
            "mismatched_totals": len(mismatched_totals),
            "mismatched_frequencies": len(mismatched_frequencies),
        },
    )


# ==============================================================================
# Significance Domain: Statistical comparisons between documents
# ==============================================================================


class HomogeneityConfig(dg.Config):
    """Configuration for chi-square homogeneity tests."""

    simulations: int = Field(
        default=DEFAULT_SIMULATIONS,
        description="Random tables drawn when expected counts are too low for the chi-square approximation",
    )
    seed: Optional[int] = Field(
        default=0,
        description="Seed for the simulated p-values, None for a fresh seed on every run",
    )


@dg.asset(
    deps=[dg.AssetDep("corpus_frequency")],
    automation_condition=dg.AutomationCondition.eager(),
)
def homogeneity_tests(
    context: dg.AssetExecutionContext,
    config: HomogeneityConfig,
    analytics_db: AnalyticsDB,
) -> None:
    """Test whether documents share the same word distribution.

    Runs a chi-square homogeneity test for every pair of documents and one
    across all non-empty documents. Sparse tables get a Monte Carlo p-value.

    Table: homogeneity_test (scope, comparison_id, statistic, p_value, method, ...)
    """
    corpus = load_corpus(analytics_db)
    context.log.info(
        f"Testing homogeneity for {len(corpus.documents)} documents "
        f"(simulations={config.simulations}, seed={config.seed})"
    )

    outcomes = compute_pairwise_homogeneity(
        corpus, simulations=config.simulations, seed=config.seed
    )
    outcomes.append(
        compute_corpus_homogeneity(corpus, simulations=config.simulations, seed=config.seed)
    )
    results, skipped = split_outcomes(outcomes)

    analytics_db.replace_homogeneity_tests(results)
    analytics_db.replace_skipped("homogeneity", skipped)
    context.log.info(
        f"Stored {len(results)} homogeneity tests ({len(skipped)} skipped) to {analytics_db.db_path}"
    )

    significant = [r for r in results if r.significant]
    context.log.info(f"{len(significant)} of {len(results)} comparisons differ significantly")


@dg.asset_check(asset=homogeneity_tests)
def homogeneity_p_values_valid(
    _: dg.AssetCheckExecutionContext, analytics_db: AnalyticsDB
) -> dg.AssetCheckResult:
    """Check that all stored p-values lie between 0 and 1."""
    with analytics_db.get_connection() as conn:
        cursor = conn.execute("SELECT COUNT(*) FROM homogeneity_test")
        test_count = cursor.fetchone()[0]

        cursor = conn.execute(
            "SELECT COUNT(*) FROM homogeneity_test WHERE p_value < 0 OR p_value > 1"
        )
        invalid = cursor.fetchone()[0]

        cursor = conn.execute("SELECT COUNT(*) FROM homogeneity_test WHERE method = 'monte_carlo'")
        simulated = cursor.fetchone()[0]

    passed = invalid == 0

    return dg.AssetCheckResult(
        passed=passed,
        description=f"Stored {test_count} tests, {simulated} with simulated p-values"
        if passed
        else f"{invalid} p-values outside [0, 1]",
        metadata={"test_count": test_count, "invalid": invalid, "simulated": simulated},
    )


class ProportionConfig(dg.Config):
    """Configuration for per-word proportion tests.

    Leave both documents empty to compare every pair of documents.
    """

    document_a: Optional[str] = Field(default=None, description="First document of the pair")
    document_b: Optional[str] = Field(default=None, description="Second document of the pair")
    method: str = Field(
        default="chi_square",
        description="'chi_square' (with continuity correction) or 'fisher' (exact)",
    )


@dg.asset(
    deps=[dg.AssetDep("corpus_frequency")],
    automation_condition=dg.AutomationCondition.eager(),
)
def proportion_tests(
    context: dg.AssetExecutionContext,
    config: ProportionConfig,
    analytics_db: AnalyticsDB,
) -> None:
    """Test every word for a difference in relative frequency between documents.

    Results are ranked by p-value, most significant first. P-values are not
    corrected for multiple comparisons.

    Table: proportion_test (comparison_id, rank, word, counts, p_value, ...)
    """
    if (config.document_a is None) != (config.document_b is None):
        raise ValueError("Configure both document_a and document_b, or neither")

    corpus = load_corpus(analytics_db)
    pairs = (
        [(config.document_a, config.document_b)]
        if config.document_a is not None
        else None
    )

    outcomes = compute_proportion_tests(corpus, pairs=pairs, method=config.method)
    comparisons, skipped = split_outcomes(outcomes)

    analytics_db.replace_proportion_tests(comparisons)
    analytics_db.replace_skipped("proportion", skipped)

    test_count = sum(len(results) for results in comparisons)
    context.log.info(
        f"Stored {test_count} word tests in {len(comparisons)} comparisons "
        f"({len(skipped)} skipped) to {analytics_db.db_path}"
    )
    context.log.warning(
        "Proportion test p-values are uncorrected; apply Bonferroni or FDR "
        "correction before interpreting many words at once"
    )

    for results in comparisons:
        if results:
            top = results[0]
            context.log.info(
                f"  {top.document_a} vs {top.document_b}: top word '{top.word}' (p={top.p_value:.3g})"
            )


@dg.asset_check(asset=proportion_tests)
def proportion_tests_ranked(
    _: dg.AssetCheckExecutionContext, analytics_db: AnalyticsDB
) -> dg.AssetCheckResult:
    """Check that p-values are valid and ranks follow ascending p-values."""
    with analytics_db.get_connection() as conn:
        cursor = conn.execute("SELECT COUNT(*) FROM proportion_test")
        test_count = cursor.fetchone()[0]

        cursor = conn.execute(
            "SELECT COUNT(*) FROM proportion_test WHERE p_value < 0 OR p_value > 1"
        )
        invalid = cursor.fetchone()[0]

        cursor = conn.execute(
            """SELECT COUNT(*)
               FROM proportion_test a
               JOIN proportion_test b
                 ON a.comparison_id = b.comparison_id AND b.rank = a.rank + 1
               WHERE b.p_value < a.p_value"""
        )
        out_of_order = cursor.fetchone()[0]

        cursor = conn.execute("SELECT COUNT(*) FROM proportion_test WHERE significant")
        significant = cursor.fetchone()[0]

    passed = invalid == 0 and out_of_order == 0

    issues = []
    if invalid:
        issues.append(f"{invalid} p-values outside [0, 1]")
    if out_of_order:
        issues.append(f"{out_of_order} ranks not ordered by p-value")

    return dg.AssetCheckResult(
        passed=passed,
        description=f"Stored {test_count} tests, {significant} significant before correction"
        if passed
        else "; ".join(issues),
        metadata={
            "test_count": test_count,
            "significant": significant,
            "invalid": invalid,
            "out_of_order": out_of_order,
        },
    )


class IntervalConfig(dg.Config):
    """Configuration for confidence intervals of word frequencies."""

    top_n: int = Field(default=20, description="Most frequent words per document to estimate")
    confidence_level: float = Field(default=0.95, description="Confidence level of the intervals")


@dg.asset(
    deps=[dg.AssetDep("corpus_frequency")],
    automation_condition=dg.AutomationCondition.eager(),
)
def confidence_intervals(
    context: dg.AssetExecutionContext,
    config: IntervalConfig,
    analytics_db: AnalyticsDB,
) -> None:
    """Estimate exact binomial intervals for the most frequent words of each document.

    Table: confidence_interval (document_id, word, count, total, lower, upper, ...)
    """
    corpus = load_corpus(analytics_db)
    outcomes = compute_confidence_intervals(
        corpus, top_n=config.top_n, confidence_level=config.confidence_level
    )
    per_document, skipped = split_outcomes(outcomes)
    intervals = [ci for document_intervals in per_document for ci in document_intervals]

    analytics_db.replace_confidence_intervals(intervals)
    analytics_db.replace_skipped("interval", skipped)
    context.log.info(
        f"Stored {len(intervals)} intervals for {len(per_document)} documents "
        f"({len(skipped)} skipped) to {analytics_db.db_path}"
    )


@dg.asset_check(asset=confidence_intervals)
def confidence_intervals_ordered(
    _: dg.AssetCheckExecutionContext, analytics_db: AnalyticsDB
) -> dg.AssetCheckResult:
    """Check that every interval satisfies 0 <= lower <= proportion <= upper <= 1."""
    with analytics_db.get_connection() as conn:
        cursor = conn.execute("SELECT COUNT(*) FROM confidence_interval")
        interval_count = cursor.fetchone()[0]

        cursor = conn.execute(
            """SELECT COUNT(*) FROM confidence_interval
               WHERE NOT (0 <= lower AND lower <= proportion
                          AND proportion <= upper AND upper <= 1)"""
        )
        invalid = cursor.fetchone()[0]

    passed = invalid == 0

    return dg.AssetCheckResult(
        passed=passed,
        description=f"All {interval_count} intervals are ordered"
        if passed
        else f"{invalid} of {interval_count} intervals have unordered bounds",
        metadata={"interval_count": interval_count, "invalid": invalid},
    )


# ==============================================================================
# Export Domain: CSV files for spreadsheets and plotting
# ==============================================================================


class ExportConfig(dg.Config):
    """Configuration for the CSV export."""

    export_dir: str = Field(
        default=str(EXPORT_DIR),
        description="Folder the CSV files are written to",
    )
    normalized: bool = Field(
        default=True,
        description="Add a normalized frequency column per document to corpus.csv",
    )


@dg.asset(
    deps=[
        dg.AssetDep("corpus_frequency"),
        dg.AssetDep("homogeneity_tests"),
        dg.AssetDep("proportion_tests"),
        dg.AssetDep("confidence_intervals"),
    ],
)
def corpus_export(
    context: dg.AssetExecutionContext,
    config: ExportConfig,
    analytics_db: AnalyticsDB,
) -> None:
    """Write the corpus table, proportion tests and skipped items to CSV.

    Files: corpus.csv (word x document counts), proportion_tests.csv,
    skipped.csv
    """
    export_dir = Path(config.export_dir)
    corpus = load_corpus(analytics_db)

    paths = [
        write_corpus_csv(corpus, export_dir / "corpus.csv", normalized=config.normalized),
        write_proportion_csv(
            analytics_db.load_proportion_tests(), export_dir / "proportion_tests.csv"
        ),
        write_skipped_csv(analytics_db.load_skipped(), export_dir / "skipped.csv"),
    ]

    for path in paths:
        context.log.info(f"Exported {path}")
