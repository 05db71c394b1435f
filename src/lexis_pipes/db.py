import sqlite3
from pathlib import Path

from lexis_pipes.models import (
    ConfidenceInterval,
    DocumentFrequencyTable,
    HomogeneityResult,
    ProportionTestResult,
    Skipped,
)

DOCUMENT_TABLE = """
    CREATE TABLE IF NOT EXISTS document (
        document_id TEXT PRIMARY KEY NOT NULL,
        position INTEGER NOT NULL,
        tokens INTEGER NOT NULL,
        types INTEGER NOT NULL,
        hapax_legomena INTEGER NOT NULL,
        type_token_ratio REAL NOT NULL
    )
"""

WORD_COUNT_TABLE = """
    CREATE TABLE IF NOT EXISTS word_count (
        document_id TEXT NOT NULL,
        word TEXT NOT NULL,
        count INTEGER NOT NULL,
        frequency REAL NOT NULL,
        is_stopword BOOLEAN NOT NULL,
        PRIMARY KEY (document_id, word)
    )
"""

SKIPPED_TABLE = """
    CREATE TABLE IF NOT EXISTS skipped (
        stage TEXT NOT NULL,
        subject TEXT NOT NULL,
        reason TEXT NOT NULL
    )
"""

HOMOGENEITY_TEST_TABLE = """
    CREATE TABLE IF NOT EXISTS homogeneity_test (
        scope TEXT NOT NULL,
        comparison_id TEXT NOT NULL,
        documents INTEGER NOT NULL,
        columns INTEGER NOT NULL,
        statistic REAL NOT NULL,
        p_value REAL NOT NULL,
        dof INTEGER NOT NULL,
        method TEXT NOT NULL,
        simulations INTEGER,
        significant BOOLEAN NOT NULL,
        PRIMARY KEY (scope, comparison_id)
    )
"""

PROPORTION_TEST_TABLE = """
    CREATE TABLE IF NOT EXISTS proportion_test (
        comparison_id TEXT NOT NULL,
        rank INTEGER NOT NULL,
        word TEXT NOT NULL,
        count_a INTEGER NOT NULL,
        total_a INTEGER NOT NULL,
        count_b INTEGER NOT NULL,
        total_b INTEGER NOT NULL,
        proportion_a REAL NOT NULL,
        proportion_b REAL NOT NULL,
        statistic REAL,
        p_value REAL NOT NULL,
        method TEXT NOT NULL,
        significant BOOLEAN NOT NULL,
        PRIMARY KEY (comparison_id, rank)
    )
"""

CONFIDENCE_INTERVAL_TABLE = """
    CREATE TABLE IF NOT EXISTS confidence_interval (
        document_id TEXT NOT NULL,
        word TEXT NOT NULL,
        count INTEGER NOT NULL,
        total INTEGER NOT NULL,
        proportion REAL NOT NULL,
        lower REAL NOT NULL,
        upper REAL NOT NULL,
        confidence_level REAL NOT NULL,
        PRIMARY KEY (document_id, word)
    )
"""


def get_connection(db_path: str | Path) -> sqlite3.Connection:
    """Get a connection to the database.

    Args:
        db_path: Path to the SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(path)


def ensure_corpus_tables(db_path: str | Path) -> None:
    """Ensure the document, word_count and skipped tables exist.

    Args:
        db_path: Path to the SQLite database file
    """
    with get_connection(db_path) as conn:
        conn.execute(DOCUMENT_TABLE)
        conn.execute(WORD_COUNT_TABLE)
        conn.execute(SKIPPED_TABLE)
        conn.commit()


def replace_corpus(
    db_path: str | Path,
    tables: list[DocumentFrequencyTable],
    stopwords: set[str] | None = None,
) -> None:
    """Replace all documents and word counts in the database.

    Args:
        db_path: Path to the SQLite database file
        tables: Frequency tables in aggregation order
        stopwords: Words to flag with is_stopword

    Only non-zero counts are stored. This atomically replaces the document
    and word_count table contents.
    """
    ensure_corpus_tables(db_path)
    stopwords = stopwords or set()

    documents = [
        (
            table.document_id,
            position,
            table.total,
            table.types,
            len(table.hapax_legomena),
            table.type_token_ratio,
        )
        for position, table in enumerate(tables)
    ]
    word_counts = [
        (table.document_id, word, count, table.frequency(word), word in stopwords)
        for table in tables
        for word, count in table.counts.items()
    ]

    with get_connection(db_path) as conn:
        conn.execute("DELETE FROM word_count")
        conn.execute("DELETE FROM document")
        conn.executemany(
            """INSERT INTO document
               (document_id, position, tokens, types, hapax_legomena, type_token_ratio)
               VALUES (?, ?, ?, ?, ?, ?)""",
            documents,
        )
        conn.executemany(
            """INSERT INTO word_count (document_id, word, count, frequency, is_stopword)
               VALUES (?, ?, ?, ?, ?)""",
            word_counts,
        )
        conn.commit()


def load_frequency_tables(db_path: str | Path) -> list[DocumentFrequencyTable]:
    """Rebuild the stored frequency tables, in their original aggregation order.

    Args:
        db_path: Path to the SQLite database file
    """
    ensure_corpus_tables(db_path)

    with get_connection(db_path) as conn:
        document_ids = [
            row[0]
            for row in conn.execute("SELECT document_id FROM document ORDER BY position")
        ]
        counts: dict[str, dict[str, int]] = {document_id: {} for document_id in document_ids}
        for document_id, word, count in conn.execute(
            "SELECT document_id, word, count FROM word_count"
        ):
            counts.setdefault(document_id, {})[word] = count

    return [
        DocumentFrequencyTable(document_id=document_id, counts=counts[document_id])
        for document_id in document_ids
    ]


def replace_skipped(db_path: str | Path, stage: str, skipped: list[Skipped]) -> None:
    """Replace the skipped items of a single stage.

    Args:
        db_path: Path to the SQLite database file
        stage: Stage whose entries are replaced (e.g., "document")
        skipped: Skipped items of that stage
    """
    ensure_corpus_tables(db_path)

    with get_connection(db_path) as conn:
        conn.execute("DELETE FROM skipped WHERE stage = ?", (stage,))
        conn.executemany(
            "INSERT INTO skipped (stage, subject, reason) VALUES (?, ?, ?)",
            [(s.stage, s.subject, s.reason) for s in skipped if s.stage == stage],
        )
        conn.commit()


def load_skipped(db_path: str | Path) -> list[Skipped]:
    """Load all skipped documents and tests."""
    ensure_corpus_tables(db_path)

    with get_connection(db_path) as conn:
        cursor = conn.execute("SELECT stage, subject, reason FROM skipped ORDER BY rowid")
        return [Skipped(stage=row[0], subject=row[1], reason=row[2]) for row in cursor]


def ensure_homogeneity_table(db_path: str | Path) -> None:
    """Ensure the homogeneity_test table exists with the correct schema.

    Args:
        db_path: Path to the SQLite database file
    """
    with get_connection(db_path) as conn:
        conn.execute(HOMOGENEITY_TEST_TABLE)
        conn.commit()


def replace_homogeneity_tests(
    db_path: str | Path, results: list[HomogeneityResult]
) -> None:
    """Replace all homogeneity test results in the database.

    Args:
        db_path: Path to the SQLite database file
        results: HomogeneityResult objects, each with its documents set

    The comparison_id is the documents joined with "|" (e.g., "iliad|odyssey").
    With two non-empty documents the corpus-wide test compares the same pair
    as the pairwise one, so rows are keyed by (scope, comparison_id).
    This atomically replaces the entire table contents.
    """
    ensure_homogeneity_table(db_path)

    with get_connection(db_path) as conn:
        conn.execute("DELETE FROM homogeneity_test")
        conn.executemany(
            """INSERT INTO homogeneity_test
               (scope, comparison_id, documents, columns, statistic, p_value, dof,
                method, simulations, significant)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    r.scope,
                    "|".join(r.documents),
                    len(r.documents),
                    r.columns,
                    r.statistic,
                    r.p_value,
                    r.dof,
                    r.method,
                    r.simulations,
                    r.significant,
                )
                for r in results
            ],
        )
        conn.commit()


def ensure_proportion_table(db_path: str | Path) -> None:
    """Ensure the proportion_test table exists with the correct schema.

    Args:
        db_path: Path to the SQLite database file
    """
    with get_connection(db_path) as conn:
        conn.execute(PROPORTION_TEST_TABLE)
        conn.commit()


def replace_proportion_tests(
    db_path: str | Path,
    comparisons: list[list[ProportionTestResult]],
) -> None:
    """Replace all per-word proportion test results in the database.

    Args:
        db_path: Path to the SQLite database file
        comparisons: One ranked result list per document pair

    Rank 1 is the most significant word of a comparison. This atomically
    replaces the entire table contents.
    """
    ensure_proportion_table(db_path)

    rows = []
    for results in comparisons:
        for rank, r in enumerate(results, start=1):
            rows.append((
                f"{r.document_a}|{r.document_b}",
                rank,
                r.word,
                r.count_a,
                r.total_a,
                r.count_b,
                r.total_b,
                r.proportion_a,
                r.proportion_b,
                r.statistic,
                r.p_value,
                r.method,
                r.significant,
            ))

    with get_connection(db_path) as conn:
        conn.execute("DELETE FROM proportion_test")
        conn.executemany(
            """INSERT INTO proportion_test
               (comparison_id, rank, word, count_a, total_a, count_b, total_b,
                proportion_a, proportion_b, statistic, p_value, method, significant)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            rows,
        )
        conn.commit()


def load_proportion_tests(db_path: str | Path) -> list[ProportionTestResult]:
    """Load all proportion test results, ordered by comparison and rank."""
    ensure_proportion_table(db_path)

    with get_connection(db_path) as conn:
        cursor = conn.execute(
            """SELECT comparison_id, word, count_a, total_a, count_b, total_b,
                      statistic, p_value, method
               FROM proportion_test ORDER BY comparison_id, rank"""
        )
        results = []
        for row in cursor:
            document_a, document_b = row[0].split("|", 1)
            results.append(ProportionTestResult(
                count_a=row[2],
                total_a=row[3],
                count_b=row[4],
                total_b=row[5],
                statistic=row[6],
                p_value=row[7],
                method=row[8],
                word=row[1],
                document_a=document_a,
                document_b=document_b,
            ))
        return results


def ensure_confidence_interval_table(db_path: str | Path) -> None:
    """Ensure the confidence_interval table exists with the correct schema.

    Args:
        db_path: Path to the SQLite database file
    """
    with get_connection(db_path) as conn:
        conn.execute(CONFIDENCE_INTERVAL_TABLE)
        conn.commit()


def replace_confidence_intervals(
    db_path: str | Path, intervals: list[ConfidenceInterval]
) -> None:
    """Replace all confidence intervals in the database.

    Args:
        db_path: Path to the SQLite database file
        intervals: ConfidenceInterval objects with word and document set

    This atomically replaces the entire table contents.
    """
    ensure_confidence_interval_table(db_path)

    with get_connection(db_path) as conn:
        conn.execute("DELETE FROM confidence_interval")
        conn.executemany(
            """INSERT INTO confidence_interval
               (document_id, word, count, total, proportion, lower, upper, confidence_level)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    ci.document_id,
                    ci.word,
                    ci.count,
                    ci.total,
                    ci.proportion,
                    ci.lower,
                    ci.upper,
                    ci.confidence_level,
                )
                for ci in intervals
            ],
        )
        conn.commit()
