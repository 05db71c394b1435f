"""Tabular export of corpus tables and comparison results."""

import logging
from pathlib import Path

import pandas as pd

from lexis_pipes.models import CorpusTable, ProportionTestResult, Skipped

logger = logging.getLogger(__name__)

# Suffix of the normalized frequency columns next to the raw count columns
FREQUENCY_SUFFIX = "_freq"


def corpus_to_frame(corpus: CorpusTable, normalized: bool = False) -> pd.DataFrame:
    """Convert a corpus table to a DataFrame with one row per word.

    Args:
        corpus: The aggregated corpus
        normalized: Append one normalized frequency column per document,
            named "{document_id}_freq"

    Returns:
        DataFrame indexed by word, with one integer count column per document
        in aggregation order
    """
    frame = pd.DataFrame(
        [corpus.rows[word] for word in corpus.words],
        index=pd.Index(corpus.words, name="word"),
        columns=list(corpus.documents),
        dtype="int64",
    )

    if normalized:
        for document_id in corpus.documents:
            total = corpus.document_total(document_id)
            column = f"{document_id}{FREQUENCY_SUFFIX}"
            frame[column] = frame[document_id] / total if total else 0.0

    return frame


def proportion_results_to_frame(results: list[ProportionTestResult]) -> pd.DataFrame:
    """Convert proportion test results to a DataFrame, keeping their order."""
    columns = [
        "document_a",
        "document_b",
        "word",
        "count_a",
        "count_b",
        "proportion_a",
        "proportion_b",
        "p_value",
        "significant",
    ]
    return pd.DataFrame(
        [
            {
                "document_a": r.document_a,
                "document_b": r.document_b,
                "word": r.word,
                "count_a": r.count_a,
                "count_b": r.count_b,
                "proportion_a": r.proportion_a,
                "proportion_b": r.proportion_b,
                "p_value": r.p_value,
                "significant": r.significant,
            }
            for r in results
        ],
        columns=columns,
    )


def write_corpus_csv(
    corpus: CorpusTable, path: str | Path, normalized: bool = True
) -> Path:
    """Write the corpus table to CSV, header = word then document identifiers."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    corpus_to_frame(corpus, normalized=normalized).to_csv(path, encoding="utf-8")
    logger.info(f"Wrote {len(corpus.words)} words x {len(corpus.documents)} documents to {path}")
    return path


def write_proportion_csv(results: list[ProportionTestResult], path: str | Path) -> Path:
    """Write proportion test results to CSV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    proportion_results_to_frame(results).to_csv(path, index=False, encoding="utf-8")
    logger.info(f"Wrote {len(results)} proportion tests to {path}")
    return path


def write_skipped_csv(skipped: list[Skipped], path: str | Path) -> Path:
    """Write skipped documents and tests, with their reasons, to CSV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame = pd.DataFrame(
        [{"stage": s.stage, "subject": s.subject, "reason": s.reason} for s in skipped],
        columns=["stage", "subject", "reason"],
    )
    frame.to_csv(path, index=False, encoding="utf-8")
    logger.info(f"Wrote {len(skipped)} skipped items to {path}")
    return path
