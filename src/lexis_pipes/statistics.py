"""Statistical functions for comparing word frequencies between documents.

This module provides reusable significance tests over raw word counts, with
no project-specific dependencies beyond the result dataclasses. The test
primitives themselves come from SciPy.
"""

import logging
from dataclasses import replace
from typing import Sequence

import numpy as np
from scipy import stats
from scipy.stats.contingency import expected_freq

from lexis_pipes.errors import InputError, StatisticalPreconditionError
from lexis_pipes.models import (
    ConfidenceInterval,
    CorpusTable,
    HomogeneityResult,
    ProportionTestResult,
)

logger = logging.getLogger(__name__)

# Number of random tables drawn when the chi-square approximation is unreliable
DEFAULT_SIMULATIONS = 2000

# The asymptotic test is replaced by simulation when more than this share of
# expected cell counts falls below MIN_EXPECTED
LOW_EXPECTED_SHARE = 0.2
MIN_EXPECTED = 5.0

# Tolerance when comparing simulated statistics against the observed one
ALMOST_ONE = 1 - 64 * np.finfo(float).eps


def _pearson_statistic(observed: np.ndarray, expected: np.ndarray) -> float:
    return float(((observed - expected) ** 2 / expected).sum())


def _random_table(
    row_totals: np.ndarray, column_totals: np.ndarray, rng: np.random.Generator
) -> np.ndarray:
    """Draw a random contingency table with the given margins."""
    table = np.empty((len(row_totals), len(column_totals)), dtype=np.int64)
    remaining = column_totals.copy()

    for i, row_total in enumerate(row_totals[:-1]):
        table[i] = rng.multivariate_hypergeometric(remaining, int(row_total))
        remaining -= table[i]

    table[-1] = remaining
    return table


def _simulated_p_value(
    observed: np.ndarray,
    expected: np.ndarray,
    simulations: int,
    seed: int | None,
) -> tuple[float, float]:
    """Monte Carlo p-value for the Pearson statistic with fixed margins."""
    rng = np.random.default_rng(seed)
    statistic = _pearson_statistic(observed, expected)
    row_totals = observed.sum(axis=1)
    column_totals = observed.sum(axis=0)

    threshold = statistic * ALMOST_ONE
    hits = 0
    for _ in range(simulations):
        table = _random_table(row_totals, column_totals, rng)
        if _pearson_statistic(table, expected) >= threshold:
            hits += 1

    return statistic, (1 + hits) / (simulations + 1)


def table_homogeneity_test(
    matrix: Sequence[Sequence[int]],
    *,
    simulations: int = DEFAULT_SIMULATIONS,
    seed: int | None = None,
) -> HomogeneityResult:
    """Chi-square test of homogeneity for an r x k table of word counts.

    Each row holds one document's counts and each column one word. Columns
    that are zero in every row are removed before testing. When more than 20%
    of the expected counts are below 5, the p-value is estimated from
    `simulations` random tables with the observed margins instead of the
    chi-square distribution.

    Args:
        matrix: Rows of non-negative counts, all of equal length
        simulations: Number of random tables for the Monte Carlo p-value
        seed: Seed for the random generator, for reproducible p-values

    Returns:
        HomogeneityResult with statistic, p-value and the method used

    Raises:
        InputError: If rows have unequal length or contain negative counts
        StatisticalPreconditionError: If fewer than two rows or two non-zero
            columns remain, or any row sums to zero
    """
    rows = [list(row) for row in matrix]
    if len(rows) < 2:
        raise StatisticalPreconditionError("insufficient data: fewer than 2 rows")
    if len({len(row) for row in rows}) != 1:
        raise InputError("Count vectors must have equal length")

    observed = np.asarray(rows, dtype=np.int64)
    if (observed < 0).any():
        raise InputError("Counts must be non-negative")

    observed = observed[:, observed.sum(axis=0) > 0]
    if observed.shape[1] < 2:
        raise StatisticalPreconditionError(
            f"insufficient data: {observed.shape[1]} non-zero column(s) after filtering"
        )
    if (observed.sum(axis=1) == 0).any():
        raise StatisticalPreconditionError("insufficient data: a row sums to zero")
    if simulations < 1:
        raise InputError(f"simulations must be positive, got {simulations}")

    expected = expected_freq(observed)
    dof = (observed.shape[0] - 1) * (observed.shape[1] - 1)
    low_share = float((expected < MIN_EXPECTED).mean())

    if low_share > LOW_EXPECTED_SHARE:
        logger.debug(
            f"{low_share:.0%} of expected counts below {MIN_EXPECTED}, "
            f"simulating {simulations} tables"
        )
        statistic, p_value = _simulated_p_value(observed, expected, simulations, seed)
        return HomogeneityResult(
            statistic=statistic,
            p_value=p_value,
            dof=dof,
            method="monte_carlo",
            simulations=simulations,
            columns=observed.shape[1],
        )

    result = stats.chi2_contingency(observed)
    return HomogeneityResult(
        statistic=float(result.statistic),
        p_value=float(result.pvalue),
        dof=int(result.dof),
        method="asymptotic",
        simulations=None,
        columns=observed.shape[1],
    )


def homogeneity_test(
    counts_a: Sequence[int],
    counts_b: Sequence[int],
    *,
    simulations: int = DEFAULT_SIMULATIONS,
    seed: int | None = None,
) -> HomogeneityResult:
    """Chi-square test of whether two documents share a word distribution.

    The vectors are aligned by word. See `table_homogeneity_test` for the
    filtering and the Monte Carlo fallback.

    Example:
        >>> homogeneity_test([100, 0, 0], [0, 0, 100]).significant
        True
    """
    if len(counts_a) != len(counts_b):
        raise InputError(
            f"Count vectors must have equal length, got {len(counts_a)} and {len(counts_b)}"
        )
    if len(counts_a) < 2:
        raise StatisticalPreconditionError(
            f"insufficient data: {len(counts_a)} word(s), at least 2 required"
        )

    return table_homogeneity_test(
        [counts_a, counts_b], simulations=simulations, seed=seed
    )


def _check_proportion(count: int, total: int, label: str) -> None:
    if total <= 0:
        raise InputError(f"Total of {label} must be positive, got {total}")
    if count < 0 or count > total:
        raise InputError(f"Count of {label} must be between 0 and {total}, got {count}")


def word_proportion_test(
    count_a: int,
    total_a: int,
    count_b: int,
    total_b: int,
    method: str = "chi_square",
) -> ProportionTestResult:
    """Two-sample test of whether a word is equally frequent in two documents.

    The default method is Pearson's chi-square on the 2 x 2 table of
    (word, other words) with continuity correction. Identical proportions give
    a statistic of 0 and a p-value of 1. `method="fisher"` uses Fisher's exact
    test instead.

    Args:
        count_a: Occurrences of the word in the first document
        total_a: Total tokens in the first document
        count_b: Occurrences of the word in the second document
        total_b: Total tokens in the second document
        method: "chi_square" or "fisher"

    Raises:
        InputError: If a total is not positive or a count is out of range
    """
    _check_proportion(count_a, total_a, "first document")
    _check_proportion(count_b, total_b, "second document")

    table = [[count_a, total_a - count_a], [count_b, total_b - count_b]]

    if method == "fisher":
        result = stats.fisher_exact(table)
        return ProportionTestResult(
            count_a=count_a,
            total_a=total_a,
            count_b=count_b,
            total_b=total_b,
            statistic=None,
            p_value=float(result.pvalue),
            method=method,
        )

    if method != "chi_square":
        raise InputError(f"Unknown proportion test method '{method}'")

    # Equal proportions also cover the degenerate tables with an all-zero
    # column, for which the chi-square statistic is undefined
    if count_a * total_b == count_b * total_a:
        statistic, p_value = 0.0, 1.0
    else:
        result = stats.chi2_contingency(table, correction=True)
        statistic, p_value = float(result.statistic), float(result.pvalue)

    return ProportionTestResult(
        count_a=count_a,
        total_a=total_a,
        count_b=count_b,
        total_b=total_b,
        statistic=statistic,
        p_value=p_value,
        method=method,
    )


def compare_word_proportions(
    corpus: CorpusTable,
    document_a: str,
    document_b: str,
    method: str = "chi_square",
) -> list[ProportionTestResult]:
    """Run a proportion test for every word used in either of two documents.

    P-values are not corrected for multiple comparisons. With many words some
    will be flagged significant by chance; apply Bonferroni or FDR correction
    downstream when needed.

    Returns:
        Results ranked by p-value ascending (most significant first), ties
        broken by word

    Raises:
        InputError: If either document has no tokens
        KeyError: If a document is not part of the corpus
    """
    total_a = corpus.document_total(document_a)
    total_b = corpus.document_total(document_b)
    if total_a == 0 or total_b == 0:
        empty = document_a if total_a == 0 else document_b
        raise InputError(f"Document '{empty}' has no tokens")

    index_a = corpus.documents.index(document_a)
    index_b = corpus.documents.index(document_b)

    results = []
    for word in corpus.words:
        count_a = corpus.rows[word][index_a]
        count_b = corpus.rows[word][index_b]
        if count_a == 0 and count_b == 0:
            continue

        result = word_proportion_test(count_a, total_a, count_b, total_b, method=method)
        results.append(
            replace(result, word=word, document_a=document_a, document_b=document_b)
        )

    if len(results) > 1:
        logger.warning(
            f"Ran {len(results)} proportion tests for '{document_a}' vs '{document_b}'; "
            "p-values are not corrected for multiple comparisons"
        )

    return sorted(results, key=lambda r: (r.p_value, r.word))


def confidence_interval(
    count: int, total: int, confidence_level: float = 0.95
) -> ConfidenceInterval:
    """Exact (Clopper-Pearson) binomial confidence interval for count / total.

    Args:
        count: Number of successes, 0 <= count <= total
        total: Number of trials, must be positive
        confidence_level: Confidence level strictly between 0 and 1

    Returns:
        ConfidenceInterval with 0 <= lower <= upper <= 1. The lower bound is
        exactly 0 when count is 0, the upper bound exactly 1 when count equals
        total.

    Raises:
        InputError: If the arguments are out of range

    Example:
        >>> ci = confidence_interval(0, 10)
        >>> ci.lower
        0.0
    """
    _check_proportion(count, total, "interval")
    if not 0 < confidence_level < 1:
        raise InputError(
            f"Confidence level must be between 0 and 1, got {confidence_level}"
        )

    interval = stats.binomtest(count, total).proportion_ci(
        confidence_level=confidence_level, method="exact"
    )

    lower = 0.0 if count == 0 else min(max(float(interval.low), 0.0), 1.0)
    upper = 1.0 if count == total else min(max(float(interval.high), lower), 1.0)

    return ConfidenceInterval(
        count=count,
        total=total,
        lower=lower,
        upper=upper,
        confidence_level=confidence_level,
    )
