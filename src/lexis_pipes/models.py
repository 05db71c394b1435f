"""Data models for the Lexis Pipes project.

This module contains dataclasses representing the core domain objects: one
frequency table per document, the aggregated corpus table, and the results
of the statistical comparisons run over it.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Generic, Mapping, TypeVar

from lexis_pipes.errors import InputError

# Significance level used for the significance flag of every test result
SIGNIFICANCE_LEVEL = 0.05

T = TypeVar("T")


def frequency_order(item: tuple[str, int]) -> tuple[int, str]:
    """Sort key for (word, count) pairs: count descending, then word."""
    word, count = item
    return (-count, word)


@dataclass(frozen=True)
class DocumentFrequencyTable:
    """Word counts for a single document.

    Words are ordered by count descending, ties broken lexicographically.
    Words with a zero count are dropped, so every entry has count > 0.

    Attributes:
        document_id: Identifier of the document (e.g., file stem "iliad_01")
        counts: Read-only mapping of word to raw count
        total: Total number of tokens in the document
    """
    document_id: str
    counts: Mapping[str, int]
    total: int = field(init=False)

    def __post_init__(self):
        for word, count in self.counts.items():
            if not isinstance(count, int) or count < 0:
                raise InputError(
                    f"Invalid count {count!r} for '{word}' in document '{self.document_id}'"
                )

        ordered = dict(
            sorted(
                ((word, count) for word, count in self.counts.items() if count > 0),
                key=frequency_order,
            )
        )
        object.__setattr__(self, "counts", MappingProxyType(ordered))
        object.__setattr__(self, "total", sum(ordered.values()))

    def __len__(self) -> int:
        return len(self.counts)

    def __contains__(self, word: object) -> bool:
        return word in self.counts

    @property
    def is_empty(self) -> bool:
        return self.total == 0

    def frequency(self, word: str) -> float:
        """Normalized frequency of a word (count / total), 0 for an empty table."""
        if self.total == 0:
            return 0.0
        return self.counts.get(word, 0) / self.total

    @property
    def frequencies(self) -> dict[str, float]:
        """Normalized frequency for every word, in table order."""
        return {word: self.frequency(word) for word in self.counts}

    @property
    def types(self) -> int:
        """Number of distinct words."""
        return len(self.counts)

    @property
    def type_token_ratio(self) -> float:
        """Distinct words divided by total words, 0 for an empty table."""
        if self.total == 0:
            return 0.0
        return self.types / self.total

    @property
    def hapax_legomena(self) -> list[str]:
        """Words occurring exactly once, in lexicographic order."""
        return sorted(word for word, count in self.counts.items() if count == 1)

    def most_common(self, n: int | None = None) -> list[tuple[str, int]]:
        items = list(self.counts.items())
        return items if n is None else items[:n]


@dataclass(frozen=True)
class CorpusTable:
    """Word x document count matrix for a whole corpus.

    Missing (word, document) pairs are implicitly zero. Rows are ordered by
    total count across the corpus, descending, ties broken lexicographically.
    Documents keep the order in which they were aggregated.

    Attributes:
        documents: Document identifiers (column order)
        words: All words with a non-zero count in any document (row order)
        rows: Mapping of word to counts aligned with `documents`
        totals: Total token count per document
    """
    documents: tuple[str, ...]
    words: tuple[str, ...]
    rows: Mapping[str, tuple[int, ...]]
    totals: Mapping[str, int]

    def __len__(self) -> int:
        return len(self.words)

    @property
    def is_empty(self) -> bool:
        return not self.documents

    def _index(self, document_id: str) -> int:
        try:
            return self.documents.index(document_id)
        except ValueError:
            raise KeyError(f"Unknown document '{document_id}'") from None

    def count(self, word: str, document_id: str) -> int:
        """Count of a word in a document, 0 when the word is absent."""
        index = self._index(document_id)
        row = self.rows.get(word)
        return row[index] if row is not None else 0

    def row(self, word: str) -> dict[str, int]:
        """Counts of a word per document."""
        counts = self.rows.get(word, (0,) * len(self.documents))
        return dict(zip(self.documents, counts))

    def column(self, document_id: str) -> dict[str, int]:
        """Non-zero word counts of a single document, in row order."""
        index = self._index(document_id)
        return {
            word: self.rows[word][index]
            for word in self.words
            if self.rows[word][index] > 0
        }

    def document_total(self, document_id: str) -> int:
        self._index(document_id)
        return self.totals[document_id]

    def proportion(self, word: str, document_id: str) -> float:
        """Normalized frequency of a word in a document, 0 for an empty document."""
        total = self.document_total(document_id)
        if total == 0:
            return 0.0
        return self.count(word, document_id) / total

    def as_counts(self) -> dict[tuple[str, str], int]:
        """Sparse view of the table as {(word, document): count} for non-zero cells."""
        return {
            (word, document_id): count
            for word in self.words
            for document_id, count in zip(self.documents, self.rows[word])
            if count > 0
        }

    def restrict(self, document_ids: list[str] | tuple[str, ...]) -> "CorpusTable":
        """Return a table limited to the given documents, dropping all-zero rows."""
        indices = [self._index(document_id) for document_id in document_ids]
        rows = {}
        for word in self.words:
            counts = tuple(self.rows[word][i] for i in indices)
            if any(counts):
                rows[word] = counts

        return CorpusTable(
            documents=tuple(document_ids),
            words=tuple(rows),
            rows=MappingProxyType(rows),
            totals=MappingProxyType({d: self.totals[d] for d in document_ids}),
        )


@dataclass(frozen=True)
class HomogeneityResult:
    """Result of a chi-square homogeneity test between documents.

    Attributes:
        statistic: Pearson chi-square statistic
        p_value: Asymptotic or simulated p-value
        dof: Degrees of freedom of the filtered table
        method: "asymptotic" or "monte_carlo"
        simulations: Number of simulated tables for the Monte Carlo method
        columns: Number of words left after removing all-zero columns
        documents: Documents compared, empty for raw count vectors
        scope: "pair" for a pairwise test, "corpus" for the corpus-wide test
    """
    statistic: float
    p_value: float
    dof: int
    method: str
    simulations: int | None
    columns: int
    documents: tuple[str, ...] = ()
    scope: str = "pair"
    alpha: float = SIGNIFICANCE_LEVEL

    @property
    def significant(self) -> bool:
        return self.p_value < self.alpha


@dataclass(frozen=True)
class ProportionTestResult:
    """Result of a two-sample proportion test for a single word.

    Attributes:
        word: The word being compared
        document_a: First document
        document_b: Second document
        count_a: Raw count of word in first document
        total_a: Total tokens in first document
        count_b: Raw count of word in second document
        total_b: Total tokens in second document
        statistic: Test statistic (None for the exact test)
        p_value: Two-sided p-value
        method: "chi_square" or "fisher"
    """
    count_a: int
    total_a: int
    count_b: int
    total_b: int
    statistic: float | None
    p_value: float
    method: str
    word: str = ""
    document_a: str = ""
    document_b: str = ""
    alpha: float = SIGNIFICANCE_LEVEL

    @property
    def proportion_a(self) -> float:
        return self.count_a / self.total_a

    @property
    def proportion_b(self) -> float:
        return self.count_b / self.total_b

    @property
    def significant(self) -> bool:
        return self.p_value < self.alpha


@dataclass(frozen=True)
class ConfidenceInterval:
    """Exact binomial confidence interval for a word's share of a document.

    Attributes:
        count: Number of successes (occurrences of the word)
        total: Number of trials (tokens in the document)
        lower: Lower bound, 0 <= lower <= upper
        upper: Upper bound, upper <= 1
        confidence_level: Confidence level, e.g. 0.95
        word: The word, when computed for a corpus
        document_id: The document, when computed for a corpus
    """
    count: int
    total: int
    lower: float
    upper: float
    confidence_level: float
    word: str = ""
    document_id: str = ""

    @property
    def proportion(self) -> float:
        return self.count / self.total


@dataclass(frozen=True)
class Skipped:
    """A document or test that was left out of a run, and why.

    Attributes:
        stage: Where it was skipped ("document", "homogeneity", "proportion", "interval")
        subject: What was skipped (document id, document pair, word)
        reason: Human readable reason
    """
    stage: str
    subject: str
    reason: str


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or the reason it could not be produced."""
    value: T | None = None
    skipped: Skipped | None = None

    @property
    def ok(self) -> bool:
        return self.skipped is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, stage: str, subject: str, reason: str) -> "Outcome[T]":
        return cls(skipped=Skipped(stage=stage, subject=subject, reason=reason))


@dataclass
class RunReport:
    """Corpus table of a run together with everything that was skipped."""
    corpus: CorpusTable
    skipped: list[Skipped]
